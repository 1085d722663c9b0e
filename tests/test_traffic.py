"""Tests for traffic splits, the traffic controller and scheduling."""

import asyncio

import pytest

from src.deployment.errors import InvalidSplitError, TrafficShiftError, ValidationError
from src.deployment.models import TrafficSplit
from src.deployment.scheduling import CancellationToken, Deadline, WakeReason
from src.deployment.simulated import InMemoryRouter
from src.deployment.traffic import TrafficController


class TestTrafficSplit:
    def test_defaults_to_all_stable(self):
        split = TrafficSplit()
        assert split.as_tuple() == (100, 0)

    def test_all_candidate(self):
        assert TrafficSplit.all_candidate().as_tuple() == (0, 100)

    def test_weights_must_sum_to_100(self):
        with pytest.raises(InvalidSplitError):
            TrafficSplit(60, 30)

    def test_weights_must_be_in_range(self):
        with pytest.raises(InvalidSplitError):
            TrafficSplit(110, -10)

    def test_invalid_split_is_validation_error(self):
        with pytest.raises(ValidationError):
            TrafficSplit(50, 51)

    def test_str(self):
        assert str(TrafficSplit(75, 25)) == "75/25"


class TestTrafficController:
    def setup_method(self):
        self.router = InMemoryRouter()
        self.traffic = TrafficController(self.router, "blue", "green")

    @pytest.mark.asyncio
    async def test_set_split_applies_and_records(self):
        split = await self.traffic.set_split(90, 10)
        assert split == TrafficSplit(90, 10)
        assert self.traffic.current == split
        assert self.router.history == [("blue", "green", 90, 10)]

    @pytest.mark.asyncio
    async def test_candidate_share_only_grows(self):
        await self.traffic.set_split(50, 50)
        with pytest.raises(InvalidSplitError):
            await self.traffic.set_split(75, 25)
        assert self.traffic.current == TrafficSplit(50, 50)

    @pytest.mark.asyncio
    async def test_bad_weights_never_reach_router(self):
        with pytest.raises(InvalidSplitError):
            await self.traffic.set_split(70, 20)
        assert self.router.calls == 0

    @pytest.mark.asyncio
    async def test_router_failure_keeps_last_applied_split(self):
        router = InMemoryRouter(fail_on={50})
        traffic = TrafficController(router, "blue", "green")
        await traffic.set_split(75, 25)
        with pytest.raises(TrafficShiftError):
            await traffic.set_split(50, 50)
        assert traffic.current == TrafficSplit(75, 25)
        assert traffic.applied == [TrafficSplit(75, 25)]

    @pytest.mark.asyncio
    async def test_revert_returns_to_stable(self):
        await self.traffic.set_split(25, 75)
        split = await self.traffic.revert()
        assert split == TrafficSplit.all_stable()
        assert self.router.last_split == (100, 0)

    @pytest.mark.asyncio
    async def test_failed_revert_raises(self):
        router = InMemoryRouter(fail_on={0})
        traffic = TrafficController(router, "blue", "green")
        await traffic.set_split(90, 10)
        with pytest.raises(TrafficShiftError):
            await traffic.revert()
        assert traffic.current == TrafficSplit(90, 10)

    def test_initial_split(self):
        traffic = TrafficController(self.router, "blue", "green", initial=TrafficSplit(50, 50))
        assert traffic.current == TrafficSplit(50, 50)


class TestDeadline:
    @pytest.mark.asyncio
    async def test_sleep_elapses(self):
        deadline = Deadline(5.0)
        assert await deadline.sleep(0.01) == WakeReason.ELAPSED

    @pytest.mark.asyncio
    async def test_sleep_cut_short_by_deadline(self):
        deadline = Deadline(0.01)
        assert await deadline.sleep(1.0) == WakeReason.CANCELLED
        assert deadline.expired
        assert not deadline.cancelled

    @pytest.mark.asyncio
    async def test_sleep_wakes_on_cancel(self):
        token = CancellationToken()
        deadline = Deadline(10.0, token)
        sleeper = asyncio.create_task(deadline.sleep(10.0))
        await asyncio.sleep(0)
        token.cancel("stop")
        assert await asyncio.wait_for(sleeper, 1.0) == WakeReason.CANCELLED
        assert deadline.cancelled
        assert token.reason == "stop"

    @pytest.mark.asyncio
    async def test_first_cancel_reason_wins(self):
        token = CancellationToken()
        token.cancel("first")
        token.cancel("second")
        assert token.reason == "first"

    def test_remaining_uses_clock(self):
        now = [100.0]
        deadline = Deadline(30.0, clock=lambda: now[0])
        assert deadline.remaining() == 30.0
        now[0] = 140.0
        assert deadline.remaining() == 0.0
        assert deadline.expired

    @pytest.mark.asyncio
    async def test_zero_sleep_yields_to_other_tasks(self):
        ran = []

        async def other():
            ran.append(True)

        task = asyncio.create_task(other())
        assert await Deadline(5.0).sleep(0) == WakeReason.ELAPSED
        assert ran == [True]
        await task
