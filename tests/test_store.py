"""Tests for the deployment stores, the transition journal and target locks."""

import threading
from datetime import datetime, timezone

import pytest

from conftest import make_config
from src.db.engine import build_engine
from src.deployment.config import DeploymentState
from src.deployment.errors import ConflictError, InvalidTransitionError, LockReleaseError
from src.deployment.journal import TransitionJournal
from src.deployment.locks import TargetLockRegistry
from src.deployment.models import Deployment, TrafficSplit
from src.deployment.store import InMemoryDeploymentStore, SqlDeploymentStore


def _at(minute):
    return datetime(2026, 1, 1, 12, minute, tzinfo=timezone.utc)


async def _run_to_rolled_back(journal, deployment):
    await journal.open(deployment)
    await journal.record(deployment, DeploymentState.PROVISIONING, reason="provisioning")
    deployment.candidate_environment = "green"
    await journal.record(deployment, DeploymentState.ADVANCING, reason="candidate green ready")
    await journal.record(
        deployment, DeploymentState.ADVANCING, reason="step 1/2", split=TrafficSplit(50, 50)
    )
    await journal.record(
        deployment,
        DeploymentState.ROLLED_BACK,
        reason="health-check-failed: error_rate",
        split=TrafficSplit.all_stable(),
    )


class _StoreContract:
    """Behaviour both store backends share."""

    def make_store(self):
        raise NotImplementedError

    def setup_method(self):
        self.store = self.make_store()
        self.journal = TransitionJournal(self.store)

    @pytest.mark.asyncio
    async def test_transitions_kept_in_order(self):
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await _run_to_rolled_back(self.journal, deployment)

        records = self.store.get_transitions(deployment.deployment_id)
        assert [r.sequence for r in records] == [1, 2, 3, 4, 5]
        assert records[0].from_state is None
        assert records[0].to_state == DeploymentState.PENDING
        assert [r.to_state for r in records[1:]] == [
            DeploymentState.PROVISIONING,
            DeploymentState.ADVANCING,
            DeploymentState.ADVANCING,
            DeploymentState.ROLLED_BACK,
        ]
        assert records[3].split == TrafficSplit(50, 50)
        assert records[-1].reason == "health-check-failed: error_rate"

    @pytest.mark.asyncio
    async def test_summary_tracks_latest_state(self):
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await _run_to_rolled_back(self.journal, deployment)

        summary = self.store.get_summary(deployment.deployment_id)
        assert summary.state == DeploymentState.ROLLED_BACK
        assert summary.is_terminal
        assert summary.candidate_environment == "green"
        assert summary.split == TrafficSplit.all_stable()
        assert summary.completed_at is not None
        assert summary.config["traffic_steps"] == [10, 25, 50, 75, 100]

    @pytest.mark.asyncio
    async def test_terminal_log_is_read_only(self):
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await _run_to_rolled_back(self.journal, deployment)
        with pytest.raises(InvalidTransitionError):
            await self.journal.record(deployment, DeploymentState.FAILED)
        assert len(self.store.get_transitions(deployment.deployment_id)) == 5

    @pytest.mark.asyncio
    async def test_illegal_transition_writes_nothing(self):
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await self.journal.open(deployment)
        with pytest.raises(InvalidTransitionError):
            await self.journal.record(deployment, DeploymentState.PROMOTED)
        assert len(self.store.get_transitions(deployment.deployment_id)) == 1
        assert deployment.state == DeploymentState.PENDING

    @pytest.mark.asyncio
    async def test_list_filters_and_orders_newest_first(self):
        first = Deployment(
            config=make_config(), stable_environment="blue", created_at=_at(1)
        )
        second = Deployment(
            config=make_config(target="search"), stable_environment="b", created_at=_at(2)
        )
        await self.journal.open(first)
        await self.journal.open(second)
        await self.journal.record(first, DeploymentState.PROVISIONING)

        assert [s.deployment_id for s in self.store.list_summaries()] == [
            second.deployment_id,
            first.deployment_id,
        ]
        assert [s.target for s in self.store.list_summaries(target="search")] == ["search"]
        provisioning = self.store.list_summaries(state=DeploymentState.PROVISIONING)
        assert [s.deployment_id for s in provisioning] == [first.deployment_id]
        assert len(self.store.list_summaries(limit=1)) == 1

    @pytest.mark.asyncio
    async def test_unfinished(self):
        done = Deployment(config=make_config(), stable_environment="blue")
        await _run_to_rolled_back(self.journal, done)
        running = Deployment(config=make_config(target="search"), stable_environment="b")
        await self.journal.open(running)

        unfinished = self.store.unfinished()
        assert [s.deployment_id for s in unfinished] == [running.deployment_id]

    def test_unknown_deployment(self):
        assert self.store.get_summary("missing") is None
        assert self.store.get_transitions("missing") == []
        assert self.store.next_sequence("missing") == 1


class TestInMemoryStore(_StoreContract):
    def make_store(self):
        return InMemoryDeploymentStore()


class TestSqlStore(_StoreContract):
    def make_store(self):
        return SqlDeploymentStore(build_engine("sqlite://"))

    @pytest.mark.asyncio
    async def test_timestamps_are_timezone_aware(self):
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await self.journal.open(deployment)
        record = self.store.get_transitions(deployment.deployment_id)[0]
        assert record.timestamp.tzinfo is not None
        assert self.store.get_summary(deployment.deployment_id).created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_journal_writes_run_off_the_event_loop(self):
        loop_thread = threading.get_ident()
        write_threads = []
        append = self.store.append_transition

        def append_and_note_thread(record):
            write_threads.append(threading.get_ident())
            append(record)

        self.store.append_transition = append_and_note_thread
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await self.journal.open(deployment)
        await self.journal.record(deployment, DeploymentState.PROVISIONING)

        assert len(write_threads) == 2
        assert loop_thread not in write_threads
        assert len(self.store.get_transitions(deployment.deployment_id)) == 2

    def test_transition_requires_saved_deployment(self):
        from src.deployment.models import TransitionRecord

        orphan = TransitionRecord(
            deployment_id="orphan",
            sequence=1,
            from_state=None,
            to_state=DeploymentState.PENDING,
            split=TrafficSplit.all_stable(),
        )
        with pytest.raises(ValueError):
            self.store.append_transition(orphan)

    @pytest.mark.asyncio
    async def test_survives_a_new_store_on_the_same_database(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'rollout.db'}"
        store = SqlDeploymentStore(build_engine(url))
        deployment = Deployment(config=make_config(), stable_environment="blue")
        await _run_to_rolled_back(TransitionJournal(store), deployment)

        reopened = SqlDeploymentStore(build_engine(url))
        assert len(reopened.get_transitions(deployment.deployment_id)) == 5
        assert reopened.get_summary(deployment.deployment_id).reasons == []


class TestTargetLockRegistry:
    def setup_method(self):
        self.locks = TargetLockRegistry()

    def test_acquire_and_release(self):
        self.locks.acquire("checkout", "d1")
        assert self.locks.active_for("checkout") == "d1"
        self.locks.release("checkout", "d1")
        assert self.locks.active_for("checkout") is None

    def test_second_acquire_conflicts(self):
        self.locks.acquire("checkout", "d1")
        with pytest.raises(ConflictError) as exc_info:
            self.locks.acquire("checkout", "d2")
        assert exc_info.value.active_deployment_id == "d1"
        assert exc_info.value.status_code == 409

    def test_distinct_targets_independent(self):
        self.locks.acquire("checkout", "d1")
        self.locks.acquire("search", "d2")
        assert self.locks.held() == {"checkout": "d1", "search": "d2"}

    def test_release_by_non_holder_fails(self):
        self.locks.acquire("checkout", "d1")
        with pytest.raises(LockReleaseError):
            self.locks.release("checkout", "d2")
        assert self.locks.active_for("checkout") == "d1"

    def test_release_unheld_fails(self):
        with pytest.raises(LockReleaseError):
            self.locks.release("checkout", "d1")

    def test_reset(self):
        self.locks.acquire("checkout", "d1")
        self.locks.reset()
        assert self.locks.held() == {}
