"""Tests for health evaluation and the sampling monitor."""

import pytest

from src.deployment.config import HealthThresholds, VerdictStatus
from src.deployment.health import INSUFFICIENT_DATA, HealthEvaluator
from src.deployment.models import HealthSnapshot
from src.deployment.monitor import HealthMonitor
from src.deployment.scheduling import CancellationToken, Deadline, WakeReason
from src.deployment.simulated import SimulatedMetricsSource


def _snap(error_rate=0.001, latency=100.0, saturation=0.3, volume=100.0):
    return HealthSnapshot(
        error_rate=error_rate,
        latency_p99_ms=latency,
        saturation=saturation,
        traffic_volume=volume,
    )


# ── Evaluator Tests ──────────────────────────────────────────────────


class TestHealthEvaluator:
    def setup_method(self):
        self.evaluator = HealthEvaluator(
            HealthThresholds(
                max_error_rate=0.01,
                max_latency_p99_ms=500.0,
                min_saturation_headroom=0.2,
            )
        )

    def test_healthy_window(self):
        verdict = self.evaluator.evaluate([_snap(), _snap()])
        assert verdict.healthy
        assert verdict.reasons == ()
        observed = dict(verdict.observed)
        assert observed["samples"] == 2.0
        assert observed["traffic_volume"] == 200.0

    def test_error_rate_breach(self):
        verdict = self.evaluator.evaluate([_snap(error_rate=0.02)])
        assert verdict.status == VerdictStatus.UNHEALTHY
        assert any("error_rate" in r for r in verdict.reasons)

    def test_latency_breach(self):
        verdict = self.evaluator.evaluate([_snap(latency=900.0)])
        assert not verdict.healthy
        assert any("latency_p99" in r for r in verdict.reasons)

    def test_saturation_headroom_breach(self):
        verdict = self.evaluator.evaluate([_snap(saturation=0.9)])
        assert not verdict.healthy
        assert any("headroom" in r for r in verdict.reasons)

    def test_single_breaching_sample_fails_window(self):
        verdict = self.evaluator.evaluate([_snap(), _snap(), _snap(error_rate=0.5)])
        assert not verdict.healthy

    def test_reports_every_breached_threshold(self):
        verdict = self.evaluator.evaluate([_snap(error_rate=0.5, latency=900.0)])
        assert len(verdict.reasons) == 2

    def test_no_samples_is_insufficient_data(self):
        verdict = self.evaluator.evaluate([])
        assert not verdict.healthy
        assert verdict.reasons == (INSUFFICIENT_DATA,)

    def test_zero_traffic_is_insufficient_data(self):
        verdict = self.evaluator.evaluate([_snap(volume=0.0)])
        assert not verdict.healthy
        assert INSUFFICIENT_DATA in verdict.reasons

    def test_low_traffic_volume_is_insufficient_data(self):
        evaluator = HealthEvaluator(
            HealthThresholds(max_error_rate=0.01, min_traffic_volume=500.0)
        )
        verdict = evaluator.evaluate([_snap(volume=100.0)])
        assert not verdict.healthy
        assert verdict.reasons[0].startswith(INSUFFICIENT_DATA)

    def test_fetch_error_is_insufficient_data(self):
        verdict = self.evaluator.evaluate([_snap()], fetch_errors=["backend down"])
        assert not verdict.healthy
        assert verdict.reasons[0] == INSUFFICIENT_DATA
        assert "backend down" in verdict.reasons[1]

    def test_unset_thresholds_are_not_checked(self):
        evaluator = HealthEvaluator(HealthThresholds(max_error_rate=0.01))
        verdict = evaluator.evaluate([_snap(latency=10_000.0, saturation=0.99)])
        assert verdict.healthy

    def test_same_input_same_verdict(self):
        snapshots = [_snap(), _snap(error_rate=0.05)]
        assert self.evaluator.evaluate(snapshots) == self.evaluator.evaluate(snapshots)

    def test_breaches_checks_single_sample_thresholds(self):
        assert self.evaluator.breaches(_snap()) == ()
        reasons = self.evaluator.breaches(_snap(error_rate=0.2, latency=900.0))
        assert len(reasons) == 2
        assert reasons[0].startswith("error_rate")

    def test_breaches_ignores_window_volume_minimum(self):
        evaluator = HealthEvaluator(
            HealthThresholds(max_error_rate=0.01, min_traffic_volume=500.0)
        )
        assert evaluator.breaches(_snap(volume=10.0)) == ()
        assert evaluator.breaches(_snap(volume=0.0)) == ()

    def test_summary(self):
        assert self.evaluator.evaluate([_snap()]).summary() == "healthy"
        assert "error_rate" in self.evaluator.evaluate([_snap(error_rate=0.5)]).summary()


# ── Monitor Tests ────────────────────────────────────────────────────


class TestHealthMonitor:
    def setup_method(self):
        self.evaluator = HealthEvaluator(HealthThresholds(max_error_rate=0.01))

    @pytest.mark.asyncio
    async def test_full_window_collects_closing_sample(self):
        metrics = SimulatedMetricsSource()
        monitor = HealthMonitor(metrics, self.evaluator, sample_interval_seconds=10.0)
        observation = await monitor.observe("green", 0.02, Deadline(5.0))
        assert observation.wake == WakeReason.ELAPSED
        assert len(observation.snapshots) == 1
        assert observation.snapshots[0].environment == "green"
        assert monitor.evaluate(observation).healthy

    @pytest.mark.asyncio
    async def test_snapshots_tagged_with_step_weight(self):
        monitor = HealthMonitor(SimulatedMetricsSource(), self.evaluator, 10.0)
        observation = await monitor.observe("green", 0.01, Deadline(5.0), candidate_weight=25)
        assert observation.snapshots[0].candidate_weight == 25

    @pytest.mark.asyncio
    async def test_ticker_samples_during_window(self):
        metrics = SimulatedMetricsSource()
        monitor = HealthMonitor(metrics, self.evaluator, sample_interval_seconds=0.01)
        observation = await monitor.observe("green", 0.1, Deadline(5.0))
        assert len(observation.snapshots) >= 2

    @pytest.mark.asyncio
    async def test_cancelled_token_interrupts_window(self):
        token = CancellationToken()
        token.cancel("operator abort")
        monitor = HealthMonitor(SimulatedMetricsSource(), self.evaluator, 10.0)
        observation = await monitor.observe("green", 5.0, Deadline(10.0, token))
        assert observation.interrupted
        assert observation.snapshots == []

    @pytest.mark.asyncio
    async def test_deadline_shorter_than_window_interrupts(self):
        monitor = HealthMonitor(SimulatedMetricsSource(), self.evaluator, 10.0)
        observation = await monitor.observe("green", 5.0, Deadline(0.02))
        assert observation.interrupted

    @pytest.mark.asyncio
    async def test_fetch_failure_recorded_without_retry(self):
        metrics = SimulatedMetricsSource(fail_always=True)
        monitor = HealthMonitor(metrics, self.evaluator, sample_interval_seconds=10.0)
        observation = await monitor.observe("green", 0.01, Deadline(5.0))
        assert len(observation.fetch_errors) == 1
        verdict = monitor.evaluate(observation)
        assert verdict.reasons[0] == INSUFFICIENT_DATA

    @pytest.mark.asyncio
    async def test_retry_recovers_transient_failure(self):
        metrics = SimulatedMetricsSource(fail_times=1)
        monitor = HealthMonitor(
            metrics,
            self.evaluator,
            sample_interval_seconds=10.0,
            retry_attempts=2,
            retry_base_delay_seconds=0.001,
        )
        observation = await monitor.observe("green", 0.01, Deadline(5.0))
        assert observation.fetch_errors == []
        assert len(observation.snapshots) == 1

    @pytest.mark.asyncio
    async def test_fail_fast_ends_window_on_breach(self):
        metrics = SimulatedMetricsSource(baseline={
            "error_rate": 0.5,
            "latency_p99_ms": 100.0,
            "saturation": 0.2,
            "traffic_volume": 100.0,
        })
        monitor = HealthMonitor(
            metrics, self.evaluator, sample_interval_seconds=0.01, fail_fast=True
        )
        observation = await monitor.observe("green", 5.0, Deadline(10.0))
        assert observation.ended_early
        assert not observation.interrupted
        assert not monitor.evaluate(observation).healthy

    @pytest.mark.asyncio
    async def test_fail_fast_keeps_low_volume_window_open(self):
        evaluator = HealthEvaluator(
            HealthThresholds(max_error_rate=0.01, min_traffic_volume=100.0)
        )
        metrics = SimulatedMetricsSource(baseline={
            "error_rate": 0.001,
            "latency_p99_ms": 100.0,
            "saturation": 0.2,
            "traffic_volume": 40.0,
        })
        monitor = HealthMonitor(
            metrics, evaluator, sample_interval_seconds=0.01, fail_fast=True
        )
        observation = await monitor.observe("green", 0.1, Deadline(5.0))
        assert not observation.ended_early
        assert observation.wake == WakeReason.ELAPSED
        assert len(observation.snapshots) >= 3
        assert monitor.evaluate(observation).healthy
