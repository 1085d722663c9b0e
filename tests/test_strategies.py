"""Tests for strategy executors, the strategy registry and config validation."""

import pytest

from conftest import make_config
from src.deployment.config import (
    DeploymentConfig,
    DeploymentState,
    DeploymentStrategy,
    HealthThresholds,
)
from src.deployment.errors import (
    DeploymentAbortedError,
    DeploymentTimeoutError,
    HealthCheckFailure,
    TrafficShiftError,
    ValidationError,
)
from src.deployment.health import HealthEvaluator
from src.deployment.journal import TransitionJournal
from src.deployment.models import Deployment
from src.deployment.monitor import HealthMonitor
from src.deployment.scheduling import CancellationToken, Deadline
from src.deployment.simulated import InMemoryRouter, SimulatedMetricsSource
from src.deployment.store import InMemoryDeploymentStore
from src.deployment.strategies import (
    STRATEGY_REGISTRY,
    BlueGreen,
    Canary,
    get_strategy,
    register_strategy,
)
from src.deployment.traffic import TrafficController
from src.deployment.validation import ConfigValidator


# ── Registry Tests ───────────────────────────────────────────────────


class TestStrategyRegistry:
    def test_builtin_strategies_registered(self):
        assert isinstance(get_strategy("canary"), Canary)
        assert isinstance(get_strategy("blue-green"), BlueGreen)

    def test_lookup_by_enum(self):
        assert isinstance(get_strategy(DeploymentStrategy.CANARY), Canary)

    def test_unknown_strategy_is_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            get_strategy("rolling")
        assert exc_info.value.details[0]["field"] == "strategy"

    def test_register_custom_strategy(self):
        class Shadow:
            async def execute(self, deployment, traffic, health, deadline, journal):
                return None

        register_strategy("shadow", Shadow())
        assert isinstance(get_strategy("shadow"), Shadow)

    def test_register_rejects_executor_without_execute(self):
        with pytest.raises(TypeError):
            register_strategy("broken", object())
        assert "broken" not in STRATEGY_REGISTRY

    def test_strategies_are_frozen_values(self):
        assert Canary() == Canary()
        assert BlueGreen().kind == "blue-green"


# ── Executor Tests ───────────────────────────────────────────────────


class TestCanaryExecution:
    def setup_method(self):
        self.store = InMemoryDeploymentStore()
        self.journal = TransitionJournal(self.store)

    async def _advancing(self, config):
        deployment = Deployment(
            config=config, stable_environment="blue", candidate_environment="green"
        )
        await self.journal.open(deployment)
        await self.journal.record(deployment, DeploymentState.PROVISIONING)
        await self.journal.record(deployment, DeploymentState.ADVANCING, reason="candidate ready")
        return deployment

    def _wiring(self, router, config, **metrics_kwargs):
        metrics = SimulatedMetricsSource(router=router, **metrics_kwargs)
        monitor = HealthMonitor(
            metrics,
            HealthEvaluator(config.thresholds),
            sample_interval_seconds=config.sample_interval_seconds,
        )
        return TrafficController(router, "blue", "green"), monitor

    @pytest.mark.asyncio
    async def test_walks_every_step_when_healthy(self):
        config = make_config()
        deployment = await self._advancing(config)
        router = InMemoryRouter()
        traffic, monitor = self._wiring(router, config)

        await Canary().execute(deployment, traffic, monitor, Deadline(5.0), self.journal)

        assert [s.as_tuple() for s in traffic.applied] == [
            (90, 10), (75, 25), (50, 50), (25, 75), (0, 100)
        ]
        assert [r.candidate_weight for r in deployment.step_results] == [10, 25, 50, 75, 100]
        assert all(r.verdict.healthy for r in deployment.step_results)
        assert deployment.health_history

    @pytest.mark.asyncio
    async def test_each_step_journaled_before_traffic_moves(self):
        config = make_config(traffic_steps=(50, 100))
        deployment = await self._advancing(config)
        traffic, monitor = self._wiring(InMemoryRouter(), config)

        await Canary().execute(deployment, traffic, monitor, Deadline(5.0), self.journal)

        steps = [
            r for r in self.store.get_transitions(deployment.deployment_id)
            if r.reason.startswith("step ")
        ]
        assert [r.reason for r in steps] == [
            "step 1/2: shifting 50% to candidate",
            "step 2/2: shifting 100% to candidate",
        ]
        assert steps[0].split.as_tuple() == (100, 0)
        assert steps[1].split.as_tuple() == (50, 50)

    @pytest.mark.asyncio
    async def test_unhealthy_step_raises_without_advancing(self):
        config = make_config()
        deployment = await self._advancing(config)
        router = InMemoryRouter()
        traffic, monitor = self._wiring(router, config, profiles={25: {"error_rate": 0.2}})

        with pytest.raises(HealthCheckFailure) as exc_info:
            await Canary().execute(deployment, traffic, monitor, Deadline(5.0), self.journal)

        assert "step 2/5" in exc_info.value.message
        assert not exc_info.value.verdict.healthy
        assert traffic.current.as_tuple() == (75, 25)
        assert len(deployment.step_results) == 2

    @pytest.mark.asyncio
    async def test_router_failure_surfaces_as_traffic_shift_error(self):
        config = make_config()
        deployment = await self._advancing(config)
        router = InMemoryRouter(fail_on={25})
        traffic, monitor = self._wiring(router, config)

        with pytest.raises(TrafficShiftError):
            await Canary().execute(deployment, traffic, monitor, Deadline(5.0), self.journal)
        assert traffic.current.as_tuple() == (90, 10)

    @pytest.mark.asyncio
    async def test_expired_deadline_raises_timeout(self):
        config = make_config(observation_window_seconds=1.0)
        deployment = await self._advancing(config)
        traffic, monitor = self._wiring(InMemoryRouter(), config)

        with pytest.raises(DeploymentTimeoutError) as exc_info:
            await Canary().execute(deployment, traffic, monitor, Deadline(0.05), self.journal)

        assert exc_info.value.reason == "timeout"
        assert len(deployment.step_results) == 1

    @pytest.mark.asyncio
    async def test_cancelled_token_raises_abort(self):
        config = make_config()
        deployment = await self._advancing(config)
        traffic, monitor = self._wiring(InMemoryRouter(), config)
        token = CancellationToken()
        token.cancel("operator said stop")

        with pytest.raises(DeploymentAbortedError) as exc_info:
            await Canary().execute(
                deployment, traffic, monitor, Deadline(5.0, token), self.journal
            )

        assert "operator said stop" in exc_info.value.message
        assert traffic.applied == []

    @pytest.mark.asyncio
    async def test_blue_green_single_cutover(self):
        config = make_config(strategy="blue-green", traffic_steps=())
        deployment = await self._advancing(config)
        router = InMemoryRouter()
        traffic, monitor = self._wiring(router, config)

        await BlueGreen().execute(deployment, traffic, monitor, Deadline(5.0), self.journal)

        assert router.history == [("blue", "green", 0, 100)]
        assert len(deployment.step_results) == 1


# ── Validation Tests ─────────────────────────────────────────────────


class TestConfigValidator:
    def setup_method(self):
        self.validator = ConfigValidator()

    def _fields(self, config, stable="blue"):
        return {issue["field"] for issue in self.validator.check(config, stable)}

    def test_valid_canary(self):
        assert self.validator.check(make_config(), "blue") == []

    def test_blue_green_defaults_to_single_step(self):
        config = make_config(strategy="blue-green", traffic_steps=())
        assert config.traffic_steps == (100,)
        assert self.validator.check(config, "blue") == []

    def test_unknown_strategy(self):
        assert "strategy" in self._fields(make_config(strategy="rolling"))

    def test_empty_steps(self):
        assert "traffic_steps" in self._fields(make_config(traffic_steps=()))

    def test_steps_must_increase(self):
        assert "traffic_steps" in self._fields(make_config(traffic_steps=(10, 10, 100)))

    def test_steps_must_end_at_100(self):
        assert "traffic_steps" in self._fields(make_config(traffic_steps=(10, 50)))

    def test_steps_out_of_range(self):
        assert "traffic_steps" in self._fields(make_config(traffic_steps=(0, 100)))
        assert "traffic_steps" in self._fields(make_config(traffic_steps=(50, 150)))

    def test_blue_green_rejects_ramp(self):
        config = make_config(strategy="blue-green", traffic_steps=(50, 100))
        assert "traffic_steps" in self._fields(config)

    def test_thresholds_required(self):
        assert "thresholds" in self._fields(make_config(thresholds=None))
        assert "thresholds" in self._fields(make_config(thresholds=HealthThresholds()))

    def test_threshold_ranges(self):
        config = make_config(thresholds=HealthThresholds(max_error_rate=1.5))
        assert "thresholds.max_error_rate" in self._fields(config)

    def test_non_positive_durations(self):
        fields = self._fields(
            make_config(observation_window_seconds=0, timeout_seconds=-1)
        )
        assert {"observation_window_seconds", "timeout_seconds"} <= fields

    def test_stable_environment_required(self):
        assert "stable_environment" in self._fields(make_config(), stable=None)

    def test_ensure_valid_lists_every_issue(self):
        config = make_config(strategy="rolling", traffic_steps=())
        with pytest.raises(ValidationError) as exc_info:
            self.validator.ensure_valid(config, "blue")
        fields = {d["field"] for d in exc_info.value.details}
        assert {"strategy", "traffic_steps"} <= fields
        assert exc_info.value.status_code == 400

    def test_registered_names_accepted(self):
        validator = ConfigValidator(known_strategies=["shadow"])
        assert validator.check(make_config(strategy="shadow"), "blue") == []


class TestDeploymentConfigFromDict:
    def test_builds_thresholds(self):
        config = DeploymentConfig.from_dict({
            "target": "checkout",
            "strategy": "canary",
            "artifact": "checkout:2",
            "traffic_steps": [10, 100],
            "thresholds": {"max_error_rate": 0.01},
        })
        assert config.thresholds.max_error_rate == 0.01
        assert config.thresholds.min_traffic_volume == 1.0
        assert config.traffic_steps == (10, 100)

    def test_defaults_fill_missing_and_null_keys(self):
        config = DeploymentConfig.from_dict(
            {"target": "checkout", "strategy": "canary", "artifact": "a",
             "observation_window_seconds": None},
            {"observation_window_seconds": 5.0, "timeout_seconds": 50.0},
        )
        assert config.observation_window_seconds == 5.0
        assert config.timeout_seconds == 50.0

    def test_round_trips_through_dict(self):
        config = make_config()
        assert DeploymentConfig.from_dict(config.to_dict()) == config
