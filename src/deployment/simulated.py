"""PRD-120: Deployment Strategies & Rollback Automation — Simulated Collaborators.

In-process stand-ins for the provider, router, metrics source and
notifier. The CLI runs against them, and tests use their failure
switches to drive every rollout path.
"""

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import OrchestratorConfig
from .models import HealthSnapshot
from .notify import LoggingNotifier
from .orchestrator import DeploymentOrchestrator

logger = logging.getLogger(__name__)

HEALTHY_BASELINE: Dict[str, float] = {
    "error_rate": 0.001,
    "latency_p99_ms": 120.0,
    "saturation": 0.30,
    "traffic_volume": 100.0,
}


class SimulatedProvider:
    """Hands out environment ids; can be told to fail or to stall."""

    def __init__(
        self,
        fail_create: bool = False,
        fail_destroy: bool = False,
        delay_seconds: float = 0.0,
        prefix: str = "env",
    ):
        self.fail_create = fail_create
        self.fail_destroy = fail_destroy
        self.delay_seconds = delay_seconds
        self._prefix = prefix
        self.environments: Dict[str, str] = {}
        self.destroyed: List[str] = []

    def add_environment(self, env_id: str, artifact: str = "") -> str:
        """Register an environment that already serves traffic."""
        self.environments[env_id] = artifact
        return env_id

    async def create_environment(self, artifact: str) -> str:
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if self.fail_create:
            raise RuntimeError(f"capacity exhausted while creating {artifact}")
        env_id = f"{self._prefix}-{uuid.uuid4().hex[:8]}"
        self.environments[env_id] = artifact
        logger.debug("Created environment %s for %s", env_id, artifact)
        return env_id

    async def destroy_environment(self, env_id: str) -> None:
        if self.fail_destroy:
            raise RuntimeError(f"could not destroy {env_id}")
        self.environments.pop(env_id, None)
        self.destroyed.append(env_id)


class InMemoryRouter:
    """Keeps the weights per (stable, candidate) pair.

    ``fail_on`` lists candidate weights whose application is refused;
    include ``0`` to make reversion fail.
    """

    def __init__(self, fail_on: Iterable[int] = ()):
        self.fail_on = set(fail_on)
        self.calls = 0
        self.history: List[Tuple[str, str, int, int]] = []
        self._routes: Dict[str, Tuple[str, int, int]] = {}

    async def set_weights(
        self,
        stable_env: str,
        candidate_env: str,
        stable_weight: int,
        candidate_weight: int,
    ) -> None:
        self.calls += 1
        if candidate_weight in self.fail_on:
            raise ConnectionError(
                f"router refused {stable_weight}/{candidate_weight} for {candidate_env}"
            )
        self._routes[candidate_env] = (stable_env, stable_weight, candidate_weight)
        self.history.append((stable_env, candidate_env, stable_weight, candidate_weight))

    def split_for(self, candidate_env: str) -> Optional[Tuple[int, int]]:
        route = self._routes.get(candidate_env)
        return (route[1], route[2]) if route else None

    def candidate_weight_for(self, env_id: str) -> Optional[int]:
        split = self.split_for(env_id)
        return split[1] if split else None

    @property
    def last_split(self) -> Optional[Tuple[int, int]]:
        if not self.history:
            return None
        return self.history[-1][2], self.history[-1][3]


class SimulatedMetricsSource:
    """Produces snapshots from a per-weight metric profile.

    Weights missing from ``profiles`` report ``baseline``. With a router
    attached, the weight is the one the router currently applies to the
    sampled environment.
    """

    def __init__(
        self,
        router: Optional[InMemoryRouter] = None,
        baseline: Optional[Dict[str, float]] = None,
        profiles: Optional[Dict[int, Dict[str, float]]] = None,
        fail_times: int = 0,
        fail_always: bool = False,
    ):
        self._router = router
        self.baseline = dict(baseline or HEALTHY_BASELINE)
        self.profiles = dict(profiles or {})
        self.fail_times = fail_times
        self.fail_always = fail_always
        self.samples_taken = 0

    async def sample(self, env_id: str, window_seconds: float) -> HealthSnapshot:
        if self.fail_always or self.fail_times > 0:
            self.fail_times = max(0, self.fail_times - 1)
            raise ConnectionError(f"metrics backend unavailable for {env_id}")
        weight = self._router.candidate_weight_for(env_id) if self._router else None
        metrics = dict(self.baseline)
        metrics.update(self.profiles.get(weight, {}))
        self.samples_taken += 1
        return HealthSnapshot(
            error_rate=metrics["error_rate"],
            latency_p99_ms=metrics["latency_p99_ms"],
            saturation=metrics["saturation"],
            traffic_volume=metrics["traffic_volume"],
            environment=env_id,
            candidate_weight=weight,
        )


class RecordingNotifier:
    """Keeps every emitted event; optionally raises on each one."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.events: List[Tuple[str, str, Dict[str, Any]]] = []

    async def emit(self, deployment_id: str, state: str, detail: Dict[str, Any]) -> None:
        if self.fail:
            raise RuntimeError("notification endpoint down")
        self.events.append((deployment_id, state, dict(detail)))

    def states_for(self, deployment_id: str) -> List[str]:
        return [state for dep_id, state, _ in self.events if dep_id == deployment_id]

    @property
    def alerts(self) -> List[Tuple[str, str, Dict[str, Any]]]:
        return [e for e in self.events if e[2].get("alert")]


def create_simulated_orchestrator(
    store: Any = None,
    simulation: Optional[Dict[str, Any]] = None,
    config: Optional[OrchestratorConfig] = None,
    notifier: Any = None,
) -> DeploymentOrchestrator:
    """Create an orchestrator wired to the simulated collaborators.

    ``simulation`` keys: ``profiles`` (candidate weight -> metric
    overrides), ``fail_create`` and ``router_fail_on``.
    """
    simulation = simulation or {}
    router = InMemoryRouter(fail_on=simulation.get("router_fail_on", ()))
    profiles = {int(k): v for k, v in (simulation.get("profiles") or {}).items()}
    return DeploymentOrchestrator(
        provider=SimulatedProvider(fail_create=simulation.get("fail_create", False)),
        router=router,
        metrics=SimulatedMetricsSource(router=router, profiles=profiles),
        notifier=notifier or LoggingNotifier(),
        store=store,
        config=config,
    )
