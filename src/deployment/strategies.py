"""PRD-120: Deployment Strategies & Rollback Automation — Strategy Executors.

A strategy is a small frozen value with one coroutine, ``execute``, that
drives a deployment from its first traffic step to full cutover. It
returns on success and raises on any failure; rollback is the caller's
job. Executors are looked up by name in ``STRATEGY_REGISTRY``.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Sequence

from .config import DeploymentState, DeploymentStrategy
from .errors import (
    DeploymentAbortedError,
    DeploymentTimeoutError,
    HealthCheckFailure,
    ValidationError,
)
from .journal import TransitionJournal
from .models import Deployment, StepResult
from .monitor import HealthMonitor
from .scheduling import Deadline
from .traffic import TrafficController

logger = logging.getLogger(__name__)


def _interrupted(deadline: Deadline, where: str) -> Exception:
    if deadline.cancelled:
        return DeploymentAbortedError(deadline.token.reason or "aborted by operator")
    return DeploymentTimeoutError(f"Deadline elapsed {where}")


async def run_traffic_steps(
    steps: Sequence[int],
    deployment: Deployment,
    traffic: TrafficController,
    health: HealthMonitor,
    deadline: Deadline,
    journal: TransitionJournal,
) -> None:
    """Walk the candidate through ``steps``, gating each on a healthy window.

    Each step is journaled before traffic moves. A step that is cut short
    by the deadline or an abort raises instead of moving on, and an
    unhealthy window raises at once.
    """
    total = len(steps)
    window = deployment.config.observation_window_seconds

    for index, weight in enumerate(steps, start=1):
        where = f"before step {index}/{total}"
        if deadline.cancelled or deadline.expired:
            raise _interrupted(deadline, where)

        await journal.record(
            deployment,
            DeploymentState.ADVANCING,
            reason=f"step {index}/{total}: shifting {weight}% to candidate",
        )
        step = StepResult(step_index=index, candidate_weight=weight)
        deployment.step_results.append(step)

        await traffic.set_split(100 - weight, weight)
        deployment.traffic_split = traffic.current
        await journal.sync(deployment)

        observation = await health.observe(
            traffic.candidate_environment, window, deadline, candidate_weight=weight
        )
        step.snapshots = list(observation.snapshots)
        deployment.health_history.extend(observation.snapshots)

        if observation.interrupted:
            step.completed_at = datetime.now(timezone.utc)
            raise _interrupted(deadline, f"while observing step {index}/{total} at {weight}%")

        verdict = health.evaluate(observation)
        step.verdict = verdict
        step.completed_at = datetime.now(timezone.utc)
        logger.info(
            "Step %d/%d at %d%%: %s",
            index,
            total,
            weight,
            verdict.summary(),
            extra={"verdict": verdict.status.value, "split": str(traffic.current)},
        )
        if not verdict.healthy:
            raise HealthCheckFailure(
                f"step {index}/{total} at {weight}%: {verdict.summary()}", verdict
            )


@dataclass(frozen=True)
class BlueGreen:
    """Shift everything to the candidate at once and watch one window."""

    kind: str = DeploymentStrategy.BLUE_GREEN.value

    async def execute(
        self,
        deployment: Deployment,
        traffic: TrafficController,
        health: HealthMonitor,
        deadline: Deadline,
        journal: TransitionJournal,
    ) -> None:
        await run_traffic_steps((100,), deployment, traffic, health, deadline, journal)


@dataclass(frozen=True)
class Canary:
    """Ramp the candidate through ascending traffic steps."""

    kind: str = DeploymentStrategy.CANARY.value

    async def execute(
        self,
        deployment: Deployment,
        traffic: TrafficController,
        health: HealthMonitor,
        deadline: Deadline,
        journal: TransitionJournal,
    ) -> None:
        await run_traffic_steps(
            deployment.config.traffic_steps, deployment, traffic, health, deadline, journal
        )


# ── Registry ────────────────────────────────────────────────────────

STRATEGY_REGISTRY: Dict[str, Any] = {
    DeploymentStrategy.BLUE_GREEN.value: BlueGreen(),
    DeploymentStrategy.CANARY.value: Canary(),
}


def register_strategy(name: str, executor: Any) -> None:
    """Register an executor under ``name``, replacing any previous one.

    ``executor`` needs an ``async execute(deployment, traffic, health,
    deadline, journal)`` method.
    """
    if not callable(getattr(executor, "execute", None)):
        raise TypeError(f"Executor for '{name}' has no execute() method")
    STRATEGY_REGISTRY[name] = executor
    logger.debug("Registered strategy %s -> %s", name, type(executor).__name__)


def get_strategy(name: Any, registry: Optional[Dict[str, Any]] = None) -> Any:
    """Look up the executor for a strategy name or DeploymentStrategy."""
    if isinstance(name, DeploymentStrategy):
        name = name.value
    executor = (registry if registry is not None else STRATEGY_REGISTRY).get(name)
    if executor is None:
        raise ValidationError(f"Unknown strategy '{name}'", field="strategy")
    return executor
