"""PRD-120: Deployment Strategies & Rollback Automation — Rollback Engine."""

import logging
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .config import DeploymentState
from .errors import DeploymentAbortedError, DeploymentError, RollbackError
from .interfaces import InfrastructureProvider
from .journal import TransitionJournal
from .models import Deployment, TrafficSplit
from .traffic import TrafficController

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def describe_failure(cause: BaseException) -> str:
    """Reason-chain entry for whatever ended a rollout."""
    if isinstance(cause, DeploymentError):
        return cause.describe()
    return f"internal-error: {type(cause).__name__}: {cause}"


@dataclass
class RollbackAction:
    """Record of a rollback operation."""

    rollback_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    deployment_id: str = ""
    from_environment: Optional[str] = None
    to_environment: Optional[str] = None
    from_split: TrafficSplit = field(default_factory=TrafficSplit.all_stable)
    reason: str = ""
    triggered_by: str = "auto"
    triggered_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None
    success: bool = False
    error: Optional[str] = None
    steps_completed: List[str] = field(default_factory=list)


class RollbackManager:
    """Returns all traffic to stable after a failed rollout.

    A failed reversion is the one unrecoverable outcome: the deployment
    ends FAILED with ``requires_operator`` set and an alert goes out.
    """

    def __init__(
        self,
        journal: TransitionJournal,
        provider: Optional[InfrastructureProvider] = None,
        destroy_candidate: bool = True,
    ):
        self._journal = journal
        self._provider = provider
        self._destroy_candidate = destroy_candidate
        self._actions: Dict[str, RollbackAction] = {}
        self._lock = threading.Lock()

    async def rollback(
        self,
        deployment: Deployment,
        traffic: TrafficController,
        cause: BaseException,
    ) -> RollbackAction:
        """Revert ``deployment`` to all-stable and record the outcome."""
        reason = describe_failure(cause)
        deployment.reasons.append(reason)
        action = RollbackAction(
            deployment_id=deployment.deployment_id,
            from_environment=traffic.candidate_environment,
            to_environment=traffic.stable_environment,
            from_split=traffic.current,
            reason=reason,
            triggered_by="operator" if isinstance(cause, DeploymentAbortedError) else "auto",
        )
        with self._lock:
            self._actions[action.rollback_id] = action
        logger.warning(
            "Rolling back %s from %s: %s",
            deployment.deployment_id,
            traffic.current,
            reason,
            extra={"reason": reason, "split": str(traffic.current)},
        )

        try:
            await traffic.revert()
        except Exception as exc:
            error = RollbackError(
                f"Could not return {deployment.target} to {traffic.stable_environment}: {exc}"
            )
            action.error = error.describe()
            action.completed_at = _utcnow()
            deployment.reasons.append(error.describe())
            deployment.requires_operator = True
            logger.critical(
                "ROLLBACK FAILED for %s on %s; traffic split is undefined (last applied %s)",
                deployment.deployment_id,
                deployment.target,
                traffic.current,
                extra={"reason": error.reason},
            )
            await self._journal.record(
                deployment,
                DeploymentState.FAILED,
                reason=error.describe(),
                split=traffic.current,
                detail={"requires_operator": True, "trigger": reason},
                alert=True,
            )
            return action

        action.steps_completed.append("revert_traffic")
        await self._journal.record(
            deployment,
            DeploymentState.ROLLED_BACK,
            reason=reason,
            split=TrafficSplit.all_stable(),
        )
        await self._teardown(deployment, action)

        action.success = True
        action.completed_at = _utcnow()
        logger.info(
            "Rollback %s completed for %s",
            action.rollback_id,
            deployment.deployment_id,
        )
        return action

    def get_rollback(self, rollback_id: str) -> Optional[RollbackAction]:
        """Retrieve a rollback action by ID."""
        return self._actions.get(rollback_id)

    def list_rollbacks(
        self, deployment_id: Optional[str] = None
    ) -> List[RollbackAction]:
        """List rollback actions, optionally filtered by deployment."""
        actions = list(self._actions.values())
        if deployment_id is not None:
            actions = [
                a for a in actions if a.deployment_id == deployment_id
            ]
        actions.sort(key=lambda a: a.triggered_at, reverse=True)
        return actions

    def get_rollback_stats(self) -> dict:
        """Return rollback statistics."""
        actions = list(self._actions.values())
        total = len(actions)
        successful = sum(1 for a in actions if a.success)
        completed = [a for a in actions if a.completed_at is not None]
        if completed:
            durations = [
                (a.completed_at - a.triggered_at).total_seconds()
                for a in completed
            ]
            avg_duration = sum(durations) / len(durations)
        else:
            avg_duration = 0.0

        return {
            "total": total,
            "successful": successful,
            "failed": total - successful,
            "avg_duration_seconds": round(avg_duration, 4),
        }

    def reset(self) -> None:
        """Clear all rollback actions (for testing)."""
        with self._lock:
            self._actions.clear()

    # ── Internal helpers ─────────────────────────────────────────────

    async def _teardown(self, deployment: Deployment, action: RollbackAction) -> None:
        env_id = deployment.candidate_environment
        if not (self._destroy_candidate and self._provider and env_id):
            return
        try:
            await self._provider.destroy_environment(env_id)
            action.steps_completed.append("destroy_candidate")
        except Exception as exc:
            logger.warning("Could not destroy candidate %s after rollback: %s", env_id, exc)
