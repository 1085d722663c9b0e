"""PRD-120: Deployment Strategies & Rollback Automation — Transition Journal.

Single path through which a deployment changes state. Every transition
is validated, appended to the store, and only then applied to the live
aggregate and announced.
"""

import asyncio
import logging
from typing import Any, Callable, Dict, Optional

from .config import DeploymentState
from .models import Deployment, TrafficSplit, TransitionRecord
from .notify import NotificationChannel

logger = logging.getLogger(__name__)


class TransitionJournal:
    """Writes transitions ahead of acting on them."""

    def __init__(self, store: Any, channel: Optional[NotificationChannel] = None):
        self._store = store
        self._channel = channel

    @property
    def store(self) -> Any:
        return self._store

    async def open(self, deployment: Deployment) -> TransitionRecord:
        """Record the creation of ``deployment`` in PENDING."""
        await self._io(self._store.save_deployment, deployment)
        record = TransitionRecord(
            deployment_id=deployment.deployment_id,
            sequence=await self._io(self._store.next_sequence, deployment.deployment_id),
            from_state=None,
            to_state=DeploymentState.PENDING,
            split=deployment.traffic_split,
            reason="accepted",
            timestamp=deployment.created_at,
        )
        await self._io(self._store.append_transition, record)
        self._announce(deployment, record)
        return record

    async def record(
        self,
        deployment: Deployment,
        to_state: DeploymentState,
        reason: str = "",
        split: Optional[TrafficSplit] = None,
        detail: Optional[Dict[str, Any]] = None,
        alert: bool = False,
    ) -> TransitionRecord:
        """Persist and apply one transition.

        Raises:
            InvalidTransitionError: the state machine forbids the move;
                nothing is written.
        """
        deployment.check_transition(to_state)
        record = TransitionRecord(
            deployment_id=deployment.deployment_id,
            sequence=await self._io(self._store.next_sequence, deployment.deployment_id),
            from_state=deployment.state,
            to_state=to_state,
            split=split or deployment.traffic_split,
            reason=reason,
        )
        await self._io(self._store.append_transition, record)
        deployment.apply_transition(record)
        deployment.traffic_split = record.split
        await self._io(self._store.save_deployment, deployment)
        self._announce(deployment, record, detail, alert)
        return record

    async def sync(self, deployment: Deployment) -> None:
        """Refresh the stored summary without a state change."""
        await self._io(self._store.save_deployment, deployment)

    async def _io(self, call: Callable[..., Any], *args: Any) -> Any:
        # Stores that block on I/O run in a worker thread off the event loop.
        if getattr(self._store, "blocking_io", False):
            return await asyncio.to_thread(call, *args)
        return call(*args)

    def _announce(
        self,
        deployment: Deployment,
        record: TransitionRecord,
        detail: Optional[Dict[str, Any]] = None,
        alert: bool = False,
    ) -> None:
        log = logger.critical if alert else logger.info
        log(
            "Deployment %s: %s -> %s at %s (%s)",
            deployment.deployment_id,
            record.from_state.value if record.from_state else "-",
            record.to_state.value,
            record.split,
            record.reason or "no reason",
            extra={
                "from_state": record.from_state.value if record.from_state else None,
                "to_state": record.to_state.value,
                "split": str(record.split),
                "reason": record.reason,
            },
        )
        if self._channel is None:
            return
        payload = {
            "target": deployment.target,
            "split": record.split.as_tuple(),
            "reason": record.reason,
            "sequence": record.sequence,
        }
        payload.update(detail or {})
        self._channel.publish(
            deployment.deployment_id, record.to_state.value, payload, alert=alert
        )
