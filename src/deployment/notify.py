"""PRD-120: Deployment Strategies & Rollback Automation — Notifications.

Status events leave the orchestrator through a bounded queue drained by a
single worker. Publishing never blocks a deployment, and a failing
Notifier never changes a deployment's outcome: its errors are logged and
dropped.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from .interfaces import Notifier

logger = logging.getLogger(__name__)


@dataclass
class DeploymentEvent:
    """One outbound status event."""

    deployment_id: str
    state: str
    detail: Dict[str, Any] = field(default_factory=dict)
    alert: bool = False
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class NotificationChannel:
    """Bounded, fire-and-forget delivery of deployment events."""

    def __init__(self, notifier: Optional[Notifier], max_size: int = 256):
        self._notifier = notifier
        self._max_size = max_size
        self._queue: Optional[asyncio.Queue] = None
        self._worker: Optional[asyncio.Task] = None
        self.dropped = 0
        self.delivered = 0
        self.failed = 0

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def start(self) -> None:
        if self.running:
            return
        self._queue = asyncio.Queue(maxsize=self._max_size)
        self._worker = asyncio.create_task(self._drain())

    def publish(
        self,
        deployment_id: str,
        state: str,
        detail: Optional[Dict[str, Any]] = None,
        alert: bool = False,
    ) -> bool:
        """Queue an event; returns False when it had to be dropped.

        Alerts are operator pages: the notifier sees ``detail["alert"]``.
        """
        if self._notifier is None:
            return False
        if self._queue is None:
            self.start()
        detail = dict(detail or {})
        if alert:
            detail["alert"] = True
        event = DeploymentEvent(deployment_id, state, detail, alert)
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Notification queue full; dropped %s event for %s", state, deployment_id
            )
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued event has been handed to the notifier."""
        if self._queue is not None and self.running:
            await self._queue.join()

    async def close(self) -> None:
        await self.flush()
        if self._worker is not None:
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None
        self._queue = None

    async def _drain(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._notifier.emit(event.deployment_id, event.state, event.detail)
                self.delivered += 1
            except Exception as exc:
                # Notifier failures never reach the deployment.
                self.failed += 1
                logger.warning(
                    "Notifier failed for %s (%s): %s", event.deployment_id, event.state, exc
                )
            finally:
                self._queue.task_done()


class LoggingNotifier:
    """Notifier that writes events to the log."""

    def __init__(self) -> None:
        self.events: List[DeploymentEvent] = []

    async def emit(self, deployment_id: str, state: str, detail: Dict[str, Any]) -> None:
        self.events.append(DeploymentEvent(deployment_id, state, dict(detail)))
        logger.info("Deployment %s -> %s %s", deployment_id, state, detail)
