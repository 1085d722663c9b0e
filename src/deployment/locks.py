"""PRD-120: Deployment Strategies & Rollback Automation — Target Locks."""

import logging
import threading
from typing import Dict, Optional

from .errors import ConflictError, LockReleaseError

logger = logging.getLogger(__name__)


class TargetLockRegistry:
    """At most one active deployment per target.

    ``acquire`` never waits: a held target is a conflict, reported to the
    caller immediately. The check and the reservation happen under one
    lock, so two concurrent starts for a target cannot both succeed.
    """

    def __init__(self) -> None:
        self._holders: Dict[str, str] = {}
        self._lock = threading.Lock()

    def acquire(self, target: str, deployment_id: str) -> None:
        with self._lock:
            holder = self._holders.get(target)
            if holder is not None:
                raise ConflictError(
                    f"Target {target} already has active deployment {holder}",
                    active_deployment_id=holder,
                )
            self._holders[target] = deployment_id
        logger.debug("Lock on %s acquired by %s", target, deployment_id)

    def release(self, target: str, deployment_id: str) -> None:
        """Release ``target`` if ``deployment_id`` holds it.

        Raises:
            LockReleaseError: the lock is held by someone else or not at all.
        """
        with self._lock:
            holder = self._holders.get(target)
            if holder != deployment_id:
                raise LockReleaseError(
                    target,
                    f"Lock on {target} is held by {holder or 'nobody'}, not {deployment_id}",
                )
            del self._holders[target]
        logger.debug("Lock on %s released by %s", target, deployment_id)

    def active_for(self, target: str) -> Optional[str]:
        with self._lock:
            return self._holders.get(target)

    def held(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._holders)

    def reset(self) -> None:
        """Drop every lock (for testing)."""
        with self._lock:
            self._holders.clear()
