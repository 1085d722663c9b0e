"""Cooperative scheduling primitives.

A deployment's only suspension points are its observation sleeps and
metrics polls. Both go through :class:`Deadline`, which wakes early when
the overall deadline elapses or the deployment's cancellation token fires,
and reports which of the two happened instead of raising.
"""

import asyncio
import enum
import time
from typing import Callable, Optional


class WakeReason(enum.Enum):
    """Why a cooperative sleep returned."""

    ELAPSED = "elapsed"
    CANCELLED = "cancelled"


class CancellationToken:
    """One-shot cancellation signal shared by a deployment's task tree."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    async def wait(self) -> None:
        await self._event.wait()


class Deadline:
    """Absolute deadline on a monotonic clock, paired with a token."""

    def __init__(
        self,
        timeout_seconds: float,
        token: Optional[CancellationToken] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self.expires_at = clock() + timeout_seconds
        self.token = token or CancellationToken()

    def remaining(self) -> float:
        return max(0.0, self.expires_at - self._clock())

    @property
    def expired(self) -> bool:
        return self.remaining() <= 0

    @property
    def cancelled(self) -> bool:
        """True once the token fired (abort), independent of expiry."""
        return self.token.cancelled

    async def sleep(self, seconds: float) -> WakeReason:
        """Suspend for ``seconds`` unless the deadline or token cuts it short.

        Returns ELAPSED only when the full duration was slept.
        """
        if self.token.cancelled:
            return WakeReason.CANCELLED
        budget = min(seconds, self.remaining())
        if budget > 0:
            try:
                await asyncio.wait_for(self.token.wait(), timeout=budget)
                return WakeReason.CANCELLED
            except asyncio.TimeoutError:
                pass
        else:
            await asyncio.sleep(0)
        if budget < seconds:
            return WakeReason.CANCELLED
        return WakeReason.ELAPSED
