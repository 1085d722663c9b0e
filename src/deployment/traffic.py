"""PRD-120: Deployment Strategies & Rollback Automation — Traffic Management."""

import logging
from typing import List, Optional

from .errors import InvalidSplitError, TrafficShiftError
from .interfaces import TrafficRouter
from .models import TrafficSplit

logger = logging.getLogger(__name__)


class TrafficController:
    """Controls traffic routing between a stable and a candidate environment.

    ``current`` is always the last split the router accepted. A router
    failure leaves it untouched, so callers never assume a partial shift.
    While advancing, the candidate share may only grow; ``revert`` is the
    one way back to all-stable.
    """

    def __init__(
        self,
        router: TrafficRouter,
        stable_environment: str,
        candidate_environment: str,
        initial: Optional[TrafficSplit] = None,
    ):
        self._router = router
        self.stable_environment = stable_environment
        self.candidate_environment = candidate_environment
        self._current = initial or TrafficSplit.all_stable()
        self._applied: List[TrafficSplit] = []

    @property
    def current(self) -> TrafficSplit:
        return self._current

    @property
    def applied(self) -> List[TrafficSplit]:
        """Every split the router accepted, oldest first."""
        return list(self._applied)

    async def set_split(self, stable_weight: int, candidate_weight: int) -> TrafficSplit:
        """Shift traffic toward the candidate.

        Raises:
            InvalidSplitError: weights out of range, not summing to 100,
                or moving traffic back toward stable.
            TrafficShiftError: the router call failed; nothing was applied.
        """
        split = TrafficSplit(stable_weight, candidate_weight)
        if split.candidate_weight < self._current.candidate_weight:
            raise InvalidSplitError(
                f"Split {split} would move traffic back from {self._current}; use revert()"
            )
        return await self._apply(split)

    async def revert(self) -> TrafficSplit:
        """Send 100% of traffic to stable, whatever was last attempted."""
        return await self._apply(TrafficSplit.all_stable())

    async def _apply(self, split: TrafficSplit) -> TrafficSplit:
        try:
            await self._router.set_weights(
                self.stable_environment,
                self.candidate_environment,
                split.stable_weight,
                split.candidate_weight,
            )
        except Exception as exc:
            logger.error(
                "Router rejected split %s (%s -> %s), last applied %s: %s",
                split,
                self.stable_environment,
                self.candidate_environment,
                self._current,
                exc,
            )
            raise TrafficShiftError(f"Router failed to apply {split}: {exc}") from exc

        self._current = split
        self._applied.append(split)
        logger.info(
            "Traffic split %s=%d%% / %s=%d%%",
            self.stable_environment,
            split.stable_weight,
            self.candidate_environment,
            split.candidate_weight,
        )
        return split
