"""PRD-120: Deployment Strategies & Rollback Automation — Health Monitor.

Samples the candidate environment in the background for the length of
one observation window. The ticker task is owned by the step that started
it and is cancelled the moment that step ends.
"""

import asyncio
import contextlib
import dataclasses
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from .health import HealthEvaluator
from .interfaces import MetricsSource
from .models import HealthSnapshot, Verdict
from .scheduling import Deadline, WakeReason

logger = logging.getLogger(__name__)


@dataclass
class Observation:
    """Everything gathered for one traffic step."""

    snapshots: List[HealthSnapshot] = field(default_factory=list)
    fetch_errors: List[str] = field(default_factory=list)
    wake: WakeReason = WakeReason.ELAPSED
    ended_early: bool = False

    @property
    def interrupted(self) -> bool:
        """True when the deadline or an abort cut the window short."""
        return self.wake == WakeReason.CANCELLED


class HealthMonitor:
    """Polls a MetricsSource and judges windows with a HealthEvaluator."""

    def __init__(
        self,
        metrics: MetricsSource,
        evaluator: HealthEvaluator,
        sample_interval_seconds: float = 10.0,
        retry_attempts: int = 0,
        retry_base_delay_seconds: float = 0.5,
        fail_fast: bool = False,
    ):
        self._metrics = metrics
        self.evaluator = evaluator
        self.sample_interval_seconds = sample_interval_seconds
        self.retry_attempts = max(0, retry_attempts)
        self.retry_base_delay_seconds = retry_base_delay_seconds
        self.fail_fast = fail_fast

    def evaluate(self, observation: Observation) -> Verdict:
        return self.evaluator.evaluate(observation.snapshots, observation.fetch_errors)

    async def observe(
        self,
        env_id: str,
        window_seconds: float,
        deadline: Deadline,
        candidate_weight: Optional[int] = None,
    ) -> Observation:
        """Sample ``env_id`` until the window elapses or the deadline cuts in.

        A closing sample is taken when the window completes, so a full
        window always holds at least one sample attempt.
        """
        observation = Observation()
        breached = asyncio.Event()
        ticker = asyncio.create_task(
            self._tick(env_id, deadline, observation, breached, candidate_weight)
        )
        sleeper = asyncio.create_task(deadline.sleep(window_seconds))
        breach_wait = asyncio.create_task(breached.wait())
        try:
            await asyncio.wait({sleeper, breach_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (ticker, sleeper, breach_wait):
                if not task.done():
                    task.cancel()
            for task in (ticker, breach_wait):
                with contextlib.suppress(asyncio.CancelledError):
                    await task

        if sleeper.done() and not sleeper.cancelled():
            observation.wake = sleeper.result()
        else:
            with contextlib.suppress(asyncio.CancelledError):
                await sleeper
            observation.ended_early = True
            logger.info("Breaching sample on %s; ending window early", env_id)
            return observation

        if observation.wake == WakeReason.ELAPSED:
            await self._collect(env_id, deadline, observation, candidate_weight)
        return observation

    # ── Internal helpers ─────────────────────────────────────────────

    async def _tick(
        self,
        env_id: str,
        deadline: Deadline,
        observation: Observation,
        breached: asyncio.Event,
        candidate_weight: Optional[int],
    ) -> None:
        while True:
            wake = await deadline.sleep(self.sample_interval_seconds)
            if wake == WakeReason.CANCELLED:
                return
            snapshot = await self._collect(env_id, deadline, observation, candidate_weight)
            if self.fail_fast and snapshot is not None:
                if self.evaluator.breaches(snapshot):
                    breached.set()
                    return

    async def _collect(
        self,
        env_id: str,
        deadline: Deadline,
        observation: Observation,
        candidate_weight: Optional[int],
    ) -> Optional[HealthSnapshot]:
        snapshot = await self._fetch(env_id, deadline, observation)
        if snapshot is None:
            return None
        if snapshot.candidate_weight is None or not snapshot.environment:
            snapshot = dataclasses.replace(
                snapshot,
                environment=snapshot.environment or env_id,
                candidate_weight=(
                    snapshot.candidate_weight
                    if snapshot.candidate_weight is not None
                    else candidate_weight
                ),
            )
        observation.snapshots.append(snapshot)
        return snapshot

    async def _fetch(
        self, env_id: str, deadline: Deadline, observation: Observation
    ) -> Optional[HealthSnapshot]:
        """Fetch one sample with bounded exponential backoff."""
        for attempt in range(self.retry_attempts + 1):
            try:
                return await self._metrics.sample(env_id, self.sample_interval_seconds)
            except Exception as exc:
                logger.warning(
                    "Metrics fetch for %s failed (attempt %d/%d): %s",
                    env_id,
                    attempt + 1,
                    self.retry_attempts + 1,
                    exc,
                )
                if attempt >= self.retry_attempts:
                    observation.fetch_errors.append(str(exc) or type(exc).__name__)
                    return None
                delay = self.retry_base_delay_seconds * (2 ** attempt)
                if await deadline.sleep(delay) == WakeReason.CANCELLED:
                    observation.fetch_errors.append(str(exc) or type(exc).__name__)
                    return None
        return None
