"""PRD-120: Deployment Strategies & Rollback Automation — Health Evaluation."""

from typing import List, Sequence, Tuple

from .config import HealthThresholds, VerdictStatus
from .models import HealthSnapshot, Verdict

INSUFFICIENT_DATA = "insufficient-data"


class HealthEvaluator:
    """Turns a window of metric samples into a pass/fail verdict.

    Pure function of its inputs: the same snapshots and fetch errors always
    produce the same verdict. Every configured threshold must hold for every
    sample, so a single breaching sample fails the window.
    """

    def __init__(self, thresholds: HealthThresholds):
        self._thresholds = thresholds

    @property
    def thresholds(self) -> HealthThresholds:
        return self._thresholds

    def evaluate(
        self,
        snapshots: Sequence[HealthSnapshot],
        fetch_errors: Sequence[str] = (),
    ) -> Verdict:
        """Evaluate one observation window.

        Args:
            snapshots: Samples gathered for the candidate during the window.
            fetch_errors: Messages for metrics fetches that failed in the
                window. Any failure makes the window insufficient data.

        Returns:
            Verdict with the failing reasons and the aggregated values.
        """
        if fetch_errors:
            return Verdict(
                VerdictStatus.UNHEALTHY,
                (INSUFFICIENT_DATA, f"metrics-unavailable: {fetch_errors[-1]}"),
            )

        total_volume = sum(s.traffic_volume for s in snapshots)
        if not snapshots or total_volume <= 0:
            return Verdict(VerdictStatus.UNHEALTHY, (INSUFFICIENT_DATA,))

        t = self._thresholds
        observed = self._aggregate(snapshots, total_volume)
        reasons: List[str] = []

        if total_volume < t.min_traffic_volume:
            reasons.append(
                f"{INSUFFICIENT_DATA}: traffic volume {total_volume:g} "
                f"below minimum {t.min_traffic_volume:g}"
            )
        reasons.extend(
            self._threshold_breaches(
                max(s.error_rate for s in snapshots),
                observed[1][1],
                observed[2][1],
            )
        )

        if reasons:
            return Verdict(VerdictStatus.UNHEALTHY, tuple(reasons), observed)
        return Verdict(VerdictStatus.HEALTHY, (), observed)

    def breaches(self, snapshot: HealthSnapshot) -> Tuple[str, ...]:
        """Thresholds a single sample breaks on its own.

        Volume minimums apply to a whole window and are not checked here.
        """
        return tuple(
            self._threshold_breaches(
                snapshot.error_rate, snapshot.latency_p99_ms, snapshot.saturation
            )
        )

    def _threshold_breaches(
        self, error_rate: float, latency_p99_ms: float, saturation: float
    ) -> List[str]:
        t = self._thresholds
        reasons: List[str] = []
        if t.max_error_rate is not None and error_rate > t.max_error_rate:
            reasons.append(
                f"error_rate {error_rate:.4f} exceeds threshold {t.max_error_rate:.4f}"
            )
        if t.max_latency_p99_ms is not None and latency_p99_ms > t.max_latency_p99_ms:
            reasons.append(
                f"latency_p99 {latency_p99_ms:.0f}ms exceeds threshold "
                f"{t.max_latency_p99_ms:.0f}ms"
            )
        if t.min_saturation_headroom is not None:
            headroom = 1.0 - saturation
            if headroom < t.min_saturation_headroom:
                reasons.append(
                    f"saturation headroom {headroom:.2%} below minimum "
                    f"{t.min_saturation_headroom:.2%}"
                )
        return reasons

    @staticmethod
    def _aggregate(
        snapshots: Sequence[HealthSnapshot], total_volume: float
    ) -> Tuple[Tuple[str, float], ...]:
        failed = sum(s.error_rate * s.traffic_volume for s in snapshots)
        return (
            ("error_rate", failed / total_volume),
            ("latency_p99_ms", max(s.latency_p99_ms for s in snapshots)),
            ("saturation", max(s.saturation for s in snapshots)),
            ("traffic_volume", total_volume),
            ("samples", float(len(snapshots))),
        )
