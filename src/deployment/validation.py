"""PRD-120: Deployment Strategies & Rollback Automation — Validation.

Rejects bad rollout requests before any side effect happens.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from .config import DeploymentConfig, DeploymentStrategy
from .errors import ValidationError

logger = logging.getLogger(__name__)


def _issue(field: str, issue: str) -> Dict[str, Any]:
    return {"field": field, "issue": issue}


class ConfigValidator:
    """Checks a DeploymentConfig against the rollout rules.

    ``known_strategies`` widens the accepted strategy names beyond the
    built-in kinds, for executors added through the strategy registry.
    """

    def __init__(self, known_strategies: Optional[Iterable[str]] = None):
        self._known = set(known_strategies or ()) | {s.value for s in DeploymentStrategy}

    def check(
        self,
        config: DeploymentConfig,
        stable_environment: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Return a list of field issues; empty means valid.

        Args:
            config: The rollout request.
            stable_environment: Environment currently serving the target,
                as resolved by the orchestrator.
        """
        issues: List[Dict[str, Any]] = []

        if not config.target:
            issues.append(_issue("target", "target service is required"))
        if not config.artifact:
            issues.append(_issue("artifact", "artifact reference is required"))

        kind = config.strategy_kind
        if config.strategy not in self._known:
            known = ", ".join(sorted(self._known))
            issues.append(
                _issue("strategy", f"unknown strategy '{config.strategy}' (expected one of: {known})")
            )

        issues.extend(self._check_steps(config, kind))
        issues.extend(self._check_thresholds(config))

        if config.observation_window_seconds <= 0:
            issues.append(_issue("observation_window_seconds", "must be positive"))
        if config.timeout_seconds <= 0:
            issues.append(_issue("timeout_seconds", "must be positive"))
        if config.sample_interval_seconds is not None and config.sample_interval_seconds <= 0:
            issues.append(_issue("sample_interval_seconds", "must be positive"))

        if not stable_environment:
            issues.append(
                _issue("stable_environment", f"no stable environment known for target '{config.target}'")
            )

        return issues

    def ensure_valid(
        self,
        config: DeploymentConfig,
        stable_environment: Optional[str] = None,
    ) -> None:
        """Raise ValidationError listing every issue found."""
        issues = self.check(config, stable_environment)
        if issues:
            message = "; ".join(f"{i['field']}: {i['issue']}" for i in issues)
            logger.info("Rejected deployment config for %s: %s", config.target, message)
            raise ValidationError(f"Invalid deployment config: {message}", details=issues)

    # ── Internal helpers ─────────────────────────────────────────────

    def _check_steps(
        self, config: DeploymentConfig, kind: Optional[DeploymentStrategy]
    ) -> List[Dict[str, Any]]:
        steps = config.traffic_steps
        if not steps:
            return [_issue("traffic_steps", "at least one traffic step is required")]

        issues = []
        if any(not isinstance(s, int) or isinstance(s, bool) for s in steps):
            return [_issue("traffic_steps", "steps must be whole percentages")]
        if any(s <= 0 or s > 100 for s in steps):
            issues.append(_issue("traffic_steps", "steps must be within (0, 100]"))
        if any(b <= a for a, b in zip(steps, steps[1:])):
            issues.append(_issue("traffic_steps", "steps must be strictly increasing"))
        if steps[-1] != 100:
            issues.append(_issue("traffic_steps", "final step must be 100"))
        if kind == DeploymentStrategy.BLUE_GREEN and tuple(steps) != (100,):
            issues.append(_issue("traffic_steps", "blue-green uses a single cutover step [100]"))
        return issues

    def _check_thresholds(self, config: DeploymentConfig) -> List[Dict[str, Any]]:
        thresholds = config.thresholds
        if thresholds is None or not thresholds.configured:
            return [_issue("thresholds", "at least one health threshold is required")]

        issues = []
        if thresholds.max_error_rate is not None and not 0 <= thresholds.max_error_rate <= 1:
            issues.append(_issue("thresholds.max_error_rate", "must be within [0, 1]"))
        if thresholds.max_latency_p99_ms is not None and thresholds.max_latency_p99_ms <= 0:
            issues.append(_issue("thresholds.max_latency_p99_ms", "must be positive"))
        if (
            thresholds.min_saturation_headroom is not None
            and not 0 <= thresholds.min_saturation_headroom <= 1
        ):
            issues.append(_issue("thresholds.min_saturation_headroom", "must be within [0, 1]"))
        if thresholds.min_traffic_volume < 0:
            issues.append(_issue("thresholds.min_traffic_volume", "must not be negative"))
        return issues
