"""PRD-120: Deployment Strategies & Rollback Automation — Configuration."""

import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


def _value(data: Dict[str, Any], key: str, default: Any) -> Any:
    value = data.get(key)
    return default if value is None else value


class DeploymentStrategy(enum.Enum):
    """Deployment strategy types."""

    BLUE_GREEN = "blue-green"
    CANARY = "canary"


class DeploymentState(enum.Enum):
    """Lifecycle state of a deployment."""

    PENDING = "pending"
    PROVISIONING = "provisioning"
    ADVANCING = "advancing"
    PROMOTED = "promoted"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATES


TERMINAL_STATES = frozenset(
    {DeploymentState.PROMOTED, DeploymentState.ROLLED_BACK, DeploymentState.FAILED}
)

# ADVANCING re-enters itself once per traffic step. PENDING may only fail
# directly when recovery finds a deployment that never began provisioning.
ALLOWED_TRANSITIONS: Dict[DeploymentState, frozenset] = {
    DeploymentState.PENDING: frozenset(
        {DeploymentState.PROVISIONING, DeploymentState.FAILED}
    ),
    DeploymentState.PROVISIONING: frozenset(
        {DeploymentState.ADVANCING, DeploymentState.FAILED}
    ),
    DeploymentState.ADVANCING: frozenset(
        {
            DeploymentState.ADVANCING,
            DeploymentState.PROMOTED,
            DeploymentState.ROLLED_BACK,
            DeploymentState.FAILED,
        }
    ),
    DeploymentState.PROMOTED: frozenset(),
    DeploymentState.ROLLED_BACK: frozenset(),
    DeploymentState.FAILED: frozenset(),
}


class VerdictStatus(enum.Enum):
    """Outcome of a health evaluation."""

    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class HealthThresholds:
    """Per-metric limits a candidate must stay within.

    Unset (None) thresholds are not checked; at least one must be set.
    Latency is in milliseconds, error rate and saturation are fractions.
    """

    max_error_rate: Optional[float] = None
    max_latency_p99_ms: Optional[float] = None
    min_saturation_headroom: Optional[float] = None
    min_traffic_volume: float = 1.0

    @property
    def configured(self) -> Tuple[str, ...]:
        names = ("max_error_rate", "max_latency_p99_ms", "min_saturation_headroom")
        return tuple(n for n in names if getattr(self, n) is not None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "HealthThresholds":
        return cls(
            max_error_rate=data.get("max_error_rate"),
            max_latency_p99_ms=data.get("max_latency_p99_ms"),
            min_saturation_headroom=data.get("min_saturation_headroom"),
            min_traffic_volume=_value(data, "min_traffic_volume", 1.0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_error_rate": self.max_error_rate,
            "max_latency_p99_ms": self.max_latency_p99_ms,
            "min_saturation_headroom": self.min_saturation_headroom,
            "min_traffic_volume": self.min_traffic_volume,
        }


@dataclass(frozen=True)
class DeploymentConfig:
    """Immutable description of one rollout request.

    ``strategy`` is kept as the raw string the caller supplied so that an
    unknown kind can be rejected by validation rather than at construction.
    Blue-green rollouts default to the single cutover step ``(100,)``.
    """

    target: str
    strategy: str
    artifact: str
    thresholds: Optional[HealthThresholds] = None
    traffic_steps: Tuple[int, ...] = ()
    observation_window_seconds: float = 60.0
    timeout_seconds: float = 1800.0
    sample_interval_seconds: Optional[float] = None
    stable_environment: Optional[str] = None
    requested_by: str = "system"
    metadata: Dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "traffic_steps", tuple(self.traffic_steps))
        if not self.traffic_steps and self.strategy == DeploymentStrategy.BLUE_GREEN.value:
            object.__setattr__(self, "traffic_steps", (100,))

    @property
    def strategy_kind(self) -> Optional[DeploymentStrategy]:
        try:
            return DeploymentStrategy(self.strategy)
        except ValueError:
            return None

    @classmethod
    def from_dict(
        cls, data: Dict[str, Any], defaults: Optional[Dict[str, Any]] = None
    ) -> "DeploymentConfig":
        """Build a config from a JSON-style dict (CLI file or REST body).

        ``defaults`` fill in keys that are missing or null in ``data``.
        """
        if defaults:
            data = {**defaults, **{k: v for k, v in data.items() if v is not None}}
        thresholds = data.get("thresholds")
        strategy = data.get("strategy", "")
        if isinstance(strategy, DeploymentStrategy):
            strategy = strategy.value
        return cls(
            target=data.get("target", ""),
            strategy=strategy,
            artifact=data.get("artifact", ""),
            thresholds=HealthThresholds.from_dict(thresholds) if thresholds else None,
            traffic_steps=tuple(data.get("traffic_steps") or ()),
            observation_window_seconds=_value(data, "observation_window_seconds", 60.0),
            timeout_seconds=_value(data, "timeout_seconds", 1800.0),
            sample_interval_seconds=data.get("sample_interval_seconds"),
            stable_environment=data.get("stable_environment"),
            requested_by=_value(data, "requested_by", "system"),
            metadata=dict(data.get("metadata") or {}),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "strategy": self.strategy,
            "artifact": self.artifact,
            "thresholds": self.thresholds.to_dict() if self.thresholds else None,
            "traffic_steps": list(self.traffic_steps),
            "observation_window_seconds": self.observation_window_seconds,
            "timeout_seconds": self.timeout_seconds,
            "sample_interval_seconds": self.sample_interval_seconds,
            "stable_environment": self.stable_environment,
            "requested_by": self.requested_by,
            "metadata": dict(self.metadata),
        }


@dataclass
class OrchestratorConfig:
    """Process-wide orchestrator behaviour with sensible defaults."""

    default_sample_interval_seconds: float = 10.0
    notification_queue_size: int = 256
    metrics_retry_attempts: int = 0
    metrics_retry_base_delay_seconds: float = 0.5
    fail_fast: bool = False
    destroy_candidate_on_rollback: bool = True
    finished_retention: int = 100

    def __post_init__(self) -> None:
        if self.default_sample_interval_seconds <= 0:
            raise ValueError("default_sample_interval_seconds must be positive")
        if self.metrics_retry_base_delay_seconds < 0:
            raise ValueError("metrics_retry_base_delay_seconds must not be negative")
        if self.finished_retention < 0:
            raise ValueError("finished_retention must not be negative")

    @classmethod
    def from_settings(cls, settings: Any) -> "OrchestratorConfig":
        return cls(
            default_sample_interval_seconds=settings.default_sample_interval_seconds,
            notification_queue_size=settings.notification_queue_size,
            metrics_retry_attempts=settings.metrics_retry_attempts,
            metrics_retry_base_delay_seconds=settings.metrics_retry_base_delay_seconds,
            fail_fast=settings.fail_fast,
            destroy_candidate_on_rollback=settings.destroy_candidate_on_rollback,
            finished_retention=settings.finished_retention,
        )
