"""PRD-120: Deployment Strategies & Rollback Automation — Models."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from .config import (
    ALLOWED_TRANSITIONS,
    DeploymentConfig,
    DeploymentState,
    VerdictStatus,
)
from .errors import InvalidSplitError, InvalidTransitionError


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TrafficSplit:
    """Describes how traffic is split between stable and candidate."""

    stable_weight: int = 100
    candidate_weight: int = 0

    def __post_init__(self):
        for name in ("stable_weight", "candidate_weight"):
            value = getattr(self, name)
            if not 0 <= value <= 100:
                raise InvalidSplitError(f"{name}={value} is outside [0, 100]")
        if self.stable_weight + self.candidate_weight != 100:
            raise InvalidSplitError(
                f"Weights {self.stable_weight}/{self.candidate_weight} do not sum to 100"
            )

    @classmethod
    def all_stable(cls) -> "TrafficSplit":
        return cls(100, 0)

    @classmethod
    def all_candidate(cls) -> "TrafficSplit":
        return cls(0, 100)

    def as_tuple(self) -> Tuple[int, int]:
        return (self.stable_weight, self.candidate_weight)

    def __str__(self) -> str:
        return f"{self.stable_weight}/{self.candidate_weight}"


@dataclass(frozen=True)
class HealthSnapshot:
    """One metrics sample for an environment at a given traffic weight."""

    error_rate: float
    latency_p99_ms: float
    saturation: float
    traffic_volume: float
    environment: str = ""
    candidate_weight: Optional[int] = None
    sampled_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_rate": self.error_rate,
            "latency_p99_ms": self.latency_p99_ms,
            "saturation": self.saturation,
            "traffic_volume": self.traffic_volume,
            "environment": self.environment,
            "candidate_weight": self.candidate_weight,
            "sampled_at": self.sampled_at.isoformat(),
        }


@dataclass(frozen=True)
class Verdict:
    """Pass/fail judgment of a window of snapshots."""

    status: VerdictStatus
    reasons: Tuple[str, ...] = ()
    observed: Tuple[Tuple[str, float], ...] = ()

    @property
    def healthy(self) -> bool:
        return self.status == VerdictStatus.HEALTHY

    def summary(self) -> str:
        if self.healthy:
            return "healthy"
        return "; ".join(self.reasons) or "unhealthy"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "reasons": list(self.reasons),
            "observed": dict(self.observed),
        }


@dataclass
class StepResult:
    """Outcome of one traffic step (plateau) of a rollout."""

    step_index: int
    candidate_weight: int
    snapshots: List[HealthSnapshot] = field(default_factory=list)
    verdict: Optional[Verdict] = None
    started_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_index": self.step_index,
            "candidate_weight": self.candidate_weight,
            "samples": len(self.snapshots),
            "verdict": self.verdict.to_dict() if self.verdict else None,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass(frozen=True)
class TransitionRecord:
    """Append-only log entry for one state transition."""

    deployment_id: str
    sequence: int
    from_state: Optional[DeploymentState]
    to_state: DeploymentState
    split: TrafficSplit
    reason: str = ""
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "sequence": self.sequence,
            "timestamp": self.timestamp.isoformat(),
            "from_state": self.from_state.value if self.from_state else None,
            "to_state": self.to_state.value,
            "stable_weight": self.split.stable_weight,
            "candidate_weight": self.split.candidate_weight,
            "reason": self.reason,
        }


@dataclass
class Deployment:
    """One rollout attempt, owned by the orchestrator for its lifetime."""

    config: DeploymentConfig
    deployment_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    state: DeploymentState = DeploymentState.PENDING
    stable_environment: Optional[str] = None
    candidate_environment: Optional[str] = None
    traffic_split: TrafficSplit = field(default_factory=TrafficSplit.all_stable)
    health_history: List[HealthSnapshot] = field(default_factory=list)
    step_results: List[StepResult] = field(default_factory=list)
    reasons: List[str] = field(default_factory=list)
    requires_operator: bool = False
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)
    completed_at: Optional[datetime] = None

    @property
    def target(self) -> str:
        return self.config.target

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def result(self) -> Optional[str]:
        """promoted / rolled-back / failed once terminal."""
        if not self.is_terminal:
            return None
        return self.state.value.replace("_", "-")

    def check_transition(self, to_state: DeploymentState) -> None:
        if to_state not in ALLOWED_TRANSITIONS[self.state]:
            raise InvalidTransitionError(self.state, to_state)

    def apply_transition(self, record: TransitionRecord) -> None:
        """Move to the recorded state; the record must already be persisted."""
        self.check_transition(record.to_state)
        self.state = record.to_state
        self.updated_at = record.timestamp
        if self.state.is_terminal:
            self.completed_at = record.timestamp

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "target": self.target,
            "strategy": self.config.strategy,
            "artifact": self.config.artifact,
            "state": self.state.value,
            "result": self.result,
            "stable_environment": self.stable_environment,
            "candidate_environment": self.candidate_environment,
            "traffic_split": {
                "stable_weight": self.traffic_split.stable_weight,
                "candidate_weight": self.traffic_split.candidate_weight,
            },
            "steps": [s.to_dict() for s in self.step_results],
            "reasons": list(self.reasons),
            "requires_operator": self.requires_operator,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }
