"""API request and response models."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


# ─── Common ──────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "1.0.0"
    components: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class TrafficSplitModel(BaseModel):
    stable_weight: int
    candidate_weight: int


# ─── Requests ────────────────────────────────────────────────────────────


class ThresholdsModel(BaseModel):
    """Health thresholds; unset ones are not checked."""

    max_error_rate: Optional[float] = None
    max_latency_p99_ms: Optional[float] = None
    min_saturation_headroom: Optional[float] = None
    min_traffic_volume: Optional[float] = None


class DeploymentRequest(BaseModel):
    """Start a rollout.

    Range and ordering rules are checked by the orchestrator, so a
    structurally valid body can still be rejected with 400.
    """

    target: str
    strategy: str
    artifact: str
    traffic_steps: Optional[list[int]] = None
    thresholds: Optional[ThresholdsModel] = None
    observation_window_seconds: Optional[float] = None
    timeout_seconds: Optional[float] = None
    sample_interval_seconds: Optional[float] = None
    stable_environment: Optional[str] = None
    requested_by: str = "api"
    metadata: dict[str, Any] = Field(default_factory=dict)


class AbortRequest(BaseModel):
    reason: str = "aborted by operator"


# ─── Responses ───────────────────────────────────────────────────────────


class DeploymentAccepted(BaseModel):
    deployment_id: str
    state: str
    target: str


class StepResponse(BaseModel):
    step_index: int
    candidate_weight: int
    samples: int
    verdict: Optional[dict[str, Any]] = None
    started_at: datetime
    completed_at: Optional[datetime] = None


class DeploymentResponse(BaseModel):
    """Current view of one deployment."""

    deployment_id: str
    target: str
    strategy: str
    artifact: str
    state: str
    result: Optional[str] = None
    stable_environment: Optional[str] = None
    candidate_environment: Optional[str] = None
    traffic_split: TrafficSplitModel
    steps: list[StepResponse] = Field(default_factory=list)
    reasons: list[str] = Field(default_factory=list)
    requires_operator: bool = False
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime] = None


class DeploymentSummaryResponse(BaseModel):
    deployment_id: str
    target: str
    strategy: str
    artifact: str
    state: str
    stable_environment: Optional[str] = None
    candidate_environment: Optional[str] = None
    traffic_split: TrafficSplitModel
    reasons: list[str] = Field(default_factory=list)
    requires_operator: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class TransitionResponse(BaseModel):
    """One entry of the append-only transition log."""

    deployment_id: str
    sequence: int
    timestamp: datetime
    from_state: Optional[str] = None
    to_state: str
    stable_weight: int
    candidate_weight: int
    reason: str = ""
