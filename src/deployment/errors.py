"""PRD-120: Deployment Strategies & Rollback Automation — Errors.

Typed exceptions for every way a rollout can be refused or fail. Each
carries an ErrorCode (mapped to an HTTP status by the API layer) and a
short ``reason`` slug that is recorded in the deployment's reason chain.
"""

from typing import Any, Dict, List, Optional

from src.api_errors.config import ERROR_STATUS_MAP, ErrorCode


class DeploymentError(Exception):
    """Base exception for all orchestrator errors."""

    reason = "internal-error"

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.status_code = ERROR_STATUS_MAP.get(error_code, 500)
        self.details = details or []

    def describe(self) -> str:
        """Reason slug plus message, as recorded in deployment history."""
        return f"{self.reason}: {self.message}"


# ── Refused before any side effect ──────────────────────────────────


class ValidationError(DeploymentError):
    """Raised when a deployment config is rejected."""

    reason = "validation-failed"

    def __init__(
        self,
        message: str = "Validation failed",
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[List[Dict[str, Any]]] = None,
        field: Optional[str] = None,
    ):
        if field and not details:
            details = [{"field": field, "issue": message}]
        super().__init__(message, error_code, details)


class InvalidSplitError(ValidationError):
    """Raised for a traffic split that breaks the 100-sum or range rules."""

    reason = "invalid-split"

    def __init__(self, message: str = "Invalid traffic split"):
        super().__init__(message, ErrorCode.INVALID_TRAFFIC_SPLIT)


class ConflictError(DeploymentError):
    """Raised when the target already has an active deployment."""

    reason = "conflict"

    def __init__(
        self,
        message: str = "Deployment conflict",
        error_code: ErrorCode = ErrorCode.DEPLOYMENT_CONFLICT,
        active_deployment_id: Optional[str] = None,
    ):
        details = []
        if active_deployment_id:
            details = [{"active_deployment_id": active_deployment_id}]
        super().__init__(message, error_code, details)
        self.active_deployment_id = active_deployment_id


class NotFoundError(DeploymentError):
    """Raised when a deployment id is unknown."""

    reason = "not-found"

    def __init__(self, deployment_id: str):
        super().__init__(
            f"Deployment {deployment_id} not found",
            ErrorCode.DEPLOYMENT_NOT_FOUND,
            [{"resource_type": "deployment", "resource_id": deployment_id}],
        )
        self.deployment_id = deployment_id


class InvalidTransitionError(DeploymentError):
    """Raised on a state change the deployment state machine forbids."""

    reason = "invalid-transition"

    def __init__(self, from_state: Any, to_state: Any):
        super().__init__(
            f"Illegal transition {from_state.value} -> {to_state.value}",
            ErrorCode.INVALID_STATE_TRANSITION,
        )


# ── Rollout failures ────────────────────────────────────────────────


class ProvisioningError(DeploymentError):
    """Infrastructure provider failed to create the candidate."""

    reason = "provisioning-failed"

    def __init__(self, message: str = "Provisioning failed"):
        super().__init__(message, ErrorCode.PROVISIONING_FAILED)


class TrafficShiftError(DeploymentError):
    """Traffic router refused or failed a weight change."""

    reason = "traffic-shift-failed"

    def __init__(self, message: str = "Traffic shift failed"):
        super().__init__(message, ErrorCode.TRAFFIC_SHIFT_FAILED)


class HealthCheckFailure(DeploymentError):
    """Candidate breached its health thresholds during a step."""

    reason = "health-check-failed"

    def __init__(self, message: str, verdict: Any = None):
        super().__init__(message, ErrorCode.HEALTH_CHECK_FAILED)
        self.verdict = verdict


class DeploymentTimeoutError(DeploymentError, TimeoutError):
    """Overall deadline elapsed before the rollout finished."""

    reason = "timeout"

    def __init__(self, message: str = "Deployment deadline exceeded"):
        super().__init__(message, ErrorCode.DEPLOYMENT_TIMEOUT)


class DeploymentAbortedError(DeploymentError):
    """Operator force-aborted the deployment."""

    reason = "aborted"

    def __init__(self, message: str = "Deployment aborted"):
        super().__init__(message, ErrorCode.DEPLOYMENT_ABORTED)


class RollbackError(DeploymentError):
    """Reverting traffic to stable failed; traffic split is undefined."""

    reason = "rollback-failed"

    def __init__(self, message: str = "Rollback failed"):
        super().__init__(message, ErrorCode.ROLLBACK_FAILED)


class LockReleaseError(DeploymentError):
    """Per-target lock could not be released; target is blocked."""

    reason = "lock-release-failed"

    def __init__(self, target: str, message: Optional[str] = None):
        super().__init__(
            message or f"Could not release deployment lock for {target}",
            ErrorCode.LOCK_RELEASE_FAILED,
        )
        self.target = target


class InterruptedDeploymentError(DeploymentError):
    """Deployment found unfinished in the store after a restart."""

    reason = "recovered-after-interruption"

    def __init__(self, message: str = "Orchestrator stopped while the deployment was running"):
        super().__init__(message, ErrorCode.INTERNAL_ERROR)
