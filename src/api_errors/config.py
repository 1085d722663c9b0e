"""Error Configuration.

Defines error codes, severity levels, and configuration for
structured error handling across the orchestrator and its API.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict


class ErrorCode(Enum):
    """Standardized error codes for orchestrator errors."""

    # Validation errors (400)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TRAFFIC_SPLIT = "INVALID_TRAFFIC_SPLIT"

    # Not found errors (404)
    DEPLOYMENT_NOT_FOUND = "DEPLOYMENT_NOT_FOUND"

    # Conflict errors (409)
    DEPLOYMENT_CONFLICT = "DEPLOYMENT_CONFLICT"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"

    # Rollout failures (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"
    HEALTH_CHECK_FAILED = "HEALTH_CHECK_FAILED"
    DEPLOYMENT_ABORTED = "DEPLOYMENT_ABORTED"
    ROLLBACK_FAILED = "ROLLBACK_FAILED"
    LOCK_RELEASE_FAILED = "LOCK_RELEASE_FAILED"
    DATABASE_ERROR = "DATABASE_ERROR"

    # Upstream infrastructure (502 / 504)
    PROVISIONING_FAILED = "PROVISIONING_FAILED"
    TRAFFIC_SHIFT_FAILED = "TRAFFIC_SHIFT_FAILED"
    DEPLOYMENT_TIMEOUT = "DEPLOYMENT_TIMEOUT"


class ErrorSeverity(Enum):
    """Severity levels for error logging."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# Map error codes to HTTP status codes
ERROR_STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: 400,
    ErrorCode.INVALID_TRAFFIC_SPLIT: 400,
    ErrorCode.DEPLOYMENT_NOT_FOUND: 404,
    ErrorCode.DEPLOYMENT_CONFLICT: 409,
    ErrorCode.INVALID_STATE_TRANSITION: 409,
    ErrorCode.INTERNAL_ERROR: 500,
    ErrorCode.HEALTH_CHECK_FAILED: 500,
    ErrorCode.DEPLOYMENT_ABORTED: 500,
    ErrorCode.ROLLBACK_FAILED: 500,
    ErrorCode.LOCK_RELEASE_FAILED: 500,
    ErrorCode.DATABASE_ERROR: 500,
    ErrorCode.PROVISIONING_FAILED: 502,
    ErrorCode.TRAFFIC_SHIFT_FAILED: 502,
    ErrorCode.DEPLOYMENT_TIMEOUT: 504,
}

# Map error codes to severity
ERROR_SEVERITY_MAP: Dict[ErrorCode, ErrorSeverity] = {
    ErrorCode.VALIDATION_ERROR: ErrorSeverity.LOW,
    ErrorCode.INVALID_TRAFFIC_SPLIT: ErrorSeverity.MEDIUM,
    ErrorCode.DEPLOYMENT_NOT_FOUND: ErrorSeverity.LOW,
    ErrorCode.DEPLOYMENT_CONFLICT: ErrorSeverity.MEDIUM,
    ErrorCode.INVALID_STATE_TRANSITION: ErrorSeverity.HIGH,
    ErrorCode.INTERNAL_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.HEALTH_CHECK_FAILED: ErrorSeverity.MEDIUM,
    ErrorCode.DEPLOYMENT_ABORTED: ErrorSeverity.MEDIUM,
    ErrorCode.ROLLBACK_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.LOCK_RELEASE_FAILED: ErrorSeverity.CRITICAL,
    ErrorCode.DATABASE_ERROR: ErrorSeverity.CRITICAL,
    ErrorCode.PROVISIONING_FAILED: ErrorSeverity.HIGH,
    ErrorCode.TRAFFIC_SHIFT_FAILED: ErrorSeverity.HIGH,
    ErrorCode.DEPLOYMENT_TIMEOUT: ErrorSeverity.MEDIUM,
}


@dataclass
class ErrorConfig:
    """Configuration for API error handling."""

    log_all_errors: bool = True
    suppress_internal_details: bool = True


DEFAULT_ERROR_CONFIG = ErrorConfig()
