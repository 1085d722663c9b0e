"""Exception Handlers & Error Response Builder.

Provides FastAPI exception handlers and a standardized error
response builder for consistent API error formatting.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from src.api_errors.config import (
    DEFAULT_ERROR_CONFIG,
    ERROR_SEVERITY_MAP,
    ERROR_STATUS_MAP,
    ErrorCode,
    ErrorConfig,
    ErrorSeverity,
)
from src.logging_config.context import get_deployment_id

logger = logging.getLogger(__name__)


@dataclass
class ErrorResponse:
    """Structured error response envelope."""

    code: str
    message: str
    status_code: int = 500
    details: List[Dict[str, Any]] = field(default_factory=list)
    deployment_id: Optional[str] = None
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.message,
                "timestamp": self.timestamp,
            }
        }
        if self.details:
            body["error"]["details"] = self.details
        if self.deployment_id:
            body["error"]["deployment_id"] = self.deployment_id
        return body


def create_error_response(
    error_code: ErrorCode,
    message: str,
    details: Optional[List[Dict[str, Any]]] = None,
    status_code: Optional[int] = None,
) -> ErrorResponse:
    """Build a standardized ErrorResponse from components."""
    return ErrorResponse(
        code=error_code.value,
        message=message,
        status_code=status_code or ERROR_STATUS_MAP.get(error_code, 500),
        details=details or [],
        deployment_id=get_deployment_id() or None,
    )


def _log_error(
    error_code: ErrorCode,
    message: str,
    status_code: int,
    config: ErrorConfig,
) -> None:
    """Log the error at appropriate severity level."""
    if not config.log_all_errors:
        return

    severity = ERROR_SEVERITY_MAP.get(error_code, ErrorSeverity.MEDIUM)
    log_msg = "API Error [%s] (%d): %s"

    if severity == ErrorSeverity.CRITICAL:
        logger.critical(log_msg, error_code.value, status_code, message)
    elif severity == ErrorSeverity.HIGH:
        logger.error(log_msg, error_code.value, status_code, message)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning(log_msg, error_code.value, status_code, message)
    else:
        logger.info(log_msg, error_code.value, status_code, message)


def handle_deployment_error(exc: Any, config: Optional[ErrorConfig] = None) -> ErrorResponse:
    """Turn a DeploymentError into an ErrorResponse."""
    config = config or DEFAULT_ERROR_CONFIG
    _log_error(exc.error_code, exc.message, exc.status_code, config)
    return create_error_response(
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        status_code=exc.status_code,
    )


def handle_request_validation_error(
    errors: List[Dict[str, Any]], config: Optional[ErrorConfig] = None
) -> ErrorResponse:
    """Map request-body schema errors onto VALIDATION_ERROR."""
    config = config or DEFAULT_ERROR_CONFIG
    details = [
        {
            "field": ".".join(str(p) for p in err.get("loc", ()) if p != "body"),
            "issue": err.get("msg", "invalid value"),
        }
        for err in errors
    ]
    message = "Request body failed validation"
    _log_error(ErrorCode.VALIDATION_ERROR, message, 400, config)
    return create_error_response(ErrorCode.VALIDATION_ERROR, message, details=details)


def handle_unhandled_error(exc: Exception, config: Optional[ErrorConfig] = None) -> ErrorResponse:
    """Handle any unhandled exception with a safe 500 response."""
    config = config or DEFAULT_ERROR_CONFIG

    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    message = "An internal error occurred"
    if not config.suppress_internal_details:
        message = f"{type(exc).__name__}: {str(exc)}"

    return create_error_response(
        error_code=ErrorCode.INTERNAL_ERROR,
        message=message,
    )


def register_exception_handlers(app: Any, config: Optional[ErrorConfig] = None) -> None:
    """Register all exception handlers on a FastAPI application.

    Args:
        app: FastAPI application instance.
        config: Error handling configuration.
    """
    from fastapi.exceptions import RequestValidationError
    from fastapi.responses import JSONResponse

    from src.deployment.errors import DeploymentError

    config = config or DEFAULT_ERROR_CONFIG
    app.state.error_config = config

    def _respond(response: ErrorResponse) -> JSONResponse:
        return JSONResponse(status_code=response.status_code, content=response.to_dict())

    @app.exception_handler(DeploymentError)
    async def _deployment_error(request, exc: DeploymentError):
        return _respond(handle_deployment_error(exc, config))

    @app.exception_handler(RequestValidationError)
    async def _request_validation_error(request, exc: RequestValidationError):
        return _respond(handle_request_validation_error(exc.errors(), config))

    @app.exception_handler(Exception)
    async def _unhandled_error(request, exc: Exception):
        return _respond(handle_unhandled_error(exc, config))

    logger.info("Registered rollout API exception handlers")
