"""API Error Handling.

Error codes, HTTP status and severity mappings, and the FastAPI
exception handlers that render orchestrator errors as a structured
JSON envelope.
"""

from src.api_errors.config import (
    ERROR_SEVERITY_MAP,
    ERROR_STATUS_MAP,
    ErrorCode,
    ErrorConfig,
    ErrorSeverity,
)
from src.api_errors.handlers import (
    ErrorResponse,
    create_error_response,
    register_exception_handlers,
)

__all__ = [
    # Config
    "ERROR_SEVERITY_MAP",
    "ERROR_STATUS_MAP",
    "ErrorCode",
    "ErrorConfig",
    "ErrorSeverity",
    # Handlers
    "ErrorResponse",
    "create_error_response",
    "register_exception_handlers",
]
