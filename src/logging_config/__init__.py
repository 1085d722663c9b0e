"""Structured Logging & Deployment Context.

Provides structured JSON logging and deployment ID propagation
for the rollout orchestrator.
"""

from src.logging_config.config import LogFormat, LoggingConfig, LogLevel, logging_config_for
from src.logging_config.context import DeploymentContext, get_context_dict
from src.logging_config.setup import ConsoleFormatter, StructuredFormatter, configure_logging

__all__ = [
    "LogFormat",
    "LogLevel",
    "LoggingConfig",
    "logging_config_for",
    "DeploymentContext",
    "configure_logging",
    "get_context_dict",
    "ConsoleFormatter",
    "StructuredFormatter",
]
