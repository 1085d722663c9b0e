"""Logging Configuration.

Settings for structured logging, log levels, and output formats.
"""

from dataclasses import dataclass
from enum import Enum


class LogLevel(str, Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output format."""
    JSON = "json"
    CONSOLE = "console"


@dataclass
class LoggingConfig:
    """Structured logging configuration."""

    level: LogLevel = LogLevel.INFO
    format: LogFormat = LogFormat.JSON
    include_caller: bool = True
    service_name: str = "rollout"


DEFAULT_LOGGING_CONFIG = LoggingConfig()


def logging_config_for(level: str, fmt: str, service_name: str = "rollout") -> LoggingConfig:
    """Build a LoggingConfig from loose settings strings, falling back to defaults."""
    level = (level or "").upper()
    return LoggingConfig(
        level=LogLevel(level) if level in LogLevel.__members__ else LogLevel.INFO,
        format=LogFormat.JSON if (fmt or "").lower() == LogFormat.JSON.value else LogFormat.CONSOLE,
        service_name=service_name,
    )
