"""Logging Setup.

Routes every orchestrator logger through one root handler, either as JSON
lines for log shippers or as a colored console view for operators
watching a rollout. Both renderings carry the bound deployment context
and the transition fields the journal and strategies attach via ``extra=``.
"""

import dataclasses
import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional, TextIO

from src.logging_config.config import DEFAULT_LOGGING_CONFIG, LogFormat, LoggingConfig, LogLevel
from src.logging_config.context import get_context_dict

# Attributes callers attach with ``extra=``, in rendering order
TRANSITION_FIELDS = ("from_state", "to_state", "split", "reason", "verdict", "duration_ms")

NOISY_LOGGERS = ("asyncio", "httpx", "sqlalchemy.engine", "uvicorn.access")


def transition_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Transition fields present on ``record``."""
    return {key: getattr(record, key) for key in TRANSITION_FIELDS if hasattr(record, key)}


def _created(record: logging.LogRecord) -> datetime:
    return datetime.fromtimestamp(record.created, tz=timezone.utc)


class StructuredFormatter(logging.Formatter):
    """One JSON object per record.

    Keys: timestamp, level, logger, message, service, optional caller
    location, the deployment context, then any transition fields.
    """

    def __init__(self, service_name: str = "rollout", include_caller: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_caller = include_caller

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": _created(record).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
        }
        if self.include_caller:
            entry.update(module=record.module, function=record.funcName, line=record.lineno)
        entry.update(get_context_dict())
        entry.update(transition_fields(record))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc),
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Single-line terminal view.

    ``12:00:01.250 WARNING  src.deployment.rollback: Rolling back ...
    [deployment_id=..., target=checkout] reason="..." split=100/0``
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"

    def __init__(self, use_color: bool = True):
        super().__init__()
        self.use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        level = f"{record.levelname:8s}"
        if self.use_color:
            level = f"{self.COLORS.get(record.levelname, '')}{level}{self.RESET}"
        line = (
            f"{_created(record):%H:%M:%S}.{int(record.msecs):03d} {level} "
            f"{record.name}: {record.getMessage()}"
        )

        ctx = get_context_dict()
        if ctx:
            line += " [" + ", ".join(f"{k}={v}" for k, v in ctx.items()) + "]"

        fields = transition_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={self._value(v)}" for k, v in fields.items())

        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line

    @staticmethod
    def _value(value: Any) -> str:
        text = "-" if value is None else str(value)
        return json.dumps(text) if " " in text else text


def _with_env_overrides(config: LoggingConfig) -> LoggingConfig:
    level = os.environ.get("ROLLOUT_LOG_LEVEL", "").upper()
    fmt = os.environ.get("ROLLOUT_LOG_FORMAT", "").lower()
    changes: Dict[str, Any] = {}
    if level in LogLevel.__members__:
        changes["level"] = LogLevel(level)
    if fmt in {f.value for f in LogFormat}:
        changes["format"] = LogFormat(fmt)
    return dataclasses.replace(config, **changes) if changes else config


def configure_logging(
    config: Optional[LoggingConfig] = None, stream: Optional[TextIO] = None
) -> None:
    """Install the orchestrator's handler on the root logger.

    ROLLOUT_LOG_LEVEL and ROLLOUT_LOG_FORMAT override ``config``. Output
    goes to ``stream`` (stdout by default); console colors are used only
    when it is a terminal.
    """
    config = _with_env_overrides(config or DEFAULT_LOGGING_CONFIG)
    stream = stream or sys.stdout

    if config.format == LogFormat.JSON:
        formatter: logging.Formatter = StructuredFormatter(
            service_name=config.service_name,
            include_caller=config.include_caller,
        )
    else:
        formatter = ConsoleFormatter(use_color=stream.isatty())

    handler = logging.StreamHandler(stream)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(config.level.value)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)
