"""Deployment Context Management.

Task-local deployment context using contextvars for binding
deployment IDs and target services to log entries. asyncio tasks
copy the context on creation, so every log line emitted while a
deployment runs carries its identifiers.
"""

from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


_deployment_id_var: ContextVar[str] = ContextVar("deployment_id", default="")
_target_var: ContextVar[str] = ContextVar("target", default="")
_extra_context_var: ContextVar[dict] = ContextVar("extra_context", default={})


def get_deployment_id() -> str:
    """Get the current deployment ID from context."""
    return _deployment_id_var.get()


def get_target() -> str:
    """Get the current target service from context."""
    return _target_var.get()


def get_context_dict() -> dict[str, Any]:
    """Get all context variables as a dictionary for log binding."""
    ctx = {}
    deployment_id = _deployment_id_var.get()
    if deployment_id:
        ctx["deployment_id"] = deployment_id
    target = _target_var.get()
    if target:
        ctx["target"] = target
    extra = _extra_context_var.get()
    if extra:
        ctx.update(extra)
    return ctx


@dataclass
class DeploymentContext:
    """Context manager binding deployment identifiers to log entries.

    Example:
        with DeploymentContext(deployment_id="d-123", target="checkout"):
            logger.info("shifting traffic")  # includes deployment_id, target
    """

    deployment_id: str = ""
    target: str = ""
    extra: dict[str, Any] = field(default_factory=dict)
    started_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    _tokens: list = field(default_factory=list, repr=False)

    def __enter__(self) -> "DeploymentContext":
        self._tokens = [
            (_deployment_id_var, _deployment_id_var.set(self.deployment_id)),
            (_target_var, _target_var.set(self.target)),
            (_extra_context_var, _extra_context_var.set(self.extra.copy())),
        ]
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        for var, token in reversed(self._tokens):
            var.reset(token)
        self._tokens.clear()

    @property
    def elapsed_ms(self) -> float:
        """Milliseconds since context was created."""
        delta = datetime.now(timezone.utc) - self.started_at
        return delta.total_seconds() * 1000
