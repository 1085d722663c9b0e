"""External collaborator protocols.

The orchestrator never provisions, routes or measures anything itself;
it drives these four narrow interfaces. All calls are coroutines and
signal failure by raising.
"""

from typing import Any, Dict, Protocol, runtime_checkable

from .models import HealthSnapshot


@runtime_checkable
class InfrastructureProvider(Protocol):
    """Creates and destroys service environments."""

    async def create_environment(self, artifact: str) -> str:
        """Materialize an environment running ``artifact``.

        Returns:
            The new environment id.
        """
        ...

    async def destroy_environment(self, env_id: str) -> None:
        """Decommission an environment."""
        ...


@runtime_checkable
class TrafficRouter(Protocol):
    """Applies routing weights between two environments."""

    async def set_weights(
        self,
        stable_env: str,
        candidate_env: str,
        stable_weight: int,
        candidate_weight: int,
    ) -> None:
        ...


@runtime_checkable
class MetricsSource(Protocol):
    """Returns health samples for an environment."""

    async def sample(self, env_id: str, window_seconds: float) -> HealthSnapshot:
        ...


@runtime_checkable
class Notifier(Protocol):
    """Receives deployment status events. Fire-and-forget."""

    async def emit(self, deployment_id: str, state: str, detail: Dict[str, Any]) -> None:
        ...
