"""FastAPI Dependencies.

The orchestrator is created by the app factory and kept on
``app.state``; handlers receive it through ``Depends(get_orchestrator)``.
"""

from fastapi import Request

from src.deployment.orchestrator import DeploymentOrchestrator
from src.settings import Settings


def get_orchestrator(request: Request) -> DeploymentOrchestrator:
    """Return the orchestrator owned by this application."""
    return request.app.state.orchestrator


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
