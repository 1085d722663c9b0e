"""Rollout REST API.

FastAPI control surface for the deployment orchestrator: start,
inspect, list and abort rollouts.

Example:
    from src.api import create_app
    app = create_app()
"""

from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.models import (
    AbortRequest,
    DeploymentAccepted,
    DeploymentRequest,
    DeploymentResponse,
    DeploymentSummaryResponse,
    HealthResponse,
    ThresholdsModel,
    TrafficSplitModel,
    TransitionResponse,
)
from src.api.app import create_app

__all__ = [
    # Config
    "APIConfig",
    "DEFAULT_API_CONFIG",
    # Models
    "AbortRequest",
    "DeploymentAccepted",
    "DeploymentRequest",
    "DeploymentResponse",
    "DeploymentSummaryResponse",
    "HealthResponse",
    "ThresholdsModel",
    "TrafficSplitModel",
    "TransitionResponse",
    # App
    "create_app",
]
