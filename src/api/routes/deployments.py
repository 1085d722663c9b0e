"""Deployment API — REST endpoints for starting, inspecting and aborting rollouts."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query

from src.api.dependencies import get_app_settings, get_orchestrator
from src.api.models import (
    AbortRequest,
    DeploymentAccepted,
    DeploymentRequest,
    DeploymentResponse,
    DeploymentSummaryResponse,
    TransitionResponse,
)
from src.deployment.config import DeploymentConfig, DeploymentState
from src.deployment.errors import ValidationError
from src.deployment.orchestrator import DeploymentOrchestrator
from src.settings import Settings

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/deployments", tags=["Deployments"])


@router.post("", response_model=DeploymentAccepted, status_code=202)
async def start_deployment(
    request: DeploymentRequest,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
    settings: Settings = Depends(get_app_settings),
) -> DeploymentAccepted:
    """Accept a rollout; it runs in the background."""
    config = DeploymentConfig.from_dict(request.model_dump(), settings.rollout_defaults())
    deployment_id = await orchestrator.start_deployment(config)
    deployment = orchestrator.get_deployment(deployment_id)
    return DeploymentAccepted(
        deployment_id=deployment_id,
        state=deployment.state.value,
        target=deployment.target,
    )


@router.get("", response_model=list[DeploymentSummaryResponse])
async def list_deployments(
    target: Optional[str] = None,
    state: Optional[str] = None,
    limit: int = Query(default=20, ge=1, le=100),
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> list[DeploymentSummaryResponse]:
    """List recent deployments, newest first."""
    state_filter = None
    if state is not None:
        try:
            state_filter = DeploymentState(state)
        except ValueError as exc:
            raise ValidationError(f"Unknown state '{state}'", field="state") from exc
    summaries = orchestrator.list_deployments(target=target, state=state_filter, limit=limit)
    return [DeploymentSummaryResponse(**s.to_dict()) for s in summaries]


@router.get("/{deployment_id}", response_model=DeploymentResponse)
async def get_deployment(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentResponse:
    return DeploymentResponse(**orchestrator.get_deployment(deployment_id).to_dict())


@router.get("/{deployment_id}/history", response_model=list[TransitionResponse])
async def get_history(
    deployment_id: str,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> list[TransitionResponse]:
    """Transition log, oldest first."""
    return [TransitionResponse(**r.to_dict()) for r in orchestrator.get_history(deployment_id)]


@router.post("/{deployment_id}/abort", response_model=DeploymentResponse)
async def abort_deployment(
    deployment_id: str,
    request: Optional[AbortRequest] = None,
    orchestrator: DeploymentOrchestrator = Depends(get_orchestrator),
) -> DeploymentResponse:
    """Force-abort a running deployment and return its terminal state."""
    reason = request.reason if request else "aborted by operator"
    logger.warning("Abort of %s requested through the API", deployment_id)
    deployment = await orchestrator.abort_deployment(deployment_id, reason)
    return DeploymentResponse(**deployment.to_dict())
