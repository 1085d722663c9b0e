"""FastAPI Application Factory.

Creates and configures the rollout API application. Serve with:

    uvicorn src.api.app:create_app --factory
"""

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from src.api.config import APIConfig, DEFAULT_API_CONFIG
from src.api.models import HealthResponse
from src.api.routes import deployments
from src.api_errors.handlers import register_exception_handlers
from src.db.engine import build_engine
from src.deployment.config import OrchestratorConfig
from src.deployment.orchestrator import DeploymentOrchestrator
from src.deployment.simulated import create_simulated_orchestrator
from src.deployment.store import SqlDeploymentStore
from src.logging_config import configure_logging, logging_config_for
from src.settings import Settings, get_settings

logger = logging.getLogger(__name__)


# ── Security Headers Middleware ───────────────────────────────────────


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Adds standard security headers to all HTTP responses."""

    async def dispatch(self, request: Request, call_next: Any) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


# ── Lifespan (startup / shutdown) ────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging, start the orchestrator and resolve interrupted rollouts."""
    # ── Startup ──
    settings: Settings = app.state.settings
    if app.state.configure_logging:
        configure_logging(logging_config_for(settings.log_level, settings.log_format))
        logger.info("Structured logging initialized")

    orchestrator: DeploymentOrchestrator = app.state.orchestrator
    async with orchestrator:
        recovered = await orchestrator.recover()
        logger.info("Rollout API starting up (%d deployment(s) recovered)", len(recovered))
        yield
        # ── Shutdown ──
        logger.info("Rollout API shutting down")


# ── App Factory ──────────────────────────────────────────────────────


def create_app(
    orchestrator: Optional[DeploymentOrchestrator] = None,
    settings: Optional[Settings] = None,
    config: Optional[APIConfig] = None,
    configure_logging_on_startup: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        orchestrator: Orchestrator to serve. Defaults to one wired to the
            simulated collaborators and the SQL store at
            ``settings.database_url``.
        settings: Process settings. Uses ``get_settings()`` if not provided.
        config: API configuration. Uses defaults if not provided.
        configure_logging_on_startup: Install the structured log handler
            when the app starts.

    Returns:
        Configured FastAPI application.
    """
    settings = settings or get_settings()
    config = config or DEFAULT_API_CONFIG
    if orchestrator is None:
        orchestrator = create_simulated_orchestrator(
            SqlDeploymentStore(build_engine(settings.database_url)),
            config=OrchestratorConfig.from_settings(settings),
        )

    app = FastAPI(
        title=config.title,
        version=config.version,
        description=config.description,
        docs_url=config.docs_url,
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.settings = settings
    app.state.configure_logging = configure_logging_on_startup

    # ── Middleware stack ──────────────────────────────────────────
    cors_origins = os.environ.get("ROLLOUT_CORS_ORIGINS", "").split(",")
    cors_origins = [o.strip() for o in cors_origins if o.strip()] or config.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=config.cors_methods,
        allow_headers=config.cors_headers,
    )
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)

    # ── Health check ─────────────────────────────────────────────

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        components = {}

        try:
            orchestrator.list_deployments(limit=1)
            components["store"] = "ok"
        except Exception as e:
            components["store"] = f"error: {e}"

        components["notifications"] = "ok" if orchestrator.notifications.running else "stopped"
        components["active_deployments"] = len(orchestrator.locks.held())

        overall = "ok" if all(
            v == "ok" for k, v in components.items() if k != "active_deployments"
        ) else "degraded"
        return HealthResponse(status=overall, version=config.version, components=components)

    # ── Route modules ────────────────────────────────────────────

    app.include_router(deployments.router, prefix=config.prefix)

    logger.info("Rollout API v%s initialized", config.version)
    return app
