"""Command-line control surface for the rollout orchestrator.

Usage:
    python -m src.deployment run --config rollout.json
    python -m src.deployment status <deployment-id>
    python -m src.deployment history <deployment-id>
    python -m src.deployment list --target checkout --state rolled_back
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import enum
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any

from src.db.engine import build_engine
from src.logging_config import configure_logging, logging_config_for
from src.settings import get_settings

from .config import DeploymentConfig, DeploymentState, OrchestratorConfig
from .errors import ConflictError, NotFoundError, ValidationError
from .orchestrator import DeploymentOrchestrator
from .simulated import create_simulated_orchestrator
from .store import SqlDeploymentStore

logger = logging.getLogger("rollout.cli")


class ExitCode(enum.IntEnum):
    SUCCESS = 0
    NOT_PROMOTED = 1
    VALIDATION_ERROR = 2
    CONFLICT = 3
    NOT_FOUND = 4


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="python -m src.deployment",
        description="Progressive deployment orchestrator",
    )
    parser.add_argument(
        "--database-url", type=str, default=None,
        help="Deployment store URL (default: ROLLOUT_DATABASE_URL)",
    )
    parser.add_argument(
        "--log-level", type=str, default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: ROLLOUT_LOG_LEVEL)",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a deployment against simulated infrastructure")
    run.add_argument("--config", type=str, required=True, help="Path to JSON deployment config")
    run.add_argument(
        "--stable-env", type=str, default=None,
        help="Environment currently serving the target",
    )

    status = sub.add_parser("status", help="Show one deployment")
    status.add_argument("deployment_id")

    history = sub.add_parser("history", help="Show a deployment's transition log")
    history.add_argument("deployment_id")

    listing = sub.add_parser("list", help="List recent deployments")
    listing.add_argument("--target", type=str, default=None)
    listing.add_argument(
        "--state", type=str, default=None,
        choices=[s.value for s in DeploymentState],
    )
    listing.add_argument("--limit", type=int, default=20)
    return parser.parse_args(argv)


def load_config(path: str) -> tuple[DeploymentConfig, dict[str, Any]]:
    """Read a deployment config file.

    An optional ``simulation`` section shapes the simulated collaborators,
    e.g. ``{"profiles": {"50": {"error_rate": 0.02}}, "fail_create": true}``.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise ValidationError(f"Config file {config_path} not found", field="config")
    try:
        with open(config_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Config file {config_path} is not valid JSON: {e}", field="config") from e
    if not isinstance(data, dict):
        raise ValidationError("Config file must hold a JSON object", field="config")
    simulation = data.pop("simulation", None) or {}
    logger.info("Loaded config from %s", config_path)
    return DeploymentConfig.from_dict(data, get_settings().rollout_defaults()), simulation


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


async def run_deployment(orchestrator: DeploymentOrchestrator, config: DeploymentConfig) -> int:
    async with orchestrator:
        deployment_id = await orchestrator.start_deployment(config)

        def _on_signal(name: str) -> None:
            logger.info("Received %s, aborting %s", name, deployment_id)
            if not orchestrator.get_deployment(deployment_id).is_terminal:
                asyncio.ensure_future(
                    orchestrator.abort_deployment(deployment_id, f"received {name}")
                )

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(signum, _on_signal, signal.Signals(signum).name)

        deployment = await orchestrator.wait(deployment_id)
        _print(deployment.to_dict())
    if deployment.state == DeploymentState.PROMOTED:
        return ExitCode.SUCCESS
    logger.warning(
        "Deployment %s ended %s: %s",
        deployment_id,
        deployment.result,
        "; ".join(deployment.reasons),
    )
    return ExitCode.NOT_PROMOTED


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    configure_logging(logging_config_for(args.log_level or settings.log_level, settings.log_format))

    store = SqlDeploymentStore(build_engine(args.database_url or settings.database_url))
    orchestrator_config = OrchestratorConfig.from_settings(settings)

    try:
        if args.command == "run":
            config, simulation = load_config(args.config)
            if args.stable_env and not config.stable_environment:
                config = DeploymentConfig.from_dict(
                    {**config.to_dict(), "stable_environment": args.stable_env}
                )
            orchestrator = create_simulated_orchestrator(store, simulation, orchestrator_config)
            return asyncio.run(run_deployment(orchestrator, config))

        orchestrator = create_simulated_orchestrator(store, config=orchestrator_config)
        if args.command == "status":
            _print(orchestrator.get_deployment(args.deployment_id).to_dict())
        elif args.command == "history":
            _print([r.to_dict() for r in orchestrator.get_history(args.deployment_id)])
        elif args.command == "list":
            state = DeploymentState(args.state) if args.state else None
            _print(
                [
                    s.to_dict()
                    for s in orchestrator.list_deployments(
                        target=args.target, state=state, limit=args.limit
                    )
                ]
            )
        return ExitCode.SUCCESS
    except ValidationError as e:
        print(f"validation error: {e.message}", file=sys.stderr)
        return ExitCode.VALIDATION_ERROR
    except ConflictError as e:
        print(f"conflict: {e.message}", file=sys.stderr)
        return ExitCode.CONFLICT
    except NotFoundError as e:
        print(f"not found: {e.message}", file=sys.stderr)
        return ExitCode.NOT_FOUND
