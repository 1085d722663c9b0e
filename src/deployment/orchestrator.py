"""PRD-120: Deployment Strategies & Rollback Automation — Deployment Orchestrator.

Accepts rollout requests, runs each accepted deployment as its own
asyncio task, and guarantees every deployment ends in exactly one
terminal state with its per-target lock released.
"""

import asyncio
import logging
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from src.logging_config.context import DeploymentContext

from .config import DeploymentConfig, DeploymentState, OrchestratorConfig
from .errors import (
    ConflictError,
    DeploymentAbortedError,
    DeploymentError,
    InterruptedDeploymentError,
    LockReleaseError,
    NotFoundError,
    ProvisioningError,
)
from .health import HealthEvaluator
from .interfaces import InfrastructureProvider, MetricsSource, Notifier, TrafficRouter
from .journal import TransitionJournal
from .locks import TargetLockRegistry
from .models import Deployment, TransitionRecord
from .monitor import HealthMonitor
from .notify import NotificationChannel
from .rollback import RollbackManager
from .scheduling import CancellationToken, Deadline
from .store import DeploymentSummary, InMemoryDeploymentStore
from .strategies import STRATEGY_REGISTRY, get_strategy
from .traffic import TrafficController
from .validation import ConfigValidator

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    """Drives rollouts through provisioning, traffic steps and rollback.

    Collaborators are injected; nothing here is a process-wide singleton.
    Use as ``async with`` so the notification worker runs and in-flight
    deployments are wound down on exit.
    """

    def __init__(
        self,
        provider: InfrastructureProvider,
        router: TrafficRouter,
        metrics: MetricsSource,
        notifier: Optional[Notifier] = None,
        store: Any = None,
        config: Optional[OrchestratorConfig] = None,
        strategies: Optional[Dict[str, Any]] = None,
    ):
        self._config = config or OrchestratorConfig()
        self._provider = provider
        self._router = router
        self._metrics = metrics
        self._store = store if store is not None else InMemoryDeploymentStore()
        self._strategies = strategies if strategies is not None else STRATEGY_REGISTRY
        self._channel = NotificationChannel(notifier, self._config.notification_queue_size)
        self._journal = TransitionJournal(self._store, self._channel)
        self._rollback = RollbackManager(
            self._journal,
            provider,
            destroy_candidate=self._config.destroy_candidate_on_rollback,
        )
        self._locks = TargetLockRegistry()
        self._deployments: Dict[str, Deployment] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._tokens: Dict[str, CancellationToken] = {}
        self._stable: Dict[str, str] = {}
        self._finished: Deque[str] = deque()

    @property
    def config(self) -> OrchestratorConfig:
        return self._config

    @property
    def store(self) -> Any:
        return self._store

    @property
    def rollbacks(self) -> RollbackManager:
        return self._rollback

    @property
    def locks(self) -> TargetLockRegistry:
        return self._locks

    @property
    def notifications(self) -> NotificationChannel:
        return self._channel

    async def __aenter__(self) -> "DeploymentOrchestrator":
        self._channel.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.shutdown()

    # ── Commands ─────────────────────────────────────────────────────

    def register_stable_environment(self, target: str, env_id: str) -> None:
        """Record the environment currently serving ``target``."""
        self._stable[target] = env_id

    async def start_deployment(self, config: DeploymentConfig) -> str:
        """Accept a rollout and start it in the background.

        Raises:
            ValidationError: the config was rejected; nothing was recorded.
            ConflictError: the target already has an active deployment;
                nothing was recorded.
        """
        stable = self._resolve_stable(config)
        ConfigValidator(self._strategies.keys()).ensure_valid(config, stable)
        executor = get_strategy(config.strategy, self._strategies)

        deployment = Deployment(config=config, stable_environment=stable)
        deadline = Deadline(config.timeout_seconds, CancellationToken())
        self._locks.acquire(config.target, deployment.deployment_id)
        try:
            self._deployments[deployment.deployment_id] = deployment
            await self._journal.open(deployment)
            self._channel.start()
            task = asyncio.create_task(
                self._run(deployment, executor, deadline),
                name=f"deployment-{deployment.deployment_id}",
            )
        except Exception:
            self._deployments.pop(deployment.deployment_id, None)
            self._locks.release(config.target, deployment.deployment_id)
            raise

        self._tasks[deployment.deployment_id] = task
        self._tokens[deployment.deployment_id] = deadline.token
        logger.info(
            "Accepted %s deployment %s of %s to %s (steps %s)",
            config.strategy,
            deployment.deployment_id,
            config.artifact,
            config.target,
            list(config.traffic_steps),
        )
        return deployment.deployment_id

    async def deploy(self, config: DeploymentConfig) -> Deployment:
        """Start a rollout and wait for its terminal state."""
        deployment_id = await self.start_deployment(config)
        return await self.wait(deployment_id)

    async def wait(self, deployment_id: str) -> Deployment:
        task = self._tasks.get(deployment_id)
        if task is None:
            return self.get_deployment(deployment_id)
        return await asyncio.shield(task)

    async def abort_deployment(
        self, deployment_id: str, reason: str = "aborted by operator"
    ) -> Deployment:
        """Force-abort a running deployment and wait for it to settle.

        Raises:
            NotFoundError: unknown deployment.
            ConflictError: the deployment already finished.
        """
        deployment = self.get_deployment(deployment_id)
        token = self._tokens.get(deployment_id)
        if deployment.is_terminal or token is None:
            raise ConflictError(
                f"Deployment {deployment_id} is {deployment.state.value}; nothing to abort"
            )
        logger.warning("Abort requested for %s: %s", deployment_id, reason)
        token.cancel(reason)
        return await self.wait(deployment_id)

    async def recover(self) -> List[Deployment]:
        """Resolve deployments the store still shows as unfinished.

        Runs at startup. Deployments interrupted while advancing are
        reverted to stable; earlier ones are marked failed.
        """
        recovered = []
        for summary in self._store.unfinished():
            if summary.deployment_id in self._tasks:
                continue
            try:
                self._locks.acquire(summary.target, summary.deployment_id)
            except ConflictError:
                continue
            deployment = self._hydrate(summary)
            self._deployments[deployment.deployment_id] = deployment
            try:
                with DeploymentContext(
                    deployment_id=deployment.deployment_id, target=deployment.target
                ):
                    await self._recover_one(deployment, summary)
            finally:
                self._locks.release(summary.target, summary.deployment_id)
                self._retire(deployment.deployment_id)
            recovered.append(deployment)
        if recovered:
            logger.warning("Recovered %d interrupted deployment(s)", len(recovered))
        return recovered

    async def shutdown(self, reason: str = "orchestrator shutting down") -> None:
        """Abort every running deployment and stop the notifier worker."""
        running = [t for t in self._tasks.values() if not t.done()]
        for deployment_id, task in self._tasks.items():
            if not task.done():
                self._tokens[deployment_id].cancel(reason)
        if running:
            await asyncio.gather(*running, return_exceptions=True)
        await self._channel.close()

    # ── Queries ──────────────────────────────────────────────────────

    def get_deployment(self, deployment_id: str) -> Deployment:
        deployment = self._deployments.get(deployment_id)
        if deployment is not None:
            return deployment
        summary = self._store.get_summary(deployment_id)
        if summary is None:
            raise NotFoundError(deployment_id)
        return self._hydrate(summary)

    def list_deployments(
        self,
        target: Optional[str] = None,
        state: Optional[DeploymentState] = None,
        limit: Optional[int] = 20,
    ) -> List[DeploymentSummary]:
        return self._store.list_summaries(target=target, state=state, limit=limit)

    def get_history(self, deployment_id: str) -> List[TransitionRecord]:
        """Transition log of one deployment, oldest first."""
        if (
            deployment_id not in self._deployments
            and self._store.get_summary(deployment_id) is None
        ):
            raise NotFoundError(deployment_id)
        return self._store.get_transitions(deployment_id)

    def get_active_deployment(self, target: str) -> Optional[Deployment]:
        deployment_id = self._locks.active_for(target)
        return self._deployments.get(deployment_id) if deployment_id else None

    def get_summary(self) -> dict:
        """Return aggregate deployment statistics."""
        summaries = self._store.list_summaries(limit=None)
        total = len(summaries)
        counts = {state: 0 for state in DeploymentState}
        for summary in summaries:
            counts[summary.state] += 1
        promoted = counts[DeploymentState.PROMOTED]
        rolled_back = counts[DeploymentState.ROLLED_BACK]
        failed = counts[DeploymentState.FAILED]
        completed = promoted + rolled_back + failed
        success_rate = promoted / completed if completed > 0 else 0.0
        return {
            "total": total,
            "active": total - completed,
            "promoted": promoted,
            "rolled_back": rolled_back,
            "failed": failed,
            "success_rate": round(success_rate, 4),
        }

    # ── Deployment task ──────────────────────────────────────────────

    async def _run(self, deployment: Deployment, executor: Any, deadline: Deadline) -> Deployment:
        with DeploymentContext(
            deployment_id=deployment.deployment_id, target=deployment.target
        ) as ctx:
            try:
                await self._drive(deployment, executor, deadline)
            except Exception:
                logger.exception("Deployment %s crashed", deployment.deployment_id)
                raise
            finally:
                try:
                    self._release(deployment)
                finally:
                    self._retire(deployment.deployment_id)
            logger.info(
                "Deployment %s finished %s",
                deployment.deployment_id,
                deployment.result,
                extra={"duration_ms": round(ctx.elapsed_ms, 1)},
            )
        return deployment

    async def _drive(self, deployment: Deployment, executor: Any, deadline: Deadline) -> None:
        config = deployment.config
        await self._journal.record(
            deployment,
            DeploymentState.PROVISIONING,
            reason=f"provisioning {config.artifact}",
        )
        try:
            env_id = await asyncio.wait_for(
                self._provider.create_environment(config.artifact),
                timeout=deadline.remaining(),
            )
        except asyncio.TimeoutError:
            await self._fail(
                deployment,
                ProvisioningError(f"deadline elapsed while provisioning {config.artifact}"),
            )
            return
        except Exception as exc:
            await self._fail(deployment, ProvisioningError(str(exc) or type(exc).__name__))
            return

        deployment.candidate_environment = env_id
        if deadline.cancelled:
            await self._destroy(env_id, "aborted candidate")
            await self._fail(
                deployment, DeploymentAbortedError(deadline.token.reason or "aborted")
            )
            return

        await self._journal.record(
            deployment,
            DeploymentState.ADVANCING,
            reason=f"candidate {env_id} ready",
        )
        traffic = TrafficController(self._router, deployment.stable_environment, env_id)
        try:
            await executor.execute(
                deployment, traffic, self._monitor_for(config), deadline, self._journal
            )
            if traffic.current.candidate_weight != 100:
                raise DeploymentError(
                    f"strategy finished at {traffic.current} without full cutover"
                )
        except Exception as exc:
            await self._rollback.rollback(deployment, traffic, exc)
            return

        await self._promote(deployment, traffic)

    async def _promote(self, deployment: Deployment, traffic: TrafficController) -> None:
        previous = deployment.stable_environment
        candidate = traffic.candidate_environment
        await self._journal.record(
            deployment,
            DeploymentState.PROMOTED,
            reason=f"{candidate} serving 100% of {deployment.target}",
            split=traffic.current,
        )
        self._stable[deployment.target] = candidate
        if previous and previous != candidate:
            await self._destroy(previous, "previous stable")

    async def _fail(self, deployment: Deployment, error: DeploymentError) -> None:
        deployment.reasons.append(error.describe())
        logger.error("Deployment %s failed: %s", deployment.deployment_id, error.describe())
        await self._journal.record(deployment, DeploymentState.FAILED, reason=error.describe())

    def _release(self, deployment: Deployment) -> None:
        self._tokens.pop(deployment.deployment_id, None)
        try:
            self._locks.release(deployment.target, deployment.deployment_id)
        except LockReleaseError as exc:
            logger.critical(
                "Target %s stays locked after %s: %s",
                deployment.target,
                deployment.deployment_id,
                exc.message,
                extra={"reason": exc.reason},
            )
            self._channel.publish(
                deployment.deployment_id,
                deployment.state.value,
                {"target": deployment.target, "reason": exc.describe()},
                alert=True,
            )
            raise

    # ── Internal helpers ─────────────────────────────────────────────

    def _retire(self, deployment_id: str) -> None:
        """Forget a finished task; keep only recent aggregates in memory."""
        self._tasks.pop(deployment_id, None)
        self._finished.append(deployment_id)
        while len(self._finished) > self._config.finished_retention:
            self._deployments.pop(self._finished.popleft(), None)

    def _resolve_stable(self, config: DeploymentConfig) -> Optional[str]:
        if config.stable_environment:
            return config.stable_environment
        if config.target in self._stable:
            return self._stable[config.target]
        promoted = self._store.list_summaries(
            target=config.target, state=DeploymentState.PROMOTED, limit=1
        )
        return promoted[0].candidate_environment if promoted else None

    def _monitor_for(self, config: DeploymentConfig) -> HealthMonitor:
        return HealthMonitor(
            self._metrics,
            HealthEvaluator(config.thresholds),
            sample_interval_seconds=(
                config.sample_interval_seconds or self._config.default_sample_interval_seconds
            ),
            retry_attempts=self._config.metrics_retry_attempts,
            retry_base_delay_seconds=self._config.metrics_retry_base_delay_seconds,
            fail_fast=self._config.fail_fast,
        )

    async def _destroy(self, env_id: str, label: str) -> None:
        try:
            await self._provider.destroy_environment(env_id)
        except Exception as exc:
            logger.warning("Could not decommission %s %s: %s", label, env_id, exc)

    async def _recover_one(self, deployment: Deployment, summary: DeploymentSummary) -> None:
        if deployment.state == DeploymentState.ADVANCING and deployment.candidate_environment:
            traffic = TrafficController(
                self._router,
                deployment.stable_environment,
                deployment.candidate_environment,
                initial=summary.split,
            )
            await self._rollback.rollback(
                deployment,
                traffic,
                InterruptedDeploymentError("orchestrator stopped while advancing"),
            )
            return

        if deployment.candidate_environment:
            await self._destroy(deployment.candidate_environment, "interrupted candidate")
        reason = "interrupted-during-provisioning: orchestrator stopped before traffic moved"
        deployment.reasons.append(reason)
        await self._journal.record(deployment, DeploymentState.FAILED, reason=reason)

    @staticmethod
    def _hydrate(summary: DeploymentSummary) -> Deployment:
        return Deployment(
            config=DeploymentConfig.from_dict(summary.config),
            deployment_id=summary.deployment_id,
            state=summary.state,
            stable_environment=summary.stable_environment,
            candidate_environment=summary.candidate_environment,
            traffic_split=summary.split,
            reasons=list(summary.reasons),
            requires_operator=summary.requires_operator,
            created_at=summary.created_at,
            updated_at=summary.updated_at,
            completed_at=summary.completed_at,
        )
