"""PRD-120: Deployment Strategies & Rollback Automation."""

from .config import (
    DeploymentStrategy,
    DeploymentState,
    VerdictStatus,
    HealthThresholds,
    DeploymentConfig,
    OrchestratorConfig,
)
from .errors import (
    DeploymentError,
    ValidationError,
    InvalidSplitError,
    ConflictError,
    NotFoundError,
    InvalidTransitionError,
    ProvisioningError,
    TrafficShiftError,
    HealthCheckFailure,
    DeploymentTimeoutError,
    DeploymentAbortedError,
    RollbackError,
    LockReleaseError,
    InterruptedDeploymentError,
)
from .models import (
    TrafficSplit,
    HealthSnapshot,
    Verdict,
    StepResult,
    TransitionRecord,
    Deployment,
)
from .interfaces import (
    InfrastructureProvider,
    TrafficRouter,
    MetricsSource,
    Notifier,
)
from .scheduling import (
    WakeReason,
    CancellationToken,
    Deadline,
)
from .health import HealthEvaluator
from .monitor import HealthMonitor, Observation
from .traffic import TrafficController
from .strategies import (
    BlueGreen,
    Canary,
    STRATEGY_REGISTRY,
    register_strategy,
    get_strategy,
)
from .rollback import (
    RollbackAction,
    RollbackManager,
)
from .store import (
    DeploymentSummary,
    InMemoryDeploymentStore,
    SqlDeploymentStore,
)
from .journal import TransitionJournal
from .locks import TargetLockRegistry
from .notify import NotificationChannel, LoggingNotifier
from .validation import ConfigValidator
from .orchestrator import DeploymentOrchestrator

__all__ = [
    # Config
    "DeploymentStrategy",
    "DeploymentState",
    "VerdictStatus",
    "HealthThresholds",
    "DeploymentConfig",
    "OrchestratorConfig",
    # Errors
    "DeploymentError",
    "ValidationError",
    "InvalidSplitError",
    "ConflictError",
    "NotFoundError",
    "InvalidTransitionError",
    "ProvisioningError",
    "TrafficShiftError",
    "HealthCheckFailure",
    "DeploymentTimeoutError",
    "DeploymentAbortedError",
    "RollbackError",
    "LockReleaseError",
    "InterruptedDeploymentError",
    # Models
    "TrafficSplit",
    "HealthSnapshot",
    "Verdict",
    "StepResult",
    "TransitionRecord",
    "Deployment",
    # Collaborators
    "InfrastructureProvider",
    "TrafficRouter",
    "MetricsSource",
    "Notifier",
    # Scheduling
    "WakeReason",
    "CancellationToken",
    "Deadline",
    # Health
    "HealthEvaluator",
    "HealthMonitor",
    "Observation",
    # Traffic
    "TrafficController",
    # Strategies
    "BlueGreen",
    "Canary",
    "STRATEGY_REGISTRY",
    "register_strategy",
    "get_strategy",
    # Rollback
    "RollbackAction",
    "RollbackManager",
    # Store
    "DeploymentSummary",
    "InMemoryDeploymentStore",
    "SqlDeploymentStore",
    "TransitionJournal",
    # Orchestration
    "TargetLockRegistry",
    "NotificationChannel",
    "LoggingNotifier",
    "ConfigValidator",
    "DeploymentOrchestrator",
]
