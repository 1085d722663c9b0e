"""PRD-120: Deployment Strategies & Rollback Automation — Deployment Store.

Durable, append-only record of deployment state transitions, plus a
summary row per deployment for queries. Two backends share one interface:
an in-memory store for tests and embedded use, and a SQLAlchemy store.
"""

import contextlib
import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, List, Optional

from sqlalchemy import func, select
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from src.db.base import Base
from src.db.models import DeploymentRow, TransitionRow

from .config import DeploymentState
from .models import Deployment, TrafficSplit, TransitionRecord

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class DeploymentSummary:
    """Stored view of a deployment, independent of the live aggregate."""

    deployment_id: str
    target: str
    strategy: str
    artifact: str
    state: DeploymentState
    stable_environment: Optional[str] = None
    candidate_environment: Optional[str] = None
    split: TrafficSplit = field(default_factory=TrafficSplit.all_stable)
    reasons: List[str] = field(default_factory=list)
    requires_operator: bool = False
    config: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_deployment(cls, deployment: Deployment) -> "DeploymentSummary":
        return cls(
            deployment_id=deployment.deployment_id,
            target=deployment.target,
            strategy=deployment.config.strategy,
            artifact=deployment.config.artifact,
            state=deployment.state,
            stable_environment=deployment.stable_environment,
            candidate_environment=deployment.candidate_environment,
            split=deployment.traffic_split,
            reasons=list(deployment.reasons),
            requires_operator=deployment.requires_operator,
            config=deployment.config.to_dict(),
            created_at=deployment.created_at,
            updated_at=deployment.updated_at,
            completed_at=deployment.completed_at,
        )

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "deployment_id": self.deployment_id,
            "target": self.target,
            "strategy": self.strategy,
            "artifact": self.artifact,
            "state": self.state.value,
            "stable_environment": self.stable_environment,
            "candidate_environment": self.candidate_environment,
            "traffic_split": {
                "stable_weight": self.split.stable_weight,
                "candidate_weight": self.split.candidate_weight,
            },
            "reasons": list(self.reasons),
            "requires_operator": self.requires_operator,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class InMemoryDeploymentStore:
    """Append-only transition log kept in process memory."""

    blocking_io = False

    def __init__(self) -> None:
        self._transitions: Dict[str, List[TransitionRecord]] = {}
        self._summaries: Dict[str, DeploymentSummary] = {}
        self._lock = threading.Lock()

    def next_sequence(self, deployment_id: str) -> int:
        with self._lock:
            return len(self._transitions.get(deployment_id, [])) + 1

    def append_transition(self, record: TransitionRecord) -> None:
        """Append one transition; terminal deployments are read-only."""
        with self._lock:
            log = self._transitions.setdefault(record.deployment_id, [])
            if log and log[-1].to_state.is_terminal:
                raise ValueError(
                    f"Deployment {record.deployment_id} is terminal; log is read-only"
                )
            if record.sequence != len(log) + 1:
                raise ValueError(
                    f"Out-of-order transition {record.sequence} for {record.deployment_id}"
                )
            log.append(record)

    def save_deployment(self, deployment: Deployment) -> None:
        with self._lock:
            self._summaries[deployment.deployment_id] = DeploymentSummary.from_deployment(
                deployment
            )

    def get_transitions(self, deployment_id: str) -> List[TransitionRecord]:
        with self._lock:
            return list(self._transitions.get(deployment_id, []))

    def get_summary(self, deployment_id: str) -> Optional[DeploymentSummary]:
        with self._lock:
            return self._summaries.get(deployment_id)

    def list_summaries(
        self,
        target: Optional[str] = None,
        state: Optional[DeploymentState] = None,
        limit: Optional[int] = 20,
    ) -> List[DeploymentSummary]:
        with self._lock:
            summaries = list(self._summaries.values())
        if target is not None:
            summaries = [s for s in summaries if s.target == target]
        if state is not None:
            summaries = [s for s in summaries if s.state == state]
        summaries.sort(key=lambda s: s.created_at or _EPOCH, reverse=True)
        return summaries[:limit]

    def unfinished(self) -> List[DeploymentSummary]:
        """Deployments whose last recorded state is not terminal."""
        with self._lock:
            return [s for s in self._summaries.values() if not s.is_terminal]


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on the way back
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlDeploymentStore:
    """Append-only transition log persisted through SQLAlchemy."""

    # Callers run these methods in a worker thread; the lock serialises
    # access to the shared connection of an in-memory database.
    blocking_io = True

    def __init__(self, engine: Engine, create_tables: bool = True):
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)
        self._lock = threading.RLock()
        if create_tables:
            Base.metadata.create_all(engine)
        logger.debug("Deployment store ready on %s", engine.url)

    @contextlib.contextmanager
    def _session(self) -> Iterator[Session]:
        with self._lock, self._session_factory() as session:
            yield session

    def next_sequence(self, deployment_id: str) -> int:
        with self._session() as session:
            current = session.execute(
                select(func.max(TransitionRow.sequence)).where(
                    TransitionRow.deployment_id == deployment_id
                )
            ).scalar()
            return (current or 0) + 1

    def append_transition(self, record: TransitionRecord) -> None:
        """Insert one transition row; rows are never updated or deleted."""
        with self._session() as session:
            last = session.execute(
                select(TransitionRow)
                .where(TransitionRow.deployment_id == record.deployment_id)
                .order_by(TransitionRow.sequence.desc())
                .limit(1)
            ).scalar_one_or_none()
            if last is not None and DeploymentState(last.to_state).is_terminal:
                raise ValueError(
                    f"Deployment {record.deployment_id} is terminal; log is read-only"
                )
            if session.get(DeploymentRow, record.deployment_id) is None:
                raise ValueError(
                    f"Deployment {record.deployment_id} must be saved before its transitions"
                )
            session.add(
                TransitionRow(
                    deployment_id=record.deployment_id,
                    sequence=record.sequence,
                    timestamp=record.timestamp,
                    from_state=record.from_state.value if record.from_state else None,
                    to_state=record.to_state.value,
                    stable_weight=record.split.stable_weight,
                    candidate_weight=record.split.candidate_weight,
                    reason=record.reason,
                )
            )
            session.commit()

    def save_deployment(self, deployment: Deployment) -> None:
        with self._session() as session:
            row = session.get(DeploymentRow, deployment.deployment_id)
            if row is None:
                row = DeploymentRow(deployment_id=deployment.deployment_id)
                session.add(row)
            row.target = deployment.target
            row.strategy = deployment.config.strategy
            row.artifact = deployment.config.artifact
            row.state = deployment.state.value
            row.stable_environment = deployment.stable_environment
            row.candidate_environment = deployment.candidate_environment
            row.stable_weight = deployment.traffic_split.stable_weight
            row.candidate_weight = deployment.traffic_split.candidate_weight
            row.reasons = json.dumps(deployment.reasons)
            row.requires_operator = deployment.requires_operator
            row.config = json.dumps(deployment.config.to_dict(), default=str)
            row.created_at = deployment.created_at
            row.updated_at = deployment.updated_at
            row.completed_at = deployment.completed_at
            session.commit()

    def get_transitions(self, deployment_id: str) -> List[TransitionRecord]:
        with self._session() as session:
            rows = session.execute(
                select(TransitionRow)
                .where(TransitionRow.deployment_id == deployment_id)
                .order_by(TransitionRow.sequence)
            ).scalars().all()
            return [self._to_record(r) for r in rows]

    def get_summary(self, deployment_id: str) -> Optional[DeploymentSummary]:
        with self._session() as session:
            row = session.get(DeploymentRow, deployment_id)
            return self._to_summary(row) if row is not None else None

    def list_summaries(
        self,
        target: Optional[str] = None,
        state: Optional[DeploymentState] = None,
        limit: Optional[int] = 20,
    ) -> List[DeploymentSummary]:
        query = select(DeploymentRow)
        if target is not None:
            query = query.where(DeploymentRow.target == target)
        if state is not None:
            query = query.where(DeploymentRow.state == state.value)
        query = query.order_by(DeploymentRow.created_at.desc())
        if limit is not None:
            query = query.limit(limit)
        with self._session() as session:
            return [self._to_summary(r) for r in session.execute(query).scalars().all()]

    def unfinished(self) -> List[DeploymentSummary]:
        terminal = [s.value for s in DeploymentState if s.is_terminal]
        with self._session() as session:
            rows = session.execute(
                select(DeploymentRow).where(DeploymentRow.state.not_in(terminal))
            ).scalars().all()
            return [self._to_summary(r) for r in rows]

    # ── Internal helpers ─────────────────────────────────────────────

    @staticmethod
    def _to_record(row: TransitionRow) -> TransitionRecord:
        return TransitionRecord(
            deployment_id=row.deployment_id,
            sequence=row.sequence,
            from_state=DeploymentState(row.from_state) if row.from_state else None,
            to_state=DeploymentState(row.to_state),
            split=TrafficSplit(row.stable_weight, row.candidate_weight),
            reason=row.reason or "",
            timestamp=_aware(row.timestamp),
        )

    @staticmethod
    def _to_summary(row: DeploymentRow) -> DeploymentSummary:
        return DeploymentSummary(
            deployment_id=row.deployment_id,
            target=row.target,
            strategy=row.strategy,
            artifact=row.artifact,
            state=DeploymentState(row.state),
            stable_environment=row.stable_environment,
            candidate_environment=row.candidate_environment,
            split=TrafficSplit(row.stable_weight, row.candidate_weight),
            reasons=json.loads(row.reasons) if row.reasons else [],
            requires_operator=bool(row.requires_operator),
            config=json.loads(row.config) if row.config else {},
            created_at=_aware(row.created_at),
            updated_at=_aware(row.updated_at),
            completed_at=_aware(row.completed_at),
        )
