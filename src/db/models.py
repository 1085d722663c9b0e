"""SQLAlchemy ORM models for the deployment store.

Tables:
- deployments: one summary row per rollout attempt (current view)
- deployment_transitions: append-only state transition log
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

from src.db.base import Base


class DeploymentRow(Base):
    """Summary of a rollout attempt, rewritten on every transition."""

    __tablename__ = "deployments"

    deployment_id = Column(String(36), primary_key=True)
    target = Column(String(200), nullable=False, index=True)
    strategy = Column(String(20), nullable=False)
    artifact = Column(String(500), nullable=False)
    state = Column(String(20), nullable=False, index=True)
    stable_environment = Column(String(200))
    candidate_environment = Column(String(200))
    stable_weight = Column(Integer, nullable=False, default=100)
    candidate_weight = Column(Integer, nullable=False, default=0)
    reasons = Column(Text)  # JSON list
    requires_operator = Column(Boolean, nullable=False, default=False)
    config = Column(Text)  # JSON DeploymentConfig
    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    completed_at = Column(DateTime(timezone=True))


class TransitionRow(Base):
    """One state transition. Rows are inserted, never updated."""

    __tablename__ = "deployment_transitions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    deployment_id = Column(
        String(36), ForeignKey("deployments.deployment_id"), nullable=False
    )
    sequence = Column(Integer, nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    from_state = Column(String(20))
    to_state = Column(String(20), nullable=False)
    stable_weight = Column(Integer, nullable=False)
    candidate_weight = Column(Integer, nullable=False)
    reason = Column(Text)

    __table_args__ = (
        UniqueConstraint("deployment_id", "sequence", name="uq_transition_sequence"),
        Index("ix_transitions_deployment", "deployment_id", "sequence"),
    )
