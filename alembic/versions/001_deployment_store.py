"""Deployment store: summary rows and append-only transition log.

Revision ID: 001
Revises:
"""

from alembic import op
import sqlalchemy as sa

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "deployments",
        sa.Column("deployment_id", sa.String(36), primary_key=True),
        sa.Column("target", sa.String(200), nullable=False, index=True),
        sa.Column("strategy", sa.String(20), nullable=False),
        sa.Column("artifact", sa.String(500), nullable=False),
        sa.Column("state", sa.String(20), nullable=False, index=True),
        sa.Column("stable_environment", sa.String(200), nullable=True),
        sa.Column("candidate_environment", sa.String(200), nullable=True),
        sa.Column("stable_weight", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("candidate_weight", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("reasons", sa.Text(), nullable=True),
        sa.Column("requires_operator", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("config", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
    )

    op.create_table(
        "deployment_transitions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "deployment_id",
            sa.String(36),
            sa.ForeignKey("deployments.deployment_id"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("from_state", sa.String(20), nullable=True),
        sa.Column("to_state", sa.String(20), nullable=False),
        sa.Column("stable_weight", sa.Integer(), nullable=False),
        sa.Column("candidate_weight", sa.Integer(), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.UniqueConstraint("deployment_id", "sequence", name="uq_transition_sequence"),
    )
    op.create_index(
        "ix_transitions_deployment",
        "deployment_transitions",
        ["deployment_id", "sequence"],
    )


def downgrade() -> None:
    op.drop_index("ix_transitions_deployment", table_name="deployment_transitions")
    op.drop_table("deployment_transitions")
    op.drop_table("deployments")
