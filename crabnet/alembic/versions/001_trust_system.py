"""Trust system schema: agents, tasks, vouches, reviews, reputation history, trust paths.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str, nullable: bool = False) -> sa.Column:
    if nullable:
        return sa.Column(name, sa.DateTime(timezone=True), nullable=True)
    return sa.Column(
        name,
        sa.DateTime(timezone=True),
        server_default=sa.text("now()"),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "agents",
        sa.Column("id", sa.String(255), primary_key=True),
        sa.Column("name", sa.Text(), nullable=False),
        sa.Column("platform", sa.Text(), nullable=False),
        sa.Column("human", sa.Text(), nullable=True),
        sa.Column("verified", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("api_key_hash", sa.Text(), nullable=True),
        sa.Column("reputation_score", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("trust_tier", sa.Text(), server_default=sa.text("'newcomer'"), nullable=False),
        sa.Column("tasks_completed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("tasks_failed", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("avg_review_rating", sa.Float(), server_default=sa.text("0"), nullable=False),
        sa.Column("review_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("vouch_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("vouched_by_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        _timestamp("registered_at"),
        _timestamp("updated_at"),
        _timestamp("last_activity_at", nullable=True),
        _timestamp("reputation_updated_at", nullable=True),
        sa.CheckConstraint(
            "reputation_score >= 0 AND reputation_score <= 100",
            name="ck_agent_reputation_range",
        ),
        sa.CheckConstraint(
            "trust_tier IN ('newcomer','trusted','established','elite')",
            name="ck_agent_trust_tier",
        ),
    )
    op.create_index("idx_agents_reputation", "agents", ["reputation_score"])
    op.create_index("idx_agents_trust_tier", "agents", ["trust_tier"])
    op.create_index("idx_agents_activity", "agents", ["last_activity_at"])
    op.create_index("idx_agents_api_key", "agents", ["api_key_hash"])

    op.create_table(
        "tasks",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("requester_id", sa.String(255), sa.ForeignKey("agents.id"), nullable=False),
        sa.Column("capability_needed", sa.Text(), nullable=False),
        sa.Column("status", sa.Text(), server_default=sa.text("'posted'"), nullable=False),
        sa.Column("claimed_by", sa.String(255), sa.ForeignKey("agents.id"), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.CheckConstraint(
            "status IN ('posted','claimed','delivered','complete','disputed')",
            name="ck_task_status",
        ),
    )
    op.create_index("idx_tasks_status", "tasks", ["status"])
    op.create_index("idx_tasks_requester", "tasks", ["requester_id"])
    op.create_index("idx_tasks_claimed_by", "tasks", ["claimed_by"])

    op.create_table(
        "vouches",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "voucher_id",
            sa.String(255),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "vouchee_id",
            sa.String(255),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("strength", sa.Integer(), server_default=sa.text("50"), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("category", sa.Text(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        _timestamp("expires_at", nullable=True),
        _timestamp("revoked_at", nullable=True),
        sa.CheckConstraint("strength BETWEEN 1 AND 100", name="ck_vouch_strength"),
        sa.CheckConstraint("voucher_id <> vouchee_id", name="ck_vouch_not_self"),
    )
    op.create_index(
        "uq_vouches_active_pair",
        "vouches",
        ["voucher_id", "vouchee_id"],
        unique=True,
        postgresql_where=sa.text("revoked_at IS NULL"),
    )
    op.create_index("idx_vouches_voucher", "vouches", ["voucher_id"])
    op.create_index("idx_vouches_vouchee", "vouches", ["vouchee_id"])
    op.create_index("idx_vouches_category", "vouches", ["category"])

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "task_id",
            sa.String(64),
            sa.ForeignKey("tasks.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "reviewer_id",
            sa.String(255),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "reviewee_id",
            sa.String(255),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.UniqueConstraint("task_id", "reviewer_id", name="uq_review_task_reviewer"),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),
    )
    op.create_index("idx_reviews_reviewee", "reviews", ["reviewee_id"])
    op.create_index("idx_reviews_task", "reviews", ["task_id"])

    op.create_table(
        "reputation_history",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "agent_id",
            sa.String(255),
            sa.ForeignKey("agents.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("components", JSONB(), nullable=False),
        sa.Column("trigger_type", sa.Text(), nullable=False),
        _timestamp("calculated_at"),
        sa.CheckConstraint(
            "trigger_type IN ('task','vouch','review','decay','manual')",
            name="ck_reputation_trigger",
        ),
    )
    op.create_index(
        "idx_reputation_history_agent", "reputation_history", ["agent_id", "calculated_at"]
    )

    op.create_table(
        "trust_paths",
        sa.Column("from_agent", sa.String(255), primary_key=True),
        sa.Column("to_agent", sa.String(255), primary_key=True),
        sa.Column("path", JSONB(), nullable=False),
        sa.Column("path_length", sa.Integer(), nullable=False),
        sa.Column("trust_score", sa.Float(), nullable=False),
        _timestamp("calculated_at"),
    )
    op.create_index("idx_trust_paths_time", "trust_paths", ["calculated_at"])


def downgrade() -> None:
    op.drop_index("idx_trust_paths_time", table_name="trust_paths")
    op.drop_table("trust_paths")
    op.drop_index("idx_reputation_history_agent", table_name="reputation_history")
    op.drop_table("reputation_history")
    op.drop_index("idx_reviews_task", table_name="reviews")
    op.drop_index("idx_reviews_reviewee", table_name="reviews")
    op.drop_table("reviews")
    op.drop_index("idx_vouches_category", table_name="vouches")
    op.drop_index("idx_vouches_vouchee", table_name="vouches")
    op.drop_index("idx_vouches_voucher", table_name="vouches")
    op.drop_index("uq_vouches_active_pair", table_name="vouches")
    op.drop_table("vouches")
    op.drop_index("idx_tasks_claimed_by", table_name="tasks")
    op.drop_index("idx_tasks_requester", table_name="tasks")
    op.drop_index("idx_tasks_status", table_name="tasks")
    op.drop_table("tasks")
    op.drop_index("idx_agents_api_key", table_name="agents")
    op.drop_index("idx_agents_activity", table_name="agents")
    op.drop_index("idx_agents_trust_tier", table_name="agents")
    op.drop_index("idx_agents_reputation", table_name="agents")
    op.drop_table("agents")
