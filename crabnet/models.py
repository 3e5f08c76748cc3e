"""SQLAlchemy ORM models for the trust subsystem.

Column types are kept portable (no ARRAY / PG UUID) so the same schema runs on
PostgreSQL in production and SQLite in the test suite.
"""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import (
    JSON,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
    and_,
    or_,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import Boolean, DateTime, Float, Integer

from crabnet.datetime_utils import utcnow

JSONType = JSON().with_variant(JSONB(), "postgresql")


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    pass


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class TrustTier(str, enum.Enum):
    newcomer = "newcomer"
    trusted = "trusted"
    established = "established"
    elite = "elite"


class TaskStatus(str, enum.Enum):
    posted = "posted"
    claimed = "claimed"
    delivered = "delivered"
    complete = "complete"
    disputed = "disputed"


TERMINAL_TASK_STATUSES = frozenset({TaskStatus.complete.value, TaskStatus.disputed.value})


class ReputationTrigger(str, enum.Enum):
    task = "task"
    vouch = "vouch"
    review = "review"
    decay = "decay"
    manual = "manual"


# ---------------------------------------------------------------------------
# Agents
# ---------------------------------------------------------------------------


class Agent(Base):
    __tablename__ = "agents"
    __table_args__ = (
        Index("idx_agents_reputation", "reputation_score"),
        Index("idx_agents_trust_tier", "trust_tier"),
        Index("idx_agents_activity", "last_activity_at"),
        Index("idx_agents_api_key", "api_key_hash"),
        CheckConstraint(
            "reputation_score >= 0 AND reputation_score <= 100",
            name="ck_agent_reputation_range",
        ),
        CheckConstraint(
            "trust_tier IN ('newcomer','trusted','established','elite')",
            name="ck_agent_trust_tier",
        ),
    )

    # Opaque identifier, e.g. "name@platform"
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    platform: Mapped[str] = mapped_column(Text, nullable=False)
    human: Mapped[str | None] = mapped_column(Text)
    verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    api_key_hash: Mapped[str | None] = mapped_column(Text)

    reputation_score: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    trust_tier: Mapped[str] = mapped_column(
        Text, nullable=False, default=TrustTier.newcomer.value, server_default=text("'newcomer'")
    )
    tasks_completed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    tasks_failed: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    avg_review_rating: Mapped[float] = mapped_column(
        Float, nullable=False, default=0.0, server_default=text("0")
    )
    review_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    vouch_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    vouched_by_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )

    registered_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    last_activity_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    reputation_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


# ---------------------------------------------------------------------------
# Tasks (owned by the task lifecycle; read here for review eligibility)
# ---------------------------------------------------------------------------


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        Index("idx_tasks_status", "status"),
        Index("idx_tasks_requester", "requester_id"),
        Index("idx_tasks_claimed_by", "claimed_by"),
        CheckConstraint(
            "status IN ('posted','claimed','delivered','complete','disputed')",
            name="ck_task_status",
        ),
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    requester_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("agents.id"), nullable=False
    )
    capability_needed: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(
        Text, nullable=False, default=TaskStatus.posted.value, server_default=text("'posted'")
    )
    claimed_by: Mapped[str | None] = mapped_column(String(255), ForeignKey("agents.id"))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


# ---------------------------------------------------------------------------
# Vouches (edges of the isnad graph)
# ---------------------------------------------------------------------------


class Vouch(Base):
    __tablename__ = "vouches"
    __table_args__ = (
        # At most one non-revoked edge per ordered pair
        Index(
            "uq_vouches_active_pair",
            "voucher_id",
            "vouchee_id",
            unique=True,
            postgresql_where=text("revoked_at IS NULL"),
            sqlite_where=text("revoked_at IS NULL"),
        ),
        Index("idx_vouches_voucher", "voucher_id"),
        Index("idx_vouches_vouchee", "vouchee_id"),
        Index("idx_vouches_category", "category"),
        CheckConstraint("strength BETWEEN 1 AND 100", name="ck_vouch_strength"),
        CheckConstraint("voucher_id <> vouchee_id", name="ck_vouch_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    voucher_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    vouchee_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    strength: Mapped[int] = mapped_column(
        Integer, nullable=False, default=50, server_default=text("50")
    )
    message: Mapped[str | None] = mapped_column(Text)
    category: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


class Review(Base):
    __tablename__ = "reviews"
    __table_args__ = (
        UniqueConstraint("task_id", "reviewer_id", name="uq_review_task_reviewer"),
        Index("idx_reviews_reviewee", "reviewee_id"),
        Index("idx_reviews_task", "task_id"),
        CheckConstraint("rating BETWEEN 1 AND 5", name="ck_review_rating"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    task_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False
    )
    reviewer_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    reviewee_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    rating: Mapped[int] = mapped_column(Integer, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


# ---------------------------------------------------------------------------
# Reputation history (append-only audit trail)
# ---------------------------------------------------------------------------


class ReputationHistory(Base):
    __tablename__ = "reputation_history"
    __table_args__ = (
        Index("idx_reputation_history_agent", "agent_id", "calculated_at"),
        CheckConstraint(
            "trigger_type IN ('task','vouch','review','decay','manual')",
            name="ck_reputation_trigger",
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    agent_id: Mapped[str] = mapped_column(
        String(255), ForeignKey("agents.id", ondelete="CASCADE"), nullable=False
    )
    score: Mapped[int] = mapped_column(Integer, nullable=False)
    components: Mapped[dict] = mapped_column(JSONType, nullable=False)
    trigger_type: Mapped[str] = mapped_column(Text, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


# ---------------------------------------------------------------------------
# Trust path cache
# ---------------------------------------------------------------------------


class TrustPath(Base):
    __tablename__ = "trust_paths"
    __table_args__ = (Index("idx_trust_paths_time", "calculated_at"),)

    from_agent: Mapped[str] = mapped_column(String(255), primary_key=True)
    to_agent: Mapped[str] = mapped_column(String(255), primary_key=True)
    path: Mapped[list] = mapped_column(JSONType, nullable=False)
    path_length: Mapped[int] = mapped_column(Integer, nullable=False)
    trust_score: Mapped[float] = mapped_column(Float, nullable=False)
    calculated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow
    )


def active_vouch_clause(now: datetime):
    """SQL condition selecting vouches that are neither revoked nor expired at ``now``."""
    return and_(
        Vouch.revoked_at.is_(None),
        or_(Vouch.expires_at.is_(None), Vouch.expires_at > now),
    )
