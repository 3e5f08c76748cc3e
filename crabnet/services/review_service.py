"""Review ledger: task-scoped peer ratings."""

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.datetime_utils import utcnow
from crabnet.exceptions import (
    DuplicateReviewError,
    InvalidTaskStateError,
    NotParticipantError,
    TaskNotFoundError,
    TrustValidationError,
)
from crabnet.logging_config import get_logger
from crabnet.models import TERMINAL_TASK_STATUSES, Agent, ReputationTrigger, Review, Task
from crabnet.services.reputation_service import get_agent_or_raise, safe_recalculate

logger = get_logger(__name__)

REVIEW_DIRECTIONS = ("given", "received")


async def _has_reviewed(db: AsyncSession, task_id: str, reviewer_id: str) -> bool:
    result = await db.execute(
        select(Review.id).where(Review.task_id == task_id, Review.reviewer_id == reviewer_id)
    )
    return result.first() is not None


async def refresh_review_stats(db: AsyncSession, agent: Agent) -> None:
    """Recompute an agent's average rating and review count from the ledger."""
    result = await db.execute(
        select(func.avg(Review.rating), func.count(Review.id)).where(
            Review.reviewee_id == agent.id
        )
    )
    avg_rating, review_count = result.one()
    agent.avg_review_rating = float(avg_rating) if avg_rating is not None else 0.0
    agent.review_count = review_count


async def submit_review(
    db: AsyncSession,
    task_id: str,
    reviewer_id: str,
    rating: int,
    comment: str | None = None,
    now: datetime | None = None,
) -> Review:
    """
    Rate the other participant of a finished task.

    The reviewee is whichever of requester / claimer is not the reviewer.

    Raises:
        TrustValidationError: rating outside 1..5
        TaskNotFoundError: task does not exist
        InvalidTaskStateError: task not complete or disputed
        NotParticipantError: reviewer neither requested nor claimed the task
        DuplicateReviewError: reviewer already reviewed this task
    """
    now = now or utcnow()
    if not 1 <= rating <= 5:
        raise TrustValidationError("rating", "must be between 1 and 5")

    task = await db.get(Task, task_id)
    if task is None:
        raise TaskNotFoundError(task_id)
    if task.status not in TERMINAL_TASK_STATUSES or task.claimed_by is None:
        raise InvalidTaskStateError(task_id, task.status)
    if reviewer_id not in (task.requester_id, task.claimed_by):
        raise NotParticipantError(reviewer_id, task_id)
    if await _has_reviewed(db, task_id, reviewer_id):
        raise DuplicateReviewError(reviewer_id, task_id)

    reviewee_id = task.claimed_by if reviewer_id == task.requester_id else task.requester_id
    reviewer = await get_agent_or_raise(db, reviewer_id)
    reviewee = await get_agent_or_raise(db, reviewee_id)

    review = Review(
        task_id=task_id,
        reviewer_id=reviewer_id,
        reviewee_id=reviewee_id,
        rating=rating,
        comment=comment,
        created_at=now,
    )
    try:
        async with db.begin_nested():
            db.add(review)
            await db.flush()
    except IntegrityError:
        # Lost a race against a concurrent review of the same task
        raise DuplicateReviewError(reviewer_id, task_id) from None

    await refresh_review_stats(db, reviewee)
    reviewee.last_activity_at = now
    reviewer.last_activity_at = now
    await db.flush()

    logger.info(
        "review_submitted",
        task_id=task_id,
        reviewer_id=reviewer_id,
        reviewee_id=reviewee_id,
        rating=rating,
        review_count=reviewee.review_count,
        avg_review_rating=reviewee.avg_review_rating,
    )

    await safe_recalculate(db, reviewee_id, ReputationTrigger.review.value, now)
    return review


async def list_reviews(
    db: AsyncSession,
    agent_id: str,
    direction: str = "received",
    limit: int = 100,
) -> list[Review]:
    """Reviews received or given by an agent, newest first."""
    if direction not in REVIEW_DIRECTIONS:
        raise TrustValidationError("direction", "must be 'given' or 'received'")
    await get_agent_or_raise(db, agent_id)

    column = Review.reviewer_id if direction == "given" else Review.reviewee_id
    result = await db.execute(
        select(Review)
        .where(column == agent_id)
        .order_by(Review.created_at.desc(), Review.id)
        .limit(limit)
    )
    return list(result.scalars().all())
