"""Review endpoints: rate the other participant of a finished task."""

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.auth import get_current_agent
from crabnet.database import get_db
from crabnet.exceptions import TrustServiceError, raise_http_exception
from crabnet.models import Agent
from crabnet.schemas import ReviewCreateRequest, ReviewResponse
from crabnet.services.review_service import submit_review

router = APIRouter(prefix="/api/tasks", tags=["reviews"])


@router.post(
    "/{task_id}/reviews",
    response_model=ReviewResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_review(
    task_id: str,
    body: ReviewCreateRequest,
    db: AsyncSession = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
):
    try:
        review = await submit_review(
            db,
            task_id=task_id,
            reviewer_id=agent.id,
            rating=body.rating,
            comment=body.comment,
        )
    except TrustServiceError as e:
        raise_http_exception(e)
    await db.commit()
    return review
