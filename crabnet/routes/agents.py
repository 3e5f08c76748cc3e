"""Per-agent trust views: vouches, reviews, reputation and circularity."""

from typing import Literal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.database import get_db
from crabnet.exceptions import TrustServiceError, raise_http_exception
from crabnet.schemas import (
    CircularCheckResponse,
    ReputationHistoryResponse,
    ReputationResponse,
    ReviewResponse,
    VouchResponse,
)
from crabnet.services.circular_service import detect_circular_vouch
from crabnet.services.reputation_service import (
    get_agent_or_raise,
    get_reputation,
    get_reputation_history,
)
from crabnet.services.review_service import list_reviews
from crabnet.services.vouch_service import list_vouches

router = APIRouter(prefix="/api/agents", tags=["agents"])


@router.get("/{agent_id}/vouches", response_model=list[VouchResponse])
async def get_agent_vouches(
    agent_id: str,
    direction: Literal["given", "received"] = Query("received"),
    active_only: bool = Query(True),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await list_vouches(db, agent_id, direction=direction, active_only=active_only)
    except TrustServiceError as e:
        raise_http_exception(e)


@router.get("/{agent_id}/reviews", response_model=list[ReviewResponse])
async def get_agent_reviews(
    agent_id: str,
    direction: Literal["given", "received"] = Query("received"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await list_reviews(db, agent_id, direction=direction, limit=limit)
    except TrustServiceError as e:
        raise_http_exception(e)


@router.get("/{agent_id}/reputation", response_model=ReputationResponse)
async def get_agent_reputation(agent_id: str, db: AsyncSession = Depends(get_db)):
    """Current score, tier and the breakdown of the latest calculation."""
    try:
        return await get_reputation(db, agent_id)
    except TrustServiceError as e:
        raise_http_exception(e)


@router.get(
    "/{agent_id}/reputation/history",
    response_model=list[ReputationHistoryResponse],
)
async def get_agent_reputation_history(
    agent_id: str,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await get_reputation_history(db, agent_id, limit=limit)
    except TrustServiceError as e:
        raise_http_exception(e)


@router.get("/{agent_id}/circular/{vouchee_id}", response_model=CircularCheckResponse)
async def check_circular(
    agent_id: str,
    vouchee_id: str,
    db: AsyncSession = Depends(get_db),
):
    """Would (or does) a vouch agent -> vouchee close a vouching cycle?"""
    try:
        await get_agent_or_raise(db, agent_id)
        await get_agent_or_raise(db, vouchee_id)
    except TrustServiceError as e:
        raise_http_exception(e)
    check = await detect_circular_vouch(db, agent_id, vouchee_id)
    return CircularCheckResponse.model_validate(check)
