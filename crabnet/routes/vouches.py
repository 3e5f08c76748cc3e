"""Vouch endpoints: give and revoke vouches as the authenticated agent."""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.auth import get_current_agent
from crabnet.database import get_db
from crabnet.exceptions import TrustServiceError, raise_http_exception
from crabnet.models import Agent
from crabnet.schemas import (
    CircularCheckResponse,
    VouchCreateRequest,
    VouchCreateResponse,
    VouchResponse,
)
from crabnet.services.vouch_service import give_vouch, revoke_vouch

router = APIRouter(prefix="/api/vouches", tags=["vouches"])


@router.post("", response_model=VouchCreateResponse)
async def create_vouch(
    body: VouchCreateRequest,
    db: AsyncSession = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
):
    """Vouch for another agent. Re-vouching updates the existing vouch."""
    try:
        result = await give_vouch(
            db,
            voucher_id=agent.id,
            vouchee_id=body.vouchee_id,
            strength=body.strength,
            message=body.message,
            category=body.category,
            expires_in_days=body.expires_in_days,
        )
    except TrustServiceError as e:
        raise_http_exception(e)
    await db.commit()

    return VouchCreateResponse(
        vouch=VouchResponse.model_validate(result.vouch),
        created=result.created,
        circular=CircularCheckResponse.model_validate(result.circular),
    )


@router.delete("/{vouchee_id}", response_model=VouchResponse)
async def delete_vouch(
    vouchee_id: str,
    db: AsyncSession = Depends(get_db),
    agent: Agent = Depends(get_current_agent),
):
    """Revoke the caller's active vouch for an agent."""
    try:
        vouch = await revoke_vouch(db, voucher_id=agent.id, vouchee_id=vouchee_id)
    except TrustServiceError as e:
        raise_http_exception(e)
    await db.commit()
    return vouch
