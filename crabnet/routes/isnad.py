"""Isnad chain lookups between agents."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.database import get_db
from crabnet.exceptions import TrustServiceError, raise_http_exception
from crabnet.schemas import TrustPathResponse
from crabnet.services.isnad_service import find_path

router = APIRouter(prefix="/api/isnad", tags=["isnad"])


@router.get("/{from_agent_id}/{to_agent_id}", response_model=TrustPathResponse)
async def get_trust_path(
    from_agent_id: str,
    to_agent_id: str,
    max_depth: int | None = Query(None),
    db: AsyncSession = Depends(get_db),
):
    """Shortest vouch chain from one agent to another."""
    try:
        result = await find_path(db, from_agent_id, to_agent_id, max_depth=max_depth)
    except TrustServiceError as e:
        raise_http_exception(e)
    # New chains are written to the path cache
    await db.commit()

    return TrustPathResponse(
        from_agent=from_agent_id,
        to_agent=to_agent_id,
        path=list(result.path),
        length=result.length,
        trust=round(result.trust, 4),
        connected=result.connected,
        cached=result.cached,
    )
