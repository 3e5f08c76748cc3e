"""API key authentication for agents.

Keys are issued by the agent registry; this service only stores their SHA-256
hash on the agent row and resolves ``Authorization: Bearer <key>`` to an Agent.
"""

import hashlib
import secrets

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.database import get_db
from crabnet.logging_config import bind_request_context, get_logger
from crabnet.models import Agent

logger = get_logger(__name__)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def extract_bearer_token(header: str | None) -> str | None:
    """The key from an ``Authorization`` header, or None if absent or malformed."""
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    return token.strip() or None


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_agent(
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Agent:
    """FastAPI dependency resolving the calling agent; 401 on a missing or unknown key."""
    token = extract_bearer_token(request.headers.get("Authorization"))
    if token is None:
        raise _unauthorized("Missing or malformed Authorization header")

    key_hash = hash_token(token)
    result = await db.execute(select(Agent).where(Agent.api_key_hash == key_hash))
    agent = result.scalar_one_or_none()

    # compare_digest keeps the final check constant time
    if agent is None or not secrets.compare_digest(agent.api_key_hash or "", key_hash):
        logger.info("auth_rejected", path=request.url.path)
        raise _unauthorized("Invalid API key")

    request_id = getattr(request.state, "request_id", None) or secrets.token_hex(8)
    bind_request_context(request_id, agent.id)
    return agent
