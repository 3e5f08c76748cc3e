"""Isnad chains: trust paths through the vouch graph.

The path finder runs a breadth-first search over active vouch edges, fetching
each agent's outbound edges on demand, so the returned chain always has the
fewest hops. Trust starts at 100 at the source and is multiplied along the
chain by each edge's trust and a depth decay of ``0.7 ** (depth - 1)``.

Successful results are cached in ``trust_paths`` for ``path_cache_ttl_seconds``.
Vouch changes do not purge the cache; a stale chain may be served until the
entry expires.
"""

from __future__ import annotations

import math
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Final

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.config import Settings, get_settings
from crabnet.datetime_utils import ensure_utc, utcnow
from crabnet.exceptions import AgentNotFoundError, TrustValidationError
from crabnet.logging_config import get_logger
from crabnet.models import Agent, TrustPath, Vouch, active_vouch_clause

logger = get_logger(__name__)

START_TRUST: Final[float] = 100.0
DEPTH_DECAY: Final[float] = 0.7
VERIFIED_EDGE_BONUS: Final[float] = 1.2
DEFAULT_MAX_DEPTH: Final[int] = 5


@dataclass(frozen=True, slots=True)
class TrustEdge:
    """An active outbound vouch as seen by the path finder."""

    vouchee_id: str
    strength: int
    vouchee_reputation: int
    vouchee_verified: bool


@dataclass(frozen=True, slots=True)
class TrustPathResult:
    path: tuple[str, ...]
    length: int
    trust: float
    connected: bool
    cached: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": list(self.path),
            "length": self.length,
            "trust": round(self.trust, 4),
            "connected": self.connected,
            "cached": self.cached,
        }


NO_PATH = TrustPathResult(path=(), length=-1, trust=0.0, connected=False)

EdgeFetcher = Callable[[str], Awaitable[list[TrustEdge]]]


def edge_trust(edge: TrustEdge) -> float:
    """Trust carried by one vouch: strength scaled by sqrt of the vouchee's reputation."""
    trust = (edge.strength / 100) * math.sqrt(max(edge.vouchee_reputation, 0) / 100)
    if edge.vouchee_verified:
        trust *= VERIFIED_EDGE_BONUS
    return trust


def depth_decay(depth: int) -> float:
    """1.0 at depth 1, 0.7 at depth 2, 0.49 at depth 3..."""
    return DEPTH_DECAY ** (depth - 1)


async def find_trust_path(
    source_id: str,
    target_id: str,
    fetch_outbound: EdgeFetcher,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> TrustPathResult:
    """
    Breadth-first search for the shortest vouch chain from source to target.

    Args:
        source_id: Agent the chain starts from
        target_id: Agent the chain must reach
        fetch_outbound: Returns the active outbound edges of an agent
        max_depth: Maximum number of hops in the chain

    Returns:
        TrustPathResult; ``connected`` is False when no chain exists within
        ``max_depth`` hops. Among chains of equal length the first one
        discovered wins, which is not necessarily the most trusted.
    """
    if source_id == target_id:
        return TrustPathResult(path=(source_id,), length=0, trust=START_TRUST, connected=True)

    visited = {source_id}
    queue: deque[tuple[str, tuple[str, ...], float]] = deque(
        [(source_id, (source_id,), START_TRUST)]
    )

    while queue:
        agent_id, path, trust = queue.popleft()
        depth = len(path)  # hops in the extended path

        for edge in await fetch_outbound(agent_id):
            if edge.vouchee_id in visited:
                continue

            new_path = (*path, edge.vouchee_id)
            new_trust = trust * edge_trust(edge) * depth_decay(depth)

            if edge.vouchee_id == target_id:
                return TrustPathResult(
                    path=new_path, length=depth, trust=new_trust, connected=True
                )

            visited.add(edge.vouchee_id)
            if depth < max_depth:
                queue.append((edge.vouchee_id, new_path, new_trust))

    return NO_PATH


async def fetch_outbound_edges(db: AsyncSession, agent_id: str, now: datetime) -> list[TrustEdge]:
    """Active outbound vouches of an agent joined with the vouchee's standing."""
    result = await db.execute(
        select(Vouch.vouchee_id, Vouch.strength, Agent.reputation_score, Agent.verified)
        .join(Agent, Agent.id == Vouch.vouchee_id)
        .where(Vouch.voucher_id == agent_id, active_vouch_clause(now))
        .order_by(Vouch.created_at, Vouch.id)
    )
    return [
        TrustEdge(
            vouchee_id=row.vouchee_id,
            strength=row.strength,
            vouchee_reputation=row.reputation_score,
            vouchee_verified=bool(row.verified),
        )
        for row in result.all()
    ]


def _validate_max_depth(max_depth: int, settings: Settings) -> None:
    if max_depth < 1 or max_depth > settings.max_depth_limit:
        raise TrustValidationError(
            "max_depth", f"must be between 1 and {settings.max_depth_limit}"
        )


async def _ensure_agents_exist(db: AsyncSession, *agent_ids: str) -> None:
    for agent_id in agent_ids:
        if await db.get(Agent, agent_id) is None:
            raise AgentNotFoundError(agent_id)


async def get_cached_path(
    db: AsyncSession,
    from_agent_id: str,
    to_agent_id: str,
    max_depth: int,
    now: datetime,
    ttl_seconds: int,
) -> TrustPathResult | None:
    """Return a fresh cache entry usable for ``max_depth``, or None."""
    entry = await db.get(TrustPath, (from_agent_id, to_agent_id))
    if entry is None:
        return None
    if now - ensure_utc(entry.calculated_at) >= timedelta(seconds=ttl_seconds):
        return None
    if entry.path_length > max_depth:
        return None
    return TrustPathResult(
        path=tuple(entry.path),
        length=entry.path_length,
        trust=entry.trust_score,
        connected=True,
        cached=True,
    )


async def store_path(db: AsyncSession, result: TrustPathResult, now: datetime) -> None:
    """Upsert a successful path into the cache."""
    from_agent_id, to_agent_id = result.path[0], result.path[-1]
    entry = await db.get(TrustPath, (from_agent_id, to_agent_id))
    if entry is None:
        entry = TrustPath(from_agent=from_agent_id, to_agent=to_agent_id)
        db.add(entry)
    entry.path = list(result.path)
    entry.path_length = result.length
    entry.trust_score = result.trust
    entry.calculated_at = now
    await db.flush()


async def find_path(
    db: AsyncSession,
    from_agent_id: str,
    to_agent_id: str,
    max_depth: int | None = None,
    now: datetime | None = None,
) -> TrustPathResult:
    """
    Find the isnad chain between two agents, serving from cache when fresh.

    Raises:
        TrustValidationError: max_depth outside 1..max_depth_limit
        AgentNotFoundError: either agent does not exist
    """
    settings = get_settings()
    now = now or utcnow()
    if max_depth is None:
        max_depth = settings.default_max_depth
    _validate_max_depth(max_depth, settings)
    await _ensure_agents_exist(db, from_agent_id, to_agent_id)

    if from_agent_id != to_agent_id:
        cached = await get_cached_path(
            db, from_agent_id, to_agent_id, max_depth, now, settings.path_cache_ttl_seconds
        )
        if cached is not None:
            logger.debug("trust_path_cache_hit", from_agent=from_agent_id, to_agent=to_agent_id)
            return cached

    result = await find_trust_path(
        from_agent_id,
        to_agent_id,
        lambda agent_id: fetch_outbound_edges(db, agent_id, now),
        max_depth=max_depth,
    )

    if result.connected and result.length > 0:
        await store_path(db, result, now)

    logger.info(
        "trust_path_computed",
        from_agent=from_agent_id,
        to_agent=to_agent_id,
        connected=result.connected,
        length=result.length,
        trust=round(result.trust, 4),
        max_depth=max_depth,
    )
    return result


__all__ = [
    "DEFAULT_MAX_DEPTH",
    "NO_PATH",
    "TrustEdge",
    "TrustPathResult",
    "depth_decay",
    "edge_trust",
    "fetch_outbound_edges",
    "find_path",
    "find_trust_path",
    "get_cached_path",
    "store_path",
]
