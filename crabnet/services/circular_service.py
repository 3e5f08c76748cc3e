"""Circular vouch detection.

A vouch voucher -> vouchee is circular when the vouchee already vouches back
(mutual) or when the voucher sits on a short cycle of active vouches, whether
that cycle runs through the vouchee or through another agent the voucher
vouches for (ring). Detection never blocks a vouch; it only reports how much
of the vouch's strength should count toward the vouchee's reputation.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Final

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.datetime_utils import utcnow
from crabnet.logging_config import get_logger
from crabnet.models import Vouch, active_vouch_clause

logger = get_logger(__name__)

MUTUAL_PENALTY: Final[float] = 0.5
RING_PENALTY: Final[float] = 0.3
MAX_RING_SIZE: Final[int] = 4

OutboundIdsFetcher = Callable[[str], Awaitable[Iterable[str]]]


@dataclass(frozen=True, slots=True)
class CircularCheck:
    """Result of a circular vouch check.

    ``penalty`` is the fraction of the vouch strength that is retained.
    """

    circular: bool
    type: str | None = None
    penalty: float = 1.0
    ring_size: int | None = None
    cycle: tuple[str, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"circular": self.circular, "penalty": self.penalty}
        if self.type:
            data["type"] = self.type
        if self.ring_size is not None:
            data["ring_size"] = self.ring_size
            data["cycle"] = list(self.cycle)
        return data


NOT_CIRCULAR = CircularCheck(circular=False)


async def detect_circular(
    voucher_id: str,
    vouchee_id: str,
    fetch_outbound: OutboundIdsFetcher,
    max_ring_size: int = MAX_RING_SIZE,
) -> CircularCheck:
    """
    Check whether the voucher vouches from inside a vouching cycle.

    Mutual vouching with the vouchee is checked first. Otherwise the shortest
    chain of active vouches leaving the voucher (through the vouchee or any
    other agent it vouches for) and returning to it is searched breadth-first;
    a ring is reported when that cycle has at most ``max_ring_size`` edges.
    """
    vouchee_outbound = list(dict.fromkeys(await fetch_outbound(vouchee_id)))
    if voucher_id in vouchee_outbound:
        return CircularCheck(
            circular=True,
            type="mutual",
            penalty=MUTUAL_PENALTY,
            ring_size=2,
            cycle=(voucher_id, vouchee_id),
        )

    # the edge being checked may not be stored yet, so the vouchee is always a first hop
    first_hops = [
        agent_id
        for agent_id in dict.fromkeys([vouchee_id, *await fetch_outbound(voucher_id)])
        if agent_id != voucher_id
    ]

    # every path starts at the voucher; closing it back yields len(path) edges
    visited = {voucher_id, *first_hops}
    queue: deque[tuple[list[str], Iterable[str]]] = deque()
    for hop in first_hops:
        outbound = vouchee_outbound if hop == vouchee_id else await fetch_outbound(hop)
        queue.append(([voucher_id, hop], outbound))

    while queue:
        path, outbound = queue.popleft()
        for next_id in outbound:
            if next_id == voucher_id:
                return CircularCheck(
                    circular=True,
                    type="ring",
                    penalty=RING_PENALTY,
                    ring_size=len(path),
                    cycle=tuple(path),
                )
            if next_id in visited or len(path) + 1 > max_ring_size:
                continue
            visited.add(next_id)
            next_path = [*path, next_id]
            queue.append((next_path, await fetch_outbound(next_id)))

    return NOT_CIRCULAR


async def fetch_outbound_ids(db: AsyncSession, agent_id: str, now: datetime) -> list[str]:
    """Vouchee ids of the agent's active outbound vouches."""
    result = await db.execute(
        select(Vouch.vouchee_id)
        .where(Vouch.voucher_id == agent_id, active_vouch_clause(now))
        .order_by(Vouch.created_at, Vouch.id)
    )
    return list(result.scalars().all())


async def detect_circular_vouch(
    db: AsyncSession,
    voucher_id: str,
    vouchee_id: str,
    now: datetime | None = None,
) -> CircularCheck:
    """Run circular detection for voucher -> vouchee against the live vouch graph."""
    now = now or utcnow()
    check = await detect_circular(
        voucher_id,
        vouchee_id,
        lambda agent_id: fetch_outbound_ids(db, agent_id, now),
    )
    if check.circular:
        logger.info(
            "circular_vouch_detected",
            voucher_id=voucher_id,
            vouchee_id=vouchee_id,
            circular_type=check.type,
            ring_size=check.ring_size,
            penalty=check.penalty,
        )
    return check


__all__ = [
    "MUTUAL_PENALTY",
    "RING_PENALTY",
    "MAX_RING_SIZE",
    "CircularCheck",
    "detect_circular",
    "detect_circular_vouch",
    "fetch_outbound_ids",
]
