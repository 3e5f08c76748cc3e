"""Daily trust maintenance.

Three idempotent passes:

1. recompute every agent's reputation from the ledgers, reconcile its vouch
   counters, then apply inactivity decay to the resulting integer;
2. hard-delete vouches revoked or expired for longer than the retention window;
3. drop trust path cache entries older than the cache TTL.

A failure on one agent is logged and rolled back to its savepoint; the other
agents are still processed.
"""

from dataclasses import asdict, dataclass
from datetime import datetime, timedelta

from sqlalchemy import and_, delete, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.config import Settings, get_settings
from crabnet.datetime_utils import utcnow
from crabnet.logging_config import get_logger
from crabnet.models import Agent, ReputationTrigger, TrustPath, Vouch, active_vouch_clause
from crabnet.services.decay import apply_reputation_decay
from crabnet.services.reputation_calculator import compute_tier
from crabnet.services.reputation_service import (
    calculate_for_agent,
    get_agent_or_raise,
    record_reputation,
)

logger = get_logger(__name__)


@dataclass
class MaintenanceResult:
    agents_updated: int = 0
    agents_failed: int = 0
    vouches_pruned: int = 0
    cache_entries_pruned: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


async def reconcile_vouch_counts(db: AsyncSession, agent: Agent, now: datetime) -> None:
    """Reset vouch_count / vouched_by_count to the number of active edges."""
    given = await db.execute(
        select(func.count(Vouch.id)).where(Vouch.voucher_id == agent.id, active_vouch_clause(now))
    )
    received = await db.execute(
        select(func.count(Vouch.id)).where(Vouch.vouchee_id == agent.id, active_vouch_clause(now))
    )
    agent.vouch_count = given.scalar_one()
    agent.vouched_by_count = received.scalar_one()


async def maintain_agent(
    db: AsyncSession, agent_id: str, now: datetime, settings: Settings
) -> int:
    """Recompute-and-decay one agent. Returns the stored score."""
    agent = await get_agent_or_raise(db, agent_id)
    await reconcile_vouch_counts(db, agent, now)

    result = await calculate_for_agent(db, agent, now)
    decay = apply_reputation_decay(
        result.score,
        agent.last_activity_at or agent.registered_at,
        now,
        grace_days=settings.reputation_decay_grace_days,
        weekly_rate=settings.reputation_decay_weekly_rate,
        floor=settings.reputation_floor,
    )

    components = result.breakdown()
    components["decay"] = decay.to_dict()
    await record_reputation(
        db,
        agent,
        decay.new_score,
        compute_tier(decay.new_score),
        components,
        ReputationTrigger.decay.value,
        now,
    )
    return decay.new_score


async def prune_vouches(db: AsyncSession, now: datetime, retention_days: int) -> int:
    """Delete vouches revoked or expired before the retention cutoff."""
    cutoff = now - timedelta(days=retention_days)
    result = await db.execute(
        delete(Vouch).where(
            or_(
                and_(Vouch.revoked_at.is_not(None), Vouch.revoked_at < cutoff),
                and_(Vouch.expires_at.is_not(None), Vouch.expires_at < cutoff),
            )
        ),
        execution_options={"synchronize_session": "fetch"},
    )
    return result.rowcount or 0


async def prune_path_cache(db: AsyncSession, now: datetime, ttl_seconds: int) -> int:
    """Delete trust path cache entries older than the TTL."""
    cutoff = now - timedelta(seconds=ttl_seconds)
    result = await db.execute(
        delete(TrustPath).where(TrustPath.calculated_at < cutoff),
        execution_options={"synchronize_session": "fetch"},
    )
    return result.rowcount or 0


async def run_maintenance(db: AsyncSession, now: datetime | None = None) -> MaintenanceResult:
    """Run all maintenance passes and commit."""
    settings = get_settings()
    now = now or utcnow()
    outcome = MaintenanceResult()

    agent_ids = (await db.execute(select(Agent.id).order_by(Agent.id))).scalars().all()
    for agent_id in agent_ids:
        try:
            async with db.begin_nested():
                await maintain_agent(db, agent_id, now, settings)
            outcome.agents_updated += 1
        except Exception:
            outcome.agents_failed += 1
            logger.exception("maintenance_agent_failed", agent_id=agent_id)

    outcome.vouches_pruned = await prune_vouches(db, now, settings.vouch_retention_days)
    outcome.cache_entries_pruned = await prune_path_cache(
        db, now, settings.path_cache_ttl_seconds
    )
    await db.commit()

    logger.info("maintenance_complete", **outcome.to_dict())
    return outcome
