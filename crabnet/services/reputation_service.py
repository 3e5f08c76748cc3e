"""Reputation service: gather signals, recompute scores and keep the audit trail."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.datetime_utils import utcnow
from crabnet.exceptions import AgentNotFoundError, TrustValidationError
from crabnet.logging_config import get_logger
from crabnet.models import Agent, ReputationHistory, ReputationTrigger, Vouch, active_vouch_clause
from crabnet.services.circular_service import detect_circular_vouch
from crabnet.services.reputation_calculator import (
    ReputationResult,
    ReputationSignals,
    VouchSignal,
    get_reputation_calculator,
)

logger = get_logger(__name__)

COMPONENT_NAMES = ("task", "review", "vouch", "age")


@dataclass
class ReputationSnapshot:
    """Current reputation of an agent as exposed to callers."""

    agent_id: str
    score: int
    tier: str
    breakdown: dict[str, Any]
    last_calculated: datetime | None


async def get_agent_or_raise(db: AsyncSession, agent_id: str) -> Agent:
    agent = await db.get(Agent, agent_id)
    if agent is None:
        raise AgentNotFoundError(agent_id)
    return agent


async def gather_signals(db: AsyncSession, agent: Agent, now: datetime) -> ReputationSignals:
    """Collect the task, review, vouch and age inputs for one agent.

    Each received vouch is checked for circularity again, so a penalty follows
    the current shape of the graph rather than the one at vouch time.
    """
    result = await db.execute(
        select(Vouch, Agent.reputation_score, Agent.verified)
        .join(Agent, Agent.id == Vouch.voucher_id)
        .where(Vouch.vouchee_id == agent.id, active_vouch_clause(now))
        .order_by(Vouch.created_at, Vouch.id)
    )

    vouches: list[VouchSignal] = []
    for vouch, voucher_reputation, voucher_verified in result.all():
        check = await detect_circular_vouch(db, vouch.voucher_id, agent.id, now)
        vouches.append(
            VouchSignal(
                strength=vouch.strength,
                voucher_reputation=voucher_reputation,
                voucher_verified=bool(voucher_verified),
                vouched_at=vouch.updated_at,
                penalty=check.penalty,
                voucher_id=vouch.voucher_id,
            )
        )

    return ReputationSignals(
        tasks_completed=agent.tasks_completed,
        tasks_failed=agent.tasks_failed,
        avg_review_rating=float(agent.avg_review_rating or 0.0),
        review_count=agent.review_count,
        vouches=tuple(vouches),
        registered_at=agent.registered_at,
        last_activity_at=agent.last_activity_at,
    )


async def calculate_for_agent(db: AsyncSession, agent: Agent, now: datetime) -> ReputationResult:
    """Compute an agent's reputation from the ledgers without writing anything."""
    signals = await gather_signals(db, agent, now)
    return get_reputation_calculator().calculate(signals, now)


async def calculate_reputation(
    db: AsyncSession, agent_id: str, now: datetime | None = None
) -> ReputationResult:
    agent = await get_agent_or_raise(db, agent_id)
    return await calculate_for_agent(db, agent, now or utcnow())


async def record_reputation(
    db: AsyncSession,
    agent: Agent,
    score: int,
    tier: str,
    components: dict[str, Any],
    trigger: str,
    now: datetime,
) -> ReputationHistory:
    """Store a score on the agent and append the matching history entry."""
    previous_score = agent.reputation_score
    agent.reputation_score = score
    agent.trust_tier = tier
    agent.reputation_updated_at = now
    agent.updated_at = now

    entry = ReputationHistory(
        agent_id=agent.id,
        score=score,
        components=components,
        trigger_type=trigger,
        calculated_at=now,
    )
    db.add(entry)
    await db.flush()

    logger.info(
        "reputation_recalculated",
        agent_id=agent.id,
        trigger=trigger,
        previous_score=previous_score,
        score=score,
        tier=tier,
    )
    return entry


async def recalculate_reputation(
    db: AsyncSession,
    agent_id: str,
    trigger: str = ReputationTrigger.manual.value,
    now: datetime | None = None,
) -> ReputationResult:
    """Recompute, store and log an agent's reputation (live path, no decay)."""
    now = now or utcnow()
    agent = await get_agent_or_raise(db, agent_id)
    result = await calculate_for_agent(db, agent, now)
    await record_reputation(db, agent, result.score, result.tier, result.breakdown(), trigger, now)
    return result


async def safe_recalculate(
    db: AsyncSession,
    agent_id: str,
    trigger: str,
    now: datetime | None = None,
) -> ReputationResult | None:
    """Recompute after a mutation; a failure is logged and rolled back on its own.

    The mutation that triggered the recompute stays in the session either way.
    The next maintenance run reconciles a score that could not be updated here.
    """
    try:
        async with db.begin_nested():
            return await recalculate_reputation(db, agent_id, trigger, now)
    except Exception:
        logger.exception("reputation_recompute_failed", agent_id=agent_id, trigger=trigger)
        return None


async def record_task_outcome(
    db: AsyncSession,
    agent_id: str,
    success: bool,
    now: datetime | None = None,
) -> Agent:
    """Count a finished task for an agent and refresh its reputation."""
    now = now or utcnow()
    agent = await get_agent_or_raise(db, agent_id)
    if success:
        agent.tasks_completed += 1
    else:
        agent.tasks_failed += 1
    agent.last_activity_at = now
    agent.updated_at = now
    await db.flush()

    logger.info(
        "task_outcome_recorded",
        agent_id=agent_id,
        success=success,
        tasks_completed=agent.tasks_completed,
        tasks_failed=agent.tasks_failed,
    )

    await safe_recalculate(db, agent_id, ReputationTrigger.task.value, now)
    return agent


async def get_reputation(
    db: AsyncSession, agent_id: str, now: datetime | None = None
) -> ReputationSnapshot:
    """Stored score and tier with the breakdown of the latest calculation.

    Agents that were never scored get a live breakdown (nothing is written).
    """
    agent = await get_agent_or_raise(db, agent_id)

    latest = (
        await db.execute(
            select(ReputationHistory)
            .where(ReputationHistory.agent_id == agent_id)
            .order_by(ReputationHistory.calculated_at.desc())
            .limit(1)
        )
    ).scalar_one_or_none()

    if latest is not None:
        breakdown = {k: v for k, v in latest.components.items() if k in COMPONENT_NAMES}
    else:
        breakdown = (await calculate_for_agent(db, agent, now or utcnow())).breakdown()

    return ReputationSnapshot(
        agent_id=agent.id,
        score=agent.reputation_score,
        tier=agent.trust_tier,
        breakdown=breakdown,
        last_calculated=agent.reputation_updated_at,
    )


async def get_reputation_history(
    db: AsyncSession, agent_id: str, limit: int = 50
) -> list[ReputationHistory]:
    """Newest-first reputation audit trail."""
    if limit < 1 or limit > 500:
        raise TrustValidationError("limit", "must be between 1 and 500")
    await get_agent_or_raise(db, agent_id)

    result = await db.execute(
        select(ReputationHistory)
        .where(ReputationHistory.agent_id == agent_id)
        .order_by(ReputationHistory.calculated_at.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
