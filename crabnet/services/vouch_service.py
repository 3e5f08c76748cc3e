"""Vouch ledger: give, revoke and list vouches between agents."""

from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet.config import get_settings
from crabnet.datetime_utils import ensure_utc, start_of_utc_day, utcnow
from crabnet.exceptions import (
    AccountTooNewError,
    InsufficientReputationError,
    RateLimitedError,
    SelfVouchError,
    TrustValidationError,
    VouchNotFoundError,
)
from crabnet.logging_config import get_logger
from crabnet.models import Agent, ReputationTrigger, Vouch, active_vouch_clause
from crabnet.services.circular_service import CircularCheck, detect_circular_vouch
from crabnet.services.maintenance_service import reconcile_vouch_counts
from crabnet.services.reputation_service import get_agent_or_raise, safe_recalculate

logger = get_logger(__name__)

VOUCH_DIRECTIONS = ("given", "received")


@dataclass
class VouchResult:
    vouch: Vouch
    # False when an existing edge was updated instead of a new one created
    created: bool
    circular: CircularCheck


async def _get_open_vouch(db: AsyncSession, voucher_id: str, vouchee_id: str) -> Vouch | None:
    """The non-revoked edge for a pair, expired or not."""
    result = await db.execute(
        select(Vouch).where(
            Vouch.voucher_id == voucher_id,
            Vouch.vouchee_id == vouchee_id,
            Vouch.revoked_at.is_(None),
        )
    )
    return result.scalar_one_or_none()


async def count_vouches_since(db: AsyncSession, voucher_id: str, since: datetime) -> int:
    result = await db.execute(
        select(func.count(Vouch.id)).where(
            Vouch.voucher_id == voucher_id,
            Vouch.created_at >= since,
            Vouch.revoked_at.is_(None),
        )
    )
    return result.scalar_one()


def _validate_vouch_input(strength: int, expires_in_days: int | None) -> None:
    if not 1 <= strength <= 100:
        raise TrustValidationError("strength", "must be between 1 and 100")
    if expires_in_days is not None and expires_in_days <= 0:
        raise TrustValidationError("expires_in_days", "must be a positive number of days")


async def give_vouch(
    db: AsyncSession,
    voucher_id: str,
    vouchee_id: str,
    strength: int | None = None,
    message: str | None = None,
    category: str | None = None,
    expires_in_days: int | None = None,
    now: datetime | None = None,
) -> VouchResult:
    """
    Create the vouch voucher -> vouchee, or update the existing one.

    All checks run before anything is written. A re-vouch replaces strength,
    message, category and expiry of the pair's existing edge and leaves the
    vouch counters untouched. Renewing an edge that has already expired counts
    as a new vouch for the daily rate limit and for vouch_count / vouched_by_count.

    Raises:
        TrustValidationError: strength or expiry out of range
        SelfVouchError: voucher and vouchee are the same agent
        AgentNotFoundError: either agent does not exist
        InsufficientReputationError: voucher below the minimum reputation
        AccountTooNewError: voucher registered too recently
        RateLimitedError: voucher already created the daily maximum of vouches
    """
    settings = get_settings()
    now = now or utcnow()
    if strength is None:
        strength = settings.default_vouch_strength

    _validate_vouch_input(strength, expires_in_days)
    if voucher_id == vouchee_id:
        raise SelfVouchError(voucher_id)

    voucher = await get_agent_or_raise(db, voucher_id)
    vouchee = await get_agent_or_raise(db, vouchee_id)

    if voucher.reputation_score < settings.min_voucher_reputation:
        raise InsufficientReputationError(
            settings.min_voucher_reputation, voucher.reputation_score
        )
    if now - ensure_utc(voucher.registered_at) < timedelta(hours=settings.min_account_age_hours):
        raise AccountTooNewError(settings.min_account_age_hours)

    vouch = await _get_open_vouch(db, voucher_id, vouchee_id)
    # an expired edge counts as a new vouch when it is renewed
    reactivated = (
        vouch is not None
        and vouch.expires_at is not None
        and ensure_utc(vouch.expires_at) <= now
    )
    if vouch is None or reactivated:
        issued_today = await count_vouches_since(db, voucher_id, start_of_utc_day(now))
        if issued_today >= settings.max_vouches_per_day:
            raise RateLimitedError(settings.max_vouches_per_day)

    expires_at = now + timedelta(days=expires_in_days) if expires_in_days else None

    created = False
    if vouch is None:
        new_vouch = Vouch(
            voucher_id=voucher_id,
            vouchee_id=vouchee_id,
            strength=strength,
            message=message,
            category=category,
            created_at=now,
            updated_at=now,
            expires_at=expires_at,
        )
        try:
            async with db.begin_nested():
                db.add(new_vouch)
                await db.flush()
            vouch = new_vouch
            created = True
        except IntegrityError:
            # A concurrent request created the edge first
            logger.info("vouch_insert_conflict", voucher_id=voucher_id, vouchee_id=vouchee_id)
            vouch = await _get_open_vouch(db, voucher_id, vouchee_id)
            if vouch is None:
                raise

    if created:
        voucher.vouch_count += 1
        vouchee.vouched_by_count += 1
    else:
        vouch.strength = strength
        vouch.message = message
        vouch.category = category
        vouch.expires_at = expires_at
        vouch.updated_at = now
        if reactivated:
            vouch.created_at = now

    voucher.last_activity_at = now
    vouchee.last_activity_at = now
    await db.flush()

    if reactivated:
        # the expired edge may or may not have been dropped from the counters yet
        await reconcile_vouch_counts(db, voucher, now)
        await reconcile_vouch_counts(db, vouchee, now)

    circular = await detect_circular_vouch(db, voucher_id, vouchee_id, now)

    if created:
        event = "vouch_created"
    elif reactivated:
        event = "vouch_reactivated"
    else:
        event = "vouch_updated"
    logger.info(
        event,
        voucher_id=voucher_id,
        vouchee_id=vouchee_id,
        strength=strength,
        category=category,
        circular=circular.circular,
    )

    await safe_recalculate(db, vouchee_id, ReputationTrigger.vouch.value, now)
    return VouchResult(vouch=vouch, created=created, circular=circular)


async def revoke_vouch(
    db: AsyncSession,
    voucher_id: str,
    vouchee_id: str,
    now: datetime | None = None,
) -> Vouch:
    """Revoke the active vouch voucher -> vouchee.

    Raises:
        VouchNotFoundError: no active vouch exists for the pair
    """
    now = now or utcnow()
    result = await db.execute(
        select(Vouch).where(
            Vouch.voucher_id == voucher_id,
            Vouch.vouchee_id == vouchee_id,
            active_vouch_clause(now),
        )
    )
    vouch = result.scalar_one_or_none()
    if vouch is None:
        raise VouchNotFoundError(voucher_id, vouchee_id)

    vouch.revoked_at = now
    vouch.updated_at = now

    voucher = await db.get(Agent, voucher_id)
    vouchee = await db.get(Agent, vouchee_id)
    if voucher is not None:
        voucher.vouch_count = max(voucher.vouch_count - 1, 0)
        voucher.last_activity_at = now
    if vouchee is not None:
        vouchee.vouched_by_count = max(vouchee.vouched_by_count - 1, 0)
    await db.flush()

    logger.info("vouch_revoked", voucher_id=voucher_id, vouchee_id=vouchee_id)

    await safe_recalculate(db, vouchee_id, ReputationTrigger.vouch.value, now)
    return vouch


async def list_vouches(
    db: AsyncSession,
    agent_id: str,
    direction: str = "received",
    active_only: bool = True,
    now: datetime | None = None,
) -> list[Vouch]:
    """Vouches given or received by an agent, newest first."""
    if direction not in VOUCH_DIRECTIONS:
        raise TrustValidationError("direction", "must be 'given' or 'received'")
    await get_agent_or_raise(db, agent_id)

    column = Vouch.voucher_id if direction == "given" else Vouch.vouchee_id
    query = select(Vouch).where(column == agent_id)
    if active_only:
        query = query.where(active_vouch_clause(now or utcnow()))
    query = query.order_by(Vouch.created_at.desc(), Vouch.id)

    result = await db.execute(query)
    return list(result.scalars().all())
