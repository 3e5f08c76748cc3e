"""Background scheduler for the daily trust maintenance job.

Runs as an asyncio task during the application lifespan. Overlapping runs are
prevented by an in-process lock and, when Redis is available, by a Redis lock
shared by every process of the deployment.
"""

import asyncio
from uuid import uuid4

from redis.asyncio import Redis
from redis.exceptions import RedisError

from crabnet.config import get_settings
from crabnet.database import get_db_session
from crabnet.logging_config import get_logger
from crabnet.redis import acquire_lock, get_redis, release_lock
from crabnet.services.maintenance_service import MaintenanceResult, run_maintenance

logger = get_logger(__name__)

MAINTENANCE_LOCK = "trust_maintenance"

_local_lock = asyncio.Lock()


async def _acquire_shared_lock(owner: str, ttl_seconds: int) -> tuple[bool, Redis | None]:
    """
    Take the deployment-wide maintenance lock.

    Returns ``(acquired, redis)``; ``redis`` is None when the run is guarded by
    the in-process lock only, because Redis was never connected or is unreachable.
    """
    try:
        redis = get_redis()
    except RuntimeError:
        return True, None

    try:
        acquired = await acquire_lock(redis, MAINTENANCE_LOCK, owner, ttl_seconds)
    except RedisError as e:
        logger.warning("maintenance_lock_unavailable", error=str(e))
        return True, None
    return acquired, redis


async def run_maintenance_cycle() -> MaintenanceResult | None:
    """Single cycle. Returns None when another run holds the lock."""
    settings = get_settings()
    if _local_lock.locked():
        logger.info("maintenance_skipped", reason="already_running")
        return None

    async with _local_lock:
        owner = str(uuid4())
        acquired, redis = await _acquire_shared_lock(
            owner, settings.maintenance_lock_ttl_seconds
        )
        if not acquired:
            logger.info("maintenance_skipped", reason="locked_elsewhere")
            return None

        try:
            async with get_db_session() as session:
                return await run_maintenance(session)
        finally:
            if redis is not None:
                try:
                    await release_lock(redis, MAINTENANCE_LOCK, owner)
                except RedisError as e:
                    # the lock expires on its own after the TTL
                    logger.warning("maintenance_lock_release_failed", error=str(e))


async def scheduler_loop(stop_event: asyncio.Event):
    """Main scheduler loop. Runs until stop_event is set."""
    settings = get_settings()
    interval = settings.maintenance_interval_hours * 3600
    logger.info("scheduler_started", interval_hours=settings.maintenance_interval_hours)

    while not stop_event.is_set():
        try:
            await run_maintenance_cycle()
        except Exception:
            logger.exception("scheduler_cycle_error")

        # Wait for the interval or until stopped
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval)
            break  # stop_event was set
        except asyncio.TimeoutError:
            pass  # Interval elapsed, run again

    logger.info("scheduler_stopped")


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

_scheduler_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


async def start_scheduler() -> None:
    """Start the maintenance scheduler as a background task."""
    global _scheduler_task, _stop_event
    _stop_event = asyncio.Event()
    _scheduler_task = asyncio.create_task(scheduler_loop(_stop_event))


async def stop_scheduler() -> None:
    """Stop the maintenance scheduler gracefully."""
    global _scheduler_task, _stop_event
    if _stop_event is not None:
        _stop_event.set()
    if _scheduler_task is not None:
        _scheduler_task.cancel()
        try:
            await _scheduler_task
        except asyncio.CancelledError:
            pass
    _scheduler_task = None
    _stop_event = None
