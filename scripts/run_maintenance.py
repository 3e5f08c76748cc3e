#!/usr/bin/env python3
"""
Run one trust maintenance cycle (reputation decay, vouch pruning, path cache cleanup).

Meant for cron or a one-off run when the in-process scheduler is disabled
(CRABNET_SCHEDULER_ENABLED=false).

Usage:
    python scripts/run_maintenance.py
    python scripts/run_maintenance.py --no-redis   # skip the cross-process lock
"""

import argparse
import asyncio
import json
import sys

from crabnet.config import get_settings
from crabnet.database import close_db
from crabnet.logging_config import configure_logging, get_logger
from crabnet.redis import close_redis, init_redis
from crabnet.services.scheduler_service import run_maintenance_cycle

logger = get_logger(__name__)


async def main(use_redis: bool) -> int:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_json)

    if use_redis:
        try:
            await init_redis(settings.redis_url)
        except Exception as e:
            logger.warning("redis_unavailable", url=settings.redis_url, error=str(e))

    try:
        result = await run_maintenance_cycle()
    finally:
        await close_redis()
        await close_db()

    if result is None:
        logger.info("maintenance_not_run")
        return 1

    print(json.dumps(result.to_dict()))
    return 0 if result.agents_failed == 0 else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run one trust maintenance cycle")
    parser.add_argument("--no-redis", action="store_true", help="Do not take the Redis lock")
    args = parser.parse_args()
    sys.exit(asyncio.run(main(use_redis=not args.no_redis)))
