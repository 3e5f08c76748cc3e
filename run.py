#!/usr/bin/env python3
"""Start the CrabNet trust API under uvicorn.

    python run.py                     # 127.0.0.1:8000, maintenance scheduler on
    python run.py --reload            # development auto-reload
    python run.py --no-scheduler      # API only; run scripts/run_maintenance.py from cron
"""

import argparse
import os

import uvicorn

from crabnet.config import get_settings


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the CrabNet trust API")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="auto-reload on code changes")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="worker processes (ignored with --reload)",
    )
    parser.add_argument(
        "--no-scheduler",
        action="store_true",
        help="do not run the daily maintenance job in this process",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    if args.no_scheduler:
        # Read by Settings in every worker process
        os.environ["CRABNET_SCHEDULER_ENABLED"] = "false"

    uvicorn.run(
        "crabnet.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        workers=1 if args.reload else args.workers,
        log_level=get_settings().log_level.lower(),
    )


if __name__ == "__main__":
    main()
