#!/usr/bin/env python3
"""
Scheduled Jobs Script

Runs the recurring subscription billing loop and the stale order sweep
outside the API, for hosts that schedule commands instead of HTTP calls.

Usage:
    python -m scripts.run_billing                       # billing + stale orders
    python -m scripts.run_billing --job billing         # billing only
    python -m scripts.run_billing --job stale-orders    # stale orders only
"""

import asyncio
import argparse
import json
import logging

# Add parent directory to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from app.infrastructure.db.database import close_db, init_db
from app.infrastructure.payments.mercadopago_service import get_mercadopago_service
from app.infrastructure.services.billing_service import run_scheduled_jobs

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

JOBS = ["billing", "stale-orders"]


async def main(jobs: list) -> dict:
    await init_db()
    try:
        return await run_scheduled_jobs(get_mercadopago_service(), jobs)
    finally:
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run scheduled store jobs")
    parser.add_argument(
        "--job",
        choices=JOBS,
        action="append",
        help="Job to run (repeatable); defaults to all jobs",
    )
    args = parser.parse_args()

    results = asyncio.run(main(args.job or JOBS))
    logger.info("Scheduled jobs finished")
    print(json.dumps(results, indent=2, default=str))
