"""Simple script to run a scheduled job - can be run as a cron job.

Usage:
    python cron_job.py poll            # daily mood poll
    python cron_job.py wellness        # daily, after the poll closes
    python cron_job.py stats [days]    # weekly summary, 7 days by default
"""
import asyncio
import logging
import os
import sys

# Add parent directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from config import ConfigError, load_config
from db import create_db_and_tables, make_engine, make_session_factory
from discord_client import DiscordClient
from report import post_daily_poll, send_stats_summary, send_wellness_alerts
from storage import SqlStorage

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

JOBS = ("poll", "wellness", "stats")


async def run_job(job: str, days: int = 7, engine=None, discord: DiscordClient = None) -> dict:
    """Run one job against the configured database and Discord channel."""
    config = load_config()
    owns_engine = engine is None
    engine = engine or make_engine()
    try:
        await create_db_and_tables(engine)
        storage = SqlStorage(make_session_factory(engine))

        async with (discord or DiscordClient(config.discord_token)) as client:
            if job == "poll":
                return await post_daily_poll(client, config)
            if job == "wellness":
                return await send_wellness_alerts(storage, client, config)
            return await send_stats_summary(storage, client, config, days=days)
    finally:
        if owns_engine:
            await engine.dispose()


def main(argv: list[str]) -> int:
    if not argv or argv[0] not in JOBS:
        print(f"Usage: cron_job.py {{{'|'.join(JOBS)}}} [days]")
        return 1

    job = argv[0]
    try:
        days = int(argv[1]) if len(argv) > 1 else 7
    except ValueError:
        print(f"ERROR: days must be an integer, got {argv[1]!r}")
        return 1

    try:
        result = asyncio.run(run_job(job, days=days))
    except ConfigError as e:
        print(f"ERROR: {e}")
        return 1

    if result["success"]:
        print(f"SUCCESS: {job} job finished: {result}")
        return 0
    print(f"ERROR: {result.get('error') or result}")
    return 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
