#!/usr/bin/env python3
"""
Script to verify that the votes-by-date and votes-by-user tables agree.
Run this to check the vote data is intact.
"""
import asyncio
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from db import create_db_and_tables, make_engine, make_session_factory
from storage import SqlStorage, StorageService

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


async def check_indexes(storage: StorageService) -> bool:
    """Log every index mismatch; True when both indexes hold the same votes."""
    mismatches = await storage.find_index_mismatches()

    if not mismatches:
        logger.info("✅ Both vote indexes agree")
        return True

    logger.warning(f"⚠️  Found {len(mismatches)} mismatched (user_id, date) pairs:")
    for m in mismatches:
        logger.warning(f"   - user_id: {m.user_id}, date: {m.date}: {m.reason}")
    return False


async def main() -> int:
    engine = make_engine()
    try:
        await create_db_and_tables(engine)
        ok = await check_indexes(SqlStorage(make_session_factory(engine)))
    finally:
        await engine.dispose()
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
