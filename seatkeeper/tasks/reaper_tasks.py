"""
Celery tasks for reclaiming expired seat holds.
"""

import asyncio
import logging

from .celery_app import celery_app
from ..database import close_database, get_db_session, init_database
from ..services.expiry_reaper import ExpiryReaper

logger = logging.getLogger(__name__)


async def sweep_expired_holds() -> dict:
    """Reclaim every expired hold across all shows."""
    logger.info("Starting expired hold sweep")

    async with get_db_session() as session:
        reclaimed = await ExpiryReaper(session).sweep_all()

    released_count = sum(len(seat_ids) for seat_ids in reclaimed.values())
    logger.info(f"Released {released_count} expired holds across {len(reclaimed)} shows")

    return {
        "released_count": released_count,
        "show_ids": [str(show_id) for show_id in reclaimed],
    }


@celery_app.task(name="sweep_expired_holds_task")
def sweep_expired_holds_task():
    """
    Periodic task that returns abandoned holds to the pool.

    Runs every ``reaper_interval_seconds`` from Celery beat. Reads also sweep
    their own show, so this bounds how long an expired hold stays visible to
    shows nobody is reading.
    """
    async def _run():
        # The engine is bound to the loop that created it
        await init_database(create_tables=False)
        try:
            return await sweep_expired_holds()
        finally:
            await close_database()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_run())
    finally:
        loop.close()
