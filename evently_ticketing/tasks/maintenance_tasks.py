"""
Celery tasks for expiring stale bookings and tickets of past events.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

from .celery_app import celery_app
from ..database import close_database, get_db_session, init_database
from ..services.booking_service import BookingService
from ..services.ticket_service import TicketService

logger = logging.getLogger(__name__)


def run_async(job: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """
    Run an async job on a fresh event loop.

    Engine and Redis pool are bound to the loop that created them, so each
    run opens and disposes its own.
    """
    async def _wrapped():
        await init_database()
        try:
            return await job()
        finally:
            await close_database()

    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_wrapped())
    finally:
        loop.close()


async def expire_pending_bookings() -> Dict[str, Any]:
    async with get_db_session() as session:
        expired_count = await BookingService(session).expire_stale_bookings()
    logger.info(f"Expired {expired_count} unpaid bookings")
    return {"expired_count": expired_count}


async def expire_past_event_tickets() -> Dict[str, Any]:
    async with get_db_session() as session:
        expired_count = await TicketService(session).expire_past_event_tickets()
    logger.info(f"Expired {expired_count} tickets of past events")
    return {"expired_count": expired_count}


@celery_app.task(name="expire_pending_bookings_task")
def expire_pending_bookings_task():
    """
    Periodic task releasing bookings left unpaid past the hold timeout.

    Capacity and seats held by those bookings go back on sale.
    """
    logger.info("Starting pending booking expiration task")
    return run_async(expire_pending_bookings)


@celery_app.task(name="expire_past_event_tickets_task")
def expire_past_event_tickets_task():
    """Periodic task marking unused tickets of finished events as expired."""
    logger.info("Starting past event ticket expiration task")
    return run_async(expire_past_event_tickets)
