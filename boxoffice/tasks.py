"""Background tasks for the box office."""

import asyncio
import logging

from boxoffice.config import get_settings
from boxoffice.database import get_db_context
from boxoffice.drafts import DraftStore
from boxoffice.leases import LeaseStore
from boxoffice.notifications import SeatEventBroadcaster
from boxoffice.redis_client import get_redis
from boxoffice.services.booking_service import ReservationOrchestrator
from boxoffice.services.seat_lock_service import SeatLockManager

settings = get_settings()
logger = logging.getLogger(__name__)


async def sweep_expired_bookings_once() -> int:
    """Expire every Pending booking whose hold has elapsed."""
    redis_client = await get_redis()
    broadcaster = SeatEventBroadcaster(redis_client)
    async with get_db_context() as db:
        orchestrator = ReservationOrchestrator(
            db,
            SeatLockManager(LeaseStore(redis_client), broadcaster),
            DraftStore(redis_client),
            broadcaster,
        )
        return await orchestrator.expire_stale_bookings()


async def sweep_expired_bookings() -> None:
    """
    Background task to expire abandoned bookings.

    Seat leases and drafts expire on their own in Redis; this frees the
    durable seat claims of bookings that were never paid.
    """
    logger.info("Starting expired booking sweeper")

    while True:
        try:
            expired_count = await sweep_expired_bookings_once()
            if expired_count > 0:
                logger.info(f"Expired {expired_count} abandoned bookings")
        except Exception as e:
            logger.error(f"Error in expiry sweeper: {e}")

        await asyncio.sleep(settings.EXPIRY_SWEEP_INTERVAL_SECONDS)


class BackgroundTaskManager:
    """Manager for background tasks."""

    def __init__(self):
        self.tasks: list[asyncio.Task] = []

    async def start(self) -> None:
        """Start all background tasks."""
        self.tasks.append(asyncio.create_task(sweep_expired_bookings()))
        logger.info("Background tasks started")

    async def stop(self) -> None:
        """Stop all background tasks."""
        for task in self.tasks:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        self.tasks.clear()
        logger.info("Background tasks stopped")


# Global instance
background_tasks = BackgroundTaskManager()
