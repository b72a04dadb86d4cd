"""Background worker that expires overdue holds."""

import logging
import time
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..core.config import settings
from ..core.database import async_session_factory
from ..core.observability import metrics_collector
from ..services.booking_service import expire_overdue_holds
from .base import BaseWorker
from .expiry_scheduler import ExpiryScheduler

logger = logging.getLogger(__name__)


class HoldExpiryWorker(BaseWorker):
    """
    Background worker that expires holds past their TTL.

    Expiry jobs normally release holds on time; this sweep catches holds
    whose job was lost or never scheduled, restoring their capacity.
    """

    def __init__(
        self,
        interval_seconds: float | None = None,
        batch_size: int | None = None,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        scheduler: Optional[ExpiryScheduler] = None,
    ):
        """
        Initialize the hold expiry worker.

        Args:
            interval_seconds: How often to sweep (default from settings)
            batch_size: Maximum holds expired per sweep (default from settings)
            session_factory: Session factory, defaults to the module-level one
            scheduler: Scheduler whose leftover jobs are cancelled after a sweep expiry
        """
        super().__init__(
            name="HoldExpiry",
            interval_seconds=interval_seconds or settings.expiry_sweep_interval_seconds,
        )
        self.batch_size = batch_size or settings.expiry_sweep_batch_size
        self.session_factory = session_factory or async_session_factory
        self.scheduler = scheduler

    async def process(self) -> int:
        """Expire one batch of overdue holds."""
        started = time.monotonic()
        async with self.session_factory() as db:
            expired_count = await expire_overdue_holds(
                db, batch_size=self.batch_size, scheduler=self.scheduler
            )
        metrics_collector.observe_sweep_duration(time.monotonic() - started)

        if expired_count > 0:
            logger.info(
                f"Expired {expired_count} overdue holds",
                extra={
                    "expired_count": expired_count,
                    "worker": self.name,
                }
            )
        return expired_count
