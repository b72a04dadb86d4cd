"""Expiry scheduling for held bookings."""

import asyncio
from abc import ABC, abstractmethod
from datetime import timedelta
from typing import Any, Awaitable, Callable, Dict, Set

from ..core.observability import get_logger

ExpiryCallback = Callable[[str, str], Awaitable[Any]]


class ExpiryScheduler(ABC):
    """Runs a delayed expiry for a held booking."""

    @abstractmethod
    async def schedule(self, delay: timedelta, booking_id: str, tenant_id: str) -> str:
        """
        Arrange for ``booking_id`` to be expired after ``delay``.

        Args:
            delay: How long the hold lasts
            booking_id: Booking to expire
            tenant_id: Tenant that owns the booking

        Returns:
            Job handle accepted by ``cancel``
        """

    @abstractmethod
    async def cancel(self, job_id: str) -> None:
        """Cancel a scheduled expiry. Unknown or finished jobs are ignored."""


class AsyncioExpiryScheduler(ExpiryScheduler):
    """
    In-process scheduler keeping one asyncio task per pending expiry.

    Jobs live only as long as the event loop; the hold expiry sweep covers
    holds whose job was lost to a restart.
    """

    def __init__(self, callback: ExpiryCallback):
        """
        Args:
            callback: Coroutine function called with ``(booking_id, tenant_id)`` when a hold runs out
        """
        self._callback = callback
        self._jobs: Dict[str, asyncio.Task] = {}
        self._firing: Set[str] = set()
        self.logger = get_logger(__name__)

    @staticmethod
    def job_id_for(booking_id: str, tenant_id: str) -> str:
        return f"booking-expiry:{tenant_id}:{booking_id}"

    @property
    def pending_jobs(self) -> list[str]:
        return list(self._jobs)

    async def schedule(self, delay: timedelta, booking_id: str, tenant_id: str) -> str:
        job_id = self.job_id_for(booking_id, tenant_id)

        existing = self._jobs.pop(job_id, None)
        if existing is not None:
            existing.cancel()

        self._jobs[job_id] = asyncio.create_task(
            self._fire(job_id, delay, booking_id, tenant_id), name=job_id
        )
        self.logger.debug(
            "Hold expiry scheduled",
            job_id=job_id,
            booking_id=booking_id,
            tenant_id=tenant_id,
            delay_seconds=delay.total_seconds(),
        )
        return job_id

    async def cancel(self, job_id: str) -> None:
        task = self._jobs.pop(job_id, None)
        # A job already running its callback is left to finish; expiry is a no-op
        # for bookings that are no longer held.
        if task is None or job_id in self._firing:
            return
        task.cancel()
        self.logger.debug("Hold expiry cancelled", job_id=job_id)

    async def _fire(self, job_id: str, delay: timedelta, booking_id: str, tenant_id: str) -> None:
        try:
            await asyncio.sleep(max(delay.total_seconds(), 0))
            self._firing.add(job_id)
            await self._callback(booking_id, tenant_id)
        except asyncio.CancelledError:
            raise
        except Exception:
            self.logger.error(
                "Hold expiry job failed",
                job_id=job_id,
                booking_id=booking_id,
                tenant_id=tenant_id,
                exc_info=True,
            )
        finally:
            self._firing.discard(job_id)
            if self._jobs.get(job_id) is asyncio.current_task():
                del self._jobs[job_id]

    async def shutdown(self) -> None:
        """Cancel every pending job and wait for the tasks to finish."""
        tasks = list(self._jobs.values())
        self._jobs.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.logger.info("Expiry scheduler stopped", cancelled_jobs=len(tasks))
