"""Capacity ledger: guarded counter moves on departure resources.

Every method issues exactly one ``UPDATE`` whose WHERE clause carries the
guard, so the counters only move when the guard holds at write time and
``available + held + booked`` never changes. Callers own the transaction.
"""

import logging

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.departure import Departure, DepartureResource, DepartureStatus

logger = logging.getLogger(__name__)


class CapacityLedger:
    """Guarded moves between the available, held and booked counters."""

    def __init__(self, db: AsyncSession, tenant_id: str):
        self.db = db
        self.tenant_id = tenant_id

    def _tenant_departures(self, active_only: bool = False):
        stmt = select(Departure.departure_id).where(Departure.tenant_id == self.tenant_id)
        if active_only:
            stmt = stmt.where(Departure.status == DepartureStatus.ACTIVE)
        return stmt

    async def _move(
        self,
        departure_id: str,
        resource_id: str,
        quantity: int,
        source: str,
        target: str,
        active_only: bool = False,
    ) -> bool:
        source_col = getattr(DepartureResource, source)
        target_col = getattr(DepartureResource, target)
        stmt = (
            update(DepartureResource)
            .where(
                DepartureResource.departure_id == departure_id,
                DepartureResource.resource_id == resource_id,
                source_col >= quantity,
                DepartureResource.departure_id.in_(self._tenant_departures(active_only)),
            )
            .values({source: source_col - quantity, target: target_col + quantity})
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        moved = result.rowcount == 1

        logger.debug(
            "Capacity move %s",
            "applied" if moved else "rejected",
            extra={
                "tenant_id": self.tenant_id,
                "departure_id": departure_id,
                "resource_id": resource_id,
                "quantity": quantity,
                "from": source,
                "to": target,
            }
        )
        return moved

    async def reserve(self, departure_id: str, resource_id: str, quantity: int) -> bool:
        """
        Move ``quantity`` units from available to held.

        Only matches while the departure belongs to the tenant and is active.

        Returns:
            True if the counters moved, False if the guard rejected the move
        """
        return await self._move(
            departure_id, resource_id, quantity, "available", "held", active_only=True
        )

    async def commit_hold(self, departure_id: str, resource_id: str, quantity: int) -> bool:
        """Move ``quantity`` units from held to booked."""
        return await self._move(departure_id, resource_id, quantity, "held", "booked")

    async def release_hold(self, departure_id: str, resource_id: str, quantity: int) -> bool:
        """Return ``quantity`` held units to available."""
        return await self._move(departure_id, resource_id, quantity, "held", "available")

    async def release_booking(self, departure_id: str, resource_id: str, quantity: int) -> bool:
        """Return ``quantity`` booked units to available."""
        return await self._move(departure_id, resource_id, quantity, "booked", "available")
