"""Service layer package."""

from .booking_service import BookingService, expire_overdue_holds
from .capacity_ledger import CapacityLedger
from .catalog import CatalogGateway, CatalogItem, StaticCatalogGateway
from .departure_service import DepartureService
from .engine import ReservationEngine

__all__ = [
    "BookingService",
    "CapacityLedger",
    "CatalogGateway",
    "CatalogItem",
    "DepartureService",
    "ReservationEngine",
    "StaticCatalogGateway",
    "expire_overdue_holds",
]
