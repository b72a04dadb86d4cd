"""Catalog gateway consumed when defining departures and pricing holds."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class CatalogItem:
    """The narrow view of a catalog product the engine needs."""

    entity_code: str
    found: bool
    bookable: bool = False
    list_price: Optional[int] = None
    currency: Optional[str] = None

    @classmethod
    def missing(cls, entity_code: str) -> "CatalogItem":
        return cls(entity_code=entity_code, found=False)


class CatalogGateway(ABC):
    """Read-only access to the product catalog."""

    @abstractmethod
    async def lookup(self, entity_code: str) -> CatalogItem:
        """
        Look up a catalog product by entity code.

        Args:
            entity_code: Catalog entity code

        Returns:
            CatalogItem with ``found=False`` when the product does not exist
        """


class StaticCatalogGateway(CatalogGateway):
    """Catalog backed by an in-memory mapping of entity code to item."""

    def __init__(self, items: Mapping[str, CatalogItem] | None = None):
        self._items = dict(items or {})

    def add(
        self,
        entity_code: str,
        bookable: bool = False,
        list_price: Optional[int] = None,
        currency: Optional[str] = None,
    ) -> CatalogItem:
        item = CatalogItem(
            entity_code=entity_code,
            found=True,
            bookable=bookable,
            list_price=list_price,
            currency=currency,
        )
        self._items[entity_code] = item
        return item

    async def lookup(self, entity_code: str) -> CatalogItem:
        return self._items.get(entity_code) or CatalogItem.missing(entity_code)
