"""Product repository interface.

Stock mutations are expressed as atomic operations so the service layer
never performs a read-modify-write on ``quantity``.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    @abstractmethod
    def get_many(self, ids: Iterable[Any]) -> Dict[str, Product]:
        """Fetch products (with supermarket) keyed by ``str(id)``."""

    @abstractmethod
    def reserve_stock(self, id: Any, quantity: int) -> bool:
        """Decrement stock only if enough is on hand.

        Returns ``False`` (and changes nothing) when the product has
        fewer than ``quantity`` units left.
        """

    @abstractmethod
    def release_stock(self, id: Any, quantity: int) -> None:
        """Give previously reserved units back to the product."""
