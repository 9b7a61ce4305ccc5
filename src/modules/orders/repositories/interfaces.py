"""Order repository interface.

Extends ``IRepository[Order]`` with what the lifecycle needs: atomic
creation with items, look-ups by payment identifiers, per-row
compare-and-swap on ``status`` and the append-only history.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.db.models import QuerySet

    from modules.orders.models import Order, OrderItem, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root."""

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data["items"]`` is a list of dicts with ``product_id``,
        ``quantity``, ``price_at_time`` and optionally ``backordered``.
        ``total_amount`` is computed from them.

        Raises ``DuplicateExternalReference`` when an order already
        exists for ``data["external_reference"]``.
        """

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Orders with items prefetched, optionally filtered."""

    @abstractmethod
    def list_for_supermarket(self, supermarket_id: Any) -> QuerySet:
        """Orders containing at least one product of the supermarket."""

    @abstractmethod
    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order holding a row-level lock."""

    @abstractmethod
    def get_by_external_reference(self, reference: str) -> Optional[Order]:
        """Retrieve the order materialized for a payment attempt."""

    @abstractmethod
    def get_by_payment_reference(self, charge_id: str) -> Optional[Order]:
        """Retrieve the order paid by a gateway charge."""

    @abstractmethod
    def compare_and_set_status(
        self,
        id: Any,
        expected: str,
        new: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """Set ``status`` (and ``fields``) only if it still equals ``expected``."""

    @abstractmethod
    def update_fields(self, id: Any, fields: Dict[str, Any]) -> int:
        """Update bookkeeping columns (refund, payout); never ``status``."""

    @abstractmethod
    def add_history(
        self,
        order_id: Any,
        new_status: str,
        old_status: Optional[str] = None,
        actor: str = "",
        user_id: Optional[int] = None,
        source: str = "system",
        notes: str = "",
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def commit_events(self, entity: Order) -> None:
        """Publish the aggregate's pending domain events after commit."""

    @abstractmethod
    def list_overdue_awaiting_payment(self, now: datetime) -> List[Order]:
        """PIX orders whose charge expired without a confirmed payment."""

    @abstractmethod
    def list_completed_for_settlement(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        """Completed orders with items, products and supermarkets loaded."""

    @abstractmethod
    def get_item(self, order_id: Any, item_id: Any) -> Optional[OrderItem]:
        """A single line of an order."""

    @abstractmethod
    def set_item_confirmation(self, item_id: Any, status: str) -> None:
        """Change the supermarket's decision on an order line."""
