"""Customer repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.customers.models import Customer, EcoAction


class ICustomerRepository(IRepository["Customer"]):
    @abstractmethod
    def get_by_email(self, email: str) -> Optional[Customer]:
        """Retrieve a customer by (normalised) email address."""

    @abstractmethod
    def award_eco_points(
        self,
        email: str,
        name: str,
        points: int,
        order_id: Any = None,
        description: str = "",
    ) -> Customer:
        """Atomically add ``points`` to the customer's balance.

        Creates the customer on first award.  Concurrent awards for the
        same customer must never lose an update.
        """

    @abstractmethod
    def recent_actions(self, email: str, limit: int = 20) -> List[EcoAction]:
        """Latest ledger entries for a customer."""
