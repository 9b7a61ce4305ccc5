"""Eco points read model for the storefront."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict

from modules.customers.exceptions import CustomerNotFound

if TYPE_CHECKING:
    from modules.customers.repositories.interfaces import ICustomerRepository


class CustomerService:
    def __init__(self, repository: ICustomerRepository) -> None:
        self._repo = repository

    def get_eco_points(self, email: str) -> Dict[str, Any]:
        customer = self._repo.get_by_email(email)
        if customer is None:
            raise CustomerNotFound(f"No eco points registered for {email}.")
        return {
            "email": customer.email,
            "name": customer.name,
            "eco_points": customer.eco_points,
            "total_eco_actions": customer.total_eco_actions,
            "recent_actions": self._repo.recent_actions(customer.email),
        }
