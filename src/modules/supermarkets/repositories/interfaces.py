"""Supermarket repository interface."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.supermarkets.models import Supermarket


class ISupermarketRepository(IRepository["Supermarket"]):
    @abstractmethod
    def update_profile(self, id: Any, data: Dict[str, Any]) -> Supermarket:
        """Update approval status and commercial terms atomically."""
