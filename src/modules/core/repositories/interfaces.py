"""Generic repository interface (Dependency Inversion Principle).

``IRepository[T]`` is the base contract every aggregate repository
extends.  Services depend on these abstractions, never on the ORM.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, Generic, Iterable, Optional, TypeVar

T = TypeVar("T")


class IRepository(ABC, Generic[T]):
    """Base generic repository contract.

    ``T`` is the entity managed by the repository (``Order``,
    ``Product``, ``Supermarket``...).  Orders are never deleted and the
    contract has no ``delete``.
    """

    @abstractmethod
    def get_by_id(self, id: Any) -> Optional[T]:
        """Retrieve an entity by primary key (``None`` when missing or malformed)."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> Iterable[T]:
        """List entities with optional ORM look-ups."""

    @abstractmethod
    def save(self, entity: T) -> T:
        """Persist (create or update) an entity."""
