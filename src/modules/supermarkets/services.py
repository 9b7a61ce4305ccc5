"""Supermarket administration use cases."""

from __future__ import annotations

from typing import TYPE_CHECKING, List

import structlog

from modules.supermarkets.exceptions import InvalidCommercialTerms

if TYPE_CHECKING:
    from modules.core.actors import Actor
    from modules.supermarkets.dtos import UpdateSupermarketDTO
    from modules.supermarkets.models import Supermarket
    from modules.supermarkets.repositories.interfaces import ISupermarketRepository

logger = structlog.get_logger(__name__)


class SupermarketService:
    def __init__(self, supermarket_repository: ISupermarketRepository) -> None:
        self._repo = supermarket_repository

    def list_supermarkets(self, approval_status: str | None = None) -> List[Supermarket]:
        filters = {"approval_status": approval_status} if approval_status else None
        return self._repo.list(filters)

    def update_profile(
        self, supermarket_id: str, dto: UpdateSupermarketDTO, actor: Actor
    ) -> Supermarket:
        """Approve/reject a supermarket or change its commercial terms.

        Rate changes are not retroactive for payouts already marked as
        paid: those carry the settled amount on the order itself.
        """
        data = dto.model_dump(exclude_none=True)
        if not data:
            raise InvalidCommercialTerms("Nothing to update.")
        supermarket = self._repo.update_profile(supermarket_id, data)
        logger.info(
            "supermarket.updated_by_admin",
            supermarket_id=str(supermarket_id),
            actor=actor.label,
            fields=sorted(data),
        )
        return supermarket
