"""Django ORM implementation of the Supermarket repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.supermarkets.exceptions import SupermarketNotFound
from modules.supermarkets.models import Supermarket
from modules.supermarkets.repositories.interfaces import ISupermarketRepository

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = ("approval_status", "commercial_rate", "payment_terms", "is_sponsored")


class SupermarketDjangoRepository(ISupermarketRepository):
    def get_by_id(self, id: Any) -> Optional[Supermarket]:
        try:
            return Supermarket.objects.select_related("user").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Supermarket]:
        queryset = Supermarket.objects.select_related("user")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Supermarket) -> Supermarket:
        entity.save()
        logger.info("supermarket.saved", supermarket_id=str(entity.id))
        return entity

    @transaction.atomic
    def update_profile(self, id: Any, data: Dict[str, Any]) -> Supermarket:
        try:
            supermarket = Supermarket.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            supermarket = None
        if supermarket is None:
            raise SupermarketNotFound(f"Supermarket {id} not found.")

        changed = []
        for field in UPDATABLE_FIELDS:
            if field in data and data[field] is not None:
                setattr(supermarket, field, data[field])
                changed.append(field)
        if changed:
            supermarket.save(update_fields=changed)

        logger.info(
            "supermarket.profile_updated",
            supermarket_id=str(id),
            fields=changed,
            approval_status=supermarket.approval_status,
        )
        return supermarket
