"""Django ORM implementation of the Product repository.

Stock reservation is a single conditional ``UPDATE``::

    UPDATE products SET quantity = quantity - n
    WHERE id = :id AND quantity >= n

so two concurrent orders for the last unit cannot both succeed, whatever
the isolation level, and the check constraint backs it at the schema
level.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    def get_by_id(self, id: Any) -> Optional[Product]:
        try:
            return Product.objects.select_related("supermarket").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_many(self, ids: Iterable[Any]) -> Dict[str, Product]:
        try:
            products = Product.objects.select_related("supermarket").filter(id__in=list(ids))
            return {str(product.id): product for product in products}
        except (ValueError, ValidationError):
            return {}

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.alive().select_related("supermarket")
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    # ------------------------------------------------------------------
    # Stock
    # ------------------------------------------------------------------

    def reserve_stock(self, id: Any, quantity: int) -> bool:
        updated = Product.objects.filter(id=id, quantity__gte=quantity).update(
            quantity=F("quantity") - quantity,
            updated_at=timezone.now(),
        )
        log = logger.bind(product_id=str(id), quantity=quantity)
        if not updated:
            log.warning("product.stock_reservation_rejected")
            return False
        log.info("product.stock_reserved")
        return True

    def release_stock(self, id: Any, quantity: int) -> None:
        Product.objects.filter(id=id).update(
            quantity=F("quantity") + quantity,
            updated_at=timezone.now(),
        )
        logger.info("product.stock_released", product_id=str(id), quantity=quantity)
