"""Django ORM implementation of the Customer repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import F
from django.utils import timezone

from modules.customers.models import Customer, EcoAction, normalize_email
from modules.customers.repositories.interfaces import ICustomerRepository

logger = structlog.get_logger(__name__)


class CustomerDjangoRepository(ICustomerRepository):
    def get_by_id(self, id: Any) -> Optional[Customer]:
        try:
            return Customer.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_email(self, email: str) -> Optional[Customer]:
        return Customer.objects.filter(email=normalize_email(email)).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Customer]:
        queryset = Customer.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Customer) -> Customer:
        entity.save()
        return entity

    @transaction.atomic
    def award_eco_points(
        self,
        email: str,
        name: str,
        points: int,
        order_id: Any = None,
        description: str = "",
    ) -> Customer:
        customer, created = Customer.objects.get_or_create(
            email=normalize_email(email),
            defaults={"name": name},
        )
        Customer.objects.filter(pk=customer.pk).update(
            eco_points=F("eco_points") + points,
            total_eco_actions=F("total_eco_actions") + 1,
            updated_at=timezone.now(),
        )
        EcoAction.objects.create(
            customer=customer,
            order_id=order_id,
            points=points,
            description=description,
        )
        customer.refresh_from_db(fields=["eco_points", "total_eco_actions"])

        logger.info(
            "customer.eco_points_awarded",
            customer_id=str(customer.id),
            order_id=str(order_id) if order_id else None,
            points=points,
            balance=customer.eco_points,
            created=created,
        )
        return customer

    def recent_actions(self, email: str, limit: int = 20) -> List[EcoAction]:
        return list(
            EcoAction.objects.filter(customer__email=normalize_email(email))[:limit]
        )
