"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
The Order aggregate (Order + OrderItems) is written atomically; the
order total is always derived from the item snapshots here, never
trusted from the caller.

Status writes go through ``compare_and_set_status``: a single
``UPDATE ... WHERE id = :id AND status = :expected`` so two requests
racing on the same order cannot both win, even when the caller forgot
to take the row lock.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import QuerySet
from django.utils import timezone

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.exceptions import DuplicateExternalReference
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

ORDER_CREATE_FIELDS = (
    "customer_name",
    "customer_email",
    "customer_phone",
    "fulfillment_method",
    "delivery_address",
    "payment_method",
    "status",
    "eco_points_reward",
    "notes",
    "external_reference",
    "payment_reference",
    "payment_code",
    "payment_qr_code",
    "payment_expires_at",
    "payment_verified_at",
)


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def _queryset(self) -> QuerySet:
        return Order.objects.prefetch_related(
            "items__product__supermarket", "status_history"
        )

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        The savepoint keeps an outer transaction usable when the unique
        ``external_reference`` constraint fires.
        """
        reference = data.get("external_reference")
        try:
            with transaction.atomic():
                order = Order(
                    **{field: data[field] for field in ORDER_CREATE_FIELDS if field in data}
                )
                order.save()

                total = Decimal("0.00")
                items = data.get("items", [])
                for item_data in items:
                    item = OrderItem(
                        order=order,
                        product_id=item_data["product_id"],
                        quantity=item_data["quantity"],
                        price_at_time=item_data["price_at_time"],
                        backordered=item_data.get("backordered", False),
                    )
                    item.save()
                    total += item.subtotal

                order.total_amount = total
                order.save(update_fields=["total_amount", "updated_at"])
        except IntegrityError:
            if reference and Order.objects.filter(external_reference=reference).exists():
                logger.info("order.duplicate_external_reference", external_reference=reference)
                raise DuplicateExternalReference(
                    f"An order already exists for {reference}.",
                    external_reference=reference,
                ) from None
            raise

        log = logger.bind(
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        log.info("order.created", status=order.status, total_amount=str(total))
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: Any) -> Optional[Order]:
        """Retrieve an order with eager-loaded items and history.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return self._queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_for_update(self, id: Any) -> Optional[Order]:
        """Retrieve an order with a row-level lock (SELECT FOR UPDATE).

        Must be called inside ``transaction.atomic``.
        """
        try:
            return (
                Order.objects.select_for_update()
                .prefetch_related("items__product__supermarket")
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_external_reference(self, reference: str) -> Optional[Order]:
        if not reference:
            return None
        return self._queryset().filter(external_reference=reference).first()

    def get_by_payment_reference(self, charge_id: str) -> Optional[Order]:
        if not charge_id:
            return None
        return self._queryset().filter(payment_reference=str(charge_id)).first()

    def list(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = self._queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_for_supermarket(self, supermarket_id: Any) -> QuerySet:
        return self._queryset().filter(items__product__supermarket_id=supermarket_id).distinct()

    def list_overdue_awaiting_payment(self, now: datetime) -> List[Order]:
        return list(
            Order.objects.filter(
                status=OrderStatus.AWAITING_PAYMENT,
                payment_method=PaymentMethod.PIX,
                payment_expires_at__lt=now,
            ).order_by("payment_expires_at")
        )

    def list_completed_for_settlement(self, filters: Optional[Dict[str, Any]] = None) -> QuerySet:
        queryset = Order.objects.filter(status=OrderStatus.COMPLETED).prefetch_related(
            "items__product__supermarket"
        )
        if filters:
            queryset = queryset.filter(**filters).distinct()
        return queryset.order_by("-created_at")

    def get_item(self, order_id: Any, item_id: Any) -> Optional[OrderItem]:
        try:
            return (
                OrderItem.objects.select_related("product__supermarket")
                .filter(order_id=order_id, id=item_id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and publish its pending events after commit."""
        entity.save()
        self.commit_events(entity)
        logger.info("order.saved", order_id=str(entity.id))
        return entity

    def commit_events(self, entity: Order) -> None:
        events = entity.pull_domain_events()
        if events:
            event_bus.publish_on_commit(events)

    def compare_and_set_status(
        self,
        id: Any,
        expected: str,
        new: str,
        fields: Optional[Dict[str, Any]] = None,
    ) -> bool:
        values = dict(fields or {})
        values.pop("status", None)
        updated = Order.objects.filter(id=id, status=expected).update(
            status=new,
            updated_at=timezone.now(),
            **values,
        )
        if not updated:
            logger.warning(
                "order.status_cas_miss",
                order_id=str(id),
                expected=expected,
                new_status=new,
            )
        return bool(updated)

    def update_fields(self, id: Any, fields: Dict[str, Any]) -> int:
        values = dict(fields)
        values.pop("status", None)
        return Order.objects.filter(id=id).update(updated_at=timezone.now(), **values)

    def set_item_confirmation(self, item_id: Any, status: str) -> None:
        OrderItem.objects.filter(id=item_id).update(
            confirmation_status=status, updated_at=timezone.now()
        )

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
        history = OrderStatusHistory.objects.create(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            actor=actor,
            user_id=user_id,
            source=source,
            notes=notes,
        )
        logger.info(
            "order.history_added",
            order_id=str(order_id),
            old_status=old_status,
            new_status=new_status,
            source=source,
        )
        return history
