"""Financial settlement engine.

For every ``completed`` order, the items still on the order (``removed``
lines excluded) are grouped by the supermarket that sold them::

    group_total = sum(quantity * price_at_time)
    commission  = round_half_up(group_total * commercial_rate / 100, 2)
    net_payable = group_total - commission
    expected_payment_date = local date of created_at + payment_terms days

Rows are a read-only projection computed on demand from the current
supermarket terms.  The only thing persisted is the payout bookkeeping
on the order (``supermarket_payment_*``), which never touches the order
status.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.actors import Actor
from modules.orders.constants import ItemConfirmationStatus, OrderStatus, SupermarketPaymentStatus
from modules.orders.exceptions import OrderNotFound
from modules.orders.models import Order
from modules.orders.repositories.interfaces import IOrderRepository
from modules.settlements.dtos import SettlementFilterDTO, SettlementRow, UpdateSupermarketPaymentDTO
from modules.settlements.exceptions import InvalidSupermarketPaymentTransition, SettlementNotAllowed
from shared.domain.exceptions import PermissionDenied

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

PAYOUT_TRANSITIONS: dict[str, frozenset[str]] = {
    SupermarketPaymentStatus.AWAITING: frozenset(
        {SupermarketPaymentStatus.ADVANCED, SupermarketPaymentStatus.PAID}
    ),
    SupermarketPaymentStatus.ADVANCED: frozenset({SupermarketPaymentStatus.PAID}),
    SupermarketPaymentStatus.PAID: frozenset(),
}


def round_half_up(value: Decimal, places: Decimal = CENTS) -> Decimal:
    return value.quantize(places, rounding=ROUND_HALF_UP)


class SettlementService:
    def __init__(self, order_repository: IOrderRepository) -> None:
        self._order_repo = order_repository

    def settle_order(self, order: Order) -> List[SettlementRow]:
        """One row per supermarket with items on a completed order."""
        if order.status != OrderStatus.COMPLETED:
            raise SettlementNotAllowed(
                f"Order {order.order_number} is {order.status}; only completed orders are settled.",
                order_id=order.id,
                status=order.status,
            )

        totals: Dict[Any, Decimal] = defaultdict(lambda: Decimal("0.00"))
        supermarkets: Dict[Any, Any] = {}
        for item in order.items.all():
            if item.confirmation_status == ItemConfirmationStatus.REMOVED:
                continue
            supermarket = item.product.supermarket
            supermarkets[supermarket.id] = supermarket
            totals[supermarket.id] += item.subtotal

        created_on = timezone.localtime(order.created_at).date()
        rows = []
        for supermarket_id, group_total in totals.items():
            supermarket = supermarkets[supermarket_id]
            rate = supermarket.commercial_rate
            commission = round_half_up(group_total * rate / Decimal("100"))
            rows.append(
                SettlementRow(
                    order_id=order.id,
                    order_number=order.order_number,
                    supermarket_id=supermarket_id,
                    supermarket_name=supermarket.company_name,
                    group_total=group_total,
                    commission_rate=rate,
                    commission=commission,
                    net_payable=group_total - commission,
                    expected_payment_date=created_on + timedelta(days=supermarket.payment_terms),
                    payment_status=order.supermarket_payment_status,
                )
            )
        return sorted(rows, key=lambda row: row.supermarket_name)

    def list_settlements(
        self, actor: Actor, filters: Optional[SettlementFilterDTO] = None
    ) -> List[SettlementRow]:
        """Rows for completed orders; staff only ever see their own."""
        filters = filters or SettlementFilterDTO()
        supermarket_id = filters.supermarket_id
        if actor.is_staff:
            supermarket_id = actor.supermarket_id
        elif not actor.is_admin:
            raise PermissionDenied("Only staff or administrators may read settlements.")

        query: Dict[str, Any] = {}
        if supermarket_id:
            query["items__product__supermarket_id"] = supermarket_id
        if filters.payment_status:
            query["supermarket_payment_status"] = filters.payment_status
        if filters.start_date:
            query["created_at__date__gte"] = filters.start_date
        if filters.end_date:
            query["created_at__date__lte"] = filters.end_date

        rows: List[SettlementRow] = []
        for order in self._order_repo.list_completed_for_settlement(query):
            rows.extend(
                row
                for row in self.settle_order(order)
                if supermarket_id is None or row.supermarket_id == supermarket_id
            )
        return rows

    @staticmethod
    def summarize(rows: Iterable[SettlementRow]) -> Dict[str, Any]:
        """Totals overall, by payout status and by supermarket."""
        rows = list(rows)
        by_status: Dict[str, Dict[str, Any]] = {}
        by_supermarket: Dict[Any, Dict[str, Any]] = {}
        for row in rows:
            status_bucket = by_status.setdefault(
                row.payment_status, {"count": 0, "net_payable": Decimal("0.00")}
            )
            status_bucket["count"] += 1
            status_bucket["net_payable"] += row.net_payable

            market = by_supermarket.setdefault(
                row.supermarket_id,
                {
                    "supermarket_id": row.supermarket_id,
                    "supermarket_name": row.supermarket_name,
                    "count": 0,
                    "group_total": Decimal("0.00"),
                    "commission": Decimal("0.00"),
                    "net_payable": Decimal("0.00"),
                },
            )
            market["count"] += 1
            market["group_total"] += row.group_total
            market["commission"] += row.commission
            market["net_payable"] += row.net_payable

        return {
            "count": len(rows),
            "group_total": sum((row.group_total for row in rows), Decimal("0.00")),
            "commission": sum((row.commission for row in rows), Decimal("0.00")),
            "net_payable": sum((row.net_payable for row in rows), Decimal("0.00")),
            "by_payment_status": by_status,
            "by_supermarket": sorted(by_supermarket.values(), key=lambda m: m["supermarket_name"]),
        }

    @transaction.atomic
    def update_supermarket_payment(
        self, order_id: Any, dto: UpdateSupermarketPaymentDTO, actor: Actor
    ) -> Order:
        """Record a payout to the supermarket(s) of a completed order.

        ``aguardando -> antecipado | realizado`` and ``antecipado ->
        realizado``.  Repeating the current status only updates the notes.
        """
        if not actor.is_admin:
            raise PermissionDenied("Only administrators may record supermarket payments.")

        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.", order_id=order_id)
        if order.status != OrderStatus.COMPLETED:
            raise SettlementNotAllowed(
                f"Order {order.order_number} is {order.status}; only completed orders are settled.",
                order_id=order.id,
                status=order.status,
            )

        current = order.supermarket_payment_status
        log = logger.bind(order_id=str(order.id), actor=actor.label, old_status=current, new_status=dto.status)
        fields: Dict[str, Any] = {}
        if dto.notes is not None:
            fields["supermarket_payment_notes"] = dto.notes

        if dto.status != current:
            if dto.status not in PAYOUT_TRANSITIONS.get(current, frozenset()):
                raise InvalidSupermarketPaymentTransition(
                    f"Supermarket payment cannot move from {current} to {dto.status}.",
                    current_status=current,
                    requested_status=dto.status,
                )
            amount = dto.amount
            if amount is None:
                amount = sum((row.net_payable for row in self.settle_order(order)), Decimal("0.00"))
            fields.update(
                supermarket_payment_status=dto.status,
                supermarket_payment_amount=amount,
                supermarket_payment_date=dto.payment_date or timezone.now(),
            )

        if fields:
            self._order_repo.update_fields(order.id, fields)
        log.info("settlement.payment_status_updated", fields=sorted(fields))
        return self._order_repo.get_by_id(order.id)


def build_settlement_service() -> SettlementService:
    from modules.orders.repositories.django_repository import OrderDjangoRepository

    return SettlementService(OrderDjangoRepository())
