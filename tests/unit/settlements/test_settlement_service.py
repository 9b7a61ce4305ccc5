"""Unit tests for the settlement engine.

Covers:
- Per-supermarket rows: totals, half-up commission, net payable, due date.
- Removed lines are not settled; only completed orders are.
- Listing scope for staff and administrators, summaries.
- Payout bookkeeping and its forward-only transitions.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from modules.core.actors import Actor
from modules.orders.constants import ItemConfirmationStatus, OrderStatus, SupermarketPaymentStatus
from modules.orders.models import Order, OrderItem
from modules.settlements.dtos import SettlementFilterDTO, UpdateSupermarketPaymentDTO
from modules.settlements.exceptions import InvalidSupermarketPaymentTransition, SettlementNotAllowed
from modules.settlements.services import build_settlement_service, round_half_up
from shared.domain.exceptions import PermissionDenied

pytestmark = pytest.mark.unit


def _reload(service, order):
    """Fetch ``order`` again so its prefetched items and tenants are current."""
    return service._order_repo.get_by_id(order.id)


@pytest.fixture()
def settlement_service():
    return build_settlement_service()


@pytest.fixture()
def lettuce(make_product, other_supermarket):
    return make_product(
        supermarket=other_supermarket,
        name="Alface Crespa",
        category="Hortifruti",
        original_price=Decimal("6.00"),
        discount_price=Decimal("4.00"),
    )


@pytest.fixture()
def completed_order(make_order, advance_order, product, product_b):
    return advance_order(make_order(items=[(product, 2), (product_b, 1)]), OrderStatus.COMPLETED)


@pytest.fixture()
def mixed_order(make_order, advance_order, product, lettuce):
    return advance_order(make_order(items=[(product, 2), (lettuce, 1)]), OrderStatus.COMPLETED)


class TestRoundHalfUp:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [("1.275", "1.28"), ("1.274", "1.27"), ("0.005", "0.01"), ("2.5", "2.50")],
    )
    def test_rounding(self, value, expected):
        assert round_half_up(Decimal(value)) == Decimal(expected)


class TestSettleOrder:
    def test_single_supermarket(self, settlement_service, completed_order, supermarket):
        (row,) = settlement_service.settle_order(completed_order)

        assert row.supermarket_id == supermarket.id
        assert row.supermarket_name == "Mercado Bom Preço"
        assert row.group_total == Decimal("25.50")
        assert row.commission_rate == Decimal("5.00")
        assert row.commission == Decimal("1.28")
        assert row.net_payable == Decimal("24.22")
        assert row.payment_status == SupermarketPaymentStatus.AWAITING

    def test_due_date_follows_payment_terms(self, settlement_service, completed_order):
        (row,) = settlement_service.settle_order(completed_order)

        created_on = timezone.localtime(completed_order.created_at).date()
        assert row.expected_payment_date == created_on + timedelta(days=30)

    def test_one_row_per_supermarket(self, settlement_service, mixed_order):
        rows = settlement_service.settle_order(mixed_order)

        assert [row.supermarket_name for row in rows] == ["Hortifruti Feliz", "Mercado Bom Preço"]
        hortifruti, bom_preco = rows
        assert (hortifruti.group_total, hortifruti.commission, hortifruti.net_payable) == (
            Decimal("4.00"),
            Decimal("0.40"),
            Decimal("3.60"),
        )
        assert (bom_preco.group_total, bom_preco.commission, bom_preco.net_payable) == (
            Decimal("20.00"),
            Decimal("1.00"),
            Decimal("19.00"),
        )

    def test_removed_lines_are_excluded(self, settlement_service, completed_order, product_b):
        OrderItem.objects.filter(order_id=completed_order.id, product=product_b).update(
            confirmation_status=ItemConfirmationStatus.REMOVED
        )

        (row,) = settlement_service.settle_order(_reload(settlement_service, completed_order))

        assert row.group_total == Decimal("20.00")

    def test_uses_price_snapshot(self, settlement_service, completed_order, product):
        product.discount_price = Decimal("1.00")
        product.save()

        (row,) = settlement_service.settle_order(completed_order)

        assert row.group_total == Decimal("25.50")

    def test_uses_current_commercial_rate(self, settlement_service, completed_order, supermarket):
        supermarket.commercial_rate = Decimal("10.00")
        supermarket.save()

        (row,) = settlement_service.settle_order(_reload(settlement_service, completed_order))

        assert row.commission == Decimal("2.55")

    def test_open_orders_are_not_settled(self, settlement_service, make_order):
        with pytest.raises(SettlementNotAllowed):
            settlement_service.settle_order(make_order())


class TestListSettlements:
    def test_admin_sees_every_supermarket(self, settlement_service, mixed_order, admin_actor):
        rows = settlement_service.list_settlements(admin_actor)

        assert len(rows) == 2

    def test_admin_filters_by_supermarket(self, settlement_service, mixed_order, admin_actor, other_supermarket):
        rows = settlement_service.list_settlements(
            admin_actor, SettlementFilterDTO(supermarket_id=other_supermarket.id)
        )

        assert [row.supermarket_id for row in rows] == [other_supermarket.id]

    def test_staff_only_see_their_rows(self, settlement_service, mixed_order, staff_actor, other_supermarket):
        rows = settlement_service.list_settlements(
            staff_actor, SettlementFilterDTO(supermarket_id=other_supermarket.id)
        )

        assert [row.supermarket_id for row in rows] == [staff_actor.supermarket_id]

    def test_open_orders_are_left_out(self, settlement_service, make_order, completed_order, admin_actor):
        make_order()

        rows = settlement_service.list_settlements(admin_actor)

        assert [row.order_id for row in rows] == [completed_order.id]

    def test_filter_by_payment_status(self, settlement_service, completed_order, admin_actor):
        rows = settlement_service.list_settlements(
            admin_actor, SettlementFilterDTO(payment_status=SupermarketPaymentStatus.PAID)
        )

        assert rows == []

    def test_filter_by_date(self, settlement_service, completed_order, admin_actor):
        tomorrow = timezone.localdate() + timedelta(days=1)

        assert settlement_service.list_settlements(admin_actor, SettlementFilterDTO(start_date=tomorrow)) == []

    def test_customers_cannot_read(self, settlement_service):
        with pytest.raises(PermissionDenied):
            settlement_service.list_settlements(Actor.customer("ana@example.com"))


class TestSummarize:
    def test_totals(self, settlement_service, mixed_order, completed_order, admin_actor):
        summary = settlement_service.summarize(settlement_service.list_settlements(admin_actor))

        assert summary["count"] == 3
        assert summary["group_total"] == Decimal("49.50")
        assert summary["commission"] == Decimal("2.68")
        assert summary["net_payable"] == Decimal("46.82")
        assert summary["by_payment_status"][SupermarketPaymentStatus.AWAITING]["count"] == 3
        bom_preco = summary["by_supermarket"][1]
        assert bom_preco["supermarket_name"] == "Mercado Bom Preço"
        assert bom_preco["count"] == 2
        assert bom_preco["net_payable"] == Decimal("43.22")

    def test_empty(self, settlement_service):
        summary = settlement_service.summarize([])

        assert summary["count"] == 0
        assert summary["net_payable"] == Decimal("0.00")
        assert summary["by_supermarket"] == []


class TestUpdateSupermarketPayment:
    def test_mark_paid_defaults_to_net_payable(self, settlement_service, completed_order, admin_actor):
        order = settlement_service.update_supermarket_payment(
            completed_order.id,
            UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.PAID, notes="TED 123"),
            admin_actor,
        )

        assert order.supermarket_payment_status == SupermarketPaymentStatus.PAID
        assert order.supermarket_payment_amount == Decimal("24.22")
        assert order.supermarket_payment_date is not None
        assert order.supermarket_payment_notes == "TED 123"
        assert order.status == OrderStatus.COMPLETED

    def test_advance_then_pay(self, settlement_service, completed_order, admin_actor):
        settlement_service.update_supermarket_payment(
            completed_order.id,
            UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.ADVANCED, amount=Decimal("10.00")),
            admin_actor,
        )
        order = settlement_service.update_supermarket_payment(
            completed_order.id,
            UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.PAID, amount=Decimal("24.22")),
            admin_actor,
        )

        assert order.supermarket_payment_status == SupermarketPaymentStatus.PAID
        assert order.supermarket_payment_amount == Decimal("24.22")

    def test_cannot_go_back(self, settlement_service, completed_order, admin_actor):
        settlement_service.update_supermarket_payment(
            completed_order.id, UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.PAID), admin_actor
        )

        with pytest.raises(InvalidSupermarketPaymentTransition):
            settlement_service.update_supermarket_payment(
                completed_order.id,
                UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.ADVANCED),
                admin_actor,
            )

    def test_same_status_only_updates_notes(self, settlement_service, completed_order, admin_actor):
        order = settlement_service.update_supermarket_payment(
            completed_order.id,
            UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.AWAITING, notes="Conferir NF"),
            admin_actor,
        )

        assert order.supermarket_payment_status == SupermarketPaymentStatus.AWAITING
        assert order.supermarket_payment_amount is None
        assert order.supermarket_payment_notes == "Conferir NF"

    def test_only_completed_orders(self, settlement_service, make_order, admin_actor):
        order = make_order()

        with pytest.raises(SettlementNotAllowed):
            settlement_service.update_supermarket_payment(
                order.id, UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.PAID), admin_actor
            )

    def test_only_administrators(self, settlement_service, completed_order, staff_actor):
        with pytest.raises(PermissionDenied):
            settlement_service.update_supermarket_payment(
                completed_order.id, UpdateSupermarketPaymentDTO(status=SupermarketPaymentStatus.PAID), staff_actor
            )

        assert Order.objects.get(id=completed_order.id).supermarket_payment_status == (
            SupermarketPaymentStatus.AWAITING
        )
