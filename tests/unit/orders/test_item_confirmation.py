"""Unit tests for per-item confirmation on confirmed orders.

Covers:
- Removing a line gives its stock back, restoring it reserves again.
- Only confirmed orders can be reviewed; only staff may review.
- Staff only touch lines of their own supermarket.
- Removed and backordered lines are not released twice on cancellation.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.core.actors import Actor
from modules.orders.constants import ItemConfirmationStatus, OrderStatus
from modules.orders.exceptions import ItemConfirmationNotAllowed, OrderItemNotFound
from modules.orders.models import OrderItem
from modules.products.exceptions import InsufficientStock
from shared.domain.exceptions import PermissionDenied

pytestmark = pytest.mark.unit


@pytest.fixture()
def confirmed_order(make_order, advance_order, product):
    return advance_order(make_order(items=[(product, 3)]), OrderStatus.CONFIRMED)


class TestItemConfirmation:
    def test_confirm_item(self, confirmed_order, order_service, staff_actor):
        item = confirmed_order.items.get()

        updated = order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.CONFIRMED, staff_actor
        )

        assert updated.confirmation_status == ItemConfirmationStatus.CONFIRMED
        item.refresh_from_db()
        assert item.confirmation_status == ItemConfirmationStatus.CONFIRMED

    def test_remove_releases_stock(self, confirmed_order, order_service, staff_actor, product):
        item = confirmed_order.items.get()

        order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.REMOVED, staff_actor
        )

        product.refresh_from_db()
        assert product.quantity == 10

    def test_restore_reserves_again(self, confirmed_order, order_service, staff_actor, product):
        item = confirmed_order.items.get()
        order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.REMOVED, staff_actor
        )

        order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.CONFIRMED, staff_actor
        )

        product.refresh_from_db()
        assert product.quantity == 7

    def test_restore_fails_when_stock_is_gone(self, confirmed_order, order_service, staff_actor, product):
        item = confirmed_order.items.get()
        order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.REMOVED, staff_actor
        )
        product.__class__.objects.filter(id=product.id).update(quantity=1)

        with pytest.raises(InsufficientStock):
            order_service.update_item_confirmation(
                confirmed_order.id, item.id, ItemConfirmationStatus.CONFIRMED, staff_actor
            )

    def test_same_status_is_a_no_op(self, confirmed_order, order_service, staff_actor, product):
        item = confirmed_order.items.get()

        order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.PENDING, staff_actor
        )

        product.refresh_from_db()
        assert product.quantity == 7

    def test_only_confirmed_orders(self, make_order, order_service, staff_actor):
        order = make_order()
        item = order.items.get()

        with pytest.raises(ItemConfirmationNotAllowed):
            order_service.update_item_confirmation(
                order.id, item.id, ItemConfirmationStatus.REMOVED, staff_actor
            )

    def test_customers_cannot_review_items(self, confirmed_order, order_service):
        item = confirmed_order.items.get()

        with pytest.raises(PermissionDenied):
            order_service.update_item_confirmation(
                confirmed_order.id,
                item.id,
                ItemConfirmationStatus.REMOVED,
                Actor.customer(confirmed_order.customer_email),
            )

    def test_unknown_item(self, confirmed_order, order_service, staff_actor):
        with pytest.raises(OrderItemNotFound):
            order_service.update_item_confirmation(
                confirmed_order.id, uuid4(), ItemConfirmationStatus.REMOVED, staff_actor
            )

    def test_staff_cannot_touch_another_supermarkets_line(
        self, make_order, advance_order, order_service, product, other_supermarket, make_product
    ):
        lettuce = make_product(supermarket=other_supermarket, name="Alface Crespa", category="Hortifruti")
        order = advance_order(make_order(items=[(product, 1), (lettuce, 1)]), OrderStatus.CONFIRMED)
        my_item = order.items.get(product=product)

        with pytest.raises(OrderItemNotFound):
            order_service.update_item_confirmation(
                order.id,
                my_item.id,
                ItemConfirmationStatus.REMOVED,
                Actor.from_user(other_supermarket.user),
            )


class TestStockOnCancellation:
    def test_removed_line_is_not_released_twice(self, confirmed_order, order_service, staff_actor, product):
        item = confirmed_order.items.get()
        order_service.update_item_confirmation(
            confirmed_order.id, item.id, ItemConfirmationStatus.REMOVED, staff_actor
        )

        order_service.cancel_order(confirmed_order.id, staff_actor)

        product.refresh_from_db()
        assert product.quantity == 10

    def test_backordered_line_is_not_released(self, confirmed_order, order_service, staff_actor, product):
        OrderItem.objects.filter(order_id=confirmed_order.id).update(backordered=True)

        order_service.cancel_order(confirmed_order.id, staff_actor)

        product.refresh_from_db()
        assert product.quantity == 7
