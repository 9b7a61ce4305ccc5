"""Event handlers for Orders domain events.

Handlers run after the transaction commits.  They only hand work to the
notification dispatcher, which never raises.
"""

from __future__ import annotations

import structlog

from modules.notifications.dispatcher import NotificationDispatcher, notification_dispatcher
from modules.orders.events import EcoPointsAwarded, OrderCreated, OrderRefunded, OrderStatusChanged
from shared.domain.bus import IEventHandler

logger = structlog.get_logger(__name__)


class OrderCreatedHandler(IEventHandler[OrderCreated]):
    def __init__(self, dispatcher: NotificationDispatcher = notification_dispatcher) -> None:
        self._dispatcher = dispatcher

    def handle(self, event: OrderCreated) -> None:
        logger.info("order.event.created", order_id=str(event.aggregate_id), status=event.status)
        self._dispatcher.notify_status_change(
            event.aggregate_id, event.order_number, event.customer_email, event.status
        )


class OrderStatusChangedHandler(IEventHandler[OrderStatusChanged]):
    def __init__(self, dispatcher: NotificationDispatcher = notification_dispatcher) -> None:
        self._dispatcher = dispatcher

    def handle(self, event: OrderStatusChanged) -> None:
        logger.info(
            "order.event.status_changed",
            order_id=str(event.aggregate_id),
            old_status=event.old_status,
            new_status=event.new_status,
        )
        self._dispatcher.notify_status_change(
            event.aggregate_id, event.order_number, event.customer_email, event.new_status
        )


class OrderRefundedHandler(IEventHandler[OrderRefunded]):
    def __init__(self, dispatcher: NotificationDispatcher = notification_dispatcher) -> None:
        self._dispatcher = dispatcher

    def handle(self, event: OrderRefunded) -> None:
        logger.info("order.event.refunded", order_id=str(event.aggregate_id))
        self._dispatcher.notify_refund(
            event.aggregate_id, event.order_number, event.customer_email, event.amount
        )


class EcoPointsAwardedHandler(IEventHandler[EcoPointsAwarded]):
    def __init__(self, dispatcher: NotificationDispatcher = notification_dispatcher) -> None:
        self._dispatcher = dispatcher

    def handle(self, event: EcoPointsAwarded) -> None:
        self._dispatcher.notify_eco_points(event.customer_email, event.points, event.total_points)


order_created_handler = OrderCreatedHandler()
order_status_changed_handler = OrderStatusChangedHandler()
order_refunded_handler = OrderRefundedHandler()
eco_points_awarded_handler = EcoPointsAwardedHandler()
