"""Fire-and-forget notification dispatcher.

Callers (event handlers) never see an exception from here: a failure
to enqueue a push is logged and dropped, it must not undo the order
change that triggered it.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Callable, Dict, Optional

import structlog

from modules.notifications.messages import status_message

logger = structlog.get_logger(__name__)

Enqueue = Callable[[str, Dict[str, Any]], Any]


def _celery_enqueue(email: str, payload: Dict[str, Any]) -> Any:
    from modules.notifications.tasks import send_push_notification

    return send_push_notification.delay(email, payload)


class NotificationDispatcher:
    def __init__(self, enqueue: Optional[Enqueue] = None) -> None:
        self._enqueue = enqueue or _celery_enqueue

    def notify_status_change(self, order_id: Any, order_number: str, email: str, status: str) -> None:
        title, body = status_message(status, order_number)
        self._dispatch(
            email,
            {
                "title": title,
                "body": body,
                "url": f"/orders/{order_id}",
                "tag": f"order-{order_id}",
                "status": status,
            },
        )

    def notify_refund(self, order_id: Any, order_number: str, email: str, amount: Decimal) -> None:
        self._dispatch(
            email,
            {
                "title": "Estorno solicitado",
                "body": f"O estorno de R$ {amount:.2f} do pedido {order_number} foi enviado ao banco.",
                "url": f"/orders/{order_id}",
                "tag": f"refund-{order_id}",
            },
        )

    def notify_eco_points(self, email: str, points: int, total_points: Optional[int] = None) -> None:
        body = f"Você ganhou {points} eco pontos!"
        if total_points is not None:
            body += f" Saldo: {total_points}."
        self._dispatch(
            email,
            {"title": "Eco pontos", "body": body, "url": "/eco-points", "tag": "eco-points"},
        )

    def _dispatch(self, email: str, payload: Dict[str, Any]) -> None:
        try:
            self._enqueue(email, payload)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "notification.dispatch_failed",
                tag=payload.get("tag"),
                error=str(exc),
                exc_info=True,
            )
            return
        logger.info("notification.dispatched", tag=payload.get("tag"))


notification_dispatcher = NotificationDispatcher()
