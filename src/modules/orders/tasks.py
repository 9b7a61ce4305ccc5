"""Scheduled order maintenance."""

import structlog
from celery import shared_task

from modules.orders.services import build_order_service

logger = structlog.get_logger(__name__)


@shared_task(name="orders.expire_overdue_payments")
def expire_overdue_payments() -> dict:
    """Reconcile PIX orders whose payment window has closed (Celery beat)."""
    summary = build_order_service().sweep_overdue_payments()
    logger.info("orders.expire_overdue_payments.finished", **summary)
    return summary
