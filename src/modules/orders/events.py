"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from shared.domain.events import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderCreated(DomainEvent):
    """Raised when an order is materialized."""

    order_number: str
    status: str
    customer_email: str


@dataclass(frozen=True, kw_only=True)
class OrderStatusChanged(DomainEvent):
    """Raised after every committed status transition."""

    order_number: str
    old_status: str
    new_status: str
    customer_email: str
    actor: str = "system"


@dataclass(frozen=True, kw_only=True)
class OrderRefunded(DomainEvent):
    """Raised when a refund for the order's charge was accepted by the gateway."""

    order_number: str
    customer_email: str
    amount: Decimal
    refund_reference: str


@dataclass(frozen=True, kw_only=True)
class EcoPointsAwarded(DomainEvent):
    """Raised when a completed order credited eco points to its customer."""

    customer_email: str
    points: int
    total_points: Optional[int] = None
