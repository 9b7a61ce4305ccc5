"""Order lifecycle definition.

``VALID_TRANSITIONS`` is the single source of truth for which status may
follow which; ``OrderService.transition`` is the only code that consults
it and the only code that writes ``Order.status``.
"""

from __future__ import annotations

from django.db import models


class OrderStatus(models.TextChoices):
    AWAITING_PAYMENT = "awaiting_payment", "Aguardando pagamento"
    PAYMENT_EXPIRED = "payment_expired", "Pagamento expirado"
    PAYMENT_FAILED = "payment_failed", "Pagamento recusado"
    PENDING = "pending", "Pendente"
    CONFIRMED = "confirmed", "Confirmado"
    PREPARING = "preparing", "Em preparo"
    READY = "ready", "Pronto"
    SHIPPED = "shipped", "Enviado"
    COMPLETED = "completed", "Concluído"
    CANCELLED = "cancelled", "Cancelado"
    CANCELLED_CUSTOMER = "cancelled-customer", "Cancelado pelo cliente"
    CANCELLED_STAFF = "cancelled-staff", "Cancelado pelo supermercado"


class FulfillmentMethod(models.TextChoices):
    PICKUP = "pickup", "Retirada"
    DELIVERY = "delivery", "Entrega"


class PaymentMethod(models.TextChoices):
    PIX = "pix", "PIX"
    CASH = "cash", "Pagamento na retirada"


class ItemConfirmationStatus(models.TextChoices):
    PENDING = "pending", "Pendente"
    CONFIRMED = "confirmed", "Confirmado"
    REMOVED = "removed", "Removido"


class RefundStatus(models.TextChoices):
    NONE = "", "Sem estorno"
    PENDING = "pending", "Em processamento"
    APPROVED = "approved", "Estornado"
    FAILED = "failed", "Falhou"


class SupermarketPaymentStatus(models.TextChoices):
    AWAITING = "aguardando_pagamento", "Aguardando pagamento"
    ADVANCED = "pagamento_antecipado", "Pagamento antecipado"
    PAID = "pagamento_realizado", "Pagamento realizado"


class HistorySource(models.TextChoices):
    MANUAL = "manual", "Manual"
    SYSTEM = "system", "Sistema"


# ---------------------------------------------------------------------------
# State machine
# ---------------------------------------------------------------------------

CANCELLED_FAMILY: frozenset[str] = frozenset(
    {
        OrderStatus.CANCELLED,
        OrderStatus.CANCELLED_CUSTOMER,
        OrderStatus.CANCELLED_STAFF,
    }
)

TERMINAL_STATES: frozenset[str] = CANCELLED_FAMILY | {
    OrderStatus.COMPLETED,
    OrderStatus.PAYMENT_EXPIRED,
    OrderStatus.PAYMENT_FAILED,
}

_CANCELLATIONS = {OrderStatus.CANCELLED_STAFF, OrderStatus.CANCELLED_CUSTOMER}

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    OrderStatus.AWAITING_PAYMENT: frozenset(
        {
            OrderStatus.PENDING,
            OrderStatus.PAYMENT_EXPIRED,
            OrderStatus.PAYMENT_FAILED,
            *_CANCELLATIONS,
        }
    ),
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, *_CANCELLATIONS}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.PREPARING, *_CANCELLATIONS}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, *_CANCELLATIONS}),
    OrderStatus.READY: frozenset(
        {OrderStatus.SHIPPED, OrderStatus.COMPLETED, *_CANCELLATIONS}
    ),
    OrderStatus.SHIPPED: frozenset({OrderStatus.COMPLETED, *_CANCELLATIONS}),
    OrderStatus.COMPLETED: frozenset(),
    OrderStatus.PAYMENT_EXPIRED: frozenset(),
    OrderStatus.PAYMENT_FAILED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
    # Refund reconciliation: a cancellation becomes plain ``cancelled``
    # once its money has been returned.
    OrderStatus.CANCELLED_STAFF: frozenset({OrderStatus.CANCELLED}),
    OrderStatus.CANCELLED_CUSTOMER: frozenset({OrderStatus.CANCELLED}),
}

# Targets only the system (payment confirmation, expiry sweep, refund
# reconciliation) may request.  Staff may additionally expire a charge.
SYSTEM_TARGETS: frozenset[str] = frozenset(
    {
        OrderStatus.PENDING,
        OrderStatus.PAYMENT_FAILED,
        OrderStatus.CANCELLED,
    }
)

# Targets reserved for supermarket staff and administrators.
STAFF_TARGETS: frozenset[str] = frozenset(
    {
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.SHIPPED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED_STAFF,
    }
)

CUSTOMER_TARGETS: frozenset[str] = frozenset({OrderStatus.CANCELLED_CUSTOMER})

# ``ready`` branches on how the order reaches the customer.
FULFILLMENT_TARGETS: dict[str, frozenset[str]] = {
    FulfillmentMethod.PICKUP: frozenset({OrderStatus.COMPLETED}),
    FulfillmentMethod.DELIVERY: frozenset({OrderStatus.SHIPPED}),
}

# Statuses after which reserved stock goes back to the shelf.
STOCK_RELEASING_STATES: frozenset[str] = frozenset(
    {
        OrderStatus.PAYMENT_EXPIRED,
        OrderStatus.PAYMENT_FAILED,
        *_CANCELLATIONS,
    }
)

ORDER_NUMBER_MAX_RETRIES = 5

# Legacy name for ``pending`` accepted on input; never stored.
PAYMENT_CONFIRMED_ALIAS = "payment_confirmed"
