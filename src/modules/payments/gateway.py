"""Payment gateway port.

The service layer talks to the instant-payment provider only through
``IPaymentGateway`` and the normalized value objects below, so the
provider can be swapped (``PAYMENT_GATEWAY_CLASS``) and faked in tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string


class ChargeState:
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"

    ALL = frozenset({PENDING, APPROVED, REJECTED, CANCELLED})


class RefundState:
    APPROVED = "approved"
    PENDING = "pending"


@dataclass(frozen=True)
class Payer:
    email: str
    name: str = ""
    phone: str = ""

    @property
    def first_name(self) -> str:
        return self.name.split(" ", 1)[0] if self.name else ""

    @property
    def last_name(self) -> str:
        parts = self.name.split(" ", 1)
        return parts[1] if len(parts) > 1 else ""


@dataclass(frozen=True)
class ChargeHandle:
    charge_id: str
    payment_code: str
    qr_code_base64: str
    expires_at: datetime
    status: str = ChargeState.PENDING


@dataclass(frozen=True)
class ChargeStatus:
    charge_id: str
    status: str
    detail: str = ""
    external_reference: str = ""
    amount: Optional[Decimal] = None

    @property
    def is_approved(self) -> bool:
        return self.status == ChargeState.APPROVED


@dataclass(frozen=True)
class RefundHandle:
    refund_id: str
    charge_id: str
    amount: Decimal
    status: str


class IPaymentGateway(ABC):
    @abstractmethod
    def create_charge(
        self,
        amount: Decimal,
        description: str,
        payer: Payer,
        idempotency_key: str,
        expires_at: datetime,
    ) -> ChargeHandle:
        """Request a new instant-payment charge.

        ``idempotency_key`` is also sent as the charge's external
        reference.  Raises ``GatewayUnavailable`` or ``InvalidPayer``.
        """

    @abstractmethod
    def get_charge_status(self, charge_id: str) -> ChargeStatus:
        """Current status of a charge.  Read-only, safe to repeat."""

    @abstractmethod
    def create_refund(
        self, charge_id: str, reason: str = "", amount: Optional[Decimal] = None
    ) -> RefundHandle:
        """Refund an approved charge (in full unless ``amount`` is given).

        Raises ``AlreadyRefunded`` or ``RefundNotAllowed`` when the charge
        state forbids it.
        """

    @abstractmethod
    def cancel_charge(self, charge_id: str) -> bool:
        """Best-effort cancellation of an unpaid charge.

        Returns ``False`` when the charge can no longer be cancelled
        (already approved or rejected).
        """


def get_payment_gateway() -> IPaymentGateway:
    """Instantiate the gateway configured in ``PAYMENT_GATEWAY_CLASS``."""
    gateway_class = import_string(settings.PAYMENT_GATEWAY_CLASS)
    return gateway_class()
