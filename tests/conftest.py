from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from itertools import count
from typing import Dict, List, Optional

import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core.cache import caches
from django.utils import timezone
from rest_framework.test import APIClient

from modules.core.actors import Actor
from modules.orders.constants import FulfillmentMethod, OrderStatus, PaymentMethod
from modules.orders.dtos import CreateOrderDTO, CustomerInfoDTO, OrderItemInputDTO
from modules.orders.services import build_order_service
from modules.payments.exceptions import AlreadyRefunded, ChargeNotFound, RefundNotAllowed
from modules.payments.gateway import (
    ChargeHandle,
    ChargeState,
    ChargeStatus,
    IPaymentGateway,
    RefundHandle,
    RefundState,
)
from modules.payments.services import build_checkout_service
from modules.products.models import Product
from modules.supermarkets.models import ApprovalStatus, Supermarket
from shared.domain.exceptions import GatewayUnavailable

User = get_user_model()

CUSTOMER_EMAIL = "maria@example.com"

LIFECYCLE = {
    FulfillmentMethod.PICKUP: [
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.COMPLETED,
    ],
    FulfillmentMethod.DELIVERY: [
        OrderStatus.CONFIRMED,
        OrderStatus.PREPARING,
        OrderStatus.READY,
        OrderStatus.SHIPPED,
        OrderStatus.COMPLETED,
    ],
}


# ---------------------------------------------------------------------------
# Payment gateway double
# ---------------------------------------------------------------------------


class FakePaymentGateway(IPaymentGateway):
    """In-memory gateway: charges live in a dict, tests flip their status."""

    def __init__(self) -> None:
        self.charges: Dict[str, dict] = {}
        self.refunds: List[RefundHandle] = []
        self.cancelled: List[str] = []
        self.unavailable = False
        self.refund_error: Optional[Exception] = None
        self.refund_state = RefundState.APPROVED
        self._ids = count(1001)

    def _check_up(self) -> None:
        if self.unavailable:
            raise GatewayUnavailable("Gateway timed out.")

    def _charge(self, charge_id: str) -> dict:
        charge = self.charges.get(str(charge_id))
        if charge is None:
            raise ChargeNotFound(f"Charge {charge_id} not found.")
        return charge

    def create_charge(self, amount, description, payer, idempotency_key, expires_at) -> ChargeHandle:
        self._check_up()
        charge_id = str(next(self._ids))
        self.charges[charge_id] = {
            "status": ChargeState.PENDING,
            "detail": "pending_waiting_transfer",
            "amount": amount,
            "external_reference": idempotency_key,
            "payer": payer,
        }
        return ChargeHandle(
            charge_id=charge_id,
            payment_code=f"00020126580014br.gov.bcb.pix{charge_id}",
            qr_code_base64="iVBORw0KGgo=",
            expires_at=expires_at,
        )

    def add_charge(self, charge_id, amount, external_reference, status=ChargeState.APPROVED) -> None:
        self.charges[str(charge_id)] = {
            "status": status,
            "detail": "",
            "amount": amount,
            "external_reference": external_reference,
        }

    def set_status(self, charge_id, status, detail="") -> None:
        charge = self._charge(charge_id)
        charge["status"] = status
        charge["detail"] = detail

    def approve(self, charge_id) -> None:
        self.set_status(charge_id, ChargeState.APPROVED, "accredited")

    def get_charge_status(self, charge_id) -> ChargeStatus:
        self._check_up()
        charge = self._charge(charge_id)
        return ChargeStatus(
            charge_id=str(charge_id),
            status=charge["status"],
            detail=charge["detail"],
            external_reference=charge["external_reference"],
            amount=charge["amount"],
        )

    def create_refund(self, charge_id, reason="", amount=None) -> RefundHandle:
        self._check_up()
        if self.refund_error is not None:
            raise self.refund_error
        charge = self._charge(charge_id)
        if charge.get("refunded"):
            raise AlreadyRefunded(f"Charge {charge_id} was already refunded.")
        if charge["status"] != ChargeState.APPROVED:
            raise RefundNotAllowed(f"Charge {charge_id} is {charge['status']}.")
        charge["refunded"] = True
        refund = RefundHandle(
            refund_id=f"rf-{charge_id}",
            charge_id=str(charge_id),
            amount=amount or charge["amount"],
            status=self.refund_state,
        )
        self.refunds.append(refund)
        return refund

    def cancel_charge(self, charge_id) -> bool:
        self._check_up()
        charge = self._charge(charge_id)
        if charge["status"] == ChargeState.CANCELLED:
            return True
        if charge["status"] != ChargeState.PENDING:
            return False
        charge["status"] = ChargeState.CANCELLED
        self.cancelled.append(str(charge_id))
        return True


# ---------------------------------------------------------------------------
# Infrastructure
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _clear_caches():
    """Drafts, locks and throttle counters must not leak between tests."""
    for alias in settings.CACHES:
        caches[alias].clear()
    yield


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


@pytest.fixture()
def fake_gateway(monkeypatch):
    """Fake gateway, also injected into every view that builds a service."""
    gateway = FakePaymentGateway()
    monkeypatch.setattr("modules.orders.views.get_payment_gateway", lambda: gateway)
    monkeypatch.setattr("modules.payments.views.get_payment_gateway", lambda: gateway)
    return gateway


# ---------------------------------------------------------------------------
# Users and tenants
# ---------------------------------------------------------------------------


@pytest.fixture()
def admin_user():
    return User.objects.create_user(
        username="admin", email="admin@saveup.test", password="admin-pass-123", is_staff=True
    )


@pytest.fixture()
def supermarket():
    user = User.objects.create_user(
        username="bompreco", email="contato@bompreco.test", password="staff-pass-123"
    )
    return Supermarket.objects.create(
        user=user,
        company_name="Mercado Bom Preço",
        cnpj="11222333000181",
        approval_status=ApprovalStatus.APPROVED,
        commercial_rate=Decimal("5.00"),
        payment_terms=30,
    )


@pytest.fixture()
def staff_user(supermarket):
    return supermarket.user


@pytest.fixture()
def other_supermarket():
    user = User.objects.create_user(
        username="hortifeliz", email="contato@hortifeliz.test", password="staff-pass-123"
    )
    return Supermarket.objects.create(
        user=user,
        company_name="Hortifruti Feliz",
        cnpj="11444777000161",
        approval_status=ApprovalStatus.APPROVED,
        commercial_rate=Decimal("10.00"),
        payment_terms=15,
    )


@pytest.fixture()
def pending_supermarket():
    user = User.objects.create_user(
        username="novomercado", email="contato@novomercado.test", password="staff-pass-123"
    )
    return Supermarket.objects.create(
        user=user,
        company_name="Novo Mercado",
        cnpj="12345678000195",
        approval_status=ApprovalStatus.PENDING,
    )


@pytest.fixture()
def admin_actor(admin_user):
    return Actor.from_user(admin_user)


@pytest.fixture()
def staff_actor(staff_user):
    return Actor.from_user(staff_user)


@pytest.fixture()
def admin_client(admin_user):
    client = APIClient()
    client.force_authenticate(user=admin_user)
    return client


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product(supermarket):
    def _make(**overrides) -> Product:
        data = {
            "supermarket": supermarket,
            "name": "Iogurte Natural 170g",
            "category": "Laticínios",
            "original_price": Decimal("12.00"),
            "discount_price": Decimal("10.00"),
            "quantity": 10,
            "expiration_date": timezone.localdate() + timedelta(days=3),
        }
        data.update(overrides)
        return Product.objects.create(**data)

    return _make


@pytest.fixture()
def product(make_product):
    return make_product()


@pytest.fixture()
def product_b(make_product):
    return make_product(
        name="Pão de Forma",
        category="Padaria",
        original_price=Decimal("8.00"),
        discount_price=Decimal("5.50"),
        quantity=5,
        expiration_date=timezone.localdate() + timedelta(days=1),
    )


# ---------------------------------------------------------------------------
# Services and orders
# ---------------------------------------------------------------------------


@pytest.fixture()
def order_service(fake_gateway):
    return build_order_service(fake_gateway)


@pytest.fixture()
def checkout_service(fake_gateway):
    return build_checkout_service(fake_gateway)


@pytest.fixture()
def make_order(order_service, product):
    """Create an order through the service; ``items`` is ``[(product, qty)]``."""

    def _make(
        items=None,
        payment_method=PaymentMethod.CASH,
        fulfillment_method=FulfillmentMethod.PICKUP,
        email=CUSTOMER_EMAIL,
        **extra,
    ):
        lines = items or [(product, 2)]
        dto = CreateOrderDTO(
            customer=CustomerInfoDTO(name="Maria Silva", email=email, phone="11999990000"),
            items=[OrderItemInputDTO(product_id=p.id, quantity=qty) for p, qty in lines],
            payment_method=payment_method,
            fulfillment_method=fulfillment_method,
            delivery_address="Rua das Flores, 10" if fulfillment_method == FulfillmentMethod.DELIVERY else "",
            **extra,
        )
        order, _ = order_service.create_order(dto)
        return order

    return _make


@pytest.fixture()
def paid_order(make_order, order_service, fake_gateway):
    """A PIX order whose charge was approved (status ``pending``)."""
    order = make_order(payment_method=PaymentMethod.PIX)
    fake_gateway.approve(order.payment_reference)
    return order_service.reconcile_payment(order.id, fake_gateway.get_charge_status(order.payment_reference))


@pytest.fixture()
def advance_order(order_service, admin_actor):
    """Walk a ``pending`` order forward along its fulfillment path up to ``until``."""

    def _advance(order, until):
        path = LIFECYCLE[order.fulfillment_method]
        for target in path[: path.index(until) + 1]:
            order = order_service.transition(order.id, target, admin_actor)
        return order

    return _advance


@pytest.fixture()
def checkout_body():
    """Checkout body for the orders and draft endpoints; ``items`` is ``[(product, qty)]``."""

    def _body(items, **overrides) -> dict:
        total = sum((p.discount_price * qty for p, qty in items), Decimal("0.00"))
        body = {
            "customer_name": "Maria Silva",
            "customer_email": CUSTOMER_EMAIL,
            "customer_phone": "11999990000",
            "fulfillment_method": "pickup",
            "total_amount": str(total),
            "items": [{"product_id": str(p.id), "quantity": qty} for p, qty in items],
        }
        body.update(overrides)
        return body

    return _body
