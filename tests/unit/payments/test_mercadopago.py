"""Unit tests for the MercadoPago PIX adapter.

The HTTP layer is replaced by ``httpx.MockTransport``; each test routes
requests to a small handler that plays the gateway.

Covers:
- Charge creation payload and PIX code extraction.
- Status normalization (pending family, refunded, charged back).
- Transport errors and 5xx answers become GatewayUnavailable.
- 404 becomes ChargeNotFound; payer rejections become InvalidPayer.
- Refund guards and cancellation of unpaid charges.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal

import httpx
import pytest

from modules.payments.exceptions import AlreadyRefunded, ChargeNotFound, InvalidPayer, RefundNotAllowed
from modules.payments.gateway import ChargeState, Payer, RefundState
from modules.payments.mercadopago import MercadoPagoGateway
from shared.domain.exceptions import GatewayError, GatewayRejected, GatewayUnavailable

pytestmark = pytest.mark.unit

EXPIRES_AT = datetime(2026, 3, 2, 15, 30, tzinfo=dt_timezone.utc)


def _gateway(handler) -> MercadoPagoGateway:
    client = httpx.Client(base_url="https://gateway.test", transport=httpx.MockTransport(handler))
    return MercadoPagoGateway(access_token="TEST-token", client=client)


def _payment(status="pending", **extra):
    return {
        "id": 123456,
        "status": status,
        "status_detail": extra.pop("status_detail", ""),
        "transaction_amount": 20.0,
        "external_reference": "draft_abc",
        **extra,
    }


# ---------------------------------------------------------------------------
# Charges
# ---------------------------------------------------------------------------


class TestCreateCharge:
    def test_sends_pix_payload_and_reads_code(self):
        seen = {}

        def handler(request):
            seen["body"] = json.loads(request.content)
            seen["headers"] = request.headers
            return httpx.Response(
                201,
                json=_payment(
                    date_of_expiration="2026-03-02T12:30:00.000-03:00",
                    point_of_interaction={
                        "transaction_data": {"qr_code": "00020126580014br.gov.bcb.pix", "qr_code_base64": "iVBO"}
                    },
                ),
            )

        charge = _gateway(handler).create_charge(
            amount=Decimal("20.00"),
            description="Pedido SaveUp",
            payer=Payer(email="ana@example.com", name="Ana Maria Lima"),
            idempotency_key="draft_abc",
            expires_at=EXPIRES_AT,
        )

        assert charge.charge_id == "123456"
        assert charge.payment_code == "00020126580014br.gov.bcb.pix"
        assert charge.qr_code_base64 == "iVBO"
        assert charge.status == ChargeState.PENDING
        assert charge.expires_at == EXPIRES_AT
        assert seen["body"]["payment_method_id"] == "pix"
        assert seen["body"]["transaction_amount"] == 20.0
        assert seen["body"]["external_reference"] == "draft_abc"
        assert seen["body"]["payer"] == {"email": "ana@example.com", "first_name": "Ana", "last_name": "Maria Lima"}
        assert seen["headers"]["X-Idempotency-Key"] == "draft_abc"

    def test_missing_pix_code(self):
        gateway = _gateway(lambda request: httpx.Response(201, json=_payment()))

        with pytest.raises(GatewayError):
            gateway.create_charge(Decimal("20.00"), "x", Payer(email="a@b.com"), "draft_abc", EXPIRES_AT)

    def test_payer_rejection(self):
        gateway = _gateway(
            lambda request: httpx.Response(
                400, json={"message": "Invalid payer email", "cause": [{"description": "payer.email"}]}
            )
        )

        with pytest.raises(InvalidPayer):
            gateway.create_charge(Decimal("20.00"), "x", Payer(email="a@b"), "draft_abc", EXPIRES_AT)

    def test_other_rejection(self):
        gateway = _gateway(lambda request: httpx.Response(400, json={"message": "invalid amount"}))

        with pytest.raises(GatewayRejected) as exc_info:
            gateway.create_charge(Decimal("20.00"), "x", Payer(email="a@b.com"), "draft_abc", EXPIRES_AT)

        assert not isinstance(exc_info.value, InvalidPayer)

    def test_missing_token_means_unavailable(self, settings):
        settings.MERCADOPAGO_ACCESS_TOKEN = ""

        with pytest.raises(GatewayUnavailable):
            MercadoPagoGateway().get_charge_status("123456")


class TestTransportFailures:
    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(GatewayUnavailable):
            _gateway(handler).get_charge_status("123456")

    def test_connection_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(GatewayUnavailable):
            _gateway(handler).get_charge_status("123456")

    def test_server_error(self):
        with pytest.raises(GatewayUnavailable):
            _gateway(lambda request: httpx.Response(502, json={})).get_charge_status("123456")

    def test_not_found(self):
        with pytest.raises(ChargeNotFound):
            _gateway(lambda request: httpx.Response(404, json={"message": "not found"})).get_charge_status("1")

    def test_non_json_body(self):
        with pytest.raises(GatewayError):
            _gateway(lambda request: httpx.Response(200, text="<html>")).get_charge_status("123456")


class TestChargeStatus:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("pending", ChargeState.PENDING),
            ("in_process", ChargeState.PENDING),
            ("authorized", ChargeState.PENDING),
            ("approved", ChargeState.APPROVED),
            ("rejected", ChargeState.REJECTED),
            ("cancelled", ChargeState.CANCELLED),
            ("refunded", ChargeState.CANCELLED),
            ("charged_back", ChargeState.CANCELLED),
        ],
    )
    def test_status_mapping(self, raw, expected):
        status = _gateway(lambda request: httpx.Response(200, json=_payment(raw))).get_charge_status("123456")

        assert status.status == expected

    def test_refunded_keeps_detail(self):
        status = _gateway(
            lambda request: httpx.Response(200, json=_payment("refunded"))
        ).get_charge_status("123456")

        assert status.detail == "refunded"

    def test_fields(self):
        status = _gateway(
            lambda request: httpx.Response(200, json=_payment("approved", status_detail="accredited"))
        ).get_charge_status("123456")

        assert status.is_approved
        assert status.detail == "accredited"
        assert status.amount == Decimal("20.00")
        assert status.external_reference == "draft_abc"

    def test_unknown_status(self):
        with pytest.raises(GatewayError):
            _gateway(lambda request: httpx.Response(200, json=_payment("mystery"))).get_charge_status("1")


class TestCancelCharge:
    def test_cancels_pending_charge(self):
        calls = []

        def handler(request):
            calls.append(request.method)
            if request.method == "PUT":
                assert json.loads(request.content) == {"status": "cancelled"}
                return httpx.Response(200, json=_payment("cancelled"))
            return httpx.Response(200, json=_payment("pending"))

        assert _gateway(handler).cancel_charge("123456") is True
        assert calls == ["GET", "PUT"]

    def test_already_cancelled(self):
        assert _gateway(lambda request: httpx.Response(200, json=_payment("cancelled"))).cancel_charge("1")

    def test_approved_charge_is_not_cancelled(self):
        assert not _gateway(lambda request: httpx.Response(200, json=_payment("approved"))).cancel_charge("1")


# ---------------------------------------------------------------------------
# Refunds
# ---------------------------------------------------------------------------


def _refund_handler(charge_status="approved", refunds=(), refund_status="approved", posted=None):
    def handler(request):
        path = request.url.path
        if request.method == "POST" and path.endswith("/refunds"):
            body = json.loads(request.content)
            if posted is not None:
                posted.append((body, request.headers.get("X-Idempotency-Key")))
            return httpx.Response(201, json={"id": 77, "amount": body["amount"], "status": refund_status})
        if path.endswith("/refunds"):
            return httpx.Response(200, json=list(refunds))
        return httpx.Response(200, json=_payment(charge_status))

    return handler


class TestCreateRefund:
    def test_full_refund(self):
        posted = []

        refund = _gateway(_refund_handler(posted=posted)).create_refund("123456", reason="Sem estoque")

        assert refund.refund_id == "77"
        assert refund.amount == Decimal("20.00")
        assert refund.status == RefundState.APPROVED
        body, key = posted[0]
        assert body == {"amount": 20.0, "metadata": {"reason": "Sem estoque"}}
        assert key == "refund-123456-20.00"

    def test_partial_refund_counts_previous_ones(self):
        posted = []
        handler = _refund_handler(refunds=[{"amount": 5.0, "status": "approved"}], posted=posted)

        refund = _gateway(handler).create_refund("123456")

        assert refund.amount == Decimal("15.00")

    def test_pending_refund(self):
        refund = _gateway(_refund_handler(refund_status="in_process")).create_refund("123456")

        assert refund.status == RefundState.PENDING

    def test_rejected_refund(self):
        with pytest.raises(GatewayRejected):
            _gateway(_refund_handler(refund_status="rejected")).create_refund("123456")

    def test_already_refunded_charge(self):
        with pytest.raises(AlreadyRefunded):
            _gateway(_refund_handler(charge_status="refunded")).create_refund("123456")

    def test_nothing_left_to_refund(self):
        handler = _refund_handler(refunds=[{"amount": 20.0, "status": "approved"}])

        with pytest.raises(AlreadyRefunded):
            _gateway(handler).create_refund("123456")

    def test_pending_charge_cannot_be_refunded(self):
        with pytest.raises(RefundNotAllowed):
            _gateway(_refund_handler(charge_status="pending")).create_refund("123456")

    def test_amount_above_available(self):
        with pytest.raises(RefundNotAllowed):
            _gateway(_refund_handler()).create_refund("123456", amount=Decimal("25.00"))

    def test_paginated_refund_listing(self):
        def handler(request):
            if request.method == "GET" and request.url.path.endswith("/refunds"):
                return httpx.Response(200, json={"results": [{"amount": 8.0, "status": "approved"}]})
            return _refund_handler()(request)

        assert _gateway(handler).refundable_amount("123456") == (Decimal("20.0"), Decimal("8.0"))


def test_default_expiry_is_kept_when_gateway_omits_it():
    def handler(request):
        return httpx.Response(
            201,
            json=_payment(point_of_interaction={"transaction_data": {"qr_code": "000201abc"}}),
        )

    expires = EXPIRES_AT + timedelta(minutes=5)
    charge = _gateway(handler).create_charge(Decimal("1.00"), "x", Payer(email="a@b.com"), "k", expires)

    assert charge.expires_at == expires
    assert charge.qr_code_base64 == ""
