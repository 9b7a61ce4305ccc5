"""Unit tests for MercadoPago webhook signature verification.

Covers:
- Header parsing.
- Manifest layout, with and without a request id.
- Valid, tampered, stale-secret and malformed signatures.
"""

from __future__ import annotations

import pytest

from modules.payments.webhooks import (
    build_manifest,
    parse_signature_header,
    sign_manifest,
    verify_webhook_signature,
)

pytestmark = pytest.mark.unit

SECRET = "test-webhook-secret"
TS = "1704908010"
REQUEST_ID = "bb56a2f1-6aae-46ac-982e-9dcd3581d08e"


def _header(data_id="123456", request_id=REQUEST_ID, secret=SECRET, ts=TS):
    return f"ts={ts},v1={sign_manifest(secret, build_manifest(data_id, request_id, ts))}"


class TestManifest:
    def test_parse_header(self):
        assert parse_signature_header("ts=1704908010, v1=abc") == {"ts": "1704908010", "v1": "abc"}

    def test_parse_ignores_garbage(self):
        assert parse_signature_header("nonsense,v1=") == {}

    def test_manifest_layout(self):
        assert build_manifest("123456", REQUEST_ID, TS) == f"id:123456;request-id:{REQUEST_ID};ts:{TS};"

    def test_manifest_without_request_id(self):
        assert build_manifest("123456", None, TS) == f"id:123456;ts:{TS};"

    def test_alphanumeric_ids_are_lowercased(self):
        assert build_manifest("ABC123", None, TS) == f"id:abc123;ts:{TS};"


class TestVerifyWebhookSignature:
    def test_valid_signature(self):
        assert verify_webhook_signature(SECRET, _header(), REQUEST_ID, "123456")

    def test_different_charge_id(self):
        assert not verify_webhook_signature(SECRET, _header(), REQUEST_ID, "999999")

    def test_different_request_id(self):
        assert not verify_webhook_signature(SECRET, _header(), "another-request", "123456")

    def test_wrong_secret(self):
        assert not verify_webhook_signature(SECRET, _header(secret="old-secret"), REQUEST_ID, "123456")

    @pytest.mark.parametrize("header", [None, "", "ts=1704908010", "v1=abc"])
    def test_incomplete_header(self, header):
        assert not verify_webhook_signature(SECRET, header, REQUEST_ID, "123456")

    def test_unconfigured_secret_rejects_everything(self):
        assert not verify_webhook_signature("", _header(secret=""), REQUEST_ID, "123456")
