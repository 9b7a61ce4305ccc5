"""MercadoPago webhook signature verification.

The ``x-signature`` header looks like ``ts=1704908010,v1=618c8534...``.
``v1`` is the HMAC-SHA256, keyed with the webhook secret, of the manifest
``id:{data.id};request-id:{x-request-id};ts:{ts};``.
"""

from __future__ import annotations

import hashlib
import hmac
from typing import Dict, Optional


def parse_signature_header(header: str) -> Dict[str, str]:
    parts: Dict[str, str] = {}
    for chunk in header.split(","):
        key, _, value = chunk.strip().partition("=")
        if key and value:
            parts[key.strip()] = value.strip()
    return parts


def build_manifest(data_id: str, request_id: Optional[str], ts: str) -> str:
    manifest = f"id:{data_id.lower() if data_id.isalnum() else data_id};"
    if request_id:
        manifest += f"request-id:{request_id};"
    return manifest + f"ts:{ts};"


def sign_manifest(secret: str, manifest: str) -> str:
    return hmac.new(secret.encode(), manifest.encode(), hashlib.sha256).hexdigest()


def verify_webhook_signature(
    secret: str,
    signature_header: Optional[str],
    request_id: Optional[str],
    data_id: str,
) -> bool:
    if not secret or not signature_header:
        return False
    parts = parse_signature_header(signature_header)
    ts, received = parts.get("ts"), parts.get("v1")
    if not ts or not received:
        return False
    expected = sign_manifest(secret, build_manifest(data_id, request_id, ts))
    return hmac.compare_digest(expected, received)
