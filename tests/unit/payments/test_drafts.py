"""Unit tests for the checkout draft cache.

Covers:
- Draft ids.
- Store/get/delete round trip on the configured cache alias.
- The per-draft processing lock (exclusive, released on error).
"""

from __future__ import annotations

import re
from decimal import Decimal
from uuid import uuid4

import pytest
from django.utils import timezone

from modules.orders.dtos import CustomerInfoDTO
from modules.payments.drafts import (
    CacheDraftStore,
    DraftItem,
    TemporaryOrderDraft,
    new_draft_id,
    processing_lock,
)
from modules.payments.exceptions import DraftAlreadyProcessing

pytestmark = pytest.mark.unit


@pytest.fixture()
def store():
    return CacheDraftStore()


@pytest.fixture()
def draft():
    return TemporaryOrderDraft(
        draft_id=new_draft_id(),
        charge_id="1001",
        customer=CustomerInfoDTO(name="Ana Lima", email="ana@example.com"),
        items=[DraftItem(product_id=uuid4(), quantity=2, price=Decimal("10.00"), name="Iogurte")],
        total_amount=Decimal("20.00"),
        created_at=timezone.now(),
    )


class TestDraftId:
    def test_format(self):
        assert re.fullmatch(r"draft_[0-9a-f]{32}", new_draft_id())

    def test_unique(self):
        assert new_draft_id() != new_draft_id()


class TestCacheDraftStore:
    def test_set_and_get(self, store, draft):
        store.set(draft, ttl=60)

        loaded = store.get(draft.draft_id)

        assert loaded == draft
        assert loaded.items[0].price == Decimal("10.00")

    def test_missing_draft(self, store):
        assert store.get(new_draft_id()) is None

    def test_delete(self, store, draft):
        store.set(draft, ttl=60)

        store.delete(draft.draft_id)

        assert store.get(draft.draft_id) is None

    def test_uses_the_draft_alias(self, draft):
        CacheDraftStore().set(draft, ttl=60)

        assert CacheDraftStore("default").get(draft.draft_id) is None
        assert CacheDraftStore("drafts").get(draft.draft_id) == draft


class TestProcessingLock:
    def test_lock_is_exclusive(self, store):
        draft_id = new_draft_id()

        with processing_lock(store, draft_id):
            with pytest.raises(DraftAlreadyProcessing):
                with processing_lock(store, draft_id):
                    pass

    def test_lock_is_released_after_the_block(self, store):
        draft_id = new_draft_id()
        with processing_lock(store, draft_id):
            pass

        assert store.try_lock(draft_id, ttl=5)

    def test_lock_is_released_on_error(self, store):
        draft_id = new_draft_id()

        with pytest.raises(RuntimeError):
            with processing_lock(store, draft_id):
                raise RuntimeError("boom")

        assert store.try_lock(draft_id, ttl=5)

    def test_locks_are_per_draft(self, store):
        with processing_lock(store, new_draft_id()):
            with processing_lock(store, new_draft_id()):
                pass
