"""Temporary order drafts: the cart between "pay with PIX" and the order.

Drafts live in a Django cache alias (``DRAFT_CACHE_ALIAS``): locmem for a
single instance, django-redis when several instances share the work.
Losing a draft is tolerated: confirmation falls back to the cart the
client sends back, and the database unique constraint on
``external_reference`` stays the final guard against duplicate orders.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Iterator, List, Optional
from uuid import UUID, uuid4

import structlog
from django.conf import settings
from django.core.cache import caches
from pydantic import BaseModel, ConfigDict, Field

from modules.orders.constants import FulfillmentMethod
from modules.orders.dtos import CustomerInfoDTO
from modules.payments.exceptions import DraftAlreadyProcessing

logger = structlog.get_logger(__name__)

DRAFT_ID_PREFIX = "draft_"


def new_draft_id() -> str:
    return f"{DRAFT_ID_PREFIX}{uuid4().hex}"


class DraftItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int = Field(ge=1)
    price: Decimal = Field(gt=0, decimal_places=2)
    name: str = ""


class TemporaryOrderDraft(BaseModel):
    """A priced cart waiting for its PIX charge to be paid."""

    model_config = ConfigDict(frozen=True)

    draft_id: str
    charge_id: str
    customer: CustomerInfoDTO
    fulfillment_method: FulfillmentMethod = FulfillmentMethod.PICKUP
    delivery_address: str = ""
    items: List[DraftItem] = Field(min_length=1)
    total_amount: Decimal
    notes: str = ""
    created_at: datetime
    expires_at: Optional[datetime] = None


class IDraftStore(ABC):
    @abstractmethod
    def get(self, draft_id: str) -> Optional[TemporaryOrderDraft]:
        """The stored draft, or ``None`` when absent or expired."""

    @abstractmethod
    def set(self, draft: TemporaryOrderDraft, ttl: int) -> None:
        """Store ``draft`` for ``ttl`` seconds."""

    @abstractmethod
    def delete(self, draft_id: str) -> None:
        """Evict a draft (after its order was created)."""

    @abstractmethod
    def try_lock(self, draft_id: str, ttl: int) -> bool:
        """Take the processing lock; ``False`` if someone else holds it."""

    @abstractmethod
    def release(self, draft_id: str) -> None:
        """Give the processing lock back."""


class CacheDraftStore(IDraftStore):
    """``IDraftStore`` on a Django cache; the lock is an atomic ``cache.add``."""

    def __init__(self, alias: Optional[str] = None) -> None:
        self._cache = caches[alias or settings.DRAFT_CACHE_ALIAS]

    @staticmethod
    def _key(draft_id: str) -> str:
        return f"checkout:draft:{draft_id}"

    @staticmethod
    def _lock_key(draft_id: str) -> str:
        return f"checkout:draft-lock:{draft_id}"

    def get(self, draft_id: str) -> Optional[TemporaryOrderDraft]:
        data = self._cache.get(self._key(draft_id))
        if data is None:
            return None
        return TemporaryOrderDraft.model_validate(data)

    def set(self, draft: TemporaryOrderDraft, ttl: int) -> None:
        self._cache.set(self._key(draft.draft_id), draft.model_dump(mode="json"), timeout=ttl)

    def delete(self, draft_id: str) -> None:
        self._cache.delete(self._key(draft_id))

    def try_lock(self, draft_id: str, ttl: int) -> bool:
        return bool(self._cache.add(self._lock_key(draft_id), "1", timeout=ttl))

    def release(self, draft_id: str) -> None:
        self._cache.delete(self._lock_key(draft_id))


@contextmanager
def processing_lock(store: IDraftStore, draft_id: str, ttl: Optional[int] = None) -> Iterator[None]:
    """Hold the per-draft lock for the duration of the block.

    Raises ``DraftAlreadyProcessing`` when another request holds it.  The
    lock is released on every exit path; ``ttl`` bounds how long a crashed
    holder can block the draft.
    """
    if not store.try_lock(draft_id, ttl or settings.DRAFT_LOCK_TIMEOUT):
        logger.info("checkout.draft_locked", draft_id=draft_id)
        raise DraftAlreadyProcessing(
            f"Draft {draft_id} is already being confirmed.", draft_id=draft_id
        )
    try:
        yield
    finally:
        store.release(draft_id)
