"""Order DTOs for the Service Layer.

Framework-agnostic, immutable (``frozen=True``) pydantic v2 models.
DRF serializers validate the HTTP payload; these DTOs are the contract
the service layer accepts.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.orders.constants import FulfillmentMethod, PaymentMethod

# ---------------------------------------------------------------------------
# Shared pieces
# ---------------------------------------------------------------------------


class CustomerInfoDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    email: str
    phone: str = ""

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Customer name is required.")
        return v

    @field_validator("email")
    @classmethod
    def email_looks_valid(cls, v: str) -> str:
        v = v.strip().lower()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("A valid customer email is required.")
        return v


class OrderItemInputDTO(BaseModel):
    """One cart line.  ``price`` is the unit price the customer saw."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int = Field(ge=1)
    price: Optional[Decimal] = Field(default=None, gt=0, decimal_places=2)


def check_items(items: List[OrderItemInputDTO]) -> List[OrderItemInputDTO]:
    if not items:
        raise ValueError("Order must have at least one item.")
    product_ids = [item.product_id for item in items]
    if len(product_ids) != len(set(product_ids)):
        raise ValueError("Duplicate product IDs are not allowed in the same order.")
    return items


class FulfillmentMixin(BaseModel):
    fulfillment_method: FulfillmentMethod = FulfillmentMethod.PICKUP
    delivery_address: str = ""

    @model_validator(mode="after")
    def delivery_requires_address(self):
        if self.fulfillment_method == FulfillmentMethod.DELIVERY and not self.delivery_address.strip():
            raise ValueError("Delivery orders require a delivery address.")
        return self


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class CreateOrderDTO(FulfillmentMixin):
    """Direct order: cash (``pending``) or PIX (``awaiting_payment``)."""

    model_config = ConfigDict(frozen=True)

    customer: CustomerInfoDTO
    items: List[OrderItemInputDTO]
    payment_method: PaymentMethod = PaymentMethod.CASH
    total_amount: Optional[Decimal] = None
    notes: str = ""
    external_reference: Optional[str] = Field(default=None, max_length=64)

    @field_validator("items")
    @classmethod
    def items_must_be_valid(cls, v: List[OrderItemInputDTO]) -> List[OrderItemInputDTO]:
        return check_items(v)


class MaterializeOrderDTO(FulfillmentMixin):
    """A paid cart turned into a durable order (draft confirmation).

    Every item carries the price snapshot that was charged.
    """

    model_config = ConfigDict(frozen=True)

    customer: CustomerInfoDTO
    items: List[OrderItemInputDTO]
    total_amount: Decimal
    external_reference: str = Field(min_length=1, max_length=64)
    payment_reference: str = Field(min_length=1)
    payment_verified_at: datetime
    notes: str = ""

    @field_validator("items")
    @classmethod
    def items_must_be_valid(cls, v: List[OrderItemInputDTO]) -> List[OrderItemInputDTO]:
        return check_items(v)

    @model_validator(mode="after")
    def items_are_priced_and_add_up(self):
        if any(item.price is None for item in self.items):
            raise ValueError("Every paid item needs its price snapshot.")
        total = sum((item.price * item.quantity for item in self.items), Decimal("0.00"))
        if total != self.total_amount:
            raise ValueError(
                f"Item snapshots add up to {total}, not {self.total_amount}."
            )
        return self

