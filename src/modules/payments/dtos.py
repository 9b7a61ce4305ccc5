"""Checkout DTOs.

``CreateDraftDTO`` is the cart a customer wants to pay with PIX.
``DraftFallbackDTO`` is the same cart echoed back at confirmation time;
it is only used when the cached draft is gone, so every line must carry
the unit price that was charged.
"""

from __future__ import annotations

from decimal import Decimal
from typing import List

from pydantic import ConfigDict, field_validator, model_validator

from modules.orders.dtos import (
    CustomerInfoDTO,
    FulfillmentMixin,
    OrderItemInputDTO,
    check_items,
)


class CreateDraftDTO(FulfillmentMixin):
    model_config = ConfigDict(frozen=True)

    customer: CustomerInfoDTO
    items: List[OrderItemInputDTO]
    total_amount: Decimal
    notes: str = ""

    @field_validator("items")
    @classmethod
    def items_must_be_valid(cls, v: List[OrderItemInputDTO]) -> List[OrderItemInputDTO]:
        return check_items(v)


class DraftFallbackDTO(CreateDraftDTO):
    @model_validator(mode="after")
    def items_are_priced(self):
        if any(item.price is None for item in self.items):
            raise ValueError("Every fallback item needs the price that was charged.")
        total = sum((item.price * item.quantity for item in self.items), Decimal("0.00"))
        if total != self.total_amount:
            raise ValueError(f"Fallback items add up to {total}, not {self.total_amount}.")
        return self
