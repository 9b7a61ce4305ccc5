"""Settlement DTOs (pydantic v2, immutable)."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from modules.orders.constants import SupermarketPaymentStatus


class SettlementRow(BaseModel):
    """What one supermarket is owed for one completed order."""

    model_config = ConfigDict(frozen=True)

    order_id: UUID
    order_number: str
    supermarket_id: UUID
    supermarket_name: str
    group_total: Decimal
    commission_rate: Decimal
    commission: Decimal
    net_payable: Decimal
    expected_payment_date: date
    payment_status: SupermarketPaymentStatus


class SettlementFilterDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    supermarket_id: Optional[UUID] = None
    payment_status: Optional[SupermarketPaymentStatus] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None

    @model_validator(mode="after")
    def dates_in_order(self):
        if self.start_date and self.end_date and self.start_date > self.end_date:
            raise ValueError("start_date must not be after end_date.")
        return self


class UpdateSupermarketPaymentDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: SupermarketPaymentStatus
    amount: Optional[Decimal] = Field(default=None, ge=0, decimal_places=2)
    payment_date: Optional[datetime] = None
    notes: Optional[str] = None
