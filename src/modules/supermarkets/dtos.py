"""Supermarket DTOs (pydantic v2, immutable)."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from modules.supermarkets.models import ApprovalStatus


class UpdateSupermarketDTO(BaseModel):
    """Admin update of approval status and commercial terms."""

    model_config = ConfigDict(frozen=True)

    approval_status: Optional[ApprovalStatus] = None
    commercial_rate: Optional[Decimal] = Field(default=None, ge=0, le=100, decimal_places=2)
    payment_terms: Optional[int] = Field(default=None, ge=0, le=365)
    is_sponsored: Optional[bool] = None
