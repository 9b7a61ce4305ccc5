"""Eco points awarded for rescuing near-expiry products.

Points depend on how close the product is to its expiration date and
are boosted for highly perishable categories.  The order total is
computed once at creation and credited to the customer on completion.
"""

from __future__ import annotations

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional, Tuple

from django.utils import timezone

# (max days until expiry, base points); checked in order.
EXPIRY_BRACKETS: Tuple[Tuple[int, int], ...] = (
    (0, 100),
    (1, 80),
    (3, 60),
    (7, 40),
    (14, 25),
    (30, 15),
)
DEFAULT_POINTS = 10

CATEGORY_MULTIPLIERS = {
    "Laticínios": Decimal("1.2"),
    "Carnes e Aves": Decimal("1.3"),
    "Hortifruti": Decimal("1.1"),
    "Padaria": Decimal("1.15"),
    "Frios": Decimal("1.2"),
}


def base_points(days_until_expiry: int) -> int:
    for max_days, points in EXPIRY_BRACKETS:
        if days_until_expiry <= max_days:
            return points
    return DEFAULT_POINTS


def calculate_eco_points(
    expiration_date: date, category: Optional[str] = None, today: Optional[date] = None
) -> int:
    """Points for a single unit of a product."""
    today = today or timezone.localdate()
    points = base_points((expiration_date - today).days)
    multiplier = CATEGORY_MULTIPLIERS.get(category or "")
    if multiplier is None:
        return points
    return int((points * multiplier).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def order_eco_points(lines: Iterable[Tuple[date, Optional[str], int]], today: Optional[date] = None) -> int:
    """Sum of unit points times quantity for ``(expiration, category, quantity)`` lines."""
    return sum(
        calculate_eco_points(expiration, category, today) * quantity
        for expiration, category, quantity in lines
    )
