"""Unit tests for the order and checkout DTOs.

Covers:
- Customer data normalization and validation.
- Cart rules: at least one item, no duplicate products, positive quantities.
- Delivery orders require an address.
- Paid carts must carry price snapshots that add up to the total.
"""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from django.utils import timezone
from pydantic import ValidationError

from modules.orders.constants import FulfillmentMethod, PaymentMethod
from modules.orders.dtos import CreateOrderDTO, CustomerInfoDTO, MaterializeOrderDTO, OrderItemInputDTO
from modules.payments.dtos import DraftFallbackDTO

pytestmark = pytest.mark.unit

CUSTOMER = {"name": "Ana Lima", "email": "ana@example.com"}


class TestCustomerInfoDTO:
    def test_email_is_normalized(self):
        customer = CustomerInfoDTO(name="  Ana Lima ", email="  Ana@Example.COM ")

        assert customer.email == "ana@example.com"
        assert customer.name == "Ana Lima"

    @pytest.mark.parametrize("email", ["", "ana", "ana@localhost", "@example.com"])
    def test_invalid_email(self, email):
        with pytest.raises(ValidationError):
            CustomerInfoDTO(name="Ana", email=email)

    def test_blank_name(self):
        with pytest.raises(ValidationError):
            CustomerInfoDTO(name="   ", email="ana@example.com")

    def test_is_frozen(self):
        customer = CustomerInfoDTO(**CUSTOMER)
        with pytest.raises(ValidationError):
            customer.email = "other@example.com"


class TestCreateOrderDTO:
    def test_defaults(self):
        dto = CreateOrderDTO(customer=CUSTOMER, items=[{"product_id": uuid4(), "quantity": 1}])

        assert dto.payment_method == PaymentMethod.CASH
        assert dto.fulfillment_method == FulfillmentMethod.PICKUP
        assert dto.total_amount is None

    def test_empty_cart(self):
        with pytest.raises(ValidationError, match="at least one item"):
            CreateOrderDTO(customer=CUSTOMER, items=[])

    def test_duplicate_products(self):
        product_id = uuid4()
        with pytest.raises(ValidationError, match="Duplicate product"):
            CreateOrderDTO(
                customer=CUSTOMER,
                items=[
                    {"product_id": product_id, "quantity": 1},
                    {"product_id": product_id, "quantity": 2},
                ],
            )

    def test_quantity_must_be_positive(self):
        with pytest.raises(ValidationError):
            OrderItemInputDTO(product_id=uuid4(), quantity=0)

    def test_delivery_needs_address(self):
        with pytest.raises(ValidationError, match="delivery address"):
            CreateOrderDTO(
                customer=CUSTOMER,
                items=[{"product_id": uuid4(), "quantity": 1}],
                fulfillment_method=FulfillmentMethod.DELIVERY,
                delivery_address="  ",
            )

    def test_delivery_with_address(self):
        dto = CreateOrderDTO(
            customer=CUSTOMER,
            items=[{"product_id": uuid4(), "quantity": 1}],
            fulfillment_method=FulfillmentMethod.DELIVERY,
            delivery_address="Rua das Flores, 10",
        )

        assert dto.fulfillment_method == FulfillmentMethod.DELIVERY


class TestPaidCartDTOs:
    def test_materialize_totals_must_add_up(self):
        with pytest.raises(ValidationError, match="add up"):
            MaterializeOrderDTO(
                customer=CUSTOMER,
                items=[{"product_id": uuid4(), "quantity": 2, "price": Decimal("10.00")}],
                total_amount=Decimal("19.00"),
                external_reference=f"draft_{uuid4().hex}",
                payment_reference="123",
                payment_verified_at=timezone.now(),
            )

    def test_materialize_needs_price_snapshots(self):
        with pytest.raises(ValidationError, match="price snapshot"):
            MaterializeOrderDTO(
                customer=CUSTOMER,
                items=[{"product_id": uuid4(), "quantity": 1}],
                total_amount=Decimal("10.00"),
                external_reference=f"draft_{uuid4().hex}",
                payment_reference="123",
                payment_verified_at=timezone.now(),
            )

    def test_fallback_needs_prices(self):
        with pytest.raises(ValidationError, match="price that was charged"):
            DraftFallbackDTO(
                customer=CUSTOMER,
                items=[{"product_id": uuid4(), "quantity": 1}],
                total_amount=Decimal("10.00"),
            )

    def test_fallback_totals_must_add_up(self):
        with pytest.raises(ValidationError, match="add up"):
            DraftFallbackDTO(
                customer=CUSTOMER,
                items=[
                    {"product_id": uuid4(), "quantity": 2, "price": "10.00"},
                    {"product_id": uuid4(), "quantity": 1, "price": "5.50"},
                ],
                total_amount=Decimal("20.00"),
            )

    def test_valid_fallback(self):
        dto = DraftFallbackDTO(
            customer=CUSTOMER,
            items=[
                {"product_id": uuid4(), "quantity": 2, "price": "10.00"},
                {"product_id": uuid4(), "quantity": 1, "price": "5.50"},
            ],
            total_amount="25.50",
        )

        assert dto.total_amount == Decimal("25.50")
