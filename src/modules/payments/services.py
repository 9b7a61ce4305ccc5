"""Checkout service layer: PIX drafts, confirmation, payment status, webhook.

Flow for a PIX checkout:

1. ``create_draft`` prices the cart, opens a charge whose external
   reference is the draft id and caches the draft.
2. The customer pays.  Either the client calls ``confirm_draft`` or the
   gateway webhook arrives; both end in ``OrderService.materialize_paid_order``.
3. The order is created at most once per draft: an existing order
   short-circuits, a per-draft cache lock serializes concurrent
   confirmations and the unique ``external_reference`` column is the
   last line of defence.
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Mapping, Optional, Tuple

import structlog
from django.conf import settings
from django.utils import timezone

from modules.orders.constants import OrderStatus
from modules.orders.dtos import MaterializeOrderDTO, OrderItemInputDTO
from modules.orders.exceptions import InvalidOrderData
from modules.orders.models import Order
from modules.orders.repositories.interfaces import IOrderRepository
from modules.orders.services import OrderService
from modules.payments.drafts import (
    DRAFT_ID_PREFIX,
    DraftItem,
    IDraftStore,
    TemporaryOrderDraft,
    new_draft_id,
    processing_lock,
)
from modules.payments.dtos import CreateDraftDTO, DraftFallbackDTO
from modules.payments.exceptions import (
    ChargeMismatch,
    DraftAlreadyProcessing,
    IncompleteOrderData,
    InvalidWebhookPayload,
    InvalidWebhookSignature,
    PaymentExpired,
    PaymentNotApproved,
)
from modules.payments.gateway import ChargeHandle, ChargeStatus, IPaymentGateway, Payer
from modules.payments.webhooks import verify_webhook_signature
from shared.domain.exceptions import GatewayUnavailable

logger = structlog.get_logger(__name__)


class WebhookResult:
    ORDER_RECONCILED = "order_reconciled"
    DRAFT_CONFIRMED = "draft_confirmed"
    PROCESSING = "processing"
    DRAFT_UNAVAILABLE = "draft_unavailable"
    IGNORED = "ignored"


class CheckoutService:
    def __init__(
        self,
        order_service: OrderService,
        draft_store: IDraftStore,
        payment_gateway: IPaymentGateway,
        order_repository: IOrderRepository,
    ) -> None:
        self._orders = order_service
        self._drafts = draft_store
        self._gateway = payment_gateway
        self._order_repo = order_repository

    # ------------------------------------------------------------------
    # Drafts
    # ------------------------------------------------------------------

    def create_draft(self, dto: CreateDraftDTO) -> Tuple[TemporaryOrderDraft, ChargeHandle]:
        """Price the cart, open a PIX charge and cache the draft.

        Raises:
            ProductNotFound, ProductUnavailable, InvalidOrderData: invalid cart.
            GatewayUnavailable, InvalidPayer: the charge could not be created.
        """
        products = self._orders.price_cart(dto.items)
        total = sum(
            (products[str(item.product_id)].discount_price * item.quantity for item in dto.items),
            Decimal("0.00"),
        )
        if dto.total_amount != total:
            raise InvalidOrderData(
                f"Declared total {dto.total_amount} does not match the cart total {total}.",
                declared_total=dto.total_amount,
                computed_total=total,
            )

        draft_id = new_draft_id()
        now = timezone.now()
        charge = self._gateway.create_charge(
            amount=total,
            description=f"Pedido SaveUp ({len(dto.items)} itens)",
            payer=Payer(email=dto.customer.email, name=dto.customer.name, phone=dto.customer.phone),
            idempotency_key=draft_id,
            expires_at=now + timedelta(minutes=settings.PIX_EXPIRATION_MINUTES),
        )
        draft = TemporaryOrderDraft(
            draft_id=draft_id,
            charge_id=charge.charge_id,
            customer=dto.customer,
            fulfillment_method=dto.fulfillment_method,
            delivery_address=dto.delivery_address.strip(),
            items=[
                DraftItem(
                    product_id=item.product_id,
                    quantity=item.quantity,
                    price=products[str(item.product_id)].discount_price,
                    name=products[str(item.product_id)].name,
                )
                for item in dto.items
            ],
            total_amount=total,
            notes=dto.notes,
            created_at=now,
            expires_at=charge.expires_at,
        )
        self._drafts.set(draft, ttl=settings.DRAFT_TTL_SECONDS)
        logger.info(
            "checkout.draft_created",
            draft_id=draft_id,
            charge_id=charge.charge_id,
            total_amount=str(total),
            item_count=len(draft.items),
        )
        return draft, charge

    def confirm_draft(
        self,
        draft_id: str,
        charge_id: str,
        fallback: Optional[Dict[str, Any]] = None,
    ) -> Tuple[Order, bool]:
        """Turn a paid draft into an order, at most once.

        Returns ``(order, created)``.  ``fallback`` is the cart echoed by
        the client and is only read when the cached draft is gone.

        Raises:
            DraftAlreadyProcessing: another confirmation holds the lock.
            IncompleteOrderData: no draft and no usable fallback.
            ChargeMismatch: the charge belongs to another draft or amount.
            PaymentNotApproved: the charge is not approved (yet).
            PaymentExpired: approved after the window and late approvals are off.
        """
        log = logger.bind(draft_id=draft_id, charge_id=charge_id)

        existing = self._order_repo.get_by_external_reference(draft_id)
        if existing:
            log.info("checkout.draft_already_confirmed", order_id=str(existing.id))
            return existing, False

        with processing_lock(self._drafts, draft_id):
            existing = self._order_repo.get_by_external_reference(draft_id)
            if existing:
                log.info("checkout.draft_already_confirmed", order_id=str(existing.id))
                return existing, False

            draft = self._drafts.get(draft_id)
            if draft is not None and draft.charge_id != str(charge_id):
                raise ChargeMismatch(
                    f"Charge {charge_id} does not belong to draft {draft_id}.",
                    draft_id=draft_id,
                    charge_id=charge_id,
                )
            if draft is None:
                draft = self._draft_from_fallback(draft_id, charge_id, fallback)
                log.warning("checkout.draft_rebuilt_from_fallback")

            charge = self._gateway.get_charge_status(charge_id)
            self._check_charge(draft, charge)

            now = timezone.now()
            if draft.expires_at and now > draft.expires_at and not settings.HONOR_LATE_PAYMENT_APPROVALS:
                log.error("payment.late_approval_forfeited", expires_at=str(draft.expires_at))
                raise PaymentExpired(
                    f"Charge {charge_id} was approved after the payment window closed.",
                    draft_id=draft_id,
                    charge_id=charge_id,
                )

            order, created = self._orders.materialize_paid_order(
                MaterializeOrderDTO(
                    customer=draft.customer,
                    fulfillment_method=draft.fulfillment_method,
                    delivery_address=draft.delivery_address,
                    items=[
                        OrderItemInputDTO(
                            product_id=item.product_id, quantity=item.quantity, price=item.price
                        )
                        for item in draft.items
                    ],
                    total_amount=draft.total_amount,
                    external_reference=draft_id,
                    payment_reference=str(charge_id),
                    payment_verified_at=now,
                    notes=draft.notes,
                )
            )
            self._drafts.delete(draft_id)

        log.info(
            "checkout.draft_confirmed",
            order_id=str(order.id),
            order_number=order.order_number,
            created=created,
        )
        return order, created

    @staticmethod
    def _draft_from_fallback(
        draft_id: str, charge_id: str, fallback: Optional[Dict[str, Any]]
    ) -> TemporaryOrderDraft:
        if not fallback:
            raise IncompleteOrderData(
                f"Draft {draft_id} expired and no order data was sent.", draft_id=draft_id
            )
        try:
            dto = DraftFallbackDTO(**fallback)
        except (TypeError, ValueError) as exc:
            raise IncompleteOrderData(
                f"Draft {draft_id} expired and the order data sent is incomplete: {exc}",
                draft_id=draft_id,
            ) from exc
        return TemporaryOrderDraft(
            draft_id=draft_id,
            charge_id=str(charge_id),
            customer=dto.customer,
            fulfillment_method=dto.fulfillment_method,
            delivery_address=dto.delivery_address.strip(),
            items=[
                DraftItem(product_id=item.product_id, quantity=item.quantity, price=item.price)
                for item in dto.items
            ],
            total_amount=dto.total_amount,
            notes=dto.notes,
            created_at=timezone.now(),
        )

    @staticmethod
    def _check_charge(draft: TemporaryOrderDraft, charge: ChargeStatus) -> None:
        if charge.external_reference and charge.external_reference != draft.draft_id:
            raise ChargeMismatch(
                f"Charge {charge.charge_id} was issued for {charge.external_reference}.",
                draft_id=draft.draft_id,
                charge_id=charge.charge_id,
            )
        if not charge.is_approved:
            raise PaymentNotApproved(
                f"Charge {charge.charge_id} is {charge.status}.",
                charge_id=charge.charge_id,
                charge_status=charge.status,
            )
        if charge.amount is not None and charge.amount != draft.total_amount:
            raise ChargeMismatch(
                f"Charge amount {charge.amount} does not match the order total {draft.total_amount}.",
                charge_id=charge.charge_id,
                charge_amount=charge.amount,
                total_amount=draft.total_amount,
            )

    # ------------------------------------------------------------------
    # Payment status
    # ------------------------------------------------------------------

    def get_payment_status(self, order_id: Any) -> Dict[str, Any]:
        """Order status plus the gateway's view of its charge.  No writes."""
        order = self._orders.get_order(order_id)
        gateway_status = None
        if order.payment_reference:
            try:
                gateway_status = self._gateway.get_charge_status(order.payment_reference).status
            except GatewayUnavailable as exc:
                logger.warning("payment.status_unavailable", order_id=str(order.id), error=str(exc))
        return self._status_payload(order, gateway_status)

    def refresh_payment_status(self, order_id: Any) -> Dict[str, Any]:
        """Read the charge and move an ``awaiting_payment`` order along.

        When the gateway cannot be reached the order is left untouched;
        the expiry sweep retries later.
        """
        order = self._orders.get_order(order_id)
        if order.status != OrderStatus.AWAITING_PAYMENT or not order.payment_reference:
            return self._status_payload(order, None)
        try:
            charge = self._gateway.get_charge_status(order.payment_reference)
        except GatewayUnavailable as exc:
            logger.warning("payment.status_unavailable", order_id=str(order.id), error=str(exc))
            return self._status_payload(order, None)
        order = self._orders.reconcile_payment(order.id, charge)
        return self._status_payload(order, charge.status)

    @staticmethod
    def _status_payload(order: Order, gateway_status: Optional[str]) -> Dict[str, Any]:
        return {
            "order_id": order.id,
            "status": order.status,
            "gateway_status": gateway_status,
            "expires_at": order.payment_expires_at,
            "payment_code": order.payment_code if order.status == OrderStatus.AWAITING_PAYMENT else "",
        }

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def handle_webhook(
        self,
        body: Mapping[str, Any],
        headers: Mapping[str, str],
        query: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        """Route a gateway notification to the order or draft it concerns.

        ``headers`` is looked up with lower-case names (``request.headers``
        is case-insensitive).
        """
        query = query or {}
        data = body.get("data") if isinstance(body.get("data"), Mapping) else {}
        charge_id = str(query.get("data.id") or data.get("id") or "")
        if not charge_id:
            raise InvalidWebhookPayload("Webhook does not carry a charge id.")

        if not verify_webhook_signature(
            settings.MERCADOPAGO_WEBHOOK_SECRET,
            headers.get("x-signature"),
            headers.get("x-request-id"),
            charge_id,
        ):
            logger.warning("payment.webhook_rejected", charge_id=charge_id)
            raise InvalidWebhookSignature("Webhook signature is missing or invalid.")

        log = logger.bind(charge_id=charge_id)
        kind = query.get("type") or body.get("type") or body.get("topic")
        if kind and kind != "payment":
            log.info("payment.webhook_ignored", type=kind)
            return {"result": WebhookResult.IGNORED}

        charge = self._gateway.get_charge_status(charge_id)
        order = self._order_repo.get_by_payment_reference(charge_id)
        if order is not None:
            order = self._orders.reconcile_payment(order.id, charge)
            log.info("payment.webhook_reconciled", order_id=str(order.id), status=order.status)
            return {"result": WebhookResult.ORDER_RECONCILED, "order_id": str(order.id)}

        reference = charge.external_reference
        if reference.startswith(DRAFT_ID_PREFIX) and charge.is_approved:
            try:
                order, created = self.confirm_draft(reference, charge_id)
            except DraftAlreadyProcessing:
                return {"result": WebhookResult.PROCESSING}
            except IncompleteOrderData:
                log.error("payment.webhook_draft_unavailable", draft_id=reference)
                return {"result": WebhookResult.DRAFT_UNAVAILABLE}
            return {
                "result": WebhookResult.DRAFT_CONFIRMED,
                "order_id": str(order.id),
                "created": created,
            }

        log.info("payment.webhook_ignored", status=charge.status, external_reference=reference)
        return {"result": WebhookResult.IGNORED}


def build_checkout_service(payment_gateway: Optional[IPaymentGateway] = None) -> CheckoutService:
    """Wire ``CheckoutService`` with the Django repositories and cache store."""
    from modules.orders.repositories.django_repository import OrderDjangoRepository
    from modules.orders.services import build_order_service
    from modules.payments.drafts import CacheDraftStore
    from modules.payments.gateway import get_payment_gateway

    gateway = payment_gateway or get_payment_gateway()
    return CheckoutService(
        order_service=build_order_service(gateway),
        draft_store=CacheDraftStore(),
        payment_gateway=gateway,
        order_repository=OrderDjangoRepository(),
    )
