"""Order service layer (Use Cases).

Orchestrates order creation, the status lifecycle, cancellation with
refund and payment reconciliation.  ``OrderService`` is the only code
that writes ``Order.status``; every change goes through
``_commit_transition`` (compare-and-swap, history, side effects, event).

Business rules enforced:
- Products must exist, be active, unexpired and belong to an approved
  supermarket.
- Stock is reserved with a conditional UPDATE per product (sorted by id)
  and released when an order is cancelled, expires or fails.
- Transitions follow ``VALID_TRANSITIONS``; authorization is checked
  before the table.
- Completing an order credits its eco points to the customer.
- Cancelling a paid order refunds it; the order only becomes plain
  ``cancelled`` once the gateway accepted the refund.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Iterable, Optional, Tuple
from uuid import uuid4

import structlog
from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.core.actors import Actor
from modules.customers.models import normalize_email
from modules.orders.constants import (
    CANCELLED_FAMILY,
    CUSTOMER_TARGETS,
    FULFILLMENT_TARGETS,
    PAYMENT_CONFIRMED_ALIAS,
    STAFF_TARGETS,
    STOCK_RELEASING_STATES,
    SYSTEM_TARGETS,
    VALID_TRANSITIONS,
    HistorySource,
    ItemConfirmationStatus,
    OrderStatus,
    PaymentMethod,
    RefundStatus,
)
from modules.orders.events import (
    EcoPointsAwarded,
    OrderCreated,
    OrderRefunded,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    ConcurrentStatusChange,
    DuplicateExternalReference,
    InvalidOrderData,
    InvalidStatusTransition,
    ItemConfirmationNotAllowed,
    OrderItemNotFound,
    OrderNotFound,
    OrderPersistenceError,
    PaymentNotVerified,
    TransitionNotAllowed,
)
from modules.payments.exceptions import AlreadyRefunded, RefundNotAllowed
from modules.payments.gateway import ChargeState, Payer, RefundHandle, RefundState, get_payment_gateway
from modules.products.eco_points import order_eco_points
from modules.products.exceptions import InsufficientStock, ProductNotFound, ProductUnavailable
from shared.domain.exceptions import DomainError, GatewayError, GatewayUnavailable, PermissionDenied

if TYPE_CHECKING:
    from modules.customers.repositories.interfaces import ICustomerRepository
    from modules.orders.dtos import CreateOrderDTO, MaterializeOrderDTO, OrderItemInputDTO
    from modules.orders.models import Order, OrderItem
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.gateway import ChargeStatus, IPaymentGateway
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

# Gateway answers that leave the charge unrefunded.
REFUND_ERRORS = (GatewayError, RefundNotAllowed)


class OrderService:
    """Application service for Order use-cases.

    Receives repositories and the payment gateway via constructor
    injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        customer_repository: ICustomerRepository,
        payment_gateway: Optional[IPaymentGateway] = None,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._customer_repo = customer_repository
        self._gateway = payment_gateway

    @property
    def gateway(self) -> IPaymentGateway:
        if self._gateway is None:
            self._gateway = get_payment_gateway()
        return self._gateway

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_order(
        self, dto: CreateOrderDTO, actor: Optional[Actor] = None
    ) -> Tuple[Order, bool]:
        """Create a direct order.

        Cash orders start ``pending``.  PIX orders get a gateway charge
        first and start ``awaiting_payment``.  Returns ``(order, created)``;
        a repeated ``external_reference`` returns the existing order.

        Raises:
            ProductNotFound, ProductUnavailable: invalid cart.
            InvalidOrderData: declared total or prices disagree with the catalog.
            InsufficientStock: not enough stock for an item.
            GatewayUnavailable, InvalidPayer: PIX charge could not be created.
        """
        actor = actor or Actor.customer(dto.customer.email)
        log = logger.bind(
            customer_email=dto.customer.email,
            payment_method=dto.payment_method,
            external_reference=dto.external_reference,
        )
        log.info("order.creation_started")

        if dto.external_reference:
            existing = self._order_repo.get_by_external_reference(dto.external_reference)
            if existing:
                log.info("order.idempotency_hit", order_id=str(existing.id))
                return existing, False

        products = self.price_cart(dto.items)
        total = sum(
            (products[str(item.product_id)].discount_price * item.quantity for item in dto.items),
            Decimal("0.00"),
        )
        if dto.total_amount is not None and dto.total_amount != total:
            raise InvalidOrderData(
                f"Declared total {dto.total_amount} does not match the cart total {total}.",
                declared_total=dto.total_amount,
                computed_total=total,
            )

        reference = dto.external_reference or f"order_{uuid4().hex}"
        data: Dict[str, Any] = {
            "customer_name": dto.customer.name,
            "customer_email": dto.customer.email,
            "customer_phone": dto.customer.phone,
            "fulfillment_method": dto.fulfillment_method,
            "delivery_address": dto.delivery_address.strip(),
            "payment_method": dto.payment_method,
            "status": OrderStatus.PENDING,
            "eco_points_reward": self._eco_points(dto.items, products),
            "notes": dto.notes,
            "external_reference": reference,
            "items": [
                {
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "price_at_time": products[str(item.product_id)].discount_price,
                }
                for item in dto.items
            ],
        }

        charge = None
        if dto.payment_method == PaymentMethod.PIX:
            charge = self.gateway.create_charge(
                amount=total,
                description=f"Pedido SaveUp ({len(dto.items)} itens)",
                payer=Payer(email=dto.customer.email, name=dto.customer.name, phone=dto.customer.phone),
                idempotency_key=reference,
                expires_at=timezone.now() + timedelta(minutes=settings.PIX_EXPIRATION_MINUTES),
            )
            data.update(
                status=OrderStatus.AWAITING_PAYMENT,
                payment_reference=charge.charge_id,
                payment_code=charge.payment_code,
                payment_qr_code=charge.qr_code_base64,
                payment_expires_at=charge.expires_at,
            )
            log = log.bind(charge_id=charge.charge_id)

        try:
            order = self._persist_new_order(data, actor, reserve_strict=True)
        except DuplicateExternalReference:
            existing = self._order_repo.get_by_external_reference(reference)
            log.info("order.idempotency_hit", order_id=str(existing.id) if existing else None)
            return existing, False
        except Exception:
            if charge is not None:
                self._cancel_charge_quietly(charge.charge_id, reason="order_not_persisted")
            raise

        log.info("order.created", order_id=str(order.id), status=order.status)
        return self._order_repo.get_by_id(order.id) or order, True

    def materialize_paid_order(self, dto: MaterializeOrderDTO) -> Tuple[Order, bool]:
        """Turn an approved payment into a ``pending`` order, exactly once.

        Items keep the price snapshots that were charged.  Items whose
        stock ran out meanwhile are stored as backordered instead of
        rejecting an order that has already been paid.
        """
        log = logger.bind(
            external_reference=dto.external_reference,
            charge_id=dto.payment_reference,
        )
        existing = self._order_repo.get_by_external_reference(dto.external_reference)
        if existing:
            log.info("order.materialization_skipped", order_id=str(existing.id))
            return existing, False

        products = self._product_repo.get_many(item.product_id for item in dto.items)
        missing = [str(item.product_id) for item in dto.items if str(item.product_id) not in products]
        if missing:
            raise ProductNotFound(f"Products not found: {', '.join(missing)}.", product_ids=missing)

        data = {
            "customer_name": dto.customer.name,
            "customer_email": dto.customer.email,
            "customer_phone": dto.customer.phone,
            "fulfillment_method": dto.fulfillment_method,
            "delivery_address": dto.delivery_address.strip(),
            "payment_method": PaymentMethod.PIX,
            "status": OrderStatus.PENDING,
            "eco_points_reward": self._eco_points(dto.items, products),
            "notes": dto.notes,
            "external_reference": dto.external_reference,
            "payment_reference": dto.payment_reference,
            "payment_verified_at": dto.payment_verified_at,
            "items": [
                {
                    "product_id": item.product_id,
                    "quantity": item.quantity,
                    "price_at_time": item.price,
                }
                for item in dto.items
            ],
        }
        try:
            order = self._persist_new_order(
                data, Actor.system("payment"), reserve_strict=False, notes="Pagamento PIX aprovado"
            )
        except DuplicateExternalReference:
            existing = self._order_repo.get_by_external_reference(dto.external_reference)
            log.info("order.materialization_raced", order_id=str(existing.id) if existing else None)
            return existing, False

        log.info("order.materialized", order_id=str(order.id), order_number=order.order_number)
        return self._order_repo.get_by_id(order.id) or order, True

    @transaction.atomic
    def _persist_new_order(
        self,
        data: Dict[str, Any],
        actor: Actor,
        reserve_strict: bool,
        notes: str = "Pedido criado",
    ) -> Order:
        # Sorted by product id so concurrent orders lock rows in the same order.
        for item in sorted(data["items"], key=lambda i: str(i["product_id"])):
            if self._product_repo.reserve_stock(item["product_id"], item["quantity"]):
                continue
            if reserve_strict:
                raise InsufficientStock(
                    f"Not enough stock for product {item['product_id']}.",
                    product_id=item["product_id"],
                    requested=item["quantity"],
                )
            item["backordered"] = True
            logger.warning(
                "order.item_backordered",
                product_id=str(item["product_id"]),
                quantity=item["quantity"],
                external_reference=data.get("external_reference"),
            )

        order = self._order_repo.create(data)
        self._order_repo.add_history(
            order_id=order.id,
            new_status=order.status,
            actor=actor.label,
            user_id=actor.user_id if actor.is_manual else None,
            source=HistorySource.MANUAL if actor.is_manual else HistorySource.SYSTEM,
            notes=notes,
        )
        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                status=order.status,
                customer_email=order.customer_email,
            )
        )
        self._order_repo.commit_events(order)
        return order

    def price_cart(self, items: Iterable[OrderItemInputDTO]) -> Dict[str, Product]:
        """Check every cart line against the catalog.

        Returns the products keyed by id.  A declared unit price must
        match the current discount price.
        """
        items = list(items)
        products = self._product_repo.get_many(item.product_id for item in items)
        for item in items:
            product = products.get(str(item.product_id))
            if product is None:
                raise ProductNotFound(
                    f"Product {item.product_id} not found.", product_id=item.product_id
                )
            if not product.is_orderable or not product.supermarket.is_approved:
                raise ProductUnavailable(
                    f"Product {product.name} is not available.", product_id=product.id
                )
            if item.price is not None and item.price != product.discount_price:
                raise InvalidOrderData(
                    f"Price of {product.name} changed to {product.discount_price}.",
                    product_id=product.id,
                    declared_price=item.price,
                    current_price=product.discount_price,
                )
        return products

    @staticmethod
    def _eco_points(items: Iterable[OrderItemInputDTO], products: Dict[str, Product]) -> int:
        today = timezone.localdate()
        return order_eco_points(
            (
                (
                    products[str(item.product_id)].expiration_date,
                    products[str(item.product_id)].category,
                    item.quantity,
                )
                for item in items
            ),
            today,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def transition(self, order_id: Any, target: str, actor: Actor, notes: str = "") -> Order:
        """Move an order to ``target``.

        Raises:
            TransitionNotAllowed: the actor may not request ``target``.
            OrderNotFound: no such order (or not visible to the actor).
            InvalidStatusTransition: ``target`` is not reachable.
            PaymentNotVerified: confirming an unpaid PIX order.
            ConcurrentStatusChange: another request changed the status first.
        """
        if target == PAYMENT_CONFIRMED_ALIAS:
            target = OrderStatus.PENDING
        if target not in OrderStatus.values:
            raise InvalidOrderData(f"Unknown order status {target!r}.", status=target)

        self._authorize_target(actor, target)
        if target in (OrderStatus.CANCELLED_STAFF, OrderStatus.CANCELLED_CUSTOMER):
            return self.cancel_order(order_id, actor, notes)
        if target == OrderStatus.PAYMENT_EXPIRED:
            return self._expire_on_request(order_id, actor, notes)

        order = self._apply_transition(order_id, target, actor, notes)
        return self._order_repo.get_by_id(order.id) or order

    def _expire_on_request(self, order_id: Any, actor: Actor, notes: str = "") -> Order:
        """Expire an unpaid PIX order by hand, cancelling its charge first.

        A charge the gateway will no longer cancel has been settled: an
        approval moves the order to ``pending`` and a rejection to
        ``payment_failed`` instead of expiring it.
        """
        order = self.get_order(order_id, actor)
        if actor.is_manual and order.status == OrderStatus.AWAITING_PAYMENT and order.payment_reference:
            if not self.gateway.cancel_charge(order.payment_reference):
                charge = self.gateway.get_charge_status(order.payment_reference)
                if charge.is_approved or charge.status == ChargeState.REJECTED:
                    logger.warning(
                        "payment.manual_expiry_refused",
                        order_id=str(order.id),
                        charge_id=charge.charge_id,
                        charge_status=charge.status,
                        actor=actor.label,
                    )
                    return self.reconcile_payment(order.id, charge)
        return self.expire_payment(order.id, actor, notes or "Pagamento PIX expirado manualmente")

    @transaction.atomic
    def _apply_transition(
        self,
        order_id: Any,
        target: str,
        actor: Actor,
        notes: str = "",
        fields: Optional[Dict[str, Any]] = None,
    ) -> Order:
        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.", order_id=order_id)
        self._authorize_order(actor, order)

        if target in CANCELLED_FAMILY and order.is_cancelled:
            logger.info("order.cancel_noop", order_id=str(order.id), status=order.status)
            return order

        self._validate(order, target)
        self._commit_transition(order, target, actor, notes, fields)
        return order

    def _validate(self, order: Order, target: str) -> None:
        allowed = VALID_TRANSITIONS.get(order.status, frozenset())
        if order.status == OrderStatus.READY:
            branches = frozenset().union(*FULFILLMENT_TARGETS.values())
            allowed = (allowed - branches) | FULFILLMENT_TARGETS[order.fulfillment_method]

        if target not in allowed:
            logger.warning(
                "order.invalid_transition",
                order_id=str(order.id),
                current_status=order.status,
                target=target,
            )
            allowed_list = sorted(allowed)
            raise InvalidStatusTransition(
                f"Cannot move order {order.order_number} from {order.status} to {target}. "
                f"Allowed: {', '.join(allowed_list) or 'none'}.",
                current_status=order.status,
                target=target,
                allowed_targets=allowed_list,
            )

        if (
            target == OrderStatus.CONFIRMED
            and order.payment_method == PaymentMethod.PIX
            and not order.has_approved_charge
        ):
            raise PaymentNotVerified(
                f"Order {order.order_number} has no verified payment.", order_id=order.id
            )

        if target == OrderStatus.CANCELLED and order.has_approved_charge and not order.is_refunded:
            raise InvalidStatusTransition(
                f"Order {order.order_number} can only be closed once its refund is accepted.",
                current_status=order.status,
                target=target,
                allowed_targets=[],
            )

    def _commit_transition(
        self,
        order: Order,
        target: str,
        actor: Actor,
        notes: str = "",
        fields: Optional[Dict[str, Any]] = None,
    ) -> None:
        old_status = order.status
        values = dict(fields or {})
        if actor.is_manual:
            values.update(
                last_manual_status=target,
                last_manual_update=timezone.now(),
                last_manual_actor=actor.label,
            )
        log = logger.bind(
            order_id=str(order.id),
            order_number=order.order_number,
            old_status=old_status,
            new_status=target,
            actor=actor.label,
        )

        try:
            swapped = self._order_repo.compare_and_set_status(order.id, old_status, target, values)
            if not swapped:
                raise ConcurrentStatusChange(
                    f"Order {order.order_number} changed while moving it to {target}; reload and retry.",
                    order_id=order.id,
                    expected_status=old_status,
                )
            order.status = target
            for field, value in values.items():
                setattr(order, field, value)

            self._order_repo.add_history(
                order_id=order.id,
                new_status=target,
                old_status=old_status,
                actor=actor.label,
                user_id=actor.user_id if actor.is_manual else None,
                source=HistorySource.MANUAL if actor.is_manual else HistorySource.SYSTEM,
                notes=notes,
            )
            if target in STOCK_RELEASING_STATES:
                self._release_stock(order)
            if target == OrderStatus.COMPLETED:
                self._award_eco_points(order)
        except DatabaseError as exc:
            log.error("order.transition_persistence_failed", error=str(exc))
            raise OrderPersistenceError(
                f"Could not persist the move of order {order.order_number} to {target}.",
                order_id=order.id,
                attempted_transition=f"{old_status}->{target}",
            ) from exc

        log.info("order.status_changed")
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                order_number=order.order_number,
                old_status=old_status,
                new_status=target,
                customer_email=order.customer_email,
                actor=actor.label,
            )
        )
        self._order_repo.commit_events(order)

    def _release_stock(self, order: Order) -> None:
        items = sorted(order.items.all(), key=lambda item: str(item.product_id))
        for item in items:
            if item.backordered or item.confirmation_status == ItemConfirmationStatus.REMOVED:
                continue
            self._product_repo.release_stock(item.product_id, item.quantity)

    def _award_eco_points(self, order: Order) -> None:
        if not order.eco_points_reward:
            return
        customer = self._customer_repo.award_eco_points(
            email=order.customer_email,
            name=order.customer_name,
            points=order.eco_points_reward,
            order_id=order.id,
            description=f"Pedido {order.order_number} concluído",
        )
        order.add_domain_event(
            EcoPointsAwarded(
                aggregate_id=order.id,
                customer_email=customer.email,
                points=order.eco_points_reward,
                total_points=customer.eco_points,
            )
        )

    # ------------------------------------------------------------------
    # Authorization
    # ------------------------------------------------------------------

    @staticmethod
    def _allowed_targets(actor: Actor) -> frozenset:
        if actor.is_system:
            return SYSTEM_TARGETS | {OrderStatus.PAYMENT_EXPIRED}
        if actor.is_manual:
            return STAFF_TARGETS | {OrderStatus.PAYMENT_EXPIRED}
        return CUSTOMER_TARGETS

    def _authorize_target(self, actor: Actor, target: str) -> None:
        if target not in self._allowed_targets(actor):
            logger.warning("order.transition_forbidden", actor=actor.label, kind=actor.kind, target=target)
            raise TransitionNotAllowed(
                f"A {actor.kind} may not move an order to {target}.",
                actor=actor.kind,
                target=target,
            )

    def _authorize_order(self, actor: Actor, order: Order) -> None:
        """Staff only see orders with their products; customers only their own."""
        if actor.is_staff:
            owns = any(
                item.product.supermarket_id == actor.supermarket_id for item in order.items.all()
            )
            if not owns:
                raise OrderNotFound(f"Order {order.id} not found.", order_id=order.id)
        elif not actor.is_admin and not actor.is_system:
            if normalize_email(actor.label) != normalize_email(order.customer_email):
                raise OrderNotFound(f"Order {order.id} not found.", order_id=order.id)

    # ------------------------------------------------------------------
    # Cancellation and refunds
    # ------------------------------------------------------------------

    def cancel_order(self, order_id: Any, actor: Actor, reason: str = "") -> Order:
        """Cancel an order, refunding its PIX charge when one was paid.

        The refund is requested before any status change.  If the gateway
        refuses it, ``refund_status`` is set to ``failed`` and the order
        keeps its status so the cancellation can be retried.  On success
        the order passes through ``cancelled-staff`` / ``cancelled-customer``
        and is closed as ``cancelled``.
        """
        if actor.is_manual:
            target = OrderStatus.CANCELLED_STAFF
        elif actor.is_system:
            raise TransitionNotAllowed("The system does not cancel orders.", actor=actor.kind)
        else:
            target = OrderStatus.CANCELLED_CUSTOMER

        order = self.get_order(order_id, actor)
        if order.is_cancelled:
            logger.info("order.cancel_noop", order_id=str(order.id), status=order.status)
            return order

        log = logger.bind(order_id=str(order.id), order_number=order.order_number, actor=actor.label)
        refund = None
        try:
            # The row stays locked while the gateway refunds, so no staff
            # action can move the order between the check and the refund.
            with transaction.atomic():
                order = self._order_repo.get_for_update(order.id) or order
                if order.is_cancelled:
                    logger.info("order.cancel_noop", order_id=str(order.id), status=order.status)
                    return order
                self._validate(order, target)
                if order.has_approved_charge and not order.is_refunded:
                    refund = self._issue_refund(order, reason)
                self._finish_cancellation(order, target, actor, reason, refund)
        except Exception as exc:
            if refund is not None:
                # The money already moved; keep the record even though the status did not.
                self._order_repo.update_fields(order.id, self._refund_fields(refund, reason))
                log.error("order.cancel_failed_after_refund", refund_id=refund.refund_id)
            elif isinstance(exc, REFUND_ERRORS):
                self._mark_refund_failed(order.id, reason)
            raise

        if refund is None and order.payment_reference and not order.has_approved_charge:
            self._cancel_charge_quietly(order.payment_reference, reason="order_cancelled")

        log.info("order.cancelled", status=order.status, refunded=refund is not None)
        return self._order_repo.get_by_id(order.id) or order

    def _finish_cancellation(
        self,
        order: Order,
        target: str,
        actor: Actor,
        reason: str,
        refund: Optional[RefundHandle],
    ) -> None:
        fields = self._refund_fields(refund, reason) if refund else None
        self._commit_transition(order, target, actor, reason, fields)
        if refund is not None:
            self._close_refunded(order, refund, reason)
        elif order.is_refunded:
            self._commit_transition(
                order, OrderStatus.CANCELLED, Actor.system("refund"), "Pedido já estornado"
            )

    def refund_order(self, order_id: Any, actor: Actor, reason: str = "") -> Order:
        """Refund an order's PIX charge without cancelling it.

        Also the retry path after a failed automatic refund: a
        ``cancelled-staff`` / ``cancelled-customer`` order is closed as
        ``cancelled`` once the refund is accepted.
        """
        if not actor.is_manual:
            raise PermissionDenied("Only staff or administrators may refund orders.")
        order = self.get_order(order_id, actor)
        if order.is_refunded:
            raise AlreadyRefunded(
                f"Order {order.order_number} was already refunded.",
                refund_reference=order.refund_reference,
            )
        if not order.has_approved_charge:
            raise RefundNotAllowed(
                f"Order {order.order_number} has no approved PIX payment to refund.",
                order_id=order.id,
            )

        try:
            refund = self._issue_refund(order, reason)
        except REFUND_ERRORS:
            self._mark_refund_failed(order.id, reason)
            raise
        self._record_refund(order.id, refund, reason)
        logger.info("order.refunded", order_id=str(order.id), refund_id=refund.refund_id)
        return self._order_repo.get_by_id(order.id) or order

    @transaction.atomic
    def _record_refund(self, order_id: Any, refund: RefundHandle, reason: str) -> None:
        order = self._order_repo.get_for_update(order_id)
        fields = self._refund_fields(refund, reason)
        self._order_repo.update_fields(order.id, fields)
        for field, value in fields.items():
            setattr(order, field, value)
        if order.status in (OrderStatus.CANCELLED_STAFF, OrderStatus.CANCELLED_CUSTOMER):
            self._close_refunded(order, refund, reason)
        else:
            self._add_refund_event(order, refund)
            self._order_repo.commit_events(order)

    def _close_refunded(self, order: Order, refund: RefundHandle, reason: str) -> None:
        self._commit_transition(
            order, OrderStatus.CANCELLED, Actor.system("refund"), reason or "Estorno aceito"
        )
        self._add_refund_event(order, refund)
        self._order_repo.commit_events(order)

    @staticmethod
    def _add_refund_event(order: Order, refund: RefundHandle) -> None:
        order.add_domain_event(
            OrderRefunded(
                aggregate_id=order.id,
                order_number=order.order_number,
                customer_email=order.customer_email,
                amount=refund.amount,
                refund_reference=refund.refund_id,
            )
        )

    def _issue_refund(self, order: Order, reason: str) -> RefundHandle:
        """Ask the gateway for a full refund of the order's charge.

        A charge the gateway reports as already refunded is taken as
        settled, so a refund whose local record was lost still lets the
        order close.
        """
        log = logger.bind(order_id=str(order.id), charge_id=order.payment_reference)
        try:
            refund = self.gateway.create_refund(order.payment_reference, reason)
        except AlreadyRefunded as exc:
            log.warning("order.refund_already_settled", error=str(exc))
            return RefundHandle(
                refund_id=order.refund_reference,
                charge_id=order.payment_reference,
                amount=order.refund_amount or order.total_amount,
                status=RefundState.APPROVED,
            )
        except REFUND_ERRORS as exc:
            log.error("order.refund_failed", error=str(exc), code=exc.code)
            raise
        log.info("order.refund_issued", refund_id=refund.refund_id, amount=str(refund.amount))
        return refund

    def _mark_refund_failed(self, order_id: Any, reason: str) -> None:
        self._order_repo.update_fields(
            order_id, {"refund_status": RefundStatus.FAILED, "refund_reason": reason}
        )

    @staticmethod
    def _refund_fields(refund: RefundHandle, reason: str) -> Dict[str, Any]:
        return {
            "refund_reference": refund.refund_id,
            "refund_amount": refund.amount,
            "refund_status": (
                RefundStatus.APPROVED if refund.status == RefundState.APPROVED else RefundStatus.PENDING
            ),
            "refund_reason": reason,
            "refund_date": timezone.now(),
        }

    def _cancel_charge_quietly(self, charge_id: str, reason: str) -> None:
        try:
            cancelled = self.gateway.cancel_charge(charge_id)
        except GatewayError as exc:
            logger.warning("payment.charge_cancel_failed", charge_id=charge_id, reason=reason, error=str(exc))
            return
        logger.info("payment.charge_cancelled", charge_id=charge_id, reason=reason, cancelled=cancelled)

    # ------------------------------------------------------------------
    # Payment reconciliation
    # ------------------------------------------------------------------

    def confirm_payment(self, order_id: Any, verified_at: Optional[datetime] = None) -> Order:
        """``awaiting_payment -> pending`` for an approved charge."""
        order = self._apply_transition(
            order_id,
            OrderStatus.PENDING,
            Actor.system("payment"),
            "Pagamento PIX aprovado",
            {"payment_verified_at": verified_at or timezone.now()},
        )
        return self._order_repo.get_by_id(order.id) or order

    def expire_payment(
        self,
        order_id: Any,
        actor: Optional[Actor] = None,
        notes: str = "Pagamento PIX expirado",
        fields: Optional[Dict[str, Any]] = None,
    ) -> Order:
        """``awaiting_payment -> payment_expired``; the charge is cancelled best-effort."""
        actor = actor or Actor.system("payment-expiry")
        self._authorize_target(actor, OrderStatus.PAYMENT_EXPIRED)
        order = self._apply_transition(order_id, OrderStatus.PAYMENT_EXPIRED, actor, notes, fields)
        if order.payment_reference and not order.payment_verified_at:
            self._cancel_charge_quietly(order.payment_reference, reason="payment_expired")
        return self._order_repo.get_by_id(order.id) or order

    def fail_payment(self, order_id: Any, detail: str = "") -> Order:
        order = self._apply_transition(
            order_id,
            OrderStatus.PAYMENT_FAILED,
            Actor.system("payment"),
            detail or "Pagamento PIX recusado",
        )
        return self._order_repo.get_by_id(order.id) or order

    def reconcile_payment(
        self, order_id: Any, charge: ChargeStatus, now: Optional[datetime] = None
    ) -> Order:
        """Bring an ``awaiting_payment`` order in line with its charge.

        approved -> ``pending`` (or ``payment_expired`` for a late approval
        when late approvals are not honored); rejected -> ``payment_failed``;
        cancelled -> expired or failed; still pending past the deadline ->
        ``payment_expired``.  Idempotent in outcome.
        """
        now = now or timezone.now()
        order = self.get_order(order_id)
        log = logger.bind(order_id=str(order.id), charge_id=charge.charge_id, charge_status=charge.status)

        if order.status != OrderStatus.AWAITING_PAYMENT:
            if charge.is_approved and order.status in (
                OrderStatus.PAYMENT_EXPIRED,
                OrderStatus.PAYMENT_FAILED,
                *CANCELLED_FAMILY,
            ) and not order.payment_verified_at:
                log.error("payment.approved_for_closed_order", status=order.status)
            return order

        overdue = bool(order.payment_expires_at and now > order.payment_expires_at)
        try:
            if charge.is_approved:
                if overdue and not settings.HONOR_LATE_PAYMENT_APPROVALS:
                    log.error("payment.late_approval_forfeited", expires_at=str(order.payment_expires_at))
                    # Recording the verification keeps the charge refundable.
                    return self.expire_payment(
                        order.id,
                        notes="Pagamento aprovado após o prazo",
                        fields={"payment_verified_at": now},
                    )
                return self.confirm_payment(order.id, now)
            if charge.status == ChargeState.REJECTED:
                return self.fail_payment(order.id, charge.detail)
            if charge.status == ChargeState.CANCELLED:
                if overdue:
                    return self.expire_payment(order.id)
                return self.fail_payment(order.id, charge.detail or "Cobrança cancelada")
            if overdue:
                return self.expire_payment(order.id)
        except (InvalidStatusTransition, ConcurrentStatusChange):
            log.info("payment.reconcile_raced")
            return self.get_order(order.id)
        return order

    def sweep_overdue_payments(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """Reconcile every PIX order whose payment window has closed."""
        now = now or timezone.now()
        summary: Counter = Counter()
        orders = self._order_repo.list_overdue_awaiting_payment(now)
        for order in orders:
            log = logger.bind(order_id=str(order.id), charge_id=order.payment_reference)
            try:
                if not order.payment_reference:
                    updated = self.expire_payment(order.id)
                else:
                    charge = self.gateway.get_charge_status(order.payment_reference)
                    updated = self.reconcile_payment(order.id, charge, now)
            except GatewayUnavailable as exc:
                log.warning("payment.sweep_skipped", error=str(exc))
                summary["skipped"] += 1
                continue
            except DomainError as exc:
                log.error("payment.sweep_failed", error=str(exc), code=exc.code)
                summary["errors"] += 1
                continue
            summary[updated.status] += 1

        logger.info("payment.sweep_finished", checked=len(orders), **summary)
        return dict(summary)

    # ------------------------------------------------------------------
    # Item confirmation
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_item_confirmation(
        self, order_id: Any, item_id: Any, status: str, actor: Actor
    ) -> OrderItem:
        """Accept or remove an order line while the order is ``confirmed``.

        Removing a line gives its stock back; restoring it reserves again.
        """
        if not actor.is_manual:
            raise PermissionDenied("Only supermarket staff may confirm order items.")
        order = self._order_repo.get_for_update(order_id)
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.", order_id=order_id)
        self._authorize_order(actor, order)

        item = self._order_repo.get_item(order.id, item_id)
        if item is None or (actor.is_staff and item.product.supermarket_id != actor.supermarket_id):
            raise OrderItemNotFound(f"Item {item_id} not found in order {order.order_number}.")
        if order.status != OrderStatus.CONFIRMED:
            raise ItemConfirmationNotAllowed(
                f"Items can only be reviewed while the order is confirmed (now {order.status}).",
                current_status=order.status,
            )
        if item.confirmation_status == status:
            return item

        removing = status == ItemConfirmationStatus.REMOVED
        restoring = item.confirmation_status == ItemConfirmationStatus.REMOVED
        if not item.backordered:
            if removing:
                self._product_repo.release_stock(item.product_id, item.quantity)
            elif restoring and not self._product_repo.reserve_stock(item.product_id, item.quantity):
                raise InsufficientStock(
                    f"Not enough stock to restore {item.product.name}.", product_id=item.product_id
                )

        self._order_repo.set_item_confirmation(item.id, status)
        item.confirmation_status = status
        logger.info(
            "order.item_confirmation_changed",
            order_id=str(order.id),
            item_id=str(item.id),
            status=status,
            actor=actor.label,
        )
        return item

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: Any, actor: Optional[Actor] = None) -> Order:
        """Retrieve a single order, scoped to what ``actor`` may see.

        Raises:
            OrderNotFound: if the order does not exist or is not visible.
        """
        order = self._order_repo.get_by_id(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.", order_id=order_id)
        if actor is not None:
            self._authorize_order(actor, order)
        return order

    def list_orders(self, actor: Actor, filters: Optional[Dict[str, Any]] = None):
        if actor.is_admin:
            return self._order_repo.list(filters)
        if actor.is_staff:
            queryset = self._order_repo.list_for_supermarket(actor.supermarket_id)
            return queryset.filter(**filters) if filters else queryset
        raise PermissionDenied("Only staff or administrators may list orders.")


def build_order_service(payment_gateway: Optional[IPaymentGateway] = None) -> OrderService:
    """Wire ``OrderService`` with the Django repositories."""
    from modules.customers.repositories.django_repository import CustomerDjangoRepository
    from modules.orders.repositories.django_repository import OrderDjangoRepository
    from modules.products.repositories.django_repository import ProductDjangoRepository

    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        customer_repository=CustomerDjangoRepository(),
        payment_gateway=payment_gateway,
    )
