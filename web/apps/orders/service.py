"""Order orchestration service.

``OrderService`` coordinates the member directory, the product catalog, the
payment gateway and the order store to create, read and cancel orders.

Creation is a two-write sequence rather than one transaction, because the
payment call cannot be rolled back locally:

1. validate the member and build the line items (no writes);
2. persist the order as ``PENDING`` with its items;
3. charge the payment;
4. persist ``CONFIRMED`` with the transaction reference, or ``PAYMENT_FAILED``
   and raise ``PaymentFailed``. The failed row is kept as an audit trail.

Cancellation is unconditional once requested: refunding a confirmed order is
best-effort and a failed refund is logged for reconciliation, never raised.
"""

import logging
import time
import uuid
from dataclasses import dataclass
from typing import List, Optional

from .domain import (
    MemberPort,
    MemberStatus,
    Order,
    OrderLineItem,
    OrderPage,
    OrderStatus,
    OrderStore,
    PaymentMethod,
    PaymentRequest,
    PaymentResult,
    PaymentStatus,
    PaymentsPort,
    ProductPort,
    ProductStatus,
)
from .errors import (
    InsufficientStock,
    InternalError,
    InvalidOrderStatus,
    MemberInactive,
    MemberNotFound,
    OrderNotFound,
    OrderValidationError,
    PaymentFailed,
    ProductNotFound,
    ProductUnavailable,
    ServiceUnavailable,
)

logger = logging.getLogger(__name__)

DEFAULT_CREATE_TIMEOUT = 10.0
DEFAULT_MAX_ITEMS = 50


@dataclass(frozen=True)
class RequestedItem:
    product_id: str
    quantity: int


@dataclass(frozen=True)
class CreateOrderCommand:
    member_id: str
    items: List[RequestedItem]
    payment_method: PaymentMethod


class Deadline:
    """Time budget for one creation request."""

    def __init__(self, seconds: float, clock=time.monotonic):
        self._clock = clock
        self.seconds = seconds
        self.expires_at = clock() + seconds

    @property
    def expired(self) -> bool:
        return self._clock() >= self.expires_at


class OrderService:
    """Application service orchestrating the order lifecycle.

    Args:
        members: MemberPort used to validate the ordering member.
        products: ProductPort used for product details and stock.
        payments: PaymentsPort used to charge and refund.
        orders: OrderStore persisting the aggregate.
        create_timeout: Time budget in seconds for ``create_order``.
        max_items: Maximum number of line items per order.
    """

    def __init__(
        self,
        members: MemberPort,
        products: ProductPort,
        payments: PaymentsPort,
        orders: OrderStore,
        create_timeout: float = DEFAULT_CREATE_TIMEOUT,
        max_items: int = DEFAULT_MAX_ITEMS,
    ):
        self.members = members
        self.products = products
        self.payments = payments
        self.orders = orders
        self.create_timeout = create_timeout
        self.max_items = max_items

    # ---- create ----

    def create_order(self, command: CreateOrderCommand) -> Order:
        """Validate, persist, charge and confirm a new order.

        Returns:
            The persisted ``Order`` in ``CONFIRMED`` status with a
            transaction reference.

        Raises:
            OrderValidationError: Malformed command.
            MemberNotFound, MemberInactive: Member validation failed.
            ProductNotFound, ProductUnavailable, InsufficientStock: A line
                could not be built. Nothing is persisted in these cases.
            PaymentFailed: The charge was rejected or could not be made; the
                order is persisted as ``PAYMENT_FAILED``.
            ServiceUnavailable: A downstream service was unreachable, or the
                time budget ran out, before anything was persisted.
            InternalError: The second write failed; the order needs manual
                reconciliation.
        """
        self._validate(command)
        deadline = Deadline(self.create_timeout)
        logger.info("creating order", extra={"member_id": command.member_id, "items": len(command.items)})

        self._check_member(command.member_id, deadline)

        order = Order(member_id=command.member_id, payment_method=command.payment_method)
        for requested in command.items:
            order.add_item(self._build_line(requested, deadline))

        order = self.orders.add(order)
        logger.info("order persisted as PENDING", extra={"order_id": str(order.id), "total": str(order.total_amount)})

        result = self._charge(order, deadline)
        if self._charge_succeeded(result):
            order.confirm(result.transaction_id)
            self._second_write(order)
            logger.info("order confirmed", extra={"order_id": str(order.id), "transaction_id": order.transaction_id})
            return order

        order.mark_payment_failed()
        self._second_write(order)
        logger.warning(
            "payment failed, order kept as PAYMENT_FAILED",
            extra={"order_id": str(order.id), "payment_status": getattr(result, "status", None)},
        )
        raise PaymentFailed(f"Payment failed for order {order.id}")

    def _validate(self, command: CreateOrderCommand) -> None:
        field_errors = {}
        if not command.member_id or not command.member_id.strip():
            field_errors["member_id"] = "Member ID is required"
        if not command.items:
            field_errors["items"] = "Order must have at least one item"
        elif len(command.items) > self.max_items:
            field_errors["items"] = f"Order cannot exceed {self.max_items} items"
        for idx, item in enumerate(command.items or []):
            if item.quantity <= 0:
                field_errors[f"items.{idx}.quantity"] = "Quantity must be positive"
        if command.payment_method is None:
            field_errors["payment_method"] = "Payment method is required"
        if field_errors:
            raise OrderValidationError(field_errors=field_errors)

    def _ensure_time_left(self, deadline: Deadline, step: str) -> None:
        if deadline.expired:
            logger.warning("order creation ran out of time", extra={"step": step, "budget": deadline.seconds})
            raise ServiceUnavailable(f"Order creation exceeded its {deadline.seconds:g}s budget during {step}")

    def _check_member(self, member_id: str, deadline: Deadline) -> None:
        self._ensure_time_left(deadline, "member validation")
        member = self.members.get_member(member_id)
        if member is None:
            raise MemberNotFound(f"Member not found with id: {member_id}")
        if member.status != MemberStatus.ACTIVE.value:
            raise MemberInactive(f"Member status is not ACTIVE: {member.status}")

    def _build_line(self, requested: RequestedItem, deadline: Deadline) -> OrderLineItem:
        product_id = requested.product_id
        self._ensure_time_left(deadline, "product lookup")
        product = self.products.get_product(product_id)
        if product is None:
            raise ProductNotFound(f"Product not found with id: {product_id}")
        if product.status != ProductStatus.AVAILABLE.value:
            raise ProductUnavailable(f"Product is not available: {product_id}")

        self._ensure_time_left(deadline, "stock lookup")
        stock = self.products.get_stock(product_id)
        if stock is None or stock.available < requested.quantity:
            raise InsufficientStock(f"Insufficient stock for product: {product_id}")

        return OrderLineItem.create(
            product_id=product_id,
            product_name=product.name,
            quantity=requested.quantity,
            unit_price=product.price,
        )

    def _charge(self, order: Order, deadline: Deadline) -> Optional[PaymentResult]:
        if deadline.expired:
            logger.warning("time budget exhausted before payment", extra={"order_id": str(order.id)})
            return None
        request = PaymentRequest(order_id=order.id, amount=order.total_amount, method=order.payment_method)
        try:
            return self.payments.create_payment(request)
        except ServiceUnavailable as exc:
            logger.warning("payment service unavailable", extra={"order_id": str(order.id), "error": str(exc)})
            return None

    @staticmethod
    def _charge_succeeded(result: Optional[PaymentResult]) -> bool:
        return (
            result is not None
            and result.status == PaymentStatus.COMPLETED.value
            and bool(result.transaction_id)
        )

    def _second_write(self, order: Order) -> None:
        try:
            self.orders.update(order)
        except Exception as exc:
            logger.critical(
                "order state could not be persisted after payment, manual reconciliation required",
                extra={
                    "order_id": str(order.id),
                    "intended_status": order.status.value,
                    "transaction_id": order.transaction_id,
                },
                exc_info=True,
            )
            raise InternalError("Order state could not be persisted after payment") from exc

    # ---- reads ----

    def get_order(self, order_id: uuid.UUID) -> Order:
        order = self.orders.get(order_id)
        if order is None:
            raise OrderNotFound(f"Order not found with id: {order_id}")
        return order

    def list_orders(self, page: int = 1, page_size: int = 20, sort_by: str = "created_at", sort_dir: str = "desc") -> OrderPage:
        return self.orders.list(page, page_size, sort_by, sort_dir)

    # ---- cancel ----

    def cancel_order(self, order_id: uuid.UUID, target_status: OrderStatus) -> Order:
        """Cancel an order, refunding it first when it was paid.

        Raises:
            OrderNotFound: No order with this id.
            InvalidOrderStatus: The order is already cancelled, or
                ``target_status`` is not ``CANCELLED``.
        """
        with self.orders.locked(order_id) as order:
            if order is None:
                raise OrderNotFound(f"Order not found with id: {order_id}")
            if order.status == OrderStatus.CANCELLED:
                raise InvalidOrderStatus("Cannot update status of a CANCELLED order")
            if target_status != OrderStatus.CANCELLED:
                raise InvalidOrderStatus("Only CANCELLED status is allowed for this operation")

            if order.needs_refund:
                self._refund(order)
            elif order.refund_transaction_id:
                logger.info("refund already recorded, skipping", extra={"order_id": str(order.id)})

            order.cancel()
            self.orders.update(order)
            logger.info("order cancelled", extra={"order_id": str(order.id)})
            return order

    def _refund(self, order: Order) -> None:
        try:
            result = self.payments.refund_payment(order.transaction_id, order.total_amount)
        except ServiceUnavailable as exc:
            result = None
            logger.warning("payment service unavailable for refund", extra={"order_id": str(order.id), "error": str(exc)})
        if result is not None and result.status == PaymentStatus.REFUNDED.value and result.transaction_id:
            order.refund_transaction_id = result.transaction_id
            logger.info("refund recorded", extra={"order_id": str(order.id), "refund_transaction_id": result.transaction_id})
            return
        logger.error(
            "refund discrepancy: cancelling without a confirmed refund",
            extra={
                "order_id": str(order.id),
                "transaction_id": order.transaction_id,
                "amount": str(order.total_amount),
                "refund_status": getattr(result, "status", None),
            },
        )
