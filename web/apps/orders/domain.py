"""Domain models and ports for orders.

This module contains the order aggregate (``Order`` with its
``OrderLineItem``s) and its lifecycle rules, the value objects returned by
the downstream services, and the protocol definitions (ports) for the member
directory, the product catalog and the payment gateway. It has no Django or
HTTP dependencies.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import ContextManager, List, Optional, Protocol

from .errors import InvalidOrderStatus


CENTS = Decimal("0.01")
# matches the scale of the stored unit price column
UNIT_PRICE_STEP = Decimal("0.0001")


def round_money(value: Decimal) -> Decimal:
    """Quantize an amount to 2 decimal places using half-up rounding."""
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


# ---- Enums ----
class OrderStatus(str, Enum):
    """Lifecycle of a persisted order.

    ``PENDING`` only exists between the first and the second write of the
    creation protocol; ``CANCELLED`` is terminal.
    """

    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    PAYMENT_FAILED = "PAYMENT_FAILED"
    CANCELLED = "CANCELLED"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "CREDIT_CARD"
    DEBIT_CARD = "DEBIT_CARD"
    BANK_TRANSFER = "BANK_TRANSFER"


class MemberStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    SUSPENDED = "SUSPENDED"


class ProductStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    OUT_OF_STOCK = "OUT_OF_STOCK"
    DISCONTINUED = "DISCONTINUED"


class PaymentStatus(str, Enum):
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    PENDING = "PENDING"
    REFUNDED = "REFUNDED"


ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.PAYMENT_FAILED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.CANCELLED},
    OrderStatus.PAYMENT_FAILED: {OrderStatus.CANCELLED},
    OrderStatus.CANCELLED: set(),
}


# ---- Downstream value objects ----
@dataclass(frozen=True)
class Member:
    id: str
    status: str
    grade: str | None = None


@dataclass(frozen=True)
class Product:
    id: str
    name: str
    price: Decimal
    status: str


@dataclass(frozen=True)
class Stock:
    quantity: int
    reserved: int
    available: int


@dataclass(frozen=True)
class PaymentRequest:
    order_id: uuid.UUID
    amount: Decimal
    method: PaymentMethod


@dataclass(frozen=True)
class PaymentResult:
    """Outcome reported by the payment gateway for a charge or a refund."""

    status: str
    transaction_id: str | None = None


# ---- Entities ----
@dataclass(frozen=True)
class OrderLineItem:
    """A single line of an order.

    Name and unit price are snapshots taken at order time and never refreshed
    from the catalog. The subtotal is validated against
    ``unit_price * quantity`` on construction; use ``create`` to have it
    computed.

    Attributes:
        product_id: Catalog identifier of the product.
        product_name: Product name captured when the order was placed.
        quantity: Units ordered, strictly positive.
        unit_price: Unit price captured when the order was placed, kept to
            4 decimal places.
        subtotal: ``unit_price * quantity`` rounded half-up to 2 decimals.
    """

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValueError("quantity must be positive")
        expected = round_money(self.unit_price * self.quantity)
        if Decimal(self.subtotal) != expected:
            raise ValueError(f"subtotal {self.subtotal} does not match {expected}")

    @classmethod
    def create(cls, product_id: str, product_name: str, quantity: int, unit_price: Decimal) -> "OrderLineItem":
        unit_price = Decimal(unit_price).quantize(UNIT_PRICE_STEP, rounding=ROUND_HALF_UP)
        return cls(
            product_id=product_id,
            product_name=product_name,
            quantity=quantity,
            unit_price=unit_price,
            subtotal=round_money(unit_price * quantity),
        )


@dataclass
class Order:
    """Order aggregate root.

    Attributes:
        id: Identifier assigned on first persistence, ``None`` before.
        member_id: Identifier of the ordering member.
        payment_method: How the member pays.
        items: Line items, appended while the order is still unpersisted.
        status: Current ``OrderStatus``.
        total_amount: Half-up rounded sum of the line subtotals.
        number: Sequential order number assigned by the store.
        transaction_id: Payment transaction reference once charged.
        refund_transaction_id: Refund reference; its presence means the
            refund was already issued.
    """

    member_id: str
    payment_method: PaymentMethod
    id: Optional[uuid.UUID] = None
    items: List[OrderLineItem] = field(default_factory=list)
    status: OrderStatus = OrderStatus.PENDING
    total_amount: Decimal = Decimal("0.00")
    number: int | None = None
    transaction_id: str | None = None
    refund_transaction_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None

    def add_item(self, item: OrderLineItem) -> None:
        if self.is_persisted:
            raise InvalidOrderStatus("Line items cannot change once the order is persisted")
        self.items.append(item)
        self.total_amount = round_money(sum((i.subtotal for i in self.items), Decimal("0")))

    def transition_to(self, target: OrderStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidOrderStatus(f"Cannot move order from {self.status.value} to {target.value}")
        self.status = target

    def confirm(self, transaction_id: str) -> None:
        self.transition_to(OrderStatus.CONFIRMED)
        self.transaction_id = transaction_id

    def mark_payment_failed(self) -> None:
        self.transition_to(OrderStatus.PAYMENT_FAILED)

    def cancel(self) -> None:
        self.transition_to(OrderStatus.CANCELLED)

    @property
    def needs_refund(self) -> bool:
        return (
            self.status == OrderStatus.CONFIRMED
            and bool(self.transaction_id)
            and not self.refund_transaction_id
        )


# ---- Ports (DIP) ----
class MemberPort(Protocol):
    """Member directory lookups."""

    def get_member(self, member_id: str) -> Optional[Member]:
        """Fetch a member.

        Raises:
            MemberNotFound: When the directory reports the member as absent.
            ServiceUnavailable: When the directory cannot be reached.
        """
        raise NotImplementedError()


class ProductPort(Protocol):
    """Product catalog and stock lookups."""

    def get_product(self, product_id: str) -> Optional[Product]:
        """Fetch product details.

        Raises:
            ProductNotFound: When the catalog reports the product as absent.
            ServiceUnavailable: When the catalog cannot be reached.
        """
        raise NotImplementedError()

    def get_stock(self, product_id: str) -> Stock:
        raise NotImplementedError()


class PaymentsPort(Protocol):
    """Payment gateway operations.

    Both operations return ``None`` when the gateway answers with something
    that cannot be interpreted.
    """

    def create_payment(self, request: PaymentRequest) -> Optional[PaymentResult]:
        raise NotImplementedError()

    def refund_payment(self, transaction_id: str, amount: Decimal) -> Optional[PaymentResult]:
        raise NotImplementedError()


@dataclass(frozen=True)
class OrderPage:
    items: List[Order]
    count: int
    page: int
    page_size: int


class OrderStore(Protocol):
    """Persistence port for the order aggregate.

    ``locked`` yields the order under exclusive access (row lock) for a
    read-modify-write; ``update`` must be called inside that block to persist
    the change atomically with the lock.
    """

    def add(self, order: Order) -> Order:
        """Persist a new order with its items and return it with id assigned."""
        raise NotImplementedError()

    def update(self, order: Order) -> Order:
        """Persist status and payment references of an existing order."""
        raise NotImplementedError()

    def get(self, order_id: uuid.UUID) -> Optional[Order]:
        raise NotImplementedError()

    def locked(self, order_id: uuid.UUID) -> ContextManager[Optional[Order]]:
        raise NotImplementedError()

    def list(self, page: int, page_size: int, sort_by: str, sort_dir: str) -> OrderPage:
        raise NotImplementedError()
