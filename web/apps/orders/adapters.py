"""In-process stub adapters for the orders domain ports.

These stubs implement ``MemberPort``, ``ProductPort``, ``PaymentsPort`` and
``OrderStore`` without any network or database access. They are intended for
unit tests and local development where deterministic behavior is useful and
external services are not required.

Deterministic rules:

- member ``not-found`` is unknown, ``inactive-member`` is INACTIVE, every
  other member is ACTIVE;
- product ``not-found`` is unknown, ``discontinued`` is DISCONTINUED, every
  other product is AVAILABLE at 99.99;
- product ``out-of-stock`` has no available stock, every other has 100;
- payments above 10000 fail, every other payment completes;
- refunds always succeed.
"""

import copy
import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Iterator, Optional

from .domain import (
    Member,
    MemberPort,
    MemberStatus,
    Order,
    OrderPage,
    OrderStore,
    PaymentRequest,
    PaymentResult,
    PaymentStatus,
    PaymentsPort,
    Product,
    ProductPort,
    ProductStatus,
    Stock,
)
from .errors import MemberNotFound, ProductNotFound

PAYMENT_LIMIT = Decimal("10000")
MOCK_PRICE = Decimal("99.99")


class MemberStub(MemberPort):
    """Stub implementation of ``MemberPort``."""

    def get_member(self, member_id: str) -> Optional[Member]:
        if member_id == "not-found":
            raise MemberNotFound(f"Member not found with id: {member_id}")
        status = MemberStatus.INACTIVE if member_id == "inactive-member" else MemberStatus.ACTIVE
        return Member(id=member_id, status=status.value, grade="GOLD")


class ProductStub(ProductPort):
    """Stub implementation of ``ProductPort``."""

    def get_product(self, product_id: str) -> Optional[Product]:
        if product_id == "not-found":
            raise ProductNotFound(f"Product not found with id: {product_id}")
        status = ProductStatus.DISCONTINUED if product_id == "discontinued" else ProductStatus.AVAILABLE
        return Product(id=product_id, name=f"Mock Product {product_id}", price=MOCK_PRICE, status=status.value)

    def get_stock(self, product_id: str) -> Stock:
        available = 0 if product_id == "out-of-stock" else 100
        return Stock(quantity=100, reserved=0, available=available)


class PaymentsStub(PaymentsPort):
    """Stub implementation of ``PaymentsPort``.

    Approves charges up to ``PAYMENT_LIMIT`` and returns a generated UUID as
    the transaction id; larger amounts are reported as FAILED.
    """

    def create_payment(self, request: PaymentRequest) -> Optional[PaymentResult]:
        if request.amount > PAYMENT_LIMIT:
            return PaymentResult(status=PaymentStatus.FAILED.value, transaction_id=None)
        return PaymentResult(status=PaymentStatus.COMPLETED.value, transaction_id=str(uuid.uuid4()))

    def refund_payment(self, transaction_id: str, amount: Decimal) -> Optional[PaymentResult]:
        return PaymentResult(status=PaymentStatus.REFUNDED.value, transaction_id=str(uuid.uuid4()))


class InMemoryOrderRepository(OrderStore):
    """Thread-safe dict-backed ``OrderStore``.

    Stored orders are copies, so callers only see changes they ``update``.
    ``locked`` serializes read-modify-write per order id.
    """

    def __init__(self):
        self._orders: Dict[uuid.UUID, Order] = {}
        self._lock = threading.Lock()
        self._row_locks: Dict[uuid.UUID, threading.Lock] = {}
        self._seq = 0
        self.writes = 0

    def add(self, order: Order) -> Order:
        now = datetime.now(timezone.utc)
        with self._lock:
            self._seq += 1
            order.id = uuid.uuid4()
            order.number = self._seq
            order.created_at = order.updated_at = now
            self._orders[order.id] = copy.deepcopy(order)
            self._row_locks[order.id] = threading.Lock()
            self.writes += 1
        return order

    def update(self, order: Order) -> Order:
        with self._lock:
            if order.id not in self._orders:
                raise KeyError(order.id)
            order.updated_at = datetime.now(timezone.utc)
            self._orders[order.id] = copy.deepcopy(order)
            self.writes += 1
        return order

    def get(self, order_id: uuid.UUID) -> Optional[Order]:
        with self._lock:
            order = self._orders.get(order_id)
            return copy.deepcopy(order) if order else None

    @contextmanager
    def locked(self, order_id: uuid.UUID) -> Iterator[Optional[Order]]:
        with self._lock:
            row_lock = self._row_locks.get(order_id)
        if row_lock is None:
            yield None
            return
        with row_lock:
            yield self.get(order_id)

    def list(self, page: int, page_size: int, sort_by: str, sort_dir: str) -> OrderPage:
        with self._lock:
            orders = [copy.deepcopy(o) for o in self._orders.values()]
        orders.sort(key=lambda o: (getattr(o, sort_by), o.number), reverse=(sort_dir != "asc"))
        start = (page - 1) * page_size
        return OrderPage(items=orders[start:start + page_size], count=len(orders), page=page, page_size=page_size)

    def __len__(self) -> int:
        with self._lock:
            return len(self._orders)
