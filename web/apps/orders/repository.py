"""Repository layer for persisting orders.

``OrderRepository`` implements the ``OrderStore`` port on top of the Django
ORM. It maps between the domain ``Order`` aggregate and the ``OrderModel`` /
``OrderItemModel`` rows so the domain layer is not coupled to ORM types.
"""

import logging
import uuid
from contextlib import contextmanager
from typing import Iterator, Optional

from django.core.paginator import Paginator
from django.db import OperationalError, transaction

from .domain import Order, OrderLineItem, OrderPage, OrderStatus, PaymentMethod
from .errors import ConcurrentModification
from .models import OrderItemModel, OrderModel

logger = logging.getLogger(__name__)

# API field name -> model field
SORT_FIELDS = {
    "created_at": "created_at",
    "updated_at": "updated_at",
    "total_amount": "total_amount",
    "status": "status",
    "number": "internal_id",
}


def to_domain(obj: OrderModel) -> Order:
    items = [
        OrderLineItem(
            product_id=i.product_id,
            product_name=i.product_name,
            quantity=i.quantity,
            unit_price=i.unit_price,
            subtotal=i.subtotal,
        )
        for i in obj.items.all()
    ]
    return Order(
        id=obj.id,
        number=obj.internal_id,
        member_id=obj.member_id,
        payment_method=PaymentMethod(obj.payment_method),
        items=items,
        status=OrderStatus(obj.status),
        total_amount=obj.total_amount,
        transaction_id=obj.payment_transaction_id,
        refund_transaction_id=obj.refund_transaction_id,
        created_at=obj.created_at,
        updated_at=obj.updated_at,
    )


class OrderRepository:
    """Persists Order aggregates using the Django ORM."""

    def add(self, order: Order) -> Order:
        """Insert the order and its line items in one transaction.

        Returns:
            The same ``Order`` with ``id``, ``number`` and timestamps filled in.
        """
        with transaction.atomic():
            obj = OrderModel(
                member_id=order.member_id,
                status=order.status.value,
                total_amount=order.total_amount,
                payment_method=order.payment_method.value,
                payment_transaction_id=order.transaction_id,
                refund_transaction_id=order.refund_transaction_id,
            )
            obj.save()
            OrderItemModel.objects.bulk_create(
                [
                    OrderItemModel(
                        order=obj,
                        position=pos,
                        product_id=item.product_id,
                        product_name=item.product_name,
                        quantity=item.quantity,
                        unit_price=item.unit_price,
                        subtotal=item.subtotal,
                    )
                    for pos, item in enumerate(order.items)
                ]
            )
        order.id = obj.id
        order.number = obj.internal_id
        order.created_at = obj.created_at
        order.updated_at = obj.updated_at
        return order

    def update(self, order: Order) -> Order:
        """Persist the mutable part of an order: status and payment references.

        Line items are never rewritten.
        """
        with transaction.atomic():
            obj = OrderModel.objects.select_for_update().get(id=order.id)
            obj.status = order.status.value
            obj.payment_transaction_id = order.transaction_id
            obj.refund_transaction_id = order.refund_transaction_id
            obj.save(update_fields=["status", "payment_transaction_id", "refund_transaction_id", "updated_at"])
        order.updated_at = obj.updated_at
        return order

    def get(self, order_id: uuid.UUID) -> Optional[Order]:
        obj = OrderModel.objects.prefetch_related("items").filter(id=order_id).first()
        return to_domain(obj) if obj else None

    @contextmanager
    def locked(self, order_id: uuid.UUID) -> Iterator[Optional[Order]]:
        """Yield the order under a row lock (``SELECT ... FOR UPDATE``).

        The lock is held until the block exits; the surrounding transaction
        commits on normal exit and rolls back on exceptions.

        Raises:
            ConcurrentModification: The database gave up waiting for the lock.
        """
        try:
            with transaction.atomic():
                obj = OrderModel.objects.select_for_update().filter(id=order_id).first()
                yield to_domain(obj) if obj else None
        except OperationalError as exc:
            logger.warning("row lock not acquired", extra={"order_id": str(order_id), "error": str(exc)})
            raise ConcurrentModification(f"Order {order_id} is being modified by another request") from exc

    def list(self, page: int, page_size: int, sort_by: str, sort_dir: str) -> OrderPage:
        field = SORT_FIELDS[sort_by]
        ordering = field if sort_dir == "asc" else f"-{field}"
        qs = OrderModel.objects.prefetch_related("items").order_by(ordering, "-internal_id")
        paginator = Paginator(qs, page_size)
        page_obj = paginator.get_page(page)
        return OrderPage(
            items=[to_domain(o) for o in page_obj.object_list],
            count=paginator.count,
            page=page_obj.number,
            page_size=page_size,
        )
