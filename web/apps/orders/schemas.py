"""Pydantic schemas for orders.

This module exposes the request/validation schemas used by the orders API
and the read projection returned to clients. Request DTOs convert into the
service-layer commands; ``OrderReadDTO.from_domain`` builds the projection
from an ``Order`` aggregate.
"""

from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_serializer, field_validator

from .domain import CENTS, Order, OrderStatus, PaymentMethod
from .repository import SORT_FIELDS
from .service import CreateOrderCommand, RequestedItem

MAX_ITEMS = 50
MAX_PAGE_SIZE = 100


class OrderItemIn(BaseModel):
    """Input schema for a single order line.

    Attributes:
        product_id: Catalog identifier, surrounding whitespace stripped.
        quantity: Positive integer indicating units requested.
    """

    product_id: str = Field(min_length=1, max_length=64)
    quantity: int = Field(gt=0)

    @field_validator("product_id")
    @classmethod
    def strip_product_id(cls, v: str) -> str:
        v2 = v.strip()
        if not v2:
            raise ValueError("Product ID is required")
        return v2


class CreateOrderDTO(BaseModel):
    """Schema for creating an order.

    Attributes:
        member_id: Identifier of the ordering member (non-blank).
        items: Between 1 and ``MAX_ITEMS`` lines.
        payment_method: One of the supported ``PaymentMethod`` values.
    """

    member_id: str = Field(min_length=1, max_length=64)
    items: List[OrderItemIn] = Field(min_length=1, max_length=MAX_ITEMS)
    payment_method: PaymentMethod

    @field_validator("member_id")
    @classmethod
    def validate_member_id(cls, v: str) -> str:
        """Reject blank member ids and strip surrounding whitespace.

        Raises:
            ValueError: When the id is blank.
        """
        v2 = v.strip()
        if not v2:
            raise ValueError("Member ID is required")
        return v2

    def to_command(self) -> CreateOrderCommand:
        return CreateOrderCommand(
            member_id=self.member_id,
            items=[RequestedItem(product_id=i.product_id, quantity=i.quantity) for i in self.items],
            payment_method=self.payment_method,
        )


class UpdateOrderDTO(BaseModel):
    """Body of the status update endpoint. Only CANCELLED is accepted downstream."""

    status: OrderStatus


class ListOrdersQuery(BaseModel):
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=MAX_PAGE_SIZE)
    sort_by: str = "created_at"
    sort_dir: Literal["asc", "desc"] = "desc"

    @field_validator("sort_by")
    @classmethod
    def validate_sort_by(cls, v: str) -> str:
        if v not in SORT_FIELDS:
            raise ValueError(f"Unsupported sort field, use one of: {', '.join(sorted(SORT_FIELDS))}")
        return v

    @field_validator("sort_dir", mode="before")
    @classmethod
    def normalize_sort_dir(cls, v):
        return v.lower() if isinstance(v, str) else v


class OrderItemReadDTO(BaseModel):
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal

    @field_serializer("unit_price")
    def serialize_unit_price(self, v: Decimal) -> str:
        # stored with 4 dp; render without padding zeros beyond cents
        if v == v.quantize(CENTS):
            return str(v.quantize(CENTS))
        return str(v.normalize())


class OrderReadDTO(BaseModel):
    """Order projection returned by every orders endpoint."""

    id: UUID
    number: Optional[int] = None
    member_id: str
    items: List[OrderItemReadDTO]
    total_amount: Decimal
    status: OrderStatus
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    refund_transaction_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_domain(cls, order: Order) -> "OrderReadDTO":
        return cls(
            id=order.id,
            number=order.number,
            member_id=order.member_id,
            items=[
                OrderItemReadDTO(
                    product_id=i.product_id,
                    product_name=i.product_name,
                    quantity=i.quantity,
                    unit_price=i.unit_price,
                    subtotal=i.subtotal,
                )
                for i in order.items
            ],
            total_amount=order.total_amount,
            status=order.status,
            payment_method=order.payment_method,
            transaction_id=order.transaction_id,
            refund_transaction_id=order.refund_transaction_id,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
