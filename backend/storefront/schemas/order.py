from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.order import OrderStatus, PaymentMethod, PaymentStatus


class CartItemIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    product_id: UUID = Field(alias="productId")
    qty: int = Field(ge=1, le=1000)
    size: str = Field(default="", max_length=20)


class InlineAddress(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    label: str | None = Field(default=None, max_length=20)
    full_name: str = Field(default="", max_length=200, alias="fullName")
    phone: str = Field(min_length=1, max_length=30)
    city: str = Field(default="", max_length=100)
    area: str = Field(default="", max_length=200)
    street: str = Field(default="", max_length=200)


class OrderCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    items: list[CartItemIn]
    coupon_code: str | None = Field(default=None, max_length=40, alias="couponCode")
    shipping_minor: int | None = Field(default=None, ge=0, alias="shippingMinor")
    address_id: UUID | None = Field(default=None, alias="addressId")
    address: InlineAddress | None = None
    payment_method: PaymentMethod = Field(alias="paymentMethod")
    payment_ref: str | None = Field(default=None, max_length=255, alias="paymentRef")


class OrderStatusUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    order_status: OrderStatus | None = Field(default=None, alias="orderStatus")
    payment_status: PaymentStatus | None = Field(default=None, alias="paymentStatus")


class OrderItemRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    product_id: UUID
    name: str
    size: str
    image: str
    quantity: int
    unit_price_minor: int
    line_total_minor: int


class OrderEventRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    event: str
    note: str | None = None
    created_at: datetime


class OrderRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_code: str
    user_id: UUID
    subtotal_minor: int
    shipping_minor: int
    discount_minor: int
    total_minor: int
    currency: str
    coupon_snapshot: dict[str, Any] | None = None
    address_snapshot: dict[str, Any] | None = None
    shipping_method: str
    estimated_delivery: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    payment_ref: str | None = None
    order_status: OrderStatus
    items: list[OrderItemRead] = Field(default_factory=list)
    events: list[OrderEventRead] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class OrderSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_code: str
    total_minor: int
    currency: str
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    order_status: OrderStatus
    created_at: datetime


class OrderTracking(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    order_code: str
    order_status: OrderStatus
    shipping_method: str
    estimated_delivery: str
    created_at: datetime
