from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storefront.models.discount import CouponScope, CouponType, RedemptionStatus
from storefront.schemas.order import CartItemIn


class CouponRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    title: str
    description: str
    discount_type: CouponType
    scope: CouponScope
    value: int
    max_discount_cap_minor: int | None = None
    min_order_minor: int | None = None
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    global_usage_limit: int | None = None
    used_count: int
    max_uses_per_user: int | None = None
    eligible_ids: list[UUID] = Field(default_factory=list)


class RedemptionRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    coupon_id: UUID
    status: RedemptionStatus
    collected_at: datetime
    used_at: datetime | None = None
    order_id: UUID | None = None
    coupon: CouponRead | None = None


class CollectAllResult(BaseModel):
    collected_now: int
    already_had: int
    total_available: int


class DiscountValidateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    coupon_code: str | None = Field(default=None, max_length=40, alias="couponCode")
    items: list[CartItemIn]
    shipping_minor: int | None = Field(default=None, ge=0, alias="shippingMinor")


class DiscountValidateResponse(BaseModel):
    subtotal_minor: int
    shipping_minor: int
    discount_minor: int
    total_minor: int
    applied: dict[str, Any] | None = None
    redemption_id: UUID | None = None
