"""Coupon validation and discount pricing.

``validate_and_price`` only reads storage. It returns either a
``DiscountQuote`` or a ``CouponRejection`` so checkout and the cart preview
can decide what to do with a failed coupon without catching exceptions.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import metrics
from storefront.core.errors import ValidationError
from storefront.models.discount import Coupon, CouponStatus, CouponType, RedemptionStatus
from storefront.services import coupon_store, money, redemptions
from storefront.services.catalog import CartSnapshot
from storefront.services.eligibility import eligible_subtotal_minor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DiscountQuote:
    coupon: Coupon
    redemption_id: UUID
    eligible_subtotal_minor: int
    discount_minor: int

    @property
    def applied(self) -> dict[str, Any]:
        return coupon_descriptor(self.coupon)


@dataclass(frozen=True)
class CouponRejection:
    reason: str
    message: str
    context: dict[str, Any] = field(default_factory=dict)

    def to_error(self) -> ValidationError:
        return ValidationError(self.message, code=self.reason, context=self.context)


@dataclass(frozen=True)
class CartPricing:
    subtotal_minor: int
    shipping_minor: int
    discount_minor: int
    total_minor: int
    applied: dict[str, Any] | None = None
    redemption_id: UUID | None = None


def coupon_descriptor(coupon: Coupon) -> dict[str, Any]:
    return {
        "code": coupon.code,
        "title": coupon.title,
        "type": coupon.discount_type.value,
        "scope": coupon.scope.value,
        "value": int(coupon.value or 0),
    }


def compute_discount_minor(
    discount_type: CouponType,
    *,
    value: int,
    eligible_minor: int,
    subtotal_minor: int,
    shipping_minor: int,
    cap_minor: int | None = None,
) -> int:
    if discount_type == CouponType.percent:
        amount = money.percent_of(eligible_minor, value)
        if cap_minor is not None:
            amount = min(amount, max(0, int(cap_minor)))
    elif discount_type == CouponType.flat:
        amount = min(max(0, int(value)), eligible_minor)
    elif discount_type == CouponType.free_shipping:
        amount = shipping_minor
    else:
        raise ValueError(f"Unsupported coupon type: {discount_type}")
    return money.clamp(amount, 0, max(0, subtotal_minor + shipping_minor))


def _reject(reason: str, message: str, **context: Any) -> CouponRejection:
    metrics.record_coupon_rejected(reason)
    logger.info("coupon_rejected", extra={"reason": reason})
    return CouponRejection(reason=reason, message=message, context=context)


async def validate_and_price(
    session: AsyncSession,
    user_id: UUID,
    code: str,
    cart: CartSnapshot,
    shipping_minor: int,
    *,
    now: datetime | None = None,
) -> DiscountQuote | CouponRejection:
    moment = now or datetime.now(timezone.utc)
    coupon = await coupon_store.get_coupon_by_code(session, code)
    if coupon is None:
        return _reject("coupon_not_found", "Invalid coupon code")
    if coupon.status != CouponStatus.active:
        return _reject("inactive", "Coupon is not active", code=coupon.code)
    if not coupon_store.is_in_window(coupon, moment):
        return _reject("out_of_window", "Coupon expired or not started", code=coupon.code)

    record = await redemptions.get_record(session, user_id, coupon.id)
    if record is None:
        return _reject("not_collected", "You have not collected this coupon", code=coupon.code)
    if record.status == RedemptionStatus.used:
        return _reject("already_used", "Coupon already used", code=coupon.code)
    if record.status == RedemptionStatus.expired:
        return _reject("expired_collection", "Collected coupon has expired", code=coupon.code)

    if coupon.max_uses_per_user is not None and coupon.max_uses_per_user > 0:
        used = await redemptions.count_used(session, user_id, coupon.id)
        if used >= coupon.max_uses_per_user:
            return _reject("per_user_limit", "Coupon limit reached for this user", code=coupon.code)
    if not coupon_store.has_global_capacity(coupon):
        return _reject("usage_limit", "Coupon usage limit reached", code=coupon.code)

    subtotal_minor = cart.subtotal_minor
    if coupon.min_order_minor is not None and subtotal_minor < coupon.min_order_minor:
        return _reject(
            "min_order",
            f"Minimum order is {money.format_minor(coupon.min_order_minor)}",
            code=coupon.code,
            min_order_minor=int(coupon.min_order_minor),
            shortfall_minor=int(coupon.min_order_minor) - subtotal_minor,
        )

    eligible_minor = eligible_subtotal_minor(
        cart, scope=coupon.scope, eligible=coupon_store.eligible_ids(coupon)
    )
    if eligible_minor <= 0 and coupon.discount_type != CouponType.free_shipping:
        return _reject("not_applicable", "Coupon not applicable to selected items", code=coupon.code)

    discount_minor = compute_discount_minor(
        coupon.discount_type,
        value=int(coupon.value or 0),
        eligible_minor=eligible_minor,
        subtotal_minor=subtotal_minor,
        shipping_minor=shipping_minor,
        cap_minor=coupon.max_discount_cap_minor,
    )
    return DiscountQuote(
        coupon=coupon,
        redemption_id=record.id,
        eligible_subtotal_minor=eligible_minor,
        discount_minor=discount_minor,
    )


async def price_cart(
    session: AsyncSession,
    user_id: UUID,
    code: str | None,
    cart: CartSnapshot,
    shipping_minor: int,
    *,
    now: datetime | None = None,
) -> CartPricing:
    """Totals for a cart preview; raises the rejection as a ``ValidationError``."""
    subtotal_minor = cart.subtotal_minor
    shipping_minor = max(0, int(shipping_minor))
    if not coupon_store.normalize_code(code):
        return CartPricing(
            subtotal_minor=subtotal_minor,
            shipping_minor=shipping_minor,
            discount_minor=0,
            total_minor=subtotal_minor + shipping_minor,
        )

    outcome = await validate_and_price(session, user_id, code or "", cart, shipping_minor, now=now)
    if isinstance(outcome, CouponRejection):
        raise outcome.to_error()
    return CartPricing(
        subtotal_minor=subtotal_minor,
        shipping_minor=shipping_minor,
        discount_minor=outcome.discount_minor,
        total_minor=subtotal_minor + shipping_minor - outcome.discount_minor,
        applied=outcome.applied,
        redemption_id=outcome.redemption_id,
    )
