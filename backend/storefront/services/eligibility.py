from __future__ import annotations

from collections.abc import Collection
from uuid import UUID

from storefront.models.discount import CouponScope
from storefront.services.catalog import CartSnapshot


def eligible_subtotal_minor(cart: CartSnapshot, *, scope: CouponScope, eligible: Collection[UUID]) -> int:
    """Portion of the cart a coupon's percentage or flat amount is computed against."""
    if scope == CouponScope.all:
        return cart.subtotal_minor

    total = 0
    for line in cart.lines:
        product = cart.product(line.product_id)
        key = product.id if scope == CouponScope.product else product.category_id
        if key in eligible:
            total += cart.line_total_minor(line)
    return total
