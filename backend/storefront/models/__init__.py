from storefront.db.base import Base  # noqa: F401
from storefront.models.user import User, UserRole  # noqa: F401
from storefront.models.catalog import Category, Product, ProductStatus  # noqa: F401
from storefront.models.address import Address  # noqa: F401
from storefront.models.order import Order, OrderEvent, OrderItem, OrderStatus, PaymentMethod, PaymentStatus  # noqa: F401
from storefront.models.discount import (  # noqa: F401
    Coupon,
    CouponScope,
    CouponStatus,
    CouponTarget,
    CouponTargetType,
    CouponType,
    RedemptionRecord,
    RedemptionStatus,
)

__all__ = [
    "Base",
    "User",
    "UserRole",
    "Category",
    "Product",
    "ProductStatus",
    "Address",
    "Order",
    "OrderEvent",
    "OrderItem",
    "OrderStatus",
    "PaymentMethod",
    "PaymentStatus",
    "Coupon",
    "CouponScope",
    "CouponStatus",
    "CouponTarget",
    "CouponTargetType",
    "CouponType",
    "RedemptionRecord",
    "RedemptionStatus",
]
