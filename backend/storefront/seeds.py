from __future__ import annotations

from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.models.catalog import Category, Product, ProductStatus
from storefront.models.discount import Coupon, CouponScope, CouponStatus, CouponTarget, CouponTargetType, CouponType
from storefront.models.user import User, UserRole

DEMO_CATEGORIES: list[dict[str, str]] = [
    {"slug": "shirts", "name": "Shirts"},
    {"slug": "accessories", "name": "Accessories"},
]

DEMO_PRODUCTS: list[dict[str, Any]] = [
    {"slug": "linen-shirt", "name": "Linen Shirt", "category": "shirts", "price": "2500.00", "stock": 25},
    {"slug": "denim-shirt", "name": "Denim Shirt", "category": "shirts", "price": "3200.00", "stock": 12},
    {"slug": "leather-belt", "name": "Leather Belt", "category": "accessories", "price": "900.00", "stock": 40},
]

DEMO_COUPONS: list[dict[str, Any]] = [
    {
        "code": "WELCOME10",
        "title": "10% off your order",
        "discount_type": CouponType.percent,
        "scope": CouponScope.all,
        "value": 10,
        "max_discount_cap_minor": 50_000,
    },
    {
        "code": "SHIRTS200",
        "title": "Rs. 200 off shirts",
        "discount_type": CouponType.flat,
        "scope": CouponScope.category,
        "value": 20_000,
        "min_order_minor": 100_000,
        "category": "shirts",
    },
    {
        "code": "FREESHIP",
        "title": "Free shipping",
        "discount_type": CouponType.free_shipping,
        "scope": CouponScope.all,
        "value": 0,
        "global_usage_limit": 100,
    },
]


async def _seed_categories(session: AsyncSession) -> dict[str, Category]:
    by_slug: dict[str, Category] = {}
    for row in DEMO_CATEGORIES:
        category = await session.scalar(select(Category).where(Category.slug == row["slug"]))
        if category is None:
            category = Category(slug=row["slug"], name=row["name"])
            session.add(category)
        by_slug[row["slug"]] = category
    await session.flush()
    return by_slug


async def _seed_products(session: AsyncSession, categories: dict[str, Category]) -> None:
    for row in DEMO_PRODUCTS:
        existing = await session.scalar(select(Product).where(Product.slug == row["slug"]))
        if existing is not None:
            continue
        session.add(
            Product(
                slug=row["slug"],
                name=row["name"],
                category_id=categories[row["category"]].id,
                price=Decimal(row["price"]),
                stock=row["stock"],
                status=ProductStatus.active,
            )
        )


async def _seed_coupons(session: AsyncSession, categories: dict[str, Category]) -> None:
    for row in DEMO_COUPONS:
        existing = await session.scalar(select(Coupon).where(Coupon.code == row["code"]))
        if existing is not None:
            continue
        data = {key: value for key, value in row.items() if key != "category"}
        coupon = Coupon(status=CouponStatus.active, **data)
        if "category" in row:
            coupon.targets.append(
                CouponTarget(entity_type=CouponTargetType.category, entity_id=categories[row["category"]].id)
            )
        session.add(coupon)


async def _seed_users(session: AsyncSession) -> None:
    for email, name, role in (
        ("customer@example.com", "Demo Customer", UserRole.customer),
        ("admin@example.com", "Demo Admin", UserRole.admin),
    ):
        existing = await session.scalar(select(User).where(User.email == email))
        if existing is None:
            session.add(User(email=email, name=name, role=role))


async def seed(session: AsyncSession) -> None:
    categories = await _seed_categories(session)
    await _seed_products(session, categories)
    await _seed_coupons(session, categories)
    await _seed_users(session)
    await session.commit()
