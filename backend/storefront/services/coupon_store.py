from __future__ import annotations

from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.models.discount import Coupon, CouponScope, CouponStatus, CouponTargetType


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_in_window(coupon: Coupon, now: datetime) -> bool:
    if coupon.starts_at is not None and _aware(now) < _aware(coupon.starts_at):
        return False
    if coupon.ends_at is not None and _aware(now) > _aware(coupon.ends_at):
        return False
    return True


def has_global_capacity(coupon: Coupon) -> bool:
    """A missing or non-positive limit means the coupon is unlimited."""
    if coupon.global_usage_limit is None or coupon.global_usage_limit <= 0:
        return True
    return int(coupon.used_count or 0) < int(coupon.global_usage_limit)


def eligible_ids(coupon: Coupon) -> frozenset[UUID]:
    """Target ids that count for the coupon's scope; empty for ALL."""
    if coupon.scope == CouponScope.product:
        wanted = CouponTargetType.product
    elif coupon.scope == CouponScope.category:
        wanted = CouponTargetType.category
    else:
        return frozenset()
    return frozenset(target.entity_id for target in coupon.targets if target.entity_type == wanted)


async def get_coupon_by_code(session: AsyncSession, code: str | None) -> Coupon | None:
    cleaned = normalize_code(code)
    if not cleaned:
        return None
    result = await session.execute(
        select(Coupon)
        .options(selectinload(Coupon.targets))
        .where(Coupon.code == cleaned)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def list_available(session: AsyncSession, *, now: datetime | None = None) -> list[Coupon]:
    """Active, in-window coupons that still have global capacity, newest first."""
    moment = now or _now()
    result = await session.execute(
        select(Coupon)
        .options(selectinload(Coupon.targets))
        .where(
            Coupon.status == CouponStatus.active,
            or_(Coupon.starts_at.is_(None), Coupon.starts_at <= moment),
            or_(Coupon.ends_at.is_(None), Coupon.ends_at >= moment),
            or_(
                Coupon.global_usage_limit.is_(None),
                Coupon.global_usage_limit <= 0,
                Coupon.used_count < Coupon.global_usage_limit,
            ),
        )
        .order_by(Coupon.created_at.desc(), Coupon.code)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())
