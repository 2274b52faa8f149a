from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.core import metrics
from storefront.core.errors import ConflictError, NotFoundError, ValidationError
from storefront.models.discount import Coupon, CouponStatus, RedemptionRecord, RedemptionStatus
from storefront.services import coupon_store

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class CollectSummary:
    collected_now: int
    already_had: int
    total_available: int


async def collect(session: AsyncSession, user_id: UUID, code: str, *, now: datetime | None = None) -> RedemptionRecord:
    coupon = await coupon_store.get_coupon_by_code(session, code)
    if coupon is None:
        raise NotFoundError("Coupon not found", code="coupon_not_found")
    if coupon.status != CouponStatus.active:
        raise ValidationError("Coupon is not active", code="inactive")
    if not coupon_store.is_in_window(coupon, now or _now()):
        raise ValidationError("Coupon expired or not started", code="out_of_window")

    record = RedemptionRecord(user_id=user_id, coupon_id=coupon.id, status=RedemptionStatus.collected)
    session.add(record)
    try:
        await session.commit()
    except IntegrityError as exc:
        await session.rollback()
        raise ConflictError("Coupon already collected", code="already_collected") from exc

    await session.refresh(record, attribute_names=["coupon", "collected_at"])
    metrics.record_coupon_collected()
    logger.info("coupon_collected", extra={"user_id": str(user_id), "coupon_code": coupon.code})
    return record


async def _held_coupon_ids(session: AsyncSession, user_id: UUID) -> set[UUID]:
    rows = await session.execute(select(RedemptionRecord.coupon_id).where(RedemptionRecord.user_id == user_id))
    return set(rows.scalars().all())


async def collect_all(session: AsyncSession, user_id: UUID, *, now: datetime | None = None) -> CollectSummary:
    """Collect every currently available coupon the user does not hold yet."""
    available = {coupon.id: coupon.code for coupon in await coupon_store.list_available(session, now=now)}
    # A concurrent collect can win the unique index between the read and the insert; re-read once.
    for attempt in range(2):
        held = await _held_coupon_ids(session, user_id)
        missing = [coupon_id for coupon_id in available if coupon_id not in held]
        for coupon_id in missing:
            session.add(RedemptionRecord(user_id=user_id, coupon_id=coupon_id, status=RedemptionStatus.collected))
        try:
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            if attempt:
                raise ConflictError("Coupon already collected", code="already_collected") from exc
            continue
        break

    for _ in missing:
        metrics.record_coupon_collected()
    if missing:
        logger.info(
            "coupon_collected",
            extra={"user_id": str(user_id), "coupon_codes": [available[coupon_id] for coupon_id in missing]},
        )
    return CollectSummary(
        collected_now=len(missing),
        already_had=len(available) - len(missing),
        total_available=len(available),
    )


async def list_collected(session: AsyncSession, user_id: UUID) -> list[RedemptionRecord]:
    result = await session.execute(
        select(RedemptionRecord)
        .options(selectinload(RedemptionRecord.coupon).selectinload(Coupon.targets))
        .where(
            RedemptionRecord.user_id == user_id,
            RedemptionRecord.status.in_([RedemptionStatus.collected, RedemptionStatus.used]),
        )
        .order_by(RedemptionRecord.collected_at.desc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def get_record(session: AsyncSession, user_id: UUID, coupon_id: UUID) -> RedemptionRecord | None:
    result = await session.execute(
        select(RedemptionRecord)
        .where(RedemptionRecord.user_id == user_id, RedemptionRecord.coupon_id == coupon_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def count_used(session: AsyncSession, user_id: UUID, coupon_id: UUID) -> int:
    total = await session.scalar(
        select(func.count())
        .select_from(RedemptionRecord)
        .where(
            RedemptionRecord.user_id == user_id,
            RedemptionRecord.coupon_id == coupon_id,
            RedemptionRecord.status == RedemptionStatus.used,
        )
    )
    return int(total or 0)


async def mark_used(session: AsyncSession, record_id: UUID, order_id: UUID, *, now: datetime | None = None) -> None:
    """Move a record from COLLECTED to USED. Does not commit; settlement owns the transaction."""
    result = await session.execute(
        update(RedemptionRecord)
        .where(RedemptionRecord.id == record_id, RedemptionRecord.status == RedemptionStatus.collected)
        .values(status=RedemptionStatus.used, used_at=now or _now(), order_id=order_id)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConflictError("Coupon already used", code="already_used")


async def consume_global_capacity(session: AsyncSession, coupon_id: UUID) -> None:
    result = await session.execute(
        update(Coupon)
        .where(
            Coupon.id == coupon_id,
            or_(
                Coupon.global_usage_limit.is_(None),
                Coupon.global_usage_limit <= 0,
                Coupon.used_count < Coupon.global_usage_limit,
            ),
        )
        .values(used_count=Coupon.used_count + 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError("Coupon usage limit reached", code="usage_limit")
