import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from storefront.core import metrics
from storefront.core.errors import ConflictError, NotFoundError, ValidationError
from storefront.models import Base, Coupon, CouponStatus, CouponType, Order, RedemptionRecord, RedemptionStatus, User
from storefront.services import coupon_store, redemptions


async def _session_factory() -> async_sessionmaker:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


async def _user(session: AsyncSession, email: str = "buyer@example.com") -> User:
    user = User(email=email, name="Buyer")
    session.add(user)
    await session.commit()
    return user


async def _coupon(session: AsyncSession, code: str, **fields) -> Coupon:
    coupon = Coupon(code=code, title=code, discount_type=CouponType.flat, value=10_000, **fields)
    session.add(coupon)
    await session.commit()
    return coupon


async def _order(session: AsyncSession, user: User) -> Order:
    order = Order(order_code=f"#{uuid.uuid4().int % 900000 + 100000}", user_id=user.id)
    session.add(order)
    await session.commit()
    return order


@pytest.mark.anyio("asyncio")
async def test_collect_creates_record_once() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        user = await _user(session)
        await _coupon(session, "WELCOME")
        user_id = user.id

        record = await redemptions.collect(session, user_id, "welcome")
        assert record.status == RedemptionStatus.collected
        assert record.coupon.code == "WELCOME"
        assert record.used_at is None

        with pytest.raises(ConflictError) as excinfo:
            await redemptions.collect(session, user_id, "WELCOME")
        assert excinfo.value.message == "Coupon already collected"

        rows = (await session.execute(select(RedemptionRecord).where(RedemptionRecord.user_id == user_id))).scalars().all()
        assert len(rows) == 1
        assert metrics.snapshot()["coupons_collected"] == 1


@pytest.mark.anyio("asyncio")
async def test_collect_rejects_unknown_inactive_and_out_of_window() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        user = await _user(session)
        now = datetime.now(timezone.utc)
        await _coupon(session, "PAUSED", status=CouponStatus.paused)
        await _coupon(session, "SOON", starts_at=now + timedelta(days=2))
        await _coupon(session, "OVER", ends_at=now - timedelta(days=2))

        with pytest.raises(NotFoundError):
            await redemptions.collect(session, user.id, "MISSING")
        with pytest.raises(ValidationError) as inactive:
            await redemptions.collect(session, user.id, "PAUSED")
        assert inactive.value.message == "Coupon is not active"
        for code in ("SOON", "OVER"):
            with pytest.raises(ValidationError) as window:
                await redemptions.collect(session, user.id, code)
            assert window.value.message == "Coupon expired or not started"


@pytest.mark.anyio("asyncio")
async def test_collect_all_skips_held_and_unavailable_coupons() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        user = await _user(session)
        await _coupon(session, "ONE")
        await _coupon(session, "TWO")
        await _coupon(session, "THREE", global_usage_limit=2, used_count=2)
        await _coupon(session, "FOUR", status=CouponStatus.paused)
        await redemptions.collect(session, user.id, "ONE")

        summary = await redemptions.collect_all(session, user.id)
        assert (summary.collected_now, summary.already_had, summary.total_available) == (1, 1, 2)

        again = await redemptions.collect_all(session, user.id)
        assert (again.collected_now, again.already_had) == (0, 2)

        collected = await redemptions.list_collected(session, user.id)
        assert sorted(record.coupon.code for record in collected) == ["ONE", "TWO"]


@pytest.mark.anyio("asyncio")
async def test_list_available_filters_status_window_and_capacity() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        now = datetime.now(timezone.utc)
        await _coupon(session, "OPEN")
        await _coupon(session, "ROOM", global_usage_limit=3, used_count=2)
        await _coupon(session, "FULL", global_usage_limit=3, used_count=3)
        await _coupon(session, "ZERO", global_usage_limit=0)
        await _coupon(session, "PAUSED", status=CouponStatus.paused)
        await _coupon(session, "EARLY", starts_at=now + timedelta(hours=1))
        await _coupon(session, "LATE", ends_at=now - timedelta(hours=1))

        available = await coupon_store.list_available(session, now=now)
        assert sorted(coupon.code for coupon in available) == ["OPEN", "ROOM", "ZERO"]


@pytest.mark.anyio("asyncio")
async def test_mark_used_transitions_exactly_once() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        user = await _user(session)
        coupon = await _coupon(session, "ONCE")
        record = await redemptions.collect(session, user.id, "ONCE")
        order = await _order(session, user)
        user_id, coupon_id, record_id, order_id = user.id, coupon.id, record.id, order.id

        await redemptions.mark_used(session, record_id, order_id)
        await session.commit()

        with pytest.raises(ConflictError) as excinfo:
            await redemptions.mark_used(session, record_id, order_id)
        assert excinfo.value.message == "Coupon already used"
        await session.rollback()

        stored = await redemptions.get_record(session, user_id, coupon_id)
        assert stored.status == RedemptionStatus.used
        assert stored.order_id == order_id
        assert stored.used_at is not None
        assert await redemptions.count_used(session, user_id, coupon_id) == 1


@pytest.mark.anyio("asyncio")
async def test_consume_global_capacity_never_exceeds_limit() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        coupon = await _coupon(session, "TWICE", global_usage_limit=2)
        coupon_id = coupon.id

        await redemptions.consume_global_capacity(session, coupon_id)
        await redemptions.consume_global_capacity(session, coupon_id)
        await session.commit()
        with pytest.raises(ValidationError) as excinfo:
            await redemptions.consume_global_capacity(session, coupon_id)
        assert excinfo.value.message == "Coupon usage limit reached"
        await session.rollback()

    async with SessionLocal() as session:
        stored = await session.get(Coupon, coupon_id)
        assert stored.used_count == 2


@pytest.mark.anyio("asyncio")
async def test_consume_global_capacity_without_limit_keeps_counting() -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        unset = await _coupon(session, "OPEN")
        zero = await _coupon(session, "ZERO", global_usage_limit=0)
        for _ in range(5):
            await redemptions.consume_global_capacity(session, unset.id)
            await redemptions.consume_global_capacity(session, zero.id)
        await session.commit()

    async with SessionLocal() as session:
        assert (await session.get(Coupon, unset.id)).used_count == 5
        assert (await session.get(Coupon, zero.id)).used_count == 5


@pytest.mark.anyio("asyncio")
async def test_collect_all_reports_conflict_when_inserts_keep_colliding(monkeypatch: pytest.MonkeyPatch) -> None:
    SessionLocal = await _session_factory()
    async with SessionLocal() as session:
        user = await _user(session)
        await _coupon(session, "ONE")
        user_id = user.id
        await redemptions.collect(session, user_id, "ONE")

        async def nothing_held(_session, _user_id):
            return set()

        monkeypatch.setattr(redemptions, "_held_coupon_ids", nothing_held)
        with pytest.raises(ConflictError) as excinfo:
            await redemptions.collect_all(session, user_id)
        assert excinfo.value.code == "already_collected"

        rows = (await session.execute(select(RedemptionRecord).where(RedemptionRecord.user_id == user_id))).scalars().all()
        assert len(rows) == 1
