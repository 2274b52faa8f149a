import asyncio
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import UUID

from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from storefront.core.security import create_access_token
from storefront.db.session import get_session
from storefront.main import app
from storefront.models import (
    Base,
    Category,
    Coupon,
    CouponScope,
    CouponStatus,
    CouponTarget,
    CouponTargetType,
    CouponType,
    Product,
    RedemptionRecord,
    RedemptionStatus,
    User,
)


def auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def make_test_client() -> tuple[TestClient, async_sessionmaker]:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    return TestClient(app), SessionLocal


def create_user_token(session_factory: async_sessionmaker, *, email: str) -> tuple[str, UUID]:
    async def _create() -> UUID:
        async with session_factory() as session:
            user = User(email=email, name="Shopper")
            session.add(user)
            await session.commit()
            return user.id

    user_id = asyncio.run(_create())
    return create_access_token(str(user_id)), user_id


def seed_catalog(session_factory: async_sessionmaker) -> dict[str, str]:
    async def _seed() -> dict[str, str]:
        async with session_factory() as session:
            shirts = Category(slug="shirts", name="Shirts")
            belts = Category(slug="belts", name="Belts")
            shirt = Product(category=shirts, slug="shirt", name="Shirt", price=Decimal("2500.00"), stock=10)
            belt = Product(category=belts, slug="belt", name="Belt", price=Decimal("900.00"), stock=10)
            session.add_all([shirts, belts, shirt, belt])
            await session.commit()
            return {"shirt": str(shirt.id), "belt": str(belt.id), "belts": str(belts.id)}

    return asyncio.run(_seed())


def seed_coupon(session_factory: async_sessionmaker, *, code: str, **fields) -> str:
    async def _seed() -> str:
        async with session_factory() as session:
            targets = fields.pop("targets", [])
            data = {"title": code, "discount_type": CouponType.percent, "value": 10}
            data.update(fields)
            coupon = Coupon(code=code, **data)
            coupon.targets = [CouponTarget(entity_type=kind, entity_id=UUID(entity_id)) for kind, entity_id in targets]
            session.add(coupon)
            await session.commit()
            return str(coupon.id)

    return asyncio.run(_seed())


def test_available_lists_only_open_coupons() -> None:
    client, SessionLocal = make_test_client()
    try:
        ids = seed_catalog(SessionLocal)
        seed_coupon(SessionLocal, code="OPEN10")
        seed_coupon(
            SessionLocal,
            code="BELTS",
            discount_type=CouponType.flat,
            value=5_000,
            scope=CouponScope.category,
            targets=[(CouponTargetType.category, ids["belts"])],
        )
        seed_coupon(SessionLocal, code="PAUSED", status=CouponStatus.paused)
        seed_coupon(SessionLocal, code="FULL", global_usage_limit=1, used_count=1)
        seed_coupon(SessionLocal, code="FUTURE", starts_at=datetime.now(timezone.utc) + timedelta(days=1))

        res = client.get("/api/v1/discounts/available")
        assert res.status_code == 200, res.text
        body = {row["code"]: row for row in res.json()}
        assert set(body) == {"OPEN10", "BELTS"}
        assert body["BELTS"]["eligible_ids"] == [ids["belts"]]
        assert body["OPEN10"]["discount_type"] == "PERCENT"
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_collect_then_duplicate_collect_conflicts() -> None:
    client, SessionLocal = make_test_client()
    try:
        token, _ = create_user_token(SessionLocal, email="collector@example.com")
        seed_coupon(SessionLocal, code="WELCOME")

        first = client.post("/api/v1/discounts/collect/welcome", headers=auth_headers(token))
        assert first.status_code == 201, first.text
        assert first.json()["status"] == "COLLECTED"
        assert first.json()["coupon"]["code"] == "WELCOME"

        again = client.post("/api/v1/discounts/collect/WELCOME", headers=auth_headers(token))
        assert again.status_code == 409
        assert again.json() == {"detail": "Coupon already collected", "code": "already_collected", "context": None}

        missing = client.post("/api/v1/discounts/collect/NOPE", headers=auth_headers(token))
        assert missing.status_code == 404

        mine = client.get("/api/v1/discounts/my-collected", headers=auth_headers(token))
        assert mine.status_code == 200
        assert [row["coupon"]["code"] for row in mine.json()] == ["WELCOME"]
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_collect_requires_authentication() -> None:
    client, SessionLocal = make_test_client()
    try:
        seed_coupon(SessionLocal, code="WELCOME")
        res = client.post("/api/v1/discounts/collect/WELCOME")
        assert res.status_code == 401
        bad = client.post("/api/v1/discounts/collect/WELCOME", headers=auth_headers("not-a-token"))
        assert bad.status_code == 401
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_collect_all_reports_summary() -> None:
    client, SessionLocal = make_test_client()
    try:
        token, _ = create_user_token(SessionLocal, email="all@example.com")
        seed_coupon(SessionLocal, code="A")
        seed_coupon(SessionLocal, code="B")
        assert client.post("/api/v1/discounts/collect/A", headers=auth_headers(token)).status_code == 201

        res = client.post("/api/v1/discounts/collect-all", headers=auth_headers(token))
        assert res.status_code == 200
        assert res.json() == {"collected_now": 1, "already_had": 1, "total_available": 2}
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_validate_prices_cart_with_collected_coupon() -> None:
    client, SessionLocal = make_test_client()
    try:
        ids = seed_catalog(SessionLocal)
        token, _ = create_user_token(SessionLocal, email="validate@example.com")
        seed_coupon(SessionLocal, code="TENOFF", value=10, max_discount_cap_minor=50_000)
        assert client.post("/api/v1/discounts/collect/TENOFF", headers=auth_headers(token)).status_code == 201

        res = client.post(
            "/api/v1/discounts/validate",
            json={"couponCode": "tenoff", "items": [{"productId": ids["shirt"], "qty": 4}], "shippingMinor": 12_000},
            headers=auth_headers(token),
        )
        assert res.status_code == 200, res.text
        body = res.json()
        assert body["subtotal_minor"] == 1_000_000
        assert body["shipping_minor"] == 12_000
        assert body["discount_minor"] == 50_000
        assert body["total_minor"] == 962_000
        assert body["applied"]["code"] == "TENOFF"
        assert body["redemption_id"]

        async def _used_count() -> tuple[int, RedemptionStatus]:
            async with SessionLocal() as session:
                coupon = (await session.execute(select(Coupon).where(Coupon.code == "TENOFF"))).scalar_one()
                record = (await session.execute(select(RedemptionRecord))).scalar_one()
                return coupon.used_count, record.status

        assert asyncio.run(_used_count()) == (0, RedemptionStatus.collected)
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_validate_reports_specific_reason() -> None:
    client, SessionLocal = make_test_client()
    try:
        ids = seed_catalog(SessionLocal)
        token, _ = create_user_token(SessionLocal, email="reasons@example.com")
        seed_coupon(SessionLocal, code="MIN1000", discount_type=CouponType.flat, value=10_000, min_order_minor=100_000)
        seed_coupon(SessionLocal, code="NOTMINE")
        client.post("/api/v1/discounts/collect/MIN1000", headers=auth_headers(token))

        short = client.post(
            "/api/v1/discounts/validate",
            json={"couponCode": "MIN1000", "items": [{"productId": ids["belt"], "qty": 1}]},
            headers=auth_headers(token),
        )
        assert short.status_code == 400
        assert short.json()["code"] == "min_order"
        assert short.json()["detail"] == "Minimum order is Rs. 1,000.00"
        assert short.json()["context"]["shortfall_minor"] == 10_000

        uncollected = client.post(
            "/api/v1/discounts/validate",
            json={"couponCode": "NOTMINE", "items": [{"productId": ids["belt"], "qty": 1}]},
            headers=auth_headers(token),
        )
        assert uncollected.status_code == 400
        assert uncollected.json()["detail"] == "You have not collected this coupon"

        unknown_product = client.post(
            "/api/v1/discounts/validate",
            json={"couponCode": "", "items": [{"productId": "00000000-0000-0000-0000-000000000001", "qty": 1}]},
            headers=auth_headers(token),
        )
        assert unknown_product.status_code == 404
        assert unknown_product.json()["code"] == "product_not_found"
    finally:
        client.close()
        app.dependency_overrides.clear()


def test_validate_rejects_malformed_body() -> None:
    client, SessionLocal = make_test_client()
    try:
        ids = seed_catalog(SessionLocal)
        token, _ = create_user_token(SessionLocal, email="malformed@example.com")

        res = client.post(
            "/api/v1/discounts/validate",
            json={"items": [{"productId": ids["shirt"], "qty": 0}], "discountMinor": 100},
            headers=auth_headers(token),
        )
        assert res.status_code == 422
        assert res.json()["code"] == "validation_error"
    finally:
        client.close()
        app.dependency_overrides.clear()
