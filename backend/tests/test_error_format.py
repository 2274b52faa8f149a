import asyncio
import json
import logging

import pytest
from fastapi import APIRouter
from fastapi.testclient import TestClient
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from storefront.core.errors import ConflictError, InternalError
from storefront.core.logging_config import JsonFormatter, request_id_ctx_var
from storefront.db.base import Base
from storefront.db.session import get_session
from storefront.main import app

probe = APIRouter()


@probe.get("/__probe/conflict")
async def _conflict():
    raise ConflictError("Order code exhausted", code="order_code_exhausted", context={"attempts": 3})


@probe.get("/__probe/internal")
async def _internal():
    raise InternalError("stock ledger out of sync")


@probe.get("/__probe/database")
async def _database():
    raise OperationalError("SELECT 1", {}, Exception("connection refused"))


app.include_router(probe)


@pytest.fixture
def client() -> TestClient:
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", future=True)
    SessionLocal = async_sessionmaker(engine, expire_on_commit=False)

    async def init_models() -> None:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(init_models())

    async def override_get_session():
        async with SessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    test_client = TestClient(app)
    yield test_client
    test_client.close()
    app.dependency_overrides.clear()


def test_healthcheck(client: TestClient) -> None:
    response = client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_request_id_is_generated_or_echoed(client: TestClient) -> None:
    generated = client.get("/api/v1/health")
    assert generated.headers.get("X-Request-ID")

    echoed = client.get("/api/v1/health", headers={"X-Request-ID": "checkout-retry-7"})
    assert echoed.headers["X-Request-ID"] == "checkout-retry-7"


def test_domain_error_keeps_message_code_and_context(client: TestClient) -> None:
    response = client.get("/__probe/conflict")
    assert response.status_code == 409
    assert response.json() == {
        "detail": "Order code exhausted",
        "code": "order_code_exhausted",
        "context": {"attempts": 3},
    }


def test_internal_and_database_errors_are_generic(client: TestClient) -> None:
    internal = client.get("/__probe/internal")
    assert internal.status_code == 500
    assert internal.json()["code"] == "internal_error"
    assert "ledger" not in internal.json()["detail"]

    database = client.get("/__probe/database")
    assert database.status_code == 500
    assert database.json()["code"] == "internal_error"
    assert "connection refused" not in database.text


def test_http_errors_use_error_response(client: TestClient) -> None:
    response = client.get("/api/v1/discounts/my-collected")
    assert response.status_code == 401
    assert response.json() == {"detail": "Not authenticated", "code": None, "context": None}


def test_json_formatter_keeps_extra_fields() -> None:
    record = logging.LogRecord("storefront.services.order", logging.INFO, __file__, 1, "order_settled", None, None)
    record.order_code = "#123456"
    record.total_minor = 350_000
    token = request_id_ctx_var.set("req-1")
    try:
        record.request_id = request_id_ctx_var.get()
        payload = json.loads(JsonFormatter().format(record))
    finally:
        request_id_ctx_var.reset(token)

    assert payload["message"] == "order_settled"
    assert payload["order_code"] == "#123456"
    assert payload["total_minor"] == 350_000
    assert payload["request_id"] == "req-1"
