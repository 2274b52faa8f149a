from fastapi import APIRouter

from storefront.api.v1 import discounts
from storefront.api.v1 import orders
from storefront.core.metrics import snapshot as metrics_snapshot

api_router = APIRouter()

api_router.include_router(discounts.router)
api_router.include_router(orders.router)


@api_router.get("/health", tags=["health"])
def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@api_router.get("/metrics", tags=["metrics"])
def metrics() -> dict:
    return metrics_snapshot()
