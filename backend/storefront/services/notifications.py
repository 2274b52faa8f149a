from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from storefront.db.session import engine as default_engine
from storefront.models.order import Order

logger = logging.getLogger(__name__)


async def notify_order_settled(order_id: UUID, bind: AsyncEngine | None = None) -> bool:
    """Hand a freshly settled order to the invoicing side. Runs after the response is sent."""
    try:
        async with AsyncSession(bind or default_engine, expire_on_commit=False) as session:
            order = await session.get(Order, order_id)
    except SQLAlchemyError as exc:
        logger.warning("order_notification_failed", extra={"order_id": str(order_id), "error": str(exc)})
        return False
    if order is None:
        logger.warning("order_notification_missing", extra={"order_id": str(order_id)})
        return False
    logger.info(
        "order_notification_queued",
        extra={
            "order_id": str(order.id),
            "order_code": order.order_code,
            "total_minor": order.total_minor,
            "currency": order.currency,
        },
    )
    return True
