from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.dependencies import get_current_user, require_admin
from storefront.core.errors import NotFoundError
from storefront.db.session import get_session
from storefront.models.user import User
from storefront.schemas.order import OrderCreate, OrderRead, OrderStatusUpdate, OrderSummary, OrderTracking
from storefront.services import notifications
from storefront.services import order as order_service

router = APIRouter(prefix="/orders", tags=["orders"])


@router.post("", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
async def create_order(
    payload: OrderCreate,
    response: Response,
    background_tasks: BackgroundTasks,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    result = await order_service.settle_order(session, current_user.id, payload)
    if result.created:
        background_tasks.add_task(notifications.notify_order_settled, result.order.id, session.bind)
    else:
        response.status_code = status.HTTP_200_OK
    return result.order


@router.get("/my", response_model=list[OrderSummary])
async def my_orders(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await order_service.list_orders_for_user(session, current_user.id)


@router.get("/my/{id_or_code}", response_model=OrderRead)
async def my_order_detail(
    id_or_code: str,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    return await order_service.get_order_for_user(session, current_user.id, id_or_code)


@router.get("/track/{code}", response_model=OrderTracking)
async def track_order(code: str, session: AsyncSession = Depends(get_session)):
    return await order_service.track_order(session, code)


@router.patch("/{order_id}/status", response_model=OrderRead)
async def update_order_status(
    order_id: UUID,
    payload: OrderStatusUpdate,
    session: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    order = await order_service.get_order_by_id(session, order_id)
    if order is None:
        raise NotFoundError("Order not found", code="order_not_found")
    return await order_service.update_order_status(
        session, order, order_status=payload.order_status, payment_status=payload.payment_status
    )
