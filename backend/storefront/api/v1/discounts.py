from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.config import settings
from storefront.core.dependencies import get_current_user
from storefront.db.session import get_session
from storefront.models.discount import Coupon, RedemptionRecord
from storefront.models.user import User
from storefront.schemas.discount import (
    CollectAllResult,
    CouponRead,
    DiscountValidateRequest,
    DiscountValidateResponse,
    RedemptionRead,
)
from storefront.services import catalog, coupon_store, discounts, redemptions
from storefront.services.catalog import CartLine

router = APIRouter(prefix="/discounts", tags=["discounts"])


def _to_coupon_read(coupon: Coupon) -> CouponRead:
    read = CouponRead.model_validate(coupon)
    return read.model_copy(update={"eligible_ids": sorted(coupon_store.eligible_ids(coupon), key=str)})


def _to_redemption_read(record: RedemptionRecord) -> RedemptionRead:
    read = RedemptionRead.model_validate(record)
    coupon = record.coupon
    return read.model_copy(update={"coupon": _to_coupon_read(coupon) if coupon is not None else None})


@router.get("/available", response_model=list[CouponRead])
async def list_available_coupons(session: AsyncSession = Depends(get_session)) -> list[CouponRead]:
    coupons = await coupon_store.list_available(session)
    return [_to_coupon_read(coupon) for coupon in coupons]


@router.post("/collect-all", response_model=CollectAllResult)
async def collect_all_coupons(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> CollectAllResult:
    summary = await redemptions.collect_all(session, current_user.id)
    return CollectAllResult(
        collected_now=summary.collected_now,
        already_had=summary.already_had,
        total_available=summary.total_available,
    )


@router.post("/collect/{code}", response_model=RedemptionRead, status_code=status.HTTP_201_CREATED)
async def collect_coupon(
    code: str,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> RedemptionRead:
    record = await redemptions.collect(session, current_user.id, code)
    return _to_redemption_read(record)


@router.get("/my-collected", response_model=list[RedemptionRead])
async def my_collected_coupons(
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> list[RedemptionRead]:
    records = await redemptions.list_collected(session, current_user.id)
    return [_to_redemption_read(record) for record in records]


@router.post("/validate", response_model=DiscountValidateResponse)
async def validate_discount(
    payload: DiscountValidateRequest,
    session: AsyncSession = Depends(get_session),
    current_user: User = Depends(get_current_user),
) -> DiscountValidateResponse:
    cart = await catalog.resolve_cart(
        session, [CartLine(product_id=item.product_id, qty=item.qty, size=item.size) for item in payload.items]
    )
    shipping_minor = payload.shipping_minor if payload.shipping_minor is not None else settings.default_shipping_minor
    pricing = await discounts.price_cart(session, current_user.id, payload.coupon_code, cart, shipping_minor)
    return DiscountValidateResponse(
        subtotal_minor=pricing.subtotal_minor,
        shipping_minor=pricing.shipping_minor,
        discount_minor=pricing.discount_minor,
        total_minor=pricing.total_minor,
        applied=pricing.applied,
        redemption_id=pricing.redemption_id,
    )
