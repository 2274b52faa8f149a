from __future__ import annotations

import logging
import secrets
import time
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core import metrics
from storefront.core.config import settings
from storefront.core.errors import ConflictError, NotFoundError, StorefrontError, ValidationError
from storefront.models.address import Address
from storefront.models.catalog import Product, ProductStatus
from storefront.models.order import Order, OrderEvent, OrderItem, OrderStatus, PaymentStatus
from storefront.schemas.order import OrderCreate
from storefront.services import catalog, coupon_store, discounts, redemptions
from storefront.services.catalog import CartLine, CartSnapshot

logger = logging.getLogger(__name__)

SHIPPING_METHOD = "Standard Shipping"
# Delivery labels join dates with an en dash: "March 4\u20135, 2026" within a month,
# "January 31, 2026 \u2013 February 1, 2026" across months.
DELIVERY_RANGE_DASH = "\u2013"

ALLOWED_ORDER_TRANSITIONS: dict[OrderStatus, set[OrderStatus]] = {
    OrderStatus.pending: {OrderStatus.shipped, OrderStatus.cancelled},
    OrderStatus.shipped: {OrderStatus.delivered},
    OrderStatus.delivered: set(),
    OrderStatus.cancelled: set(),
}

ALLOWED_PAYMENT_TRANSITIONS: dict[PaymentStatus, set[PaymentStatus]] = {
    PaymentStatus.pending: {PaymentStatus.paid, PaymentStatus.failed},
    PaymentStatus.failed: {PaymentStatus.pending, PaymentStatus.paid},
    PaymentStatus.paid: set(),
}


@dataclass(frozen=True)
class SettlementResult:
    order: Order
    created: bool


@dataclass(frozen=True)
class _AppliedCoupon:
    coupon_id: UUID
    redemption_id: UUID
    code: str
    discount_minor: int
    snapshot: dict[str, Any]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_order_code(value: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        return ""
    return cleaned if cleaned.startswith("#") else f"#{cleaned}"


def estimated_delivery_range(today: date | None = None) -> str:
    """Human label for the standard shipping window, see ``DELIVERY_RANGE_DASH``."""
    base = today or _now().date()
    start = base + timedelta(days=settings.delivery_min_days)
    end = base + timedelta(days=settings.delivery_max_days)
    if (start.year, start.month) == (end.year, end.month):
        return f"{start:%B} {start.day}{DELIVERY_RANGE_DASH}{end.day}, {end.year}"
    return f"{start:%B} {start.day}, {start.year} {DELIVERY_RANGE_DASH} {end:%B} {end.day}, {end.year}"


async def _order_code_exists(session: AsyncSession, code: str) -> bool:
    result = await session.execute(select(Order.id).where(Order.order_code == code))
    return result.scalar_one_or_none() is not None


async def generate_order_code(session: AsyncSession) -> str:
    for _ in range(max(1, settings.order_code_attempts)):
        candidate = f"#{secrets.randbelow(900000) + 100000}"
        if not await _order_code_exists(session, candidate):
            return candidate
        metrics.record_order_code_collision()
    logger.warning("order_code_collision", extra={"fallback": "timestamp"})
    return f"#{str(time.time_ns() // 1_000_000)[-6:]}"


def _is_order_code_collision(exc: IntegrityError) -> bool:
    # SQLite names the column, PostgreSQL the index (ix_orders_order_code); both carry it.
    return "order_code" in str(exc.orig)


async def get_by_payment_ref(session: AsyncSession, payment_ref: str) -> Order | None:
    result = await session.execute(select(Order).where(Order.payment_ref == payment_ref))
    return result.scalar_one_or_none()


def _replay(order: Order, user_id: UUID) -> SettlementResult:
    if order.user_id != user_id:
        raise ConflictError("Payment reference already used", code="payment_ref_conflict")
    metrics.record_order_replayed()
    logger.info("order_replayed", extra={"order_code": order.order_code, "payment_ref": order.payment_ref})
    return SettlementResult(order=order, created=False)


def _ensure_purchasable(cart: CartSnapshot) -> None:
    for product_id, qty in cart.quantities().items():
        product = cart.product(product_id)
        if not product.is_active:
            raise ValidationError(f"Product is not available: {product.name}", code="product_inactive")
        if product.stock < qty:
            raise ValidationError(
                f"Insufficient stock for {product.name}",
                code="out_of_stock",
                context={"product_id": str(product_id), "available": product.stock, "requested": qty},
            )


async def _decrement_stock(session: AsyncSession, cart: CartSnapshot) -> None:
    for product_id, qty in cart.quantities().items():
        result = await session.execute(
            update(Product)
            .where(Product.id == product_id, Product.status == ProductStatus.active, Product.stock >= qty)
            .values(stock=Product.stock - qty)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise ValidationError(f"Insufficient stock for {cart.product(product_id).name}", code="out_of_stock")


async def _address_snapshot(session: AsyncSession, user_id: UUID, payload: OrderCreate) -> dict[str, Any]:
    if payload.address_id is not None:
        saved = await session.scalar(
            select(Address).where(Address.id == payload.address_id, Address.user_id == user_id)
        )
        if saved is None:
            raise NotFoundError("Address not found", code="address_not_found")
        return {
            "label": saved.label,
            "email": saved.email or "",
            "first_name": saved.first_name or "",
            "last_name": saved.last_name or "",
            "full_name": f"{saved.first_name or ''} {saved.last_name or ''}".strip(),
            "phone": saved.phone,
            "country": saved.country or "Nepal",
            "province_id": saved.province_id or "",
            "district": saved.district or "",
            "city_or_municipality": saved.city_or_municipality or "",
            "address_line": saved.address_line or "",
            "street": saved.street or "",
            "postal_code": saved.postal_code or "",
        }
    if payload.address is not None:
        inline = payload.address
        return {
            "label": inline.label,
            "full_name": inline.full_name.strip(),
            "phone": inline.phone,
            "country": "Nepal",
            "province_id": "",
            "district": "",
            "city_or_municipality": inline.city.strip(),
            "address_line": inline.area.strip(),
            "street": inline.street.strip(),
            "postal_code": "",
        }
    raise ValidationError("Shipping address is required", code="address_required")


def _build_order(
    *,
    code: str,
    user_id: UUID,
    cart: CartSnapshot,
    shipping_minor: int,
    applied: _AppliedCoupon | None,
    address: dict[str, Any],
    payload: OrderCreate,
    payment_ref: str | None,
    estimated_delivery: str,
) -> Order:
    subtotal_minor = cart.subtotal_minor
    discount_minor = applied.discount_minor if applied else 0
    order = Order(
        order_code=code,
        user_id=user_id,
        subtotal_minor=subtotal_minor,
        shipping_minor=shipping_minor,
        discount_minor=discount_minor,
        total_minor=subtotal_minor + shipping_minor - discount_minor,
        currency=settings.currency,
        coupon_snapshot=dict(applied.snapshot) if applied else None,
        address_snapshot=dict(address),
        shipping_method=SHIPPING_METHOD,
        estimated_delivery=estimated_delivery,
        payment_method=payload.payment_method,
        payment_status=PaymentStatus.pending,
        payment_ref=payment_ref,
        order_status=OrderStatus.pending,
    )
    for position, line in enumerate(cart.lines):
        product = cart.product(line.product_id)
        order.items.append(
            OrderItem(
                position=position,
                product_id=product.id,
                name=product.name,
                size=line.size,
                image=product.image,
                quantity=line.qty,
                unit_price_minor=product.price_minor,
                line_total_minor=cart.line_total_minor(line),
            )
        )
    order.events.append(OrderEvent(event="created", note=f"Order {code}"))
    if applied:
        order.events.append(OrderEvent(event="coupon_redeemed", note=applied.code))
    return order


async def settle_order(
    session: AsyncSession, user_id: UUID, payload: OrderCreate, *, now: datetime | None = None
) -> SettlementResult:
    """Create the order for a checkout, or return the stored one when ``payment_ref`` repeats.

    The order insert, coupon capacity, redemption record and stock changes
    commit together; any failure rolls all of them back.
    """
    payment_ref = (payload.payment_ref or "").strip() or None
    if payment_ref:
        existing = await get_by_payment_ref(session, payment_ref)
        if existing is not None:
            return _replay(existing, user_id)

    cart = await catalog.resolve_cart(
        session, [CartLine(product_id=item.product_id, qty=item.qty, size=item.size) for item in payload.items]
    )
    _ensure_purchasable(cart)
    shipping_minor = payload.shipping_minor if payload.shipping_minor is not None else settings.default_shipping_minor

    applied: _AppliedCoupon | None = None
    if coupon_store.normalize_code(payload.coupon_code):
        outcome = await discounts.validate_and_price(
            session, user_id, payload.coupon_code or "", cart, shipping_minor, now=now
        )
        if isinstance(outcome, discounts.CouponRejection):
            raise outcome.to_error()
        applied = _AppliedCoupon(
            coupon_id=outcome.coupon.id,
            redemption_id=outcome.redemption_id,
            code=outcome.coupon.code,
            discount_minor=outcome.discount_minor,
            snapshot=outcome.applied,
        )

    address = await _address_snapshot(session, user_id, payload)
    estimated_delivery = estimated_delivery_range((now or _now()).date())

    for attempt in range(1, max(1, settings.order_insert_attempts) + 1):
        code = await generate_order_code(session)
        order = _build_order(
            code=code,
            user_id=user_id,
            cart=cart,
            shipping_minor=shipping_minor,
            applied=applied,
            address=address,
            payload=payload,
            payment_ref=payment_ref,
            estimated_delivery=estimated_delivery,
        )
        session.add(order)
        try:
            await session.flush()
            if applied:
                await redemptions.consume_global_capacity(session, applied.coupon_id)
                await redemptions.mark_used(session, applied.redemption_id, order.id, now=now)
            await _decrement_stock(session, cart)
            await session.commit()
        except IntegrityError as exc:
            await session.rollback()
            if payment_ref:
                existing = await get_by_payment_ref(session, payment_ref)
                if existing is not None:
                    return _replay(existing, user_id)
            if not _is_order_code_collision(exc):
                raise
            metrics.record_order_code_collision()
            logger.warning("order_code_collision", extra={"order_code": code, "attempt": attempt})
            continue
        except (StorefrontError, SQLAlchemyError):
            await session.rollback()
            raise

        await session.refresh(order)
        await session.refresh(order, attribute_names=["items", "events"])
        metrics.record_order_settled()
        logger.info(
            "order_settled",
            extra={
                "order_code": order.order_code,
                "total_minor": order.total_minor,
                "coupon_code": applied.code if applied else None,
            },
        )
        return SettlementResult(order=order, created=True)

    raise ConflictError("Could not allocate a unique order code", code="order_code_exhausted")


async def list_orders_for_user(session: AsyncSession, user_id: UUID) -> list[Order]:
    result = await session.execute(
        select(Order).where(Order.user_id == user_id).order_by(Order.created_at.desc(), Order.order_code)
    )
    return list(result.scalars().all())


async def get_order_by_id(session: AsyncSession, order_id: UUID) -> Order | None:
    return await session.scalar(select(Order).where(Order.id == order_id))


async def get_order_for_user(session: AsyncSession, user_id: UUID, id_or_code: str) -> Order:
    """Look an order up by id or by order code; the leading ``#`` of a code is optional."""
    try:
        order_id = UUID(str(id_or_code))
    except ValueError:
        clause = Order.order_code == normalize_order_code(id_or_code)
    else:
        clause = Order.id == order_id
    order = await session.scalar(select(Order).where(clause, Order.user_id == user_id))
    if order is None:
        raise NotFoundError("Order not found", code="order_not_found")
    return order


async def track_order(session: AsyncSession, code: str) -> Order:
    cleaned = normalize_order_code(code)
    order = await session.scalar(select(Order).where(Order.order_code == cleaned)) if cleaned else None
    if order is None:
        raise NotFoundError("Order not found", code="order_not_found")
    return order


async def update_order_status(
    session: AsyncSession,
    order: Order,
    *,
    order_status: OrderStatus | None = None,
    payment_status: PaymentStatus | None = None,
) -> Order:
    if order_status is not None and order_status != order.order_status:
        current = OrderStatus(order.order_status)
        if order_status not in ALLOWED_ORDER_TRANSITIONS.get(current, set()):
            raise ValidationError("Invalid status transition", code="invalid_transition")
        order.order_status = order_status
        order.events.append(OrderEvent(event="order_status", note=f"{current.value} -> {order_status.value}"))

    if payment_status is not None and payment_status != order.payment_status:
        current_payment = PaymentStatus(order.payment_status)
        if payment_status not in ALLOWED_PAYMENT_TRANSITIONS.get(current_payment, set()):
            raise ValidationError("Invalid payment status transition", code="invalid_transition")
        order.payment_status = payment_status
        order.events.append(
            OrderEvent(event="payment_status", note=f"{current_payment.value} -> {payment_status.value}")
        )

    session.add(order)
    await session.commit()
    await session.refresh(order)
    await session.refresh(order, attribute_names=["items", "events"])
    return order
