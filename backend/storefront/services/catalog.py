from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from decimal import Decimal
from types import MappingProxyType
from typing import Mapping
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.core.errors import NotFoundError, ValidationError
from storefront.models.catalog import Product, ProductStatus
from storefront.services import money


@dataclass(frozen=True)
class ProductSnapshot:
    id: UUID
    name: str
    price: Decimal
    image: str
    category_id: UUID
    stock: int
    is_active: bool

    @property
    def price_minor(self) -> int:
        return money.to_minor(self.price)


@dataclass(frozen=True)
class CartLine:
    product_id: UUID
    qty: int
    size: str = ""


@dataclass(frozen=True)
class CartSnapshot:
    """Cart lines plus the product data they were priced against, resolved once per request."""

    lines: tuple[CartLine, ...]
    products: Mapping[UUID, ProductSnapshot]

    def product(self, product_id: UUID) -> ProductSnapshot:
        return self.products[product_id]

    def line_total_minor(self, line: CartLine) -> int:
        return self.products[line.product_id].price_minor * line.qty

    @property
    def subtotal_minor(self) -> int:
        return sum(self.line_total_minor(line) for line in self.lines)

    def quantities(self) -> dict[UUID, int]:
        merged: dict[UUID, int] = {}
        for line in self.lines:
            merged[line.product_id] = merged.get(line.product_id, 0) + line.qty
        return merged


def merge_lines(lines: Iterable[CartLine]) -> list[CartLine]:
    """Fold repeated (product, size) lines into one, keeping first-seen order."""
    merged: dict[tuple[UUID, str], int] = {}
    for line in lines:
        key = (line.product_id, line.size or "")
        merged[key] = merged.get(key, 0) + int(line.qty)
    return [CartLine(product_id=pid, qty=qty, size=size) for (pid, size), qty in merged.items()]


def _to_snapshot(product: Product) -> ProductSnapshot:
    return ProductSnapshot(
        id=product.id,
        name=product.name,
        price=Decimal(str(product.price or 0)),
        image=product.image or "",
        category_id=product.category_id,
        stock=int(product.stock or 0),
        is_active=product.status == ProductStatus.active,
    )


async def get_by_ids(session: AsyncSession, ids: Iterable[UUID]) -> dict[UUID, ProductSnapshot]:
    wanted = set(ids)
    if not wanted:
        return {}
    rows = (await session.execute(select(Product).where(Product.id.in_(wanted)))).scalars().all()
    return {row.id: _to_snapshot(row) for row in rows}


async def resolve_cart(session: AsyncSession, lines: Sequence[CartLine]) -> CartSnapshot:
    if not lines:
        raise ValidationError("Cart is empty", code="cart_empty")
    lines = merge_lines(lines)
    products = await get_by_ids(session, (line.product_id for line in lines))
    for line in lines:
        if line.product_id not in products:
            raise NotFoundError(f"Product not found: {line.product_id}", code="product_not_found")
    return CartSnapshot(lines=tuple(lines), products=MappingProxyType(dict(products)))
