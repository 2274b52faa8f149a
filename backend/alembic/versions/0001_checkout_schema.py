"""checkout schema: catalog, addresses, orders, coupons, redemption records

Revision ID: 0001
Revises:
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    user_role = sa.Enum("customer", "admin", name="userrole", native_enum=False)
    product_status = sa.Enum("active", "inactive", name="productstatus", native_enum=False)
    order_status = sa.Enum("pending", "shipped", "delivered", "cancelled", name="orderstatus", native_enum=False)
    payment_status = sa.Enum("pending", "paid", "failed", name="paymentstatus", native_enum=False)
    payment_method = sa.Enum("cod", "khalti", "esewa", name="paymentmethod", native_enum=False)
    coupon_type = sa.Enum("percent", "flat", "free_shipping", name="coupontype", native_enum=False)
    coupon_scope = sa.Enum("all", "category", "product", name="couponscope", native_enum=False)
    coupon_status = sa.Enum("active", "paused", name="couponstatus", native_enum=False)
    coupon_target_type = sa.Enum("product", "category", name="coupontargettype", native_enum=False)
    redemption_status = sa.Enum("collected", "used", "expired", name="redemptionstatus", native_enum=False)

    op.create_table(
        "users",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=True),
        sa.Column("role", user_role, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "categories",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("slug", sa.String(length=120), nullable=False),
        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f("ix_categories_slug"), "categories", ["slug"], unique=True)

    op.create_table(
        "products",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("category_id", sa.UUID(as_uuid=True), sa.ForeignKey("categories.id"), nullable=False),
        sa.Column("slug", sa.String(length=160), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False),
        sa.Column("stock", sa.Integer(), nullable=False),
        sa.Column("status", product_status, nullable=False),
        sa.Column("image", sa.String(length=512), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )
    op.create_index(op.f("ix_products_slug"), "products", ["slug"], unique=True)
    op.create_index(op.f("ix_products_category_id"), "products", ["category_id"], unique=False)

    op.create_table(
        "addresses",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("label", sa.String(length=20), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("phone", sa.String(length=30), nullable=False),
        sa.Column("country", sa.String(length=60), nullable=False),
        sa.Column("province_id", sa.String(length=40), nullable=False),
        sa.Column("district", sa.String(length=100), nullable=False),
        sa.Column("city_or_municipality", sa.String(length=100), nullable=False),
        sa.Column("address_line", sa.String(length=200), nullable=False),
        sa.Column("street", sa.String(length=200), nullable=True),
        sa.Column("postal_code", sa.String(length=20), nullable=True),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index(op.f("ix_addresses_user_id"), "addresses", ["user_id"], unique=False)

    op.create_table(
        "orders",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("order_code", sa.String(length=20), nullable=False),
        sa.Column("user_id", sa.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("subtotal_minor", sa.Integer(), nullable=False),
        sa.Column("shipping_minor", sa.Integer(), nullable=False),
        sa.Column("discount_minor", sa.Integer(), nullable=False),
        sa.Column("total_minor", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("coupon_snapshot", sa.JSON(), nullable=True),
        sa.Column("address_snapshot", sa.JSON(), nullable=True),
        sa.Column("shipping_method", sa.String(length=60), nullable=False),
        sa.Column("estimated_delivery", sa.String(length=80), nullable=False),
        sa.Column("payment_method", payment_method, nullable=False),
        sa.Column("payment_status", payment_status, nullable=False),
        sa.Column("payment_ref", sa.String(length=255), nullable=True),
        sa.Column("order_status", order_status, nullable=False),
        *_timestamps(),
        sa.CheckConstraint("subtotal_minor >= 0", name="ck_orders_subtotal_non_negative"),
        sa.CheckConstraint("shipping_minor >= 0", name="ck_orders_shipping_non_negative"),
        sa.CheckConstraint("discount_minor >= 0", name="ck_orders_discount_non_negative"),
        sa.CheckConstraint("total_minor >= 0", name="ck_orders_total_non_negative"),
    )
    op.create_index(op.f("ix_orders_order_code"), "orders", ["order_code"], unique=True)
    op.create_index(op.f("ix_orders_payment_ref"), "orders", ["payment_ref"], unique=True)
    op.create_index(op.f("ix_orders_user_id"), "orders", ["user_id"], unique=False)
    op.create_index(op.f("ix_orders_payment_status"), "orders", ["payment_status"], unique=False)
    op.create_index(op.f("ix_orders_order_status"), "orders", ["order_status"], unique=False)
    op.create_index(op.f("ix_orders_created_at"), "orders", ["created_at"], unique=False)

    op.create_table(
        "order_items",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("order_id", sa.UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("product_id", sa.UUID(as_uuid=True), nullable=False),
        sa.Column("name", sa.String(length=160), nullable=False),
        sa.Column("size", sa.String(length=20), nullable=False),
        sa.Column("image", sa.String(length=512), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("unit_price_minor", sa.Integer(), nullable=False),
        sa.Column("line_total_minor", sa.Integer(), nullable=False),
        sa.CheckConstraint("quantity > 0", name="ck_order_items_quantity_positive"),
    )
    op.create_index(op.f("ix_order_items_order_id"), "order_items", ["order_id"], unique=False)

    op.create_table(
        "order_events",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("order_id", sa.UUID(as_uuid=True), sa.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False),
        sa.Column("event", sa.String(length=50), nullable=False),
        sa.Column("note", sa.String(length=255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index(op.f("ix_order_events_order_id"), "order_events", ["order_id"], unique=False)

    op.create_table(
        "coupons",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("code", sa.String(length=40), nullable=False),
        sa.Column("title", sa.String(length=120), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("discount_type", coupon_type, nullable=False),
        sa.Column("scope", coupon_scope, nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column("max_discount_cap_minor", sa.Integer(), nullable=True),
        sa.Column("min_order_minor", sa.Integer(), nullable=True),
        sa.Column("starts_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("ends_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("global_usage_limit", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_uses_per_user", sa.Integer(), nullable=True),
        sa.Column("status", coupon_status, nullable=False),
        *_timestamps(),
        sa.CheckConstraint("used_count >= 0", name="ck_coupons_used_count_non_negative"),
        sa.CheckConstraint(
            "global_usage_limit IS NULL OR global_usage_limit <= 0 OR used_count <= global_usage_limit",
            name="ck_coupons_used_count_within_limit",
        ),
        sa.CheckConstraint(
            "discount_type != 'percent' OR (value > 0 AND value <= 100)",
            name="ck_coupons_percent_range",
        ),
        sa.CheckConstraint("value >= 0", name="ck_coupons_value_non_negative"),
    )
    op.create_index(op.f("ix_coupons_code"), "coupons", ["code"], unique=True)

    op.create_table(
        "coupon_targets",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("coupon_id", sa.UUID(as_uuid=True), sa.ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False),
        sa.Column("entity_type", coupon_target_type, nullable=False),
        sa.Column("entity_id", sa.UUID(as_uuid=True), nullable=False),
        sa.UniqueConstraint("coupon_id", "entity_type", "entity_id", name="uq_coupon_targets_coupon_type_entity"),
    )
    op.create_index(op.f("ix_coupon_targets_coupon_id"), "coupon_targets", ["coupon_id"], unique=False)

    op.create_table(
        "redemption_records",
        sa.Column("id", sa.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("user_id", sa.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("coupon_id", sa.UUID(as_uuid=True), sa.ForeignKey("coupons.id"), nullable=False),
        sa.Column("status", redemption_status, nullable=False),
        sa.Column("collected_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("used_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("order_id", sa.UUID(as_uuid=True), sa.ForeignKey("orders.id"), nullable=True),
        sa.UniqueConstraint("user_id", "coupon_id", name="uq_redemption_records_user_coupon"),
    )
    op.create_index(op.f("ix_redemption_records_user_id"), "redemption_records", ["user_id"], unique=False)
    op.create_index(op.f("ix_redemption_records_coupon_id"), "redemption_records", ["coupon_id"], unique=False)
    op.create_index(op.f("ix_redemption_records_status"), "redemption_records", ["status"], unique=False)


def downgrade() -> None:
    op.drop_table("redemption_records")
    op.drop_table("coupon_targets")
    op.drop_table("coupons")
    op.drop_table("order_events")
    op.drop_table("order_items")
    op.drop_table("orders")
    op.drop_table("addresses")
    op.drop_table("products")
    op.drop_table("categories")
    op.drop_table("users")
