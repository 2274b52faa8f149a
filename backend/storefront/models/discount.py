import enum
import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, DateTime, Enum, ForeignKey, Integer, String, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from storefront.db.base import Base
from storefront.models.order import Order
from storefront.models.user import User


class CouponType(str, enum.Enum):
    percent = "PERCENT"
    flat = "FLAT"
    free_shipping = "FREESHIP"


class CouponScope(str, enum.Enum):
    all = "ALL"
    category = "CATEGORY"
    product = "PRODUCT"


class CouponStatus(str, enum.Enum):
    active = "ACTIVE"
    paused = "PAUSED"


class CouponTargetType(str, enum.Enum):
    product = "product"
    category = "category"


class RedemptionStatus(str, enum.Enum):
    collected = "COLLECTED"
    used = "USED"
    expired = "EXPIRED"


class Coupon(Base):
    __tablename__ = "coupons"
    # Enum columns persist member names, hence the lowercase literals below.
    __table_args__ = (
        CheckConstraint("used_count >= 0", name="ck_coupons_used_count_non_negative"),
        CheckConstraint(
            "global_usage_limit IS NULL OR global_usage_limit <= 0 OR used_count <= global_usage_limit",
            name="ck_coupons_used_count_within_limit",
        ),
        CheckConstraint(
            "discount_type != 'percent' OR (value > 0 AND value <= 100)",
            name="ck_coupons_percent_range",
        ),
        CheckConstraint("value >= 0", name="ck_coupons_value_non_negative"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    code: Mapped[str] = mapped_column(String(40), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(120), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    discount_type: Mapped[CouponType] = mapped_column(Enum(CouponType, native_enum=False), nullable=False)
    scope: Mapped[CouponScope] = mapped_column(
        Enum(CouponScope, native_enum=False), nullable=False, default=CouponScope.all
    )
    # Percent points for PERCENT, minor units for FLAT, ignored for FREESHIP.
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    max_discount_cap_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    min_order_minor: Mapped[int | None] = mapped_column(Integer, nullable=True)
    starts_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    ends_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    global_usage_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    max_uses_per_user: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[CouponStatus] = mapped_column(
        Enum(CouponStatus, native_enum=False), nullable=False, default=CouponStatus.active
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    targets: Mapped[list["CouponTarget"]] = relationship(
        "CouponTarget", back_populates="coupon", cascade="all, delete-orphan", lazy="selectin"
    )


class CouponTarget(Base):
    __tablename__ = "coupon_targets"
    __table_args__ = (
        UniqueConstraint("coupon_id", "entity_type", "entity_id", name="uq_coupon_targets_coupon_type_entity"),
    )

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False, index=True
    )
    entity_type: Mapped[CouponTargetType] = mapped_column(Enum(CouponTargetType, native_enum=False), nullable=False)
    entity_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    coupon: Mapped[Coupon] = relationship("Coupon", back_populates="targets")


class RedemptionRecord(Base):
    """A user's relationship to one coupon: COLLECTED, then USED exactly once."""

    __tablename__ = "redemption_records"
    __table_args__ = (UniqueConstraint("user_id", "coupon_id", name="uq_redemption_records_user_coupon"),)

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    coupon_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("coupons.id"), nullable=False, index=True
    )
    status: Mapped[RedemptionStatus] = mapped_column(
        Enum(RedemptionStatus, native_enum=False), nullable=False, default=RedemptionStatus.collected, index=True
    )
    collected_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    order_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), ForeignKey("orders.id"), nullable=True)

    coupon: Mapped[Coupon] = relationship("Coupon", lazy="selectin")
    user: Mapped[User] = relationship("User")
    order: Mapped[Order | None] = relationship("Order")
