"""
Discount code models - the code pool and its per-identifier redemptions.
"""
from datetime import datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from lashdesk.lib.db import Base
from lashdesk.schemas.discount import DiscountCode, DiscountType


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiscountCodeRow(Base):
    """
    A Labs discount code.

    ``used_count`` only moves through DiscountCodeRepository.redeem, which
    bumps it with a conditional UPDATE so the pool can't be overdrawn.
    """
    __tablename__ = "discount_codes"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    code: Mapped[str] = mapped_column(String(64), nullable=False, unique=True, index=True)
    discount_type: Mapped[DiscountType] = mapped_column(
        SQLEnum(DiscountType, name="discount_type"),
        nullable=False,
    )
    discount_value: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, comment="NULL means unbounded")
    used_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_first_time_only: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    redemptions: Mapped[List["DiscountRedemptionRow"]] = relationship(
        back_populates="discount_code",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("used_count >= 0", name="discount_used_count_non_negative"),
        CheckConstraint(
            "max_uses IS NULL OR used_count <= max_uses",
            name="discount_used_count_within_pool",
        ),
    )

    def to_record(self) -> DiscountCode:
        return DiscountCode(
            id=self.id,
            code=self.code,
            discount_type=self.discount_type,
            discount_value=float(self.discount_value),
            max_uses=self.max_uses,
            used_count=self.used_count,
            used_by=[r.identifier for r in self.redemptions if r.identifier],
            is_first_time_only=self.is_first_time_only,
            is_active=self.is_active,
            expires_at=self.expires_at,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<DiscountCodeRow(code={self.code}, used={self.used_count}/{self.max_uses})>"


class DiscountRedemptionRow(Base):
    """One use of a code by one client; the unique key stops double use."""
    __tablename__ = "discount_redemptions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: str(uuid4()))
    code_id: Mapped[str] = mapped_column(
        String(64),
        ForeignKey("discount_codes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    identifier: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    order_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    redeemed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    discount_code: Mapped["DiscountCodeRow"] = relationship(back_populates="redemptions")

    __table_args__ = (
        UniqueConstraint("code_id", "identifier", name="uq_discount_redemption_identifier"),
    )

    def __repr__(self) -> str:
        return f"<DiscountRedemptionRow(code_id={self.code_id}, identifier={self.identifier})>"
