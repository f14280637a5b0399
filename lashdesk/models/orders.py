"""
Labs order model - a checked-out web-services cart.
"""
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from sqlalchemy import JSON, DateTime, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from lashdesk.lib.db import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class LabsOrderRow(Base):
    __tablename__ = "labs_orders"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=lambda: f"order-{uuid4().hex[:12]}")
    email: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    items: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False)
    extra_fees: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    subtotal: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    setup_fees_total: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    discount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    applied_code: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    tax_percentage: Mapped[float] = mapped_column(Numeric(5, 2), nullable=False, default=0)
    tax_amount: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    total: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    initial_payment: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False)
    remaining_payment: Mapped[float] = mapped_column(Numeric(12, 2), nullable=False, default=0)
    payment_status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=_utcnow)

    def __repr__(self) -> str:
        return f"<LabsOrderRow(id={self.id}, email={self.email}, total={self.total})>"
