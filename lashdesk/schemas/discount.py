"""
Discount code records.
"""
import enum
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class DiscountCode(BaseModel):
    """
    A Labs discount code.

    ``max_uses=None`` means the pool is unbounded. First-time-only codes are
    usually unbounded but still allow one use per identifier.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    code: str = Field(min_length=1)
    discount_type: DiscountType
    discount_value: float = Field(gt=0)
    max_uses: Optional[int] = Field(default=1, ge=1)
    used_count: int = Field(default=0, ge=0)
    used_by: List[str] = Field(default_factory=list)
    is_first_time_only: bool = False
    is_active: bool = True
    expires_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("code")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @field_validator("used_by")
    @classmethod
    def _normalize_identifiers(cls, value: List[str]) -> List[str]:
        return [v.strip().lower() for v in value]

    @field_validator("expires_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        """Naive values are taken as UTC; aware ones are converted to it."""
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)

    @model_validator(mode="after")
    def _percentage_bounds(self) -> "DiscountCode":
        if self.discount_type == DiscountType.PERCENTAGE and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100%")
        return self

    @property
    def remaining_uses(self) -> Optional[int]:
        if self.max_uses is None:
            return None
        return max(self.max_uses - self.used_count, 0)


class DiscountValidation(BaseModel):
    """Result of validating a code against a cart; never raised, always returned."""

    valid: bool
    code: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[float] = None
    discount_amount: float = 0
    remaining_uses: Optional[int] = None
    error: Optional[str] = Field(default=None, description="Rejection kind, e.g. ExhaustedPool")
    message: Optional[str] = None
