"""
Admin discount-code routes.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from lashdesk.api.dependencies import get_db
from lashdesk.lib.errors import AppException, BadRequestException, NotFoundException
from lashdesk.schemas.discount import DiscountCode, DiscountType
from lashdesk.services.discount_codes import generate_code
from lashdesk.services.discount_repository import DiscountCodeRepository


router = APIRouter(prefix="/admin/discount-codes", tags=["admin", "discounts"])


class CreateDiscountCodeRequest(BaseModel):
    code: Optional[str] = Field(default=None, description="Generated when omitted")
    discount_type: DiscountType
    discount_value: float = Field(gt=0)
    max_uses: Optional[int] = Field(default=1, ge=1, description="null for an unbounded pool")
    is_first_time_only: bool = False
    expires_at: Optional[datetime] = None


@router.post("", response_model=DiscountCode, status_code=status.HTTP_201_CREATED)
def create_discount_code(
    request: CreateDiscountCodeRequest,
    db: Session = Depends(get_db),
) -> DiscountCode:
    if request.discount_type == DiscountType.PERCENTAGE and request.discount_value > 100:
        raise BadRequestException("Percentage discount cannot exceed 100%")

    repo = DiscountCodeRepository(db)
    code = request.code or generate_code()
    if repo.get_by_code(code) is not None:
        raise AppException(
            f"Discount code {code.upper()} already exists",
            status_code=status.HTTP_409_CONFLICT,
        )
    record = DiscountCode(
        code=code,
        discount_type=request.discount_type,
        discount_value=request.discount_value,
        max_uses=request.max_uses,
        is_first_time_only=request.is_first_time_only,
        expires_at=request.expires_at,
    )
    return repo.create(record)


@router.get("/{code}", response_model=DiscountCode)
def get_discount_code(code: str, db: Session = Depends(get_db)) -> DiscountCode:
    record = DiscountCodeRepository(db).get_record(code)
    if record is None:
        raise NotFoundException("Discount code", code)
    return record
