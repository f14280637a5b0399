"""
Labs cart records.

Line items are tagged by billing period. Only yearly items carry a setup
fee; extra fields are rejected, so a monthly or one-time item with a setup
fee cannot be built.
"""
import enum
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from lashdesk.schemas.discount import DiscountValidation


class BillingPeriod(str, enum.Enum):
    ONE_TIME = "one-time"
    YEARLY = "yearly"
    MONTHLY = "monthly"


class LineItemBase(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    product_id: str
    name: str
    price: float = Field(ge=0, description="Unit price before discount")
    quantity: int = Field(default=1, ge=1)
    category: Optional[str] = None
    discount: Optional[float] = Field(default=None, ge=0, le=100, description="Percent off")
    discount_amount: Optional[float] = Field(
        default=None,
        ge=0,
        description="Absolute amount off; wins over ``discount`` when both are set",
    )
    required_services: List[str] = Field(default_factory=list)


class OneTimeItem(LineItemBase):
    billing_period: Literal["one-time"] = "one-time"


class YearlyItem(LineItemBase):
    billing_period: Literal["yearly"] = "yearly"
    setup_fee: float = Field(default=0, ge=0, description="Charged once with the first payment")


class MonthlyItem(LineItemBase):
    billing_period: Literal["monthly"] = "monthly"


CartLineItem = Annotated[
    Union[OneTimeItem, YearlyItem, MonthlyItem],
    Field(discriminator="billing_period"),
]

line_item_adapter: TypeAdapter[CartLineItem] = TypeAdapter(CartLineItem)
line_items_adapter: TypeAdapter[List[CartLineItem]] = TypeAdapter(List[CartLineItem])


def parse_line_item(data: dict) -> Union[OneTimeItem, YearlyItem, MonthlyItem]:
    """Items saved without a billing period are one-time purchases."""
    payload = dict(data)
    payload.setdefault("billing_period", BillingPeriod.ONE_TIME.value)
    return line_item_adapter.validate_python(payload)


class ExtraFee(BaseModel):
    """Flat cart-level fee (priority timeline, new-domain bundle)."""

    model_config = ConfigDict(frozen=True)

    label: str
    amount: float = Field(ge=0)


class ServiceOffering(BaseModel):
    """Catalog entry for a Labs web service."""

    id: str
    name: str
    price: float = Field(ge=0)
    category: Optional[str] = None
    billing_period: BillingPeriod = BillingPeriod.ONE_TIME
    setup_fee: Optional[float] = Field(default=None, ge=0)
    required_services: List[str] = Field(default_factory=list)

    def to_line_item(self, quantity: int = 1) -> Union[OneTimeItem, YearlyItem, MonthlyItem]:
        payload = {
            "product_id": self.id,
            "name": self.name,
            "price": self.price,
            "quantity": quantity,
            "category": self.category,
            "required_services": list(self.required_services),
            "billing_period": self.billing_period.value,
        }
        if self.billing_period == BillingPeriod.YEARLY and self.setup_fee:
            payload["setup_fee"] = self.setup_fee
        return line_item_adapter.validate_python(payload)


class GuideScenario(BaseModel):
    """Guided bundle: the services a given kind of website needs."""

    id: str
    name: str
    description: str = ""
    must_have_service_ids: List[str] = Field(default_factory=list)
    recommended_service_ids: List[str] = Field(default_factory=list)
    order: int = 0


class AppliedDiscount(BaseModel):
    code: Optional[str] = None
    discount_amount: float = Field(default=0, ge=0)


class CheckoutTotals(BaseModel):
    """Everything the checkout page renders and the order stores."""

    subtotal: float = Field(description="Pre-discount total, including setup and extra fees")
    setup_fees_total: float = 0
    extra_fees_total: float = 0
    discount: float = 0
    subtotal_after_discount: float
    tax_percentage: float = 0
    tax_amount: float = 0
    total: float
    initial_payment: float
    remaining_payment: float
    payment_status: Literal["pending", "partial"]
    applied_code: Optional[str] = None
    requires_high_value_contact: bool = False


class CheckoutQuote(BaseModel):
    """Live checkout preview; problems are reported, not raised."""

    totals: CheckoutTotals
    discount: Optional[DiscountValidation] = None
    missing_required_services: List[str] = Field(default_factory=list)
    meets_minimum: bool = True
    minimum_cart_value: float = 0


class LabsOrder(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    items: List[CartLineItem]
    extra_fees: List[ExtraFee] = Field(default_factory=list)
    totals: CheckoutTotals
    created_at: datetime
