"""
Labs storefront routes - catalog, discount codes and checkout.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator

from lashdesk.api.dependencies import get_checkout_service, get_service_catalog
from lashdesk.schemas.cart import (
    BillingPeriod,
    CartLineItem,
    CheckoutQuote,
    GuideScenario,
    LabsOrder,
    ServiceOffering,
)
from lashdesk.schemas.discount import DiscountValidation
from lashdesk.services.cart_pricing import build_extra_fees
from lashdesk.services.catalog import ServiceCatalog
from lashdesk.services.checkout_service import CheckoutService


router = APIRouter(prefix="/labs", tags=["labs"])


class CheckoutRequest(BaseModel):
    """Cart as the storefront submits it."""
    items: List[CartLineItem] = Field(min_length=1)
    email: Optional[str] = None
    name: Optional[str] = None
    discount_code: Optional[str] = None
    timeline: Optional[str] = Field(default=None, description='"urgent" adds the priority fee')
    domain_type: Optional[str] = Field(default=None, description='"new" adds the domain bundle')
    prevalidated: bool = Field(default=False, description="Cart was filled from a guided bundle")

    @field_validator("items", mode="before")
    @classmethod
    def _default_billing_period(cls, value):
        """Items sent without a billing period are one-time purchases."""
        if not isinstance(value, list):
            return value
        return [
            {"billing_period": BillingPeriod.ONE_TIME.value, **item} if isinstance(item, dict) else item
            for item in value
        ]


class PlaceOrderRequest(CheckoutRequest):
    email: str = Field(min_length=3)


class CatalogResponse(BaseModel):
    products: List[ServiceOffering]
    scenarios: List[GuideScenario]


@router.get("/catalog", response_model=CatalogResponse)
def get_catalog(catalog: ServiceCatalog = Depends(get_service_catalog)) -> CatalogResponse:
    return CatalogResponse(
        products=list(catalog.offerings.values()),
        scenarios=catalog.ordered_scenarios(),
    )


@router.get("/discount/validate", response_model=DiscountValidation)
def validate_discount(
    code: str = Query(..., min_length=1),
    subtotal: float = Query(..., ge=0, description="Pre-discount cart subtotal"),
    email: Optional[str] = Query(None),
    service: CheckoutService = Depends(get_checkout_service),
) -> DiscountValidation:
    """
    Check a discount code against a cart subtotal.

    Always 200; a rejected code comes back with ``valid=false`` and the
    rejection kind in ``error``.
    """
    return service.validate_code(code, email, subtotal)


@router.post("/checkout/quote", response_model=CheckoutQuote)
def quote_checkout(
    request: CheckoutRequest,
    service: CheckoutService = Depends(get_checkout_service),
) -> CheckoutQuote:
    return service.quote(
        request.items,
        email=request.email,
        discount_code=request.discount_code,
        extra_fees=build_extra_fees(request.timeline, request.domain_type),
        prevalidated=request.prevalidated,
    )


@router.post("/checkout", response_model=LabsOrder, status_code=status.HTTP_201_CREATED)
def place_order(
    request: PlaceOrderRequest,
    service: CheckoutService = Depends(get_checkout_service),
) -> LabsOrder:
    return service.checkout(
        request.items,
        email=request.email,
        name=request.name,
        discount_code=request.discount_code,
        extra_fees=build_extra_fees(request.timeline, request.domain_type),
        prevalidated=request.prevalidated,
    )


@router.get("/orders", response_model=List[LabsOrder])
def list_orders(
    email: str = Query(..., min_length=3),
    service: CheckoutService = Depends(get_checkout_service),
) -> List[LabsOrder]:
    return service.list_orders(email)
