"""
Pricing and booking policy configuration.

Provides centralized, runtime-overridable configuration for:
- Checkout rules (full vs. partial payment thresholds)
- Cart rules (minimum order value, priority fee, high-value limit, tax)
- Domain pricing (new-domain setup fee + annual price)
- Booking policy (cancellation window, fine amount, additional-service cap)

Defaults come from environment settings; admin screens replace them with
set_* at runtime.
"""
from typing import Optional

from pydantic import BaseModel, Field, model_validator

from lashdesk.lib.logging import get_logger
from lashdesk.lib.settings import settings


logger = get_logger(__name__)


class CheckoutRules(BaseModel):
    """
    Tiered payment rules for Labs orders.

    Totals at or below ``full_payment_threshold`` are paid in full; totals
    above ``partial_payment_threshold`` pay ``partial_payment_percentage`` up
    front and the rest on delivery.
    """

    full_payment_threshold: float = Field(
        default_factory=lambda: settings.full_payment_threshold,
        ge=0,
        description="Orders up to this total are paid in full"
    )
    partial_payment_threshold: float = Field(
        default_factory=lambda: settings.partial_payment_threshold,
        ge=0,
        description="Orders above this total are split"
    )
    partial_payment_percentage: float = Field(
        default_factory=lambda: settings.partial_payment_percentage,
        gt=0,
        le=100,
        description="Share of the total due up front on split orders"
    )

    @model_validator(mode="after")
    def _thresholds_ordered(self) -> "CheckoutRules":
        if self.partial_payment_threshold < self.full_payment_threshold:
            raise ValueError("partial_payment_threshold must be >= full_payment_threshold")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "full_payment_threshold": 50000,
                "partial_payment_threshold": 50000,
                "partial_payment_percentage": 80,
            }
        }


class CartRules(BaseModel):
    """Cart-level gates and fees."""

    minimum_cart_value: float = Field(
        default_factory=lambda: settings.minimum_cart_value,
        ge=0,
        description="Pre-discount subtotal required before a code can be applied"
    )
    priority_fee: float = Field(
        default_factory=lambda: settings.priority_fee,
        ge=0,
        description="Flat fee added for urgent timelines"
    )
    high_value_order_limit: Optional[float] = Field(
        default_factory=lambda: settings.high_value_order_limit,
        description="Totals above this go through a consultation instead of checkout"
    )
    tax_percentage: float = Field(
        default_factory=lambda: settings.tax_percentage,
        ge=0,
        le=100,
    )


class DomainPricing(BaseModel):
    """Bundle charged when the client asks for a new domain."""

    setup_fee: float = Field(default_factory=lambda: settings.domain_setup_fee, ge=0)
    annual_price: float = Field(default_factory=lambda: settings.domain_annual_price, ge=0)

    @property
    def total_first_payment(self) -> float:
        return self.setup_fee + self.annual_price


class BookingPolicy(BaseModel):
    """Salon booking rules."""

    cancellation_window_hours: int = Field(
        default_factory=lambda: settings.cancellation_window_hours,
        ge=1,
        le=720,
    )
    fine_amount: float = Field(default_factory=lambda: settings.fine_amount, ge=0)
    max_additional_services: int = Field(
        default_factory=lambda: settings.max_additional_services,
        ge=0,
        le=10,
    )


# Global configuration instances (can be overridden)
_checkout_rules: Optional[CheckoutRules] = None
_cart_rules: Optional[CartRules] = None
_domain_pricing: Optional[DomainPricing] = None
_booking_policy: Optional[BookingPolicy] = None


def get_checkout_rules() -> CheckoutRules:
    global _checkout_rules
    if _checkout_rules is None:
        _checkout_rules = CheckoutRules()
        logger.info("Initialized default checkout rules")
    return _checkout_rules


def set_checkout_rules(rules: CheckoutRules) -> None:
    """
    Override checkout rules.

    Args:
        rules: New CheckoutRules configuration
    """
    global _checkout_rules
    _checkout_rules = rules
    logger.info("Updated checkout rules", extra={
        "full_payment_threshold": rules.full_payment_threshold,
        "partial_payment_percentage": rules.partial_payment_percentage,
    })


def get_cart_rules() -> CartRules:
    global _cart_rules
    if _cart_rules is None:
        _cart_rules = CartRules()
        logger.info("Initialized default cart rules")
    return _cart_rules


def set_cart_rules(rules: CartRules) -> None:
    global _cart_rules
    _cart_rules = rules
    logger.info("Updated cart rules", extra={"minimum_cart_value": rules.minimum_cart_value})


def get_domain_pricing() -> DomainPricing:
    global _domain_pricing
    if _domain_pricing is None:
        _domain_pricing = DomainPricing()
    return _domain_pricing


def set_domain_pricing(pricing: DomainPricing) -> None:
    global _domain_pricing
    _domain_pricing = pricing
    logger.info("Updated domain pricing")


def get_booking_policy() -> BookingPolicy:
    global _booking_policy
    if _booking_policy is None:
        _booking_policy = BookingPolicy()
        logger.info("Initialized default booking policy")
    return _booking_policy


def set_booking_policy(policy: BookingPolicy) -> None:
    global _booking_policy
    _booking_policy = policy
    logger.info("Updated booking policy", extra={
        "cancellation_window_hours": policy.cancellation_window_hours,
    })


def reset_all_configs() -> None:
    """Reset all configurations to defaults (useful for testing)."""
    global _checkout_rules, _cart_rules, _domain_pricing, _booking_policy
    _checkout_rules = None
    _cart_rules = None
    _domain_pricing = None
    _booking_policy = None
    logger.info("Reset all configurations to defaults")
