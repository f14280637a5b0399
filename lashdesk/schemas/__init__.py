"""
Plain records exchanged with the ledger and pricing engines.
"""
from lashdesk.schemas.booking import (
    Booking,
    BookingStatus,
    RegularBooking,
    WalkInBooking,
    parse_booking,
)
from lashdesk.schemas.cart import (
    BillingPeriod,
    CartLineItem,
    CheckoutTotals,
    MonthlyItem,
    OneTimeItem,
    YearlyItem,
    parse_line_item,
)
from lashdesk.schemas.discount import DiscountCode, DiscountType, DiscountValidation

__all__ = [
    "Booking",
    "BookingStatus",
    "RegularBooking",
    "WalkInBooking",
    "parse_booking",
    "BillingPeriod",
    "CartLineItem",
    "CheckoutTotals",
    "MonthlyItem",
    "OneTimeItem",
    "YearlyItem",
    "parse_line_item",
    "DiscountCode",
    "DiscountType",
    "DiscountValidation",
]
