"""
SQLAlchemy models package.
Import all models here to ensure they're registered with Base.metadata.
"""
from lashdesk.models.bookings import BookingRow
from lashdesk.models.discounts import DiscountCodeRow, DiscountRedemptionRow
from lashdesk.models.orders import LabsOrderRow

__all__ = [
    "BookingRow",
    "DiscountCodeRow",
    "DiscountRedemptionRow",
    "LabsOrderRow",
]
