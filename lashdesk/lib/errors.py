"""
Application exceptions.

Generic HTTP-shaped exceptions plus the ledger/checkout error taxonomy.
Every ledger error carries a stable ``kind`` so callers can branch on it
without parsing messages; the human-readable ``message`` is what the admin
screen and checkout page show inline.
"""
from typing import Optional, Dict, Any, List

from fastapi import status


class AppException(Exception):
    """Base application exception."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, resource: str, resource_id: Optional[str] = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with id '{resource_id}' not found"
        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "resource_id": resource_id},
        )


class BadRequestException(AppException):
    """Bad request exception."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details or {},
        )


# ===== Ledger / checkout taxonomy =====

class LedgerError(AppException):
    """
    Recoverable business-rule violation.

    Raised by the booking ledger, cart pricing and discount engines. The
    operation that raised it has not mutated anything.
    """

    kind: str = "LedgerError"
    default_status: int = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=self.default_status,
            details=details,
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = {"kind": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidAmount(LedgerError):
    kind = "InvalidAmount"
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class LimitExceeded(LedgerError):
    kind = "LimitExceeded"
    default_status = status.HTTP_409_CONFLICT


class AlreadyFined(LedgerError):
    kind = "AlreadyFined"
    default_status = status.HTTP_409_CONFLICT


class InvalidSlot(LedgerError):
    kind = "InvalidSlot"
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY


class Unauthorized(LedgerError):
    """The record is not in a state that allows the requested operation."""

    kind = "Unauthorized"
    default_status = status.HTTP_403_FORBIDDEN


class BookingNotActionable(Unauthorized):
    def __init__(self, booking_status: str, operation: str):
        super().__init__(
            f"Cannot {operation} a booking that is {booking_status}",
            details={"status": booking_status, "operation": operation},
        )


class MissingRequiredService(LedgerError):
    kind = "MissingRequiredService"
    default_status = status.HTTP_422_UNPROCESSABLE_ENTITY

    def __init__(self, missing: List[str]):
        self.missing = list(missing)
        super().__init__(
            "The following required services must be added to your cart before checkout: "
            + ", ".join(self.missing),
            details={"missing": self.missing},
        )


class HighValueOrder(LedgerError):
    kind = "HighValueOrder"
    default_status = status.HTTP_409_CONFLICT


class CodeAlreadyApplied(LedgerError):
    kind = "CodeAlreadyApplied"
    default_status = status.HTTP_409_CONFLICT


class DiscountCodeError(LedgerError):
    """Base for every discount-code rejection."""

    kind = "DiscountCodeError"


class CodeNotFound(DiscountCodeError):
    kind = "NotFound"
    default_status = status.HTTP_404_NOT_FOUND


class CodeInactive(DiscountCodeError):
    kind = "Inactive"


class CodeExpired(DiscountCodeError):
    kind = "Expired"


class IdentifierRequired(DiscountCodeError):
    kind = "IdentifierRequired"


class AlreadyUsedByUser(DiscountCodeError):
    kind = "AlreadyUsedByUser"


class NotFirstTimeUser(DiscountCodeError):
    kind = "NotFirstTimeUser"


class ExhaustedPool(DiscountCodeError):
    kind = "ExhaustedPool"


class BelowMinimum(DiscountCodeError):
    kind = "BelowMinimum"

    def __init__(self, subtotal: float, minimum: float):
        super().__init__(
            f"Minimum order value is {minimum:,.0f} KES. Your cart total is {subtotal:,.0f} KES.",
            details={"subtotal": subtotal, "minimum": minimum},
        )
