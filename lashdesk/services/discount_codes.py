"""
Discount code validation for Labs checkout.

check_discount_code raises on the first failed rule; validate_discount_code
wraps it into a DiscountValidation result for the checkout page. Codes are
matched case-insensitively and user identifiers (emails) are compared
lower-cased.
"""
import enum
import secrets
from datetime import datetime, timezone
from typing import Callable, Optional

from lashdesk.lib.currency import round_amount
from lashdesk.lib.errors import (
    AlreadyUsedByUser,
    BelowMinimum,
    CodeAlreadyApplied,
    CodeExpired,
    CodeInactive,
    CodeNotFound,
    DiscountCodeError,
    ExhaustedPool,
    IdentifierRequired,
    NotFirstTimeUser,
)
from lashdesk.lib.logging import get_logger
from lashdesk.lib.pricing_config import get_cart_rules
from lashdesk.schemas.discount import DiscountCode, DiscountType, DiscountValidation


logger = get_logger(__name__)

# No 0/O or 1/I, they get misread on printed cards
CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().upper()


def normalize_identifier(identifier: Optional[str]) -> Optional[str]:
    if identifier is None:
        return None
    identifier = identifier.strip().lower()
    return identifier or None


def generate_code(length: int = 8) -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def compute_discount_amount(code: DiscountCode, subtotal: float) -> float:
    """Percentage codes round to whole shillings; the result never exceeds the subtotal."""
    if code.discount_type == DiscountType.PERCENTAGE:
        amount = round_amount(subtotal * code.discount_value / 100)
    else:
        amount = code.discount_value
    return max(min(amount, subtotal), 0.0)


def check_discount_code(
    code_record: Optional[DiscountCode],
    code: str,
    user_identifier: Optional[str],
    cart_subtotal: float,
    minimum_cart_value: Optional[float] = None,
    has_prior_orders: bool = False,
    now: Optional[datetime] = None,
) -> float:
    """
    Run every rule against a stored code and return the discount amount.

    Args:
        code_record: Stored code matching ``code`` (None when no match)
        code: Code as typed by the client
        user_identifier: Client email; required for first-time-only codes
        cart_subtotal: Pre-discount subtotal from cart_subtotal()
        minimum_cart_value: Defaults to the cart rules
        has_prior_orders: Client already placed a Labs order
        now: Clock override

    Raises:
        DiscountCodeError subclass for the first rule that fails
    """
    now = now or datetime.now(timezone.utc)
    identifier = normalize_identifier(user_identifier)

    if code_record is None or code_record.code != normalize_code(code):
        raise CodeNotFound("Invalid discount code", details={"code": normalize_code(code)})

    if not code_record.is_active:
        raise CodeInactive("This discount code is no longer active")

    if code_record.expires_at is not None and code_record.expires_at < now:
        raise CodeExpired("This discount code has expired")

    if code_record.is_first_time_only and identifier is None:
        raise IdentifierRequired("Email is required to validate first-time user discount code")

    if identifier is not None and identifier in code_record.used_by:
        raise AlreadyUsedByUser("You have already used this discount code")

    if code_record.is_first_time_only and has_prior_orders:
        raise NotFirstTimeUser("This discount code is only available for first-time users")

    if code_record.max_uses is not None and code_record.used_count >= code_record.max_uses:
        raise ExhaustedPool("This discount code has already been used the maximum number of times")

    minimum = get_cart_rules().minimum_cart_value if minimum_cart_value is None else minimum_cart_value
    if cart_subtotal < minimum:
        raise BelowMinimum(cart_subtotal, minimum)

    return compute_discount_amount(code_record, cart_subtotal)


def validate_discount_code(
    code_record: Optional[DiscountCode],
    code: str,
    user_identifier: Optional[str],
    cart_subtotal: float,
    minimum_cart_value: Optional[float] = None,
    has_prior_orders: bool = False,
    now: Optional[datetime] = None,
) -> DiscountValidation:
    """Same rules as check_discount_code, reported as a result instead of raised."""
    try:
        amount = check_discount_code(
            code_record,
            code,
            user_identifier,
            cart_subtotal,
            minimum_cart_value=minimum_cart_value,
            has_prior_orders=has_prior_orders,
            now=now,
        )
    except DiscountCodeError as exc:
        logger.info(
            "Discount code rejected",
            extra={"code": normalize_code(code), "reason": exc.kind},
        )
        return DiscountValidation(valid=False, code=normalize_code(code), error=exc.kind, message=exc.message)

    return DiscountValidation(
        valid=True,
        code=code_record.code,
        discount_type=code_record.discount_type,
        discount_value=code_record.discount_value,
        discount_amount=amount,
        remaining_uses=code_record.remaining_uses,
    )


class CodeState(str, enum.Enum):
    NO_CODE = "no_code"
    VALIDATING = "validating"
    APPLIED = "applied"
    REJECTED = "rejected"


class DiscountCodeSession:
    """
    Discount-code state for one checkout session.

    NO_CODE -> VALIDATING -> APPLIED | REJECTED. An applied code has to be
    removed before another one can be validated; a rejected one can be
    retried straight away.
    """

    def __init__(self):
        self.state = CodeState.NO_CODE
        self.result: Optional[DiscountValidation] = None

    @property
    def discount_amount(self) -> float:
        if self.state == CodeState.APPLIED and self.result is not None:
            return self.result.discount_amount
        return 0.0

    @property
    def code(self) -> Optional[str]:
        if self.state == CodeState.APPLIED and self.result is not None:
            return self.result.code
        return None

    def apply(self, validator: Callable[[], DiscountValidation]) -> DiscountValidation:
        """
        Validate a code and move to APPLIED or REJECTED.

        Args:
            validator: Zero-argument callable running the validation, usually
                a functools.partial over validate_discount_code

        Raises:
            CodeAlreadyApplied: a code is already applied to this session
        """
        if self.state == CodeState.APPLIED:
            raise CodeAlreadyApplied("Remove the applied discount code before entering another one")

        self.state = CodeState.VALIDATING
        try:
            result = validator()
        except Exception:
            self.state = CodeState.REJECTED
            self.result = None
            raise

        self.result = result
        self.state = CodeState.APPLIED if result.valid else CodeState.REJECTED
        return result

    def remove(self) -> None:
        self.state = CodeState.NO_CODE
        self.result = None
