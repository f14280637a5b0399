"""
Payment gateway port.

Paystack and M-Pesa STK pushes both follow the same shape: start a charge,
get back a request id, later confirm it. The booking service only talks to
this port; a confirmed PaymentResult is recorded on the ledger with the
request id as its reference, so a replayed confirmation is a no-op.
"""
import enum
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Optional, Union
from uuid import uuid4

from lashdesk.lib.errors import BadRequestException
from lashdesk.lib.logging import get_logger
from lashdesk.schemas.booking import PaymentMethod


logger = get_logger(__name__)


class PaymentOutcome(str, enum.Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class PaymentHandle:
    reference: str
    amount: float
    payer_ref: str
    method: PaymentMethod
    booking_id: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class PaymentResult:
    reference: str
    outcome: PaymentOutcome
    amount: float = 0.0
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == PaymentOutcome.SUCCEEDED


class PaymentGateway(ABC):
    """
    Abstract gateway. Implementations do one attempt per call; retrying is
    the caller's decision.
    """

    method: PaymentMethod

    @abstractmethod
    async def initiate(self, amount: float, payer_ref: str, booking_id: Optional[str] = None) -> PaymentHandle:
        """
        Start a charge.

        Args:
            amount: Amount in KES
            payer_ref: Phone number (M-Pesa) or email (Paystack)
            booking_id: Booking the charge settles, echoed back on the handle
        """
        pass

    @abstractmethod
    def lookup(self, reference: str) -> Optional[PaymentHandle]:
        """Find a charge started through this gateway, None if unknown."""
        pass

    @abstractmethod
    async def verify(self, handle: PaymentHandle) -> PaymentResult:
        """Ask the gateway whether the charge went through."""
        pass


class ConsolePaymentGateway(PaymentGateway):
    """
    Development gateway: every charge succeeds unless the payer reference is
    listed in ``failing_payers``.
    """

    def __init__(self, method: PaymentMethod = PaymentMethod.MPESA, failing_payers=()):
        self.method = method
        self.failing_payers = set(failing_payers)
        self._charges: Dict[str, PaymentHandle] = {}

    async def initiate(self, amount: float, payer_ref: str, booking_id: Optional[str] = None) -> PaymentHandle:
        if amount <= 0:
            raise BadRequestException("Charge amount must be greater than zero", details={"amount": amount})
        handle = PaymentHandle(
            reference=f"ws_CO_{uuid4().hex[:20]}",
            amount=amount,
            payer_ref=payer_ref,
            method=self.method,
            booking_id=booking_id,
        )
        self._charges[handle.reference] = handle
        logger.info(
            "Charge initiated (console gateway)",
            extra={"reference": handle.reference, "amount": amount, "method": self.method.value},
        )
        return handle

    def lookup(self, reference: str) -> Optional[PaymentHandle]:
        return self._charges.get(reference)

    async def verify(self, handle: PaymentHandle) -> PaymentResult:
        if handle.reference not in self._charges:
            return PaymentResult(handle.reference, PaymentOutcome.FAILED, message="Unknown charge reference")
        if handle.payer_ref in self.failing_payers:
            return PaymentResult(handle.reference, PaymentOutcome.FAILED, message="Request cancelled by user")
        return PaymentResult(handle.reference, PaymentOutcome.SUCCEEDED, amount=handle.amount)


_gateways: Dict[PaymentMethod, PaymentGateway] = {}


def get_gateway(method: Union[PaymentMethod, str]) -> PaymentGateway:
    """
    Process-wide gateway for a payment method; console gateways unless replaced.

    Raises:
        BadRequestException: cash, or an unknown method
    """
    try:
        method = PaymentMethod(method)
    except ValueError:
        raise BadRequestException(f"Unsupported payment method: {method}")
    if method == PaymentMethod.CASH:
        raise BadRequestException("Cash payments are recorded directly, not through a gateway")
    if method not in _gateways:
        _gateways[method] = ConsolePaymentGateway(method=method)
    return _gateways[method]


def set_gateway(gateway: PaymentGateway) -> None:
    _gateways[gateway.method] = gateway


def reset_gateways() -> None:
    _gateways.clear()
