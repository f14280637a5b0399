"""
Currency conversion and formatting.

Ledgers are kept in the base currency (KES by default). Conversions go
through KES with a configurable USD rate.
"""
import enum
import re
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Union

from pydantic import BaseModel, Field

from lashdesk.lib.settings import settings


Number = Union[int, float, Decimal]


class Currency(str, enum.Enum):
    KES = "KES"
    USD = "USD"


CURRENCY_SYMBOLS = {
    Currency.KES: "KSH",
    Currency.USD: "$",
}

DEFAULT_EXCHANGE_RATE_USD = 130.0


def base_currency() -> Currency:
    """Currency the ledgers are kept in (``LASHDESK_BASE_CURRENCY``)."""
    return Currency(settings.base_currency.upper())


class ExchangeRates(BaseModel):
    """1 USD = ``usd_to_kes`` KES."""

    usd_to_kes: float = Field(default=DEFAULT_EXCHANGE_RATE_USD, gt=0)

    @classmethod
    def from_settings(cls) -> "ExchangeRates":
        return cls(usd_to_kes=settings.usd_to_kes_rate)


def round_amount(value: Number, places: int = 0) -> float:
    """
    Round half away from zero.

    Python's round() is banker's rounding, which would turn 0.5 KES into 0;
    money here always rounds half-up.
    """
    quantum = Decimal(1).scaleb(-places)
    rounded = Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    return float(rounded)


def convert(
    amount: Number,
    from_currency: Currency,
    to_currency: Currency,
    rates: Optional[ExchangeRates] = None,
) -> float:
    """
    Convert between currencies via KES.

    KES results are rounded to whole shillings, USD results to cents.
    """
    from_currency = Currency(from_currency)
    to_currency = Currency(to_currency)
    if from_currency == to_currency:
        return float(amount)

    rates = rates or ExchangeRates.from_settings()

    amount_in_kes = float(amount)
    if from_currency == Currency.USD:
        amount_in_kes = float(amount) * rates.usd_to_kes

    if to_currency == Currency.USD:
        return round_amount(amount_in_kes / rates.usd_to_kes, places=2)

    return round_amount(amount_in_kes)


def format_currency(amount: Number, currency: Optional[Currency] = None) -> str:
    """Format for display: ``KSH 22,000`` or ``$169.23``. Defaults to the base currency."""
    currency = Currency(currency) if currency else base_currency()
    symbol = CURRENCY_SYMBOLS[currency]
    if currency == Currency.USD:
        return f"{symbol}{round_amount(amount, places=2):,.2f}"
    return f"{symbol} {round_amount(amount):,.0f}"


def format_currency_compact(amount: Number, currency: Optional[Currency] = None) -> str:
    currency = Currency(currency) if currency else base_currency()
    symbol = CURRENCY_SYMBOLS[currency]
    if currency == Currency.USD:
        return f"{symbol}{round_amount(amount, places=2):.2f}"
    return f"{symbol} {round_amount(amount):,.0f}"


def parse_currency_amount(value: str) -> float:
    """Parse user input like ``KSH 1,500`` into a number; garbage parses as 0."""
    cleaned = re.sub(r"[^\d.,]", "", value or "").replace(",", "")
    try:
        return float(cleaned)
    except ValueError:
        return 0.0
