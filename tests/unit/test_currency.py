"""
Unit tests for currency helpers.
"""
import pytest

from lashdesk.lib.currency import (
    Currency,
    ExchangeRates,
    base_currency,
    convert,
    format_currency,
    format_currency_compact,
    parse_currency_amount,
    round_amount,
)
from lashdesk.lib.settings import settings


@pytest.mark.unit
@pytest.mark.parametrize(
    "value,places,expected",
    [
        (0.5, 0, 1.0),
        (2.5, 0, 3.0),
        (-0.5, 0, -1.0),
        (1.005, 2, 1.01),
        (3300.4999, 0, 3300.0),
    ],
)
def test_round_amount_half_up(value, places, expected):
    assert round_amount(value, places=places) == expected


@pytest.mark.unit
def test_convert_same_currency_is_identity():
    assert convert(1234.5, Currency.KES, "KES") == 1234.5


@pytest.mark.unit
def test_convert_via_rate():
    rates = ExchangeRates(usd_to_kes=130)

    assert convert(1, Currency.USD, Currency.KES, rates) == 130
    assert convert(22000, Currency.KES, Currency.USD, rates) == 169.23


@pytest.mark.unit
def test_convert_default_rate_from_settings():
    assert convert(10, "USD", "KES") == 1300


@pytest.mark.unit
def test_exchange_rate_must_be_positive():
    with pytest.raises(ValueError):
        ExchangeRates(usd_to_kes=0)


@pytest.mark.unit
def test_format_currency():
    assert format_currency(22000) == "KSH 22,000"
    assert format_currency(169.234, Currency.USD) == "$169.23"
    assert format_currency_compact(1500.4) == "KSH 1,500"
    assert format_currency_compact(1234.5, "USD") == "$1234.50"


@pytest.mark.unit
def test_format_defaults_to_base_currency(monkeypatch):
    monkeypatch.setattr(settings, "base_currency", "usd")

    assert base_currency() == Currency.USD
    assert format_currency(169.234) == "$169.23"
    assert format_currency(22000, Currency.KES) == "KSH 22,000"


@pytest.mark.unit
@pytest.mark.parametrize(
    "raw,expected",
    [("KSH 1,500", 1500.0), ("$12.50", 12.5), ("", 0.0), ("free", 0.0)],
)
def test_parse_currency_amount(raw, expected):
    assert parse_currency_amount(raw) == expected
