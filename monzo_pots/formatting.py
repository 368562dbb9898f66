from __future__ import annotations

from decimal import Decimal

from babel.numbers import format_currency, get_currency_precision

from .constants import DEFAULT_CURRENCY_LOCALE


def format_amount(minor_units: int, currency: str, locale: str = DEFAULT_CURRENCY_LOCALE) -> str:
    """Render an amount in minor units (pence, cents) as a currency string.

    The number of minor units per major unit follows the currency, so JPY is
    not divided at all while GBP is divided by 100.
    """
    currency = currency.upper()
    precision = get_currency_precision(currency)
    amount = Decimal(minor_units).scaleb(-precision)
    return format_currency(amount, currency, locale=locale)
