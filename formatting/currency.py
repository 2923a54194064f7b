"""
Currency display formatting.

All amounts in the system are LKR.  Other currencies are shown by applying a
fixed approximate exchange rate (April 2025).  Rupee currencies put the
symbol after the amount ("1100.00 Rs"); the rest put it before ("$3.63").
"""

import logging
import math
from decimal import ROUND_HALF_UP, Decimal

from config import DEFAULT_CURRENCY

logger = logging.getLogger(__name__)

BASE_CURRENCY = "LKR"

# 1 LKR in each currency
EXCHANGE_RATES: dict[str, float] = {
    "LKR": 1.0,
    "USD": 0.0033,
    "EUR": 0.0030,
    "GBP": 0.0026,
    "INR": 0.27,
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "LKR": "Rs",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "INR": "₹",
}

CURRENCY_LABELS: dict[str, str] = {
    "LKR": "Sri Lankan Rupee",
    "USD": "US Dollar",
    "EUR": "Euro",
    "GBP": "British Pound",
    "INR": "Indian Rupee",
}

SUPPORTED_CURRENCIES: tuple[str, ...] = tuple(EXCHANGE_RATES)

_SYMBOL_AFTER = {"LKR", "INR"}


def resolve_currency(currency: str | None) -> str:
    """Upper-case and validate a currency code, falling back to the default."""
    code = (currency or DEFAULT_CURRENCY).strip().upper()
    if code not in EXCHANGE_RATES:
        logger.warning("Unsupported currency %r; formatting as %s.", currency, BASE_CURRENCY)
        return BASE_CURRENCY
    return code


def convert(amount: float, currency: str) -> float:
    """Convert an LKR amount into `currency` at the fixed rate."""
    return amount * EXCHANGE_RATES[resolve_currency(currency)]


def list_currencies() -> list[dict[str, str | float]]:
    return [
        {
            "code": code,
            "name": CURRENCY_LABELS[code],
            "symbol": CURRENCY_SYMBOLS[code],
            "rate": EXCHANGE_RATES[code],
        }
        for code in SUPPORTED_CURRENCIES
    ]


def format_price(amount: float, currency: str | None = None) -> str:
    """
    Raises:
        ValueError: amount is NaN or infinite.
    """
    if not math.isfinite(amount):
        raise ValueError(f"Amount must be a finite number, got {amount}.")
    code = resolve_currency(currency)
    converted = Decimal(str(amount * EXCHANGE_RATES[code])).quantize(
        Decimal("0.01"), rounding=ROUND_HALF_UP
    )
    symbol = CURRENCY_SYMBOLS[code]
    if code in _SYMBOL_AFTER:
        return f"{converted} {symbol}"
    return f"{symbol}{converted}"
