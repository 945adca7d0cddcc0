"""
Money Utilities - Decimal operations for prices and cart totals.

Prices arrive from Supabase as JSON numbers; converting through str keeps
0.1 + 0.2 style float noise out of subtotals.
"""
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

Number = Union[str, int, float, Decimal]

MONEY_PRECISION = Decimal("0.01")

CURRENCY_SYMBOLS = {
    "INR": "₹",
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
}


def to_decimal(value: Union[Number, None]) -> Decimal:
    """
    Convert any value to Decimal safely.

    Returns Decimal("0") for None or unparseable input.
    """
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, ValueError, TypeError):
        return Decimal("0")


def round_money(value: Number) -> Decimal:
    """Round to two decimal places, half up."""
    return to_decimal(value).quantize(MONEY_PRECISION, rounding=ROUND_HALF_UP)


def multiply(value: Number, factor: Number) -> Decimal:
    """Multiply a monetary value by a factor (e.g. unit price by quantity)."""
    return to_decimal(value) * to_decimal(factor)


def to_float(value: Number) -> float:
    """
    Convert to float for JSON output.

    Use only at API/display boundaries, not for internal calculations.
    """
    return float(round_money(value))


def format_money(value: Number, currency: str = "INR") -> str:
    """
    Format a monetary value with its currency symbol.

    >>> format_money(Decimal("1499.5"))
    '₹1,499.50'
    """
    symbol = CURRENCY_SYMBOLS.get(currency.upper())
    formatted = f"{round_money(value):,.2f}"
    if symbol is None:
        return f"{formatted} {currency.upper()}"
    return f"{symbol}{formatted}"
