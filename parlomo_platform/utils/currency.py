"""
Money helpers. Every amount handled by the platform is an integer in minor
units (pence / cents).
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, Decimal]

CURRENCY_SYMBOLS = {
    "GBP": "£",
    "USD": "$",
    "EUR": "€",
}


def round_half_up(value: Number) -> int:
    """Round to the nearest integer with halves going up (2.5 -> 3)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_currency(amount: int, currency: str = "GBP") -> str:
    """
    Format a minor-unit amount for display.

    Args:
        amount: Amount in minor units
        currency: ISO currency code

    Returns:
        Display string such as ``£12.50`` or ``-$3.00``
    """
    code = (currency or "GBP").upper()
    sign = "-" if amount < 0 else ""
    major = Decimal(abs(int(amount))) / Decimal(100)
    formatted = f"{major:,.2f}"
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol:
        return f"{sign}{symbol}{formatted}"
    return f"{sign}{formatted} {code}"


def calculate_percentage(amount: Number, total: Number) -> float:
    """Share of ``total`` represented by ``amount`` (0-100)."""
    if not total:
        return 0.0
    return float(amount) / float(total) * 100


def calculate_tax(amount: int, tax_rate: float = 0) -> int:
    """Tax on ``amount`` at ``tax_rate`` percent; zero or negative rates give 0."""
    if not tax_rate or tax_rate <= 0:
        return 0
    return round_half_up(Decimal(amount) * Decimal(str(tax_rate)) / 100)


def apply_discount(amount: int, discount_type: str, discount_value: Number) -> int:
    """
    Discount to take off ``amount``.

    Percentage discounts round half up; fixed discounts never exceed the
    amount. Unknown types give no discount.
    """
    if amount <= 0:
        return 0
    if discount_type in ("percentage", "percent"):
        return min(amount, round_half_up(Decimal(amount) * Decimal(str(discount_value)) / 100))
    if discount_type == "fixed":
        return min(int(discount_value), amount)
    return 0
