"""Decimal-exact conversion between display amounts and base units."""

from decimal import Decimal, InvalidOperation, getcontext

# Enough precision for uint256 amounts with 18 decimals
getcontext().prec = 80


def parse_units(amount: str, decimals: int) -> int:
    """Convert a human amount string into integer base units.

    Raises:
        ValueError: If the amount is not a positive number or has more
            fractional digits than the token supports.
    """
    try:
        value = Decimal(str(amount).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {amount!r}")

    if not value.is_finite() or value <= 0:
        raise ValueError(f"Amount must be positive, got {amount!r}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} has more than {decimals} decimal places")
    return int(scaled)


def format_units(amount: int, decimals: int) -> str:
    """Exact decimal string for base units, trailing zeros trimmed."""
    value = Decimal(amount).scaleb(-decimals)
    text = format(value, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def format_amount(amount: int, decimals: int, symbol: str) -> str:
    """Display an amount, exact for dust and rounded to 6 places otherwise."""
    exact = format_units(amount, decimals)
    value = Decimal(amount).scaleb(-decimals)
    if value < Decimal("0.0001"):
        return f"{exact} {symbol}"

    rounded = value.quantize(Decimal("0.000001")).normalize()
    integral, _, fraction = format(rounded, "f").partition(".")
    integral = f"{int(integral):,}"
    return f"{integral}.{fraction} {symbol}" if fraction else f"{integral} {symbol}"
