"""Integer minor-unit money helpers.

All ledger arithmetic happens on integer cents. Decimals only appear at the
boundary: parsing caller input and presenting values back.
$10.00 = 1000 cents.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

CENTS_PER_UNIT = 100
_TWO_PLACES = Decimal("0.01")


def round_half_up(value: Decimal | int) -> int:
    """Round a (possibly fractional) cent amount to whole cents, half away from zero."""
    return int(Decimal(value).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def to_cents(amount: Decimal | int | str) -> int:
    """
    Convert a major-unit amount ("27.50", Decimal("27.5"), 27) to cents.

    Floats are rejected outright; they cannot represent most cent values.

    Raises:
        ValueError: If the amount is a float, unparseable, or has sub-cent precision
    """
    if isinstance(amount, float):
        raise ValueError("Monetary amounts must be Decimal, int or str, not float")

    try:
        value = Decimal(str(amount))
    except InvalidOperation:
        raise ValueError(f"Invalid monetary amount: {amount!r}")

    if not value.is_finite():
        raise ValueError(f"Invalid monetary amount: {amount!r}")

    cents = value * CENTS_PER_UNIT
    if cents != cents.to_integral_value():
        raise ValueError(f"Amount {amount} has more precision than one cent")

    return int(cents)


def from_cents(cents: int) -> Decimal:
    """Present an integer cent amount as a two-place Decimal."""
    return (Decimal(cents) / CENTS_PER_UNIT).quantize(_TWO_PLACES)


def apply_rate(cents: int, rate: Decimal) -> int:
    """cents * rate, rounded half-up to whole cents."""
    return round_half_up(Decimal(cents) * rate)


def apply_bps(cents: int, bps: int) -> int:
    """Apply a basis-point rate (10000 = 100%) with half-up rounding."""
    return round_half_up(Decimal(cents) * bps / 10000)


def rate_to_bps(rate: Decimal | str) -> int:
    """
    Convert a fractional rate (Decimal("0.0825")) to whole basis points (825).

    Raises:
        ValueError: If the rate is negative or finer than one basis point
    """
    value = Decimal(str(rate)) * 10000
    if value < 0:
        raise ValueError(f"Rate must be non-negative, got {rate}")
    if value != value.to_integral_value():
        raise ValueError(f"Rate {rate} is finer than one basis point")
    return int(value)
