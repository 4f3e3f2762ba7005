"""
Values -- Decimal money helpers.

Responsibility:
    Single place where monetary inputs are coerced to ``Decimal`` and
    rounded.  The engine bills in one currency, so amounts are plain
    ``Decimal`` values rather than currency-tagged objects.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Monetary amounts are Decimal, never float.  ``to_decimal`` rejects
      floats outright so binary rounding noise cannot enter a total.
    - Rounding is ROUND_HALF_UP to the configured number of places.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
CENT = Decimal("0.01")
MONEY_PLACES = 2


def to_decimal(value: Decimal | int | str) -> Decimal:
    """
    Coerce a monetary input to Decimal.

    Raises:
        TypeError: If ``value`` is a float (or bool).
        ValueError: If ``value`` is not a valid decimal literal.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, (bool, float)):
        raise TypeError(f"Monetary amounts must not be {type(value).__name__}: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as e:
        raise ValueError(f"Invalid amount: {value!r}") from e


def round_money(amount: Decimal, places: int = MONEY_PLACES) -> Decimal:
    """Round to ``places`` decimals, half up."""
    quantum = Decimal(1).scaleb(-places)
    return amount.quantize(quantum, rounding=ROUND_HALF_UP)


def floor_whole(amount: Decimal) -> Decimal:
    """Round down to a whole unit."""
    return amount.quantize(Decimal("1"), rounding=ROUND_FLOOR)


def sum_money(amounts) -> Decimal:
    """Sum an iterable of Decimals starting from an exact zero."""
    total = ZERO
    for a in amounts:
        total += a
    return total
