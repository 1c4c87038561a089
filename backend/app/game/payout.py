from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CURRENCY_QUANTUM = Decimal("0.01")
ODDS_QUANTUM = Decimal("0.0001")

# Largest values the Numeric(12, 2) money columns and Numeric(8, 4) odds column can hold.
MAX_MONEY = Decimal("9999999999.99")
MAX_ODDS = Decimal("9999.9999")


def _to_decimal(value: Decimal | int | float | str) -> Decimal:
    try:
        amount = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Not a monetary amount: {value!r}")
    return amount


def to_money(value: Decimal | int | float | str) -> Decimal:
    """Coerce ``value`` to a Decimal on the smallest currency unit."""
    return _to_decimal(value).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)


def to_odds(value: Decimal | int | float | str) -> Decimal:
    """Odds at the precision they are stored with, so the frozen payout can be recomputed."""
    return _to_decimal(value).quantize(ODDS_QUANTUM, rounding=ROUND_HALF_UP)


def compute_payout(entry_fee: Decimal, odds: Decimal) -> Decimal:
    """
    Amount credited to the winner of a room.

    Rounded half-up to 0.01 once, at room creation. The stored value is never
    recomputed, so later changes to the default odds do not touch live rooms.
    """
    if entry_fee < 0:
        raise ValueError("Entry fee cannot be negative")
    if odds <= 0:
        raise ValueError("Odds must be positive")
    return (Decimal(entry_fee) * Decimal(odds)).quantize(CURRENCY_QUANTUM, rounding=ROUND_HALF_UP)
