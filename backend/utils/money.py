# backend/utils/money.py
from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def to_minor_units(amount) -> int:
    # Round half up once, at the major -> minor boundary
    return int((Decimal(amount) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def from_minor_units(amount_minor: int) -> Decimal:
    return (Decimal(amount_minor) / 100).quantize(CENT)


def quantize(amount) -> Decimal:
    return Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
