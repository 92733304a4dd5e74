from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from types import MappingProxyType

# Emission schedule: cycle 1 mints at par, each later cycle 4 points lower.
CYCLE_FACTORS = MappingProxyType({
    1:  Decimal("1.00"),
    2:  Decimal("0.96"),
    3:  Decimal("0.92"),
    4:  Decimal("0.88"),
    5:  Decimal("0.84"),
    6:  Decimal("0.80"),
    7:  Decimal("0.76"),
    8:  Decimal("0.72"),
    9:  Decimal("0.68"),
    10: Decimal("0.64"),
    11: Decimal("0.60"),
    12: Decimal("0.56"),
    13: Decimal("0.52"),
    14: Decimal("0.48"),
})

DEFAULT_FACTOR = Decimal("1.0")


def factor(cycle_id: int) -> Decimal:
    """Conversion factor for a mint cycle; cycles outside the schedule mint at par."""
    if cycle_id in CYCLE_FACTORS:
        return CYCLE_FACTORS[cycle_id]
    return DEFAULT_FACTOR


def scale(cycle_id: int) -> int:
    """Factor in hundredths, rounded to the nearest integer (never below 1)."""
    hundredths = (factor(cycle_id) * 100).to_integral_value(rounding=ROUND_HALF_UP)
    return max(1, int(hundredths))


def titanx_for(morpheus_amount: int, cycle_id: int) -> int:
    return (morpheus_amount * 100) // scale(cycle_id)
