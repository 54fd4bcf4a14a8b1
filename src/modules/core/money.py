"""Money helpers.

Amounts are ``Decimal`` with two places (minor unit = paise); every rounding
is ``ROUND_HALF_UP`` to the minor unit.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Coerce *value* to a two-place ``Decimal`` rounding half up."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def money_sum(values: Iterable[Decimal]) -> Decimal:
    return to_money(sum(values, ZERO))


def allocate(total: Decimal, weights: List[Decimal]) -> List[Decimal]:
    """Split *total* across *weights* proportionally.

    Uses the largest-remainder method on minor units so the parts always
    sum to exactly *total*. Ties go to the earliest weight.
    """
    total = to_money(total)
    if not weights:
        return []
    weight_sum = sum(weights, Decimal("0"))
    if weight_sum <= 0 or total == ZERO:
        return [ZERO for _ in weights]

    cents = int(total / CENT)
    raw = [Decimal(cents) * w / weight_sum for w in weights]
    floors = [int(r) for r in raw]
    leftover = cents - sum(floors)
    by_remainder = sorted(
        range(len(weights)), key=lambda i: (-(raw[i] - floors[i]), i)
    )
    for index in by_remainder[:leftover]:
        floors[index] += 1
    return [Decimal(c) * CENT for c in floors]
