"""Integer fixed-point helpers shared by the deposit and reallocation math.

Every amount handled here is a plain ``int``. Division always floors and any
remainder is handed to a single, explicitly chosen index so that totals are
conserved exactly.
"""

from __future__ import annotations

from typing import Optional, Sequence

from .errors import ArithmeticBoundsError, ConfigurationError

PRECISION = 10**42
FULL_PERCENT = 10_000
TOLERANCE_PRECISION = 10_000


def ensure_int(value: object, *, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {type(value).__name__}")
    return value


def ensure_non_negative(values: Sequence[int], *, name: str) -> list[int]:
    out: list[int] = []
    for index, value in enumerate(values):
        amount = ensure_int(value, name=f"{name}[{index}]")
        if amount < 0:
            raise ConfigurationError(f"{name}[{index}] must not be negative")
        out.append(amount)
    return out


def mul_div(value: int, numerator: int, denominator: int) -> int:
    """Return ``floor(value * numerator / denominator)`` without intermediate rounding."""

    if denominator == 0:
        raise ArithmeticBoundsError("division by a zero total")
    return (value * numerator) // denominator


def last_nonzero_index(weights: Sequence[int]) -> Optional[int]:
    for index in range(len(weights) - 1, -1, -1):
        if weights[index] != 0:
            return index
    return None


def split_with_residual(amount: int, weights: Sequence[int]) -> list[int]:
    """Split ``amount`` proportionally to ``weights``.

    Every weight receives its floored share except the last non-zero weight, which
    absorbs the residual. The parts always sum to ``amount``.
    """

    if not weights:
        raise ConfigurationError("cannot split an amount across zero weights")
    total = sum(weights)
    parts = [0] * len(weights)
    if amount == 0:
        return parts
    residual_index = last_nonzero_index(weights)
    if total == 0 or residual_index is None:
        raise ArithmeticBoundsError("cannot split a positive amount across zero total weight")

    distributed = 0
    for index, weight in enumerate(weights):
        if index == residual_index:
            continue
        share = mul_div(amount, weight, total)
        parts[index] = share
        distributed += share
    parts[residual_index] = amount - distributed
    return parts


def relative_deviation_exceeds(
    actual: int,
    ideal: int,
    *,
    tolerance: int,
    precision: int = TOLERANCE_PRECISION,
) -> bool:
    """Return True when ``|actual - ideal| / ideal > tolerance / precision``.

    ``actual`` and ``ideal`` are cross products sharing a denominator, so the check
    is exact. A zero ``ideal`` only admits a zero ``actual``.
    """

    return abs(actual - ideal) * precision > tolerance * ideal


def deviation_bps(actual: int, ideal: int) -> Optional[int]:
    if ideal == 0:
        return None if actual else 0
    return abs(actual - ideal) * FULL_PERCENT // ideal


__all__ = [
    "FULL_PERCENT",
    "PRECISION",
    "TOLERANCE_PRECISION",
    "deviation_bps",
    "ensure_int",
    "ensure_non_negative",
    "last_nonzero_index",
    "mul_div",
    "relative_deviation_exceeds",
    "split_with_residual",
]
