"""Deposit ratio validation against the ideal ratio."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .config import get_settings
from .deposits import calculate_deposit_ratio
from .errors import ConfigurationError, IncorrectDepositRatio
from .fixed_point import (
    TOLERANCE_PRECISION,
    deviation_bps,
    ensure_non_negative,
    relative_deviation_exceeds,
)


@dataclass(frozen=True)
class AssetDeviation:
    asset_index: int
    actual: int
    ideal: int
    deviation_bps: Optional[int]
    within_tolerance: bool


def _resolve_tolerance(tolerance_bps: Optional[int]) -> int:
    tolerance = get_settings().deposit_tolerance_bps if tolerance_bps is None else tolerance_bps
    if tolerance < 0 or tolerance > TOLERANCE_PRECISION:
        raise ConfigurationError(f"tolerance must be within 0..{TOLERANCE_PRECISION} bps")
    return tolerance


def deposit_deviations(
    deposit: Sequence[int],
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
    *,
    tolerance_bps: Optional[int] = None,
) -> list[AssetDeviation]:
    """Compare every non-reference asset of ``deposit`` with the ideal ratio.

    Ratios are compared relative to asset 0 using cross products, so
    ``actual = deposit[a] * ideal[0]`` and ``ideal = deposit[0] * ideal[a]`` share
    the denominator ``deposit[0] * ideal[0]``.
    """

    amounts = ensure_non_negative(deposit, name="deposit")
    if len(amounts) != len(exchange_rates):
        raise ConfigurationError(
            f"deposit has {len(amounts)} entries for {len(exchange_rates)} assets"
        )
    tolerance = _resolve_tolerance(tolerance_bps)
    ideal_ratio = calculate_deposit_ratio(exchange_rates, allocation, strategy_ratios)
    if len(amounts) == 1:
        return []

    deviations: list[AssetDeviation] = []
    for asset_index in range(1, len(amounts)):
        actual = amounts[asset_index] * ideal_ratio[0]
        ideal = amounts[0] * ideal_ratio[asset_index]
        deviations.append(
            AssetDeviation(
                asset_index=asset_index,
                actual=actual,
                ideal=ideal,
                deviation_bps=deviation_bps(actual, ideal),
                within_tolerance=not relative_deviation_exceeds(actual, ideal, tolerance=tolerance),
            )
        )
    return deviations


def check_deposit_ratio(
    deposit: Sequence[int],
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
    *,
    tolerance_bps: Optional[int] = None,
) -> None:
    """Raise IncorrectDepositRatio when any asset deviates beyond the tolerance.

    A deviation of exactly ``tolerance_bps`` passes. Single-asset deposits always
    pass.
    """

    tolerance = _resolve_tolerance(tolerance_bps)
    for deviation in deposit_deviations(
        deposit,
        exchange_rates,
        allocation,
        strategy_ratios,
        tolerance_bps=tolerance,
    ):
        if not deviation.within_tolerance:
            raise IncorrectDepositRatio(
                deviation.asset_index,
                actual=deviation.actual,
                ideal=deviation.ideal,
                tolerance_bps=tolerance,
            )


__all__ = ["AssetDeviation", "check_deposit_ratio", "deposit_deviations"]
