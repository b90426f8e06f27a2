"""Deposit ratio math: flush factors, ideal deposit ratio and deposit distribution.

All functions are pure. Vectors are positional: ``exchange_rates[a]`` and
``strategy_ratios[s][a]`` follow the asset group order, ``allocation[s]`` follows
the vault's strategy order.

The flush factor of strategy ``s`` for asset ``a`` is::

    allocation[s] * ratio[s][a] * PRECISION / sum_k(ratio[s][k] * exchange_rates[k])

The denominator is the strategy's ratio expressed in USD, so each row carries
``allocation[s]`` worth of USD once multiplied back by the exchange rates.
"""

from __future__ import annotations

from typing import Sequence

from .errors import ArithmeticBoundsError, ConfigurationError
from .fixed_point import (
    PRECISION,
    ensure_non_negative,
    last_nonzero_index,
    mul_div,
    split_with_residual,
)
from .logger import get_logger

logger = get_logger(__name__)


def _validate_inputs(
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
) -> tuple[list[int], list[int], list[list[int]]]:
    rates = ensure_non_negative(exchange_rates, name="exchange_rates")
    weights = ensure_non_negative(allocation, name="allocation")
    if not rates:
        raise ConfigurationError("at least one asset is required")
    if not weights:
        raise ConfigurationError("at least one strategy is required")
    if len(strategy_ratios) != len(weights):
        raise ConfigurationError(
            f"got {len(strategy_ratios)} strategy ratios for {len(weights)} allocation weights"
        )
    ratios: list[list[int]] = []
    for index, ratio in enumerate(strategy_ratios):
        if len(ratio) != len(rates):
            raise ConfigurationError(
                f"strategy {index} ratio has {len(ratio)} entries for {len(rates)} assets"
            )
        ratios.append(ensure_non_negative(ratio, name=f"strategy_ratios[{index}]"))
    if sum(weights) == 0:
        raise ArithmeticBoundsError("allocation weights sum to zero")
    return rates, weights, ratios


def _single_asset_weights(
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
) -> list[int]:
    # one-asset groups split by allocation weight; ratios and rates are not consulted
    if len(strategy_ratios) != len(allocation):
        raise ConfigurationError(
            f"got {len(strategy_ratios)} strategy ratios for {len(allocation)} allocation weights"
        )
    _, weights, _ = _validate_inputs(exchange_rates, allocation, [[1]] * len(allocation))
    return weights


def calculate_flush_factors(
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
) -> list[list[int]]:
    """Return ``flush_factors[strategy][asset]`` scaled by ``PRECISION``."""

    rates, weights, ratios = _validate_inputs(exchange_rates, allocation, strategy_ratios)
    flush_factors: list[list[int]] = []
    for strategy_index, (weight, ratio) in enumerate(zip(weights, ratios)):
        if weight == 0:
            flush_factors.append([0] * len(rates))
            continue
        normalization = sum(part * rate for part, rate in zip(ratio, rates))
        if normalization == 0:
            raise ArithmeticBoundsError(
                f"strategy {strategy_index} ratio has zero value at the given exchange rates"
            )
        flush_factors.append(
            [mul_div(weight * part, PRECISION, normalization) for part in ratio]
        )
    return flush_factors


def calculate_deposit_ratio(
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
) -> list[int]:
    """Return the ideal relative amount of every asset in a balanced deposit.

    Only the proportions between entries are meaningful; asset 0 is the reference.
    A single-asset group always yields ``[1]``.
    """

    if len(exchange_rates) == 1:
        _single_asset_weights(exchange_rates, allocation, strategy_ratios)
        return [1]
    flush_factors = calculate_flush_factors(exchange_rates, allocation, strategy_ratios)
    return [sum(column) for column in zip(*flush_factors)]


def distribute_deposit(
    deposit: Sequence[int],
    exchange_rates: Sequence[int],
    allocation: Sequence[int],
    strategy_ratios: Sequence[Sequence[int]],
) -> list[list[int]]:
    """Split ``deposit[asset]`` into ``distribution[strategy][asset]``.

    Each strategy receives ``floor(deposit[a] * flush_factor[s][a] / total[a])``;
    the last strategy with a non-zero factor for the asset absorbs the residual,
    so every asset column sums exactly to the deposited amount. When the final
    strategy has a zero factor it receives nothing and the residual lands on the
    nearest weighted strategy before it.
    """

    amounts = ensure_non_negative(deposit, name="deposit")
    if len(amounts) != len(exchange_rates):
        raise ConfigurationError(
            f"deposit has {len(amounts)} entries for {len(exchange_rates)} assets"
        )

    if len(amounts) == 1:
        weights = _single_asset_weights(exchange_rates, allocation, strategy_ratios)
        columns = [split_with_residual(amounts[0], weights)]
    else:
        flush_factors = calculate_flush_factors(exchange_rates, allocation, strategy_ratios)
        columns = []
        for asset_index, amount in enumerate(amounts):
            weights = [row[asset_index] for row in flush_factors]
            try:
                columns.append(split_with_residual(amount, weights))
            except ArithmeticBoundsError as exc:
                raise ArithmeticBoundsError(
                    f"asset {asset_index} has a deposit but no strategy accepts it"
                ) from exc

    distribution = [list(row) for row in zip(*columns)]
    logger.debug(
        "deposit distributed",
        strategies=len(distribution),
        assets=len(amounts),
    )
    return distribution


def split_value_by_ratio(
    value: int,
    exchange_rates: Sequence[int],
    ratio: Sequence[int],
    *,
    rate_scale: int = 1,
) -> list[int]:
    """Convert a USD ``value`` into asset amounts following a strategy's ratio.

    ``amount[a] = floor(value * rate_scale * ratio[a] / sum_k(ratio[k] * rate[k]))``.
    The value lost to flooring is added back, in whole units, to the last asset
    with a non-zero value weight; what remains is less than one unit of it.
    """

    if value < 0:
        raise ConfigurationError("value must not be negative")
    rates = ensure_non_negative(exchange_rates, name="exchange_rates")
    parts = ensure_non_negative(ratio, name="ratio")
    if len(parts) != len(rates):
        raise ConfigurationError(f"ratio has {len(parts)} entries for {len(rates)} assets")
    if value == 0:
        return [0] * len(parts)
    weights = [part * rate for part, rate in zip(parts, rates)]
    normalization = sum(weights)
    if normalization == 0:
        raise ArithmeticBoundsError("ratio has zero value at the given exchange rates")
    scaled = value * rate_scale
    amounts = [mul_div(scaled, part, normalization) for part in parts]
    residual_index = last_nonzero_index(weights)
    leftover = scaled - sum(amount * rate for amount, rate in zip(amounts, rates))
    amounts[residual_index] += leftover // rates[residual_index]
    return amounts


__all__ = [
    "calculate_deposit_ratio",
    "calculate_flush_factors",
    "distribute_deposit",
    "split_value_by_ratio",
]
