from __future__ import annotations

import random

import pytest

from vault_allocator.deposits import (
    calculate_deposit_ratio,
    calculate_flush_factors,
    distribute_deposit,
    split_value_by_ratio,
)
from vault_allocator.errors import ArithmeticBoundsError, ConfigurationError
from vault_allocator.fixed_point import PRECISION

EXCHANGE_RATES = [1200 * 10**26, 16400 * 10**26, 270 * 10**26]
ALLOCATION = [600, 300, 100]
STRATEGY_RATIOS = [[1000, 71, 4300], [1000, 74, 4500], [1000, 76, 4600]]
EXPECTED_DISTRIBUTION = [
    [1701934532251659, 120837351789867, 7318318488682135],
    [826765143581546, 61180620625034, 3720443146116959],
    [271120268951306, 20605140440299, 1247153237176011],
]


def _column_sums(matrix):
    return [sum(column) for column in zip(*matrix)]


def test_flush_factors_match_reference_fixture():
    flush_factors = calculate_flush_factors(EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS)
    assert flush_factors == EXPECTED_DISTRIBUTION


def test_flush_factor_rows_carry_allocation_value():
    flush_factors = calculate_flush_factors(EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS)
    for weight, row in zip(ALLOCATION, flush_factors):
        value = sum(factor * rate for factor, rate in zip(row, EXCHANGE_RATES))
        assert value <= weight * PRECISION
        # at most one rate unit lost per asset to flooring
        assert weight * PRECISION - value < sum(EXCHANGE_RATES)


def test_deposit_ratio_sums_flush_factors():
    ratio = calculate_deposit_ratio(EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS)
    assert ratio == _column_sums(EXPECTED_DISTRIBUTION)


def test_distribute_reference_deposit():
    deposit = _column_sums(EXPECTED_DISTRIBUTION)
    distribution = distribute_deposit(deposit, EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS)
    assert distribution == EXPECTED_DISTRIBUTION
    assert _column_sums(distribution) == deposit


def test_distribute_scales_with_deposit_size():
    deposit = [amount * 3 for amount in _column_sums(EXPECTED_DISTRIBUTION)]
    distribution = distribute_deposit(deposit, EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS)
    assert distribution[0] == [amount * 3 for amount in EXPECTED_DISTRIBUTION[0]]
    assert distribution[1] == [amount * 3 for amount in EXPECTED_DISTRIBUTION[1]]
    assert _column_sums(distribution) == deposit


@pytest.mark.parametrize("seed", range(25))
def test_distribution_conserves_every_asset(seed):
    rng = random.Random(seed)
    num_strategies = rng.randint(1, 6)
    num_assets = rng.randint(2, 4)
    rates = [rng.randint(1, 10**6) * 10 ** rng.randint(0, 30) for _ in range(num_assets)]
    allocation = [rng.randint(0, 10_000) for _ in range(num_strategies)]
    allocation[rng.randrange(num_strategies)] += 1
    ratios = [[rng.randint(1, 5000) for _ in range(num_assets)] for _ in range(num_strategies)]
    deposit = [rng.randint(0, 10**24) for _ in range(num_assets)]

    distribution = distribute_deposit(deposit, rates, allocation, ratios)
    flush_factors = calculate_flush_factors(rates, allocation, ratios)

    assert _column_sums(distribution) == deposit
    for asset in range(num_assets):
        total = sum(row[asset] for row in flush_factors)
        residual_index = max(
            index for index, row in enumerate(flush_factors) if row[asset] != 0
        )
        for strategy in range(num_strategies):
            if strategy == residual_index:
                continue
            expected = deposit[asset] * flush_factors[strategy][asset] // total
            assert distribution[strategy][asset] == expected


def test_single_asset_splits_by_allocation_with_residual_last():
    distribution = distribute_deposit([10], [10**18], [3333, 3333, 3334], [[1], [1], [1]])
    assert distribution == [[3], [3], [4]]


def test_single_asset_deposit_ratio_is_unit():
    assert calculate_deposit_ratio([10**18], [6000, 4000], [[1], [1]]) == [1]


def test_zero_weight_strategy_never_receives_dust():
    distribution = distribute_deposit([101], [10**18], [5000, 5000, 0], [[1], [1], [1]])
    assert distribution == [[50], [51], [0]]


def test_zero_weight_row_has_no_flush_factors():
    flush_factors = calculate_flush_factors([1, 1], [10_000, 0], [[1, 1], [1, 1]])
    assert flush_factors[1] == [0, 0]
    assert flush_factors[0][0] == flush_factors[0][1] > 0


def test_zero_deposit_yields_zero_distribution():
    distribution = distribute_deposit([0, 0, 0], EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS)
    assert distribution == [[0, 0, 0]] * 3


def test_asset_without_accepting_strategy_only_allows_zero_deposit():
    ratios = [[1, 0], [1, 0]]
    assert distribute_deposit([10, 0], [1, 1], [5000, 5000], ratios) == [[5, 0], [5, 0]]
    with pytest.raises(ArithmeticBoundsError):
        distribute_deposit([10, 5], [1, 1], [5000, 5000], ratios)


def test_all_zero_allocation_is_arithmetic_error():
    with pytest.raises(ArithmeticBoundsError):
        calculate_flush_factors(EXCHANGE_RATES, [0, 0, 0], STRATEGY_RATIOS)
    with pytest.raises(ArithmeticBoundsError):
        distribute_deposit([5], [1], [0, 0], [[1], [1]])


def test_zero_value_ratio_is_arithmetic_error():
    with pytest.raises(ArithmeticBoundsError):
        calculate_flush_factors([1, 1], [5000, 5000], [[1, 1], [0, 0]])


@pytest.mark.parametrize(
    ("deposit", "rates", "allocation", "ratios"),
    [
        ([1, 2], EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS),
        ([1, 2, 3], EXCHANGE_RATES, [600, 400], STRATEGY_RATIOS),
        ([1, 2, 3], EXCHANGE_RATES, ALLOCATION, [[1, 2, 3], [1, 2]]),
        ([1, -2, 3], EXCHANGE_RATES, ALLOCATION, STRATEGY_RATIOS),
        ([1], [10**18], [5000, 5000], [[1]]),
        ([], [], [], []),
    ],
)
def test_distribute_rejects_malformed_inputs(deposit, rates, allocation, ratios):
    with pytest.raises(ConfigurationError):
        distribute_deposit(deposit, rates, allocation, ratios)


def test_split_value_by_ratio_follows_usd_value():
    amounts = split_value_by_ratio(1000, [2, 1], [1, 2])
    assert amounts == [250, 500]
    assert amounts[0] * 2 + amounts[1] * 1 == 1000


def test_split_value_by_ratio_with_rate_scale():
    amounts = split_value_by_ratio(300, [2 * 10**18, 10**18], [1, 1], rate_scale=10**18)
    assert amounts == [100, 100]


def test_split_value_by_ratio_returns_flooring_dust_to_last_asset():
    assert split_value_by_ratio(15, [1, 1], [1, 1]) == [7, 8]

    # 2.5 units per asset cannot be met exactly; the loss stays below one unit of the last asset
    amounts = split_value_by_ratio(5, [2, 2], [1, 1])
    assert amounts == [1, 1]
    assert 0 <= 5 - (amounts[0] * 2 + amounts[1] * 2) < 2


def test_split_value_by_ratio_zero_value():
    assert split_value_by_ratio(0, [0, 0], [0, 0]) == [0, 0]
    with pytest.raises(ArithmeticBoundsError):
        split_value_by_ratio(5, [1, 1], [0, 0])
