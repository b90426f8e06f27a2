from __future__ import annotations

import pytest

from vault_allocator.errors import ArithmeticBoundsError, ConfigurationError
from vault_allocator.fixed_point import (
    deviation_bps,
    ensure_non_negative,
    mul_div,
    relative_deviation_exceeds,
    split_with_residual,
)


def test_mul_div_floors_without_precision_loss():
    assert mul_div(10**40 + 1, 3, 7) == (3 * 10**40 + 3) // 7
    with pytest.raises(ArithmeticBoundsError):
        mul_div(1, 1, 0)


@pytest.mark.parametrize(
    ("amount", "weights", "expected"),
    [
        (100, [1, 1, 1], [33, 33, 34]),
        (7, [0, 2, 0, 1], [0, 4, 0, 3]),
        (5, [0, 0, 3], [0, 0, 5]),
        (0, [0, 0], [0, 0]),
    ],
)
def test_split_with_residual(amount, weights, expected):
    parts = split_with_residual(amount, weights)
    assert parts == expected
    assert sum(parts) == amount


def test_split_with_residual_needs_weight():
    with pytest.raises(ArithmeticBoundsError):
        split_with_residual(1, [0, 0])
    with pytest.raises(ConfigurationError):
        split_with_residual(1, [])


def test_relative_deviation_boundary():
    assert not relative_deviation_exceeds(10_025, 10_000, tolerance=25)
    assert relative_deviation_exceeds(10_026, 10_000, tolerance=25)
    assert relative_deviation_exceeds(1, 0, tolerance=10_000)
    assert not relative_deviation_exceeds(0, 0, tolerance=0)
    assert deviation_bps(10_100, 10_000) == 100
    assert deviation_bps(5, 0) is None


def test_ensure_non_negative_rejects_bad_values():
    assert ensure_non_negative([0, 3], name="x") == [0, 3]
    for values in ([-1], [1.5], [True]):
        with pytest.raises(ConfigurationError):
            ensure_non_negative(values, name="x")
