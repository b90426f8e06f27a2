"""Per-vault reallocation planning.

Given a vault's current exposure per strategy and a new target allocation, work
out how much each strategy must shed or receive and pair donors with receivers
using a two-cursor waterfall walk in strategy order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Sequence

from .errors import ArithmeticBoundsError, ConfigurationError
from .fixed_point import FULL_PERCENT, ensure_int, ensure_non_negative, mul_div


@dataclass(frozen=True)
class Transfer:
    source: int
    target: int
    amount: int


@dataclass(frozen=True)
class ReallocationPlan:
    """Outcome of a single-vault reallocation.

    ``withdrawals`` has one entry per strategy. ``deposits`` has one entry per
    strategy followed by the total deposited, which is how settlement consumes it.
    """

    old_exposure: tuple[int, ...]
    target_exposure: tuple[int, ...]
    withdrawals: tuple[int, ...]
    deposits: tuple[int, ...]
    transfers: tuple[Transfer, ...]

    @property
    def num_strategies(self) -> int:
        return len(self.withdrawals)

    @property
    def deposit_amounts(self) -> tuple[int, ...]:
        return self.deposits[:-1]

    @property
    def total_withdrawn(self) -> int:
        return sum(self.withdrawals)

    @property
    def total_deposited(self) -> int:
        return self.deposits[-1]

    @property
    def is_noop(self) -> bool:
        return not self.transfers

    def new_exposure(self) -> tuple[int, ...]:
        return tuple(
            old - withdrawn + deposited
            for old, withdrawn, deposited in zip(
                self.old_exposure, self.withdrawals, self.deposit_amounts
            )
        )


def waterfall_match(surpluses: Sequence[int], needs: Sequence[int]) -> Iterator[Transfer]:
    """Pair donors with receivers walking both in ascending index order.

    ``surpluses[i]`` is what index ``i`` must give up and ``needs[i]`` what it must
    receive. Each step moves ``min(remaining surplus, remaining need)``; whichever
    side is exhausted advances. Totals must match.
    """

    if len(surpluses) != len(needs):
        raise ConfigurationError("surplus and need vectors must have the same length")
    if sum(surpluses) != sum(needs):
        raise ConfigurationError(
            f"total surplus {sum(surpluses)} does not match total need {sum(needs)}"
        )

    donors = [index for index, amount in enumerate(surpluses) if amount > 0]
    receivers = [index for index, amount in enumerate(needs) if amount > 0]
    remaining_surplus = list(surpluses)
    remaining_need = list(needs)

    donor_cursor = 0
    receiver_cursor = 0
    while donor_cursor < len(donors) and receiver_cursor < len(receivers):
        donor = donors[donor_cursor]
        receiver = receivers[receiver_cursor]
        amount = min(remaining_surplus[donor], remaining_need[receiver])
        yield Transfer(source=donor, target=receiver, amount=amount)
        remaining_surplus[donor] -= amount
        remaining_need[receiver] -= amount
        if remaining_surplus[donor] == 0:
            donor_cursor += 1
        if remaining_need[receiver] == 0:
            receiver_cursor += 1


def target_exposures(total: int, allocation: Sequence[int]) -> list[int]:
    return [mul_div(total, weight, FULL_PERCENT) for weight in allocation]


def _validate_allocation(allocation: Sequence[int], num_strategies: int) -> list[int]:
    weights = [ensure_int(weight, name=f"new_allocation[{index}]") for index, weight in enumerate(allocation)]
    if len(weights) != num_strategies:
        raise ConfigurationError(
            f"new allocation has {len(weights)} weights for {num_strategies} strategies"
        )
    for index, weight in enumerate(weights):
        if weight < 0 or weight > FULL_PERCENT:
            raise ConfigurationError(f"new_allocation[{index}] must be within 0..{FULL_PERCENT}")
    if sum(weights) == 0:
        raise ArithmeticBoundsError("new allocation weights sum to zero")
    if sum(weights) != FULL_PERCENT:
        raise ConfigurationError(f"new allocation must sum to {FULL_PERCENT}, got {sum(weights)}")
    return weights


def calculate_reallocation(
    old_exposure: Sequence[int],
    new_allocation: Sequence[int],
) -> ReallocationPlan:
    """Plan the moves turning ``old_exposure`` into ``new_allocation``.

    Targets are floored; the division residual joins the last receiver's need so
    that withdrawals and deposits balance exactly. With no receiver the residual
    is dust already sitting in the donors and nothing moves.
    """

    exposure = ensure_non_negative(old_exposure, name="old_exposure")
    if not exposure:
        raise ConfigurationError("at least one strategy is required")
    weights = _validate_allocation(new_allocation, len(exposure))
    total = sum(exposure)
    if total == 0:
        raise ArithmeticBoundsError("vault has zero total exposure to reallocate")

    targets = target_exposures(total, weights)
    residual = total - sum(targets)

    surpluses = [max(old - target, 0) for old, target in zip(exposure, targets)]
    needs = [max(target - old, 0) for old, target in zip(exposure, targets)]
    receivers = [index for index, need in enumerate(needs) if need > 0]
    if receivers:
        last_receiver = receivers[-1]
        needs[last_receiver] += residual
        targets[last_receiver] += residual
    else:
        # every surplus is floor dust
        surpluses = [0] * len(surpluses)
        targets = list(exposure)

    transfers = tuple(waterfall_match(surpluses, needs))
    total_deposited = sum(needs)
    return ReallocationPlan(
        old_exposure=tuple(exposure),
        target_exposure=tuple(targets),
        withdrawals=tuple(surpluses),
        deposits=tuple(needs) + (total_deposited,),
        transfers=transfers,
    )


__all__ = [
    "ReallocationPlan",
    "Transfer",
    "calculate_reallocation",
    "target_exposures",
    "waterfall_match",
]
