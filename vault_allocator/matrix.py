"""Cross-vault reallocation matrix.

Vaults reallocated in one batch may share strategies. Their strategy lists are
merged into one global index space and every vault's donor/receiver transfers
are accumulated into a square ``[from][to]`` matrix whose cells hold one amount
per value dimension (one per asset, or a single USD value).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, NamedTuple, Optional, Sequence, Union

from .deposits import split_value_by_ratio
from .errors import ConfigurationError
from .fixed_point import ensure_non_negative, split_with_residual
from .models import Vault
from .reallocation import ReallocationPlan, waterfall_match


class StrategyMapping(NamedTuple):
    local_to_global: tuple[tuple[int, ...], ...]
    num_strategies: int
    strategy_ids: tuple[str, ...]


def map_strategies(vaults: Iterable[Union[Vault, Sequence[str]]]) -> StrategyMapping:
    """Assign global indices to strategies in first-seen order.

    Vaults are scanned in order, then strategies within each vault; the same input
    always yields the same assignment.
    """

    index_by_id: dict[str, int] = {}
    local_to_global: list[tuple[int, ...]] = []
    for vault in vaults:
        strategy_ids = vault.strategy_ids if isinstance(vault, Vault) else tuple(vault)
        if not strategy_ids:
            raise ConfigurationError("vault has no strategies")
        if len(set(strategy_ids)) != len(strategy_ids):
            raise ConfigurationError("vault lists a strategy twice")
        indices: list[int] = []
        for strategy_id in strategy_ids:
            if strategy_id not in index_by_id:
                index_by_id[strategy_id] = len(index_by_id)
            indices.append(index_by_id[strategy_id])
        local_to_global.append(tuple(indices))
    return StrategyMapping(
        local_to_global=tuple(local_to_global),
        num_strategies=len(index_by_id),
        strategy_ids=tuple(index_by_id),
    )


@dataclass(frozen=True)
class VaultReallocation:
    """Per-strategy withdrawal and deposit vectors of one vault, one amount per dimension."""

    withdrawals: tuple[tuple[int, ...], ...]
    deposits: tuple[tuple[int, ...], ...]

    @property
    def num_strategies(self) -> int:
        return len(self.withdrawals)

    @property
    def num_dimensions(self) -> int:
        return len(self.withdrawals[0]) if self.withdrawals else 0

    @classmethod
    def from_plan(cls, plan: ReallocationPlan) -> "VaultReallocation":
        return cls(
            withdrawals=tuple((amount,) for amount in plan.withdrawals),
            deposits=tuple((amount,) for amount in plan.deposit_amounts),
        )

    @classmethod
    def from_vectors(
        cls,
        withdrawals: Sequence[Union[int, Sequence[int]]],
        deposits: Sequence[Union[int, Sequence[int]]],
    ) -> "VaultReallocation":
        """Build from raw vectors.

        Entries may be plain ints (one dimension) or per-asset sequences. When
        ``deposits`` is one entry longer than ``withdrawals`` the extra trailing
        entry is read as the deposit total; it must match and is dropped.
        """

        withdrawn = [_as_vector(entry, name=f"withdrawals[{index}]") for index, entry in enumerate(withdrawals)]
        deposited = [_as_vector(entry, name=f"deposits[{index}]") for index, entry in enumerate(deposits)]
        if len(deposited) == len(withdrawn) + 1:
            total = deposited.pop()
            sums = [sum(column) for column in zip(*deposited)] if deposited else [0] * len(total)
            if list(total) != sums:
                raise ConfigurationError("trailing deposit total does not match the deposits")
        if len(deposited) != len(withdrawn):
            raise ConfigurationError(
                f"got {len(withdrawn)} withdrawals and {len(deposited)} deposits"
            )
        widths = {len(vector) for vector in withdrawn + deposited}
        if len(widths) > 1:
            raise ConfigurationError("withdrawal and deposit vectors differ in width")
        return cls(withdrawals=tuple(withdrawn), deposits=tuple(deposited))


ReallocationInput = Union[ReallocationPlan, VaultReallocation, tuple]


def _as_vector(entry: Union[int, Sequence[int]], *, name: str) -> tuple[int, ...]:
    if isinstance(entry, int) and not isinstance(entry, bool):
        values = [entry]
    else:
        values = list(entry)  # type: ignore[arg-type]
    if not values:
        raise ConfigurationError(f"{name} must hold at least one amount")
    return tuple(ensure_non_negative(values, name=name))


def _coerce(item: ReallocationInput) -> VaultReallocation:
    if isinstance(item, VaultReallocation):
        return item
    if isinstance(item, ReallocationPlan):
        return VaultReallocation.from_plan(item)
    if isinstance(item, (tuple, list)) and len(item) == 2:
        return VaultReallocation.from_vectors(item[0], item[1])
    raise ConfigurationError(f"unsupported reallocation input {type(item).__name__}")


class ReallocationMatrix:
    """Square ``[from][to]`` matrix of per-dimension transfer amounts."""

    def __init__(self, num_strategies: int, num_assets: int = 1) -> None:
        if num_strategies < 0:
            raise ConfigurationError("strategy count must not be negative")
        if num_assets < 1:
            raise ConfigurationError("matrix cells need at least one dimension")
        self.num_strategies = num_strategies
        self.num_assets = num_assets
        self._cells = [
            [[0] * num_assets for _ in range(num_strategies)] for _ in range(num_strategies)
        ]

    def __getitem__(self, source: int) -> list[list[int]]:
        return self._cells[source]

    def __len__(self) -> int:
        return self.num_strategies

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ReallocationMatrix):
            return NotImplemented
        return self.to_lists() == other.to_lists()

    def __add__(self, other: "ReallocationMatrix") -> "ReallocationMatrix":
        if (self.num_strategies, self.num_assets) != (other.num_strategies, other.num_assets):
            raise ConfigurationError("cannot add matrices of different shapes")
        result = ReallocationMatrix(self.num_strategies, self.num_assets)
        for source in range(self.num_strategies):
            for target in range(self.num_strategies):
                for asset in range(self.num_assets):
                    result._cells[source][target][asset] = (
                        self._cells[source][target][asset] + other._cells[source][target][asset]
                    )
        return result

    def __repr__(self) -> str:
        return f"ReallocationMatrix(num_strategies={self.num_strategies}, num_assets={self.num_assets})"

    def add(self, source: int, target: int, asset: int, amount: int) -> None:
        if source == target:
            raise ConfigurationError(f"strategy {source} cannot transfer to itself")
        self._cells[source][target][asset] += amount

    def row_totals(self) -> list[list[int]]:
        """Total leaving each strategy, per dimension."""

        return [
            [sum(cell[asset] for cell in row) for asset in range(self.num_assets)]
            for row in self._cells
        ]

    def column_totals(self) -> list[list[int]]:
        """Total arriving at each strategy, per dimension."""

        return [
            [
                sum(self._cells[source][target][asset] for source in range(self.num_strategies))
                for asset in range(self.num_assets)
            ]
            for target in range(self.num_strategies)
        ]

    def transfers(self) -> Iterator[tuple[int, int, tuple[int, ...]]]:
        for source, row in enumerate(self._cells):
            for target, cell in enumerate(row):
                if any(cell):
                    yield source, target, tuple(cell)

    def to_lists(self) -> list[list[list[int]]]:
        return [[list(cell) for cell in row] for row in self._cells]

    def denominate(
        self,
        strategy_ratios: Sequence[Sequence[int]],
        exchange_rates: Sequence[int],
        *,
        rate_scale: int = 1,
    ) -> "ReallocationMatrix":
        """Turn a value matrix into asset amounts.

        Each donor's withdrawn value is converted once with its own ratio, then
        every asset amount is spread over the donor's cells by cell value. A
        donor row therefore totals exactly its converted withdrawal.
        """

        if self.num_assets != 1:
            raise ConfigurationError("only single-value matrices can be denominated")
        if len(strategy_ratios) != self.num_strategies:
            raise ConfigurationError(
                f"got {len(strategy_ratios)} ratios for {self.num_strategies} strategies"
            )
        result = ReallocationMatrix(self.num_strategies, len(exchange_rates))
        for source, row in enumerate(self._cells):
            values = [cell[0] for cell in row]
            withdrawn = sum(values)
            if not withdrawn:
                continue
            amounts = split_value_by_ratio(
                withdrawn, exchange_rates, strategy_ratios[source], rate_scale=rate_scale
            )
            for asset, amount in enumerate(amounts):
                for target, share in enumerate(split_with_residual(amount, values)):
                    if share:
                        result.add(source, target, asset, share)
        return result


def build_reallocation_table(
    strategy_mapping: Union[StrategyMapping, Sequence[Sequence[int]]],
    num_strategies: Optional[int],
    reallocations: Sequence[ReallocationInput],
    *,
    num_assets: Optional[int] = None,
) -> ReallocationMatrix:
    """Merge every vault's transfers into one global matrix.

    The waterfall match runs per vault and per dimension on local indices; the
    resulting transfers are recorded at their global coordinates and summed.
    """

    if isinstance(strategy_mapping, StrategyMapping):
        local_to_global: Sequence[Sequence[int]] = strategy_mapping.local_to_global
        if num_strategies is None:
            num_strategies = strategy_mapping.num_strategies
    else:
        local_to_global = strategy_mapping
    if num_strategies is None:
        raise ConfigurationError("number of strategies is required")
    if len(local_to_global) != len(reallocations):
        raise ConfigurationError(
            f"got {len(reallocations)} reallocations for {len(local_to_global)} mapped vaults"
        )

    vault_reallocations = [_coerce(item) for item in reallocations]
    widths = {item.num_dimensions for item in vault_reallocations if item.num_strategies}
    if num_assets is not None:
        widths.add(num_assets)
    if len(widths) > 1:
        raise ConfigurationError("vaults in one batch must share the same number of assets")
    width = widths.pop() if widths else 1

    matrix = ReallocationMatrix(num_strategies, width)
    for vault_index, (indices, reallocation) in enumerate(zip(local_to_global, vault_reallocations)):
        if reallocation.num_strategies != len(indices):
            raise ConfigurationError(
                f"vault {vault_index} reallocation covers {reallocation.num_strategies} strategies, "
                f"mapping lists {len(indices)}"
            )
        for global_index in indices:
            if global_index < 0 or global_index >= num_strategies:
                raise ConfigurationError(f"global strategy index {global_index} is out of range")
        for asset in range(width):
            surpluses = [vector[asset] for vector in reallocation.withdrawals]
            needs = [vector[asset] for vector in reallocation.deposits]
            for transfer in waterfall_match(surpluses, needs):
                matrix.add(indices[transfer.source], indices[transfer.target], asset, transfer.amount)
    return matrix


__all__ = [
    "ReallocationMatrix",
    "StrategyMapping",
    "VaultReallocation",
    "build_reallocation_table",
    "map_strategies",
]
