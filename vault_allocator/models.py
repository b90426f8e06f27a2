"""Long-lived domain records: asset groups, strategies and vaults."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence

from .errors import ConfigurationError
from .fixed_point import FULL_PERCENT, ensure_int, ensure_non_negative


@dataclass(frozen=True)
class AssetGroup:
    """Ordered, deduplicated list of asset identifiers.

    Positions matter: every per-asset vector in the core is indexed by the order
    of ``assets``.
    """

    assets: tuple[str, ...]
    group_id: int | str | None = None

    def __post_init__(self) -> None:
        assets = tuple(str(asset) for asset in self.assets)
        if not assets:
            raise ConfigurationError("asset group must contain at least one asset")
        if len(set(assets)) != len(assets):
            raise ConfigurationError("asset group must not contain duplicate assets")
        object.__setattr__(self, "assets", assets)

    def __len__(self) -> int:
        return len(self.assets)

    def __iter__(self):
        return iter(self.assets)

    def index_of(self, asset: str) -> int:
        try:
            return self.assets.index(asset)
        except ValueError as exc:
            raise ConfigurationError(f"asset {asset!r} is not part of the group") from exc

    def same_assets(self, other: "AssetGroup") -> bool:
        return self.assets == other.assets


@dataclass(frozen=True)
class Strategy:
    strategy_id: str
    asset_group: AssetGroup
    ratio: tuple[int, ...] = ()

    def __post_init__(self) -> None:
        if not self.strategy_id:
            raise ConfigurationError("strategy id must not be empty")
        if self.ratio:
            object.__setattr__(self, "ratio", tuple(validate_ratio(self.ratio, self.asset_group)))


@dataclass(frozen=True)
class Vault:
    """A pool of capital spread over an ordered list of strategies."""

    vault_id: str
    asset_group: AssetGroup
    strategies: tuple[Strategy, ...]
    allocation: tuple[int, ...] = field(default=())

    def __post_init__(self) -> None:
        if not self.vault_id:
            raise ConfigurationError("vault id must not be empty")
        strategies = tuple(self.strategies)
        if not strategies:
            raise ConfigurationError(f"vault {self.vault_id} has no strategies")
        ids = [strategy.strategy_id for strategy in strategies]
        if len(set(ids)) != len(ids):
            raise ConfigurationError(f"vault {self.vault_id} lists a strategy twice")
        for strategy in strategies:
            if not strategy.asset_group.same_assets(self.asset_group):
                raise ConfigurationError(
                    f"strategy {strategy.strategy_id} does not share the asset group of vault {self.vault_id}"
                )
        object.__setattr__(self, "strategies", strategies)
        if self.allocation:
            object.__setattr__(
                self, "allocation", tuple(validate_allocation(self.allocation, len(strategies)))
            )

    @property
    def strategy_ids(self) -> tuple[str, ...]:
        return tuple(strategy.strategy_id for strategy in self.strategies)

    def with_allocation(self, allocation: Sequence[int]) -> "Vault":
        return Vault(
            vault_id=self.vault_id,
            asset_group=self.asset_group,
            strategies=self.strategies,
            allocation=tuple(allocation),
        )


def validate_ratio(ratio: Iterable[int], asset_group: AssetGroup) -> list[int]:
    values = ensure_non_negative(list(ratio), name="ratio")
    if len(values) != len(asset_group):
        raise ConfigurationError(
            f"ratio has {len(values)} entries but the asset group has {len(asset_group)} assets"
        )
    return values


def validate_allocation(allocation: Sequence[int], num_strategies: int | None = None) -> list[int]:
    """Check an allocation vector: basis points per strategy summing to 10000."""

    weights = [ensure_int(weight, name=f"allocation[{index}]") for index, weight in enumerate(allocation)]
    if not weights:
        raise ConfigurationError("allocation must not be empty")
    if num_strategies is not None and len(weights) != num_strategies:
        raise ConfigurationError(
            f"allocation has {len(weights)} weights for {num_strategies} strategies"
        )
    for index, weight in enumerate(weights):
        if weight < 0 or weight > FULL_PERCENT:
            raise ConfigurationError(f"allocation[{index}] must be within 0..{FULL_PERCENT}")
    if sum(weights) != FULL_PERCENT:
        raise ConfigurationError(f"allocation must sum to {FULL_PERCENT}, got {sum(weights)}")
    return weights


__all__ = ["AssetGroup", "Strategy", "Vault", "validate_allocation", "validate_ratio"]
