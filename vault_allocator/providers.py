"""Capabilities the core expects from its collaborators, plus in-memory versions."""

from __future__ import annotations

from typing import Mapping, Protocol, Sequence, runtime_checkable

from .errors import ConfigurationError, PriceUnavailableError
from .fixed_point import ensure_non_negative
from .models import AssetGroup, Strategy, Vault, validate_ratio


@runtime_checkable
class ExchangeRateOracle(Protocol):
    def price_of(self, asset: str) -> int: ...


@runtime_checkable
class StrategyRatioProvider(Protocol):
    def ratio_of(self, strategy: Strategy) -> Sequence[int]: ...


@runtime_checkable
class StrategyExposureTracker(Protocol):
    def exposure_of(self, vault: Vault, strategy: Strategy) -> int: ...


class StaticExchangeRateOracle:
    """Fixed USD rates keyed by asset id."""

    def __init__(self, prices: Mapping[str, int]) -> None:
        self._prices = dict(prices)

    def price_of(self, asset: str) -> int:
        try:
            price = self._prices[asset]
        except KeyError as exc:
            raise PriceUnavailableError(asset) from exc
        if price is None:
            raise PriceUnavailableError(asset)
        return price

    def update(self, asset: str, price: int) -> None:
        self._prices[asset] = price


class StaticStrategyRatioProvider:
    """Ratios keyed by strategy id, falling back to the ratio carried by the strategy."""

    def __init__(self, ratios: Mapping[str, Sequence[int]] | None = None) -> None:
        self._ratios = {key: tuple(value) for key, value in (ratios or {}).items()}

    def ratio_of(self, strategy: Strategy) -> Sequence[int]:
        ratio = self._ratios.get(strategy.strategy_id) or strategy.ratio
        if not ratio:
            raise ConfigurationError(f"no asset ratio known for strategy {strategy.strategy_id}")
        return ratio


class SnapshotExposureTracker:
    """Settled USD exposure keyed by ``(vault_id, strategy_id)``."""

    def __init__(self, exposures: Mapping[tuple[str, str], int] | None = None) -> None:
        self._exposures = dict(exposures or {})

    def exposure_of(self, vault: Vault, strategy: Strategy) -> int:
        try:
            return self._exposures[(vault.vault_id, strategy.strategy_id)]
        except KeyError as exc:
            raise ConfigurationError(
                f"no settled exposure for vault {vault.vault_id} in strategy {strategy.strategy_id}"
            ) from exc

    def record(self, vault_id: str, strategy_id: str, exposure: int) -> None:
        self._exposures[(vault_id, strategy_id)] = exposure


def resolve_exchange_rates(oracle: ExchangeRateOracle, asset_group: AssetGroup) -> list[int]:
    return ensure_non_negative(
        [oracle.price_of(asset) for asset in asset_group.assets], name="exchange_rates"
    )


def resolve_strategy_ratios(provider: StrategyRatioProvider, vault: Vault) -> list[list[int]]:
    return [
        validate_ratio(provider.ratio_of(strategy), vault.asset_group)
        for strategy in vault.strategies
    ]


def resolve_exposures(tracker: StrategyExposureTracker, vault: Vault) -> list[int]:
    return ensure_non_negative(
        [tracker.exposure_of(vault, strategy) for strategy in vault.strategies],
        name=f"exposure[{vault.vault_id}]",
    )


__all__ = [
    "ExchangeRateOracle",
    "SnapshotExposureTracker",
    "StaticExchangeRateOracle",
    "StaticStrategyRatioProvider",
    "StrategyExposureTracker",
    "StrategyRatioProvider",
    "resolve_exchange_rates",
    "resolve_exposures",
    "resolve_strategy_ratios",
]
