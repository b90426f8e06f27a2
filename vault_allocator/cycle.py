"""Glue between the pure allocation math and the flush/harvest cycles.

The math in :mod:`deposits`, :mod:`validation`, :mod:`reallocation` and
:mod:`matrix` never touches state. This module resolves inputs through the
collaborator capabilities, snapshots vault allocations, and applies a new
allocation only once the caller has accepted the computed plan.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Optional, Sequence

from .config import get_settings
from .deposits import calculate_deposit_ratio, distribute_deposit
from .errors import ArithmeticBoundsError, ConfigurationError, RatioToleranceError
from .logger import get_logger
from .matrix import ReallocationMatrix, StrategyMapping, build_reallocation_table, map_strategies
from .metrics import (
    BATCHES,
    DEPOSIT_RATIO_REJECTIONS,
    DEPOSITS_DISTRIBUTED,
    MATRIX_STRATEGIES,
    REALLOCATION_PLANS,
    REALLOCATION_TRANSFERS,
)
from .models import Strategy, Vault, validate_allocation
from .providers import (
    ExchangeRateOracle,
    StrategyExposureTracker,
    StrategyRatioProvider,
    resolve_exchange_rates,
    resolve_exposures,
    resolve_strategy_ratios,
)
from .reallocation import ReallocationPlan, calculate_reallocation
from .validation import check_deposit_ratio

logger = get_logger(__name__)


def _metrics_enabled() -> bool:
    return get_settings().metrics_enabled


class AllocationStore:
    """Versioned allocation record per vault.

    A vault taken into an open reallocation batch is pending until the batch is
    committed or aborted; no other batch may take it meanwhile.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: dict[str, tuple[int, tuple[int, ...]]] = {}
        self._pending: set[str] = set()

    def register(self, vault: Vault, allocation: Optional[Sequence[int]] = None) -> int:
        weights = allocation if allocation is not None else vault.allocation
        validated = tuple(validate_allocation(weights, len(vault.strategies)))
        with self._lock:
            if vault.vault_id in self._pending:
                raise ConfigurationError(f"vault {vault.vault_id} is pending reallocation")
            version, _ = self._records.get(vault.vault_id, (0, ()))
            self._records[vault.vault_id] = (version + 1, validated)
            return version + 1

    def get(self, vault_id: str) -> tuple[int, tuple[int, ...]]:
        with self._lock:
            try:
                return self._records[vault_id]
            except KeyError as exc:
                raise ConfigurationError(f"vault {vault_id} has no recorded allocation") from exc

    def allocation_of(self, vault_id: str) -> tuple[int, ...]:
        return self.get(vault_id)[1]

    def is_pending(self, vault_id: str) -> bool:
        with self._lock:
            return vault_id in self._pending

    def acquire(self, vault_ids: Sequence[str]) -> None:
        with self._lock:
            busy = sorted(vault_id for vault_id in vault_ids if vault_id in self._pending)
            if busy:
                raise ConfigurationError(f"vaults already pending reallocation: {', '.join(busy)}")
            self._pending.update(vault_ids)

    def release(self, vault_ids: Sequence[str]) -> None:
        with self._lock:
            self._pending.difference_update(vault_ids)

    def apply(self, updates: Sequence[tuple[str, Sequence[int], int]]) -> dict[str, int]:
        """Apply ``(vault_id, allocation, expected_version)`` updates all or nothing."""

        with self._lock:
            for vault_id, _, expected_version in updates:
                version, _ = self._records.get(vault_id, (0, ()))
                if version != expected_version:
                    raise ConfigurationError(
                        f"allocation of vault {vault_id} moved from version {expected_version} to {version}"
                    )
            versions: dict[str, int] = {}
            for vault_id, allocation, expected_version in updates:
                self._records[vault_id] = (expected_version + 1, tuple(allocation))
                versions[vault_id] = expected_version + 1
            return versions


@dataclass(frozen=True)
class DepositDistribution:
    vault_id: str
    strategy_ids: tuple[str, ...]
    amounts: tuple[tuple[int, ...], ...]

    def by_strategy(self) -> dict[str, tuple[int, ...]]:
        return dict(zip(self.strategy_ids, self.amounts))

    def asset_totals(self) -> list[int]:
        return [sum(column) for column in zip(*self.amounts)]


class DepositFlow:
    """Validate a vault deposit and split it across the vault's strategies."""

    def __init__(
        self,
        oracle: ExchangeRateOracle,
        ratio_provider: StrategyRatioProvider,
        *,
        store: Optional[AllocationStore] = None,
        tolerance_bps: Optional[int] = None,
    ) -> None:
        self.oracle = oracle
        self.ratio_provider = ratio_provider
        self.store = store
        self.tolerance_bps = tolerance_bps

    def _inputs(self, vault: Vault) -> tuple[list[int], tuple[int, ...], list[list[int]]]:
        allocation = self.store.allocation_of(vault.vault_id) if self.store else vault.allocation
        if not allocation:
            raise ConfigurationError(f"vault {vault.vault_id} has no allocation")
        rates = resolve_exchange_rates(self.oracle, vault.asset_group)
        ratios = resolve_strategy_ratios(self.ratio_provider, vault)
        return rates, allocation, ratios

    def ideal_ratio(self, vault: Vault) -> list[int]:
        rates, allocation, ratios = self._inputs(vault)
        return calculate_deposit_ratio(rates, allocation, ratios)

    def distribute(self, vault: Vault, deposit: Sequence[int]) -> DepositDistribution:
        rates, allocation, ratios = self._inputs(vault)
        try:
            check_deposit_ratio(deposit, rates, allocation, ratios, tolerance_bps=self.tolerance_bps)
        except RatioToleranceError as exc:
            asset_index = getattr(exc, "asset_index", None)
            logger.warning(
                "deposit rejected",
                vault_id=vault.vault_id,
                asset_index=asset_index,
                deposit=list(deposit),
            )
            if _metrics_enabled():
                DEPOSIT_RATIO_REJECTIONS.labels(asset_index=str(asset_index)).inc()
            raise
        distribution = distribute_deposit(deposit, rates, allocation, ratios)
        if _metrics_enabled():
            DEPOSITS_DISTRIBUTED.inc()
        logger.info("deposit distributed", vault_id=vault.vault_id, strategies=len(distribution))
        return DepositDistribution(
            vault_id=vault.vault_id,
            strategy_ids=vault.strategy_ids,
            amounts=tuple(tuple(row) for row in distribution),
        )


@dataclass(frozen=True)
class VaultSnapshot:
    vault: Vault
    version: int
    current_allocation: tuple[int, ...]
    new_allocation: tuple[int, ...]
    old_exposure: tuple[int, ...]

    @property
    def vault_id(self) -> str:
        return self.vault.vault_id


def _noop_plan(exposure: Sequence[int]) -> ReallocationPlan:
    zeros = tuple(0 for _ in exposure)
    return ReallocationPlan(
        old_exposure=tuple(exposure),
        target_exposure=tuple(exposure),
        withdrawals=zeros,
        deposits=zeros + (0,),
        transfers=(),
    )


class ReallocationBatch:
    """One batch of vault reallocations settled together.

    Every vault is snapshotted before any planning starts and stays pending until
    :meth:`commit` or :meth:`abort`. Use as a context manager to abort on error.
    """

    def __init__(
        self,
        store: AllocationStore,
        snapshots: Sequence[VaultSnapshot],
        plans: Sequence[ReallocationPlan],
        mapping: StrategyMapping,
        matrix: ReallocationMatrix,
    ) -> None:
        self.store = store
        self.snapshots = tuple(snapshots)
        self.plans = tuple(plans)
        self.mapping = mapping
        self.matrix = matrix
        self._open = True

    @classmethod
    def prepare(
        cls,
        store: AllocationStore,
        requests: Sequence[tuple[Vault, Sequence[int]]],
        exposure_tracker: StrategyExposureTracker,
        *,
        skip_unfunded: bool = False,
    ) -> "ReallocationBatch":
        if not requests:
            raise ConfigurationError("a reallocation batch needs at least one vault")
        vault_ids = [vault.vault_id for vault, _ in requests]
        if len(set(vault_ids)) != len(vault_ids):
            raise ConfigurationError("a vault may appear only once per batch")
        asset_group = requests[0][0].asset_group
        for vault, _ in requests:
            if not vault.asset_group.same_assets(asset_group):
                raise ConfigurationError(
                    f"vault {vault.vault_id} does not share the batch asset group"
                )

        store.acquire(vault_ids)
        try:
            snapshots = [
                cls._snapshot(store, vault, allocation, exposure_tracker)
                for vault, allocation in requests
            ]
            plans = [cls._plan(snapshot, skip_unfunded=skip_unfunded) for snapshot in snapshots]
            mapping = map_strategies(snapshot.vault for snapshot in snapshots)
            matrix = build_reallocation_table(mapping, mapping.num_strategies, plans)
        except Exception:
            store.release(vault_ids)
            raise

        if _metrics_enabled():
            REALLOCATION_PLANS.inc(len(plans))
            REALLOCATION_TRANSFERS.inc(sum(len(plan.transfers) for plan in plans))
            MATRIX_STRATEGIES.observe(mapping.num_strategies)
        logger.info(
            "reallocation batch prepared",
            vaults=vault_ids,
            strategies=mapping.num_strategies,
            transfers=sum(1 for _ in matrix.transfers()),
        )
        return cls(store, snapshots, plans, mapping, matrix)

    @staticmethod
    def _snapshot(
        store: AllocationStore,
        vault: Vault,
        allocation: Sequence[int],
        exposure_tracker: StrategyExposureTracker,
    ) -> VaultSnapshot:
        version, current = store.get(vault.vault_id)
        new_allocation = tuple(validate_allocation(allocation, len(vault.strategies)))
        return VaultSnapshot(
            vault=vault,
            version=version,
            current_allocation=current,
            new_allocation=new_allocation,
            old_exposure=tuple(resolve_exposures(exposure_tracker, vault)),
        )

    @staticmethod
    def _plan(snapshot: VaultSnapshot, *, skip_unfunded: bool) -> ReallocationPlan:
        try:
            return calculate_reallocation(snapshot.old_exposure, snapshot.new_allocation)
        except ArithmeticBoundsError:
            if skip_unfunded and sum(snapshot.old_exposure) == 0:
                return _noop_plan(snapshot.old_exposure)
            raise

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def vault_ids(self) -> tuple[str, ...]:
        return tuple(snapshot.vault_id for snapshot in self.snapshots)

    def strategies(self) -> list[Strategy]:
        by_id: dict[str, Strategy] = {}
        for snapshot in self.snapshots:
            for strategy in snapshot.vault.strategies:
                by_id.setdefault(strategy.strategy_id, strategy)
        return [by_id[strategy_id] for strategy_id in self.mapping.strategy_ids]

    def asset_matrix(
        self,
        oracle: ExchangeRateOracle,
        ratio_provider: StrategyRatioProvider,
        *,
        rate_scale: int = 1,
    ) -> ReallocationMatrix:
        """The value matrix expressed in asset amounts of the batch asset group."""

        asset_group = self.snapshots[0].vault.asset_group
        rates = resolve_exchange_rates(oracle, asset_group)
        ratios = [ratio_provider.ratio_of(strategy) for strategy in self.strategies()]
        return self.matrix.denominate(ratios, rates, rate_scale=rate_scale)

    def commit(self) -> dict[str, int]:
        """Record every new allocation; call once the matrix has been executed."""

        self._ensure_open()
        try:
            versions = self.store.apply(
                [
                    (snapshot.vault_id, snapshot.new_allocation, snapshot.version)
                    for snapshot in self.snapshots
                ]
            )
        finally:
            self._close()
        if _metrics_enabled():
            BATCHES.labels(outcome="committed").inc()
        logger.info("reallocation batch committed", vaults=list(self.vault_ids))
        return versions

    def abort(self) -> None:
        self._ensure_open()
        self._close()
        if _metrics_enabled():
            BATCHES.labels(outcome="aborted").inc()
        logger.info("reallocation batch aborted", vaults=list(self.vault_ids))

    def _ensure_open(self) -> None:
        if not self._open:
            raise ConfigurationError("reallocation batch is already closed")

    def _close(self) -> None:
        self._open = False
        self.store.release(self.vault_ids)

    def __enter__(self) -> "ReallocationBatch":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if self._open:
            self.abort()
        return False


__all__ = [
    "AllocationStore",
    "DepositDistribution",
    "DepositFlow",
    "ReallocationBatch",
    "VaultSnapshot",
]
