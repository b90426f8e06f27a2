"""Deposit distribution and cross-vault reallocation for multi-strategy vaults."""

from .deposits import (
    calculate_deposit_ratio,
    calculate_flush_factors,
    distribute_deposit,
    split_value_by_ratio,
)
from .errors import (
    AllocationError,
    ArithmeticBoundsError,
    ConfigurationError,
    IncorrectDepositRatio,
    PriceUnavailableError,
    RatioToleranceError,
)
from .matrix import (
    ReallocationMatrix,
    StrategyMapping,
    VaultReallocation,
    build_reallocation_table,
    map_strategies,
)
from .models import AssetGroup, Strategy, Vault
from .reallocation import ReallocationPlan, Transfer, calculate_reallocation, waterfall_match
from .validation import check_deposit_ratio, deposit_deviations

__all__ = [
    "AllocationError",
    "ArithmeticBoundsError",
    "AssetGroup",
    "ConfigurationError",
    "IncorrectDepositRatio",
    "PriceUnavailableError",
    "RatioToleranceError",
    "ReallocationMatrix",
    "ReallocationPlan",
    "Strategy",
    "StrategyMapping",
    "Transfer",
    "Vault",
    "VaultReallocation",
    "build_reallocation_table",
    "calculate_deposit_ratio",
    "calculate_flush_factors",
    "calculate_reallocation",
    "check_deposit_ratio",
    "deposit_deviations",
    "distribute_deposit",
    "map_strategies",
    "split_value_by_ratio",
    "waterfall_match",
]
