from __future__ import annotations

from prometheus_client import Counter, Histogram

DEPOSITS_DISTRIBUTED = Counter(
    "vault_allocator_deposits_distributed_total",
    "Deposits split across strategies",
)
DEPOSIT_RATIO_REJECTIONS = Counter(
    "vault_allocator_deposit_ratio_rejections_total",
    "Deposits rejected because an asset ratio was outside tolerance",
    labelnames=("asset_index",),
)
REALLOCATION_PLANS = Counter(
    "vault_allocator_reallocation_plans_total",
    "Per-vault reallocation plans computed",
)
REALLOCATION_TRANSFERS = Counter(
    "vault_allocator_reallocation_transfers_total",
    "Donor to receiver transfers emitted by the waterfall match",
)
BATCHES = Counter(
    "vault_allocator_reallocation_batches_total",
    "Reallocation batches by outcome",
    labelnames=("outcome",),
)
MATRIX_STRATEGIES = Histogram(
    "vault_allocator_matrix_strategies",
    "Distinct strategies in a global reallocation matrix",
    buckets=(1, 2, 4, 8, 16, 32, 64),
)
