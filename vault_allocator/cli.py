"""Command line entry point: run the allocation math over a JSON document."""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional, Sequence

from pydantic import ValidationError

from .config import get_settings
from .deposits import calculate_deposit_ratio, calculate_flush_factors, distribute_deposit
from .errors import AllocationError, RatioToleranceError
from .logger import configure_logging, get_logger
from .matrix import build_reallocation_table, map_strategies
from .reallocation import calculate_reallocation
from .schemas import (
    PlanPayload,
    RatioRequest,
    ReallocationRequestBatch,
    ReallocationResponse,
    TransferPayload,
)
from .validation import deposit_deviations

logger = get_logger(__name__)

EXIT_REJECTED = 1
EXIT_INVALID = 2


def _load_json(path: str) -> dict[str, Any]:
    text = sys.stdin.read() if path == "-" else Path(path).read_text(encoding="utf-8")
    payload = json.loads(text)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected JSON object at {path}")
    return payload


def _strs(values: Sequence[int]) -> list[str]:
    return [str(value) for value in values]


def _deposit_ratio(payload: dict[str, Any]) -> dict[str, Any]:
    request = RatioRequest.model_validate(payload)
    flush_factors = None
    if len(request.exchange_rates) > 1:
        flush_factors = [
            _strs(row)
            for row in calculate_flush_factors(
                request.exchange_rates, request.allocation, request.strategy_ratios
            )
        ]
    ratio = calculate_deposit_ratio(request.exchange_rates, request.allocation, request.strategy_ratios)
    return {"flush_factors": flush_factors, "deposit_ratio": _strs(ratio)}


def _distribute(payload: dict[str, Any]) -> dict[str, Any]:
    request = RatioRequest.model_validate(payload)
    distribution = distribute_deposit(
        request.deposit, request.exchange_rates, request.allocation, request.strategy_ratios
    )
    return {"distribution": [_strs(row) for row in distribution]}


def _check_deposit(payload: dict[str, Any]) -> dict[str, Any]:
    request = RatioRequest.model_validate(payload)
    tolerance = (
        request.tolerance_bps if request.tolerance_bps is not None else get_settings().deposit_tolerance_bps
    )
    deviations = deposit_deviations(
        request.deposit,
        request.exchange_rates,
        request.allocation,
        request.strategy_ratios,
        tolerance_bps=tolerance,
    )
    return {
        "tolerance_bps": tolerance,
        "accepted": all(item.within_tolerance for item in deviations),
        "assets": [
            {
                "asset_index": item.asset_index,
                "deviation_bps": item.deviation_bps,
                "within_tolerance": item.within_tolerance,
            }
            for item in deviations
        ],
    }


def _reallocate(payload: dict[str, Any]) -> dict[str, Any]:
    request = ReallocationRequestBatch.model_validate(payload)
    mapping = map_strategies(vault.strategies for vault in request.vaults)
    plans = [calculate_reallocation(vault.old_exposure, vault.new_allocation) for vault in request.vaults]
    matrix = build_reallocation_table(mapping, mapping.num_strategies, plans)
    response = ReallocationResponse(
        strategy_ids=list(mapping.strategy_ids),
        local_to_global=[list(indices) for indices in mapping.local_to_global],
        plans=[
            PlanPayload(
                vault_id=vault.vault_id,
                target_exposure=list(plan.target_exposure),
                withdrawals=list(plan.withdrawals),
                deposits=list(plan.deposits),
                transfers=[
                    TransferPayload(
                        source=vault.strategies[transfer.source],
                        target=vault.strategies[transfer.target],
                        amount=transfer.amount,
                    )
                    for transfer in plan.transfers
                ],
            )
            for vault, plan in zip(request.vaults, plans)
        ],
        matrix=matrix.to_lists(),
    )
    return response.model_dump(mode="json")


COMMANDS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "deposit-ratio": _deposit_ratio,
    "distribute": _distribute,
    "check-deposit": _check_deposit,
    "reallocate": _reallocate,
}


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vault-allocator",
        description="Distribute vault deposits and plan cross-vault reallocations.",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL.")
    subparsers = parser.add_subparsers(dest="command", required=True)
    for name, help_text in (
        ("deposit-ratio", "Print flush factors and the ideal deposit ratio."),
        ("distribute", "Split a deposit across strategies."),
        ("check-deposit", "Check a deposit against the ideal ratio."),
        ("reallocate", "Plan reallocations for one or more vaults and merge them."),
    ):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("input", nargs="?", default="-", help="JSON document path, '-' for stdin.")
        sub.add_argument("--output", type=Path, help="Optional output JSON file. Prints to stdout regardless.")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json=settings.log_json)

    try:
        result = COMMANDS[args.command](_load_json(args.input))
    except (ValidationError, ValueError, OSError) as exc:
        # AllocationError subclasses ValueError; OSError covers unreadable input
        logger.error("command failed", command=args.command, error=str(exc))
        kind = type(exc).__name__ if isinstance(exc, AllocationError) else "InvalidInput"
        print(json.dumps({"error": kind, "detail": str(exc)}, sort_keys=True))
        return EXIT_REJECTED if isinstance(exc, RatioToleranceError) else EXIT_INVALID

    rendered = json.dumps(result, indent=2, sort_keys=True)
    if args.output:
        args.output.write_text(rendered + "\n", encoding="utf-8")
    print(rendered)
    if args.command == "check-deposit" and not result["accepted"]:
        return EXIT_REJECTED
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
