"""Pydantic payloads accepted and produced by the command line."""

from __future__ import annotations

from typing import Annotated, Any, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer


def _parse_int(value: Any) -> Any:
    # amounts scaled by 1e18 and beyond travel as decimal strings
    if isinstance(value, str):
        text = value.strip().replace("_", "")
        try:
            return int(text)
        except ValueError:
            return value
    return value


Amount = Annotated[
    int,
    BeforeValidator(_parse_int),
    PlainSerializer(lambda value: str(value), return_type=str),
]


class RatioRequest(BaseModel):
    """Inputs shared by the deposit sub-commands."""

    model_config = ConfigDict(extra="forbid")

    exchange_rates: list[Amount]
    allocation: list[Amount]
    strategy_ratios: list[list[Amount]]
    deposit: list[Amount] = Field(default_factory=list)
    tolerance_bps: Optional[int] = None


class VaultReallocationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vault_id: str
    strategies: list[str]
    old_exposure: list[Amount]
    new_allocation: list[int]


class ReallocationRequestBatch(BaseModel):
    model_config = ConfigDict(extra="forbid")

    vaults: list[VaultReallocationRequest] = Field(min_length=1)


class TransferPayload(BaseModel):
    source: str
    target: str
    amount: Amount


class PlanPayload(BaseModel):
    vault_id: str
    target_exposure: list[Amount]
    withdrawals: list[Amount]
    deposits: list[Amount]
    transfers: list[TransferPayload]


class ReallocationResponse(BaseModel):
    strategy_ids: list[str]
    local_to_global: list[list[int]]
    plans: list[PlanPayload]
    matrix: list[list[list[Amount]]]


__all__ = [
    "Amount",
    "PlanPayload",
    "RatioRequest",
    "ReallocationRequestBatch",
    "ReallocationResponse",
    "TransferPayload",
    "VaultReallocationRequest",
]
