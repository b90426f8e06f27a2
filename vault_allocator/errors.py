"""Error taxonomy for the allocation core."""

from __future__ import annotations

from typing import Optional


class AllocationError(ValueError):
    """Base class for every error raised by the allocation core."""


class ConfigurationError(AllocationError):
    """Inputs do not describe a consistent vault/strategy/asset configuration."""


class PriceUnavailableError(ConfigurationError):
    """An exchange rate could not be resolved for an asset."""

    def __init__(self, asset: str) -> None:
        super().__init__(f"no exchange rate available for asset {asset!r}")
        self.asset = asset


class ArithmeticBoundsError(AllocationError):
    """A computation would divide by a zero total."""


class RatioToleranceError(AllocationError):
    """A deposit deviates from the ideal asset ratio beyond the tolerance."""


class IncorrectDepositRatio(RatioToleranceError):
    def __init__(
        self,
        asset_index: int,
        *,
        actual: int,
        ideal: int,
        tolerance_bps: Optional[int] = None,
    ) -> None:
        message = f"deposit ratio for asset {asset_index} is outside tolerance"
        if tolerance_bps is not None:
            message = f"{message} of {tolerance_bps} bps"
        super().__init__(message)
        self.asset_index = asset_index
        self.actual = actual
        self.ideal = ideal
        self.tolerance_bps = tolerance_bps


__all__ = [
    "AllocationError",
    "ArithmeticBoundsError",
    "ConfigurationError",
    "IncorrectDepositRatio",
    "PriceUnavailableError",
    "RatioToleranceError",
]
