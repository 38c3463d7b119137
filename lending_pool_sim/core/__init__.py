"""Core lending pool components"""

from .errors import (
    Errors, LendingPoolError, PoolPausedError, UnauthorizedError, ReserveInactiveError,
    ReserveAlreadyInitializedError, ReserveFullError, ValidationError, IndexOverflowError,
    LiquidationIneligibleError, SwapFailureError,
)
from .math import WAD, RAY, PERCENTAGE_FACTOR, SECONDS_PER_YEAR, MAX_UINT128, MAX_UINT256
from .reserve import ReserveConfiguration, ReserveData
from .ledger import UserConfiguration, ReserveRegistry, MAX_NUMBER_RESERVES
from .validation import HealthFactorValidator, HEALTH_FACTOR_LIQUIDATION_THRESHOLD, ALL
from .pool import LendingPool, PoolConfiguration
from .liquidation import LiquidationManager, LiquidationResult

__all__ = [
    "Errors", "LendingPoolError", "PoolPausedError", "UnauthorizedError", "ReserveInactiveError",
    "ReserveAlreadyInitializedError", "ReserveFullError", "ValidationError", "IndexOverflowError",
    "LiquidationIneligibleError", "SwapFailureError",
    "WAD", "RAY", "PERCENTAGE_FACTOR", "SECONDS_PER_YEAR", "MAX_UINT128", "MAX_UINT256",
    "ReserveConfiguration", "ReserveData",
    "UserConfiguration", "ReserveRegistry", "MAX_NUMBER_RESERVES",
    "HealthFactorValidator", "HEALTH_FACTOR_LIQUIDATION_THRESHOLD", "ALL",
    "LendingPool", "PoolConfiguration",
    "LiquidationManager", "LiquidationResult",
]
