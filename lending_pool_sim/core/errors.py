#!/usr/bin/env python3
"""
Lending Pool Error Taxonomy

Every failure surfaces synchronously as one of the exceptions below and aborts
the whole call that raised it. Nothing is retried inside the core.
"""

from typing import Optional


class Errors:
    """Error codes carried by LendingPoolError.code"""

    # Validation
    VL_INVALID_AMOUNT = "VL_INVALID_AMOUNT"
    VL_NO_ACTIVE_RESERVE = "VL_NO_ACTIVE_RESERVE"
    VL_RESERVE_FROZEN = "VL_RESERVE_FROZEN"
    VL_NOT_ENOUGH_AVAILABLE_USER_BALANCE = "VL_NOT_ENOUGH_AVAILABLE_USER_BALANCE"
    VL_TRANSFER_NOT_ALLOWED = "VL_TRANSFER_NOT_ALLOWED"
    VL_BORROWING_NOT_ENABLED = "VL_BORROWING_NOT_ENABLED"
    VL_COLLATERAL_BALANCE_IS_0 = "VL_COLLATERAL_BALANCE_IS_0"
    VL_HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD = "VL_HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD"
    VL_COLLATERAL_CANNOT_COVER_NEW_BORROW = "VL_COLLATERAL_CANNOT_COVER_NEW_BORROW"
    VL_NO_DEBT_OF_SELECTED_TYPE = "VL_NO_DEBT_OF_SELECTED_TYPE"
    VL_NO_EXPLICIT_AMOUNT_TO_REPAY_ON_BEHALF = "VL_NO_EXPLICIT_AMOUNT_TO_REPAY_ON_BEHALF"
    VL_UNDERLYING_BALANCE_NOT_GREATER_THAN_0 = "VL_UNDERLYING_BALANCE_NOT_GREATER_THAN_0"
    VL_DEPOSIT_ALREADY_IN_USE = "VL_DEPOSIT_ALREADY_IN_USE"
    VL_NOT_ENOUGH_RECEIPT_BALANCE_TO_REPAY = "VL_NOT_ENOUGH_RECEIPT_BALANCE_TO_REPAY"
    VL_INVALID_FEE = "VL_INVALID_FEE"
    VL_PRICE_UNAVAILABLE = "VL_PRICE_UNAVAILABLE"

    # Tokens
    CT_INVALID_MINT_AMOUNT = "CT_INVALID_MINT_AMOUNT"
    CT_INVALID_BURN_AMOUNT = "CT_INVALID_BURN_AMOUNT"
    CT_TRANSFER_AMOUNT_EXCEEDS_BALANCE = "CT_TRANSFER_AMOUNT_EXCEEDS_BALANCE"
    CT_TRANSFER_AMOUNT_EXCEEDS_ALLOWANCE = "CT_TRANSFER_AMOUNT_EXCEEDS_ALLOWANCE"
    CT_BORROW_ALLOWANCE_NOT_ENOUGH = "CT_BORROW_ALLOWANCE_NOT_ENOUGH"

    # Pool
    LP_IS_PAUSED = "LP_IS_PAUSED"
    LP_CALLER_NOT_ADMIN = "LP_CALLER_NOT_ADMIN"
    LP_CALLER_MUST_BE_A_TOKEN = "LP_CALLER_MUST_BE_A_TOKEN"
    LP_NO_MORE_RESERVES_ALLOWED = "LP_NO_MORE_RESERVES_ALLOWED"
    LP_RESERVE_NOT_INITIALIZED = "LP_RESERVE_NOT_INITIALIZED"
    LP_LIQUIDATION_MANAGER_NOT_SET = "LP_LIQUIDATION_MANAGER_NOT_SET"
    RL_RESERVE_ALREADY_INITIALIZED = "RL_RESERVE_ALREADY_INITIALIZED"
    UL_INVALID_INDEX = "UL_INVALID_INDEX"

    # Math / storage bounds
    MATH_MULTIPLICATION_OVERFLOW = "MATH_MULTIPLICATION_OVERFLOW"
    MATH_DIVISION_BY_ZERO = "MATH_DIVISION_BY_ZERO"
    RL_LIQUIDITY_INDEX_OVERFLOW = "RL_LIQUIDITY_INDEX_OVERFLOW"
    RL_VARIABLE_BORROW_INDEX_OVERFLOW = "RL_VARIABLE_BORROW_INDEX_OVERFLOW"
    RL_LIQUIDITY_RATE_OVERFLOW = "RL_LIQUIDITY_RATE_OVERFLOW"
    RL_VARIABLE_BORROW_RATE_OVERFLOW = "RL_VARIABLE_BORROW_RATE_OVERFLOW"

    # Liquidation
    LPCM_HEALTH_FACTOR_NOT_BELOW_THRESHOLD = "LPCM_HEALTH_FACTOR_NOT_BELOW_THRESHOLD"
    LPCM_COLLATERAL_CANNOT_BE_LIQUIDATED = "LPCM_COLLATERAL_CANNOT_BE_LIQUIDATED"
    LPCM_SPECIFIED_CURRENCY_NOT_BORROWED_BY_USER = "LPCM_SPECIFIED_CURRENCY_NOT_BORROWED_BY_USER"
    LPCM_NO_ERRORS = "LPCM_NO_ERRORS"

    # Swap venue
    SWAP_INSUFFICIENT_OUTPUT_AMOUNT = "SWAP_INSUFFICIENT_OUTPUT_AMOUNT"
    SWAP_INSUFFICIENT_LIQUIDITY = "SWAP_INSUFFICIENT_LIQUIDITY"
    SWAP_INVALID_PATH = "SWAP_INVALID_PATH"
    SWAP_EXPIRED = "SWAP_EXPIRED"


class LendingPoolError(Exception):
    """Base class for every failure raised by the lending core"""

    def __init__(self, code: str, message: Optional[str] = None):
        self.code = code
        super().__init__(message or code)


class PoolPausedError(LendingPoolError):
    """Action attempted while the pool is globally paused"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(Errors.LP_IS_PAUSED, message)


class UnauthorizedError(LendingPoolError):
    """Privileged or token-only call from the wrong caller"""


class ReserveInactiveError(LendingPoolError):
    """Reserve is unregistered or not active"""


class ReserveAlreadyInitializedError(LendingPoolError):
    """init_reserve called twice for the same asset"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(Errors.RL_RESERVE_ALREADY_INITIALIZED, message)


class ReserveFullError(LendingPoolError):
    """Reserve registry has no free slot"""

    def __init__(self, message: Optional[str] = None):
        super().__init__(Errors.LP_NO_MORE_RESERVES_ALLOWED, message)


class ValidationError(LendingPoolError):
    """Solvency or input validation failed"""


class IndexOverflowError(LendingPoolError):
    """An index, rate or intermediate product exceeds its fixed-width bound"""


class LiquidationIneligibleError(LendingPoolError):
    """Position or reserves do not satisfy the liquidation preconditions"""


class SwapFailureError(LendingPoolError):
    """Swap venue could not honour the requested trade"""
