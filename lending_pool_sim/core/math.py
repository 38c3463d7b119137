#!/usr/bin/env python3
"""
Fixed-Point Math for the Lending Pool

Pure integer functions for wad (1e18) and ray (1e27) arithmetic, basis-point
percentages and the interest formulas used by the reserve indices.

All products and quotients round half up. Intermediate values are kept inside
256 bits so that results match a fixed-width implementation exactly.
"""

from .errors import Errors, IndexOverflowError, ValidationError

WAD = 10**18
HALF_WAD = WAD // 2

RAY = 10**27
HALF_RAY = RAY // 2

WAD_RAY_RATIO = 10**9

# Basis points: 10000 == 100.00%
PERCENTAGE_FACTOR = 10_000
HALF_PERCENT = PERCENTAGE_FACTOR // 2

SECONDS_PER_YEAR = 365 * 24 * 60 * 60

MAX_UINT128 = 2**128 - 1
MAX_UINT256 = 2**256 - 1


def _check_uint256(value: int) -> int:
    if value > MAX_UINT256:
        raise IndexOverflowError(Errors.MATH_MULTIPLICATION_OVERFLOW)
    return value


def wad_mul(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return _check_uint256(a * b + HALF_WAD) // WAD


def wad_div(a: int, b: int) -> int:
    if b == 0:
        raise ValidationError(Errors.MATH_DIVISION_BY_ZERO)
    return _check_uint256(a * WAD + b // 2) // b


def ray_mul(a: int, b: int) -> int:
    if a == 0 or b == 0:
        return 0
    return _check_uint256(a * b + HALF_RAY) // RAY


def ray_div(a: int, b: int) -> int:
    if b == 0:
        raise ValidationError(Errors.MATH_DIVISION_BY_ZERO)
    return _check_uint256(a * RAY + b // 2) // b


def ray_to_wad(a: int) -> int:
    result = a // WAD_RAY_RATIO
    if a % WAD_RAY_RATIO >= WAD_RAY_RATIO // 2:
        result += 1
    return result


def wad_to_ray(a: int) -> int:
    return _check_uint256(a * WAD_RAY_RATIO)


def percent_mul(value: int, percentage: int) -> int:
    """value * percentage / 10000, half up. percentage is in basis points."""
    if value == 0 or percentage == 0:
        return 0
    return _check_uint256(value * percentage + HALF_PERCENT) // PERCENTAGE_FACTOR


def percent_div(value: int, percentage: int) -> int:
    """value * 10000 / percentage, half up."""
    if percentage == 0:
        raise ValidationError(Errors.MATH_DIVISION_BY_ZERO)
    return _check_uint256(value * PERCENTAGE_FACTOR + percentage // 2) // percentage


def calculate_linear_interest(rate: int, last_update_timestamp: int, current_timestamp: int) -> int:
    """
    Simple interest accumulated between two timestamps.

    Args:
        rate: Annualized rate, in ray
        last_update_timestamp: Start of the accrual window (seconds)
        current_timestamp: End of the accrual window (seconds)

    Returns:
        Interest factor in ray: 1 + rate * dt / SECONDS_PER_YEAR
    """
    time_difference = current_timestamp - last_update_timestamp
    return _check_uint256(rate * time_difference) // SECONDS_PER_YEAR + RAY


def calculate_compounded_interest(rate: int, last_update_timestamp: int, current_timestamp: int) -> int:
    """
    Per-second compounded interest, approximated by the first three terms of
    the binomial expansion of (1 + rate / SECONDS_PER_YEAR) ** dt.

    The approximation slightly undercharges borrowers on long windows; it stays
    exact for dt <= 2 and avoids an exponentiation loop.

    Returns:
        Interest factor in ray
    """
    exp = current_timestamp - last_update_timestamp
    if exp == 0:
        return RAY

    exp_minus_one = exp - 1
    exp_minus_two = exp - 2 if exp > 2 else 0

    rate_per_second = rate // SECONDS_PER_YEAR

    base_power_two = ray_mul(rate_per_second, rate_per_second)
    base_power_three = ray_mul(base_power_two, rate_per_second)

    second_term = _check_uint256(exp * exp_minus_one * base_power_two) // 2
    third_term = _check_uint256(exp * exp_minus_one * exp_minus_two * base_power_three) // 6

    return RAY + rate_per_second * exp + second_term + third_term
