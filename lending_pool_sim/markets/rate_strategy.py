#!/usr/bin/env python3
"""
Interest rate strategies

KinkedRateStrategy is the usual two-slope utilization model:

    U <= U_opt:  borrow = base + slope1 * U / U_opt
    U >  U_opt:  borrow = base + slope1 + slope2 * (U - U_opt) / (1 - U_opt)

    supply = borrow * U * (1 - reserve_factor)

All rates are annualized and expressed in ray.
"""

from typing import Tuple

from ..core.interfaces import RateStrategy
from ..core.math import PERCENTAGE_FACTOR, RAY, percent_mul, ray_div, ray_mul


class KinkedRateStrategy(RateStrategy):
    """Two-slope utilization rate model"""

    def __init__(
        self,
        optimal_utilization_rate: int = 8 * RAY // 10,
        base_variable_borrow_rate: int = 0,
        variable_rate_slope1: int = 4 * RAY // 100,
        variable_rate_slope2: int = 75 * RAY // 100,
        address: str = "kinked_rate_strategy"
    ):
        if not 0 < optimal_utilization_rate <= RAY:
            raise ValueError("optimal_utilization_rate must be in (0, RAY]")

        self.optimal_utilization_rate = optimal_utilization_rate
        self.excess_utilization_rate = RAY - optimal_utilization_rate
        self.base_variable_borrow_rate = base_variable_borrow_rate
        self.variable_rate_slope1 = variable_rate_slope1
        self.variable_rate_slope2 = variable_rate_slope2
        self.address = address

    @staticmethod
    def utilization_rate(available_liquidity: int, total_variable_debt: int) -> int:
        if total_variable_debt == 0:
            return 0
        return ray_div(total_variable_debt, available_liquidity + total_variable_debt)

    def calculate_interest_rates(
        self,
        available_liquidity: int,
        total_variable_debt: int,
        reserve_factor: int
    ) -> Tuple[int, int]:
        utilization = self.utilization_rate(available_liquidity, total_variable_debt)

        if utilization > self.optimal_utilization_rate and self.excess_utilization_rate > 0:
            excess_ratio = ray_div(utilization - self.optimal_utilization_rate, self.excess_utilization_rate)
            variable_borrow_rate = (
                self.base_variable_borrow_rate
                + self.variable_rate_slope1
                + ray_mul(self.variable_rate_slope2, excess_ratio)
            )
        else:
            variable_borrow_rate = self.base_variable_borrow_rate + ray_div(
                ray_mul(utilization, self.variable_rate_slope1), self.optimal_utilization_rate
            )

        liquidity_rate = percent_mul(
            ray_mul(variable_borrow_rate, utilization),
            PERCENTAGE_FACTOR - reserve_factor
        )
        return liquidity_rate, variable_borrow_rate


class FixedRateStrategy(RateStrategy):
    """Constant rates regardless of utilization"""

    def __init__(self, liquidity_rate: int = 0, variable_borrow_rate: int = 0, address: str = "fixed_rate_strategy"):
        self.liquidity_rate = liquidity_rate
        self.variable_borrow_rate = variable_borrow_rate
        self.address = address

    def calculate_interest_rates(
        self,
        available_liquidity: int,
        total_variable_debt: int,
        reserve_factor: int
    ) -> Tuple[int, int]:
        return self.liquidity_rate, self.variable_borrow_rate
