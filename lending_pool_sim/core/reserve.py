#!/usr/bin/env python3
"""
Reserve state and interest-index engine

A reserve is the liquidity pool of one listed asset. It owns two ray-scaled
indices that grow with time:

- liquidity_index: supply side, simple (linear) interest between updates
- variable_borrow_index: borrow side, compounded per second

Receipt and debt balances are stored divided by these indices, so updating an
index accrues interest to every holder at once.
"""

import logging
from dataclasses import dataclass, fields, replace

from pydantic import BaseModel, ConfigDict, Field

from .errors import Errors, IndexOverflowError
from .events import ReserveDataUpdated
from .interfaces import DebtToken, RateStrategy, ReceiptToken
from .math import (
    MAX_UINT128,
    RAY,
    calculate_compounded_interest,
    calculate_linear_interest,
    ray_div,
    ray_mul,
)

logger = logging.getLogger(__name__)


class ReserveConfiguration(BaseModel):
    """Risk parameters of a reserve. Percentages are basis points."""
    model_config = ConfigDict(frozen=True)

    ltv: int = Field(ge=0, le=10_000, default=0, description="Loan to value")
    liquidation_threshold: int = Field(ge=0, le=10_000, default=0, description="Collateral weight in the health factor")
    liquidation_bonus: int = Field(ge=0, le=20_000, default=10_000, description="Seized collateral per unit of debt covered")
    reserve_factor: int = Field(ge=0, le=10_000, default=0, description="Share of interest kept by the protocol")
    decimals: int = Field(ge=0, le=255, default=18)
    active: bool = True
    frozen: bool = False
    borrowing_enabled: bool = True


@dataclass
class ReserveData:
    """Per-asset accounting state"""
    id: int
    a_token: ReceiptToken
    variable_debt_token: DebtToken
    interest_rate_strategy: RateStrategy
    configuration: ReserveConfiguration
    liquidity_index: int = RAY
    variable_borrow_index: int = RAY
    current_liquidity_rate: int = 0
    current_variable_borrow_rate: int = 0
    last_update_timestamp: int = 0

    def copy(self) -> "ReserveData":
        """Shallow copy: numeric state is duplicated, collaborators are shared"""
        return replace(self)

    def restore_from(self, other: "ReserveData") -> None:
        for f in fields(self):
            setattr(self, f.name, getattr(other, f.name))

    def get_normalized_income(self, now: int) -> int:
        """Liquidity index accrued up to now, without touching state"""
        if now == self.last_update_timestamp:
            return self.liquidity_index

        return ray_mul(
            calculate_linear_interest(self.current_liquidity_rate, self.last_update_timestamp, now),
            self.liquidity_index
        )

    def get_normalized_debt(self, now: int) -> int:
        """Variable borrow index accrued up to now, without touching state"""
        if now == self.last_update_timestamp:
            return self.variable_borrow_index

        return ray_mul(
            calculate_compounded_interest(self.current_variable_borrow_rate, self.last_update_timestamp, now),
            self.variable_borrow_index
        )

    def update_state(self, now: int) -> None:
        """Accrue both indices to now and stamp the reserve"""
        scaled_variable_debt = self.variable_debt_token.scaled_total_supply()

        # Only accrue while the reserve is earning; borrow side also needs debt
        if self.current_liquidity_rate > 0:
            cumulated_liquidity_interest = calculate_linear_interest(
                self.current_liquidity_rate, self.last_update_timestamp, now
            )
            new_liquidity_index = ray_mul(cumulated_liquidity_interest, self.liquidity_index)
            if new_liquidity_index > MAX_UINT128:
                raise IndexOverflowError(Errors.RL_LIQUIDITY_INDEX_OVERFLOW)
            self.liquidity_index = new_liquidity_index

            if scaled_variable_debt != 0:
                cumulated_borrow_interest = calculate_compounded_interest(
                    self.current_variable_borrow_rate, self.last_update_timestamp, now
                )
                new_variable_borrow_index = ray_mul(cumulated_borrow_interest, self.variable_borrow_index)
                if new_variable_borrow_index > MAX_UINT128:
                    raise IndexOverflowError(Errors.RL_VARIABLE_BORROW_INDEX_OVERFLOW)
                self.variable_borrow_index = new_variable_borrow_index

        self.last_update_timestamp = now

    def update_interest_rates(
        self,
        asset: str,
        available_liquidity: int,
        liquidity_added: int,
        liquidity_taken: int
    ) -> ReserveDataUpdated:
        """
        Recompute the current rates from the rate strategy.

        Must run after update_state within the same action so that the total
        debt is valued at the freshly accrued borrow index.

        Args:
            asset: Reserve asset, used for the emitted event
            available_liquidity: Underlying held by the receipt token before this action moves funds
            liquidity_added: Underlying about to enter the reserve
            liquidity_taken: Underlying about to leave the reserve

        Returns:
            The ReserveDataUpdated event describing the new state
        """
        total_variable_debt = ray_mul(
            self.variable_debt_token.scaled_total_supply(),
            self.variable_borrow_index
        )

        liquidity_rate, variable_borrow_rate = self.interest_rate_strategy.calculate_interest_rates(
            available_liquidity + liquidity_added - liquidity_taken,
            total_variable_debt,
            self.configuration.reserve_factor
        )

        if liquidity_rate > MAX_UINT128:
            raise IndexOverflowError(Errors.RL_LIQUIDITY_RATE_OVERFLOW)
        if variable_borrow_rate > MAX_UINT128:
            raise IndexOverflowError(Errors.RL_VARIABLE_BORROW_RATE_OVERFLOW)

        self.current_liquidity_rate = liquidity_rate
        self.current_variable_borrow_rate = variable_borrow_rate

        return ReserveDataUpdated(
            reserve=asset,
            liquidity_rate=liquidity_rate,
            variable_borrow_rate=variable_borrow_rate,
            liquidity_index=self.liquidity_index,
            variable_borrow_index=self.variable_borrow_index,
        )

    def cumulate_to_liquidity_index(self, total_liquidity: int, amount: int) -> int:
        """Distribute a one-off income of amount across total_liquidity"""
        amount_to_liquidity_ratio = ray_div(amount, total_liquidity)
        result = ray_mul(amount_to_liquidity_ratio + RAY, self.liquidity_index)
        if result > MAX_UINT128:
            raise IndexOverflowError(Errors.RL_LIQUIDITY_INDEX_OVERFLOW)

        self.liquidity_index = result
        logger.debug(
            "Liquidity index bumped",
            extra={
                "event": "reserve.cumulate_to_liquidity_index",
                "reserve_id": self.id,
                "amount": amount,
                "liquidity_index": result,
            }
        )
        return result

    @property
    def is_active(self) -> bool:
        return self.configuration.active

