#!/usr/bin/env python3
"""
Liquidation Manager

Privileged module invoked by LendingPool.liquidation_call with a handle to the
live pool. One call is a single attempt:

1. eligibility (health factor strictly below 1.0, collateral enabled, debt > 0)
2. close factor: at most 50% of the user's debt in the debt asset
3. collateral sizing with the liquidation bonus, capped by the user's balance
4. seizure: the bonus share goes straight to the liquidator as receipt tokens
5. settlement: same asset burns debt against collateral directly; otherwise
   the collateral is sold on the swap venue and the proceeds repay the debt

Nothing is persisted between calls. Any failure, including a swap below the
minimum output, aborts the whole liquidation.
"""

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Tuple

from .errors import Errors, LiquidationIneligibleError, SwapFailureError
from .events import LiquidationCall
from .interfaces import SwapVenue
from .math import percent_div, percent_mul
from .reserve import ReserveData
from .validation import HEALTH_FACTOR_LIQUIDATION_THRESHOLD

if TYPE_CHECKING:
    from .pool import LendingPool

logger = logging.getLogger(__name__)

LIQUIDATION_CLOSE_FACTOR_PERCENT = 5000

# Swap output must reach 90% of the debt being covered
SWAP_MIN_OUTPUT_PERCENT = 9000


@dataclass(frozen=True)
class LiquidationResult:
    """Outcome of a successful liquidation"""
    error_code: str
    debt_covered: int
    debt_settled: int
    collateral_liquidated: int
    collateral_to_liquidator: int
    collateral_sold: int
    swap_path: Optional[Tuple[str, ...]] = None


class LiquidationManager:
    """Seizes collateral from unhealthy positions and settles their debt"""

    def __init__(
        self,
        swap_venue: SwapVenue,
        intermediary_asset: Optional[str] = None,
        address: str = "liquidation_manager"
    ):
        self.swap_venue = swap_venue
        self.intermediary_asset = intermediary_asset
        self.address = address

    def swap_path(self, from_asset: str, to_asset: str) -> List[str]:
        """Direct pair, or one hop through the intermediary when neither side is it"""
        if (self.intermediary_asset is None
                or from_asset == self.intermediary_asset
                or to_asset == self.intermediary_asset):
            return [from_asset, to_asset]
        return [from_asset, self.intermediary_asset, to_asset]

    def liquidation_call(
        self,
        pool: "LendingPool",
        caller: str,
        collateral_asset: str,
        debt_asset: str,
        user: str,
        debt_to_cover: int
    ) -> LiquidationResult:
        collateral_reserve = pool.get_reserve_data(collateral_asset)
        debt_reserve = pool.get_reserve_data(debt_asset)
        user_config = pool.user_configuration(user)

        health_factor = pool.validator.health_factor(user)
        user_variable_debt = debt_reserve.variable_debt_token.balance_of(user)

        self._validate_liquidation_call(
            collateral_reserve, debt_reserve, user_config.is_using_as_collateral(collateral_reserve.id),
            health_factor, user_variable_debt
        )

        max_liquidatable_debt = percent_mul(user_variable_debt, LIQUIDATION_CLOSE_FACTOR_PERCENT)
        actual_debt_to_liquidate = min(debt_to_cover, max_liquidatable_debt)

        collateral_a_token = collateral_reserve.a_token
        user_collateral_balance = collateral_a_token.balance_of(user)

        max_collateral_to_liquidate, collateral_to_sell, actual_debt_to_liquidate = (
            self._calculate_available_collateral_to_liquidate(
                pool, collateral_asset, debt_asset, collateral_reserve, debt_reserve,
                actual_debt_to_liquidate, user_collateral_balance
            )
        )
        collateral_to_liquidator = max_collateral_to_liquidate - collateral_to_sell

        now = pool.clock()
        collateral_reserve.update_state(now)

        # Flags first, token movements after
        if collateral_to_liquidator > 0 and collateral_a_token.balance_of(caller) == 0:
            pool.set_using_as_collateral(collateral_asset, caller, True)
        if max_collateral_to_liquidate == user_collateral_balance:
            pool.set_using_as_collateral(collateral_asset, user, False)

        if collateral_to_liquidator > 0:
            collateral_a_token.transfer_on_liquidation(user, caller, collateral_to_liquidator)

        swap_path = None
        if collateral_asset == debt_asset:
            debt_settled = self._settle_same_asset(pool, debt_asset, debt_reserve, user, collateral_to_sell)
        else:
            swap_path = tuple(self.swap_path(collateral_asset, debt_asset))
            debt_settled = self._settle_through_swap(
                pool, collateral_asset, debt_asset, collateral_reserve, debt_reserve,
                user, collateral_to_sell, actual_debt_to_liquidate, list(swap_path), now
            )

        if debt_reserve.variable_debt_token.balance_of(user) == 0:
            user_config.set_borrowing(debt_reserve.id, False)

        pool.events.emit(LiquidationCall(
            collateral_asset=collateral_asset,
            debt_asset=debt_asset,
            user=user,
            debt_to_cover=debt_settled,
            liquidated_collateral_amount=max_collateral_to_liquidate,
            liquidator=caller,
        ))
        logger.info(
            "Position liquidated",
            extra={
                "event": "liquidation.executed",
                "user": user,
                "liquidator": caller,
                "collateral_asset": collateral_asset,
                "debt_asset": debt_asset,
                "debt_settled": debt_settled,
                "collateral_liquidated": max_collateral_to_liquidate,
            }
        )

        return LiquidationResult(
            error_code=Errors.LPCM_NO_ERRORS,
            debt_covered=actual_debt_to_liquidate,
            debt_settled=debt_settled,
            collateral_liquidated=max_collateral_to_liquidate,
            collateral_to_liquidator=collateral_to_liquidator,
            collateral_sold=collateral_to_sell,
            swap_path=swap_path,
        )

    def _validate_liquidation_call(
        self,
        collateral_reserve: ReserveData,
        debt_reserve: ReserveData,
        using_as_collateral: bool,
        health_factor: int,
        user_variable_debt: int
    ) -> None:
        if not collateral_reserve.configuration.active or not debt_reserve.configuration.active:
            raise LiquidationIneligibleError(Errors.VL_NO_ACTIVE_RESERVE)

        if health_factor >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            raise LiquidationIneligibleError(Errors.LPCM_HEALTH_FACTOR_NOT_BELOW_THRESHOLD)

        if collateral_reserve.configuration.liquidation_threshold == 0 or not using_as_collateral:
            raise LiquidationIneligibleError(Errors.LPCM_COLLATERAL_CANNOT_BE_LIQUIDATED)

        if user_variable_debt == 0:
            raise LiquidationIneligibleError(Errors.LPCM_SPECIFIED_CURRENCY_NOT_BORROWED_BY_USER)

    def _calculate_available_collateral_to_liquidate(
        self,
        pool: "LendingPool",
        collateral_asset: str,
        debt_asset: str,
        collateral_reserve: ReserveData,
        debt_reserve: ReserveData,
        debt_to_cover: int,
        user_collateral_balance: int
    ) -> Tuple[int, int, int]:
        """
        Size the seizure for debt_to_cover.

        Returns:
            (max_collateral_to_liquidate, collateral_to_sell, debt_amount_needed)
        """
        collateral_price = pool.oracle.get_asset_price(collateral_asset)
        debt_price = pool.oracle.get_asset_price(debt_asset)
        collateral_unit = 10**collateral_reserve.configuration.decimals
        debt_unit = 10**debt_reserve.configuration.decimals
        liquidation_bonus = collateral_reserve.configuration.liquidation_bonus

        def debt_to_collateral(amount: int) -> int:
            return debt_price * amount * collateral_unit // (collateral_price * debt_unit)

        max_collateral_to_liquidate = percent_mul(debt_to_collateral(debt_to_cover), liquidation_bonus)

        if max_collateral_to_liquidate > user_collateral_balance:
            max_collateral_to_liquidate = user_collateral_balance
            debt_amount_needed = percent_div(
                collateral_price * max_collateral_to_liquidate * debt_unit // (debt_price * collateral_unit),
                liquidation_bonus
            )
        else:
            debt_amount_needed = debt_to_cover

        collateral_to_sell = min(debt_to_collateral(debt_amount_needed), max_collateral_to_liquidate)
        return max_collateral_to_liquidate, collateral_to_sell, debt_amount_needed

    def _settle_same_asset(
        self,
        pool: "LendingPool",
        asset: str,
        reserve: ReserveData,
        user: str,
        amount: int
    ) -> int:
        """Burn debt against collateral in the same reserve; no swap"""
        reserve.variable_debt_token.burn(user, amount, reserve.variable_borrow_index)
        pool.update_interest_rates(asset, 0, 0)
        reserve.a_token.burn(user, reserve.a_token.address, amount, reserve.liquidity_index)
        return amount

    def _settle_through_swap(
        self,
        pool: "LendingPool",
        collateral_asset: str,
        debt_asset: str,
        collateral_reserve: ReserveData,
        debt_reserve: ReserveData,
        user: str,
        collateral_to_sell: int,
        debt_covered: int,
        path: List[str],
        now: int
    ) -> int:
        """
        Sell collateral for the debt asset and repay with the proceeds.

        The debt relieved equals the swap output, which can differ from
        debt_covered by the venue's price and fee.
        """
        collateral_a_token = collateral_reserve.a_token
        pool.update_interest_rates(collateral_asset, 0, collateral_to_sell)
        collateral_a_token.burn(user, self.address, collateral_to_sell, collateral_reserve.liquidity_index)

        amount_out_min = percent_mul(debt_covered, SWAP_MIN_OUTPUT_PERCENT)
        collateral_a_token.underlying.approve(self.address, self.swap_venue.address, collateral_to_sell)
        amounts = self.swap_venue.swap_exact_tokens_for_tokens(
            self.address, collateral_to_sell, amount_out_min, path, self.address, now
        )
        amount_received = amounts[-1]
        if amount_received < amount_out_min:
            raise SwapFailureError(
                Errors.SWAP_INSUFFICIENT_OUTPUT_AMOUNT,
                f"Swap returned {amount_received}, minimum {amount_out_min}"
            )

        debt_reserve.update_state(now)
        debt_reserve.variable_debt_token.burn(user, amount_received, debt_reserve.variable_borrow_index)
        pool.update_interest_rates(debt_asset, amount_received, 0)

        debt_a_token = debt_reserve.a_token
        debt_a_token.underlying.transfer(self.address, debt_a_token.address, amount_received)
        return amount_received
