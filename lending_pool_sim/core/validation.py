#!/usr/bin/env python3
"""
Health Factor Validator

Default solvency collaborator. Values every position in ETH through the price
oracle, derives the health factor and rejects actions that would leave a user
undercollateralized.

    health_factor = total_collateral_eth * avg_liquidation_threshold / total_debt_eth

A position with health factor below 1.0 (1e18 in wad) can be liquidated.
"""

from typing import TYPE_CHECKING, Tuple

from .errors import Errors, ReserveInactiveError, ValidationError
from .interfaces import PriceOracle, SolvencyValidator, UserAccountData
from .math import MAX_UINT256, WAD, percent_div, percent_mul, wad_div

if TYPE_CHECKING:
    from .pool import LendingPool
    from .reserve import ReserveData

HEALTH_FACTOR_LIQUIDATION_THRESHOLD = WAD

# Amount sentinel meaning "the whole balance" for withdraw and repay
ALL = MAX_UINT256


def calculate_health_factor_from_balances(
    total_collateral_eth: int,
    total_debt_eth: int,
    liquidation_threshold: int
) -> int:
    """Health factor in wad; MAX_UINT256 when there is no debt"""
    if total_debt_eth == 0:
        return MAX_UINT256
    return wad_div(percent_mul(total_collateral_eth, liquidation_threshold), total_debt_eth)


def calculate_available_borrows_eth(total_collateral_eth: int, total_debt_eth: int, ltv: int) -> int:
    available = percent_mul(total_collateral_eth, ltv)
    if available < total_debt_eth:
        return 0
    return available - total_debt_eth


class HealthFactorValidator(SolvencyValidator):
    """Solvency checks computed from live pool balances and oracle prices"""

    def __init__(self, pool: "LendingPool", oracle: PriceOracle):
        self.pool = pool
        self.oracle = oracle

    def _value_in_eth(self, asset: str, amount: int, decimals: int) -> int:
        return self.oracle.get_asset_price(asset) * amount // 10**decimals

    def _aggregate(self, user: str) -> Tuple[int, int, int, int]:
        """Return (total_collateral_eth, total_debt_eth, avg_ltv, avg_liquidation_threshold)"""
        user_config = self.pool.get_user_configuration(user)
        if user_config.is_empty():
            return 0, 0, 0, 0

        total_collateral_eth = 0
        total_debt_eth = 0
        weighted_ltv = 0
        weighted_threshold = 0

        for reserve_id, asset in enumerate(self.pool.get_reserves_list()):
            if not user_config.is_using_as_collateral_or_borrowing(reserve_id):
                continue

            reserve = self.pool.get_reserve_data(asset)
            config = reserve.configuration

            if config.liquidation_threshold != 0 and user_config.is_using_as_collateral(reserve_id):
                collateral_eth = self._value_in_eth(asset, reserve.a_token.balance_of(user), config.decimals)
                total_collateral_eth += collateral_eth
                weighted_ltv += collateral_eth * config.ltv
                weighted_threshold += collateral_eth * config.liquidation_threshold

            if user_config.is_borrowing(reserve_id):
                total_debt_eth += self._value_in_eth(
                    asset, reserve.variable_debt_token.balance_of(user), config.decimals
                )

        avg_ltv = weighted_ltv // total_collateral_eth if total_collateral_eth > 0 else 0
        avg_threshold = weighted_threshold // total_collateral_eth if total_collateral_eth > 0 else 0
        return total_collateral_eth, total_debt_eth, avg_ltv, avg_threshold

    def calculate_user_account_data(self, user: str) -> UserAccountData:
        collateral, debt, ltv, threshold = self._aggregate(user)
        return UserAccountData(
            total_collateral_eth=collateral,
            total_debt_eth=debt,
            available_borrows_eth=calculate_available_borrows_eth(collateral, debt, ltv),
            current_liquidation_threshold=threshold,
            ltv=ltv,
            health_factor=calculate_health_factor_from_balances(collateral, debt, threshold),
        )

    def health_factor(self, user: str) -> int:
        return self.calculate_user_account_data(user).health_factor

    def balance_decrease_allowed(self, asset: str, user: str, amount: int) -> bool:
        """Check that removing amount of asset collateral keeps the user solvent"""
        user_config = self.pool.get_user_configuration(user)
        reserve = self.pool.get_reserve_data(asset)

        if not user_config.is_borrowing_any() or not user_config.is_using_as_collateral(reserve.id):
            return True

        config = reserve.configuration
        if config.liquidation_threshold == 0:
            return True

        total_collateral_eth, total_debt_eth, _, avg_threshold = self._aggregate(user)
        if total_debt_eth == 0:
            return True

        amount_to_decrease_eth = self._value_in_eth(asset, amount, config.decimals)
        collateral_after_eth = total_collateral_eth - amount_to_decrease_eth
        if collateral_after_eth <= 0:
            return False

        threshold_after = (
            total_collateral_eth * avg_threshold - amount_to_decrease_eth * config.liquidation_threshold
        ) // collateral_after_eth

        health_factor_after = calculate_health_factor_from_balances(
            collateral_after_eth, total_debt_eth, threshold_after
        )
        return health_factor_after >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD

    def _require_active(self, reserve: "ReserveData") -> None:
        if not reserve.configuration.active:
            raise ReserveInactiveError(Errors.VL_NO_ACTIVE_RESERVE)

    def validate_deposit(self, asset: str, amount: int) -> None:
        reserve = self.pool.get_reserve_data(asset)
        if amount == 0:
            raise ValidationError(Errors.VL_INVALID_AMOUNT)
        self._require_active(reserve)
        if reserve.configuration.frozen:
            raise ValidationError(Errors.VL_RESERVE_FROZEN)

    def validate_withdraw(self, asset: str, amount: int, user_balance: int, user: str) -> None:
        if amount == 0:
            raise ValidationError(Errors.VL_INVALID_AMOUNT)
        if amount > user_balance:
            raise ValidationError(Errors.VL_NOT_ENOUGH_AVAILABLE_USER_BALANCE)
        self._require_active(self.pool.get_reserve_data(asset))
        if not self.balance_decrease_allowed(asset, user, amount):
            raise ValidationError(Errors.VL_TRANSFER_NOT_ALLOWED)

    def validate_borrow(self, asset: str, user: str, amount: int, amount_in_eth: int) -> None:
        reserve = self.pool.get_reserve_data(asset)
        config = reserve.configuration

        self._require_active(reserve)
        if config.frozen:
            raise ValidationError(Errors.VL_RESERVE_FROZEN)
        if amount == 0:
            raise ValidationError(Errors.VL_INVALID_AMOUNT)
        if not config.borrowing_enabled:
            raise ValidationError(Errors.VL_BORROWING_NOT_ENABLED)

        total_collateral_eth, total_debt_eth, avg_ltv, avg_threshold = self._aggregate(user)
        if total_collateral_eth == 0:
            raise ValidationError(Errors.VL_COLLATERAL_BALANCE_IS_0)

        health_factor = calculate_health_factor_from_balances(total_collateral_eth, total_debt_eth, avg_threshold)
        if health_factor <= HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            raise ValidationError(Errors.VL_HEALTH_FACTOR_LOWER_THAN_LIQUIDATION_THRESHOLD)

        if avg_ltv == 0:
            raise ValidationError(Errors.VL_COLLATERAL_CANNOT_COVER_NEW_BORROW)

        collateral_needed_eth = percent_div(total_debt_eth + amount_in_eth, avg_ltv)
        if collateral_needed_eth > total_collateral_eth:
            raise ValidationError(Errors.VL_COLLATERAL_CANNOT_COVER_NEW_BORROW)

    def validate_repay(self, asset: str, amount: int, caller: str, on_behalf_of: str, variable_debt: int) -> None:
        self._require_active(self.pool.get_reserve_data(asset))
        if amount == 0:
            raise ValidationError(Errors.VL_INVALID_AMOUNT)
        if variable_debt == 0:
            raise ValidationError(Errors.VL_NO_DEBT_OF_SELECTED_TYPE)
        if amount == ALL and caller != on_behalf_of:
            raise ValidationError(Errors.VL_NO_EXPLICIT_AMOUNT_TO_REPAY_ON_BEHALF)

    def validate_set_use_reserve_as_collateral(self, asset: str, user: str, use_as_collateral: bool) -> None:
        reserve = self.pool.get_reserve_data(asset)
        self._require_active(reserve)

        underlying_balance = reserve.a_token.balance_of(user)
        if underlying_balance == 0:
            raise ValidationError(Errors.VL_UNDERLYING_BALANCE_NOT_GREATER_THAN_0)

        if not use_as_collateral and not self.balance_decrease_allowed(asset, user, underlying_balance):
            raise ValidationError(Errors.VL_DEPOSIT_ALREADY_IN_USE)

    def validate_transfer(self, user: str) -> None:
        if self.health_factor(user) < HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
            raise ValidationError(Errors.VL_TRANSFER_NOT_ALLOWED)
