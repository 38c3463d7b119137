#!/usr/bin/env python3
"""
Lending Pool

Entry point for every user action. Each handler is one atomic transition that
composes the reserve interest engine, the position ledger and the external
collaborators (validator, oracle, tokens), then records events.

Ordering inside a handler: checks first, then index/rate/flag updates, and only
then transfers of underlying funds out of the pool, so a collaborator that
re-enters the pool observes fully updated state.
"""

import logging
from typing import Callable, Dict, List, Optional, TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from .atomic import Snapshottable, atomic
from .errors import (
    Errors,
    PoolPausedError,
    ReserveAlreadyInitializedError,
    ReserveInactiveError,
    UnauthorizedError,
    ValidationError,
)
from .events import (
    Borrow,
    Deposit,
    EventLog,
    Paused,
    Repay,
    ReserveInitialized,
    ReserveUsedAsCollateralDisabled,
    ReserveUsedAsCollateralEnabled,
    Unpaused,
    Withdraw,
)
from .interfaces import (
    DebtToken,
    PriceOracle,
    RateStrategy,
    ReceiptToken,
    SolvencyValidator,
    UserAccountData,
)
from .ledger import MAX_NUMBER_RESERVES, ReserveRegistry, UserConfiguration
from .math import PERCENTAGE_FACTOR
from .reserve import ReserveConfiguration, ReserveData
from .validation import ALL, HealthFactorValidator

if TYPE_CHECKING:
    from .liquidation import LiquidationManager, LiquidationResult

logger = logging.getLogger(__name__)


class PoolConfiguration(BaseModel):
    """Pool-wide settings, changed only through the admin setters"""
    model_config = ConfigDict(validate_assignment=True)

    admin: str
    treasury: str
    paused: bool = False
    borrow_fee_bps: int = Field(ge=0, le=PERCENTAGE_FACTOR, default=0, description="Fee withheld from every borrow")
    withdraw_fee_bps: int = Field(ge=0, le=PERCENTAGE_FACTOR, default=0, description="Fee withheld from every withdrawal")


class LendingPool(Snapshottable):
    """Reserve table, user ledger and the action handlers that mutate them"""

    def __init__(
        self,
        admin: str,
        treasury: str,
        oracle: PriceOracle,
        clock: Callable[[], int],
        validator: Optional[SolvencyValidator] = None,
        borrow_fee_bps: int = 0,
        withdraw_fee_bps: int = 0,
        max_reserves: int = MAX_NUMBER_RESERVES,
        address: str = "lending_pool"
    ):
        self.address = address
        self.configuration = PoolConfiguration(
            admin=admin,
            treasury=treasury,
            borrow_fee_bps=borrow_fee_bps,
            withdraw_fee_bps=withdraw_fee_bps,
        )
        self.oracle = oracle
        self.clock = clock
        self.validator = validator or HealthFactorValidator(self, oracle)
        self.liquidation_manager: Optional["LiquidationManager"] = None
        self.events = EventLog()

        self._reserves: Dict[str, ReserveData] = {}
        self._registry = ReserveRegistry(max_reserves)
        self._users_config: Dict[str, UserConfiguration] = {}
        self._participants: List[Snapshottable] = [self]

    # ------------------------------------------------------------------
    # Atomicity
    # ------------------------------------------------------------------

    def snapshot(self) -> dict:
        return {
            "configuration": self.configuration.model_copy(),
            "reserves": {asset: reserve.copy() for asset, reserve in self._reserves.items()},
            "registry": self._registry.copy(),
            "users_config": {user: config.copy() for user, config in self._users_config.items()},
            "events": len(self.events),
            "liquidation_manager": self.liquidation_manager,
        }

    def restore(self, state: dict) -> None:
        self.configuration = state["configuration"]
        self._registry = state["registry"]

        # Restore in place so references handed out before the call stay valid
        reserves = {}
        for asset, saved in state["reserves"].items():
            live = self._reserves.get(asset)
            if live is None:
                live = saved
            else:
                live.restore_from(saved)
            reserves[asset] = live
        self._reserves = reserves

        users_config = {}
        for user, saved in state["users_config"].items():
            live = self._users_config.get(user)
            if live is None:
                live = saved
            else:
                live.restore_from(saved)
            users_config[user] = live
        self._users_config = users_config

        self.events.truncate(state["events"])
        self.liquidation_manager = state["liquidation_manager"]

    def register_participant(self, participant: object) -> None:
        """Include a stateful collaborator in every atomic call"""
        if isinstance(participant, Snapshottable) and participant not in self._participants:
            self._participants.append(participant)

    def _atomic(self):
        return atomic(list(self._participants))

    # ------------------------------------------------------------------
    # Guards and shared state handles
    # ------------------------------------------------------------------

    def _when_not_paused(self) -> None:
        if self.configuration.paused:
            raise PoolPausedError()

    def _only_admin(self, caller: str) -> None:
        if caller != self.configuration.admin:
            raise UnauthorizedError(Errors.LP_CALLER_NOT_ADMIN)

    def _get_reserve(self, asset: str) -> ReserveData:
        reserve = self._reserves.get(asset)
        if reserve is None:
            raise ReserveInactiveError(Errors.LP_RESERVE_NOT_INITIALIZED, f"No reserve for {asset}")
        return reserve

    def user_configuration(self, user: str) -> UserConfiguration:
        """Mutable flags of user, created on first touch"""
        config = self._users_config.get(user)
        if config is None:
            config = UserConfiguration(self._registry.max_reserves)
            self._users_config[user] = config
        return config

    def update_interest_rates(self, asset: str, liquidity_added: int, liquidity_taken: int) -> None:
        """Refresh the rates of asset's reserve and record the update"""
        reserve = self._get_reserve(asset)
        a_token = reserve.a_token
        available_liquidity = a_token.underlying.balance_of(a_token.address)
        event = reserve.update_interest_rates(asset, available_liquidity, liquidity_added, liquidity_taken)
        self.events.emit(event)

    def set_using_as_collateral(self, asset: str, user: str, using_as_collateral: bool) -> None:
        """Flip user's collateral flag for asset and emit the matching event"""
        reserve = self._get_reserve(asset)
        self.user_configuration(user).set_using_as_collateral(reserve.id, using_as_collateral)
        if using_as_collateral:
            self.events.emit(ReserveUsedAsCollateralEnabled(reserve=asset, user=user))
        else:
            self.events.emit(ReserveUsedAsCollateralDisabled(reserve=asset, user=user))

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def deposit(self, caller: str, asset: str, amount: int, on_behalf_of: str) -> None:
        """
        Supply amount of asset for on_behalf_of.

        Outstanding debt of on_behalf_of in the same asset is repaid first; only
        the remainder is minted as receipt tokens.
        """
        with self._atomic():
            self._when_not_paused()
            reserve = self._get_reserve(asset)
            self.validator.validate_deposit(asset, amount)

            a_token = reserve.a_token
            debt_token = reserve.variable_debt_token

            reserve.update_state(self.clock())
            self.update_interest_rates(asset, amount, 0)

            a_token.underlying.transfer_from(self.address, caller, a_token.address, amount)

            user_config = self.user_configuration(on_behalf_of)
            amount_to_mint = amount

            current_debt = debt_token.balance_of(on_behalf_of)
            if current_debt > 0:
                repay_amount = min(amount, current_debt)
                debt_token.burn(on_behalf_of, repay_amount, reserve.variable_borrow_index)
                if repay_amount == current_debt:
                    user_config.set_borrowing(reserve.id, False)
                self.events.emit(Repay(reserve=asset, user=on_behalf_of, repayer=caller, amount=repay_amount))
                amount_to_mint = amount - repay_amount

            if amount_to_mint > 0:
                is_first_deposit = a_token.mint(on_behalf_of, amount_to_mint, reserve.liquidity_index)
                if is_first_deposit:
                    self.set_using_as_collateral(asset, on_behalf_of, True)
                self.events.emit(Deposit(reserve=asset, user=caller, on_behalf_of=on_behalf_of, amount=amount_to_mint))

            logger.debug(
                "Deposit processed",
                extra={
                    "event": "pool.deposit",
                    "reserve": asset,
                    "user": caller,
                    "on_behalf_of": on_behalf_of,
                    "amount": amount,
                    "minted": amount_to_mint,
                }
            )

    def withdraw(self, caller: str, asset: str, amount: int, to: str) -> int:
        """
        Redeem receipt tokens for underlying. Pass ALL to withdraw the whole
        balance. The withdraw fee goes to the treasury.

        Returns:
            Underlying amount received by to
        """
        with self._atomic():
            self._when_not_paused()
            reserve = self._get_reserve(asset)
            a_token = reserve.a_token

            user_balance = a_token.balance_of(caller)
            amount_to_withdraw = user_balance if amount == ALL else amount

            self.validator.validate_withdraw(asset, amount_to_withdraw, user_balance, caller)

            reserve.update_state(self.clock())
            self.update_interest_rates(asset, 0, amount_to_withdraw)

            if amount_to_withdraw == user_balance:
                self.set_using_as_collateral(asset, caller, False)

            fee = amount_to_withdraw * self.configuration.withdraw_fee_bps // PERCENTAGE_FACTOR
            net_amount = amount_to_withdraw - fee

            self.events.emit(Withdraw(reserve=asset, user=caller, to=to, amount=net_amount))

            # One burn for the whole amount, then split the underlying
            a_token.burn(caller, a_token.address, amount_to_withdraw, reserve.liquidity_index)
            if net_amount > 0:
                a_token.transfer_underlying_to(to, net_amount)
            if fee > 0:
                a_token.transfer_underlying_to(self.configuration.treasury, fee)

            logger.debug(
                "Withdraw processed",
                extra={
                    "event": "pool.withdraw",
                    "reserve": asset,
                    "user": caller,
                    "amount": amount_to_withdraw,
                    "fee": fee,
                }
            )
            return net_amount

    def borrow(self, caller: str, asset: str, amount: int, on_behalf_of: str) -> int:
        """
        Open variable-rate debt for on_behalf_of and pay the proceeds, net of
        the borrow fee, to caller.

        Returns:
            Underlying amount received by caller
        """
        with self._atomic():
            self._when_not_paused()
            reserve = self._get_reserve(asset)

            amount_in_eth = (
                self.oracle.get_asset_price(asset) * amount // 10**reserve.configuration.decimals
            )
            self.validator.validate_borrow(asset, on_behalf_of, amount, amount_in_eth)

            reserve.update_state(self.clock())

            is_first_borrowing = reserve.variable_debt_token.mint(
                caller, on_behalf_of, amount, reserve.variable_borrow_index
            )
            if is_first_borrowing:
                self.user_configuration(on_behalf_of).set_borrowing(reserve.id, True)

            self.update_interest_rates(asset, 0, amount)

            net_amount = amount * (PERCENTAGE_FACTOR - self.configuration.borrow_fee_bps) // PERCENTAGE_FACTOR
            fee = amount - net_amount

            self.events.emit(Borrow(
                reserve=asset,
                user=caller,
                on_behalf_of=on_behalf_of,
                amount=amount,
                borrow_rate=reserve.current_variable_borrow_rate,
            ))

            if net_amount > 0:
                reserve.a_token.transfer_underlying_to(caller, net_amount)
            if fee > 0:
                reserve.a_token.transfer_underlying_to(self.configuration.treasury, fee)

            logger.debug(
                "Borrow processed",
                extra={
                    "event": "pool.borrow",
                    "reserve": asset,
                    "user": caller,
                    "on_behalf_of": on_behalf_of,
                    "amount": amount,
                    "fee": fee,
                }
            )
            return net_amount

    def repay(self, caller: str, asset: str, amount: int, on_behalf_of: str) -> int:
        """
        Settle debt of on_behalf_of using caller's receipt tokens of the same
        asset. The burned receipt tokens leave their underlying in the reserve.

        Returns:
            The amount of debt repaid
        """
        with self._atomic():
            self._when_not_paused()
            reserve = self._get_reserve(asset)
            a_token = reserve.a_token
            debt_token = reserve.variable_debt_token

            variable_debt = debt_token.balance_of(on_behalf_of)
            self.validator.validate_repay(asset, amount, caller, on_behalf_of, variable_debt)

            payback_amount = min(amount, variable_debt)

            receipt_balance = a_token.balance_of(caller)
            if payback_amount > receipt_balance:
                raise ValidationError(Errors.VL_NOT_ENOUGH_RECEIPT_BALANCE_TO_REPAY)

            reserve.update_state(self.clock())

            debt_token.burn(on_behalf_of, payback_amount, reserve.variable_borrow_index)
            if variable_debt - payback_amount == 0:
                self.user_configuration(on_behalf_of).set_borrowing(reserve.id, False)

            self.update_interest_rates(asset, 0, 0)

            if receipt_balance == payback_amount:
                self.set_using_as_collateral(asset, caller, False)

            a_token.burn(caller, a_token.address, payback_amount, reserve.liquidity_index)

            self.events.emit(Repay(reserve=asset, user=on_behalf_of, repayer=caller, amount=payback_amount))
            return payback_amount

    def set_user_use_reserve_as_collateral(self, caller: str, asset: str, use_as_collateral: bool) -> None:
        with self._atomic():
            self._when_not_paused()
            self._get_reserve(asset)
            self.validator.validate_set_use_reserve_as_collateral(asset, caller, use_as_collateral)
            self.set_using_as_collateral(asset, caller, use_as_collateral)

    def finalize_transfer(
        self,
        caller: str,
        asset: str,
        from_: str,
        to: str,
        amount: int,
        balance_from_before: int,
        balance_to_before: int
    ) -> None:
        """Receipt-token callback that keeps collateral flags in step with transfers"""
        with self._atomic():
            self._when_not_paused()
            reserve = self._get_reserve(asset)
            if caller != reserve.a_token.address:
                raise UnauthorizedError(Errors.LP_CALLER_MUST_BE_A_TOKEN)

            self.validator.validate_transfer(from_)

            if from_ != to:
                if balance_from_before - amount == 0:
                    self.set_using_as_collateral(asset, from_, False)

                if balance_to_before == 0 and amount != 0:
                    self.set_using_as_collateral(asset, to, True)

    def liquidation_call(
        self,
        caller: str,
        collateral_asset: str,
        debt_asset: str,
        user: str,
        debt_to_cover: int
    ) -> "LiquidationResult":
        """Liquidate part of an unhealthy position through the liquidation manager"""
        with self._atomic():
            self._when_not_paused()
            if self.liquidation_manager is None:
                raise UnauthorizedError(Errors.LP_LIQUIDATION_MANAGER_NOT_SET)
            return self.liquidation_manager.liquidation_call(
                self, caller, collateral_asset, debt_asset, user, debt_to_cover
            )

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    def get_reserve_data(self, asset: str) -> ReserveData:
        return self._get_reserve(asset)

    def get_configuration(self, asset: str) -> ReserveConfiguration:
        return self._get_reserve(asset).configuration

    def get_user_configuration(self, user: str) -> UserConfiguration:
        config = self._users_config.get(user)
        if config is None:
            return UserConfiguration(self._registry.max_reserves)
        return config

    def get_reserve_normalized_income(self, asset: str) -> int:
        return self._get_reserve(asset).get_normalized_income(self.clock())

    def get_reserve_normalized_variable_debt(self, asset: str) -> int:
        return self._get_reserve(asset).get_normalized_debt(self.clock())

    def get_reserves_list(self) -> List[str]:
        return self._registry.reserves_list

    def get_user_account_data(self, user: str) -> UserAccountData:
        return self.validator.calculate_user_account_data(user)

    @property
    def paused(self) -> bool:
        return self.configuration.paused

    @property
    def borrow_fee(self) -> int:
        return self.configuration.borrow_fee_bps

    @property
    def withdraw_fee(self) -> int:
        return self.configuration.withdraw_fee_bps

    @property
    def treasury(self) -> str:
        return self.configuration.treasury

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    def init_reserve(
        self,
        caller: str,
        asset: str,
        a_token: ReceiptToken,
        variable_debt_token: DebtToken,
        interest_rate_strategy: RateStrategy,
        configuration: Optional[ReserveConfiguration] = None
    ) -> ReserveData:
        """List a new asset. Reserves are never removed."""
        with self._atomic():
            self._only_admin(caller)
            if asset in self._reserves:
                raise ReserveAlreadyInitializedError(f"Reserve {asset} already initialized")

            reserve_id = self._registry.register(asset)
            reserve = ReserveData(
                id=reserve_id,
                a_token=a_token,
                variable_debt_token=variable_debt_token,
                interest_rate_strategy=interest_rate_strategy,
                configuration=configuration or ReserveConfiguration(),
                last_update_timestamp=self.clock(),
            )
            self._reserves[asset] = reserve

            for collaborator in (a_token, a_token.underlying, variable_debt_token, interest_rate_strategy):
                self.register_participant(collaborator)

            self.events.emit(ReserveInitialized(
                reserve=asset,
                reserve_id=reserve_id,
                a_token=a_token.address,
                variable_debt_token=variable_debt_token.address,
                interest_rate_strategy=interest_rate_strategy.address,
            ))
            logger.info(
                "Reserve initialized",
                extra={
                    "event": "pool.reserve_initialized",
                    "reserve": asset,
                    "reserve_id": reserve_id,
                }
            )
            return reserve

    def set_configuration(self, caller: str, asset: str, configuration: ReserveConfiguration) -> None:
        self._only_admin(caller)
        self._get_reserve(asset).configuration = configuration

    def set_reserve_interest_rate_strategy(self, caller: str, asset: str, strategy: RateStrategy) -> None:
        self._only_admin(caller)
        self._get_reserve(asset).interest_rate_strategy = strategy
        self.register_participant(strategy)

    def set_pause(self, caller: str, paused: bool) -> None:
        self._only_admin(caller)
        self.configuration.paused = paused
        self.events.emit(Paused() if paused else Unpaused())
        logger.info("Pool pause toggled", extra={"event": "pool.pause", "paused": paused})

    def set_borrow_fee(self, caller: str, fee_bps: int) -> None:
        self._only_admin(caller)
        if not 0 <= fee_bps <= PERCENTAGE_FACTOR:
            raise ValidationError(Errors.VL_INVALID_FEE, f"Borrow fee {fee_bps} outside [0, {PERCENTAGE_FACTOR}]")
        self.configuration.borrow_fee_bps = fee_bps

    def set_withdraw_fee(self, caller: str, fee_bps: int) -> None:
        self._only_admin(caller)
        if not 0 <= fee_bps <= PERCENTAGE_FACTOR:
            raise ValidationError(Errors.VL_INVALID_FEE, f"Withdraw fee {fee_bps} outside [0, {PERCENTAGE_FACTOR}]")
        self.configuration.withdraw_fee_bps = fee_bps

    def set_treasury(self, caller: str, treasury: str) -> None:
        self._only_admin(caller)
        self.configuration.treasury = treasury

    def set_liquidation_manager(self, caller: str, manager: "LiquidationManager") -> None:
        self._only_admin(caller)
        self.liquidation_manager = manager
        self.register_participant(manager.swap_venue)
