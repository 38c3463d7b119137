#!/usr/bin/env python3
"""
In-memory token implementations

UnderlyingToken is a plain fungible asset with allowances and a faucet.
ReceiptToken and VariableDebtToken store balances divided by the reserve
indices, so balances grow as the pool accrues interest without any
per-holder bookkeeping.
"""

import logging
from typing import Callable, Dict, Optional, Tuple, TYPE_CHECKING

from ..core import interfaces
from ..core.atomic import Snapshottable, atomic
from ..core.errors import Errors, ValidationError
from ..core.math import RAY, ray_div, ray_mul

if TYPE_CHECKING:
    from ..core.pool import LendingPool

logger = logging.getLogger(__name__)

TransferHook = Callable[[str, str, int], None]


def _scaled_burn_amount(amount: int, user_scaled: int, index: int) -> int:
    """
    Scaled units to remove for a burn of amount.

    A burn of the full current balance removes the whole scaled balance so no
    dust is left behind. "Full" allows for the rounding of one scaled unit,
    which is worth index / RAY underlying units once interest has accrued.
    """
    current = ray_mul(user_scaled, index)
    if amount >= current:
        if amount - current > index // RAY + 1:
            raise ValidationError(
                Errors.CT_INVALID_BURN_AMOUNT,
                f"Burn of {amount} exceeds balance {current}"
            )
        return user_scaled
    return min(ray_div(amount, index), user_scaled)


class UnderlyingToken(interfaces.Erc20, Snapshottable):
    """Fungible asset held by users, reserves and the swap venue"""

    def __init__(self, address: str, decimals: int = 18, symbol: Optional[str] = None):
        self.address = address
        self.decimals = decimals
        self.symbol = symbol or address
        self._balances: Dict[str, int] = {}
        self._allowances: Dict[Tuple[str, str], int] = {}
        self._total_supply = 0

        # Called after every balance move; lets tests re-enter the pool mid-call
        self.transfer_hook: Optional[TransferHook] = None

    def snapshot(self) -> dict:
        return {
            "balances": dict(self._balances),
            "allowances": dict(self._allowances),
            "total_supply": self._total_supply,
        }

    def restore(self, state: dict) -> None:
        self._balances = dict(state["balances"])
        self._allowances = dict(state["allowances"])
        self._total_supply = state["total_supply"]

    def mint(self, to: str, amount: int) -> None:
        """Faucet: create amount out of thin air for to"""
        self._balances[to] = self._balances.get(to, 0) + amount
        self._total_supply += amount

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def total_supply(self) -> int:
        return self._total_supply

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        self._allowances[(owner, spender)] = amount

    def transfer(self, sender: str, to: str, amount: int) -> None:
        self._move(sender, to, amount)

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        if spender != owner:
            allowed = self.allowance(owner, spender)
            if allowed < amount:
                raise ValidationError(
                    Errors.CT_TRANSFER_AMOUNT_EXCEEDS_ALLOWANCE,
                    f"{spender} may move {allowed} of {owner}'s {self.symbol}, requested {amount}"
                )
            self._allowances[(owner, spender)] = allowed - amount
        self._move(owner, to, amount)

    def _move(self, sender: str, to: str, amount: int) -> None:
        balance = self.balance_of(sender)
        if balance < amount:
            raise ValidationError(
                Errors.CT_TRANSFER_AMOUNT_EXCEEDS_BALANCE,
                f"{sender} holds {balance} {self.symbol}, requested {amount}"
            )
        self._balances[sender] = balance - amount
        self._balances[to] = self.balance_of(to) + amount

        if self.transfer_hook is not None:
            self.transfer_hook(sender, to, amount)


class ReceiptToken(interfaces.ReceiptToken, Snapshottable):
    """Interest-bearing deposit receipt. Holds the reserve's underlying."""

    def __init__(self, pool: "LendingPool", underlying: UnderlyingToken, address: Optional[str] = None):
        self.pool = pool
        self.underlying = underlying
        self.address = address or f"a{underlying.address}"
        self._scaled_balances: Dict[str, int] = {}
        self._scaled_total_supply = 0

    def snapshot(self) -> dict:
        return {"balances": dict(self._scaled_balances), "total": self._scaled_total_supply}

    def restore(self, state: dict) -> None:
        self._scaled_balances = dict(state["balances"])
        self._scaled_total_supply = state["total"]

    def _index(self) -> int:
        return self.pool.get_reserve_normalized_income(self.underlying.address)

    def mint(self, user: str, amount: int, index: int) -> bool:
        amount_scaled = ray_div(amount, index)
        if amount_scaled == 0:
            raise ValidationError(Errors.CT_INVALID_MINT_AMOUNT)

        previous_balance = self._scaled_balances.get(user, 0)
        self._scaled_balances[user] = previous_balance + amount_scaled
        self._scaled_total_supply += amount_scaled
        return previous_balance == 0

    def burn(self, user: str, receiver: str, amount: int, index: int) -> None:
        user_scaled = self._scaled_balances.get(user, 0)
        amount_scaled = _scaled_burn_amount(amount, user_scaled, index)
        if amount_scaled == 0:
            raise ValidationError(Errors.CT_INVALID_BURN_AMOUNT)

        self._scaled_balances[user] = user_scaled - amount_scaled
        self._scaled_total_supply -= amount_scaled

        # Burning to ourselves leaves the underlying in the reserve
        if receiver != self.address:
            self.underlying.transfer(self.address, receiver, amount)

    def transfer_underlying_to(self, target: str, amount: int) -> int:
        self.underlying.transfer(self.address, target, amount)
        return amount

    def transfer_on_liquidation(self, from_: str, to: str, amount: int) -> None:
        self._transfer(from_, to, amount, self._index())

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        """Holder-initiated transfer; the pool vetoes it if sender ends up unhealthy"""
        with atomic([self]):
            index = self._index()
            balance_from_before = self.balance_of(sender)
            balance_to_before = self.balance_of(recipient)

            self._transfer(sender, recipient, amount, index)

            self.pool.finalize_transfer(
                self.address, self.underlying.address, sender, recipient,
                amount, balance_from_before, balance_to_before
            )

    def _transfer(self, sender: str, recipient: str, amount: int, index: int) -> None:
        sender_scaled = self._scaled_balances.get(sender, 0)
        if amount > ray_mul(sender_scaled, index):
            raise ValidationError(Errors.CT_TRANSFER_AMOUNT_EXCEEDS_BALANCE)

        amount_scaled = min(ray_div(amount, index), sender_scaled)
        self._scaled_balances[sender] = sender_scaled - amount_scaled
        self._scaled_balances[recipient] = self._scaled_balances.get(recipient, 0) + amount_scaled

    def balance_of(self, user: str) -> int:
        return ray_mul(self._scaled_balances.get(user, 0), self._index())

    def scaled_balance_of(self, user: str) -> int:
        return self._scaled_balances.get(user, 0)

    def scaled_total_supply(self) -> int:
        return self._scaled_total_supply

    def total_supply(self) -> int:
        if self._scaled_total_supply == 0:
            return 0
        return ray_mul(self._scaled_total_supply, self._index())


class VariableDebtToken(interfaces.DebtToken, Snapshottable):
    """Non-transferable record of variable-rate debt with credit delegation"""

    def __init__(self, pool: "LendingPool", underlying_asset: str, address: Optional[str] = None):
        self.pool = pool
        self.underlying_asset = underlying_asset
        self.address = address or f"variableDebt{underlying_asset}"
        self._scaled_balances: Dict[str, int] = {}
        self._scaled_total_supply = 0
        self._borrow_allowances: Dict[Tuple[str, str], int] = {}

    def snapshot(self) -> dict:
        return {
            "balances": dict(self._scaled_balances),
            "total": self._scaled_total_supply,
            "allowances": dict(self._borrow_allowances),
        }

    def restore(self, state: dict) -> None:
        self._scaled_balances = dict(state["balances"])
        self._scaled_total_supply = state["total"]
        self._borrow_allowances = dict(state["allowances"])

    def approve_delegation(self, delegator: str, delegatee: str, amount: int) -> None:
        """Let delegatee open up to amount of debt on delegator's account"""
        self._borrow_allowances[(delegator, delegatee)] = amount
        logger.debug(
            "Borrow allowance delegated",
            extra={
                "event": "debt_token.approve_delegation",
                "asset": self.underlying_asset,
                "delegator": delegator,
                "delegatee": delegatee,
                "amount": amount,
            }
        )

    def borrow_allowance(self, from_user: str, to_user: str) -> int:
        return self._borrow_allowances.get((from_user, to_user), 0)

    def mint(self, user: str, on_behalf_of: str, amount: int, index: int) -> bool:
        if user != on_behalf_of:
            allowance = self.borrow_allowance(on_behalf_of, user)
            if allowance < amount:
                raise ValidationError(
                    Errors.CT_BORROW_ALLOWANCE_NOT_ENOUGH,
                    f"{user} may borrow {allowance} for {on_behalf_of}, requested {amount}"
                )
            self._borrow_allowances[(on_behalf_of, user)] = allowance - amount

        amount_scaled = ray_div(amount, index)
        if amount_scaled == 0:
            raise ValidationError(Errors.CT_INVALID_MINT_AMOUNT)

        previous_balance = self._scaled_balances.get(on_behalf_of, 0)
        self._scaled_balances[on_behalf_of] = previous_balance + amount_scaled
        self._scaled_total_supply += amount_scaled
        return previous_balance == 0

    def burn(self, user: str, amount: int, index: int) -> None:
        user_scaled = self._scaled_balances.get(user, 0)
        amount_scaled = _scaled_burn_amount(amount, user_scaled, index)
        if amount_scaled == 0:
            raise ValidationError(Errors.CT_INVALID_BURN_AMOUNT)

        self._scaled_balances[user] = user_scaled - amount_scaled
        self._scaled_total_supply -= amount_scaled

    def balance_of(self, user: str) -> int:
        scaled = self._scaled_balances.get(user, 0)
        if scaled == 0:
            return 0
        return ray_mul(scaled, self.pool.get_reserve_normalized_variable_debt(self.underlying_asset))

    def scaled_balance_of(self, user: str) -> int:
        return self._scaled_balances.get(user, 0)

    def scaled_total_supply(self) -> int:
        return self._scaled_total_supply

    def total_supply(self) -> int:
        if self._scaled_total_supply == 0:
            return 0
        return ray_mul(
            self._scaled_total_supply,
            self.pool.get_reserve_normalized_variable_debt(self.underlying_asset)
        )
