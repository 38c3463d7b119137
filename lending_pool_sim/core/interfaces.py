#!/usr/bin/env python3
"""
Collaborator interfaces consumed by the lending core.

The pool never reaches into a collaborator's internals; it only calls the
methods declared here. Reference implementations live in
lending_pool_sim.markets.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Tuple

if TYPE_CHECKING:
    from .pool import LendingPool


class Erc20(ABC):
    """Fungible underlying asset"""

    address: str
    decimals: int

    @abstractmethod
    def balance_of(self, account: str) -> int:
        """Balance of account"""

    @abstractmethod
    def transfer(self, sender: str, to: str, amount: int) -> None:
        """Move amount from sender to to"""

    @abstractmethod
    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> None:
        """Move amount from owner to to, consuming spender's allowance"""

    @abstractmethod
    def approve(self, owner: str, spender: str, amount: int) -> None:
        """Set spender's allowance over owner's balance"""


class ReceiptToken(ABC):
    """Interest-bearing claim on deposited liquidity, scaled by the liquidity index"""

    address: str
    underlying: Erc20

    @abstractmethod
    def mint(self, user: str, amount: int, index: int) -> bool:
        """Mint amount to user; True when user's previous balance was zero"""

    @abstractmethod
    def burn(self, user: str, receiver: str, amount: int, index: int) -> None:
        """Burn user's tokens and send the underlying to receiver"""

    @abstractmethod
    def transfer_underlying_to(self, target: str, amount: int) -> int:
        """Send underlying held by the token to target"""

    @abstractmethod
    def transfer_on_liquidation(self, from_: str, to: str, amount: int) -> None:
        """Move tokens without solvency validation"""

    @abstractmethod
    def balance_of(self, user: str) -> int:
        """Balance including accrued income"""

    @abstractmethod
    def scaled_balance_of(self, user: str) -> int:
        """Principal balance divided by the index at deposit time"""

    @abstractmethod
    def scaled_total_supply(self) -> int:
        """Sum of scaled balances"""

    @abstractmethod
    def total_supply(self) -> int:
        """Total supply including accrued income"""


class DebtToken(ABC):
    """Non-transferable debt record, scaled by the variable borrow index"""

    address: str

    @abstractmethod
    def mint(self, user: str, on_behalf_of: str, amount: int, index: int) -> bool:
        """Record new debt; True when on_behalf_of had no debt before"""

    @abstractmethod
    def burn(self, user: str, amount: int, index: int) -> None:
        """Erase amount of user's debt"""

    @abstractmethod
    def balance_of(self, user: str) -> int:
        """Debt including accrued interest"""

    @abstractmethod
    def scaled_total_supply(self) -> int:
        """Sum of scaled debts"""

    @abstractmethod
    def total_supply(self) -> int:
        """Total debt including accrued interest"""


class PriceOracle(ABC):
    """Price source expressing every asset in a common value unit (ETH wei)"""

    @abstractmethod
    def get_asset_price(self, asset: str) -> int:
        """Price of one whole unit of asset"""


class RateStrategy(ABC):
    """Maps reserve utilization to annualized rates (ray)"""

    address: str

    @abstractmethod
    def calculate_interest_rates(
        self,
        available_liquidity: int,
        total_variable_debt: int,
        reserve_factor: int
    ) -> Tuple[int, int]:
        """Return (liquidity_rate, variable_borrow_rate)"""


@dataclass(frozen=True)
class UserAccountData:
    """Aggregate position of one user across all reserves"""
    total_collateral_eth: int
    total_debt_eth: int
    available_borrows_eth: int
    current_liquidation_threshold: int
    ltv: int
    health_factor: int


class SolvencyValidator(ABC):
    """Health-factor calculator and action validator"""

    @abstractmethod
    def calculate_user_account_data(self, user: str) -> UserAccountData:
        """Aggregate collateral and debt for user"""

    @abstractmethod
    def health_factor(self, user: str) -> int:
        """Health factor in wad; MAX_UINT256 when user has no debt"""

    @abstractmethod
    def validate_deposit(self, asset: str, amount: int) -> None:
        """Raise ValidationError if the deposit is not allowed"""

    @abstractmethod
    def validate_withdraw(self, asset: str, amount: int, user_balance: int, user: str) -> None:
        """Raise ValidationError if the withdrawal would break solvency"""

    @abstractmethod
    def validate_borrow(self, asset: str, user: str, amount: int, amount_in_eth: int) -> None:
        """Raise ValidationError if user lacks borrowing power"""

    @abstractmethod
    def validate_repay(self, asset: str, amount: int, caller: str, on_behalf_of: str, variable_debt: int) -> None:
        """Raise ValidationError if the repayment is malformed"""

    @abstractmethod
    def validate_set_use_reserve_as_collateral(self, asset: str, user: str, use_as_collateral: bool) -> None:
        """Raise ValidationError if toggling the collateral flag breaks solvency"""

    @abstractmethod
    def validate_transfer(self, user: str) -> None:
        """Raise ValidationError if user is insolvent after a receipt-token transfer"""


class SwapVenue(ABC):
    """External exchange used to convert seized collateral into the debt asset"""

    address: str

    @abstractmethod
    def swap_exact_tokens_for_tokens(
        self,
        sender: str,
        amount_in: int,
        amount_out_min: int,
        path: List[str],
        to: str,
        deadline: int
    ) -> List[int]:
        """Swap exactly amount_in along path; return the amount at every hop"""
