"""Shared fixtures: a small two-asset pool wired to the in-memory collaborators"""

from typing import Dict, Optional

import pytest

from lending_pool_sim.core.interfaces import RateStrategy
from lending_pool_sim.core.liquidation import LiquidationManager
from lending_pool_sim.core.math import WAD
from lending_pool_sim.core.pool import LendingPool
from lending_pool_sim.core.reserve import ReserveConfiguration
from lending_pool_sim.core.validation import HealthFactorValidator
from lending_pool_sim.engine.clock import BlockClock
from lending_pool_sim.markets.oracle import StaticPriceOracle
from lending_pool_sim.markets.rate_strategy import FixedRateStrategy
from lending_pool_sim.markets.swap_router import ConstantProductRouter
from lending_pool_sim.markets.tokens import ReceiptToken, UnderlyingToken, VariableDebtToken

ADMIN = "admin"
TREASURY = "treasury"
UNIT = 10**18
START_TIME = 1_000_000


class RecordingRouter(ConstantProductRouter):
    """Router that remembers every swap request"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.swap_calls = []

    def swap_exact_tokens_for_tokens(self, sender, amount_in, amount_out_min, path, to, deadline):
        self.swap_calls.append((amount_in, amount_out_min, list(path)))
        return super().swap_exact_tokens_for_tokens(sender, amount_in, amount_out_min, path, to, deadline)


class FixedHealthFactorValidator(HealthFactorValidator):
    """Validator whose health factor can be pinned for boundary tests"""

    def __init__(self, pool, oracle):
        super().__init__(pool, oracle)
        self.pinned: Dict[str, int] = {}

    def health_factor(self, user: str) -> int:
        if user in self.pinned:
            return self.pinned[user]
        return super().health_factor(user)


class PoolHarness:
    """LendingPool plus one underlying/receipt/debt token set per listed asset"""

    def __init__(self, borrow_fee_bps: int = 0, withdraw_fee_bps: int = 0, max_reserves: int = 128,
                 intermediary: str = "WETH"):
        self.clock = BlockClock(START_TIME)
        self.oracle = StaticPriceOracle()
        self.pool = LendingPool(
            ADMIN, TREASURY, self.oracle, self.clock,
            borrow_fee_bps=borrow_fee_bps,
            withdraw_fee_bps=withdraw_fee_bps,
            max_reserves=max_reserves,
        )
        self.router = RecordingRouter(self.clock)
        self.manager = LiquidationManager(self.router, intermediary)
        self.pool.set_liquidation_manager(ADMIN, self.manager)

        self.tokens: Dict[str, UnderlyingToken] = {}
        self.a_tokens: Dict[str, ReceiptToken] = {}
        self.debt_tokens: Dict[str, VariableDebtToken] = {}

    def add_reserve(self, symbol: str, price: int = WAD, strategy: Optional[RateStrategy] = None, **config):
        params = dict(ltv=8_000, liquidation_threshold=8_500, liquidation_bonus=10_500)
        params.update(config)

        token = UnderlyingToken(symbol, params.get("decimals", 18))
        a_token = ReceiptToken(self.pool, token)
        debt_token = VariableDebtToken(self.pool, symbol)

        self.oracle.set_asset_price(symbol, price)
        reserve = self.pool.init_reserve(
            ADMIN, symbol, a_token, debt_token, strategy or FixedRateStrategy(),
            ReserveConfiguration(**params)
        )
        self.router.register_token(token)

        self.tokens[symbol] = token
        self.a_tokens[symbol] = a_token
        self.debt_tokens[symbol] = debt_token
        return reserve

    def deposit(self, user: str, symbol: str, amount: int, on_behalf_of: Optional[str] = None):
        token = self.tokens[symbol]
        token.mint(user, amount)
        token.approve(user, self.pool.address, amount)
        self.pool.deposit(user, symbol, amount, on_behalf_of or user)

    def borrow(self, user: str, symbol: str, amount: int) -> int:
        return self.pool.borrow(user, symbol, amount, user)

    def seed_pair(self, token_a: str, amount_a: int, token_b: str, amount_b: int):
        provider = "pair_provider"
        self.tokens[token_a].mint(provider, amount_a)
        self.tokens[token_b].mint(provider, amount_b)
        self.router.add_liquidity(provider, token_a, amount_a, token_b, amount_b)

    def reserve_id(self, symbol: str) -> int:
        return self.pool.get_reserve_data(symbol).id


@pytest.fixture
def harness():
    h = PoolHarness()
    h.add_reserve("WETH")
    h.add_reserve("DAI", price=WAD // 1000)
    return h
