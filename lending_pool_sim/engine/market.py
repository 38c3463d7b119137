#!/usr/bin/env python3
"""
Market builder

Wires a LendingPool to the reference collaborators described by a
MarketConfig: one underlying, receipt token, debt token and rate strategy per
reserve, a static oracle, and a constant product router with every asset
paired against the intermediary.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional

from ..core.liquidation import LiquidationManager
from ..core.math import RAY, WAD
from ..core.pool import LendingPool
from ..core.reserve import ReserveConfiguration
from ..markets.oracle import StaticPriceOracle
from ..markets.rate_strategy import KinkedRateStrategy
from ..markets.swap_router import ConstantProductRouter
from ..markets.tokens import ReceiptToken, UnderlyingToken, VariableDebtToken
from .clock import BlockClock
from .config import MarketConfig

logger = logging.getLogger(__name__)

LIQUIDITY_PROVIDER = "liquidity_provider"


def price_to_wad(price: float) -> int:
    return int(round(price * WAD))


def fraction_to_ray(value: float) -> int:
    return int(round(value * RAY))


@dataclass
class Market:
    """A fully wired pool and its collaborators"""
    config: MarketConfig
    clock: BlockClock
    pool: LendingPool
    oracle: StaticPriceOracle
    router: ConstantProductRouter
    liquidation_manager: LiquidationManager
    tokens: Dict[str, UnderlyingToken] = field(default_factory=dict)
    a_tokens: Dict[str, ReceiptToken] = field(default_factory=dict)
    debt_tokens: Dict[str, VariableDebtToken] = field(default_factory=dict)

    def to_units(self, asset: str, amount: float) -> int:
        return int(amount * 10**self.tokens[asset].decimals)

    def from_units(self, asset: str, amount: int) -> float:
        return amount / 10**self.tokens[asset].decimals

    def value_of(self, asset: str, amount: int) -> float:
        """Value of amount in the oracle's base unit"""
        price = self.oracle.get_asset_price(asset)
        return price * amount / 10**self.tokens[asset].decimals / WAD

    def fund(self, user: str, asset: str, amount: int) -> None:
        self.tokens[asset].mint(user, amount)

    def supply(self, user: str, asset: str, amount: int) -> None:
        """Mint, approve and deposit in one go"""
        self.fund(user, asset, amount)
        self.tokens[asset].approve(user, self.pool.address, amount)
        self.pool.deposit(user, asset, amount, user)


def build_market(config: MarketConfig, clock: Optional[BlockClock] = None) -> Market:
    clock = clock or BlockClock(config.start_timestamp)
    oracle = StaticPriceOracle()
    pool = LendingPool(
        admin=config.admin,
        treasury=config.treasury,
        oracle=oracle,
        clock=clock,
        borrow_fee_bps=config.borrow_fee_bps,
        withdraw_fee_bps=config.withdraw_fee_bps,
    )
    router = ConstantProductRouter(clock)
    manager = LiquidationManager(router, config.intermediary_asset)

    market = Market(
        config=config,
        clock=clock,
        pool=pool,
        oracle=oracle,
        router=router,
        liquidation_manager=manager,
    )

    for params in config.reserves:
        token = UnderlyingToken(params.symbol, params.decimals)
        a_token = ReceiptToken(pool, token)
        debt_token = VariableDebtToken(pool, params.symbol)
        strategy = KinkedRateStrategy(
            optimal_utilization_rate=fraction_to_ray(params.optimal_utilization),
            base_variable_borrow_rate=fraction_to_ray(params.base_rate),
            variable_rate_slope1=fraction_to_ray(params.slope1),
            variable_rate_slope2=fraction_to_ray(params.slope2),
            address=f"rate_strategy_{params.symbol}",
        )

        oracle.set_asset_price(params.symbol, price_to_wad(params.price))
        pool.init_reserve(
            config.admin, params.symbol, a_token, debt_token, strategy,
            ReserveConfiguration(
                ltv=params.ltv,
                liquidation_threshold=params.liquidation_threshold,
                liquidation_bonus=params.liquidation_bonus,
                reserve_factor=params.reserve_factor,
                decimals=params.decimals,
                borrowing_enabled=params.borrowing_enabled,
            )
        )
        router.register_token(token)

        market.tokens[params.symbol] = token
        market.a_tokens[params.symbol] = a_token
        market.debt_tokens[params.symbol] = debt_token

    pool.set_liquidation_manager(config.admin, manager)

    _seed_swap_pairs(market)
    for params in config.reserves:
        if params.initial_liquidity > 0:
            market.supply(LIQUIDITY_PROVIDER, params.symbol, market.to_units(params.symbol, params.initial_liquidity))

    logger.info(
        "Market built",
        extra={"event": "market.built", "reserves": len(config.reserves), "intermediary": config.intermediary_asset}
    )
    return market


def _seed_swap_pairs(market: Market) -> None:
    """Pair every asset with the intermediary at the oracle price"""
    intermediary = market.config.intermediary_asset
    intermediary_price = market.config.reserve(intermediary).price

    for params in market.config.reserves:
        if params.symbol == intermediary or params.dex_liquidity <= 0:
            continue

        amount = market.to_units(params.symbol, params.dex_liquidity)
        intermediary_amount = market.to_units(intermediary, params.dex_liquidity * params.price / intermediary_price)

        market.fund(LIQUIDITY_PROVIDER, params.symbol, amount)
        market.fund(LIQUIDITY_PROVIDER, intermediary, intermediary_amount)
        market.router.add_liquidity(LIQUIDITY_PROVIDER, params.symbol, amount, intermediary, intermediary_amount)
