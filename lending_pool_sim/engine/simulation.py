#!/usr/bin/env python3
"""
Lending Simulation Engine

Drives a built market through time: borrowers open leveraged positions,
prices follow a random walk with scheduled shocks, interest accrues between
steps, and liquidation bots close out positions whose health factor falls
below 1.0. Every step is recorded as one row of a pandas DataFrame.
"""

import logging
import math
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..analysis.metrics import LendingMetricsCalculator
from ..core.errors import LendingPoolError
from ..core.math import MAX_UINT256, RAY, WAD
from ..core.validation import HEALTH_FACTOR_LIQUIDATION_THRESHOLD
from .config import SimulationConfig
from .market import build_market, price_to_wad

logger = logging.getLogger(__name__)

ARBITRAGEUR = "arbitrageur"

# Pairs closer than this to the oracle price are left alone
ARBITRAGE_TOLERANCE = 0.001

LIQUIDATION_COLUMNS = [
    "step", "timestamp", "liquidator", "user", "collateral_asset", "debt_asset",
    "debt_settled", "collateral_liquidated", "collateral_to_liquidator",
    "debt_settled_value", "collateral_value", "health_factor_before", "health_factor_after",
]


class LendingSimulationEngine:
    """Time-stepped simulation over a single lending market"""

    def __init__(self, config: SimulationConfig):
        self.config = config
        self.rng = np.random.default_rng(config.random_seed)
        self.market = build_market(config.market)
        self.pool = self.market.pool
        self.current_step = 0

        self.prices: Dict[str, float] = {p.symbol: p.price for p in config.market.reserves}
        self.borrowers: Dict[str, Dict[str, str]] = {}
        self.liquidators = [f"liquidator_{i}" for i in range(config.num_liquidators)]

        self.metrics_history: List[dict] = []
        self.liquidation_events: List[dict] = []
        self.failed_actions: List[dict] = []

    def run_simulation(self, steps: Optional[int] = None) -> Dict:
        steps = steps or self.config.simulation_steps
        print(f"Running {self.config.scenario_name} for {steps} steps")

        self._create_borrowers()
        self._record_metrics(liquidations=0)

        progress_every = max(1, steps // 10)
        for step in range(1, steps + 1):
            self.current_step = step
            self.market.clock.advance(self.config.seconds_per_step)

            self._update_prices(step)
            self._arbitrage_swap_pairs()
            liquidations = self._run_liquidation_bots()
            self._record_metrics(liquidations)

            if step % progress_every == 0:
                latest = self.metrics_history[-1]
                print(f"  step {step}/{steps}: {latest['unhealthy_positions']} unhealthy, "
                      f"{len(self.liquidation_events)} liquidations so far")

        return self._generate_results()

    # ------------------------------------------------------------------
    # Agents
    # ------------------------------------------------------------------

    def _create_borrowers(self) -> None:
        reserves = self.config.market.reserves
        collateral_assets = [p.symbol for p in reserves if p.ltv > 0]
        low, high = self.config.target_health_factor
        value_low, value_high = self.config.borrower_collateral_value

        for i in range(self.config.num_borrowers):
            user = f"borrower_{i}"
            collateral = str(self.rng.choice(collateral_assets))
            debt_choices = [p.symbol for p in reserves if p.borrowing_enabled and p.symbol != collateral]
            if not debt_choices:
                continue
            debt = str(self.rng.choice(debt_choices))

            collateral_params = self.config.market.reserve(collateral)
            value = float(self.rng.uniform(value_low, value_high))
            target_hf = float(self.rng.uniform(low, high))

            # Never borrow past 99% of the LTV limit
            borrow_ratio = min(
                collateral_params.liquidation_threshold / 10_000 / target_hf,
                collateral_params.ltv / 10_000 * 0.99
            )
            borrow_value = value * borrow_ratio

            try:
                self.market.supply(user, collateral, self.market.to_units(collateral, value / self.prices[collateral]))
                self.pool.borrow(user, debt, self.market.to_units(debt, borrow_value / self.prices[debt]), user)
            except LendingPoolError as e:
                self._record_failure(user, "open_position", e)
                continue

            self.borrowers[user] = {"collateral": collateral, "debt": debt}

        print(f"Opened {len(self.borrowers)} of {self.config.num_borrowers} borrower positions")

    def _run_liquidation_bots(self) -> int:
        if not self.liquidators:
            return 0

        count = 0
        for user, position in self.borrowers.items():
            health_factor = self.pool.get_user_account_data(user).health_factor
            if health_factor >= HEALTH_FACTOR_LIQUIDATION_THRESHOLD:
                continue

            liquidator = self.liquidators[len(self.liquidation_events) % len(self.liquidators)]
            collateral, debt = position["collateral"], position["debt"]
            debt_to_cover = self.market.debt_tokens[debt].balance_of(user)

            try:
                result = self.pool.liquidation_call(liquidator, collateral, debt, user, debt_to_cover)
            except LendingPoolError as e:
                self._record_failure(user, "liquidation", e)
                continue

            self.liquidation_events.append({
                "step": self.current_step,
                "timestamp": self.market.clock(),
                "liquidator": liquidator,
                "user": user,
                "collateral_asset": collateral,
                "debt_asset": debt,
                "debt_settled": self.market.from_units(debt, result.debt_settled),
                "collateral_liquidated": self.market.from_units(collateral, result.collateral_liquidated),
                "collateral_to_liquidator": self.market.from_units(collateral, result.collateral_to_liquidator),
                "debt_settled_value": self.market.value_of(debt, result.debt_settled),
                "collateral_value": self.market.value_of(collateral, result.collateral_liquidated),
                "health_factor_before": health_factor / WAD,
                "health_factor_after": self._health_factor_as_float(user),
            })
            count += 1

        return count

    def _record_failure(self, user: str, action: str, error: LendingPoolError) -> None:
        self.failed_actions.append({
            "step": self.current_step,
            "user": user,
            "action": action,
            "code": error.code,
        })
        logger.warning(
            "Action failed",
            extra={"event": "simulation.action_failed", "user": user, "action": action, "code": error.code}
        )

    # ------------------------------------------------------------------
    # Market dynamics
    # ------------------------------------------------------------------

    def _update_prices(self, step: int) -> None:
        """Random walk on every non-base asset plus any scheduled shock"""
        intermediary = self.config.market.intermediary_asset
        shocks = self.config.price_shocks.get(step, {})

        for params in self.config.market.reserves:
            if params.symbol == intermediary and params.symbol not in shocks:
                continue

            current_price = self.prices[params.symbol]
            new_price = current_price * (1 + float(self.rng.normal(0, params.volatility)))
            new_price = max(new_price, current_price * 0.5)  # Floor at 50% drop

            if params.symbol in shocks:
                new_price *= 1 + shocks[params.symbol]

            self.prices[params.symbol] = new_price
            self.market.oracle.set_asset_price(params.symbol, price_to_wad(new_price))

    def _arbitrage_swap_pairs(self) -> None:
        """Trade every swap pair back to the oracle price"""
        intermediary = self.config.market.intermediary_asset
        router = self.market.router

        for params in self.config.market.reserves:
            asset = params.symbol
            if asset == intermediary or params.dex_liquidity <= 0:
                continue

            reserve_asset, reserve_mid = router.get_reserves(asset, intermediary)
            # Intermediary units per asset unit at the oracle price
            target_ratio = (
                self.prices[asset] / 10**params.decimals
            ) / (
                self.prices[intermediary] / 10**self.market.tokens[intermediary].decimals
            )
            pool_ratio = reserve_mid / reserve_asset
            if abs(pool_ratio / target_ratio - 1) < ARBITRAGE_TOLERANCE:
                continue

            k = reserve_asset * reserve_mid
            if pool_ratio > target_ratio:
                # Asset is overpriced in the pair: sell asset into it
                amount_in = int(math.sqrt(k / target_ratio)) - reserve_asset
                path = [asset, intermediary]
            else:
                amount_in = int(math.sqrt(k * target_ratio)) - reserve_mid
                path = [intermediary, asset]

            if amount_in <= 0:
                continue

            token_in = self.market.tokens[path[0]]
            self.market.fund(ARBITRAGEUR, path[0], amount_in)
            token_in.approve(ARBITRAGEUR, router.address, amount_in)
            try:
                router.swap_exact_tokens_for_tokens(ARBITRAGEUR, amount_in, 0, path, ARBITRAGEUR, self.market.clock())
            except LendingPoolError as e:
                self._record_failure(ARBITRAGEUR, "arbitrage", e)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def _health_factor_as_float(self, user: str) -> float:
        health_factor = self.pool.get_user_account_data(user).health_factor
        if health_factor == MAX_UINT256:
            return float("inf")
        return health_factor / WAD

    def _record_metrics(self, liquidations: int) -> None:
        row = {"step": self.current_step, "timestamp": self.market.clock()}
        total_supplied_value = 0.0
        total_debt_value = 0.0

        for asset in self.pool.get_reserves_list():
            reserve = self.pool.get_reserve_data(asset)
            a_token = self.market.a_tokens[asset]
            debt_token = self.market.debt_tokens[asset]

            total_supply = a_token.total_supply()
            total_debt = debt_token.total_supply()
            available = self.market.tokens[asset].balance_of(a_token.address)

            row[f"{asset}_price"] = self.prices[asset]
            row[f"{asset}_utilization"] = total_debt / (available + total_debt) if total_debt > 0 else 0.0
            row[f"{asset}_supply_apr"] = reserve.current_liquidity_rate / RAY
            row[f"{asset}_borrow_apr"] = reserve.current_variable_borrow_rate / RAY
            row[f"{asset}_liquidity_index"] = self.pool.get_reserve_normalized_income(asset) / RAY
            row[f"{asset}_borrow_index"] = self.pool.get_reserve_normalized_variable_debt(asset) / RAY

            total_supplied_value += self.market.value_of(asset, total_supply)
            total_debt_value += self.market.value_of(asset, total_debt)

        health_factors = np.array([
            hf for hf in (self._health_factor_as_float(user) for user in self.borrowers)
            if np.isfinite(hf)
        ])

        row["total_supplied_value"] = total_supplied_value
        row["total_debt_value"] = total_debt_value
        row["open_positions"] = len(health_factors)
        row["unhealthy_positions"] = int(np.sum(health_factors < 1.0)) if health_factors.size else 0
        row["min_health_factor"] = float(health_factors.min()) if health_factors.size else np.nan
        row["mean_health_factor"] = float(health_factors.mean()) if health_factors.size else np.nan
        row["liquidations"] = liquidations

        self.metrics_history.append(row)

    def _generate_results(self) -> Dict:
        metrics = pd.DataFrame(self.metrics_history)
        liquidations = pd.DataFrame(self.liquidation_events, columns=LIQUIDATION_COLUMNS)
        calculator = LendingMetricsCalculator(metrics, liquidations, self.pool.get_reserves_list())

        return {
            "scenario": self.config.scenario_name,
            "metrics": metrics,
            "liquidations": liquidations,
            "failed_actions": list(self.failed_actions),
            "summary": calculator.summary(),
        }
