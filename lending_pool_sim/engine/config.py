#!/usr/bin/env python3
"""
Parameter definitions and scenarios

Market and simulation settings as pydantic models, plus the named stress
scenarios understood by the CLI. Prices are in the oracle's base unit per
whole token (ETH-denominated in the default market).
"""

import json
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field, model_validator


class ReserveParams(BaseModel):
    """One listed asset: risk parameters, rate curve and initial liquidity"""
    symbol: str
    decimals: int = Field(ge=0, le=36, default=18)
    price: float = Field(gt=0, description="Oracle price of one whole token")

    ltv: int = Field(ge=0, le=10_000, default=7_500)
    liquidation_threshold: int = Field(ge=0, le=10_000, default=8_000)
    liquidation_bonus: int = Field(ge=10_000, le=20_000, default=10_500)
    reserve_factor: int = Field(ge=0, le=10_000, default=1_000)
    borrowing_enabled: bool = True

    # Kinked rate curve, annual rates as fractions
    optimal_utilization: float = Field(gt=0, le=1, default=0.8)
    base_rate: float = Field(ge=0, default=0.0)
    slope1: float = Field(ge=0, default=0.04)
    slope2: float = Field(ge=0, default=0.75)

    initial_liquidity: float = Field(ge=0, default=0.0, description="Whole tokens supplied at launch")
    dex_liquidity: float = Field(ge=0, default=0.0, description="Whole tokens in the swap pair")
    volatility: float = Field(ge=0, default=0.02, description="Per-step price volatility")

    @model_validator(mode="after")
    def _threshold_covers_ltv(self) -> "ReserveParams":
        if self.liquidation_threshold < self.ltv:
            raise ValueError(f"{self.symbol}: liquidation_threshold below ltv")
        return self


class MarketConfig(BaseModel):
    """Pool-wide settings and the listed reserves"""
    admin: str = "admin"
    treasury: str = "treasury"
    intermediary_asset: str = "WETH"
    borrow_fee_bps: int = Field(ge=0, le=10_000, default=0)
    withdraw_fee_bps: int = Field(ge=0, le=10_000, default=0)
    start_timestamp: int = Field(ge=0, default=1_600_000_000)
    reserves: List[ReserveParams]

    @model_validator(mode="after")
    def _unique_symbols(self) -> "MarketConfig":
        symbols = [r.symbol for r in self.reserves]
        if len(symbols) != len(set(symbols)):
            raise ValueError("Reserve symbols must be unique")
        if self.intermediary_asset not in symbols:
            raise ValueError(f"Intermediary {self.intermediary_asset} is not a listed reserve")
        return self

    def reserve(self, symbol: str) -> ReserveParams:
        for params in self.reserves:
            if params.symbol == symbol:
                return params
        raise KeyError(symbol)


def default_market() -> MarketConfig:
    """WETH/USDC/DAI/WBTC market with ETH-denominated prices"""
    return MarketConfig(reserves=[
        ReserveParams(
            symbol="WETH", price=1.0, ltv=8_000, liquidation_threshold=8_250, liquidation_bonus=10_500,
            initial_liquidity=5_000, dex_liquidity=20_000, volatility=0.0,
        ),
        ReserveParams(
            symbol="USDC", decimals=6, price=0.0005, ltv=8_000, liquidation_threshold=8_500,
            liquidation_bonus=10_500, slope2=0.6, initial_liquidity=10_000_000, dex_liquidity=40_000_000,
            volatility=0.001,
        ),
        ReserveParams(
            symbol="DAI", price=0.0005, ltv=7_500, liquidation_threshold=8_000, liquidation_bonus=10_500,
            initial_liquidity=5_000_000, dex_liquidity=20_000_000, volatility=0.002,
        ),
        ReserveParams(
            symbol="WBTC", decimals=8, price=15.0, ltv=7_000, liquidation_threshold=7_500,
            liquidation_bonus=11_000, reserve_factor=2_000, initial_liquidity=300, dex_liquidity=1_200,
            volatility=0.03,
        ),
    ])


class SimulationConfig(BaseModel):
    """Run settings for LendingSimulationEngine"""
    scenario_name: str = "Baseline"
    simulation_steps: int = Field(gt=0, default=120)
    seconds_per_step: int = Field(gt=0, default=86_400)
    random_seed: Optional[int] = 42

    num_borrowers: int = Field(ge=0, default=25)
    num_liquidators: int = Field(ge=0, default=2)
    borrower_collateral_value: Tuple[float, float] = (10.0, 200.0)
    target_health_factor: Tuple[float, float] = (1.1, 2.0)

    # step -> {symbol: relative price change}
    price_shocks: Dict[int, Dict[str, float]] = Field(default_factory=dict)
    market: MarketConfig = Field(default_factory=default_market)

    @classmethod
    def from_json(cls, path: Union[str, Path]) -> "SimulationConfig":
        with open(path) as f:
            return cls.model_validate(json.load(f))

    def to_json(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            f.write(self.model_dump_json(indent=2))


class StressTestScenarios:
    """Named shock scenarios applied on top of the default market"""

    BASELINE = {
        "name": "Baseline",
        "description": "Random walk prices, no shocks",
        "price_shocks": {},
    }

    WBTC_CRASH = {
        "name": "WBTC_Crash",
        "description": "WBTC drops 35% at step 10",
        "price_shocks": {10: {"WBTC": -0.35}},
    }

    ETH_RALLY = {
        "name": "ETH_Rally",
        "description": "ETH doubles against every other asset at step 10",
        "price_shocks": {10: {"USDC": -0.50, "DAI": -0.50, "WBTC": -0.50}},
    }

    STABLECOIN_DEPEG = {
        "name": "Stablecoin_Depeg",
        "description": "DAI depegs to $0.85",
        "price_shocks": {10: {"DAI": -0.15}},
    }

    CASCADING_LIQUIDATIONS = {
        "name": "Cascading_Liquidations",
        "description": "WBTC falls 20% three times in a row",
        "price_shocks": {10: {"WBTC": -0.20}, 11: {"WBTC": -0.20}, 12: {"WBTC": -0.20}},
    }

    @classmethod
    def get_all_scenarios(cls) -> List[dict]:
        return [
            cls.BASELINE,
            cls.WBTC_CRASH,
            cls.ETH_RALLY,
            cls.STABLECOIN_DEPEG,
            cls.CASCADING_LIQUIDATIONS,
        ]

    @classmethod
    def get_scenario(cls, name: str) -> dict:
        for scenario in cls.get_all_scenarios():
            if scenario["name"].lower() == name.lower():
                return scenario
        raise KeyError(f"Unknown scenario: {name}")

    @classmethod
    def build_config(cls, name: str, **overrides) -> SimulationConfig:
        scenario = cls.get_scenario(name)
        return SimulationConfig(
            scenario_name=scenario["name"],
            price_shocks=scenario["price_shocks"],
            **overrides
        )
