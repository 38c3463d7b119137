"""
Lending Pool Simulation

Accounting and risk core of a collateralized lending market (reserves,
interest indices, positions, liquidation) with in-memory collaborators and a
stress simulation on top.
"""

__version__ = "1.0.0"

# Core components
from .core.pool import LendingPool, PoolConfiguration
from .core.reserve import ReserveConfiguration, ReserveData
from .core.liquidation import LiquidationManager, LiquidationResult
from .core.validation import HealthFactorValidator, ALL
from .core.errors import Errors, LendingPoolError

# Collaborators
from .markets.tokens import UnderlyingToken, ReceiptToken, VariableDebtToken
from .markets.oracle import StaticPriceOracle
from .markets.rate_strategy import KinkedRateStrategy, FixedRateStrategy
from .markets.swap_router import ConstantProductRouter

# Engine
from .engine.clock import BlockClock
from .engine.config import MarketConfig, SimulationConfig, StressTestScenarios
from .engine.market import Market, build_market
from .engine.simulation import LendingSimulationEngine

# Analysis
from .analysis.metrics import LendingMetricsCalculator

__all__ = [
    # Core
    "LendingPool", "PoolConfiguration", "ReserveConfiguration", "ReserveData",
    "LiquidationManager", "LiquidationResult", "HealthFactorValidator", "ALL",
    "Errors", "LendingPoolError",

    # Collaborators
    "UnderlyingToken", "ReceiptToken", "VariableDebtToken", "StaticPriceOracle",
    "KinkedRateStrategy", "FixedRateStrategy", "ConstantProductRouter",

    # Engine
    "BlockClock", "MarketConfig", "SimulationConfig", "StressTestScenarios",
    "Market", "build_market", "LendingSimulationEngine",

    # Analysis
    "LendingMetricsCalculator",
]
