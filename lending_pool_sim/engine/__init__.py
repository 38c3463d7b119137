"""Simulation engine and configuration"""

from .clock import BlockClock
from .config import ReserveParams, MarketConfig, SimulationConfig, StressTestScenarios, default_market
from .market import Market, build_market
from .simulation import LendingSimulationEngine

__all__ = [
    "BlockClock", "ReserveParams", "MarketConfig", "SimulationConfig", "StressTestScenarios",
    "default_market", "Market", "build_market", "LendingSimulationEngine",
]
