"""Reference collaborators: tokens, price oracle, rate strategies and swap router"""

from .tokens import UnderlyingToken, ReceiptToken, VariableDebtToken
from .oracle import StaticPriceOracle
from .rate_strategy import KinkedRateStrategy, FixedRateStrategy
from .swap_router import ConstantProductRouter, get_amount_out

__all__ = [
    "UnderlyingToken", "ReceiptToken", "VariableDebtToken",
    "StaticPriceOracle",
    "KinkedRateStrategy", "FixedRateStrategy",
    "ConstantProductRouter", "get_amount_out",
]
