#!/usr/bin/env python3
"""
Static price oracle

Prices are set directly by the simulation (or a test) in ETH wei per whole
unit of the asset.
"""

import logging
from typing import Dict, Optional

from ..core.errors import Errors, ValidationError
from ..core.interfaces import PriceOracle

logger = logging.getLogger(__name__)


class StaticPriceOracle(PriceOracle):
    """Price table updated by hand"""

    def __init__(self, prices: Optional[Dict[str, int]] = None):
        self._prices: Dict[str, int] = dict(prices or {})

    def set_asset_price(self, asset: str, price: int) -> None:
        if price <= 0:
            raise ValidationError(Errors.VL_PRICE_UNAVAILABLE, f"Price for {asset} must be positive")
        self._prices[asset] = price
        logger.debug("Price updated", extra={"event": "oracle.price", "asset": asset, "price": price})

    def get_asset_price(self, asset: str) -> int:
        price = self._prices.get(asset)
        if price is None:
            raise ValidationError(Errors.VL_PRICE_UNAVAILABLE, f"No price for {asset}")
        return price

    @property
    def prices(self) -> Dict[str, int]:
        return dict(self._prices)
