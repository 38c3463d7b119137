#!/usr/bin/env python3
"""
Constant product swap router

Uniswap V2 style x*y=k pairs with a 0.3% fee taken from the input amount.
The router holds every pair's reserves as real token balances, so a swap moves
tokens between the trader and the router.
"""

import logging
from typing import Callable, Dict, List, Tuple

from ..core.atomic import Snapshottable
from ..core.errors import Errors, SwapFailureError
from ..core.interfaces import Erc20, SwapVenue
from ..core.math import PERCENTAGE_FACTOR

logger = logging.getLogger(__name__)

DEFAULT_FEE_BPS = 30


def get_amount_out(amount_in: int, reserve_in: int, reserve_out: int, fee_bps: int = DEFAULT_FEE_BPS) -> int:
    """
    Output of one constant product hop

    amount_out = amount_in_with_fee * reserve_out / (reserve_in + amount_in_with_fee)
    """
    if amount_in <= 0:
        raise SwapFailureError(Errors.SWAP_INSUFFICIENT_OUTPUT_AMOUNT, "Input amount must be positive")
    if reserve_in <= 0 or reserve_out <= 0:
        raise SwapFailureError(Errors.SWAP_INSUFFICIENT_LIQUIDITY)

    amount_in_with_fee = amount_in * (PERCENTAGE_FACTOR - fee_bps)
    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * PERCENTAGE_FACTOR + amount_in_with_fee
    return numerator // denominator


def _pair_key(token_a: str, token_b: str) -> Tuple[str, str]:
    return (token_a, token_b) if token_a < token_b else (token_b, token_a)


class ConstantProductRouter(SwapVenue, Snapshottable):
    """Router over a set of constant product pairs"""

    def __init__(self, clock: Callable[[], int], fee_bps: int = DEFAULT_FEE_BPS, address: str = "swap_router"):
        self.clock = clock
        self.fee_bps = fee_bps
        self.address = address
        self.tokens: Dict[str, Erc20] = {}
        self._reserves: Dict[Tuple[str, str], Dict[str, int]] = {}

    def snapshot(self) -> dict:
        return {key: dict(reserves) for key, reserves in self._reserves.items()}

    def restore(self, state: dict) -> None:
        self._reserves = {key: dict(reserves) for key, reserves in state.items()}

    def register_token(self, token: Erc20) -> None:
        self.tokens[token.address] = token

    def add_liquidity(self, provider: str, token_a: str, amount_a: int, token_b: str, amount_b: int) -> None:
        """Seed or deepen a pair with provider's tokens"""
        for asset, amount in ((token_a, amount_a), (token_b, amount_b)):
            self._token(asset).transfer(provider, self.address, amount)

        reserves = self._reserves.setdefault(_pair_key(token_a, token_b), {token_a: 0, token_b: 0})
        reserves[token_a] += amount_a
        reserves[token_b] += amount_b

        logger.debug(
            "Liquidity added",
            extra={
                "event": "router.add_liquidity",
                "pair": f"{token_a}/{token_b}",
                "reserve_a": reserves[token_a],
                "reserve_b": reserves[token_b],
            }
        )

    def get_reserves(self, token_a: str, token_b: str) -> Tuple[int, int]:
        reserves = self._reserves.get(_pair_key(token_a, token_b))
        if reserves is None:
            raise SwapFailureError(Errors.SWAP_INVALID_PATH, f"No pair {token_a}/{token_b}")
        return reserves[token_a], reserves[token_b]

    def get_amounts_out(self, amount_in: int, path: List[str]) -> List[int]:
        if len(path) < 2:
            raise SwapFailureError(Errors.SWAP_INVALID_PATH, "Path needs at least two assets")

        amounts = [amount_in]
        for token_in, token_out in zip(path, path[1:]):
            reserve_in, reserve_out = self.get_reserves(token_in, token_out)
            amounts.append(get_amount_out(amounts[-1], reserve_in, reserve_out, self.fee_bps))
        return amounts

    def swap_exact_tokens_for_tokens(
        self,
        sender: str,
        amount_in: int,
        amount_out_min: int,
        path: List[str],
        to: str,
        deadline: int
    ) -> List[int]:
        if deadline < self.clock():
            raise SwapFailureError(Errors.SWAP_EXPIRED)

        amounts = self.get_amounts_out(amount_in, path)
        if amounts[-1] < amount_out_min:
            raise SwapFailureError(
                Errors.SWAP_INSUFFICIENT_OUTPUT_AMOUNT,
                f"Output {amounts[-1]} below minimum {amount_out_min}"
            )

        self._token(path[0]).transfer_from(self.address, sender, self.address, amount_in)

        for (token_in, token_out), hop_in, hop_out in zip(zip(path, path[1:]), amounts, amounts[1:]):
            reserves = self._reserves[_pair_key(token_in, token_out)]
            reserves[token_in] += hop_in
            reserves[token_out] -= hop_out

        self._token(path[-1]).transfer(self.address, to, amounts[-1])

        logger.debug(
            "Swap executed",
            extra={
                "event": "router.swap",
                "path": "->".join(path),
                "amount_in": amount_in,
                "amount_out": amounts[-1],
            }
        )
        return amounts

    def _token(self, asset: str) -> Erc20:
        token = self.tokens.get(asset)
        if token is None:
            raise SwapFailureError(Errors.SWAP_INVALID_PATH, f"Unknown token {asset}")
        return token
