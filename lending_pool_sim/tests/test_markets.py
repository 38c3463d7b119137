#!/usr/bin/env python3
"""
Tests for the reference collaborators: swap router, rate strategies, tokens,
oracle, clock and the market builder.
"""

import pytest

from lending_pool_sim.core.errors import Errors, SwapFailureError, ValidationError
from lending_pool_sim.core.math import RAY, WAD, ray_mul
from lending_pool_sim.engine.clock import BlockClock
from lending_pool_sim.engine.config import default_market
from lending_pool_sim.engine.market import LIQUIDITY_PROVIDER, build_market, price_to_wad
from lending_pool_sim.markets.oracle import StaticPriceOracle
from lending_pool_sim.markets.rate_strategy import FixedRateStrategy, KinkedRateStrategy
from lending_pool_sim.markets.swap_router import ConstantProductRouter, get_amount_out
from lending_pool_sim.markets.tokens import UnderlyingToken, _scaled_burn_amount


class TestAmountOut:

    def test_fee_is_taken_from_input(self):
        assert get_amount_out(1_000, 10**6, 10**6) == 996

    def test_fee_free_pair(self):
        assert get_amount_out(1_000, 10**6, 10**6, fee_bps=0) == 999

    def test_rejects_empty_input(self):
        with pytest.raises(SwapFailureError):
            get_amount_out(0, 10**6, 10**6)

    def test_rejects_empty_pair(self):
        with pytest.raises(SwapFailureError) as exc:
            get_amount_out(1_000, 0, 10**6)
        assert exc.value.code == Errors.SWAP_INSUFFICIENT_LIQUIDITY


class TestConstantProductRouter:

    def setup_method(self):
        self.clock = BlockClock(100)
        self.router = ConstantProductRouter(self.clock)
        self.tokens = {symbol: UnderlyingToken(symbol) for symbol in ("A", "B", "C")}
        for token in self.tokens.values():
            self.router.register_token(token)
            token.mint("provider", 10**7)

        self.router.add_liquidity("provider", "A", 10**6, "B", 10**6)
        self.router.add_liquidity("provider", "B", 10**6, "C", 2 * 10**6)

        self.tokens["A"].mint("trader", 1_000)
        self.tokens["A"].approve("trader", self.router.address, 1_000)

    def swap(self, amount_out_min=0, path=("A", "B"), deadline=100):
        return self.router.swap_exact_tokens_for_tokens("trader", 1_000, amount_out_min, list(path), "trader", deadline)

    def test_single_hop(self):
        assert self.swap(amount_out_min=996) == [1_000, 996]
        assert self.tokens["A"].balance_of("trader") == 0
        assert self.tokens["B"].balance_of("trader") == 996
        assert self.router.get_reserves("A", "B") == (1_001_000, 999_004)
        assert self.router.get_reserves("B", "A") == (999_004, 1_001_000)

    def test_multi_hop(self):
        expected_b = get_amount_out(1_000, 10**6, 10**6)
        expected_c = get_amount_out(expected_b, 10**6, 2 * 10**6)

        amounts = self.swap(path=("A", "B", "C"))

        assert amounts == [1_000, expected_b, expected_c]
        assert self.tokens["C"].balance_of("trader") == expected_c
        assert self.tokens["B"].balance_of("trader") == 0
        assert self.router.get_reserves("B", "C") == (10**6 + expected_b, 2 * 10**6 - expected_c)

    def test_quote_matches_swap(self):
        quote = self.router.get_amounts_out(1_000, ["A", "B", "C"])
        assert self.swap(path=("A", "B", "C")) == quote

    def test_expired_deadline(self):
        self.clock.advance(1)
        with pytest.raises(SwapFailureError) as exc:
            self.swap()
        assert exc.value.code == Errors.SWAP_EXPIRED

    def test_minimum_output(self):
        with pytest.raises(SwapFailureError) as exc:
            self.swap(amount_out_min=997)
        assert exc.value.code == Errors.SWAP_INSUFFICIENT_OUTPUT_AMOUNT
        assert self.tokens["A"].balance_of("trader") == 1_000
        assert self.router.get_reserves("A", "B") == (10**6, 10**6)

    def test_unknown_pair(self):
        with pytest.raises(SwapFailureError) as exc:
            self.swap(path=("A", "C"))
        assert exc.value.code == Errors.SWAP_INVALID_PATH

    def test_path_too_short(self):
        with pytest.raises(SwapFailureError) as exc:
            self.router.get_amounts_out(1_000, ["A"])
        assert exc.value.code == Errors.SWAP_INVALID_PATH

    def test_needs_allowance(self):
        self.tokens["A"].approve("trader", self.router.address, 0)
        with pytest.raises(ValidationError) as exc:
            self.swap()
        assert exc.value.code == Errors.CT_TRANSFER_AMOUNT_EXCEEDS_ALLOWANCE
        assert self.router.get_reserves("A", "B") == (10**6, 10**6)

    def test_snapshot_restores_reserves(self):
        saved = self.router.snapshot()
        self.swap()
        self.router.restore(saved)
        assert self.router.get_reserves("A", "B") == (10**6, 10**6)


class TestKinkedRateStrategy:

    def setup_method(self):
        self.strategy = KinkedRateStrategy()

    def test_idle_reserve(self):
        assert self.strategy.calculate_interest_rates(100, 0, 1_000) == (0, 0)

    def test_below_kink(self):
        liquidity_rate, borrow_rate = self.strategy.calculate_interest_rates(50, 50, 1_000)
        # 4% * 0.5 / 0.8 = 2.5% borrow; 2.5% * 0.5 * 0.9 supply
        assert borrow_rate == 25 * 10**24
        assert liquidity_rate == 1_125 * 10**22

    def test_above_kink(self):
        _, borrow_rate = self.strategy.calculate_interest_rates(10, 90, 0)
        # 4% + 75% * (0.9 - 0.8) / 0.2
        assert borrow_rate == 415 * 10**24

    def test_supply_rate_never_exceeds_borrow_rate(self):
        for debt in (1, 10, 50, 80, 95, 100):
            liquidity_rate, borrow_rate = self.strategy.calculate_interest_rates(100 - debt, debt, 0)
            assert liquidity_rate <= borrow_rate

    def test_utilization(self):
        assert KinkedRateStrategy.utilization_rate(0, 0) == 0
        assert KinkedRateStrategy.utilization_rate(0, 100) == RAY
        assert KinkedRateStrategy.utilization_rate(75, 25) == RAY // 4

    def test_rejects_zero_optimal_utilization(self):
        with pytest.raises(ValueError):
            KinkedRateStrategy(optimal_utilization_rate=0)


class TestFixedRateStrategy:

    def test_ignores_utilization(self):
        strategy = FixedRateStrategy(liquidity_rate=RAY // 50, variable_borrow_rate=RAY // 20)
        assert strategy.calculate_interest_rates(0, 10**24, 0) == (RAY // 50, RAY // 20)
        assert strategy.calculate_interest_rates(10**24, 0, 5_000) == (RAY // 50, RAY // 20)


class TestUnderlyingToken:

    def setup_method(self):
        self.token = UnderlyingToken("DAI")
        self.token.mint("alice", 100)

    def test_transfer(self):
        self.token.transfer("alice", "bob", 40)
        assert self.token.balance_of("alice") == 60
        assert self.token.balance_of("bob") == 40
        assert self.token.total_supply() == 100

    def test_transfer_above_balance(self):
        with pytest.raises(ValidationError) as exc:
            self.token.transfer("alice", "bob", 101)
        assert exc.value.code == Errors.CT_TRANSFER_AMOUNT_EXCEEDS_BALANCE

    def test_transfer_from_consumes_allowance(self):
        self.token.approve("alice", "pool", 50)
        self.token.transfer_from("pool", "alice", "reserve", 30)
        assert self.token.allowance("alice", "pool") == 20
        assert self.token.balance_of("reserve") == 30

        with pytest.raises(ValidationError) as exc:
            self.token.transfer_from("pool", "alice", "reserve", 21)
        assert exc.value.code == Errors.CT_TRANSFER_AMOUNT_EXCEEDS_ALLOWANCE

    def test_owner_needs_no_allowance(self):
        self.token.transfer_from("alice", "alice", "bob", 10)
        assert self.token.balance_of("bob") == 10

    def test_hook_runs_after_balances_move(self):
        seen = []
        self.token.transfer_hook = lambda sender, to, amount: seen.append(self.token.balance_of(to))
        self.token.transfer("alice", "bob", 5)
        assert seen == [5]


class TestScaledBurn:

    def test_partial_burn(self):
        assert _scaled_burn_amount(2, 3, 3 * RAY // 2) == 1

    def test_full_balance_within_rounding_burns_everything(self):
        # 3 scaled units at index 1.5 read back as 5
        assert _scaled_burn_amount(5, 3, 3 * RAY // 2) == 3
        assert _scaled_burn_amount(7, 3, 3 * RAY // 2) == 3

    def test_burn_above_balance(self):
        with pytest.raises(ValidationError) as exc:
            _scaled_burn_amount(8, 3, 3 * RAY // 2)
        assert exc.value.code == Errors.CT_INVALID_BURN_AMOUNT

    def test_tolerance_grows_with_index(self):
        index = 3 * RAY + 7
        scaled = 1_000_003
        current = ray_mul(scaled, index)

        assert _scaled_burn_amount(current + 4, scaled, index) == scaled
        with pytest.raises(ValidationError):
            _scaled_burn_amount(current + 5, scaled, index)


class TestScaledTokens:

    def test_receipt_mint_reports_first_deposit(self, harness):
        a_token = harness.a_tokens["WETH"]
        assert a_token.mint("bob", 10, 2 * RAY)
        assert not a_token.mint("bob", 10, 2 * RAY)
        assert a_token.scaled_balance_of("bob") == 10
        assert a_token.scaled_total_supply() == 10

    def test_receipt_mint_rounding_to_zero(self, harness):
        with pytest.raises(ValidationError) as exc:
            harness.a_tokens["WETH"].mint("bob", 0, RAY)
        assert exc.value.code == Errors.CT_INVALID_MINT_AMOUNT

    def test_debt_delegation(self, harness):
        debt_token = harness.debt_tokens["DAI"]
        debt_token.approve_delegation("alice", "bob", 100)

        with pytest.raises(ValidationError) as exc:
            debt_token.mint("bob", "alice", 101, RAY)
        assert exc.value.code == Errors.CT_BORROW_ALLOWANCE_NOT_ENOUGH

        assert debt_token.mint("bob", "alice", 60, RAY)
        assert debt_token.borrow_allowance("alice", "bob") == 40
        assert debt_token.scaled_balance_of("alice") == 60
        assert debt_token.scaled_balance_of("bob") == 0

    def test_debt_balance_follows_index(self, harness):
        debt_token = harness.debt_tokens["DAI"]
        debt_token.mint("alice", "alice", 100, 2 * RAY)
        assert debt_token.scaled_balance_of("alice") == 50
        # No time has passed, so the normalized debt is still one
        assert debt_token.balance_of("alice") == 50
        assert debt_token.total_supply() == 50


class TestOracle:

    def test_missing_price(self):
        oracle = StaticPriceOracle()
        with pytest.raises(ValidationError) as exc:
            oracle.get_asset_price("WETH")
        assert exc.value.code == Errors.VL_PRICE_UNAVAILABLE

    def test_rejects_non_positive_price(self):
        oracle = StaticPriceOracle({"WETH": WAD})
        with pytest.raises(ValidationError):
            oracle.set_asset_price("WETH", 0)
        assert oracle.get_asset_price("WETH") == WAD

    def test_prices_is_a_copy(self):
        oracle = StaticPriceOracle({"WETH": WAD})
        oracle.prices["WETH"] = 1
        assert oracle.get_asset_price("WETH") == WAD


class TestBlockClock:

    def test_advance_and_set(self):
        clock = BlockClock(10)
        assert clock() == 10
        assert clock.advance(5) == 15
        clock.set(20)
        assert clock() == 20

    def test_time_never_goes_back(self):
        clock = BlockClock(10)
        with pytest.raises(ValueError):
            clock.advance(-1)
        with pytest.raises(ValueError):
            clock.set(9)


class TestBuildMarket:

    def setup_method(self):
        self.config = default_market()
        self.market = build_market(self.config)

    def test_reserves_listed_in_config_order(self):
        assert self.market.pool.get_reserves_list() == ["WETH", "USDC", "DAI", "WBTC"]
        assert self.market.pool.get_configuration("WBTC").decimals == 8
        assert self.market.pool.get_configuration("WBTC").liquidation_bonus == 11_000
        assert self.market.clock() == self.config.start_timestamp

    def test_prices_and_units(self):
        assert self.market.oracle.get_asset_price("USDC") == price_to_wad(0.0005)
        assert self.market.to_units("USDC", 1.5) == 1_500_000
        assert self.market.from_units("WBTC", 10**8) == 1.0
        assert self.market.value_of("WBTC", 2 * 10**8) == pytest.approx(30.0)

    def test_swap_pairs_seeded_at_oracle_price(self):
        usdc, weth = self.market.router.get_reserves("USDC", "WETH")
        assert usdc == self.market.to_units("USDC", 40_000_000)
        assert self.market.from_units("WETH", weth) == pytest.approx(20_000)

    def test_initial_liquidity_supplied(self):
        a_usdc = self.market.a_tokens["USDC"]
        assert a_usdc.balance_of(LIQUIDITY_PROVIDER) == 10_000_000 * 10**6
        assert self.market.tokens["USDC"].balance_of(a_usdc.address) == 10_000_000 * 10**6

    def test_liquidation_manager_installed(self):
        assert self.market.pool.liquidation_manager is self.market.liquidation_manager
        assert self.market.liquidation_manager.intermediary_asset == "WETH"
