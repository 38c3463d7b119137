#!/usr/bin/env python3
"""
Simulation engine, scenario configuration, metrics and CLI tests
"""

import json

import numpy as np
import pandas as pd
import pydantic
import pytest

from lending_pool_sim.analysis.charts import ScenarioChartGenerator
from lending_pool_sim.analysis.metrics import LendingMetricsCalculator
from lending_pool_sim.engine.config import (
    MarketConfig,
    ReserveParams,
    SimulationConfig,
    StressTestScenarios,
    default_market,
)
from lending_pool_sim.engine.simulation import LIQUIDATION_COLUMNS, LendingSimulationEngine
from lending_pool_sim.main import convert_for_json, main


def small_config(**overrides) -> SimulationConfig:
    params = dict(simulation_steps=4, num_borrowers=6, num_liquidators=1, random_seed=7)
    params.update(overrides)
    return SimulationConfig(**params)


class TestSimulationConfig:

    def test_defaults(self):
        config = SimulationConfig()
        assert config.simulation_steps == 120
        assert config.market.intermediary_asset == "WETH"
        assert [r.symbol for r in config.market.reserves] == ["WETH", "USDC", "DAI", "WBTC"]

    def test_json_round_trip(self, tmp_path):
        config = small_config(price_shocks={2: {"WBTC": -0.3}})
        path = tmp_path / "config.json"
        config.to_json(path)

        loaded = SimulationConfig.from_json(path)
        assert loaded == config
        assert loaded.price_shocks[2]["WBTC"] == pytest.approx(-0.3)

    def test_threshold_below_ltv_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            ReserveParams(symbol="X", price=1.0, ltv=8_000, liquidation_threshold=7_000)

    def test_intermediary_must_be_listed(self):
        with pytest.raises(pydantic.ValidationError):
            MarketConfig(intermediary_asset="ETH", reserves=[ReserveParams(symbol="WETH", price=1.0)])

    def test_duplicate_symbols_rejected(self):
        with pytest.raises(pydantic.ValidationError):
            MarketConfig(reserves=[ReserveParams(symbol="WETH", price=1.0), ReserveParams(symbol="WETH", price=1.0)])

    def test_reserve_lookup(self):
        market = default_market()
        assert market.reserve("WBTC").decimals == 8
        with pytest.raises(KeyError):
            market.reserve("DOGE")


class TestStressTestScenarios:

    def test_all_scenarios_build(self):
        for scenario in StressTestScenarios.get_all_scenarios():
            config = StressTestScenarios.build_config(scenario["name"], simulation_steps=5)
            assert config.scenario_name == scenario["name"]
            assert config.simulation_steps == 5

    def test_lookup_is_case_insensitive(self):
        assert StressTestScenarios.get_scenario("wbtc_crash")["name"] == "WBTC_Crash"

    def test_unknown_scenario(self):
        with pytest.raises(KeyError):
            StressTestScenarios.get_scenario("Moon_Landing")


class TestLendingSimulationEngine:

    def test_run_records_every_step(self):
        results = LendingSimulationEngine(small_config()).run_simulation()
        metrics = results["metrics"]

        assert results["scenario"] == "Baseline"
        assert len(metrics) == 5
        assert list(metrics["step"]) == [0, 1, 2, 3, 4]
        assert metrics["timestamp"].is_monotonic_increasing
        for asset in ("WETH", "USDC", "DAI", "WBTC"):
            assert metrics[f"{asset}_liquidity_index"].is_monotonic_increasing
            assert metrics[f"{asset}_borrow_index"].is_monotonic_increasing
            assert (metrics[f"{asset}_utilization"].between(0, 1)).all()
        assert list(results["liquidations"].columns) == LIQUIDATION_COLUMNS
        assert set(results["summary"]) == {"steps", "health_factors", "liquidations", "reserves", "protocol_health"}

    def test_borrowers_open_positions(self):
        engine = LendingSimulationEngine(small_config())
        engine.run_simulation(steps=1)

        assert len(engine.borrowers) + len(
            [f for f in engine.failed_actions if f["action"] == "open_position"]
        ) == 6
        for user, position in engine.borrowers.items():
            assert engine.market.debt_tokens[position["debt"]].balance_of(user) > 0
            assert engine.market.a_tokens[position["collateral"]].balance_of(user) > 0

    def test_same_seed_same_run(self):
        first = LendingSimulationEngine(small_config()).run_simulation()
        second = LendingSimulationEngine(small_config()).run_simulation()
        pd.testing.assert_frame_equal(first["metrics"], second["metrics"])

    def test_price_shock_triggers_liquidation(self):
        config = small_config(num_borrowers=0, price_shocks={1: {"WBTC": -0.5}})
        engine = LendingSimulationEngine(config)
        market = engine.market

        market.supply("borrower_x", "WBTC", market.to_units("WBTC", 10))
        engine.pool.borrow("borrower_x", "USDC", market.to_units("USDC", 187_500), "borrower_x")
        engine.borrowers["borrower_x"] = {"collateral": "WBTC", "debt": "USDC"}

        results = engine.run_simulation(steps=3)
        liquidations = results["liquidations"]

        first = liquidations.iloc[0]
        assert first["step"] == 1
        assert first["user"] == "borrower_x"
        assert first["collateral_asset"] == "WBTC"
        assert first["debt_asset"] == "USDC"
        assert first["health_factor_before"] < 1.0
        assert first["debt_settled"] > 0
        assert results["metrics"]["liquidations"].iloc[1] >= 1
        assert results["summary"]["liquidations"]["liquidated_users"] == 1

    def test_arbitrage_tracks_oracle_price(self):
        config = small_config(num_borrowers=0, price_shocks={1: {"WBTC": -0.4}})
        engine = LendingSimulationEngine(config)
        engine.run_simulation(steps=1)

        wbtc, weth = engine.market.router.get_reserves("WBTC", "WETH")
        pool_price = engine.market.from_units("WETH", weth) / engine.market.from_units("WBTC", wbtc)
        assert pool_price == pytest.approx(engine.prices["WBTC"] / engine.prices["WETH"], rel=0.01)


class TestLendingMetricsCalculator:

    def setup_method(self):
        self.metrics = pd.DataFrame({
            "step": [0, 1, 2],
            "DAI_price": [1.0, 0.9, 0.95],
            "DAI_utilization": [0.5, 0.8, 0.9],
            "DAI_supply_apr": [0.01, 0.02, 0.03],
            "DAI_borrow_apr": [0.02, 0.04, 0.06],
            "DAI_liquidity_index": [1.0, 1.001, 1.002],
            "DAI_borrow_index": [1.0, 1.002, 1.004],
            "total_supplied_value": [100.0, 100.0, 100.0],
            "total_debt_value": [50.0, 60.0, 80.0],
            "open_positions": [4, 4, 4],
            "unhealthy_positions": [0, 2, 1],
            "min_health_factor": [1.5, 0.8, 0.95],
            "mean_health_factor": [2.0, 1.4, 1.3],
            "liquidations": [0, 1, 1],
        })
        self.liquidations = pd.DataFrame([
            {"user": "a", "debt_settled_value": 10.0, "collateral_value": 10.5,
             "health_factor_before": 0.8, "health_factor_after": 1.1},
            {"user": "a", "debt_settled_value": 5.0, "collateral_value": 5.25,
             "health_factor_before": 0.95, "health_factor_after": float("inf")},
        ])
        self.calculator = LendingMetricsCalculator(self.metrics, self.liquidations, ["DAI"])

    def test_health_factor_metrics(self):
        health = self.calculator.calculate_health_factor_metrics()
        assert health["lowest_health_factor"] == pytest.approx(0.8)
        assert health["final_mean_health_factor"] == pytest.approx(1.3)
        assert health["max_unhealthy_positions"] == 2
        assert health["steps_with_unhealthy_positions"] == 2

    def test_liquidation_metrics(self):
        liquidations = self.calculator.calculate_liquidation_metrics()
        assert liquidations["liquidation_count"] == 2
        assert liquidations["liquidated_users"] == 1
        assert liquidations["total_debt_settled_value"] == pytest.approx(15.0)
        assert liquidations["average_liquidation_premium"] == pytest.approx(0.05)
        # Fully closed positions (infinite health factor) are left out of the recovery average
        assert liquidations["average_health_factor_recovery"] == pytest.approx(0.3)

    def test_reserve_metrics(self):
        dai = self.calculator.calculate_reserve_metrics()["DAI"]
        assert dai["max_utilization"] == pytest.approx(0.9)
        assert dai["supply_index_growth"] == pytest.approx(0.002)
        assert dai["price_change"] == pytest.approx(-0.05)

    def test_protocol_health_score(self):
        score = self.calculator.calculate_protocol_health_score()
        components = score["component_scores"]
        assert components["solvency"] == pytest.approx(0.75)
        assert components["utilization_balance"] == pytest.approx(0.9)
        assert components["liquidity_coverage"] == pytest.approx(0.2)
        assert score["overall_health_score"] == pytest.approx(0.375 + 0.225 + 0.05)
        assert score["health_status"] == "Good"

    def test_empty_run(self):
        calculator = LendingMetricsCalculator(pd.DataFrame(), pd.DataFrame(columns=LIQUIDATION_COLUMNS), [])
        summary = calculator.summary()
        assert summary["steps"] == 0
        assert np.isnan(summary["health_factors"]["lowest_health_factor"])
        assert summary["liquidations"]["liquidation_count"] == 0
        assert summary["protocol_health"]["health_status"] == "Unknown"


class TestCharts:

    def test_chart_written(self, tmp_path):
        results = LendingSimulationEngine(small_config()).run_simulation()
        paths = ScenarioChartGenerator().generate_scenario_charts(results, tmp_path)

        assert len(paths) == 1
        assert paths[0].name == "baseline_simulation_dynamics.png"
        assert paths[0].stat().st_size > 0

    def test_empty_results(self, tmp_path):
        results = {"scenario": "Empty", "metrics": pd.DataFrame(), "liquidations": pd.DataFrame()}
        assert ScenarioChartGenerator().generate_scenario_charts(results, tmp_path) == []


class TestCommandLine:

    def test_list_scenarios(self, capsys):
        assert main(["--list-scenarios"]) == 0
        assert "WBTC_Crash" in capsys.readouterr().out

    def test_unknown_scenario(self, capsys):
        assert main(["--scenario", "Moon_Landing"]) == 1
        assert "--list-scenarios" in capsys.readouterr().out

    def test_run_with_export(self, tmp_path):
        output = tmp_path / "out"
        code = main([
            "--scenario", "WBTC_Crash", "--steps", "3", "--borrowers", "4",
            "--seed", "1", "--output", str(output), "--charts",
        ])

        assert code == 0
        metrics = pd.read_csv(output / "metrics.csv")
        assert len(metrics) == 4
        with open(output / "summary.json") as f:
            summary = json.load(f)
        assert summary["scenario"] == "WBTC_Crash"
        assert (output / "liquidations.csv").exists()
        assert (output / "charts" / "wbtc_crash_simulation_dynamics.png").exists()

    def test_config_file(self, tmp_path):
        path = tmp_path / "config.json"
        small_config(scenario_name="Custom", num_borrowers=2).to_json(path)
        assert main(["--config", str(path), "--steps", "2"]) == 0

    def test_summary_without_positions_is_strict_json(self, tmp_path):
        output = tmp_path / "empty"
        assert main(["--steps", "2", "--borrowers", "0", "--seed", "3", "--output", str(output)]) == 0

        text = (output / "summary.json").read_text()
        assert "NaN" not in text
        summary = json.loads(text)
        assert summary["summary"]["health_factors"]["lowest_health_factor"] is None
        assert summary["summary"]["health_factors"]["final_mean_health_factor"] is None


class TestConvertForJson:

    def test_non_finite_values_become_null(self):
        converted = convert_for_json({
            "nan": np.nan, "inf": float("inf"), "scalar": np.float64(1.5),
            "count": np.int64(3), "flag": np.bool_(True), "nested": [np.nan, 2],
        })
        assert converted == {"nan": None, "inf": None, "scalar": 1.5, "count": 3, "flag": True, "nested": [None, 2]}
        assert type(converted["count"]) is int
