#!/usr/bin/env python3
"""
Lending Pool Simulation - Main Entry Point

Runs a stress scenario against the lending pool and prints the summary.
"""

import argparse
import json
import sys
import time
from pathlib import Path
from typing import Dict

import numpy as np

from .analysis.charts import ScenarioChartGenerator
from .core.errors import LendingPoolError
from .engine.config import SimulationConfig, StressTestScenarios
from .engine.simulation import LendingSimulationEngine


def main(argv=None) -> int:
    """Main entry point with command-line interface"""

    parser = argparse.ArgumentParser(
        description="Lending Pool Stress Simulation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  lending-pool-sim --list-scenarios
  lending-pool-sim --scenario WBTC_Crash --steps 60
  lending-pool-sim --config my_market.json --output results/
        """
    )

    parser.add_argument('--scenario', type=str, default="Baseline",
                        help='Stress scenario to run (default: Baseline)')
    parser.add_argument('--list-scenarios', action='store_true',
                        help='List all available stress scenarios')
    parser.add_argument('--config', type=str,
                        help='JSON file with a full SimulationConfig')
    parser.add_argument('--steps', type=int,
                        help='Number of simulation steps')
    parser.add_argument('--borrowers', type=int,
                        help='Number of borrower positions to open')
    parser.add_argument('--seed', type=int,
                        help='Random seed')
    parser.add_argument('--output', type=str,
                        help='Directory for metrics CSVs and the JSON summary')
    parser.add_argument('--charts', action='store_true',
                        help='Render a PNG chart into the output directory')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Verbose output')

    args = parser.parse_args(argv)

    if args.list_scenarios:
        list_scenarios()
        return 0

    try:
        config = create_simulation_config(args)

        print(f"Running Stress Scenario: {config.scenario_name}")
        print("=" * 60)

        start_time = time.time()
        results = LendingSimulationEngine(config).run_simulation()
        elapsed = time.time() - start_time

        display_results(results, args.verbose)
        print(f"\nSimulation completed in {elapsed:.1f}s")

        if args.output:
            export_results(results, args.output)
            if args.charts:
                ScenarioChartGenerator().generate_scenario_charts(results, Path(args.output) / "charts")
        elif args.charts:
            print("--charts needs --output")

        return 0

    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        return 1
    except KeyError as e:
        print(f"Error: {e}")
        print("\nUse --list-scenarios to see available scenarios")
        return 1
    except (LendingPoolError, ValueError, OSError) as e:
        print(f"Error: {e}")
        return 1


def create_simulation_config(args) -> SimulationConfig:
    """Create simulation configuration from command-line arguments"""

    if args.config:
        config = SimulationConfig.from_json(args.config)
    else:
        config = StressTestScenarios.build_config(args.scenario)

    overrides = {}
    if args.steps is not None:
        overrides["simulation_steps"] = args.steps
    if args.borrowers is not None:
        overrides["num_borrowers"] = args.borrowers
    if args.seed is not None:
        overrides["random_seed"] = args.seed

    if overrides:
        config = SimulationConfig.model_validate({**config.model_dump(), **overrides})
    return config


def list_scenarios():
    print("Available Stress Scenarios:")
    print("-" * 40)

    for i, scenario in enumerate(StressTestScenarios.get_all_scenarios(), 1):
        print(f"{i:2d}. {scenario['name']}")
        print(f"    {scenario['description']}")
        print()


def display_results(results: Dict, verbose: bool = False):
    summary = results["summary"]
    health = summary["health_factors"]
    liquidations = summary["liquidations"]
    protocol = summary["protocol_health"]

    print(f"\nResults: {results['scenario']}")
    print("-" * 40)
    print(f"Lowest health factor: {health['lowest_health_factor']:.3f}")
    print(f"Max unhealthy positions: {health['max_unhealthy_positions']}")
    print(f"Liquidations: {liquidations['liquidation_count']} "
          f"({liquidations['liquidated_users']} users)")
    print(f"Debt settled: {liquidations['total_debt_settled_value']:,.4f}")
    print(f"Average liquidation premium: {liquidations['average_liquidation_premium']:.2%}")
    print(f"Protocol health: {protocol['overall_health_score']:.2f} ({protocol['health_status']})")

    if verbose:
        print("\nReserves:")
        for asset, metrics in summary["reserves"].items():
            print(f"  {asset}: utilization {metrics['mean_utilization']:.1%} avg, "
                  f"borrow APR {metrics['mean_borrow_apr']:.2%}, "
                  f"price {metrics['price_change']:+.1%}")
        if results["failed_actions"]:
            print(f"\nFailed actions: {len(results['failed_actions'])}")
            for failure in results["failed_actions"][:10]:
                print(f"  step {failure['step']} {failure['user']} {failure['action']}: {failure['code']}")


def convert_for_json(obj):
    """Convert numpy scalars to plain numbers; NaN and infinity become null"""
    if isinstance(obj, dict):
        return {str(key): convert_for_json(value) for key, value in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [convert_for_json(item) for item in obj]
    elif isinstance(obj, (bool, np.bool_)):
        return bool(obj)
    elif isinstance(obj, (int, np.integer)):
        return int(obj)
    elif isinstance(obj, (float, np.floating)):
        return float(obj) if np.isfinite(obj) else None
    return obj


def export_results(results: Dict, output_dir: str):
    path = Path(output_dir)
    path.mkdir(parents=True, exist_ok=True)

    results["metrics"].to_csv(path / "metrics.csv", index=False)
    results["liquidations"].to_csv(path / "liquidations.csv", index=False)
    with open(path / "summary.json", "w") as f:
        json.dump(
            convert_for_json({"scenario": results["scenario"], "summary": results["summary"],
                              "failed_actions": results["failed_actions"]}),
            f, indent=2, allow_nan=False
        )

    print(f"Results exported to {path}")


if __name__ == "__main__":
    sys.exit(main())
