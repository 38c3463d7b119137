#!/usr/bin/env python3
"""
Scenario Chart Generator

One time-series figure per run: prices, health factors, reserve utilization
and liquidation activity.
"""

from pathlib import Path
from typing import Dict, List

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns

# Health factors above this are clipped for display
HEALTH_FACTOR_DISPLAY_CAP = 5.0


class ScenarioChartGenerator:
    """Renders simulation results to PNG"""

    def __init__(self):
        self._setup_styling()

    def _setup_styling(self):
        plt.style.use('default')
        sns.set_palette("husl")

        plt.rcParams.update({
            'figure.figsize': (12, 8),
            'font.size': 11,
            'axes.titlesize': 14,
            'axes.labelsize': 12,
            'legend.fontsize': 10,
        })

    def generate_scenario_charts(self, results: Dict, charts_dir: Path) -> List[Path]:
        metrics: pd.DataFrame = results["metrics"]
        liquidations: pd.DataFrame = results["liquidations"]
        scenario_name = results["scenario"]

        if metrics.empty:
            print("No time-series data found - cannot create chart")
            return []

        charts_dir = Path(charts_dir)
        charts_dir.mkdir(parents=True, exist_ok=True)
        assets = [c[:-len("_price")] for c in metrics.columns if c.endswith("_price")]

        fig, ((ax1, ax2), (ax3, ax4)) = plt.subplots(2, 2, figsize=(14, 10))
        fig.suptitle(f'{scenario_name.replace("_", " ")} - Simulation Dynamics',
                     fontsize=16, fontweight='bold')

        self._plot_relative_prices(ax1, metrics, assets)
        self._plot_health_factors(ax2, metrics)
        self._plot_utilization(ax3, metrics, assets)
        self._plot_liquidations(ax4, metrics, liquidations)

        plt.tight_layout()
        chart_path = charts_dir / f"{scenario_name.lower()}_simulation_dynamics.png"
        fig.savefig(chart_path, dpi=150, bbox_inches='tight')
        plt.close(fig)

        print(f"Chart saved: {chart_path}")
        return [chart_path]

    def _plot_relative_prices(self, ax, metrics: pd.DataFrame, assets: List[str]):
        for asset in assets:
            prices = metrics[f"{asset}_price"].to_numpy(dtype=float)
            ax.plot(metrics["step"], prices / prices[0], linewidth=2, label=asset)

        ax.axhline(y=1.0, color='gray', linestyle='--', alpha=0.7)
        ax.set_title('Prices (relative to start)')
        ax.set_xlabel('Simulation Step')
        ax.legend()
        ax.grid(True, alpha=0.3)

    def _plot_health_factors(self, ax, metrics: pd.DataFrame):
        mean_hf = np.clip(metrics["mean_health_factor"].to_numpy(dtype=float), 0, HEALTH_FACTOR_DISPLAY_CAP)
        min_hf = np.clip(metrics["min_health_factor"].to_numpy(dtype=float), 0, HEALTH_FACTOR_DISPLAY_CAP)

        ax.plot(metrics["step"], mean_hf, linewidth=3, color='#27AE60', label='Mean Health Factor')
        ax.plot(metrics["step"], min_hf, linewidth=2, color='#E74C3C', label='Min Health Factor')
        ax.axhline(y=1.0, color='red', linestyle='--', alpha=0.7, label='Liquidation Threshold')

        ax.set_title('Health Factors')
        ax.set_xlabel('Simulation Step')
        ax.legend(loc='upper right')
        ax.grid(True, alpha=0.3)

    def _plot_utilization(self, ax, metrics: pd.DataFrame, assets: List[str]):
        for asset in assets:
            ax.plot(metrics["step"], metrics[f"{asset}_utilization"] * 100, linewidth=2, label=asset)

        ax.set_title('Reserve Utilization')
        ax.set_xlabel('Simulation Step')
        ax.set_ylabel('Utilization (%)')
        ax.legend()
        ax.grid(True, alpha=0.3)

    def _plot_liquidations(self, ax, metrics: pd.DataFrame, liquidations: pd.DataFrame):
        ax.bar(metrics["step"], metrics["liquidations"], color='#F39C12', alpha=0.8, label='Liquidations')
        ax.set_title('Liquidations per Step')
        ax.set_xlabel('Simulation Step')
        ax.set_ylabel('Count')

        if not liquidations.empty:
            total_value = liquidations["debt_settled_value"].sum()
            ax.text(0.02, 0.95, f"Debt settled: {total_value:,.2f}", transform=ax.transAxes,
                    fontsize=11, verticalalignment='top',
                    bbox=dict(boxstyle='round', facecolor='lightgray', alpha=0.5))
        ax.grid(True, alpha=0.3)
