#!/usr/bin/env python3
"""
Lending Market Metrics

Summary statistics over a simulation run: position health, liquidation
activity, reserve utilization and an overall stability score.
"""

from typing import Dict, List

import numpy as np
import pandas as pd

OPTIMAL_UTILIZATION = 0.8


class LendingMetricsCalculator:
    """Metrics over the per-step and per-liquidation DataFrames of a run"""

    def __init__(self, metrics: pd.DataFrame, liquidations: pd.DataFrame, assets: List[str]):
        self.metrics = metrics
        self.liquidations = liquidations
        self.assets = assets

    def calculate_health_factor_metrics(self) -> Dict:
        if self.metrics.empty:
            return {"lowest_health_factor": np.nan, "final_mean_health_factor": np.nan,
                    "max_unhealthy_positions": 0, "steps_with_unhealthy_positions": 0}

        min_hf = self.metrics["min_health_factor"].to_numpy(dtype=float)
        unhealthy = self.metrics["unhealthy_positions"].to_numpy()

        return {
            "lowest_health_factor": float(np.nanmin(min_hf)) if np.isfinite(min_hf).any() else np.nan,
            "final_mean_health_factor": float(self.metrics["mean_health_factor"].iloc[-1]),
            "max_unhealthy_positions": int(unhealthy.max()),
            "steps_with_unhealthy_positions": int(np.count_nonzero(unhealthy)),
        }

    def calculate_liquidation_metrics(self) -> Dict:
        if self.liquidations.empty:
            return {"liquidation_count": 0, "liquidated_users": 0, "total_debt_settled_value": 0.0,
                    "total_collateral_value": 0.0, "average_liquidation_premium": 0.0,
                    "average_health_factor_recovery": 0.0}

        debt_value = self.liquidations["debt_settled_value"].to_numpy(dtype=float)
        collateral_value = self.liquidations["collateral_value"].to_numpy(dtype=float)

        # Premium paid by the borrower over the debt actually relieved
        with np.errstate(divide="ignore", invalid="ignore"):
            premium = np.where(debt_value > 0, collateral_value / debt_value - 1, np.nan)

        hf_after = self.liquidations["health_factor_after"].to_numpy(dtype=float)
        hf_before = self.liquidations["health_factor_before"].to_numpy(dtype=float)
        recovery = hf_after[np.isfinite(hf_after)] - hf_before[np.isfinite(hf_after)]

        return {
            "liquidation_count": len(self.liquidations),
            "liquidated_users": int(self.liquidations["user"].nunique()),
            "total_debt_settled_value": float(debt_value.sum()),
            "total_collateral_value": float(collateral_value.sum()),
            "average_liquidation_premium": float(np.nanmean(premium)) if np.isfinite(premium).any() else 0.0,
            "average_health_factor_recovery": float(recovery.mean()) if recovery.size else 0.0,
        }

    def calculate_reserve_metrics(self) -> Dict[str, Dict]:
        reserves = {}
        if self.metrics.empty:
            return reserves

        for asset in self.assets:
            utilization = self.metrics[f"{asset}_utilization"].to_numpy(dtype=float)
            borrow_apr = self.metrics[f"{asset}_borrow_apr"].to_numpy(dtype=float)
            supply_apr = self.metrics[f"{asset}_supply_apr"].to_numpy(dtype=float)
            price = self.metrics[f"{asset}_price"].to_numpy(dtype=float)

            reserves[asset] = {
                "mean_utilization": float(utilization.mean()),
                "max_utilization": float(utilization.max()),
                "mean_borrow_apr": float(borrow_apr.mean()),
                "mean_supply_apr": float(supply_apr.mean()),
                "supply_index_growth": float(self.metrics[f"{asset}_liquidity_index"].iloc[-1] - 1.0),
                "borrow_index_growth": float(self.metrics[f"{asset}_borrow_index"].iloc[-1] - 1.0),
                "price_change": float(price[-1] / price[0] - 1.0),
                "price_volatility": float(np.std(np.diff(np.log(price)))) if len(price) > 1 else 0.0,
            }
        return reserves

    def calculate_protocol_health_score(self) -> Dict:
        """Weighted 0-1 stability score"""
        if self.metrics.empty:
            return {"overall_health_score": 0.0, "component_scores": {}, "health_status": "Unknown"}

        final = self.metrics.iloc[-1]
        open_positions = max(int(final["open_positions"]), 1)

        utilizations = np.array([final[f"{asset}_utilization"] for asset in self.assets], dtype=float)
        utilization_score = float(np.clip(1 - np.abs(utilizations - OPTIMAL_UTILIZATION).mean(), 0, 1))

        solvency_score = 1 - int(final["unhealthy_positions"]) / open_positions

        supplied = float(final["total_supplied_value"])
        debt = float(final["total_debt_value"])
        coverage_score = float(np.clip(1 - debt / supplied, 0, 1)) if supplied > 0 else 0.0

        scores = {
            "solvency": solvency_score,
            "utilization_balance": utilization_score,
            "liquidity_coverage": coverage_score,
        }
        weights = {"solvency": 0.5, "utilization_balance": 0.25, "liquidity_coverage": 0.25}
        health_score = sum(scores[key] * weights[key] for key in scores)

        return {
            "overall_health_score": health_score,
            "component_scores": scores,
            "health_status": self._categorize_health(health_score),
        }

    def _categorize_health(self, score: float) -> str:
        if score >= 0.8:
            return "Excellent"
        elif score >= 0.6:
            return "Good"
        elif score >= 0.4:
            return "Fair"
        return "Poor"

    def summary(self) -> Dict:
        return {
            "steps": int(self.metrics["step"].max()) if not self.metrics.empty else 0,
            "health_factors": self.calculate_health_factor_metrics(),
            "liquidations": self.calculate_liquidation_metrics(),
            "reserves": self.calculate_reserve_metrics(),
            "protocol_health": self.calculate_protocol_health_score(),
        }
