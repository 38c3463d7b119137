"""Run analysis and charts"""

from .metrics import LendingMetricsCalculator
from .charts import ScenarioChartGenerator

__all__ = ["LendingMetricsCalculator", "ScenarioChartGenerator"]
