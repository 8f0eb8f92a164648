"""Visualization modules."""
from .charts import BalanceSheetCharts

__all__ = ['BalanceSheetCharts']
