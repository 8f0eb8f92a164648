"""
Monetary Base & Interbank Rate Analysis

Loads central bank balance sheet, money supply and interest rate series
from public statistical APIs, aligns them on a monthly axis and fits
models predicting the local interbank rate.
"""

__version__ = "1.0.0"
__author__ = "Monetary Rates Analysis"
