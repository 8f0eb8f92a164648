"""
Charts Module

Builds plotly figures from the long-form tables produced by the
pipeline: the signed central bank balance sheet, the monetary base by
currency and by coverage, rate spreads, daily liquidity and model fits.
"""

from pathlib import Path
from typing import Optional

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
from loguru import logger

from ..data.series_loader import PERIOD


class BalanceSheetCharts:
    """Create figures for the monetary base and rate model outputs."""

    COLORS = {
        'actual': '#d62728',     # Red for realized rates
        'OLS': '#9467bd',        # Purple
        'LASSO': '#1f77b4',      # Blue
        'reference': '#7f7f7f',  # Gray reference lines
    }

    TEMPLATE = 'plotly_white'

    # Balances are reported in HK$ millions
    TRILLIONS = 1e6

    def __init__(self, output_dir: str = "output"):
        """Initialize chart generator.

        Args:
            output_dir: Directory for saving charts
        """
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)

    def _stacked_area(
        self,
        long: pd.DataFrame,
        category: str,
        title: str,
        legend_title: str
    ) -> go.Figure:
        if long.empty:
            return self._create_empty_chart(f"No data for {title}")

        data = long.assign(trillions=long['value'] / self.TRILLIONS)
        fig = px.area(
            data,
            x=PERIOD,
            y='trillions',
            color=category,
            template=self.TEMPLATE,
            title=title,
        )
        fig.update_layout(
            xaxis_title="",
            yaxis_title="HK$ trillions",
            legend_title=legend_title,
        )
        return fig

    def create_balance_sheet_chart(self, balance_sheet_long: pd.DataFrame) -> go.Figure:
        """Stacked area of line items; liabilities and equity plot below zero.

        Y tick labels show absolute values.
        """
        fig = self._stacked_area(balance_sheet_long, 'line_item', "HKMA Balance Sheet", "Line Items")
        if balance_sheet_long.empty:
            return fig

        totals = balance_sheet_long.assign(v=balance_sheet_long['value'] / self.TRILLIONS)
        positive = totals[totals['v'] > 0].groupby(PERIOD)['v'].sum()
        negative = totals[totals['v'] < 0].groupby(PERIOD)['v'].sum()
        top = float(positive.max()) if len(positive) else 0.0
        bottom = float(negative.min()) if len(negative) else 0.0

        step = max(top, -bottom) / 4 or 1.0
        ticks = [step * i for i in range(-4, 5) if bottom - step <= step * i <= top + step]
        fig.update_yaxes(tickvals=ticks, ticktext=[f"{abs(t):.1f}" for t in ticks])
        return fig

    def create_money_supply_chart(self, by_currency: pd.DataFrame) -> go.Figure:
        """Stacked area of money supply by currency."""
        fig = self._stacked_area(by_currency, 'currency',
                                 "Hong Kong's Monetary Base, by currency", "Legend")
        fig.update_layout(legend=dict(orientation='h', yanchor='top', y=-0.1))
        return fig

    def create_coverage_chart(self, coverage: pd.DataFrame) -> go.Figure:
        """Stacked area of the HKD monetary base covered vs. uncovered by the HKMA."""
        if not coverage.empty and hasattr(coverage['item'], 'cat'):
            coverage = coverage.assign(item=coverage['item'].astype(str))
        return self._stacked_area(
            coverage, 'item',
            "Hong Kong's HKD Monetary Base, Covered vs. Uncovered by HKMA", "Legend"
        )

    def create_rate_spread_chart(
        self,
        monthly: pd.DataFrame,
        column: str = 'diff_overnight'
    ) -> go.Figure:
        """Line of the HK / US overnight rate gap with its mean as reference."""
        if monthly.empty or column not in monthly.columns:
            return self._create_empty_chart(f"No data for {column}")

        fig = go.Figure()
        fig.add_trace(go.Scatter(
            x=monthly[PERIOD],
            y=monthly[column],
            mode='lines',
            name=column,
            line=dict(color=self.COLORS['actual'])
        ))
        fig.add_hline(
            y=float(monthly[column].mean()),
            line_dash='dash',
            line_color=self.COLORS['reference'],
            annotation_text="mean"
        )
        fig.update_layout(
            template=self.TEMPLATE,
            title="|OBFR - HIBOR overnight|",
            xaxis_title="",
            yaxis_title="percentage points",
        )
        return fig

    def create_daily_liquidity_chart(
        self,
        daily: pd.DataFrame,
        column: str = 'closing_balance',
        start: Optional[str] = None
    ) -> go.Figure:
        """Line of the daily Aggregate Balance in HK$ trillions."""
        if daily.empty or column not in daily.columns:
            return self._create_empty_chart("No daily liquidity data")

        if start is not None:
            daily = daily[daily[PERIOD] >= pd.Timestamp(start)]

        fig = go.Figure(go.Scatter(
            x=daily[PERIOD],
            y=daily[column] / self.TRILLIONS,
            mode='lines',
            name="Aggregate Balance"
        ))
        fig.update_layout(
            template=self.TEMPLATE,
            title="Aggregate Balance",
            xaxis_title="",
            yaxis_title="HK$ trillions",
        )
        return fig

    def create_model_fit_chart(self, predictions: pd.DataFrame, title: str = "Model fit") -> go.Figure:
        """Actual vs. predicted lines from a long (period, series, value) table."""
        if predictions.empty:
            return self._create_empty_chart("No predictions")

        fig = go.Figure()
        for name, group in predictions.groupby('series', sort=False):
            color = next((c for key, c in self.COLORS.items() if key in str(name)), None)
            fig.add_trace(go.Scatter(
                x=group[PERIOD],
                y=group['value'],
                mode='lines',
                name=str(name),
                line=dict(color=color) if color else None
            ))
        fig.update_layout(
            template=self.TEMPLATE,
            title=title,
            xaxis_title="",
            yaxis_title="rate (%)",
        )
        return fig

    def save_chart(self, fig: go.Figure, filename: str, format: str = 'html') -> Path:
        """Save chart to file.

        Args:
            fig: Plotly figure
            filename: Output filename (without extension)
            format: Output format (html, png, svg)

        Returns:
            Path to saved file
        """
        output_path = self.output_dir / f"{filename}.{format}"

        if format == 'html':
            fig.write_html(str(output_path), include_plotlyjs=True)
        else:
            fig.write_image(str(output_path))

        logger.info(f"Chart saved to {output_path}")
        return output_path

    def _create_empty_chart(self, message: str) -> go.Figure:
        """Create empty chart with message."""
        fig = go.Figure()
        fig.add_annotation(
            text=message,
            xref="paper",
            yref="paper",
            x=0.5,
            y=0.5,
            showarrow=False,
            font=dict(size=20)
        )
        fig.update_layout(template=self.TEMPLATE, height=400)
        return fig
