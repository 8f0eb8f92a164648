#!/usr/bin/env python3
"""
Hong Kong Monetary Base & Interbank Rate Analysis

Main entry point for the application. Provides CLI interface
for running the analysis pipeline and inspecting the data sources.
"""

import argparse
import sys
from pathlib import Path

from loguru import logger

from monetary_rates.exceptions import MonetaryDataError
from monetary_rates.pipeline import (
    BALANCE_SHEET_LONG,
    DAILY_LIQUIDITY,
    MONETARY_BASE_COVERAGE,
    MONEY_SUPPLY_BY_CURRENCY,
    MONTHLY,
    AnalysisPipeline,
    PipelineResult,
)
from monetary_rates.data.periods import month_end
from monetary_rates.data.series_loader import PERIOD, SeriesLoader
from monetary_rates.utils.config_loader import ConfigLoader
from monetary_rates.utils.logger import setup_logger
from monetary_rates.visualization.charts import BalanceSheetCharts


def print_report(result: PipelineResult):
    """Print fit statistics and the out-of-sample comparison."""
    monthly = result.table(MONTHLY)

    print("\n" + "="*80)
    print("HK MONETARY BASE & INTERBANK RATE MODELS")
    print("="*80)
    if len(monthly):
        print(f"\nMonthly table: {len(monthly)} periods "
              f"({monthly[PERIOD].min():%Y-%m-%d} to {month_end(monthly[PERIOD].max()):%Y-%m-%d}), "
              f"{monthly.shape[1] - 1} fields")

    print("\n" + "-"*80)
    print("IN-SAMPLE FIT")
    print("-"*80)
    summary = result.fit_summary()
    print(summary[['method', 'n_obs', 'r_squared', 'adj_r_squared', 'n_nonzero']].to_string(
        float_format=lambda v: f"{v:.4f}"
    ))

    if result.comparison is not None:
        print("\n" + "-"*80)
        print(f"OUT-OF-SAMPLE ({result.comparison.spec.formula}, cutoff "
              f"{result.comparison.cutoff:%Y-%m-%d})")
        print("-"*80)
        print(result.comparison.summary().to_string(float_format=lambda v: f"{v:.4f}"))

    print("\n" + "-"*80)
    print("COEFFICIENTS")
    print("-"*80)
    print(result.coefficients().to_string(float_format=lambda v: f"{v:.6g}", na_rep=""))
    print("="*80 + "\n")


def save_charts(result: PipelineResult, output_dir: Path):
    """Render the presentation tables and model fits to HTML."""
    charts = BalanceSheetCharts(output_dir=str(output_dir))

    figures = {
        'balance_sheet': charts.create_balance_sheet_chart(result.table(BALANCE_SHEET_LONG)),
        'money_supply_by_currency': charts.create_money_supply_chart(
            result.table(MONEY_SUPPLY_BY_CURRENCY)
        ),
        'monetary_base_coverage': charts.create_coverage_chart(result.table(MONETARY_BASE_COVERAGE)),
        'rate_spread': charts.create_rate_spread_chart(result.table(MONTHLY)),
        'full_model_fit': charts.create_model_fit_chart(
            result.table('full_model_fit'), title="HIBOR overnight: full model fit"
        ),
    }
    if DAILY_LIQUIDITY in result.tables:
        figures['aggregate_balance'] = charts.create_daily_liquidity_chart(result.table(DAILY_LIQUIDITY))
    if result.comparison is not None:
        figures['out_of_sample'] = charts.create_model_fit_chart(
            result.comparison.predictions(), title="HIBOR overnight: out-of-sample"
        )

    for name, fig in figures.items():
        charts.save_chart(fig, name)


def run_analysis(config: ConfigLoader, export_dir=None, charts: bool = False) -> PipelineResult:
    """Run the full pipeline and report its results."""
    pipeline = AnalysisPipeline(config=config)
    result = pipeline.run()

    print_report(result)

    if export_dir is not None:
        paths = result.export(export_dir)
        print(f"Exported {len(paths)} tables to: {export_dir}")

    if charts:
        save_charts(result, config.output_dir)

    return result


def list_sources(config: ConfigLoader):
    """Print the pinned endpoint of every source."""
    loader = SeriesLoader(sources=config.sources, timeout=config.request_timeout)
    table = loader.describe_sources()
    print(table.to_string(index=False))


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Hong Kong Monetary Base & Interbank Rate Analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py run                     Fetch all series, fit and evaluate models
  python main.py run --export out/       Also write every table as CSV
  python main.py run --charts            Also render HTML charts
  python main.py sources                 List the pinned data sources
        """
    )
    parser.add_argument('-c', '--config', help='Path to settings YAML')
    parser.add_argument('-v', '--verbose', action='store_true', help='Verbose output')

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    run_parser = subparsers.add_parser('run', help='Run the analysis pipeline')
    run_parser.add_argument('--export', metavar='DIR', help='Write every table as CSV to DIR')
    run_parser.add_argument('--charts', action='store_true', help='Generate HTML charts')

    subparsers.add_parser('sources', help='List data sources')

    args = parser.parse_args()

    config = ConfigLoader(args.config)
    log_level = "DEBUG" if args.verbose else config.log_level
    setup_logger(log_level=log_level, log_file=config.log_file)

    try:
        if args.command == 'sources':
            list_sources(config)
        elif args.command == 'run':
            run_analysis(config, export_dir=args.export, charts=args.charts)
        else:
            parser.print_help()
    except MonetaryDataError as e:
        logger.error(f"{type(e).__name__}: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
