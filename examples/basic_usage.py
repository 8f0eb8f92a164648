#!/usr/bin/env python3
"""
Basic Usage Example

Fetches the US overnight bank funding rate and the HKMA interbank rates,
aligns them by month and regresses HIBOR overnight on OBFR, with and
without a two-month lead.
"""

import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from monetary_rates.analysis.merge import merge_series
from monetary_rates.data.series_loader import SeriesLoader
from monetary_rates.models.evaluation import compare_out_of_sample
from monetary_rates.models.model_builder import ModelSpec, build_design
from monetary_rates.models.regression import fit_ols


def main():
    """Run basic usage example."""
    print("=" * 60)
    print("HK INTERBANK RATES vs US OBFR - Basic Example")
    print("=" * 60)

    # 1. Load two series from their public APIs
    print("\n1. Loading series...")
    loader = SeriesLoader()
    series = loader.load_many(['obfr', 'interbank_rates'])
    for name, s in series.items():
        print(f"   • {name}: {len(s)} periods, fields: {', '.join(s.fields[:5])}")

    # 2. Align them on the monthly period key
    print("\n2. Merging on period...")
    table = merge_series(list(series.values()))
    print(f"   {len(table)} common periods "
          f"({table['period'].min():%Y-%m} to {table['period'].max():%Y-%m})")

    # 3. Contemporaneous and lead models
    print("\n3. Fitting OLS models...")
    for horizon in (0, 2):
        spec = ModelSpec(response='ir_overnight', predictors=('obfr',), horizon=horizon)
        model = fit_ols(build_design(table, spec))
        print()
        print(model.summary())

    # 4. Out-of-sample comparison
    print("\n4. OLS vs LASSO after 2021-07...")
    spec = ModelSpec(response='ir_overnight', predictors=('obfr', 'ir_1m', 'ir_3m'))
    comparison = compare_out_of_sample(table, spec, '2021-07-01')
    print(comparison.summary().to_string())

    print("\n" + "=" * 60)


if __name__ == "__main__":
    main()
