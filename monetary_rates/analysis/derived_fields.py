"""
Derived Fields

Unit conversions, sign conventions, aggregations and relabeling applied
to analysis tables, plus the long-form presentation tables built from
them. Every function returns a new table; inputs are never modified.
"""

from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from ..data.series_loader import PERIOD, Series
from ..exceptions import SchemaMismatch, UnmappedField
from .merge import merge_series


# Display names for the abridged balance sheet line items
BALANCE_SHEET_LABELS = {
    'assets_fc': "Assets: foreign",
    'assets_hkd': "Assets: HKD",
    'fund_equity': "Equity",
    'liab_banking_system_bal': "Liability: Aggregate Balance",
    'liab_cert_of_indebt': "Liability: Printed Currency",
    'liab_ef_bills_notes_iss': "Liability: HKMA's Bills & Notes",
    'liab_fiscal_resv': "Liability: Government's reserves",
    'liab_govfunds_statubodies': "Liability: Statutory Funds",
    'liab_misc': "Misc. Liabilities",
}

MISC_LIABILITY_COMPONENTS = [
    'liab_gov_iss_curr_notes',
    'liab_other',
    'liab_pla_bank_oth_fin_instit',
    'liab_subsidiaries',
]

COVERAGE_LABELS = {
    'liab_banking_system_bal': "Aggregate Balance (AB)",
    'assets_net_banking_system_bal': "HKMA net AB",
    'm3_supply_net_hkma': "M3 HKD, net HKMA and AB",
    'm3_supply.y': "M3 foreign currency",
}

DEFAULT_BALANCE_SHEET_SETTINGS = {
    'drop_columns': ['unaudited_figures'],
    'drop_markers': ['total'],
    'sign_markers': ['liab', 'equity'],
    'misc_target': 'liab_misc',
    'misc_components': MISC_LIABILITY_COMPONENTS,
    'misc_drop': ['liab_other_instit'],
    'labels': BALANCE_SHEET_LABELS,
}


def _frame(table) -> pd.DataFrame:
    return table.frame if isinstance(table, Series) else table


def _require(table: pd.DataFrame, columns: Iterable[str], label: str = 'table') -> None:
    missing = [c for c in columns if c not in table.columns]
    if missing:
        raise SchemaMismatch(label, missing)


def _numeric_columns(table: pd.DataFrame, exclude: Sequence[str] = (PERIOD,)) -> List[str]:
    return [
        c for c in table.columns
        if c not in exclude and pd.api.types.is_numeric_dtype(table[c])
    ]


def forward_points_to_rates(
    table: pd.DataFrame,
    spot_column: str = 'hkd_fer_spot',
    marker: str = 'fer'
) -> pd.DataFrame:
    """Convert forward points into outright forward rates.

    Every column containing `marker`, other than the spot column, gets a
    `<column>_rate` companion equal to points / 100 + spot.

    Args:
        table: Analysis table with forward point and spot columns
        spot_column: Spot rate column
        marker: Substring identifying forward columns

    Returns:
        New table with the rate columns appended
    """
    _require(table, [spot_column])
    result = table.copy()
    spot = table[spot_column]

    point_columns = [
        c for c in table.columns
        if marker in c and 'spot' not in c and not c.endswith('_rate')
    ]
    for column in point_columns:
        result[f"{column}_rate"] = table[column] / 100 + spot

    logger.debug(f"Converted {len(point_columns)} forward point columns to outright rates")
    return result


def flip_sign(
    table: pd.DataFrame,
    markers: Sequence[str] = ('liab', 'equity')
) -> pd.DataFrame:
    """Negate liability and equity columns, keeping their names.

    Assets stay positive and the capital side turns negative, so a
    stacked presentation of the balance sheet sums toward zero.
    """
    result = table.copy()
    flipped = [c for c in table.columns if c != PERIOD and any(m in c for m in markers)]
    for column in flipped:
        result[column] = table[column] * -1
    return result


def fill_missing_for_display(table: pd.DataFrame) -> pd.DataFrame:
    """Replace missing numeric values with 0 (presentation tables only)."""
    result = table.copy()
    columns = _numeric_columns(table)
    result[columns] = result[columns].fillna(0)
    return result


def aggregate_columns(
    table: pd.DataFrame,
    target: str,
    components: Sequence[str],
    drop: Sequence[str] = ()
) -> pd.DataFrame:
    """Sum component columns into one and drop the components.

    Args:
        table: Input table
        target: Name of the aggregated column
        components: Columns summed row-wise
        drop: Further columns removed without being summed

    Raises:
        SchemaMismatch: If a component is absent
    """
    _require(table, components)
    result = table.copy()
    # NaN propagates, as in an explicit a + b + ... sum
    result[target] = sum(table[c] for c in components)
    to_drop = list(components) + [c for c in drop if c in result.columns]
    return result.drop(columns=to_drop)


def relabel_long(
    table: pd.DataFrame,
    labels: Mapping[str, str],
    id_column: str = PERIOD,
    key_name: str = 'line_item',
    value_name: str = 'value'
) -> pd.DataFrame:
    """Reshape to long form and replace column names with display labels.

    Args:
        table: Wide table
        labels: Explicit column -> display name mapping
        id_column: Column kept as identifier
        key_name: Name of the categorical key column
        value_name: Name of the value column

    Returns:
        Long table (id_column, key_name, value_name)

    Raises:
        UnmappedField: If any value column has no label
    """
    value_columns = [c for c in table.columns if c != id_column]
    unmapped = [c for c in value_columns if c not in labels]
    if unmapped:
        raise UnmappedField(unmapped)

    long = table.melt(id_vars=[id_column], value_vars=value_columns,
                      var_name=key_name, value_name=value_name)
    long[key_name] = long[key_name].map(dict(labels))
    return long


def add_ratio(table: pd.DataFrame, numerator: str, denominator: str, name: str) -> pd.DataFrame:
    """Append numerator / denominator as a new column."""
    _require(table, [numerator, denominator])
    result = table.copy()
    result[name] = table[numerator] / table[denominator].replace(0, np.nan)
    return result


def add_difference(
    table: pd.DataFrame,
    left: str,
    right: str,
    name: str,
    absolute: bool = False
) -> pd.DataFrame:
    """Append left - right (or its absolute value) as a new column."""
    _require(table, [left, right])
    result = table.copy()
    diff = table[left] - table[right]
    result[name] = diff.abs() if absolute else diff
    return result


def add_lagged(
    table: pd.DataFrame,
    column: str,
    periods: int = 1,
    name: Optional[str] = None,
    period_column: str = PERIOD
) -> pd.DataFrame:
    """Append a copy of a column shifted back by `periods` rows.

    Rows are ordered by period first so the lag follows the time axis.
    """
    _require(table, [column, period_column])
    result = table.sort_values(period_column, kind='mergesort').reset_index(drop=True)
    result[name or f"{column}_lag{periods}"] = result[column].shift(periods)
    return result


def value_range(table: pd.DataFrame, column: str) -> Tuple[float, float]:
    """(min, max) of a column, ignoring missing values."""
    _require(table, [column])
    return float(table[column].min()), float(table[column].max())


def balance_sheet_long(
    balance_sheet,
    settings: Optional[Dict] = None
) -> pd.DataFrame:
    """Signed, relabeled balance sheet in long form.

    Steps: drop flag and total columns, negate liabilities and equity,
    fill gaps with 0, fold the minor liabilities into one line and map
    every remaining line item to its display name.

    Args:
        balance_sheet: Balance sheet Series or table keyed by period
        settings: Overrides of DEFAULT_BALANCE_SHEET_SETTINGS

    Returns:
        Long table (period, line_item, value)
    """
    cfg = dict(DEFAULT_BALANCE_SHEET_SETTINGS)
    cfg.update(settings or {})

    df = _frame(balance_sheet)
    markers = cfg['drop_markers']
    drop = [c for c in df.columns
            if c in cfg['drop_columns'] or any(m in c for m in markers)]
    df = df.drop(columns=drop)

    df = flip_sign(df, cfg['sign_markers'])
    df = fill_missing_for_display(df)
    df = aggregate_columns(df, cfg['misc_target'], cfg['misc_components'], cfg['misc_drop'])

    long = relabel_long(df, cfg['labels'], key_name='line_item', value_name='value')
    return long.sort_values([PERIOD, 'line_item'], kind='mergesort').reset_index(drop=True)


def money_supply_by_currency(
    hkd,
    foreign,
    field: str = 'm3_supply',
    labels: Tuple[str, str] = ('HKD', 'Foreign')
) -> pd.DataFrame:
    """Money supply split by currency in long form.

    Returns:
        Long table (period, currency, value)
    """
    merged = merge_series([hkd, foreign])
    left, right = f"{field}.x", f"{field}.y"
    _require(merged, [left, right], 'money_supply')

    wide = merged[[PERIOD, left, right]].rename(columns={left: labels[0], right: labels[1]})
    return wide.melt(id_vars=[PERIOD], var_name='currency', value_name='value')


def monetary_base_coverage(
    balance_sheet,
    hkd,
    foreign,
    labels: Optional[Mapping[str, str]] = None
) -> pd.DataFrame:
    """HKD monetary base split into the parts covered by the central bank.

    Items: the Aggregate Balance, central bank assets net of the Aggregate
    Balance, HKD M3 net of central bank assets, and foreign currency M3.

    Returns:
        Long table (period, item, value); item is an ordered categorical
        following the label order
    """
    labels = dict(labels or COVERAGE_LABELS)

    merged = merge_series([balance_sheet, hkd, foreign])
    merged = add_difference(merged, 'assets_total', 'liab_banking_system_bal',
                            'assets_net_banking_system_bal')
    merged = add_difference(merged, 'm3_supply.x', 'assets_total', 'm3_supply_net_hkma')

    _require(merged, labels, 'monetary_base')
    wide = merged[[PERIOD] + list(labels)]
    long = relabel_long(wide, labels, key_name='item', value_name='value')
    long['item'] = pd.Categorical(long['item'], categories=list(labels.values()), ordered=True)
    return long.sort_values([PERIOD, 'item'], kind='mergesort').reset_index(drop=True)
