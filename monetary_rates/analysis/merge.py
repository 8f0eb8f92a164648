"""
Merge Engine

Joins series on the canonical period key. Joins are sequential inner
joins in the order given: periods missing from any input are dropped,
and colliding column names get the left/right suffixes of the step at
which they collided.
"""

from typing import List, Sequence, Tuple, Union

import pandas as pd
from loguru import logger

from ..data.series_loader import PERIOD, Series
from ..exceptions import SchemaMismatch


TableLike = Union[Series, pd.DataFrame]


def _as_frame(table: TableLike, position: int) -> Tuple[str, pd.DataFrame]:
    if isinstance(table, Series):
        return table.name, table.frame
    return f"table[{position}]", table


def merge_series(
    tables: Sequence[TableLike],
    on: str = PERIOD,
    suffixes: Tuple[str, str] = ('.x', '.y')
) -> pd.DataFrame:
    """Inner-join tables on a key column, left to right.

    Args:
        tables: Series or DataFrames; order is part of the contract since it
            decides which side of a collision receives which suffix
        on: Join key column
        suffixes: Suffixes applied to colliding left/right columns

    Returns:
        Analysis table sorted by key, key column first

    Raises:
        ValueError: If no tables are given
        SchemaMismatch: If a table lacks the key column
    """
    if not tables:
        raise ValueError("merge_series needs at least one table")

    frames: List[Tuple[str, pd.DataFrame]] = [_as_frame(t, i) for i, t in enumerate(tables)]
    for label, frame in frames:
        if on not in frame.columns:
            raise SchemaMismatch(label, [on])

    label, result = frames[0]
    result = result.copy()

    for right_label, right in frames[1:]:
        n_left = len(result)
        result = result.merge(right, on=on, how='inner', suffixes=suffixes, sort=False)
        logger.debug(
            f"merge {label} ({n_left} rows) with {right_label} ({len(right)} rows) "
            f"-> {len(result)} rows"
        )
        label = f"{label}+{right_label}"

    result = result.sort_values(on, kind='mergesort').reset_index(drop=True)
    return result[[on] + [c for c in result.columns if c != on]]


def dropped_periods(
    tables: Sequence[TableLike],
    merged: pd.DataFrame,
    on: str = PERIOD
) -> pd.DataFrame:
    """Report how many periods each input lost to the inner join.

    Returns:
        DataFrame with one row per input: label, periods, kept, dropped
    """
    kept = set(merged[on])
    rows = []
    for i, table in enumerate(tables):
        label, frame = _as_frame(table, i)
        periods = set(frame[on])
        rows.append({
            'table': label,
            'periods': len(periods),
            'kept': len(periods & kept),
            'dropped': len(periods - kept),
        })
    report = pd.DataFrame(rows)

    if len(report) and report['dropped'].max() > 0:
        worst = report.sort_values('dropped', ascending=False).iloc[0]
        logger.info(
            f"Inner join kept {len(kept)} periods; {worst['table']} lost {worst['dropped']}"
        )
    return report
