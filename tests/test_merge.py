"""Tests for the merge engine."""

import pandas as pd
import pytest

from monetary_rates.analysis.merge import dropped_periods, merge_series
from monetary_rates.data.series_loader import PERIOD, Series
from monetary_rates.exceptions import SchemaMismatch


def series(name: str, start: str, n: int, **columns) -> Series:
    periods = pd.date_range(start, periods=n, freq='MS')
    data = {PERIOD: periods}
    for column, offset in columns.items():
        data[column] = [offset + i for i in range(n)]
    return Series(name, pd.DataFrame(data))


class TestMergeSeries:
    """Tests for merge_series."""

    def test_inner_join_keeps_common_periods(self) -> None:
        a = series('a', '2020-01-01', 6, x=0)
        b = series('b', '2020-03-01', 6, y=100)

        result = merge_series([a, b])

        assert list(result.columns) == [PERIOD, 'x', 'y']
        assert len(result) == 4
        assert result[PERIOD].min() == pd.Timestamp('2020-03-01')
        assert result['x'].tolist() == [2, 3, 4, 5]
        assert result['y'].tolist() == [100, 101, 102, 103]

    def test_row_count_bounded_by_smallest_input(self) -> None:
        tables = [
            series('a', '2020-01-01', 12, x=0),
            series('b', '2020-02-01', 3, y=0),
            series('c', '2019-06-01', 24, z=0),
        ]
        assert len(merge_series(tables)) <= min(len(t) for t in tables)

    def test_disjoint_periods_give_empty_table(self) -> None:
        a = series('a', '2020-01-01', 3, x=0)
        b = series('b', '2021-01-01', 3, y=0)

        result = merge_series([a, b])

        assert result.empty
        assert list(result.columns) == [PERIOD, 'x', 'y']

    def test_self_join_suffixes_both_sides(self) -> None:
        a = series('a', '2020-01-01', 5, x=0)

        result = merge_series([a, a])

        assert len(result) == len(a)
        assert list(result.columns) == [PERIOD, 'x.x', 'x.y']
        assert (result['x.x'] == result['x.y']).all()

    def test_order_decides_suffixes(self) -> None:
        hkd = series('hkd', '2020-01-01', 3, m3_supply=10)
        fc = series('fc', '2020-01-01', 3, m3_supply=1000)

        forward = merge_series([hkd, fc])
        backward = merge_series([fc, hkd])

        assert forward['m3_supply.x'].tolist() == backward['m3_supply.y'].tolist()
        assert forward['m3_supply.x'].iloc[0] == 10

    def test_result_sorted_by_period(self) -> None:
        frame = pd.DataFrame({
            PERIOD: pd.to_datetime(['2020-03-01', '2020-01-01', '2020-02-01']),
            'x': [3, 1, 2],
        })
        other = series('b', '2020-01-01', 3, y=0)

        result = merge_series([frame, other])

        assert result['x'].tolist() == [1, 2, 3]
        assert result[PERIOD].is_monotonic_increasing

    def test_inputs_are_not_modified(self) -> None:
        a = series('a', '2020-01-01', 3, x=0)
        before = a.frame.copy()
        merge_series([a, series('b', '2020-02-01', 3, y=0)])
        pd.testing.assert_frame_equal(a.frame, before)

    def test_single_table(self) -> None:
        a = series('a', '2020-01-01', 3, x=0)
        pd.testing.assert_frame_equal(merge_series([a]), a.frame)

    def test_empty_input(self) -> None:
        with pytest.raises(ValueError):
            merge_series([])

    def test_missing_key(self) -> None:
        frame = pd.DataFrame({'month': [1, 2], 'x': [1.0, 2.0]})
        with pytest.raises(SchemaMismatch) as exc_info:
            merge_series([series('a', '2020-01-01', 2, x=0), frame])
        assert exc_info.value.source == 'table[1]'


class TestDroppedPeriods:
    """Tests for the inner-join loss report."""

    def test_report(self) -> None:
        a = series('a', '2020-01-01', 6, x=0)
        b = series('b', '2020-03-01', 2, y=0)
        merged = merge_series([a, b])

        report = dropped_periods([a, b], merged)

        assert report['table'].tolist() == ['a', 'b']
        assert report['kept'].tolist() == [2, 2]
        assert report['dropped'].tolist() == [4, 0]
