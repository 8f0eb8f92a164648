"""Tests for the series loader (HTTP is faked)."""

from typing import Any, Dict, List

import pandas as pd
import pytest
import requests

from monetary_rates.data.periods import DAILY, MONTHLY, month_end
from monetary_rates.data.series_loader import PERIOD, Series, SeriesLoader
from monetary_rates.exceptions import SchemaMismatch, SourceUnavailable, UnparseableDate
from monetary_rates.pipeline import MONTHLY as MONTHLY_TABLE
from monetary_rates.pipeline import MONTHLY_SOURCES, AnalysisPipeline


class FakeResponse:
    """Minimal stand-in for requests.Response."""

    def __init__(self, payload: Any, status_code: int = 200):
        self.payload = payload
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload


def hkma(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {'header': {'success': True}, 'result': {'datasize': len(records), 'records': records}}


def native_payload(name: str, series: Series) -> Dict[str, Any]:
    """Payload shaped like the live API response for a synthetic series."""
    frame = series.frame
    if name == 'obfr':
        return {'refRates': [
            {'effectiveDate': f"{month_end(p):%Y-%m-%d}", 'percentRate': v, 'type': 'OBFR'}
            for p, v in zip(frame[PERIOD], frame['obfr'])
        ]}

    filters = SeriesLoader.SOURCES[name].get('filters')
    if filters:
        column = series.fields[0]
        rows = []
        for p, v in zip(frame[PERIOD], frame[column]):
            rows.append({'period': f"{p:%Y%m}", **filters, 'figure': v})
            rows.append({'period': f"{p:%Y%m}", **filters, 'sv': 'OTHER', 'figure': -1.0})
        return {'dataSet': rows}

    records = frame.rename(columns={'honia_overnight': 'ir_overnight'}).to_dict('records')
    for record in records:
        record['end_of_month'] = f"{record.pop(PERIOD):%Y-%m}"
    return hkma(records)


@pytest.fixture
def fake_get(monkeypatch):
    """Route requests.get to a per-test list of responses, recording calls."""
    calls = []
    responses = []

    def _get(url, params=None, timeout=None):
        calls.append({'url': url, 'params': params, 'timeout': timeout})
        return responses.pop(0)

    monkeypatch.setattr('monetary_rates.data.series_loader.requests.get', _get)
    return calls, responses


class TestSeries:
    """Tests for the Series container."""

    def test_fields_and_copy(self) -> None:
        frame = pd.DataFrame({PERIOD: pd.to_datetime(['2023-01-01']), 'a': [1.0], 'b': [2.0]})
        series = Series('x', frame)

        assert series.fields == ['a', 'b']
        assert len(series) == 1
        copy = series.to_frame()
        copy.loc[0, 'a'] = 99.0
        assert series.frame.loc[0, 'a'] == 1.0


class TestSourceConfig:
    """Tests for pinned source configuration."""

    def test_every_pinned_source_has_a_contract(self) -> None:
        loader = SeriesLoader()
        for name in SeriesLoader.SOURCES:
            config = loader.source_config(name)
            assert config['url'].startswith('https://')
            assert config['envelope']
            assert config['date_field']
            assert config.get('fields') or config.get('required')

    def test_unknown_source(self) -> None:
        with pytest.raises(KeyError, match='Known sources'):
            SeriesLoader().source_config('gdp')

    def test_overrides_do_not_touch_class_defaults(self) -> None:
        loader = SeriesLoader(sources={'obfr': {'url': 'https://example.test/obfr.json'}})

        assert loader.source_config('obfr')['url'] == 'https://example.test/obfr.json'
        assert loader.source_config('obfr')['rename'] == {'percentRate': 'obfr'}
        assert SeriesLoader.SOURCES['obfr']['url'] != 'https://example.test/obfr.json'

    def test_describe_sources(self) -> None:
        table = SeriesLoader().describe_sources()
        assert list(table.columns) == ['source', 'name', 'frequency', 'url']
        assert 'balance_sheet' in set(table['source'])


class TestRecordsToSeries:
    """Tests for record normalization."""

    def test_monthly_records(self) -> None:
        records = [
            {'end_of_month': '2023-02', 'ir_overnight': '4.1', 'ir_1w': 4.2},
            {'end_of_month': '2023-01', 'ir_overnight': 3.9, 'ir_1w': 4.0},
        ]

        series = SeriesLoader().records_to_series('interbank_rates', records)

        assert series.fields == ['ir_overnight', 'ir_1w']
        assert list(series.periods) == [pd.Timestamp('2023-01-01'), pd.Timestamp('2023-02-01')]
        assert series.frame['ir_overnight'].tolist() == [3.9, 4.1]
        assert series.frequency == MONTHLY

    def test_daily_source_collapses_to_last_date_in_month(self) -> None:
        """OBFR keeps the latest daily observation of each month."""
        records = [
            {'effectiveDate': '2023-03-30', 'percentRate': 4.82, 'type': 'OBFR'},
            {'effectiveDate': '2023-03-31', 'percentRate': 4.83, 'type': 'OBFR'},
            {'effectiveDate': '2023-03-01', 'percentRate': 4.57, 'type': 'OBFR'},
            {'effectiveDate': '2023-04-03', 'percentRate': 4.82, 'type': 'OBFR'},
        ]

        series = SeriesLoader().records_to_series('obfr', records)

        assert series.fields == ['obfr']
        assert series.frame[PERIOD].is_unique
        assert series.frame['obfr'].tolist() == [4.83, 4.82]

    def test_filters_and_rename(self) -> None:
        records = [
            {'period': '202301', 'freq': 'M3M', 'sv': 'SAUR', 'svDesc': '(%)', 'figure': 3.4},
            {'period': '202301', 'freq': 'M3M', 'sv': 'UR', 'svDesc': '(%)', 'figure': 3.5},
            {'period': '202302', 'freq': 'M3M', 'sv': 'SAUR', 'svDesc': '(%)', 'figure': 3.3},
            {'period': '2023', 'freq': 'Y', 'sv': 'SAUR', 'svDesc': '(%)', 'figure': 3.9},
        ]

        series = SeriesLoader().records_to_series('unemployment', records)

        assert series.fields == ['unemp']
        assert series.frame['unemp'].tolist() == [3.4, 3.3]

    def test_dropna_removes_blank_figures(self) -> None:
        base = {'freq': 'M', 'sv': 'CC_CM_1920', 'svDesc': 'Index'}
        records = [
            {**base, 'period': '202301', 'figure': '104.1'},
            {**base, 'period': '202302', 'figure': ''},
            {**base, 'period': '202303', 'figure': '104.6'},
        ]

        series = SeriesLoader().records_to_series('cpi', records)

        assert len(series) == 2
        assert series.frame['cpi'].tolist() == [104.1, 104.6]

    def test_native_period_field_becomes_the_key(self) -> None:
        """censtatd names its date field 'period', like the key itself."""
        base = {'freq': 'M', 'sv': 'CC_CM_1920', 'svDesc': 'Index'}
        records = [
            {**base, 'period': '202303', 'figure': '104.1'},
            {**base, 'period': '202302', 'figure': '103.9'},
        ]

        series = SeriesLoader().records_to_series('cpi', records)

        assert list(series.frame.columns) == [PERIOD, 'cpi']
        assert list(series.periods) == [pd.Timestamp('2023-02-01'), pd.Timestamp('2023-03-01')]
        assert series.frame['cpi'].tolist() == [103.9, 104.1]

    def test_missing_required_field(self) -> None:
        records = [{'end_of_month': '2023-03', 'something_else': 1.0}]
        with pytest.raises(SchemaMismatch) as exc_info:
            SeriesLoader().records_to_series('balance_sheet', records)
        assert exc_info.value.source == 'balance_sheet'
        assert exc_info.value.missing == ['assets_total', 'fund_equity', 'liab_banking_system_bal']

    def test_renamed_rate_field(self) -> None:
        records = [{'end_of_month': '2023-03', 'ir_on': 4.1, 'ir_1w': 4.2}]
        with pytest.raises(SchemaMismatch) as exc_info:
            SeriesLoader().records_to_series('interbank_rates', records)
        assert exc_info.value.missing == ['ir_overnight']

    def test_no_record_passes_filters(self) -> None:
        """A changed series code leaves nothing to load."""
        records = [
            {'period': '202301', 'freq': 'M3M', 'sv': 'SAUR_NEW', 'svDesc': '(%)', 'figure': 3.4},
            {'period': '202302', 'freq': 'M3M', 'sv': 'SAUR_NEW', 'svDesc': '(%)', 'figure': 3.3},
        ]

        with pytest.raises(SchemaMismatch) as exc_info:
            SeriesLoader().records_to_series('unemployment', records)
        assert exc_info.value.source == 'unemployment'
        assert 'sv=SAUR' in exc_info.value.missing[0]

    def test_all_figures_blank(self) -> None:
        base = {'freq': 'M', 'sv': 'CC_CM_1920', 'svDesc': 'Index', 'figure': ''}
        with pytest.raises(SchemaMismatch):
            SeriesLoader().records_to_series('cpi', [{**base, 'period': '202301'}])

    def test_text_fields_stay_text(self) -> None:
        records = [
            {'end_of_month': '2023-01', 'assets_total': 100, 'fund_equity': 10,
             'liab_banking_system_bal': 5, 'unaudited_figures': 'Y'},
            {'end_of_month': '2023-02', 'assets_total': 110, 'fund_equity': 11,
             'liab_banking_system_bal': 6, 'unaudited_figures': 'N'},
        ]

        series = SeriesLoader().records_to_series('balance_sheet', records)

        assert series.frame['unaudited_figures'].tolist() == ['Y', 'N']
        assert pd.api.types.is_numeric_dtype(series.frame['assets_total'])

    def test_duplicate_periods_keep_last(self) -> None:
        records = [
            {'end_of_month': '2023-01', 'm3_supply': 1.0},
            {'end_of_month': '2023-01', 'm3_supply': 2.0},
        ]

        series = SeriesLoader().records_to_series('money_supply', records)

        assert series.frame['m3_supply'].tolist() == [2.0]

    def test_missing_pinned_field(self) -> None:
        records = [{'effectiveDate': '2023-03-31', 'rate': 4.83}]
        with pytest.raises(SchemaMismatch) as exc_info:
            SeriesLoader().records_to_series('obfr', records)
        assert exc_info.value.source == 'obfr'
        assert exc_info.value.missing == ['percentRate']

    def test_missing_date_field(self) -> None:
        with pytest.raises(SchemaMismatch):
            SeriesLoader().records_to_series('balance_sheet', [{'month': '2023-01', 'x': 1}])

    def test_bad_date(self) -> None:
        records = [{'end_of_month': '2023-13', 'm3_supply': 1.0}]
        with pytest.raises(UnparseableDate):
            SeriesLoader().records_to_series('money_supply', records)


class TestLoad:
    """Tests for fetching through HTTP."""

    def test_load_hkma_series(self, fake_get) -> None:
        calls, responses = fake_get
        responses.append(FakeResponse(hkma([
            {'end_of_month': '2023-01', 'ir_overnight': 3.9, 'ir_1w': 4.0},
            {'end_of_month': '2023-02', 'ir_overnight': 4.1, 'ir_1w': 4.2},
        ])))

        series = SeriesLoader(timeout=5).load('interbank_rates')

        assert len(series) == 2
        assert calls[0]['params'] == {'segment': 'hibor.fixing'}
        assert calls[0]['timeout'] == 5

    def test_loaded_sources_feed_the_pipeline(self, fake_get, synthetic_series, config) -> None:
        """Native payloads for every monthly source load and merge into the monthly table."""
        calls, responses = fake_get
        for name in MONTHLY_SOURCES:
            responses.append(FakeResponse(native_payload(name, synthetic_series[name])))

        loaded = SeriesLoader().load_many(MONTHLY_SOURCES)
        result = AnalysisPipeline(loader=SeriesLoader(), config=config).run_on_series(loaded)

        monthly = result.table(MONTHLY_TABLE)
        assert len(calls) == len(MONTHLY_SOURCES)
        assert len(monthly) == 72
        for name, column in [('unemployment', 'unemp'), ('cpi', 'cpi'),
                             ('obfr', 'obfr'), ('honia', 'honia_overnight')]:
            expected = synthetic_series[name].frame[column].tolist()
            assert monthly[column].tolist() == pytest.approx(expected)
        assert result.models['AR(1)'].n_obs == 71

    def test_paged_source_requests_each_page(self, fake_get) -> None:
        calls, responses = fake_get
        responses.append(FakeResponse(hkma([
            {'end_of_date': '2023-03-31', 'closing_balance': 100},
            {'end_of_date': '2023-03-30', 'closing_balance': 90},
        ])))
        responses.append(FakeResponse(hkma([
            {'end_of_date': '2023-03-29', 'closing_balance': 80},
        ])))

        series = SeriesLoader().load('daily_liquidity')

        assert [c['params']['offset'] for c in calls] == [0, 1000]
        assert series.frequency == DAILY
        assert series.frame['closing_balance'].tolist() == [80, 90, 100]

    def test_http_error_is_source_unavailable(self, fake_get) -> None:
        _, responses = fake_get
        responses.append(FakeResponse({}, status_code=503))

        with pytest.raises(SourceUnavailable) as exc_info:
            SeriesLoader().load('obfr')
        assert exc_info.value.source == 'obfr'
        assert '503' in exc_info.value.reason

    def test_network_error_is_source_unavailable(self, monkeypatch) -> None:
        def _get(url, params=None, timeout=None):
            raise requests.ConnectionError("connection refused")

        monkeypatch.setattr('monetary_rates.data.series_loader.requests.get', _get)
        with pytest.raises(SourceUnavailable, match='connection refused'):
            SeriesLoader().load('balance_sheet')

    def test_undecodable_body_is_source_unavailable(self, fake_get) -> None:
        _, responses = fake_get
        responses.append(FakeResponse(ValueError("Expecting value")))

        with pytest.raises(SourceUnavailable):
            SeriesLoader().load('cpi')

    def test_wrong_envelope_is_schema_mismatch(self, fake_get) -> None:
        _, responses = fake_get
        responses.append(FakeResponse({'result': {'rows': []}}))

        with pytest.raises(SchemaMismatch) as exc_info:
            SeriesLoader().load('operations')
        assert exc_info.value.missing == ['result.records']

    def test_load_many_aborts_on_first_failure(self, fake_get) -> None:
        _, responses = fake_get
        responses.append(FakeResponse(hkma([{'end_of_month': '2023-01', 'm3_supply': 1.0}])))
        responses.append(FakeResponse({}, status_code=500))

        with pytest.raises(SourceUnavailable) as exc_info:
            SeriesLoader().load_many(['money_supply', 'forwards'])
        assert exc_info.value.source == 'forwards'
