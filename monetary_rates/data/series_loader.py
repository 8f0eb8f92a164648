"""
Series Loader

Fetches the monetary authority, statistics department and NY Fed series
from their public JSON APIs and normalizes each one into a table keyed
by the canonical period.
"""

import copy
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import pandas as pd
import requests
from loguru import logger

from ..exceptions import SchemaMismatch, SourceUnavailable
from .periods import DAILY, MONTHLY, normalize_period_column


PERIOD = 'period'
NATIVE_DATE = '_native_date'

HKMA_MSB_URL = "https://api.hkma.gov.hk/public/market-data-and-statistics/monthly-statistical-bulletin"
HKMA_DAILY_URL = "https://api.hkma.gov.hk/public/market-data-and-statistics/daily-monetary-statistics"
CENSTATD_URL = "https://www.censtatd.gov.hk/api/get.php"


@dataclass(frozen=True)
class Series:
    """A named table with one row per canonical period."""
    name: str
    frame: pd.DataFrame
    frequency: str = MONTHLY

    @property
    def fields(self) -> List[str]:
        """Value columns (everything except the period key)."""
        return [c for c in self.frame.columns if c != PERIOD]

    @property
    def periods(self) -> pd.Series:
        return self.frame[PERIOD]

    def __len__(self) -> int:
        return len(self.frame)

    def to_frame(self) -> pd.DataFrame:
        """Independent copy of the underlying table."""
        return self.frame.copy()


class SeriesLoader:
    """Load named series from the statistical APIs."""

    # Pinned endpoint and field contract per source.
    #   envelope:         key path from the JSON root to the record list
    #   date_field:       native date field
    #   native_frequency: granularity of the native dates
    #   frequency:        granularity of the resulting period key
    #   fields:           fields to keep (None keeps every field)
    #   required:         fields that must be present when every field is kept
    #   rename:           native name -> working name
    #   filters:          equality filters applied to records before selection
    #   dropna:           drop rows with a missing value in the kept fields
    #   pages:            page size / page count for paged endpoints
    SOURCES = {
        'obfr': {
            'name': 'Overnight Bank Funding Rate (NY Fed)',
            'url': "https://markets.newyorkfed.org/api/rates/unsecured/obfr/last/999.json",
            'params': {},
            'envelope': ['refRates'],
            'date_field': 'effectiveDate',
            'native_frequency': DAILY,
            'frequency': MONTHLY,
            'fields': ['percentRate'],
            'rename': {'percentRate': 'obfr'},
        },
        'balance_sheet': {
            'name': 'Exchange Fund Abridged Balance Sheet',
            'url': f"{HKMA_MSB_URL}/ef-fc-resv-assets/ef-bal-sheet-abridged",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['assets_total', 'fund_equity', 'liab_banking_system_bal'],
            'rename': {},
        },
        'money_supply': {
            'name': 'Money Supply (all currencies)',
            'url': f"{HKMA_MSB_URL}/money/supply-components-all",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['m3_supply'],
            'rename': {},
        },
        'money_supply_hkd': {
            'name': 'Money Supply (HKD)',
            'url': f"{HKMA_MSB_URL}/money/supply-components-hkd",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['m3_supply'],
            'rename': {},
        },
        'money_supply_fc': {
            'name': 'Money Supply (foreign currencies)',
            'url': f"{HKMA_MSB_URL}/money/supply-components-fc",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['m3_supply'],
            'rename': {},
        },
        'interbank_rates': {
            'name': 'HIBOR Fixings (end of period)',
            'url': f"{HKMA_MSB_URL}/er-ir/hk-interbank-ir-endperiod",
            'params': {'segment': 'hibor.fixing'},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['ir_overnight', 'ir_1w'],
            'rename': {},
        },
        'operations': {
            'name': 'Market Operations (period average)',
            'url': f"{HKMA_MSB_URL}/monetary-operation/market-operation-periodaverage",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['discount_window_activities_lending'],
            'rename': {},
        },
        'forwards': {
            'name': 'HKD Forward Exchange Rates (end of period)',
            'url': f"{HKMA_MSB_URL}/er-ir/hkd-fer-endperiod",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['hkd_fer_spot'],
            'rename': {},
        },
        'honia': {
            'name': 'HONIA (end of period)',
            'url': f"{HKMA_MSB_URL}/er-ir/hk-interbank-ir-endperiod",
            'params': {'segment': 'honia'},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_month',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'fields': None,
            'required': ['ir_overnight'],
            'rename': {'ir_overnight': 'honia_overnight'},
        },
        'unemployment': {
            'name': 'Seasonally Adjusted Unemployment Rate',
            'url': CENSTATD_URL,
            'params': {
                'id': '210-06101',
                'lang': 'en',
                'param': (
                    "N4KABGBEDGBukC4yghSBlAogDUWA2uKmgLKQA0RxkAYpFWALpEC+laAzvEiqpADJ0khYmgBK"
                    "AQwDuAfQDSMgIwATAA4zVAUwBOMgHYUGaAJoB7Y0rUyApDI71ijdn0EAFMXhGjIkgC6bLdVs"
                    "DBicGSABVD2EjKD8AlSD9B1Qw6kwyGNE46XlAjR1k0Oc0CIARTE9Yn1yFRILdEMcSqHLogmr"
                    "4-OCUiDS+dABBKKrsmv9uoubwiMqs70lZOqstRt6mVmdIVYBLU2U8Xk5fCW1fPEhFAE4ADgB"
                    "WAAYAZhS2Ikgdg6RIACZFB4AtA8AGz-RSGNAAGwkegA5hdNCEWEA"
                ),
            },
            'envelope': ['dataSet'],
            'date_field': 'period',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'filters': {'freq': 'M3M', 'svDesc': '(%)', 'sv': 'SAUR'},
            'fields': ['figure'],
            'rename': {'figure': 'unemp'},
        },
        'cpi': {
            'name': 'Composite Consumer Price Index',
            'url': CENSTATD_URL,
            'params': {
                'id': '510-60001',
                'lang': 'en',
                'param': (
                    "N4KABGBEDGBukC4zAL4BpxQM7yaCEkAwkQPpECypAjAJwBMADImANqYFQBKAhgO40AJgAd"
                    "SAS0EAPUgDtIGToQoB7KtRGkApKSzyOBSAE1lhoaO279AXQUGAQuTUNmSdou78z4qbL3vI"
                    "KmoaFn6KRiZeIda2hGSUNM4sbmG8AuqiEtJyMQaBkTqhnOGm6VoF0fqQAIKOCUxJ+oSpXp"
                    "m+OUqq+brtUMYlweWcVpjomJDCAKYATmLKgiz4BlgALjxTyyyQdADsACyM25AjtpASmwCs"
                    "1IwAtABsjA-UoZAANjwyAOabE3IgKEA"
                ),
            },
            'envelope': ['dataSet'],
            'date_field': 'period',
            'native_frequency': MONTHLY,
            'frequency': MONTHLY,
            'filters': {'freq': 'M', 'sv': 'CC_CM_1920', 'svDesc': 'Index'},
            'fields': ['figure'],
            'rename': {'figure': 'cpi'},
            'dropna': True,
        },
        'daily_liquidity': {
            'name': 'Daily Interbank Liquidity',
            'url': f"{HKMA_DAILY_URL}/daily-figures-interbank-liquidity",
            'params': {},
            'envelope': ['result', 'records'],
            'date_field': 'end_of_date',
            'native_frequency': DAILY,
            'frequency': DAILY,
            'fields': None,
            'required': ['closing_balance'],
            'rename': {},
            'pages': {'page_size': 1000, 'count': 2},
        },
    }

    def __init__(
        self,
        sources: Optional[Dict[str, Dict[str, Any]]] = None,
        timeout: float = 30
    ):
        """Initialize the series loader.

        Args:
            sources: Per-source overrides merged onto SOURCES (new names are added)
            timeout: Request timeout in seconds
        """
        self.sources = copy.deepcopy(self.SOURCES)
        for name, override in (sources or {}).items():
            self.sources.setdefault(name, {}).update(override)
        self.timeout = timeout

    def source_config(self, name: str) -> Dict[str, Any]:
        """Get the pinned configuration of a source."""
        if name not in self.sources:
            raise KeyError(f"Unknown source '{name}'. Known sources: {', '.join(sorted(self.sources))}")
        return self.sources[name]

    def fetch_json(self, name: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """Fetch the raw JSON payload of a source.

        Raises:
            SourceUnavailable: On any network, HTTP or decoding failure
        """
        config = self.source_config(name)
        url = config['url']
        query = dict(config.get('params') or {})
        query.update(params or {})

        logger.debug(f"Fetching {name} from {url} {query}")
        try:
            response = requests.get(url, params=query or None, timeout=self.timeout)
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as e:
            logger.error(f"Error fetching {name}: {e}")
            raise SourceUnavailable(name, url, str(e)) from e

    def extract_records(self, name: str, payload: Any) -> List[Dict[str, Any]]:
        """Walk the envelope path down to the flat record list."""
        config = self.source_config(name)
        node = payload
        walked = []
        for key in config['envelope']:
            walked.append(key)
            if not isinstance(node, dict) or key not in node:
                raise SchemaMismatch(name, ['.'.join(walked)])
            node = node[key]

        if not isinstance(node, list):
            raise SchemaMismatch(name, ['.'.join(walked) + '[]'])
        return node

    def records_to_series(self, name: str, records: List[Dict[str, Any]]) -> Series:
        """Convert parsed records into a Series.

        Applies row filters, checks the pinned fields, selects and renames
        them, coerces numbers and normalizes dates to the period key.

        Raises:
            SchemaMismatch: If a pinned field is absent or no record passes
                the row filters
            UnparseableDate: If a native date cannot be normalized
        """
        config = self.source_config(name)
        date_field = config['date_field']
        df = pd.DataFrame.from_records(records)

        filters = config.get('filters') or {}
        expected = (
            [date_field] + list(filters)
            + list(config.get('fields') or []) + list(config.get('required') or [])
        )
        missing = [f for f in dict.fromkeys(expected) if f not in df.columns]
        if missing:
            raise SchemaMismatch(name, missing)

        for field_name, wanted in filters.items():
            df = df[df[field_name] == wanted]

        fields = config.get('fields')
        if fields is None:
            fields = [c for c in df.columns if c != date_field]
        # The native date may share its name with the period key (censtatd 'period')
        df = df[[date_field] + list(fields)].rename(columns={date_field: NATIVE_DATE})

        for column in fields:
            df[column] = self._coerce_numeric(df[column])

        if config.get('dropna'):
            df = df.dropna(subset=list(fields))

        if df.empty:
            criteria = ', '.join(f"{k}={v}" for k, v in filters.items())
            raise SchemaMismatch(name, [f"records matching {criteria}" if criteria else "records"])

        native_frequency = config.get('native_frequency', MONTHLY)
        frequency = config.get('frequency', MONTHLY)
        df[PERIOD] = normalize_period_column(df[NATIVE_DATE], frequency)

        if native_frequency == DAILY and frequency == MONTHLY:
            # Month-end reduction: latest native date within each month
            df[NATIVE_DATE] = normalize_period_column(df[NATIVE_DATE], DAILY)
            df = (
                df.sort_values(NATIVE_DATE, ascending=False, kind='mergesort')
                .drop_duplicates(subset=PERIOD, keep='first')
            )
        elif df[PERIOD].duplicated().any():
            n_dupes = int(df[PERIOD].duplicated().sum())
            logger.warning(f"{name}: collapsing {n_dupes} duplicate period rows (keeping last)")
            df = df.drop_duplicates(subset=PERIOD, keep='last')

        df = df.drop(columns=NATIVE_DATE).rename(columns=config.get('rename') or {})
        df = df[[PERIOD] + [c for c in df.columns if c != PERIOD]]
        df = df.sort_values(PERIOD).reset_index(drop=True)

        return Series(name=name, frame=df, frequency=frequency)

    def load(self, name: str) -> Series:
        """Fetch and normalize one series.

        Args:
            name: Key from SOURCES (e.g., 'balance_sheet', 'obfr')

        Returns:
            Series keyed by period
        """
        config = self.source_config(name)
        pages = config.get('pages')

        if pages:
            records: List[Dict[str, Any]] = []
            for page in range(pages['count']):
                payload = self.fetch_json(name, {
                    'pagesize': pages['page_size'],
                    'offset': page * pages['page_size'],
                })
                records.extend(self.extract_records(name, payload))
        else:
            records = self.extract_records(name, self.fetch_json(name))

        series = self.records_to_series(name, records)
        logger.info(f"Loaded {len(series)} {series.frequency} periods for {name}")
        return series

    def load_many(self, names: Optional[List[str]] = None) -> Dict[str, Series]:
        """Load several series; the first failure aborts.

        Args:
            names: Source names. If None, loads every pinned source

        Returns:
            Dictionary of Series keyed by source name
        """
        if names is None:
            names = list(self.sources)

        return {name: self.load(name) for name in names}

    def describe_sources(self) -> pd.DataFrame:
        """Table of pinned sources for display."""
        rows = []
        for key, config in self.sources.items():
            rows.append({
                'source': key,
                'name': config.get('name', key),
                'frequency': config.get('frequency', MONTHLY),
                'url': config.get('url', ''),
            })
        return pd.DataFrame(rows)

    @staticmethod
    def _coerce_numeric(column: pd.Series) -> pd.Series:
        """Convert a column to numbers unless it holds genuine text."""
        try:
            return pd.to_numeric(column)
        except (ValueError, TypeError):
            converted = pd.to_numeric(column, errors='coerce')
            # Blank strings and placeholders become NaN; real text stays as-is
            text = column[converted.isna() & column.notna()].astype(str).str.strip()
            if text.isin(['', '-', 'N/A', 'NA', 'null']).all():
                return converted
            return column
