"""Shared fixtures: synthetic series shaped like the live sources."""

from typing import Dict

import numpy as np
import pandas as pd
import pytest
import yaml

from monetary_rates.data.periods import DAILY
from monetary_rates.data.series_loader import PERIOD, Series
from monetary_rates.utils.config_loader import ConfigLoader

N_MONTHS = 72
START = '2018-01-01'

BALANCE_SHEET_FIELDS = [
    'assets_fc', 'assets_hkd', 'assets_total', 'fund_equity',
    'liab_banking_system_bal', 'liab_cert_of_indebt', 'liab_ef_bills_notes_iss',
    'liab_fiscal_resv', 'liab_govfunds_statubodies', 'liab_gov_iss_curr_notes',
    'liab_other', 'liab_pla_bank_oth_fin_instit', 'liab_subsidiaries',
    'liab_other_instit', 'liab_total',
]


def make_series(name: str, periods: pd.DatetimeIndex, **columns) -> Series:
    frame = pd.DataFrame({PERIOD: periods, **columns})
    return Series(name=name, frame=frame)


@pytest.fixture
def months() -> pd.DatetimeIndex:
    return pd.date_range(START, periods=N_MONTHS, freq='MS')


@pytest.fixture
def synthetic_series(months) -> Dict[str, Series]:
    """Every pipeline source with random but well-conditioned values."""
    rng = np.random.default_rng(7)
    n = len(months)

    obfr = np.clip(np.cumsum(rng.normal(0, 0.15, n)) + 1.5, 0.05, None)
    hibor = 0.2 + 0.8 * obfr + rng.normal(0, 0.1, n)

    balance_sheet = {f: rng.uniform(50_000, 500_000, n) for f in BALANCE_SHEET_FIELDS}

    series = {
        'balance_sheet': make_series('balance_sheet', months, **balance_sheet),
        'money_supply': make_series(
            'money_supply', months,
            m1_supply=rng.uniform(1e6, 2e6, n), m3_supply=rng.uniform(14e6, 16e6, n),
        ),
        'interbank_rates': make_series(
            'interbank_rates', months,
            ir_overnight=hibor, ir_1w=hibor + rng.normal(0.1, 0.05, n),
            ir_1m=hibor + rng.normal(0.3, 0.05, n),
        ),
        'operations': make_series(
            'operations', months, discount_window_activities_lending=rng.uniform(0, 50, n),
        ),
        'forwards': make_series(
            'forwards', months,
            hkd_fer_spot=7.8 + rng.normal(0, 0.01, n),
            hkd_fer_1w=rng.normal(-20, 5, n), hkd_fer_12m=rng.normal(-200, 40, n),
        ),
        'honia': make_series('honia', months, honia_overnight=hibor + rng.normal(0, 0.05, n)),
        'obfr': make_series('obfr', months, obfr=obfr),
        'unemployment': make_series('unemployment', months, unemp=rng.uniform(2.5, 7.0, n)),
        'cpi': make_series('cpi', months, cpi=100 + np.cumsum(rng.uniform(0, 0.4, n))),
        'money_supply_hkd': make_series(
            'money_supply_hkd', months, m3_supply=rng.uniform(7e6, 8e6, n),
        ),
        'money_supply_fc': make_series(
            'money_supply_fc', months, m3_supply=rng.uniform(6e6, 7e6, n),
        ),
    }

    days = pd.date_range(START, periods=120, freq='D')
    series['daily_liquidity'] = Series(
        name='daily_liquidity',
        frame=pd.DataFrame({PERIOD: days, 'closing_balance': rng.uniform(5e4, 4e5, len(days))}),
        frequency=DAILY,
    )
    return series


@pytest.fixture
def settings_file(tmp_path):
    """A small settings file with a handful of configured models."""
    settings = {
        'modeling': {
            'cutoff': '2021-07-01',
            'n_folds': 3,
            'seed': 1,
            'models': [
                {'name': 'AR(1)', 'response': 'ir_overnight', 'predictors': ['ir_overnight_lag1']},
                {'name': 'lead 2', 'response': 'ir_overnight', 'predictors': ['obfr', 'm3_supply'],
                 'horizon': 2},
                {'name': 'forward', 'response': 'ir_overnight',
                 'predictors': ['hkd_fer_spot', 'hkd_fer_12m_rate'], 'horizon': 12},
                {'name': 'fc', 'table': 'fc_balance_sheet', 'response': 'm3_supply',
                 'predictors': ['liab_banking_system_bal']},
            ],
        },
    }
    path = tmp_path / 'settings.yaml'
    path.write_text(yaml.safe_dump(settings))
    return path


@pytest.fixture
def config(settings_file) -> ConfigLoader:
    return ConfigLoader(settings_file)
