"""Series loading and time key normalization."""
from .periods import DAILY, MONTHLY, normalize_period_column, to_day_key, to_period_key
from .series_loader import PERIOD, Series, SeriesLoader

__all__ = [
    'DAILY', 'MONTHLY', 'PERIOD', 'Series', 'SeriesLoader',
    'normalize_period_column', 'to_day_key', 'to_period_key',
]
