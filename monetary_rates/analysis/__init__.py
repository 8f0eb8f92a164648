"""Series alignment and derived fields."""
from .merge import dropped_periods, merge_series

__all__ = ['merge_series', 'dropped_periods']
