"""
Model Builder

Turns an analysis table into a response vector and an aligned design
matrix for a given response, horizon and predictor set.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd
from loguru import logger

from ..data.series_loader import PERIOD
from ..exceptions import EmptyDesignMatrix, PredictorNotFound, ResponseNotFound


@dataclass(frozen=True)
class ModelSpec:
    """What to predict, how far ahead, and from which columns.

    horizon > 0 is a lead (row t is explained by the response at t + horizon),
    horizon < 0 is a lag, 0 is contemporaneous.
    """
    response: str
    predictors: Tuple[str, ...]
    horizon: int = 0
    name: str = ""

    def __post_init__(self):
        object.__setattr__(self, 'predictors', tuple(self.predictors))
        if not self.name:
            object.__setattr__(self, 'name', self.formula)

    @property
    def formula(self) -> str:
        """R-style description, e.g. 'lead(ir_overnight, 2) ~ obfr + m3_supply'."""
        if self.horizon > 0:
            lhs = f"lead({self.response}, {self.horizon})"
        elif self.horizon < 0:
            lhs = f"lag({self.response}, {-self.horizon})"
        else:
            lhs = self.response
        return f"{lhs} ~ {' + '.join(self.predictors)}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelSpec':
        """Build from a settings entry ({response, predictors, horizon, name})."""
        return cls(
            response=data['response'],
            predictors=tuple(data.get('predictors', ())),
            horizon=int(data.get('horizon', 0)),
            name=data.get('name', ''),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'response': self.response,
            'predictors': list(self.predictors),
            'horizon': self.horizon,
        }


@dataclass(frozen=True)
class DesignMatrix:
    """Response vector and design matrix sharing a period index."""
    spec: ModelSpec
    y: pd.Series
    X: pd.DataFrame
    n_dropped: int = 0

    @property
    def n_obs(self) -> int:
        return len(self.y)

    @property
    def periods(self) -> pd.Index:
        return self.y.index

    @property
    def predictors(self) -> List[str]:
        return list(self.X.columns)


def select_predictors(
    table: pd.DataFrame,
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    explicit: Sequence[str] = (),
    exclude_columns: Sequence[str] = (PERIOD,)
) -> List[str]:
    """Pick predictor columns by name substring and by explicit name.

    A column matches when it contains any `include` substring and none of
    the `exclude` substrings. Matches keep table order; explicit names follow
    in the order given. Duplicates are dropped.

    Args:
        table: Analysis table
        include: Substrings a matched column must contain (any of)
        exclude: Substrings a matched column must not contain
        explicit: Column names always selected
        exclude_columns: Columns never selected (the period key, the response)

    Returns:
        Ordered list of predictor names

    Raises:
        PredictorNotFound: If an explicit name is absent from the table
    """
    missing = [c for c in explicit if c not in table.columns]
    if missing:
        raise PredictorNotFound(missing)

    selected: List[str] = []
    if include:
        for column in table.columns:
            if column in exclude_columns:
                continue
            if any(s in column for s in include) and not any(s in column for s in exclude):
                selected.append(column)

    for column in explicit:
        if column not in selected and column not in exclude_columns:
            selected.append(column)
    return selected


def build_design(
    table: pd.DataFrame,
    spec: ModelSpec,
    period_column: str = PERIOD
) -> DesignMatrix:
    """Build the response vector and design matrix for a model spec.

    Rows are put in period order, the response is shifted by the horizon,
    then any row with a missing response or predictor is omitted.

    Args:
        table: Analysis table
        spec: Model specification
        period_column: Column holding the period key

    Returns:
        DesignMatrix indexed by period

    Raises:
        ResponseNotFound: If the response column is absent
        PredictorNotFound: If a predictor is absent or not numeric
        EmptyDesignMatrix: If no complete rows remain
    """
    if spec.response not in table.columns:
        raise ResponseNotFound(spec.response)

    missing = [p for p in spec.predictors if p not in table.columns]
    if missing:
        raise PredictorNotFound(missing)

    non_numeric = [p for p in spec.predictors if not pd.api.types.is_numeric_dtype(table[p])]
    if non_numeric:
        raise PredictorNotFound(non_numeric, "are not numeric")

    ordered = table.sort_values(period_column, kind='mergesort').reset_index(drop=True)
    y = ordered[spec.response].shift(-spec.horizon).astype(float)
    X = ordered[list(spec.predictors)].astype(float)

    complete = y.notna() & X.notna().all(axis=1)
    n_dropped = int((~complete).sum())
    if not complete.any():
        raise EmptyDesignMatrix(spec.response, spec.horizon, len(table))

    index = pd.Index(ordered.loc[complete, period_column], name=period_column)
    y = pd.Series(y[complete].to_numpy(), index=index, name=spec.response)
    X = pd.DataFrame(X[complete].to_numpy(), index=index, columns=list(spec.predictors))

    if n_dropped > abs(spec.horizon):
        logger.debug(
            f"{spec.name}: omitted {n_dropped} incomplete rows, {len(y)} remain"
        )

    return DesignMatrix(spec=spec, y=y, X=X, n_dropped=n_dropped)


def model_specs_from_settings(entries: Optional[Sequence[Dict[str, Any]]]) -> List[ModelSpec]:
    """Model specs from the 'modeling.models' settings list."""
    return [ModelSpec.from_dict(entry) for entry in (entries or [])]
