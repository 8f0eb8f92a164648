"""
Model Evaluation

Chronological train/test splits, in-sample and out-of-sample scoring,
and the OLS vs LASSO out-of-sample comparison.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import pandas as pd
from loguru import logger

from ..data.series_loader import PERIOD
from .model_builder import DesignMatrix, ModelSpec, build_design
from .regression import INTERCEPT, FittedModel, fit_lasso_cv, fit_ols, r_squared


IN_SAMPLE = 'in_sample'
OUT_OF_SAMPLE = 'out_of_sample'


@dataclass(frozen=True)
class EvaluationResult:
    """Predictions of one model on one sample, aligned on period."""
    model_name: str
    sample: str
    actual: pd.Series
    predicted: pd.Series
    r_squared: float

    @property
    def n_obs(self) -> int:
        return len(self.actual)

    def to_frame(self) -> pd.DataFrame:
        """Long form (period, series, value) for charting."""
        wide = pd.DataFrame({'actual': self.actual, self.model_name: self.predicted})
        wide.index.name = PERIOD
        return wide.reset_index().melt(id_vars=[PERIOD], var_name='series', value_name='value')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model': self.model_name,
            'sample': self.sample,
            'r_squared': self.r_squared,
            'n_obs': self.n_obs,
        }


def chronological_split(
    table: pd.DataFrame,
    cutoff: Union[str, pd.Timestamp],
    period_column: str = PERIOD
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Split a table at a period cutoff without shuffling.

    Args:
        table: Analysis table
        cutoff: Periods strictly before go to train, on/after go to test
        period_column: Column holding the period key

    Returns:
        (train, test) tables, each sorted by period
    """
    cutoff = pd.Timestamp(cutoff)
    ordered = table.sort_values(period_column, kind='mergesort')
    before = ordered[period_column] < cutoff

    train = ordered[before].reset_index(drop=True)
    test = ordered[~before].reset_index(drop=True)
    logger.debug(f"Split at {cutoff.date()}: {len(train)} train / {len(test)} test periods")
    return train, test


def evaluate(
    model: FittedModel,
    design: DesignMatrix,
    sample: str = IN_SAMPLE,
    label: Optional[str] = None
) -> EvaluationResult:
    """Score a fitted model against a design matrix.

    For out-of-sample use, `design` must come from data the model never saw;
    the training coefficients are applied unchanged.
    """
    predicted = model.predict(design)
    return EvaluationResult(
        model_name=label or model.method.upper(),
        sample=sample,
        actual=design.y,
        predicted=predicted,
        r_squared=r_squared(design.y, predicted),
    )


@dataclass(frozen=True)
class ModelComparison:
    """Training fits and held-out evaluations for several estimators."""
    spec: ModelSpec
    cutoff: pd.Timestamp
    train: DesignMatrix
    test: DesignMatrix
    models: Dict[str, FittedModel] = field(default_factory=dict)
    results: Dict[str, EvaluationResult] = field(default_factory=dict)

    def summary(self) -> pd.DataFrame:
        """One row per estimator: out-of-sample R2, sample sizes, penalty."""
        rows = []
        for name, model in self.models.items():
            rows.append({
                'model': name,
                'r2_in_sample': model.r_squared,
                'r2_out_of_sample': self.results[name].r_squared,
                'n_train': self.train.n_obs,
                'n_test': self.test.n_obs,
                'penalty': model.penalty,
            })
        return pd.DataFrame(rows).set_index('model')

    def predictions(self) -> pd.DataFrame:
        """Long form (period, series, value) of actuals and every model's predictions."""
        wide = pd.DataFrame({'actual': self.test.y})
        for name, result in self.results.items():
            wide[name] = result.predicted
        wide.index.name = PERIOD
        return wide.reset_index().melt(id_vars=[PERIOD], var_name='series', value_name='value')


def compare_out_of_sample(
    table: pd.DataFrame,
    spec: ModelSpec,
    cutoff: Union[str, pd.Timestamp],
    n_folds: int = 3,
    seed: int = 1,
    period_column: str = PERIOD
) -> ModelComparison:
    """Fit OLS and cross-validated LASSO before the cutoff, score them after it.

    The table is split first and each side gets its own design matrix, so a
    lead never pulls responses across the cutoff into training.

    Args:
        table: Analysis table
        spec: Model specification shared by both estimators
        cutoff: First period of the test sample
        n_folds: Cross-validation folds for the LASSO penalty
        seed: Seed of the fold assignment

    Returns:
        ModelComparison with both training fits and their test evaluations
    """
    train_table, test_table = chronological_split(table, cutoff, period_column)
    train = build_design(train_table, spec, period_column)
    test = build_design(test_table, spec, period_column)

    models = {
        'OLS': fit_ols(train),
        'LASSO': fit_lasso_cv(train, n_folds=n_folds, seed=seed),
    }
    results = {name: evaluate(m, test, OUT_OF_SAMPLE, name) for name, m in models.items()}

    for name, result in results.items():
        logger.info(f"{name} out-of-sample R2 for {spec.name}: {result.r_squared:.4f} (n={result.n_obs})")

    return ModelComparison(
        spec=spec,
        cutoff=pd.Timestamp(cutoff),
        train=train,
        test=test,
        models=models,
        results=results,
    )


def coefficient_table(models: Mapping[str, FittedModel]) -> pd.DataFrame:
    """Wide coefficient table: one row per term, one column per model.

    Terms missing from a model are left empty; the intercept comes first.
    """
    terms: List[str] = [INTERCEPT]
    for model in models.values():
        terms.extend(t for t in model.predictors if t not in terms)

    table = pd.DataFrame(index=terms)
    for name, model in models.items():
        table[name] = model.coefficient_table()['estimate']
    table.index.name = 'term'
    return table


def fit_summary(models: Mapping[str, FittedModel]) -> pd.DataFrame:
    """Summary statistics (R2, sample size, penalty) for the reporting layer."""
    rows = []
    for name, model in models.items():
        rows.append({
            'model': name,
            'method': model.method,
            'n_obs': model.n_obs,
            'r_squared': model.r_squared,
            'adj_r_squared': model.adj_r_squared,
            'residual_std_error': model.residual_std_error,
            'penalty': model.penalty,
            'n_nonzero': model.n_nonzero,
        })
    return pd.DataFrame(rows).set_index('model')
