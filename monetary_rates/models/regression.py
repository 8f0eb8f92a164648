"""
Regression Estimators

Ordinary least squares with the usual diagnostics, and L1-regularized
(LASSO) fits with the penalty chosen by seeded k-fold cross-validation.
Both consume a DesignMatrix and return an immutable FittedModel.
"""

import warnings
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Union

import numpy as np
import pandas as pd
from scipy import stats
from loguru import logger
from sklearn.exceptions import ConvergenceWarning
from sklearn.linear_model import Lasso
from sklearn.model_selection import KFold
from sklearn.preprocessing import StandardScaler

from ..exceptions import InsufficientFolds, SingularDesign
from .model_builder import DesignMatrix


INTERCEPT = '(Intercept)'
OLS = 'ols'
LASSO = 'lasso'


def r_squared(actual, predicted) -> float:
    """Coefficient of determination: 1 - mean squared residual / variance.

    The variance is the population variance of `actual` over the same
    sample, so predicting the sample mean scores exactly 0. Returns NaN
    when `actual` is constant.
    """
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.shape != predicted.shape:
        raise ValueError(f"Shape mismatch: actual {actual.shape} vs predicted {predicted.shape}")

    variance = np.var(actual)
    if len(actual) == 0 or variance == 0:
        return float('nan')
    return float(1 - np.mean((predicted - actual) ** 2) / variance)


@dataclass(frozen=True)
class FittedModel:
    """Coefficients and diagnostics of one fit. Never mutated; refits make a new one."""
    method: str
    name: str
    coefficients: pd.Series
    intercept: float
    penalty: float
    n_obs: int
    training_periods: pd.Index
    r_squared: float
    residual_std_error: float = float('nan')
    adj_r_squared: float = float('nan')
    std_errors: Optional[pd.Series] = None
    t_values: Optional[pd.Series] = None
    p_values: Optional[pd.Series] = None
    f_statistic: float = float('nan')
    f_p_value: float = float('nan')
    cv_results: Optional[pd.DataFrame] = None

    @property
    def predictors(self):
        return list(self.coefficients.index)

    @property
    def n_nonzero(self) -> int:
        return int((self.coefficients != 0).sum())

    def predict(self, X: Union[DesignMatrix, pd.DataFrame]) -> pd.Series:
        """Predict from a design matrix (columns matched by name)."""
        if isinstance(X, DesignMatrix):
            X = X.X
        values = X[self.predictors].to_numpy(dtype=float) @ self.coefficients.to_numpy()
        return pd.Series(values + self.intercept, index=X.index, name='predicted')

    def coefficient_table(self) -> pd.DataFrame:
        """Estimates (and OLS inference columns) with the intercept first."""
        estimates = pd.concat([pd.Series({INTERCEPT: self.intercept}), self.coefficients])
        table = pd.DataFrame({'estimate': estimates})
        if self.std_errors is not None:
            table['std_error'] = self.std_errors
            table['t_value'] = self.t_values
            table['p_value'] = self.p_values
        table.index.name = 'term'
        return table

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method,
            'name': self.name,
            'intercept': self.intercept,
            'coefficients': self.coefficients.to_dict(),
            'penalty': self.penalty,
            'n_obs': self.n_obs,
            'r_squared': self.r_squared,
            'adj_r_squared': self.adj_r_squared,
            'residual_std_error': self.residual_std_error,
        }

    def summary(self) -> str:
        """Plain-text summary in the spirit of R's summary.lm."""
        lines = [f"{self.method.upper()}: {self.name}"]
        table = self.coefficient_table()
        lines.append(table.to_string(float_format=lambda v: f"{v:.6g}"))
        lines.append(f"Observations: {self.n_obs}")
        if self.method == OLS:
            lines.append(
                f"Residual standard error: {self.residual_std_error:.4g}  "
                f"R-squared: {self.r_squared:.4f}  Adjusted R-squared: {self.adj_r_squared:.4f}"
            )
            if not np.isnan(self.f_statistic):
                lines.append(f"F-statistic: {self.f_statistic:.4g}  p-value: {self.f_p_value:.4g}")
        else:
            lines.append(
                f"Penalty: {self.penalty:.6g}  Non-zero coefficients: {self.n_nonzero}  "
                f"R-squared: {self.r_squared:.4f}"
            )
        return "\n".join(lines)


def fit_ols(design: DesignMatrix) -> FittedModel:
    """Least-squares fit with an intercept.

    Args:
        design: Response and predictors

    Returns:
        FittedModel with standard errors, t-values and p-values

    Raises:
        SingularDesign: If [1, X] is rank-deficient
    """
    y = design.y.to_numpy(dtype=float)
    X = design.X.to_numpy(dtype=float)
    n, p = X.shape
    A = np.column_stack([np.ones(n), X])

    rank = int(np.linalg.matrix_rank(A))
    if rank < p + 1:
        raise SingularDesign(rank, p + 1, n, design.spec.name)

    beta, _, _, _ = np.linalg.lstsq(A, y, rcond=None)
    fitted = A @ beta
    residuals = y - fitted
    ssr = float(residuals @ residuals)
    sst = float(((y - y.mean()) ** 2).sum())
    dof = n - p - 1

    r2 = r_squared(y, fitted)
    terms = [INTERCEPT] + design.predictors

    if dof > 0:
        sigma2 = ssr / dof
        rse = float(np.sqrt(sigma2))
        adj_r2 = float(1 - (1 - r2) * (n - 1) / dof)
        cov = sigma2 * np.linalg.inv(A.T @ A)
        se = np.sqrt(np.diag(cov))
        with np.errstate(divide='ignore', invalid='ignore'):
            t_values = beta / se
        p_values = 2 * stats.t.sf(np.abs(t_values), dof)
        if p > 0 and ssr > 0:
            f_stat = float(((sst - ssr) / p) / sigma2)
            f_p = float(stats.f.sf(f_stat, p, dof))
        else:
            f_stat, f_p = float('nan'), float('nan')
    else:
        rse = adj_r2 = f_stat = f_p = float('nan')
        se = t_values = p_values = np.full(p + 1, np.nan)

    model = FittedModel(
        method=OLS,
        name=design.spec.name,
        coefficients=pd.Series(beta[1:], index=design.predictors, dtype=float),
        intercept=float(beta[0]),
        penalty=0.0,
        n_obs=n,
        training_periods=design.periods,
        r_squared=r2,
        residual_std_error=rse,
        adj_r_squared=adj_r2,
        std_errors=pd.Series(se, index=terms),
        t_values=pd.Series(t_values, index=terms),
        p_values=pd.Series(p_values, index=terms),
        f_statistic=f_stat,
        f_p_value=f_p,
    )
    logger.info(f"OLS {model.name}: n={n}, R2={r2:.4f}")
    return model


def _standardize(X: np.ndarray, standardize: bool):
    """Centering scaler; also scales to unit population std when standardize is set."""
    scaler = StandardScaler(with_mean=True, with_std=standardize)
    return scaler.fit(X)


def _lasso(penalty: float, max_iter: int, tol: float, warm_start: bool = False) -> Lasso:
    return Lasso(alpha=penalty, fit_intercept=True, max_iter=max_iter, tol=tol,
                 warm_start=warm_start)


def fit_lasso(
    design: DesignMatrix,
    penalty: float,
    standardize: bool = True,
    max_iter: int = 100000,
    tol: float = 1e-7
) -> FittedModel:
    """LASSO fit at a fixed penalty.

    Minimizes 1/(2n) * RSS + penalty * |beta|_1 on standardized predictors;
    coefficients are reported on the original scale.
    """
    y = design.y.to_numpy(dtype=float)
    X = design.X.to_numpy(dtype=float)
    if X.shape[1] == 0:
        raise ValueError(f"LASSO needs at least one predictor ({design.spec.name})")

    scaler = _standardize(X, standardize)
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=ConvergenceWarning)
        estimator = _lasso(penalty, max_iter, tol).fit(scaler.transform(X), y)

    scale = scaler.scale_ if standardize else np.ones(X.shape[1])
    coef = estimator.coef_ / scale
    intercept = float(estimator.intercept_ - coef @ scaler.mean_)

    fitted = X @ coef + intercept
    return FittedModel(
        method=LASSO,
        name=design.spec.name,
        coefficients=pd.Series(coef, index=design.predictors, dtype=float),
        intercept=intercept,
        penalty=float(penalty),
        n_obs=len(y),
        training_periods=design.periods,
        r_squared=r_squared(y, fitted),
    )


def penalty_path(
    design: DesignMatrix,
    n_penalties: int = 100,
    penalty_ratio: Optional[float] = None,
    standardize: bool = True
) -> np.ndarray:
    """Decreasing, log-spaced penalties from the smallest all-zero penalty.

    The ratio of the last to the first penalty defaults to 1e-4 when there
    are more rows than predictors and 1e-2 otherwise.
    """
    y = design.y.to_numpy(dtype=float)
    X = design.X.to_numpy(dtype=float)
    n, p = X.shape
    Xs = _standardize(X, standardize).transform(X)

    penalty_max = float(np.max(np.abs(Xs.T @ (y - y.mean()))) / n) if p else 0.0
    if penalty_max <= 0:
        penalty_max = 1e-6
    if penalty_ratio is None:
        penalty_ratio = 1e-4 if n > p else 1e-2

    return np.logspace(np.log10(penalty_max), np.log10(penalty_max * penalty_ratio), n_penalties)


def fit_lasso_cv(
    design: DesignMatrix,
    n_folds: int = 3,
    seed: int = 1,
    n_penalties: int = 100,
    penalty_ratio: Optional[float] = None,
    standardize: bool = True,
    max_iter: int = 100000,
    tol: float = 1e-7
) -> FittedModel:
    """LASSO with the penalty chosen by k-fold cross-validation.

    Folds come from a KFold shuffle seeded with `seed`. For every penalty on
    the path the held-out squared error is averaged across folds; the
    penalty with the lowest mean error is selected and the model is refit
    at that penalty on the full sample.

    Args:
        design: Training response and predictors
        n_folds: Number of folds
        seed: Seed of the fold assignment
        n_penalties: Length of the penalty path
        penalty_ratio: Smallest / largest penalty on the path
        standardize: Standardize predictors before fitting

    Returns:
        FittedModel at the selected penalty, with cv_results attached

    Raises:
        InsufficientFolds: If n_folds < 2 or exceeds the training rows
    """
    y = design.y.to_numpy(dtype=float)
    X = design.X.to_numpy(dtype=float)
    n = len(y)
    if X.shape[1] == 0:
        raise ValueError(f"LASSO needs at least one predictor ({design.spec.name})")
    if n_folds < 2 or n_folds > n:
        raise InsufficientFolds(n_folds, n)

    penalties = penalty_path(design, n_penalties, penalty_ratio, standardize)
    errors = np.empty((n_folds, len(penalties)))

    folds = KFold(n_splits=n_folds, shuffle=True, random_state=seed)
    with warnings.catch_warnings():
        warnings.simplefilter('ignore', category=ConvergenceWarning)
        for f, (train_idx, test_idx) in enumerate(folds.split(X)):
            scaler = _standardize(X[train_idx], standardize)
            X_train = scaler.transform(X[train_idx])
            X_test = scaler.transform(X[test_idx])

            estimator = _lasso(penalties[0], max_iter, tol, warm_start=True)
            for j, penalty in enumerate(penalties):
                estimator.set_params(alpha=penalty)
                estimator.fit(X_train, y[train_idx])
                residuals = estimator.predict(X_test) - y[test_idx]
                errors[f, j] = np.mean(residuals ** 2)

    mean_mse = errors.mean(axis=0)
    best = int(np.argmin(mean_mse))
    cv_results = pd.DataFrame({
        'penalty': penalties,
        'log_penalty': np.log(penalties),
        'mean_mse': mean_mse,
        'std_mse': errors.std(axis=0, ddof=1),
    })

    model = fit_lasso(design, penalties[best], standardize, max_iter, tol)
    logger.info(
        f"LASSO {model.name}: {n_folds}-fold CV picked penalty {penalties[best]:.4g} "
        f"(log {np.log(penalties[best]):.2f}), {model.n_nonzero}/{len(model.coefficients)} "
        f"non-zero, R2={model.r_squared:.4f}"
    )
    return replace(model, cv_results=cv_results)
