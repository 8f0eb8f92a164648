"""Model specification, estimation and evaluation."""
from .model_builder import DesignMatrix, ModelSpec, build_design, select_predictors
from .regression import FittedModel, fit_lasso, fit_lasso_cv, fit_ols, r_squared
from .evaluation import EvaluationResult, ModelComparison, compare_out_of_sample, evaluate

__all__ = [
    'DesignMatrix', 'ModelSpec', 'build_design', 'select_predictors',
    'FittedModel', 'fit_lasso', 'fit_lasso_cv', 'fit_ols', 'r_squared',
    'EvaluationResult', 'ModelComparison', 'compare_out_of_sample', 'evaluate',
]
