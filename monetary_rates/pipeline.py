"""
Analysis Pipeline

Runs the analysis as explicit stages: load series, build the merged
analysis tables and presentation tables, then fit and evaluate the
interest rate models. Each stage returns new tables, collected in a
PipelineResult keyed by stage id.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd
from loguru import logger

from .analysis.derived_fields import (
    add_difference,
    add_lagged,
    add_ratio,
    balance_sheet_long,
    forward_points_to_rates,
    money_supply_by_currency,
    monetary_base_coverage,
    value_range,
)
from .analysis.merge import dropped_periods, merge_series
from .data.series_loader import PERIOD, Series, SeriesLoader
from .exceptions import SchemaMismatch
from .models.evaluation import (
    IN_SAMPLE,
    EvaluationResult,
    ModelComparison,
    coefficient_table,
    compare_out_of_sample,
    evaluate,
    fit_summary,
)
from .models.model_builder import (
    ModelSpec,
    build_design,
    model_specs_from_settings,
    select_predictors,
)
from .models.regression import FittedModel, fit_lasso_cv, fit_ols
from .utils.config_loader import ConfigLoader


# Merge order is part of the contract: it decides collision suffixes
CENTRAL_BANK_SOURCES = [
    'balance_sheet', 'money_supply', 'interbank_rates', 'operations', 'forwards', 'honia',
]
MACRO_SOURCES = ['obfr', 'unemployment', 'cpi']
MONEY_SUPPLY_SPLIT_SOURCES = ['money_supply_hkd', 'money_supply_fc']
MONTHLY_SOURCES = CENTRAL_BANK_SOURCES + MACRO_SOURCES + MONEY_SUPPLY_SPLIT_SOURCES
DAILY_SOURCES = ['daily_liquidity']

# Stage ids
CENTRAL_BANK = 'central_bank'
MONTHLY = 'monthly'
FC_BALANCE_SHEET = 'fc_balance_sheet'
BALANCE_SHEET_LONG = 'balance_sheet_long'
MONEY_SUPPLY_BY_CURRENCY = 'money_supply_by_currency'
MONETARY_BASE_COVERAGE = 'monetary_base_coverage'
DAILY_LIQUIDITY = 'daily_liquidity'
MERGE_REPORT = 'monthly_merge_report'

FULL_MODEL = 'full_model'


@dataclass
class PipelineResult:
    """Every table, model and evaluation produced by one run."""
    series: Dict[str, Series] = field(default_factory=dict)
    tables: Dict[str, pd.DataFrame] = field(default_factory=dict)
    models: Dict[str, FittedModel] = field(default_factory=dict)
    evaluations: Dict[str, EvaluationResult] = field(default_factory=dict)
    comparison: Optional[ModelComparison] = None

    def table(self, stage: str) -> pd.DataFrame:
        if stage not in self.tables:
            raise KeyError(f"No table for stage '{stage}'. Available: {', '.join(self.tables)}")
        return self.tables[stage]

    def coefficients(self) -> pd.DataFrame:
        return coefficient_table(self.models)

    def fit_summary(self) -> pd.DataFrame:
        return fit_summary(self.models)

    def export(self, directory: Union[str, Path]) -> List[Path]:
        """Write every table as CSV (rows = periods, columns = fields).

        Returns:
            Paths of the written files
        """
        directory = Path(directory)
        directory.mkdir(parents=True, exist_ok=True)

        outputs = dict(self.tables)
        if self.models:
            outputs['coefficients'] = self.coefficients()
            outputs['fit_summary'] = self.fit_summary()
        if self.comparison is not None:
            outputs['out_of_sample_summary'] = self.comparison.summary()
            outputs['out_of_sample_predictions'] = self.comparison.predictions()
            lasso = self.comparison.models.get('LASSO')
            if lasso is not None and lasso.cv_results is not None:
                outputs['lasso_cv_path'] = lasso.cv_results

        paths = []
        for name, table in outputs.items():
            path = directory / f"{name}.csv"
            keep_index = not isinstance(table.index, pd.RangeIndex)
            table.to_csv(path, index=keep_index, date_format='%Y-%m-%d')
            paths.append(path)

        logger.info(f"Exported {len(paths)} tables to {directory}")
        return paths


class AnalysisPipeline:
    """Load, align and model the monetary series."""

    def __init__(
        self,
        loader: Optional[SeriesLoader] = None,
        config: Optional[ConfigLoader] = None
    ):
        """Initialize the pipeline.

        Args:
            loader: Series loader. Built from the configuration when omitted
            config: Settings. Loaded from config/settings.yaml when omitted
        """
        self.config = config or ConfigLoader()
        self.loader = loader or SeriesLoader(
            sources=self.config.sources,
            timeout=self.config.request_timeout
        )

    def load(self, names: Optional[Sequence[str]] = None) -> Dict[str, Series]:
        """Stage 1: fetch every source. Any failure aborts the run."""
        names = list(names) if names is not None else MONTHLY_SOURCES + DAILY_SOURCES
        logger.info(f"Loading {len(names)} series...")
        return self.loader.load_many(names)

    def build_tables(self, series: Dict[str, Series]) -> Dict[str, pd.DataFrame]:
        """Stages 2-4: merged analysis tables and presentation tables.

        Args:
            series: Loaded series keyed by source name; every monthly source
                is required, the daily liquidity series is optional

        Raises:
            SchemaMismatch: If a required series is absent
        """
        missing = [name for name in MONTHLY_SOURCES if name not in series]
        if missing:
            raise SchemaMismatch('pipeline', missing)

        tables: Dict[str, pd.DataFrame] = {}

        central_bank = merge_series([series[name] for name in CENTRAL_BANK_SOURCES])
        central_bank = forward_points_to_rates(central_bank)
        central_bank = add_ratio(central_bank, 'liab_banking_system_bal', 'm3_supply',
                                 'aggregate_balance_to_m3')
        low, high = value_range(central_bank, 'aggregate_balance_to_m3')
        logger.info(f"Aggregate Balance / M3 ranges from {low:.2%} to {high:.2%}")
        tables[CENTRAL_BANK] = central_bank

        monthly_inputs = [central_bank] + [series[name] for name in MACRO_SOURCES]
        monthly = merge_series(monthly_inputs)
        monthly = add_difference(monthly, 'obfr', 'ir_overnight', 'diff_overnight', absolute=True)
        monthly = add_lagged(monthly, 'ir_overnight', 1)
        tables[MONTHLY] = monthly
        tables[MERGE_REPORT] = dropped_periods(monthly_inputs, monthly)
        logger.info(
            f"Monthly analysis table: {len(monthly)} periods "
            f"({monthly[PERIOD].min():%Y-%m} to {monthly[PERIOD].max():%Y-%m})"
            if len(monthly) else "Monthly analysis table is empty"
        )

        tables[FC_BALANCE_SHEET] = merge_series([series['money_supply_fc'], series['balance_sheet']])

        tables[BALANCE_SHEET_LONG] = balance_sheet_long(
            series['balance_sheet'], self.config.balance_sheet
        )
        tables[MONEY_SUPPLY_BY_CURRENCY] = money_supply_by_currency(
            series['money_supply_hkd'], series['money_supply_fc']
        )
        tables[MONETARY_BASE_COVERAGE] = monetary_base_coverage(
            series['balance_sheet'], series['money_supply_hkd'], series['money_supply_fc'],
            self.config.coverage_labels
        )

        if DAILY_LIQUIDITY in series:
            tables[DAILY_LIQUIDITY] = series[DAILY_LIQUIDITY].to_frame()

        return tables

    def full_model_spec(self, table: pd.DataFrame) -> ModelSpec:
        """Balance sheet + operations + macro spec from the configured selection."""
        modeling = self.config.modeling
        response = modeling.get('response', 'ir_overnight')
        selection = modeling.get('full_model', {})

        predictors = select_predictors(
            table,
            include=selection.get('include', ()),
            exclude=selection.get('exclude', ()),
            explicit=selection.get('explicit', ()),
            exclude_columns=(PERIOD, response),
        )
        return ModelSpec(
            response=response,
            predictors=tuple(predictors),
            horizon=int(selection.get('horizon', 0)),
            name=FULL_MODEL,
        )

    def fit_models(
        self,
        tables: Dict[str, pd.DataFrame]
    ) -> Tuple[Dict[str, FittedModel], Dict[str, EvaluationResult], ModelComparison]:
        """Stage 5: fit the configured models, the full model and the out-of-sample split.

        Returns:
            (models, in-sample evaluations, out-of-sample comparison)
        """
        modeling = self.config.modeling
        models: Dict[str, FittedModel] = {}
        evaluations: Dict[str, EvaluationResult] = {}

        entries = self.config.model_entries
        for entry, spec in zip(entries, model_specs_from_settings(entries)):
            table = tables[entry.get('table', MONTHLY)]
            design = build_design(table, spec)
            model = fit_ols(design)
            models[spec.name] = model
            evaluations[spec.name] = evaluate(model, design, IN_SAMPLE, spec.name)

        monthly = tables[MONTHLY]
        spec = self.full_model_spec(monthly)
        design = build_design(monthly, spec)
        n_folds = int(modeling.get('n_folds', 3))
        seed = int(modeling.get('seed', 1))

        for label, model in (
            (f"{FULL_MODEL} (OLS)", fit_ols(design)),
            (f"{FULL_MODEL} (LASSO)", fit_lasso_cv(design, n_folds=n_folds, seed=seed)),
        ):
            models[label] = model
            evaluations[label] = evaluate(model, design, IN_SAMPLE, label)

        comparison = compare_out_of_sample(
            monthly, spec, modeling.get('cutoff', '2021-07-01'), n_folds=n_folds, seed=seed
        )
        return models, evaluations, comparison

    def run(self, names: Optional[Sequence[str]] = None) -> PipelineResult:
        """Run every stage end to end."""
        series = self.load(names)
        return self.run_on_series(series)

    def run_on_series(self, series: Dict[str, Series]) -> PipelineResult:
        """Run the table and model stages on already-loaded series."""
        tables = self.build_tables(series)
        models, evaluations, comparison = self.fit_models(tables)

        full_fit = pd.concat(
            [evaluations[k].to_frame() for k in evaluations if k.startswith(FULL_MODEL)]
        ).drop_duplicates(subset=[PERIOD, 'series'])
        tables['full_model_fit'] = full_fit.reset_index(drop=True)

        return PipelineResult(
            series=series,
            tables=tables,
            models=models,
            evaluations=evaluations,
            comparison=comparison,
        )
