"""
Errors raised by the loading, alignment and modeling stages.

Every error is fatal to the current pipeline run and carries the context
needed to diagnose it (source name, column names, offending value).
"""

from typing import Iterable, Optional


class MonetaryDataError(Exception):
    """Base class for all pipeline errors."""


class SourceUnavailable(MonetaryDataError):
    """A remote series could not be fetched or decoded."""

    def __init__(self, source: str, url: str, reason: str = ""):
        self.source = source
        self.url = url
        self.reason = reason
        message = f"Source '{source}' unavailable at {url}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class SchemaMismatch(MonetaryDataError):
    """Expected fields are absent from a parsed source or table."""

    def __init__(self, source: str, missing: Iterable[str]):
        self.source = source
        self.missing = list(missing)
        super().__init__(
            f"Source '{source}' is missing expected fields: {', '.join(self.missing)}"
        )


class UnparseableDate(MonetaryDataError):
    """A native date representation could not be mapped to a period key."""

    def __init__(self, value: object, reason: str = ""):
        self.value = value
        self.reason = reason
        message = f"Cannot parse period value {value!r}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class UnmappedField(MonetaryDataError):
    """Relabeling met a column with no display name."""

    def __init__(self, fields: Iterable[str]):
        self.fields = sorted(set(fields))
        super().__init__(f"No display label configured for: {', '.join(self.fields)}")


class ModelSpecError(MonetaryDataError):
    """Base class for design-matrix construction errors."""


class ResponseNotFound(ModelSpecError):
    """The response column is absent from the analysis table."""

    def __init__(self, column: str):
        self.column = column
        super().__init__(f"Response column '{column}' not found")


class PredictorNotFound(ModelSpecError):
    """One or more predictor columns are absent or not numeric."""

    def __init__(self, columns: Iterable[str], reason: str = "not found"):
        self.columns = list(columns)
        self.reason = reason
        super().__init__(f"Predictor column(s) {', '.join(self.columns)} {reason}")


class EmptyDesignMatrix(ModelSpecError):
    """No complete rows remain after horizon shift and missing-value omission."""

    def __init__(self, response: str, horizon: int = 0, n_rows: Optional[int] = None):
        self.response = response
        self.horizon = horizon
        self.n_rows = n_rows
        message = f"No usable rows for response '{response}' at horizon {horizon}"
        if n_rows is not None:
            message += f" (table had {n_rows} rows)"
        super().__init__(message)


class EstimationError(MonetaryDataError):
    """Base class for model estimation errors."""


class SingularDesign(EstimationError):
    """The design matrix is rank-deficient for least squares."""

    def __init__(self, rank: int, n_columns: int, n_rows: int, model: str = ""):
        self.rank = rank
        self.n_columns = n_columns
        self.n_rows = n_rows
        self.model = model
        label = f" for '{model}'" if model else ""
        super().__init__(
            f"Design matrix{label} is rank-deficient: rank {rank} < {n_columns} "
            f"columns ({n_rows} rows)"
        )


class InsufficientFolds(EstimationError):
    """Cross-validation fold count is invalid for the available rows."""

    def __init__(self, n_folds: int, n_rows: int):
        self.n_folds = n_folds
        self.n_rows = n_rows
        super().__init__(
            f"Cannot run {n_folds}-fold cross-validation on {n_rows} training rows"
        )
