"""
Data Preprocessing Module
=========================

Cleans the observation tables before modeling. The column selection is
learned from the training table only and then applied by name to the
testing table.

Functions:
    - filter_rows: Keep raw rows, dropping window-summary rows
    - drop_metadata: Remove identifier, timestamp and window bookkeeping columns
    - near_zero_variance: Frequency-ratio / percent-unique statistics per column
    - filter_training: Full training-side filter returning the column selection
    - apply_selection: Apply a training-derived selection to the testing table
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, Tuple, Optional, List, Sequence

import pandas as pd

from .exceptions import DataFormatError, SchemaMismatchError

logger = logging.getLogger(__name__)

DEFAULT_METADATA_COLUMNS = [
    "X",
    "Unnamed: 0",
    "raw_timestamp_part_1",
    "raw_timestamp_part_2",
    "cvtd_timestamp",
    "new_window",
    "num_window",
]

# caret defaults: most common value 19x more frequent than the runner-up
DEFAULT_FREQ_CUT = 95 / 5
DEFAULT_UNIQUE_CUT = 10.0


@dataclass(frozen=True)
class FeatureSelection:
    """Ordered feature columns retained from the training table."""

    columns: Tuple[str, ...]
    label_column: str
    dropped_metadata: Tuple[str, ...] = ()
    dropped_nzv: Tuple[str, ...] = ()
    numeric_columns: Tuple[str, ...] = ()
    nzv_metrics: Optional[pd.DataFrame] = field(default=None, compare=False, repr=False)

    @property
    def n_features(self) -> int:
        return len(self.columns)


def filter_rows(
    df: pd.DataFrame,
    indicator_column: str = "new_window",
    raw_row_value: str = "no"
) -> pd.DataFrame:
    """
    Keep only raw rows of a table, judged by its own indicator column.

    Args:
        df: Observation table
        indicator_column: Column marking window-summary rows
        raw_row_value: Sentinel meaning "not a window-summary row"

    Returns:
        New DataFrame with only raw rows, index reset

    Raises:
        DataFormatError: If the indicator column is missing or no row survives
    """
    if indicator_column not in df.columns:
        raise DataFormatError(f"Indicator column '{indicator_column}' not found")

    mask = df[indicator_column].astype(str).str.strip().str.lower() == str(raw_row_value).lower()
    filtered = df.loc[mask].reset_index(drop=True)

    if filtered.empty:
        raise DataFormatError(
            f"No raw rows left after filtering on {indicator_column} == '{raw_row_value}'",
            context={"rows_before": len(df)}
        )

    logger.info(f"Row filter: kept {len(filtered)} of {len(df)} rows "
                f"({len(df) - len(filtered)} window-summary rows dropped)")
    return filtered


def drop_metadata(
    df: pd.DataFrame,
    metadata_columns: Sequence[str] = DEFAULT_METADATA_COLUMNS
) -> Tuple[pd.DataFrame, List[str]]:
    """
    Drop bookkeeping columns by name; columns absent from the table are ignored.

    Returns:
        Tuple of (new DataFrame, list of dropped column names)
    """
    present = [col for col in metadata_columns if col in df.columns]
    return df.drop(columns=present), present


def near_zero_variance(
    df: pd.DataFrame,
    freq_cut: float = DEFAULT_FREQ_CUT,
    unique_cut: float = DEFAULT_UNIQUE_CUT,
    exclude: Sequence[str] = ()
) -> pd.DataFrame:
    """
    Compute near-zero-variance statistics for each column.

    A column is flagged when it has fewer than two distinct non-missing
    values, or when its most common value outnumbers the second most
    common by more than ``freq_cut`` while at most ``unique_cut`` percent
    of its values are distinct.

    Args:
        df: Table to inspect
        freq_cut: Frequency ratio threshold
        unique_cut: Percent-unique threshold
        exclude: Columns to skip (e.g. the label)

    Returns:
        DataFrame indexed by column with freq_ratio, percent_unique,
        zero_var and nzv
    """
    n_rows = len(df)
    records = []

    for col in df.columns:
        if col in exclude:
            continue

        counts = df[col].dropna().value_counts()
        n_distinct = len(counts)

        if n_distinct < 2:
            freq_ratio = 0.0
        else:
            freq_ratio = float(counts.iloc[0] / counts.iloc[1])

        percent_unique = 100.0 * n_distinct / n_rows if n_rows else 0.0
        zero_var = n_distinct < 2
        nzv = zero_var or (freq_ratio > freq_cut and percent_unique <= unique_cut)

        records.append({
            "column": col,
            "freq_ratio": freq_ratio,
            "percent_unique": percent_unique,
            "zero_var": zero_var,
            "nzv": nzv
        })

    metrics = pd.DataFrame(
        records, columns=["column", "freq_ratio", "percent_unique", "zero_var", "nzv"]
    )
    return metrics.set_index("column")


class FeatureFilter:
    """
    Training-fitted column filter.

    ``fit_transform`` learns the column selection from the training table and
    ``transform`` applies it to any other table by column name.
    """

    def __init__(
        self,
        label_column: str = "classe",
        indicator_column: str = "new_window",
        raw_row_value: str = "no",
        metadata_columns: Sequence[str] = DEFAULT_METADATA_COLUMNS,
        freq_cut: float = DEFAULT_FREQ_CUT,
        unique_cut: float = DEFAULT_UNIQUE_CUT
    ):
        self.label_column = label_column
        self.indicator_column = indicator_column
        self.raw_row_value = raw_row_value
        self.metadata_columns = list(metadata_columns)
        self.freq_cut = freq_cut
        self.unique_cut = unique_cut

        self.selection: Optional[FeatureSelection] = None
        self._is_fitted = False

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> 'FeatureFilter':
        """Build a filter from the ``schema`` and ``filtering`` config sections."""
        schema = config.get('schema', {})
        filtering = config.get('filtering', {})
        return cls(
            label_column=schema.get('label_column', 'classe'),
            indicator_column=schema.get('indicator_column', 'new_window'),
            raw_row_value=schema.get('raw_row_value', 'no'),
            metadata_columns=schema.get('metadata_columns', DEFAULT_METADATA_COLUMNS),
            freq_cut=filtering.get('freq_cut', DEFAULT_FREQ_CUT),
            unique_cut=filtering.get('unique_cut', DEFAULT_UNIQUE_CUT)
        )

    def fit_transform(self, training: pd.DataFrame) -> pd.DataFrame:
        """
        Learn the column selection from the training table and return the
        cleaned training table (selected features followed by the label).
        """
        if self.label_column not in training.columns:
            raise DataFormatError(f"Training table has no label column '{self.label_column}'")

        rows = filter_rows(training, self.indicator_column, self.raw_row_value)
        reduced, dropped_metadata = drop_metadata(rows, self.metadata_columns)

        metrics = near_zero_variance(
            reduced, self.freq_cut, self.unique_cut, exclude=[self.label_column]
        )
        dropped_nzv = metrics.index[metrics["nzv"].astype(bool)].tolist()
        columns = [
            col for col in reduced.columns
            if col != self.label_column and col not in dropped_nzv
        ]

        self.selection = FeatureSelection(
            columns=tuple(columns),
            label_column=self.label_column,
            dropped_metadata=tuple(dropped_metadata),
            dropped_nzv=tuple(dropped_nzv),
            numeric_columns=tuple(
                col for col in columns if pd.api.types.is_numeric_dtype(reduced[col])
            ),
            nzv_metrics=metrics
        )
        self._is_fitted = True

        logger.info(f"Dropped {len(dropped_metadata)} metadata columns: {dropped_metadata}")
        logger.info(f"Dropped {len(dropped_nzv)} near-zero-variance columns")
        logger.info(f"Retained {len(columns)} feature columns")

        return reduced[columns + [self.label_column]].copy()

    def transform(self, testing: pd.DataFrame) -> pd.DataFrame:
        """
        Apply the learned selection to another table.

        Raises:
            ValueError: If called before fitting
            SchemaMismatchError: If a selected column is missing
        """
        if not self._is_fitted:
            raise ValueError("FeatureFilter must be fitted before transform. Call fit_transform() first.")

        if self.indicator_column in testing.columns:
            testing = filter_rows(testing, self.indicator_column, self.raw_row_value)

        return select_columns(testing, self.selection)


def select_columns(df: pd.DataFrame, selection: FeatureSelection) -> pd.DataFrame:
    """
    Project a table onto the selected feature columns, in selection order.

    Raises:
        SchemaMismatchError: If any selected column is missing, or a column
            that was numeric in training holds non-numeric values
    """
    missing = [col for col in selection.columns if col not in df.columns]
    if missing:
        raise SchemaMismatchError(
            f"Testing table is missing {len(missing)} selected feature column(s)",
            context={"missing": missing}
        )

    non_numeric = [
        col for col in selection.numeric_columns
        if not pd.api.types.is_numeric_dtype(df[col])
    ]
    if non_numeric:
        raise SchemaMismatchError(
            f"Testing table has non-numeric values in {len(non_numeric)} numeric feature column(s)",
            context={"non_numeric": non_numeric}
        )
    return df[list(selection.columns)].copy()


def filter_training(
    training: pd.DataFrame,
    config: Optional[Dict[str, Any]] = None
) -> Tuple[pd.DataFrame, FeatureSelection]:
    """
    Clean the training table and return the column selection.

    Args:
        training: Raw training table
        config: Configuration dictionary

    Returns:
        Tuple of (cleaned training table, FeatureSelection)
    """
    feature_filter = FeatureFilter.from_config(config or {})
    cleaned = feature_filter.fit_transform(training)
    return cleaned, feature_filter.selection


def apply_selection(
    testing: pd.DataFrame,
    selection: FeatureSelection,
    indicator_column: str = "new_window",
    raw_row_value: str = "no"
) -> pd.DataFrame:
    """
    Apply a training-derived selection to the testing table.

    The testing table is row-filtered by its own indicator column, if it
    has one, before the columns are selected by name.
    """
    if indicator_column in testing.columns:
        testing = filter_rows(testing, indicator_column, raw_row_value)
    return select_columns(testing, selection)


def print_preprocessing_summary(selection: FeatureSelection, n_train: int, n_test: int) -> None:
    """
    Print a summary of the filtering results.

    Args:
        selection: Column selection learned from training
        n_train: Rows in the cleaned training table
        n_test: Rows in the cleaned testing table
    """
    print("\n" + "=" * 50)
    print("PREPROCESSING SUMMARY")
    print("=" * 50)
    print(f"Training rows: {n_train}")
    print(f"Testing rows: {n_test}")
    print(f"Metadata columns dropped: {len(selection.dropped_metadata)}")
    print(f"Near-zero-variance columns dropped: {len(selection.dropped_nzv)}")
    print(f"Feature columns retained: {selection.n_features}")
    print("=" * 50 + "\n")
