"""
Data Loader Module
==================

Handles configuration loading, CSV ingestion and basic data summaries.

Functions:
    - load_config: Load YAML configuration file
    - load_data: Load one delimited table with the header from the first row
    - load_tables: Load the training and testing tables
    - get_data_summary: Generate basic statistics
"""

import logging
from pathlib import Path
from typing import Dict, Any, List, Optional, Tuple

import pandas as pd
import numpy as np
import yaml

from .exceptions import DataFormatError

logger = logging.getLogger(__name__)

DEFAULT_NA_VALUES = ["NA", "#DIV/0!", ""]


def load_config(config_path: str = "config/config.yaml") -> Dict[str, Any]:
    """
    Load configuration from YAML file.

    Args:
        config_path: Path to the configuration file

    Returns:
        Dictionary containing configuration parameters

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If config file is malformed
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)

    logger.info(f"Loaded configuration from {config_path}")
    return config or {}


def load_data(
    file_path: str,
    na_values: Optional[List[str]] = None
) -> pd.DataFrame:
    """
    Load a delimited table whose header is the first row.

    Args:
        file_path: Path to the CSV file
        na_values: Tokens to read as missing (default: NA, #DIV/0!, empty)

    Returns:
        DataFrame containing the loaded data

    Raises:
        DataFormatError: If the file is missing, empty or malformed
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise DataFormatError(f"Data file not found: {file_path}")

    if na_values is None:
        na_values = DEFAULT_NA_VALUES

    try:
        df = pd.read_csv(file_path, na_values=na_values, keep_default_na=False, encoding='utf-8')
    except pd.errors.EmptyDataError as e:
        raise DataFormatError(f"Data file is empty: {file_path}") from e
    except (pd.errors.ParserError, UnicodeDecodeError) as e:
        raise DataFormatError(
            f"Data file is not well-formed delimited text: {file_path}",
            context={"reason": str(e).strip()}
        ) from e

    _check_header(df, file_path)

    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")
    return df


def _check_header(df: pd.DataFrame, file_path: Path) -> None:
    """Reject headers that pandas had to rename or that carry no columns."""
    if df.shape[1] == 0:
        raise DataFormatError(f"No header row found in {file_path}")

    # pandas renames repeated names to "name.1"; the raw header is needed to detect them
    header = pd.read_csv(
        file_path, header=None, nrows=1, dtype=str, keep_default_na=False, encoding='utf-8'
    )
    raw_names = [name.strip() for name in header.iloc[0].tolist()]
    duplicated = sorted({name for name in raw_names if name and raw_names.count(name) > 1})
    if duplicated:
        raise DataFormatError(
            f"Duplicate column names in header of {file_path}",
            context={"duplicated": duplicated}
        )


def load_tables(
    training_path: str,
    testing_path: str,
    label_column: str = "classe",
    na_values: Optional[List[str]] = None
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Load the training and testing tables.

    Args:
        training_path: Path to the labeled training CSV
        testing_path: Path to the unlabeled testing CSV
        label_column: Name of the target column required in training
        na_values: Tokens to read as missing

    Returns:
        Tuple of (training, testing) DataFrames

    Raises:
        DataFormatError: If either source is malformed or training has no labels
    """
    training = load_data(training_path, na_values=na_values)
    testing = load_data(testing_path, na_values=na_values)

    if label_column not in training.columns:
        raise DataFormatError(
            f"Training table has no label column '{label_column}'",
            context={"path": str(training_path)}
        )

    missing_labels = int(training[label_column].isnull().sum())
    if missing_labels > 0:
        raise DataFormatError(
            f"Training table has {missing_labels} rows without a label",
            context={"path": str(training_path)}
        )

    return training, testing


def get_data_summary(df: pd.DataFrame, label_column: Optional[str] = None) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize
        label_column: Optional label column for a class distribution

    Returns:
        Dictionary containing summary statistics
    """
    n_cells = df.shape[0] * df.shape[1]
    summary = {
        "shape": df.shape,
        "n_numeric": int(len(df.select_dtypes(include=[np.number]).columns)),
        "n_categorical": int(len(df.select_dtypes(exclude=[np.number]).columns)),
        "missing_pct": float(df.isnull().sum().sum() / n_cells * 100) if n_cells else 0.0,
        "mostly_missing_columns": int((df.isnull().mean() > 0.9).sum()),
        "class_distribution": {}
    }

    if label_column and label_column in df.columns:
        counts = df[label_column].value_counts().sort_index()
        summary["class_distribution"] = {str(k): int(v) for k, v in counts.items()}

    return summary


def print_data_summary(df: pd.DataFrame, label_column: Optional[str] = None) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
        label_column: Optional label column for a class distribution
    """
    summary = get_data_summary(df, label_column)

    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Numeric columns: {summary['n_numeric']} | Categorical columns: {summary['n_categorical']}")
    print(f"Missing cells: {summary['missing_pct']:.1f}%")
    print(f"Columns more than 90% missing: {summary['mostly_missing_columns']}")

    if summary["class_distribution"]:
        print("\nClass Distribution:")
        print("-" * 40)
        for label, count in summary["class_distribution"].items():
            print(f"  {label}: {count}")

    print("=" * 60 + "\n")
