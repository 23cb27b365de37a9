"""
Data Loader Module
==================

Handles spreadsheet ingestion, validation, and basic data quality checks
for the earnings event history.

Functions:
    - load_config: Load YAML configuration file
    - get_schema: Resolve column roles from configuration
    - load_data: Load an Excel or CSV spreadsheet
    - validate_data: Check data quality constraints
    - split_labelled: Separate historical events from upcoming ones
    - get_data_summary: Generate basic statistics
"""

import os
import re
import logging
from pathlib import Path
from typing import Dict, Any, Optional, Tuple

import pandas as pd
import numpy as np
import yaml

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = ('.xlsx', '.xls')

DEFAULT_SCHEMA: Dict[str, Any] = {
    'label_column': 'next_day_move_pct',
    'date_column': 'date',
    'ticker_column': 'ticker',
    'drop_columns': ['date', 'ticker'],
    'nominal_columns': ['weekday', 'industry', 'revenue_source'],
    'ordinal_columns': {'momentum_grade': ['F', 'D', 'C', 'B', 'A']},
}


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
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def get_schema(config: Dict[str, Any]) -> Dict[str, Any]:
    """Merge the `schema` section of a config over the default column roles."""
    schema = dict(DEFAULT_SCHEMA)
    schema.update((config or {}).get('schema') or {})
    schema['drop_columns'] = list(schema.get('drop_columns') or [])
    schema['nominal_columns'] = list(schema.get('nominal_columns') or [])
    schema['ordinal_columns'] = {
        col: [str(v) for v in scale]
        for col, scale in (schema.get('ordinal_columns') or {}).items()
    }
    return schema


def normalize_column_name(name: Any) -> str:
    """'Put/Call Ratio ' -> 'put_call_ratio'"""
    name = str(name).strip().lower()
    name = re.sub(r'[\s\-/]+', '_', name)
    return name.strip('_')


def load_data(
    file_path: str,
    sheet_name: Optional[Any] = None,
    parse_dates: Optional[str] = None
) -> pd.DataFrame:
    """
    Load an earnings spreadsheet (Excel workbook or CSV export).

    Args:
        file_path: Path to the .xlsx, .xls or .csv file
        sheet_name: Worksheet name or index (Excel only, default: first sheet)
        parse_dates: Column to parse as dates after name normalization (optional)

    Returns:
        DataFrame with normalized column names

    Raises:
        FileNotFoundError: If data file doesn't exist
        ValueError: If the file type is not supported
    """
    file_path = Path(file_path)

    if not file_path.exists():
        raise FileNotFoundError(f"Data file not found: {file_path}")

    suffix = file_path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        df = pd.read_excel(file_path, sheet_name=0 if sheet_name is None else sheet_name)
    elif suffix == '.csv':
        df = pd.read_csv(file_path)
    else:
        raise ValueError(
            f"Unsupported file type '{suffix}'. Expected one of: "
            f"{', '.join(EXCEL_SUFFIXES + ('.csv',))}"
        )

    df.columns = [normalize_column_name(c) for c in df.columns]

    if parse_dates and parse_dates in df.columns:
        df[parse_dates] = pd.to_datetime(df[parse_dates], errors='coerce')

    logger.info(f"Loaded data from {file_path}: {df.shape[0]} rows × {df.shape[1]} columns")
    return df


def validate_data(
    df: pd.DataFrame,
    schema: Optional[Dict[str, Any]] = None,
    strict: bool = True,
    require_label: bool = True
) -> Tuple[bool, Dict[str, Any]]:
    """
    Validate the earnings table against the configured column roles.

    Checks:
        - Label and categorical columns are present (always fatal)
        - Label is numeric
        - Missing values
        - Duplicate rows
        - Ordinal values outside the declared scale
        - Number of unlabelled (upcoming) events

    Args:
        df: DataFrame to validate
        schema: Column roles (default: DEFAULT_SCHEMA)
        strict: If True, raise errors on any validation issue
        require_label: If False, a sheet of upcoming events may omit the label column

    Returns:
        Tuple of (is_valid, validation_report)

    Raises:
        ValueError: If required columns are missing, or strict and issues found
    """
    schema = schema or get_schema({})
    label = schema['label_column']

    required = schema['nominal_columns'] + list(schema['ordinal_columns'])
    if require_label:
        required = [label] + required
    missing_columns = [col for col in required if col not in df.columns]
    if missing_columns:
        raise ValueError(
            f"Missing required columns: {missing_columns}. "
            f"Columns found: {list(df.columns)}"
        )

    report = {
        "total_rows": len(df),
        "total_columns": len(df.columns),
        "column_names": list(df.columns),
        "issues": []
    }

    # Check 1: Label must be numeric
    if label in df.columns and not pd.api.types.is_numeric_dtype(df[label]):
        issue = f"Label column '{label}' is not numeric (dtype {df[label].dtype})"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 2: Upcoming events have no label yet
    n_unlabelled = int(df[label].isnull().sum()) if label in df.columns else len(df)
    report["unlabelled_rows"] = n_unlabelled
    report["labelled_rows"] = len(df) - n_unlabelled
    if n_unlabelled:
        logger.info(f"{n_unlabelled} rows have no '{label}' and will be treated as upcoming events")

    # Check 3: Missing feature values
    feature_cols = [c for c in df.columns if c != label]
    missing_counts = df[feature_cols].isnull().sum()
    total_missing = int(missing_counts.sum())
    if total_missing > 0:
        missing_pct = (total_missing / max(df[feature_cols].size, 1)) * 100
        issue = f"Missing feature values: {total_missing} ({missing_pct:.2f}%)"
        report["issues"].append(issue)
        report["missing_by_column"] = {
            k: int(v) for k, v in missing_counts[missing_counts > 0].items()
        }
        logger.warning(issue)

    # Check 4: Duplicate rows
    duplicates = int(df.duplicated().sum())
    if duplicates > 0:
        issue = f"Duplicate rows found: {duplicates}"
        report["issues"].append(issue)
        logger.warning(issue)

    # Check 5: Grades outside the declared scale
    for col, scale in schema['ordinal_columns'].items():
        values = df[col].dropna().astype(str).str.strip().str.upper()
        unknown = sorted(set(values) - {s.upper() for s in scale})
        if unknown:
            issue = f"Column '{col}' has values outside scale {scale}: {unknown}"
            report["issues"].append(issue)
            logger.warning(issue)

    is_valid = len(report["issues"]) == 0
    report["is_valid"] = is_valid

    if strict and not is_valid:
        raise ValueError(f"Data validation failed: {report['issues']}")

    return is_valid, report


def split_labelled(df: pd.DataFrame, label_column: str) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Split the table into historical events and upcoming events.

    Args:
        df: Full earnings table
        label_column: Name of the next-day move column

    Returns:
        Tuple of (history, upcoming) where upcoming rows have no numeric label
    """
    has_label = pd.to_numeric(df[label_column], errors='coerce').notnull()
    return df[has_label].copy(), df[~has_label].copy()


def get_data_summary(df: pd.DataFrame) -> Dict[str, Any]:
    """
    Generate summary statistics for the dataset.

    Args:
        df: DataFrame to summarize

    Returns:
        Dictionary containing summary statistics
    """
    summary = {
        "shape": df.shape,
        "columns": list(df.columns),
        "dtypes": df.dtypes.astype(str).to_dict(),
        "memory_usage_mb": df.memory_usage(deep=True).sum() / 1024 / 1024,
        "statistics": {},
        "categories": {}
    }

    for col in df.select_dtypes(include=[np.number]).columns:
        summary["statistics"][col] = {
            "count": int(df[col].count()),
            "mean": float(df[col].mean()),
            "std": float(df[col].std()),
            "min": float(df[col].min()),
            "50%": float(df[col].quantile(0.50)),
            "max": float(df[col].max())
        }

    for col in df.select_dtypes(exclude=[np.number, 'datetime']).columns:
        summary["categories"][col] = int(df[col].nunique())

    return summary


def print_data_summary(df: pd.DataFrame) -> None:
    """
    Print a formatted summary of the dataset to console.

    Args:
        df: DataFrame to summarize
    """
    print("\n" + "=" * 60)
    print("DATASET SUMMARY")
    print("=" * 60)
    print(f"Shape: {df.shape[0]} rows × {df.shape[1]} columns")
    print(f"Memory Usage: {df.memory_usage(deep=True).sum() / 1024:.2f} KB")
    print("\nColumn Information:")
    print("-" * 40)

    for col in df.columns:
        dtype = df[col].dtype
        non_null = df[col].count()
        null_pct = (1 - non_null / max(len(df), 1)) * 100
        print(f"  {col}: {dtype} | {non_null} non-null ({null_pct:.1f}% missing)")

    numeric = df.select_dtypes(include=[np.number])
    if not numeric.empty:
        print("\nBasic Statistics:")
        print("-" * 40)
        print(numeric.describe().round(4).to_string())
    print("=" * 60 + "\n")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)

    try:
        config = load_config()
        print("Configuration loaded successfully!")
        print(f"Label column: {get_schema(config)['label_column']}")
    except FileNotFoundError as e:
        print(f"Config not found: {e}")
        config = {}

    data_path = "data/raw/earnings.xlsx"
    if os.path.exists(data_path):
        df = load_data(data_path)
        print_data_summary(df)
        is_valid, report = validate_data(df, get_schema(config), strict=False)
        print(f"Validation passed: {is_valid}")
    else:
        print(f"No data file found at {data_path}")
        print("Place your earnings spreadsheet there to test the data loader.")
