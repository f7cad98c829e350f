"""
Data I/O module for loading and validating biomarker datasets.

Responsibilities:
- Load data from CSV or Excel file
- Validate that target, feature and identifier columns exist
- Reject rows with missing feature values (no imputation is done here)
- Encode the two-level target as 0/1 relative to the positive label
"""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

import numpy as np
import pandas as pd

from sepsis_loocv.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def load_data(
    filepath: Path,
    sheet_name: Optional[str] = None,
) -> pd.DataFrame:
    """
    Load a dataset from a CSV or Excel file.

    Parameters
    ----------
    filepath : Path
        Path to a .csv, .xlsx or .xls file
    sheet_name : str, optional
        Sheet name for Excel files. If None, loads first sheet.

    Returns
    -------
    pd.DataFrame
        Loaded dataframe
    """
    filepath = Path(filepath)
    logger.info(f"Loading data from {filepath}")

    if filepath.suffix.lower() in (".xlsx", ".xls"):
        df = pd.read_excel(filepath, sheet_name=0 if sheet_name is None else sheet_name)
    else:
        df = pd.read_csv(filepath)

    logger.info(f"Loaded {filepath.name} with shape {df.shape}")
    return df


def validate_columns(
    df: pd.DataFrame,
    columns: Iterable[str],
    role: str = "required",
):
    """
    Fail fast if any of ``columns`` is absent from ``df``.

    Raises
    ------
    ConfigurationError
        Naming every missing column
    """
    missing = [col for col in columns if col not in df.columns]
    if missing:
        raise ConfigurationError(
            f"Missing {role} column(s): {missing}. "
            f"Available columns: {list(df.columns)}"
        )


def detect_feature_columns(
    df: pd.DataFrame,
    target_col: str,
    id_col: Optional[str] = None,
    exclude_keywords: Optional[list] = None,
) -> List[str]:
    """
    Use every numeric column except the target and identifier as a feature.

    Parameters
    ----------
    df : pd.DataFrame
        Input dataframe
    target_col : str
        Target column name
    id_col : str, optional
        Identifier column name
    exclude_keywords : list, optional
        Substrings (case-insensitive); matching columns are skipped

    Returns
    -------
    list
        Feature column names in file order
    """
    if exclude_keywords is None:
        exclude_keywords = []

    features = []
    for col in df.select_dtypes(include=[np.number]).columns:
        if col in (target_col, id_col):
            continue
        if any(keyword.lower() in col.lower() for keyword in exclude_keywords):
            continue
        features.append(col)

    logger.info(f"Detected {len(features)} numeric feature columns")
    logger.debug(f"Feature columns: {features}")
    return features


def check_missing_values(df: pd.DataFrame, feature_cols: List[str]):
    """
    Reject datasets with missing feature values.

    Raises
    ------
    ConfigurationError
        Listing each incomplete feature with its number of missing rows
    """
    missing_counts = df[feature_cols].isna().sum()
    incomplete = missing_counts[missing_counts > 0]
    if len(incomplete) > 0:
        for col, count in incomplete.items():
            logger.error(f"  {col}: {count}/{len(df)} values missing")
        raise ConfigurationError(
            f"Missing feature values in {list(incomplete.index)}. "
            "Impute or drop incomplete rows before evaluation."
        )


def encode_target(series: pd.Series, positive_label: Any) -> np.ndarray:
    """
    Encode a two-level target column as 0/1 with 1 for ``positive_label``.

    Parameters
    ----------
    series : pd.Series
        Target column
    positive_label : Any
        Level designated as the positive (sepsis) class

    Returns
    -------
    np.ndarray
        Integer labels
    """
    if series.isna().any():
        raise ConfigurationError(
            f"Target column '{series.name}' has {int(series.isna().sum())} missing values"
        )

    levels = list(pd.unique(series))
    if len(levels) > 2:
        raise ConfigurationError(
            f"Target column '{series.name}' must have two levels, found {len(levels)}: {levels}"
        )

    is_positive = series == positive_label
    if not is_positive.any():
        # YAML and CSV may disagree on the type of the label (1 vs "1")
        is_positive = series.astype(str) == str(positive_label)

    if not is_positive.any():
        if len(levels) == 2:
            raise ConfigurationError(
                f"Positive label {positive_label!r} not among target levels {levels}"
            )
        logger.warning(
            f"Positive label {positive_label!r} never occurs in '{series.name}'; "
            "all samples are negative"
        )

    return is_positive.to_numpy().astype(int)


def prepare_dataset(
    df: pd.DataFrame,
    target_col: str,
    positive_label: Any,
    feature_names: Optional[List[str]] = None,
    id_col: Optional[str] = None,
    exclude_keywords: Optional[List[str]] = None,
) -> Tuple[pd.DataFrame, np.ndarray, List[str]]:
    """
    Validate a loaded dataframe and split it into features and labels.

    Steps:
    1. Check target (and identifier) columns exist
    2. Detect feature columns if not given, otherwise check they exist
    3. Reject missing feature values
    4. Encode the target

    Parameters
    ----------
    df : pd.DataFrame
        Loaded dataset
    target_col : str
        Target column name
    positive_label : Any
        Positive target level
    feature_names : list, optional
        Feature columns. If None, all numeric non-target columns are used.
    id_col : str, optional
        Identifier column
    exclude_keywords : list, optional
        Substrings (case-insensitive) of numeric columns to skip when detecting
        features (ignored when feature_names is given)

    Returns
    -------
    X : pd.DataFrame
        Feature matrix (index reset to 0..N-1)
    y : np.ndarray
        0/1 labels
    feature_names : list
        Feature column names
    """
    validate_columns(df, [target_col], role="target")
    if id_col is not None:
        validate_columns(df, [id_col], role="identifier")

    if feature_names is None:
        feature_names = detect_feature_columns(df, target_col, id_col, exclude_keywords)
    else:
        validate_columns(df, feature_names, role="feature")

    if not feature_names:
        raise ConfigurationError("No feature columns available for training")

    check_missing_values(df, feature_names)

    y = encode_target(df[target_col], positive_label)
    X = df[feature_names].reset_index(drop=True)

    logger.info(f"Final dataset: {X.shape[0]} samples, {len(feature_names)} features")
    logger.info(
        f"Positive prevalence: {int(y.sum())}/{len(y)} "
        f"({y.mean()*100 if len(y) else 0:.1f}%)"
    )

    return X, y, feature_names
