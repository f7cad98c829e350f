"""
Evaluation metrics module.

Metrics for binary classification computed on a complete prediction table:
- Accuracy, Precision, Sensitivity, Specificity, F1-score
- ROC-AUC via the rank-sum (Mann-Whitney U) estimator
- Confusion matrix counts

ROC utilities:
- ROC curve from a probability sweep
- Interpolation onto a shared false-positive-rate grid
- Point-wise mean ROC across repeats

Run aggregation:
- Mean and sample standard deviation of each metric across repeats/runs
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.stats import rankdata
from sklearn.metrics import (
    accuracy_score,
    confusion_matrix,
    f1_score,
    precision_score,
    recall_score,
    roc_curve,
)

from sepsis_loocv import CLASSIFICATION_THRESHOLD, ROC_GRID_POINTS
from sepsis_loocv.exceptions import DegenerateFoldError

logger = logging.getLogger(__name__)

METRIC_NAMES = [
    "accuracy",
    "precision",
    "sensitivity",
    "specificity",
    "f1",
    "roc_auc",
]


def _check_both_classes(y_true: np.ndarray):
    n_pos = int(np.sum(y_true == 1))
    n_neg = int(np.sum(y_true == 0))
    if n_pos == 0 or n_neg == 0:
        raise DegenerateFoldError(
            f"Evaluation set needs both classes (positives={n_pos}, negatives={n_neg})"
        )
    return n_pos, n_neg


def calculate_sensitivity(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Calculate sensitivity (recall for positive class).

    Sensitivity = TP / (TP + FN), 0 when there are no positives.
    """
    return recall_score(y_true, y_pred, pos_label=1, zero_division=0)


def calculate_specificity(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """
    Calculate specificity (recall for negative class).

    Specificity = TN / (TN + FP), 0 when there are no negatives.
    """
    return recall_score(y_true, y_pred, pos_label=0, zero_division=0)


def rank_sum_auc(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """
    ROC-AUC via the Mann-Whitney rank-sum statistic.

    AUC = (R_pos - n_pos * (n_pos + 1) / 2) / (n_pos * n_neg)

    where R_pos is the sum of the ranks of the positive samples among all
    scores and tied scores share their average rank.

    Parameters
    ----------
    y_true : np.ndarray
        True labels (0/1)
    y_score : np.ndarray
        Predicted probabilities for positive class

    Returns
    -------
    float
        AUC in [0, 1]

    Raises
    ------
    DegenerateFoldError
        If either class is absent
    """
    y_true = np.asarray(y_true).astype(int)
    y_score = np.asarray(y_score, dtype=float)

    n_pos, n_neg = _check_both_classes(y_true)

    ranks = rankdata(y_score, method="average")
    rank_sum_pos = ranks[y_true == 1].sum()

    return float((rank_sum_pos - n_pos * (n_pos + 1) / 2.0) / (n_pos * n_neg))


def calculate_all_metrics(
    y_true: np.ndarray,
    y_pred: Optional[np.ndarray],
    y_proba: np.ndarray,
    threshold: float = CLASSIFICATION_THRESHOLD,
) -> Dict[str, float]:
    """
    Calculate all evaluation metrics.

    Parameters
    ----------
    y_true : np.ndarray
        True labels
    y_pred : np.ndarray, optional
        Predicted labels (thresholded from y_proba if None or empty)
    y_proba : np.ndarray
        Predicted probabilities for positive class
    threshold : float
        Classification threshold (default: 0.5)

    Returns
    -------
    dict
        Dictionary of metric names and values
    """
    y_true = np.asarray(y_true).astype(int)
    y_proba = np.asarray(y_proba, dtype=float)

    # Ensure predictions are thresholded consistently
    if y_pred is None or len(y_pred) == 0:
        y_pred = (y_proba >= threshold).astype(int)
    y_pred = np.asarray(y_pred).astype(int)

    metrics = {}

    # Basic metrics
    metrics["accuracy"] = float(accuracy_score(y_true, y_pred))
    metrics["precision"] = float(
        precision_score(y_true, y_pred, pos_label=1, zero_division=0)
    )
    metrics["sensitivity"] = float(calculate_sensitivity(y_true, y_pred))
    metrics["specificity"] = float(calculate_specificity(y_true, y_pred))
    metrics["f1"] = float(f1_score(y_true, y_pred, pos_label=1, zero_division=0))

    # Probabilistic metrics
    try:
        metrics["roc_auc"] = rank_sum_auc(y_true, y_proba)
    except DegenerateFoldError as e:
        logger.warning(f"Could not calculate ROC-AUC: {e}")
        metrics["roc_auc"] = np.nan

    # Confusion matrix elements
    tn, fp, fn, tp = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
    metrics["tn"] = int(tn)
    metrics["fp"] = int(fp)
    metrics["fn"] = int(fn)
    metrics["tp"] = int(tp)

    metrics["threshold"] = float(threshold)

    return metrics


def calculate_roc_curve_data(
    y_true: np.ndarray,
    y_proba: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Calculate ROC curve data over every distinct probability.

    Thresholds are in descending order; the first point is (0, 0) with
    threshold +inf.

    Parameters
    ----------
    y_true : np.ndarray
        True labels
    y_proba : np.ndarray
        Predicted probabilities

    Returns
    -------
    fpr : np.ndarray
        False positive rates
    tpr : np.ndarray
        True positive rates
    thresholds : np.ndarray
        Thresholds

    Raises
    ------
    DegenerateFoldError
        If either class is absent
    """
    y_true = np.asarray(y_true).astype(int)
    _check_both_classes(y_true)

    fpr, tpr, thresholds = roc_curve(
        y_true, np.asarray(y_proba, dtype=float), pos_label=1, drop_intermediate=False
    )
    thresholds = thresholds.astype(float)
    # Older scikit-learn releases use max(score) + 1 instead of inf
    thresholds[0] = np.inf
    return fpr, tpr, thresholds


def roc_grid(n_points: int = ROC_GRID_POINTS) -> np.ndarray:
    """Shared false-positive-rate grid from 0 to 1 inclusive."""
    return np.linspace(0, 1, n_points)


def interpolate_roc(
    fpr: np.ndarray,
    tpr: np.ndarray,
    grid: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    Resample an ROC curve onto a false-positive-rate grid.

    TPR values sharing an FPR are averaged first; grid points outside the
    curve's FPR range take the nearest endpoint value.

    Parameters
    ----------
    fpr : np.ndarray
        False positive rates
    tpr : np.ndarray
        True positive rates
    grid : np.ndarray, optional
        FPR grid (default: 100 points from 0 to 1)

    Returns
    -------
    np.ndarray
        TPR at each grid point
    """
    if grid is None:
        grid = roc_grid()

    fpr = np.asarray(fpr, dtype=float)
    tpr = np.asarray(tpr, dtype=float)

    unique_fpr, inverse = np.unique(fpr, return_inverse=True)
    mean_tpr = np.bincount(inverse, weights=tpr) / np.bincount(inverse)

    # np.interp clamps to the endpoint values outside [unique_fpr[0], unique_fpr[-1]]
    return np.interp(grid, unique_fpr, mean_tpr)


def mean_roc_curve(tpr_rows: Sequence[np.ndarray]) -> np.ndarray:
    """
    Point-wise mean TPR across repeats, ignoring undefined (NaN) values.

    Parameters
    ----------
    tpr_rows : sequence of np.ndarray
        One gridded TPR array per repeat (all-NaN for undefined repeats)

    Returns
    -------
    np.ndarray
        Mean TPR per grid point; NaN where no repeat is defined
    """
    stacked = np.vstack([np.asarray(row, dtype=float) for row in tpr_rows])
    defined = ~np.isnan(stacked)
    counts = defined.sum(axis=0)
    sums = np.where(defined, stacked, 0.0).sum(axis=0)

    mean_tpr = np.full(stacked.shape[1], np.nan)
    np.divide(sums, counts, out=mean_tpr, where=counts > 0)
    return mean_tpr


def gridded_roc(
    y_true: np.ndarray,
    y_proba: np.ndarray,
    grid: Optional[np.ndarray] = None,
) -> np.ndarray:
    """
    ROC curve of one prediction table resampled onto ``grid``.

    Returns an all-NaN array when the curve is undefined (a class is absent).
    """
    if grid is None:
        grid = roc_grid()
    try:
        fpr, tpr, _ = calculate_roc_curve_data(y_true, y_proba)
    except DegenerateFoldError as e:
        logger.warning(f"Could not calculate ROC curve: {e}")
        return np.full(len(grid), np.nan)
    return interpolate_roc(fpr, tpr, grid)


def aggregate_metric_sets(
    metric_sets: List[Dict[str, float]],
    metric_names: Optional[List[str]] = None,
) -> pd.DataFrame:
    """
    Aggregate metrics across repeats/runs.

    Missing (NaN) values are skipped, so an undefined AUC in some repeats
    only reduces the number of contributing values for that metric.

    Parameters
    ----------
    metric_sets : list
        List of metric dictionaries, one per repeat/run
    metric_names : list, optional
        Metrics to aggregate (default: METRIC_NAMES)

    Returns
    -------
    pd.DataFrame
        Rows 'mean', 'sd' (sample, ddof=1) and 'n'; one column per metric
    """
    if metric_names is None:
        metric_names = METRIC_NAMES

    summary = {}

    for metric_name in metric_names:
        values = [
            m[metric_name]
            for m in metric_sets
            if metric_name in m and not np.isnan(m[metric_name])
        ]

        if not values:
            summary[metric_name] = {"mean": np.nan, "sd": np.nan, "n": 0}
            continue

        mean_val = float(np.mean(values))
        std_val = float(np.std(values, ddof=1)) if len(values) > 1 else 0.0

        summary[metric_name] = {"mean": mean_val, "sd": std_val, "n": len(values)}

    return pd.DataFrame(summary, index=["mean", "sd", "n"], columns=metric_names)
