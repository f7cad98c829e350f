"""
Operating-threshold selection with Youden's J statistic.

LEAKAGE PREVENTION:
- The ROC curve used for selection comes from internal probabilities on the
  training set only (out-of-bag, or out-of-fold when the classifier has no
  out-of-bag estimate)
- The validation set is scored once with the selected threshold

Tie-break:
- J values within floating-point tolerance count as equal
- The first maximizer in descending-threshold order wins (highest
  threshold, lowest false-positive rate)
"""

import logging

import numpy as np
import pandas as pd
from sklearn.model_selection import StratifiedKFold

from sepsis_loocv.exceptions import DegenerateFoldError
from sepsis_loocv.metrics import calculate_roc_curve_data
from sepsis_loocv.models import ClassifierCapability

logger = logging.getLogger(__name__)


def youden_index(fpr: np.ndarray, tpr: np.ndarray, thresholds: np.ndarray) -> int:
    """
    Index of the ROC point maximizing J = TPR - FPR.

    Only points with a finite threshold are candidates.

    Parameters
    ----------
    fpr : np.ndarray
        False positive rates
    tpr : np.ndarray
        True positive rates
    thresholds : np.ndarray
        Thresholds in descending order

    Returns
    -------
    int
        Index into the ROC arrays
    """
    fpr = np.asarray(fpr, dtype=float)
    tpr = np.asarray(tpr, dtype=float)
    thresholds = np.asarray(thresholds, dtype=float)

    candidates = np.flatnonzero(np.isfinite(thresholds))
    if len(candidates) == 0:
        raise DegenerateFoldError("ROC curve has no finite threshold to select")

    j = tpr[candidates] - fpr[candidates]
    maximizers = candidates[np.isclose(j, j.max())]
    return int(maximizers[0])


def youden_threshold(fpr: np.ndarray, tpr: np.ndarray, thresholds: np.ndarray) -> float:
    """
    Threshold maximizing sensitivity + specificity - 1.

    Returns
    -------
    float
        Exactly one threshold value
    """
    idx = youden_index(fpr, tpr, thresholds)
    logger.debug(
        f"Youden threshold {thresholds[idx]:.4f}: "
        f"TPR={tpr[idx]:.3f}, FPR={fpr[idx]:.3f}, J={tpr[idx] - fpr[idx]:.3f}"
    )
    return float(thresholds[idx])


def out_of_fold_probabilities(
    capability: ClassifierCapability,
    X_train: pd.DataFrame,
    y_train: np.ndarray,
    seed: int,
    n_splits: int = 5,
) -> np.ndarray:
    """
    Out-of-fold positive-class probabilities on the training set.

    The number of folds is reduced to the minority-class size when needed.
    """
    min_class_count = int(np.bincount(np.asarray(y_train), minlength=2).min())
    n_splits = min(n_splits, min_class_count)
    if n_splits < 2:
        raise DegenerateFoldError(
            f"Minority class has {min_class_count} training sample(s); "
            "cannot build out-of-fold probabilities"
        )

    cv = StratifiedKFold(n_splits=n_splits, shuffle=True, random_state=seed)
    oof = np.zeros(len(y_train), dtype=float)

    for train_idx, test_idx in cv.split(X_train, y_train):
        model = capability.train(X_train.iloc[train_idx], y_train[train_idx], seed)
        _, proba = capability.score(model, X_train.iloc[test_idx])
        oof[test_idx] = proba

    return oof


def internal_probabilities(
    capability: ClassifierCapability,
    model,
    X_train: pd.DataFrame,
    y_train: np.ndarray,
    seed: int,
    n_splits: int = 5,
) -> np.ndarray:
    """
    Training-set probabilities that were not fitted on the sample itself.

    Uses the capability's out-of-bag estimate when available, otherwise
    stratified out-of-fold probabilities.
    """
    oob = capability.oob_proba(model)
    if oob is not None:
        logger.debug("Using out-of-bag probabilities for threshold selection")
        return oob

    logger.debug(f"Using {n_splits}-fold out-of-fold probabilities for threshold selection")
    return out_of_fold_probabilities(capability, X_train, y_train, seed, n_splits=n_splits)


def select_threshold(
    capability: ClassifierCapability,
    model,
    X_train: pd.DataFrame,
    y_train: np.ndarray,
    seed: int,
    n_splits: int = 5,
) -> float:
    """Youden-optimal threshold from internal training-set probabilities."""
    proba = internal_probabilities(capability, model, X_train, y_train, seed, n_splits)
    fpr, tpr, thresholds = calculate_roc_curve_data(y_train, proba)
    return youden_threshold(fpr, tpr, thresholds)
