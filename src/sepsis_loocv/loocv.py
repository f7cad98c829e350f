"""
Repeated leave-one-out cross-validation orchestrator.

Implements R x LOOCV:
- Each repeat holds out every sample exactly once
- Fold i trains on all samples except i with seed
  base_seed + SEED_STRIDE * repeat + i
- Predictions from all folds are collected before metrics are computed

Model fitting is delegated to a ClassifierCapability; the orchestrator only
does the bookkeeping (splits, seeds, metric and ROC aggregation).
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from tqdm import tqdm

from sepsis_loocv import ROC_GRID_POINTS, SEED_STRIDE
from sepsis_loocv.exceptions import (
    ConfigurationError,
    ExternalCapabilityError,
    SepsisEvaluationError,
)
from sepsis_loocv.io import prepare_dataset, validate_columns
from sepsis_loocv.metrics import (
    aggregate_metric_sets,
    calculate_all_metrics,
    gridded_roc,
    mean_roc_curve,
    roc_grid,
)
from sepsis_loocv.models import ClassifierCapability, validate_probabilities

logger = logging.getLogger(__name__)


def fold_seed(repeat: int, fold: int, base_seed: int = 0) -> int:
    """Seed for training fold ``fold`` of repeat ``repeat``."""
    return base_seed + SEED_STRIDE * repeat + fold


def _fit_and_score_fold(
    capability: ClassifierCapability,
    X: pd.DataFrame,
    y: np.ndarray,
    repeat: int,
    fold: int,
    seed: int,
) -> Dict[str, Any]:
    """Train without sample ``fold`` and score it."""
    train_mask = np.ones(len(y), dtype=bool)
    train_mask[fold] = False

    try:
        model = capability.train(X.iloc[train_mask], y[train_mask], seed)
        y_pred, y_proba = capability.score(model, X.iloc[[fold]])
        y_proba = validate_probabilities(y_proba)
    except SepsisEvaluationError:
        raise
    except Exception as e:
        raise ExternalCapabilityError(
            f"Classifier failed in repeat {repeat}, fold {fold} (seed {seed}): {e}",
            repeat=repeat,
            fold=fold,
        ) from e

    return {
        "sample_index": fold,
        "y_true": int(y[fold]),
        "y_pred": int(np.asarray(y_pred)[0]),
        "y_proba": float(np.asarray(y_proba)[0]),
    }


class RepeatedLOOCVOrchestrator:
    """
    Orchestrates repeated leave-one-out cross-validation.

    Parameters
    ----------
    X : pd.DataFrame
        Feature matrix
    y : np.ndarray
        Target labels (0/1)
    capability : ClassifierCapability
        Classifier training/scoring capability
    n_repeats : int
        Number of LOOCV repeats (default: 10)
    base_seed : int
        Offset added to every fold seed
    n_jobs : int
        Parallel jobs over folds (default: 1 = sequential)
    identifiers : array-like, optional
        Sample identifiers copied into the prediction tables
    grid_points : int
        Number of FPR grid points for ROC averaging
    """

    def __init__(
        self,
        X: pd.DataFrame,
        y: np.ndarray,
        capability: ClassifierCapability,
        n_repeats: int = 10,
        base_seed: int = 0,
        n_jobs: int = 1,
        identifiers: Optional[np.ndarray] = None,
        grid_points: int = ROC_GRID_POINTS,
    ):
        n_samples = len(y)
        if n_samples < 2:
            raise ConfigurationError(
                f"LOOCV needs at least 2 samples, got {n_samples}"
            )
        if n_samples > SEED_STRIDE:
            raise ConfigurationError(
                f"LOOCV seeds are unique for at most {SEED_STRIDE} samples, got {n_samples}"
            )
        if n_samples < 3:
            logger.warning(
                f"Only {n_samples} samples: every training set has a single sample"
            )
        if len(X) != n_samples:
            raise ConfigurationError(
                f"Feature matrix has {len(X)} rows but {n_samples} labels"
            )
        if n_repeats < 1:
            raise ConfigurationError(f"n_repeats must be at least 1, got {n_repeats}")

        y = np.asarray(y).astype(int)
        if getattr(capability, "class_weighted", False):
            # Holding out the only sample of a class leaves a single-class training set
            class_counts = np.bincount(y, minlength=2)
            if class_counts.min() < 2:
                raise ConfigurationError(
                    "Class-weighted LOOCV needs at least 2 samples per class, "
                    f"got {class_counts[0]} negative and {class_counts[1]} positive"
                )

        self.X = X.reset_index(drop=True)
        self.y = y
        self.capability = capability
        self.n_repeats = n_repeats
        self.base_seed = base_seed
        self.n_jobs = n_jobs
        self.identifiers = None if identifiers is None else np.asarray(identifiers)
        self.grid = roc_grid(grid_points)

        # Results storage
        self.results_: List[Dict[str, Any]] = []

    def run_repeat(self, repeat: int) -> pd.DataFrame:
        """
        Run one LOOCV pass.

        Parameters
        ----------
        repeat : int
            Repeat index (part of every fold seed)

        Returns
        -------
        pd.DataFrame
            One row per sample: sample_index, [identifier], y_true, y_pred, y_proba
        """
        n_samples = len(self.y)
        seeds = [fold_seed(repeat, fold, self.base_seed) for fold in range(n_samples)]

        if self.n_jobs == 1:
            records = [
                _fit_and_score_fold(self.capability, self.X, self.y, repeat, fold, seed)
                for fold, seed in enumerate(seeds)
            ]
        else:
            records = Parallel(n_jobs=self.n_jobs)(
                delayed(_fit_and_score_fold)(
                    self.capability, self.X, self.y, repeat, fold, seed
                )
                for fold, seed in enumerate(seeds)
            )

        predictions = (
            pd.DataFrame(records)
            .sort_values("sample_index")
            .reset_index(drop=True)
        )

        if self.identifiers is not None:
            predictions.insert(
                1,
                "identifier",
                self.identifiers[predictions["sample_index"].to_numpy()],
            )

        return predictions

    def run(self) -> List[Dict[str, Any]]:
        """
        Run all repeats.

        Returns
        -------
        list
            One result dict per repeat with keys repeat, predictions,
            metrics and tpr_grid
        """
        logger.info(
            f"Starting {self.n_repeats}x LOOCV on {len(self.y)} samples "
            f"with {self.capability.name}"
        )

        self.results_ = []

        for repeat in tqdm(range(1, self.n_repeats + 1), desc="LOOCV repeats"):
            predictions = self.run_repeat(repeat)

            metrics = calculate_all_metrics(
                y_true=predictions["y_true"].to_numpy(),
                y_pred=predictions["y_pred"].to_numpy(),
                y_proba=predictions["y_proba"].to_numpy(),
            )
            tpr_grid = gridded_roc(
                predictions["y_true"].to_numpy(),
                predictions["y_proba"].to_numpy(),
                self.grid,
            )

            self.results_.append(
                {
                    "repeat": repeat,
                    "predictions": predictions,
                    "metrics": metrics,
                    "tpr_grid": tpr_grid,
                }
            )

            logger.info(
                f"Repeat {repeat}/{self.n_repeats}: "
                f"Acc={metrics['accuracy']:.3f}, "
                f"Sens={metrics['sensitivity']:.3f}, "
                f"Spec={metrics['specificity']:.3f}, "
                f"F1={metrics['f1']:.3f}, "
                f"ROC-AUC={metrics['roc_auc']:.3f}"
            )

        return self.results_

    def summary(self) -> pd.DataFrame:
        """Mean / sd / n of each metric across completed repeats."""
        return aggregate_metric_sets([r["metrics"] for r in self.results_])

    def mean_roc(self):
        """Shared FPR grid and point-wise mean TPR across completed repeats."""
        return self.grid, mean_roc_curve([r["tpr_grid"] for r in self.results_])


def run_repeated_loocv(
    df: pd.DataFrame,
    feature_names: Optional[List[str]],
    target_col: str,
    positive_label: Any,
    capability: ClassifierCapability,
    config: Dict[str, Any],
    id_col: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Convenience function to run repeated LOOCV on a dataframe.

    Column validation happens before any classifier is trained.

    Parameters
    ----------
    df : pd.DataFrame
        Dataset
    feature_names : list, optional
        Feature columns (None = all numeric non-target columns)
    target_col : str
        Target column
    positive_label : Any
        Positive target level
    capability : ClassifierCapability
        Classifier capability
    config : dict
        Configuration dictionary (n_repeats, random_state, n_jobs,
        roc_grid_points, exclude_keywords)
    id_col : str, optional
        Identifier column

    Returns
    -------
    dict
        repeats (per-repeat results), summary (DataFrame) and
        mean_roc ((grid, mean_tpr))
    """
    validate_columns(df, [target_col], role="target")

    X, y, feature_names = prepare_dataset(
        df,
        target_col=target_col,
        positive_label=positive_label,
        feature_names=feature_names,
        id_col=id_col,
        exclude_keywords=config.get("exclude_keywords"),
    )

    orchestrator = RepeatedLOOCVOrchestrator(
        X=X,
        y=y,
        capability=capability,
        n_repeats=config.get("n_repeats", 10),
        base_seed=config.get("random_state", 0),
        n_jobs=config.get("n_jobs", 1),
        identifiers=None if id_col is None else df[id_col].to_numpy(),
        grid_points=config.get("roc_grid_points", ROC_GRID_POINTS),
    )

    repeats = orchestrator.run()

    return {
        "repeats": repeats,
        "summary": orchestrator.summary(),
        "mean_roc": orchestrator.mean_roc(),
        "feature_names": feature_names,
    }
