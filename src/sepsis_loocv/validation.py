"""
Seed-repeated external validation with Youden-optimal thresholds.

Each run:
1. Weights classes by inverse prevalence of the training labels (optional)
2. Fits the classifier on the full training set with seed base_seed + run
3. Selects the Youden threshold from internal (OOB / out-of-fold)
   training-set probabilities
4. Scores the validation set once with that threshold

Metrics, predictions and feature importances are collected per run and
aggregated across runs.
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from tqdm import tqdm

from sepsis_loocv import ROC_GRID_POINTS
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
from sepsis_loocv.models import (
    ClassifierCapability,
    compute_class_weights,
    validate_probabilities,
)
from sepsis_loocv.threshold import select_threshold

logger = logging.getLogger(__name__)


class SeedRepeatedValidator:
    """
    Repeats train-on-train / score-on-validation with different seeds.

    Parameters
    ----------
    X_train : pd.DataFrame
        Training features
    y_train : np.ndarray
        Training labels (0/1)
    X_val : pd.DataFrame
        Validation features (same columns as X_train)
    y_val : np.ndarray
        Validation labels (0/1)
    capability : ClassifierCapability
        Classifier training/scoring capability
    n_runs : int
        Number of runs (default: 100)
    base_seed : int
        Run r uses seed base_seed + r
    val_identifiers : array-like, optional
        Validation sample identifiers for the prediction exports
    internal_cv_folds : int
        Folds for out-of-fold probabilities when no OOB estimate exists
    grid_points : int
        Number of FPR grid points for ROC averaging
    """

    def __init__(
        self,
        X_train: pd.DataFrame,
        y_train: np.ndarray,
        X_val: pd.DataFrame,
        y_val: np.ndarray,
        capability: ClassifierCapability,
        n_runs: int = 100,
        base_seed: int = 0,
        val_identifiers: Optional[np.ndarray] = None,
        internal_cv_folds: int = 5,
        grid_points: int = ROC_GRID_POINTS,
    ):
        if list(X_train.columns) != list(X_val.columns):
            raise ConfigurationError(
                "Training and validation feature columns differ: "
                f"{list(X_train.columns)} vs {list(X_val.columns)}"
            )
        if n_runs < 1:
            raise ConfigurationError(f"n_runs must be at least 1, got {n_runs}")
        if getattr(capability, "class_weighted", False):
            # Fails with ConfigurationError when a class has zero prevalence
            compute_class_weights(y_train)

        self.X_train = X_train.reset_index(drop=True)
        self.y_train = np.asarray(y_train).astype(int)
        self.X_val = X_val.reset_index(drop=True)
        self.y_val = np.asarray(y_val).astype(int)
        self.capability = capability
        self.n_runs = n_runs
        self.base_seed = base_seed
        self.internal_cv_folds = internal_cv_folds
        self.grid = roc_grid(grid_points)

        if val_identifiers is None:
            self.val_identifiers = np.arange(len(self.y_val))
        else:
            self.val_identifiers = np.asarray(val_identifiers)

        # Results storage
        self.results_: List[Dict[str, Any]] = []
        self.last_model_ = None

    def run_single(self, run: int) -> Dict[str, Any]:
        """
        Fit, pick the threshold and score the validation set for one run.

        Parameters
        ----------
        run : int
            Run index (1-based)

        Returns
        -------
        dict
            run, seed, threshold, predictions, metrics, tpr_grid,
            feature_importances
        """
        seed = self.base_seed + run

        try:
            model = self.capability.train(self.X_train, self.y_train, seed)
            threshold = select_threshold(
                self.capability,
                model,
                self.X_train,
                self.y_train,
                seed,
                n_splits=self.internal_cv_folds,
            )
            _, y_proba = self.capability.score(model, self.X_val)
            y_proba = validate_probabilities(y_proba)
        except SepsisEvaluationError:
            raise
        except Exception as e:
            raise ExternalCapabilityError(
                f"Classifier failed in run {run} (seed {seed}): {e}",
                repeat=run,
            ) from e

        y_pred = (y_proba >= threshold).astype(int)

        metrics = calculate_all_metrics(
            y_true=self.y_val,
            y_pred=y_pred,
            y_proba=y_proba,
            threshold=threshold,
        )

        predictions = pd.DataFrame(
            {
                "identifier": self.val_identifiers,
                "y_true": self.y_val,
                "y_pred": y_pred,
                "y_proba": y_proba,
            }
        )

        self.last_model_ = model

        return {
            "run": run,
            "seed": seed,
            "threshold": threshold,
            "predictions": predictions,
            "metrics": metrics,
            "tpr_grid": gridded_roc(self.y_val, y_proba, self.grid),
            "feature_importances": self.capability.feature_importances(
                model, list(self.X_train.columns)
            ),
        }

    def run(self) -> List[Dict[str, Any]]:
        """Run all validation runs sequentially."""
        logger.info(
            f"Starting {self.n_runs} validation runs with {self.capability.name}: "
            f"{len(self.y_train)} training / {len(self.y_val)} validation samples"
        )

        self.results_ = []

        for run in tqdm(range(1, self.n_runs + 1), desc="Validation runs"):
            result = self.run_single(run)
            self.results_.append(result)

            metrics = result["metrics"]
            logger.info(
                f"Run {run}/{self.n_runs} (threshold={result['threshold']:.3f}): "
                f"Acc={metrics['accuracy']:.3f}, "
                f"Sens={metrics['sensitivity']:.3f}, "
                f"Spec={metrics['specificity']:.3f}, "
                f"F1={metrics['f1']:.3f}, "
                f"ROC-AUC={metrics['roc_auc']:.3f}"
            )

        return self.results_

    def summary(self) -> pd.DataFrame:
        """Mean / sd / n of each metric across completed runs."""
        return aggregate_metric_sets([r["metrics"] for r in self.results_])

    def mean_roc(self):
        """Shared FPR grid and point-wise mean validation TPR across runs."""
        return self.grid, mean_roc_curve([r["tpr_grid"] for r in self.results_])

    def feature_importance_table(self) -> Optional[pd.DataFrame]:
        """
        Feature importances per run (rows) plus a 'mean' row.

        Returns None when the capability exposes no importances.
        """
        rows = {
            r["run"]: r["feature_importances"]
            for r in self.results_
            if r["feature_importances"] is not None
        }
        if not rows:
            return None

        table = pd.DataFrame.from_dict(rows, orient="index")
        table.index.name = "run"
        table.loc["mean"] = table.mean(axis=0)
        return table


def run_external_validation(
    train_df: pd.DataFrame,
    val_df: pd.DataFrame,
    feature_names: Optional[List[str]],
    target_col: str,
    positive_label: Any,
    capability: ClassifierCapability,
    config: Dict[str, Any],
    id_col: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Convenience function to run the seed-repeated validation flow.

    Both dataframes are validated before any classifier is trained. The
    identifier column is required in the validation frame only.

    Returns
    -------
    dict
        runs, summary, mean_roc, feature_importance, validator
    """
    validate_columns(train_df, [target_col], role="target")
    validate_columns(val_df, [target_col], role="target")

    X_train, y_train, feature_names = prepare_dataset(
        train_df,
        target_col=target_col,
        positive_label=positive_label,
        feature_names=feature_names,
        # Identifiers are only exported for validation predictions
        id_col=id_col if id_col in train_df.columns else None,
        exclude_keywords=config.get("exclude_keywords"),
    )
    X_val, y_val, _ = prepare_dataset(
        val_df,
        target_col=target_col,
        positive_label=positive_label,
        feature_names=feature_names,
        id_col=id_col,
    )

    validator = SeedRepeatedValidator(
        X_train=X_train,
        y_train=y_train,
        X_val=X_val,
        y_val=y_val,
        capability=capability,
        n_runs=config.get("n_runs", 100),
        base_seed=config.get("random_state", 0),
        val_identifiers=None if id_col is None else val_df[id_col].to_numpy(),
        internal_cv_folds=config.get("internal_cv_folds", 5),
        grid_points=config.get("roc_grid_points", ROC_GRID_POINTS),
    )

    runs = validator.run()

    return {
        "runs": runs,
        "summary": validator.summary(),
        "mean_roc": validator.mean_roc(),
        "feature_importance": validator.feature_importance_table(),
        "feature_names": feature_names,
        "validator": validator,
    }
