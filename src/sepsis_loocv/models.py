"""
Classifier capabilities for sepsis prediction.

The evaluation engine never talks to a learning library directly; it calls a
capability object with two operations:

- ``train(X, y, seed)`` -> fitted model
- ``score(model, X)`` -> (predicted labels, positive-class probabilities)

Includes:
- Random Forest
- XGBoost (gradient-boosted trees)
- Support-vector machine (RBF kernel, standardized inputs)
- Majority-class baseline
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from sklearn.ensemble import RandomForestClassifier
from sklearn.pipeline import Pipeline
from sklearn.preprocessing import StandardScaler
from sklearn.svm import SVC
from xgboost import XGBClassifier

from sepsis_loocv import CLASSIFICATION_THRESHOLD
from sepsis_loocv.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


def create_random_forest_classifier(
    params: Dict[str, Any],
    random_state: int = 42,
) -> RandomForestClassifier:
    """
    Create Random Forest classifier.

    Parameters
    ----------
    params : dict
        Hyperparameters (n_estimators, max_depth, max_features,
                         min_samples_split, min_samples_leaf,
                         bootstrap, oob_score, class_weight)
    random_state : int
        Random state

    Returns
    -------
    RandomForestClassifier
        Configured model
    """
    return RandomForestClassifier(
        n_estimators=params.get("n_estimators", 500),
        max_depth=params.get("max_depth", None),
        max_features=params.get("max_features", "sqrt"),
        min_samples_split=params.get("min_samples_split", 2),
        min_samples_leaf=params.get("min_samples_leaf", 1),
        bootstrap=params.get("bootstrap", True),
        oob_score=params.get("oob_score", False),
        class_weight=params.get("class_weight", None),
        random_state=random_state,
        n_jobs=params.get("n_jobs", 1),
    )


def create_xgboost_classifier(
    params: Dict[str, Any],
    random_state: int = 42,
) -> XGBClassifier:
    """
    Create XGBoost classifier.

    Parameters
    ----------
    params : dict
        Hyperparameters (n_estimators, max_depth, learning_rate,
                         subsample, colsample_bytree, reg_alpha,
                         reg_lambda, min_child_weight, gamma)
    random_state : int
        Random state

    Returns
    -------
    XGBClassifier
        Configured model
    """
    return XGBClassifier(
        n_estimators=params.get("n_estimators", 100),
        max_depth=params.get("max_depth", 3),
        learning_rate=params.get("learning_rate", 0.1),
        subsample=params.get("subsample", 1.0),
        colsample_bytree=params.get("colsample_bytree", 1.0),
        reg_alpha=params.get("reg_alpha", 0.0),
        reg_lambda=params.get("reg_lambda", 1.0),
        min_child_weight=params.get("min_child_weight", 1),
        gamma=params.get("gamma", 0.0),
        random_state=random_state,
        eval_metric="logloss",
        n_jobs=params.get("n_jobs", 1),
    )


def create_svm_classifier(
    params: Dict[str, Any],
    random_state: int = 42,
) -> Pipeline:
    """
    Create support-vector classifier with standardized inputs.

    Parameters
    ----------
    params : dict
        Hyperparameters (C, kernel, gamma, class_weight)
    random_state : int
        Random state (used by the Platt-scaling cross-validation)

    Returns
    -------
    Pipeline
        StandardScaler followed by SVC with probability estimates
    """
    return Pipeline(
        [
            ("scaler", StandardScaler()),
            (
                "svc",
                SVC(
                    C=params.get("C", 1.0),
                    kernel=params.get("kernel", "rbf"),
                    gamma=params.get("gamma", "scale"),
                    class_weight=params.get("class_weight", None),
                    probability=True,
                    random_state=random_state,
                ),
            ),
        ]
    )


MODEL_FACTORY = {
    "rf": create_random_forest_classifier,
    "xgb": create_xgboost_classifier,
    "svm": create_svm_classifier,
}

MODEL_NAMES = {
    "rf": "Random Forest",
    "xgb": "XGBoost",
    "svm": "Support Vector Machine",
    "baseline": "Baseline (Majority Class)",
}


def create_model(
    model_type: str,
    params: Dict[str, Any],
    random_state: int = 42,
):
    """
    Factory function to create any model by type.

    Parameters
    ----------
    model_type : str
        Model type code ('rf', 'xgb', 'svm')
    params : dict
        Hyperparameters
    random_state : int
        Random state

    Returns
    -------
    estimator
        Configured sklearn/xgboost estimator
    """
    if model_type not in MODEL_FACTORY:
        raise ConfigurationError(
            f"Unknown model type: {model_type}. "
            f"Available: {list(MODEL_FACTORY.keys())}"
        )

    return MODEL_FACTORY[model_type](params, random_state=random_state)


def get_model_name(model_type: str) -> str:
    """Get human-readable model name."""
    return MODEL_NAMES.get(model_type, model_type)


def compute_class_weights(y: np.ndarray) -> Dict[int, float]:
    """
    Inverse-prevalence class weights ``{0: 1/p0, 1: 1/p1}``.

    Raises
    ------
    ConfigurationError
        If either class is absent (its weight would be infinite)
    """
    y = np.asarray(y)
    weights = {}
    for cls in (0, 1):
        prevalence = float(np.mean(y == cls)) if len(y) else 0.0
        if prevalence == 0.0:
            raise ConfigurationError(
                f"Class {cls} has zero prevalence in the training labels; "
                "cannot compute inverse-prevalence class weights"
            )
        weights[cls] = 1.0 / prevalence

    logger.debug(f"Class weights: {weights}")
    return weights


def _positive_column(model, proba: np.ndarray) -> np.ndarray:
    """Extract P(class 1); a model trained on negatives only never predicts it."""
    classes = list(getattr(model, "classes_", [0, 1]))
    if 1 not in classes:
        return np.zeros(proba.shape[0])
    return proba[:, classes.index(1)]


def validate_probabilities(y_proba) -> np.ndarray:
    """
    Positive-class probabilities as a float array.

    Raises
    ------
    ValueError
        If any value is missing or outside [0, 1]
    """
    y_proba = np.asarray(y_proba, dtype=float)
    if np.isnan(y_proba).any() or (y_proba < 0).any() or (y_proba > 1).any():
        raise ValueError(
            f"Classifier returned probabilities outside [0, 1]: "
            f"min={np.nanmin(y_proba) if len(y_proba) else np.nan}, "
            f"max={np.nanmax(y_proba) if len(y_proba) else np.nan}"
        )
    return y_proba


class ClassifierCapability:
    """
    Interface between the evaluation engine and a learning algorithm.

    Subclasses implement ``train`` and ``score``; ``oob_proba`` and
    ``feature_importances`` are optional and return None when unsupported.
    ``class_weighted`` marks capabilities that weight classes by inverse
    prevalence, so every training set they see needs both classes.
    """

    name = "classifier"
    class_weighted = False

    def train(self, X: pd.DataFrame, y: np.ndarray, seed: int):
        raise NotImplementedError

    def score(self, model, X: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        raise NotImplementedError

    def oob_proba(self, model) -> Optional[np.ndarray]:
        return None

    def feature_importances(
        self, model, feature_names: List[str]
    ) -> Optional[Dict[str, float]]:
        return None


class SklearnCapability(ClassifierCapability):
    """
    Capability backed by the model factory.

    Parameters
    ----------
    model_type : str
        Model type code ('rf', 'xgb', 'svm')
    params : dict, optional
        Hyperparameters forwarded to the factory
    class_weighted : bool
        Weight classes by inverse prevalence of the training labels
    threshold : float
        Probability cut-off for the predicted label
    """

    def __init__(
        self,
        model_type: str,
        params: Optional[Dict[str, Any]] = None,
        class_weighted: bool = False,
        threshold: float = CLASSIFICATION_THRESHOLD,
    ):
        if model_type not in MODEL_FACTORY:
            raise ConfigurationError(
                f"Unknown model type: {model_type}. "
                f"Available: {list(MODEL_FACTORY.keys())}"
            )
        self.model_type = model_type
        self.params = dict(params or {})
        self.class_weighted = class_weighted
        self.threshold = threshold
        self.name = get_model_name(model_type)

    def train(self, X: pd.DataFrame, y: np.ndarray, seed: int):
        params = dict(self.params)
        sample_weight = None

        if self.class_weighted:
            weights = compute_class_weights(y)
            if self.model_type == "xgb":
                sample_weight = np.array([weights[int(label)] for label in y])
            else:
                params["class_weight"] = weights

        model = create_model(self.model_type, params, random_state=seed)

        if sample_weight is not None:
            model.fit(X, y, sample_weight=sample_weight)
        else:
            model.fit(X, y)
        return model

    def score(self, model, X: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        y_proba = _positive_column(model, model.predict_proba(X))
        y_pred = (y_proba >= self.threshold).astype(int)
        return y_pred, y_proba

    def oob_proba(self, model) -> Optional[np.ndarray]:
        oob = getattr(model, "oob_decision_function_", None)
        if oob is None:
            return None
        oob_positive = _positive_column(model, oob)
        if np.isnan(oob_positive).any():
            # Some samples were in every bootstrap; too few trees for OOB
            logger.warning("Incomplete out-of-bag estimates; increase n_estimators")
            return None
        return oob_positive

    def feature_importances(
        self, model, feature_names: List[str]
    ) -> Optional[Dict[str, float]]:
        importances = getattr(model, "feature_importances_", None)
        if importances is None:
            return None
        return {name: float(value) for name, value in zip(feature_names, importances)}


class MajorityClassCapability(ClassifierCapability):
    """
    Baseline classifier that always predicts the majority class.

    Used to contextualize model performance relative to a trivial strategy,
    and as a deterministic stand-in for a learning algorithm.
    """

    name = get_model_name("baseline")

    def train(self, X: pd.DataFrame, y: np.ndarray, seed: int):
        classes, counts = np.unique(y, return_counts=True)
        majority_class = int(classes[np.argmax(counts)])
        logger.debug(f"Majority class baseline: always predict class {majority_class}")
        return majority_class

    def score(self, model, X: pd.DataFrame) -> Tuple[np.ndarray, np.ndarray]:
        n_samples = len(X)
        y_pred = np.full(n_samples, model, dtype=int)
        # Probability 1.0 for the majority class
        y_proba = np.full(n_samples, float(model == 1))
        return y_pred, y_proba


def create_capability(
    model_type: str,
    params: Optional[Dict[str, Any]] = None,
    class_weighted: bool = False,
) -> ClassifierCapability:
    """Build the capability for a model type code ('baseline' included)."""
    if model_type == "baseline":
        return MajorityClassCapability()
    return SklearnCapability(model_type, params=params, class_weighted=class_weighted)
