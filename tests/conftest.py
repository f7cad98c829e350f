"""Shared fixtures and deterministic stub classifiers."""

import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from sepsis_loocv.models import ClassifierCapability


class FirstFeatureCapability(ClassifierCapability):
    """Scores each sample by its first feature; records every training seed."""

    name = "first-feature stub"

    def __init__(self):
        self.train_seeds = []

    def train(self, X, y, seed):
        self.train_seeds.append(seed)
        return {
            "seed": seed,
            "n_train": len(y),
            "train_proba": X.iloc[:, 0].to_numpy(dtype=float),
        }

    def score(self, model, X):
        proba = np.clip(X.iloc[:, 0].to_numpy(dtype=float), 0.0, 1.0)
        return (proba >= 0.5).astype(int), proba


class OutOfBagStubCapability(FirstFeatureCapability):
    """First-feature stub that also exposes its training scores as out-of-bag."""

    def oob_proba(self, model):
        return model["train_proba"]


class WeightedStubCapability(OutOfBagStubCapability):
    """Out-of-bag stub that declares inverse-prevalence class weighting."""

    class_weighted = True


class UnboundedCapability(FirstFeatureCapability):
    """Returns the raw first feature, which may fall outside [0, 1]."""

    def score(self, model, X):
        proba = X.iloc[:, 0].to_numpy(dtype=float)
        return (proba >= 0.5).astype(int), proba


class FailingCapability(FirstFeatureCapability):
    """Raises a library-style error when training with ``fail_seed``."""

    def __init__(self, fail_seed):
        super().__init__()
        self.fail_seed = fail_seed

    def train(self, X, y, seed):
        if seed == self.fail_seed:
            raise RuntimeError("solver did not converge")
        return super().train(X, y, seed)


# ==================== Fixtures ====================


@pytest.fixture
def stub_capability() -> FirstFeatureCapability:
    return FirstFeatureCapability()


@pytest.fixture
def oob_capability() -> OutOfBagStubCapability:
    return OutOfBagStubCapability()


@pytest.fixture
def small_cohort() -> pd.DataFrame:
    """8 patients, 2 biomarkers, 4 septic; crp alone separates 3 of 4 positives."""
    return pd.DataFrame(
        {
            "patient_id": [f"P{i:02d}" for i in range(1, 9)],
            "crp": [0.92, 0.81, 0.66, 0.45, 0.55, 0.31, 0.22, 0.10],
            "pct": [2.1, 1.7, 0.9, 1.2, 0.4, 0.3, 0.6, 0.2],
            "sepsis": [1, 1, 1, 1, 0, 0, 0, 0],
        }
    )


@pytest.fixture
def synthetic_cohort() -> pd.DataFrame:
    """40 patients, 5 informative biomarkers, ~40% septic."""
    rng = np.random.default_rng(7)
    n_samples = 40
    y = (np.arange(n_samples) % 5 < 2).astype(int)
    X = rng.normal(size=(n_samples, 5)) + y[:, None] * 1.5

    df = pd.DataFrame(X, columns=[f"marker_{i}" for i in range(5)])
    df["sepsis"] = y
    return df
