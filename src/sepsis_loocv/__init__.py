"""
Sepsis LOOCV: repeated leave-one-out evaluation of sepsis classifiers

Evaluates random forest, gradient-boosted tree and support-vector classifiers
on small biomarker / clinical-score datasets via repeated leave-one-out
cross-validation and seed-repeated external validation with Youden-optimal
thresholds.
"""

__version__ = "1.0.0"

# Probability cut-off used when a classifier labels a held-out sample
CLASSIFICATION_THRESHOLD = 0.5

# Number of points on the shared false-positive-rate grid for ROC averaging
ROC_GRID_POINTS = 100

# Seed for (repeat, fold) is base_seed + SEED_STRIDE * repeat + fold
SEED_STRIDE = 10000

__all__ = [
    "__version__",
    "CLASSIFICATION_THRESHOLD",
    "ROC_GRID_POINTS",
    "SEED_STRIDE",
]
