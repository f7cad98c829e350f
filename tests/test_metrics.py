"""Test suite for metrics module.

Covers:
- Confusion-matrix metrics with zero-denominator handling
- Rank-sum AUC against brute-force pairwise counting
- ROC interpolation onto a shared grid and point-wise averaging
- Aggregation across repeats with missing AUC values
"""

import itertools

import numpy as np
import pandas as pd
import pytest

from sepsis_loocv.exceptions import DegenerateFoldError
from sepsis_loocv.metrics import (
    METRIC_NAMES,
    aggregate_metric_sets,
    calculate_all_metrics,
    calculate_roc_curve_data,
    gridded_roc,
    interpolate_roc,
    mean_roc_curve,
    rank_sum_auc,
    roc_grid,
)


def brute_force_auc(y_true, y_score):
    """Fraction of (positive, negative) pairs ranked correctly, ties count half."""
    pos = [s for s, t in zip(y_score, y_true) if t == 1]
    neg = [s for s, t in zip(y_score, y_true) if t == 0]
    total = 0.0
    for p, n in itertools.product(pos, neg):
        if p > n:
            total += 1.0
        elif p == n:
            total += 0.5
    return total / (len(pos) * len(neg))


# ==================== Confusion metrics ====================


class TestCalculateAllMetrics:
    def test_four_sample_example(self):
        y_true = np.array([1, 1, 0, 0])
        y_proba = np.array([0.9, 0.3, 0.6, 0.1])

        metrics = calculate_all_metrics(y_true, None, y_proba, threshold=0.5)

        assert (metrics["tp"], metrics["fp"], metrics["fn"], metrics["tn"]) == (1, 1, 1, 1)
        for name in ["accuracy", "precision", "sensitivity", "specificity", "f1"]:
            assert metrics[name] == pytest.approx(0.5)
        # Positives 0.9 and 0.3 beat 0.6/0.1 in 3 of the 4 pairs
        assert metrics["roc_auc"] == pytest.approx(0.75)
        assert metrics["roc_auc"] == pytest.approx(brute_force_auc(y_true, y_proba))

    def test_given_labels_take_precedence_over_threshold(self):
        y_true = np.array([1, 0, 1, 0])
        y_proba = np.array([0.4, 0.3, 0.2, 0.1])
        y_pred = np.array([1, 0, 1, 0])

        metrics = calculate_all_metrics(y_true, y_pred, y_proba)

        assert metrics["accuracy"] == 1.0
        assert metrics["tp"] == 2

    def test_no_positive_predictions_gives_zero_not_error(self):
        y_true = np.array([1, 1, 0, 0])
        y_proba = np.array([0.2, 0.1, 0.3, 0.4])

        metrics = calculate_all_metrics(y_true, None, y_proba)

        assert metrics["precision"] == 0.0
        assert metrics["f1"] == 0.0
        assert metrics["sensitivity"] == 0.0
        assert metrics["specificity"] == 1.0

    def test_all_positive_set_reports_missing_auc(self):
        y_true = np.ones(5, dtype=int)
        y_proba = np.linspace(0.1, 0.9, 5)

        metrics = calculate_all_metrics(y_true, None, y_proba)

        assert np.isnan(metrics["roc_auc"])
        assert metrics["specificity"] == 0.0
        assert metrics["tn"] == 0 and metrics["fp"] == 0

    def test_idempotent(self):
        y_true = np.array([1, 0, 1, 1, 0, 0, 1])
        y_proba = np.array([0.8, 0.4, 0.4, 0.9, 0.1, 0.55, 0.3])

        first = calculate_all_metrics(y_true, None, y_proba)
        second = calculate_all_metrics(y_true, None, y_proba)

        assert first == second

    def test_metrics_in_unit_interval(self):
        rng = np.random.default_rng(0)
        y_true = rng.integers(0, 2, size=30)
        y_true[:2] = [0, 1]
        y_proba = rng.random(30)

        metrics = calculate_all_metrics(y_true, None, y_proba)

        for name in METRIC_NAMES:
            assert 0.0 <= metrics[name] <= 1.0


class TestRankSumAUC:
    def test_matches_brute_force_with_ties(self):
        y_true = np.array([1, 0, 1, 0, 1, 0, 0, 1, 0])
        y_score = np.array([0.7, 0.7, 0.2, 0.2, 0.9, 0.5, 0.2, 0.5, 0.1])

        assert rank_sum_auc(y_true, y_score) == pytest.approx(
            brute_force_auc(y_true, y_score)
        )

    def test_all_tied_scores_give_half(self):
        assert rank_sum_auc([1, 0, 1, 0], [0.5, 0.5, 0.5, 0.5]) == pytest.approx(0.5)

    def test_perfect_and_inverted_ranking(self):
        assert rank_sum_auc([0, 0, 1, 1], [0.1, 0.2, 0.8, 0.9]) == pytest.approx(1.0)
        assert rank_sum_auc([1, 1, 0, 0], [0.1, 0.2, 0.8, 0.9]) == pytest.approx(0.0)

    def test_single_class_raises(self):
        with pytest.raises(DegenerateFoldError):
            rank_sum_auc([0, 0, 0], [0.1, 0.5, 0.9])


# ==================== ROC curves ====================


class TestROCCurve:
    def test_curve_starts_at_origin_with_infinite_threshold(self):
        fpr, tpr, thresholds = calculate_roc_curve_data(
            np.array([1, 1, 0, 0]), np.array([0.9, 0.3, 0.6, 0.1])
        )

        assert fpr[0] == 0.0 and tpr[0] == 0.0
        assert np.isinf(thresholds[0])
        assert np.all(np.diff(thresholds[1:]) < 0)
        assert fpr[-1] == 1.0 and tpr[-1] == 1.0

    def test_degenerate_curve_raises(self):
        with pytest.raises(DegenerateFoldError):
            calculate_roc_curve_data(np.array([1, 1]), np.array([0.2, 0.8]))

    def test_gridded_roc_is_nan_when_undefined(self):
        grid = roc_grid(11)
        tpr = gridded_roc(np.array([0, 0, 0]), np.array([0.2, 0.5, 0.8]), grid)

        assert tpr.shape == (11,)
        assert np.all(np.isnan(tpr))

    def test_default_grid(self):
        grid = roc_grid()

        assert len(grid) == 100
        assert grid[0] == 0.0 and grid[-1] == 1.0


class TestInterpolateROC:
    def test_tied_fpr_values_are_averaged(self):
        fpr = np.array([0.0, 0.0, 0.5, 1.0])
        tpr = np.array([0.0, 0.5, 1.0, 1.0])

        result = interpolate_roc(fpr, tpr, np.array([0.0, 0.25, 1.0]))

        np.testing.assert_allclose(result, [0.25, 0.625, 1.0])

    def test_grid_outside_curve_range_is_clamped(self):
        result = interpolate_roc(
            np.array([0.2, 0.8]), np.array([0.3, 0.9]), np.array([0.0, 0.5, 1.0])
        )

        np.testing.assert_allclose(result, [0.3, 0.6, 0.9])


class TestMeanROCCurve:
    def test_pointwise_mean(self):
        result = mean_roc_curve([np.array([0.4, 0.6]), np.array([0.6, 0.8])])

        np.testing.assert_allclose(result, [0.5, 0.7])

    def test_undefined_repeats_are_ignored(self):
        result = mean_roc_curve(
            [np.array([0.4, 0.6]), np.array([np.nan, np.nan]), np.array([0.6, 0.8])]
        )

        np.testing.assert_allclose(result, [0.5, 0.7])

    def test_all_undefined_stays_missing(self):
        result = mean_roc_curve([np.array([np.nan, 0.2]), np.array([np.nan, 0.4])])

        assert np.isnan(result[0])
        assert result[1] == pytest.approx(0.3)


# ==================== Aggregation ====================


class TestAggregateMetricSets:
    def test_mean_sd_and_count_skip_missing_auc(self):
        metric_sets = [
            {"accuracy": 0.6, "roc_auc": 0.5},
            {"accuracy": 0.8, "roc_auc": np.nan},
            {"accuracy": 0.7, "roc_auc": 0.7},
        ]

        summary = aggregate_metric_sets(metric_sets, ["accuracy", "roc_auc"])

        assert isinstance(summary, pd.DataFrame)
        assert list(summary.index) == ["mean", "sd", "n"]
        assert summary.loc["mean", "accuracy"] == pytest.approx(0.7)
        assert summary.loc["sd", "accuracy"] == pytest.approx(0.1)
        assert summary.loc["n", "accuracy"] == 3
        assert summary.loc["mean", "roc_auc"] == pytest.approx(0.6)
        assert summary.loc["sd", "roc_auc"] == pytest.approx(np.std([0.5, 0.7], ddof=1))
        assert summary.loc["n", "roc_auc"] == 2

    def test_single_value_has_zero_sd(self):
        summary = aggregate_metric_sets([{"accuracy": 0.9}], ["accuracy"])

        assert summary.loc["sd", "accuracy"] == 0.0

    def test_metric_never_defined(self):
        summary = aggregate_metric_sets([{"roc_auc": np.nan}], ["roc_auc"])

        assert np.isnan(summary.loc["mean", "roc_auc"])
        assert summary.loc["n", "roc_auc"] == 0

    def test_default_columns(self):
        metric_sets = [calculate_all_metrics([1, 0], None, [0.8, 0.2])]

        summary = aggregate_metric_sets(metric_sets)

        assert list(summary.columns) == METRIC_NAMES
