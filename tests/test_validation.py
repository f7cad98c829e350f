"""Test suite for seed-repeated external validation.

Verifies that:
- The Youden threshold comes from training-set probabilities only
- The threshold is applied unchanged to the validation set
- Runs are seeded base_seed + run
- Zero-prevalence classes fail fast when class weights are requested
"""

import numpy as np
import pandas as pd
import pytest

from conftest import UnboundedCapability, WeightedStubCapability
from sepsis_loocv.exceptions import ConfigurationError, ExternalCapabilityError
from sepsis_loocv.models import SklearnCapability
from sepsis_loocv.validation import SeedRepeatedValidator, run_external_validation


@pytest.fixture
def train_df():
    return pd.DataFrame(
        {
            "crp": [0.9, 0.8, 0.7, 0.35, 0.3, 0.2],
            "sepsis": [1, 1, 1, 0, 0, 0],
        }
    )


@pytest.fixture
def val_df():
    return pd.DataFrame(
        {
            "patient_id": ["V1", "V2", "V3", "V4"],
            "crp": [0.75, 0.65, 0.2, 0.72],
            "sepsis": [1, 1, 0, 0],
        }
    )


@pytest.fixture
def validation_config():
    return {"n_runs": 3, "random_state": 10, "roc_grid_points": 11}


# ==================== Threshold application ====================


class TestSeedRepeatedValidator:
    def test_youden_threshold_applied_to_validation_set(
        self, oob_capability, train_df, val_df
    ):
        validator = SeedRepeatedValidator(
            train_df[["crp"]],
            train_df["sepsis"].to_numpy(),
            val_df[["crp"]],
            val_df["sepsis"].to_numpy(),
            oob_capability,
            n_runs=1,
        )

        result = validator.run_single(1)

        # Training scores separate perfectly; the lowest such cut-off is 0.7
        assert result["threshold"] == pytest.approx(0.7)
        assert list(result["predictions"]["y_pred"]) == [1, 0, 0, 1]
        assert result["metrics"]["threshold"] == pytest.approx(0.7)
        assert result["metrics"]["tp"] == 1
        assert result["metrics"]["fp"] == 1

    def test_runs_use_consecutive_seeds(self, oob_capability, train_df, val_df):
        validator = SeedRepeatedValidator(
            train_df[["crp"]],
            train_df["sepsis"].to_numpy(),
            val_df[["crp"]],
            val_df["sepsis"].to_numpy(),
            oob_capability,
            n_runs=4,
            base_seed=100,
        )

        results = validator.run()

        assert [r["seed"] for r in results] == [101, 102, 103, 104]
        assert oob_capability.train_seeds == [101, 102, 103, 104]
        assert validator.last_model_["seed"] == 104

    def test_feature_columns_must_match(self, oob_capability, train_df, val_df):
        with pytest.raises(ConfigurationError):
            SeedRepeatedValidator(
                train_df[["crp"]],
                train_df["sepsis"].to_numpy(),
                val_df[["crp", "patient_id"]],
                val_df["sepsis"].to_numpy(),
                oob_capability,
            )

    def test_no_feature_importance_for_stub(self, oob_capability, train_df, val_df):
        validator = SeedRepeatedValidator(
            train_df[["crp"]],
            train_df["sepsis"].to_numpy(),
            val_df[["crp"]],
            val_df["sepsis"].to_numpy(),
            oob_capability,
            n_runs=2,
        )
        validator.run()

        assert validator.feature_importance_table() is None


# ==================== Full flow ====================


class TestRunExternalValidation:
    def test_outputs(self, oob_capability, train_df, val_df, validation_config):
        results = run_external_validation(
            train_df,
            val_df,
            ["crp"],
            "sepsis",
            1,
            oob_capability,
            validation_config,
            id_col="patient_id",
        )

        assert len(results["runs"]) == 3
        assert list(results["runs"][0]["predictions"]["identifier"]) == [
            "V1",
            "V2",
            "V3",
            "V4",
        ]
        # Deterministic stub: every run gives identical metrics
        assert results["summary"].loc["sd", "accuracy"] == pytest.approx(0.0)
        assert results["summary"].loc["mean", "accuracy"] == pytest.approx(0.5)

        grid, mean_tpr = results["mean_roc"]
        assert len(grid) == 11
        assert not np.isnan(mean_tpr).any()

    def test_missing_validation_target_fails_before_training(
        self, oob_capability, train_df, val_df, validation_config
    ):
        with pytest.raises(ConfigurationError):
            run_external_validation(
                train_df,
                val_df.drop(columns="sepsis"),
                ["crp"],
                "sepsis",
                1,
                oob_capability,
                validation_config,
            )

        assert oob_capability.train_seeds == []

    def test_zero_prevalence_with_class_weights_fails(self, val_df, validation_config):
        all_negative = pd.DataFrame({"crp": [0.1, 0.2, 0.3, 0.4], "sepsis": [0, 0, 0, 0]})
        capability = SklearnCapability(
            "rf", params={"n_estimators": 5}, class_weighted=True
        )

        with pytest.raises(ConfigurationError, match="zero prevalence"):
            run_external_validation(
                all_negative,
                val_df,
                ["crp"],
                "sepsis",
                1,
                capability,
                validation_config,
            )

    def test_random_forest_feature_importance(self, synthetic_cohort):
        features = [f"marker_{i}" for i in range(5)]
        capability = SklearnCapability(
            "rf",
            params={"n_estimators": 50, "oob_score": True},
            class_weighted=True,
        )

        results = run_external_validation(
            synthetic_cohort.iloc[:30],
            synthetic_cohort.iloc[30:],
            features,
            "sepsis",
            1,
            capability,
            {"n_runs": 2, "random_state": 0},
        )

        table = results["feature_importance"]
        assert list(table.columns) == features
        assert list(table.index) == [1, 2, "mean"]
        np.testing.assert_allclose(table.loc["mean"].sum(), 1.0)
        for run in results["runs"]:
            assert 0.0 <= run["threshold"] <= 1.0


# ==================== Input checks ====================


class TestValidationInputs:
    def test_identifier_only_required_in_validation_frame(
        self, oob_capability, train_df, val_df
    ):
        assert "patient_id" not in train_df.columns

        results = run_external_validation(
            train_df,
            val_df,
            ["crp"],
            "sepsis",
            1,
            oob_capability,
            {"n_runs": 1},
            id_col="patient_id",
        )

        assert list(results["runs"][0]["predictions"]["identifier"]) == list(
            val_df["patient_id"]
        )

    def test_identifier_missing_from_validation_frame(
        self, oob_capability, train_df, val_df
    ):
        with pytest.raises(ConfigurationError, match="identifier"):
            run_external_validation(
                train_df,
                val_df.drop(columns="patient_id"),
                ["crp"],
                "sepsis",
                1,
                oob_capability,
                {"n_runs": 1},
                id_col="patient_id",
            )

        assert oob_capability.train_seeds == []

    def test_zero_runs_rejected(self, oob_capability, train_df, val_df):
        with pytest.raises(ConfigurationError, match="n_runs"):
            SeedRepeatedValidator(
                train_df[["crp"]],
                train_df["sepsis"].to_numpy(),
                val_df[["crp"]],
                val_df["sepsis"].to_numpy(),
                oob_capability,
                n_runs=0,
            )

    def test_zero_prevalence_rejected_before_training(self, val_df):
        capability = WeightedStubCapability()
        all_negative = pd.DataFrame({"crp": [0.1, 0.2, 0.3, 0.4], "sepsis": [0, 0, 0, 0]})

        with pytest.raises(ConfigurationError, match="zero prevalence"):
            run_external_validation(
                all_negative, val_df, ["crp"], "sepsis", 1, capability, {"n_runs": 2}
            )

        assert capability.train_seeds == []

    def test_out_of_range_validation_probability(self, train_df, val_df):
        val = val_df.copy()
        val.loc[0, "crp"] = -0.2
        capability = UnboundedCapability()
        validator = SeedRepeatedValidator(
            train_df[["crp"]],
            train_df["sepsis"].to_numpy(),
            val[["crp"]],
            val["sepsis"].to_numpy(),
            capability,
            n_runs=1,
        )

        with pytest.raises(ExternalCapabilityError) as exc_info:
            validator.run()

        assert exc_info.value.repeat == 1
