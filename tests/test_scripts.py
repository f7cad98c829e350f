"""Smoke tests for the command-line entrypoints in scripts/."""

import json
import runpy
import sys
from pathlib import Path

import pytest
import yaml

SCRIPTS_DIR = Path(__file__).parent.parent / "scripts"


def load_script(name):
    """Module globals of a script, without running its __main__ block."""
    return runpy.run_path(str(SCRIPTS_DIR / name))


def write_config(path, **overrides):
    config = {"model": "rf", "model_params": {"n_estimators": 20}, **overrides}
    path.write_text(yaml.safe_dump(config))
    return path


def single_run_dir(output_dir):
    run_dirs = list(output_dir.glob("run_*"))
    assert len(run_dirs) == 1
    return run_dirs[0]


@pytest.fixture
def workdir(tmp_path, monkeypatch):
    # The scripts write their log file into the working directory
    monkeypatch.chdir(tmp_path)
    return tmp_path


# ==================== External validation ====================


class TestRunValidationScript:
    @pytest.mark.parametrize("class_weighted", [False, True])
    def test_config_class_weights_kept(
        self, workdir, monkeypatch, synthetic_cohort, class_weighted
    ):
        synthetic_cohort.iloc[:30].to_csv(workdir / "train.csv", index=False)
        synthetic_cohort.iloc[30:].to_csv(workdir / "val.csv", index=False)
        config_path = write_config(
            workdir / "run.yaml", n_runs=2, class_weighted=class_weighted
        )
        script = load_script("run_validation.py")
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "run_validation.py",
                "--train", "train.csv",
                "--validation", "val.csv",
                "--config", str(config_path),
                "--output-dir", "reports",
            ],
        )

        script["main"]()

        run_dir = single_run_dir(workdir / "reports")
        run_info = json.loads((run_dir / "run_info.json").read_text())
        assert run_info["class_weighted"] is class_weighted
        assert run_info["n_runs"] == 2
        assert (run_dir / "tables" / "summary.csv").exists()
        assert (run_dir / "tables" / "run_metrics.csv").exists()
        assert (run_dir / "figures" / "mean_roc.png").exists()

    def test_class_weight_flags(self, monkeypatch):
        parse_args = load_script("run_validation.py")["parse_args"]
        base = ["run_validation.py", "--train", "a.csv", "--validation", "b.csv"]

        monkeypatch.setattr(sys, "argv", base)
        assert parse_args().class_weighted is None

        monkeypatch.setattr(sys, "argv", base + ["--class-weights"])
        assert parse_args().class_weighted is True

        monkeypatch.setattr(sys, "argv", base + ["--no-class-weights"])
        assert parse_args().class_weighted is False


# ==================== Repeated LOOCV ====================


class TestRunLOOCVScript:
    def test_baseline_single_repeat(self, workdir, monkeypatch, synthetic_cohort):
        synthetic_cohort.to_csv(workdir / "cohort.csv", index=False)
        config_path = write_config(workdir / "run.yaml", n_repeats=1)
        script = load_script("run_loocv.py")
        monkeypatch.setattr(
            sys,
            "argv",
            [
                "run_loocv.py",
                "--data", "cohort.csv",
                "--config", str(config_path),
                "--model", "baseline",
                "--output-dir", "reports",
            ],
        )

        script["main"]()

        run_dir = single_run_dir(workdir / "reports")
        run_info = json.loads((run_dir / "run_info.json").read_text())
        assert run_info["model"] == "baseline"
        assert (run_dir / "tables" / "repeat_metrics.csv").exists()
        assert (run_dir / "predictions" / "repeat_1.csv").exists()
        assert (run_dir / "figures" / "mean_roc.png").exists()
