#!/usr/bin/env python
"""
CLI entrypoint for seed-repeated external validation.

The classifier is fitted on the training file once per run with a different
seed; the Youden-optimal threshold from out-of-bag (or out-of-fold)
training probabilities is applied unchanged to the validation file.

Usage:
    python scripts/run_validation.py --train train.csv --validation test.csv --model rf --runs 100
"""

import argparse
import logging
import random
import sys
from pathlib import Path

import joblib
import matplotlib
import numpy as np

matplotlib.use("Agg")

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sepsis_loocv.config import apply_defaults, load_config
from sepsis_loocv.io import load_data
from sepsis_loocv.models import create_capability, get_model_name
from sepsis_loocv.plotting import plot_mean_roc
from sepsis_loocv.reporting import create_run_dir, generate_all_reports, save_run_info
from sepsis_loocv.validation import run_external_validation

# Setup logging with UTF-8 encoding to handle special characters
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("sepsis_validation.log", encoding="utf-8"),
    ],
)

logger = logging.getLogger(__name__)


def set_random_seeds(seed: int):
    """Set global random seeds for any library that ignores explicit seeds."""
    random.seed(seed)
    np.random.seed(seed)
    logger.info(f"Set random seeds to {seed}")


def parse_args():
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Run seed-repeated external validation for sepsis prediction"
    )

    parser.add_argument("--train", type=str, required=True, help="Training data file")
    parser.add_argument(
        "--validation", type=str, required=True, help="External validation data file"
    )

    parser.add_argument(
        "--config",
        type=str,
        default="configs/default.yaml",
        help="Path to configuration YAML file (default: configs/default.yaml)",
    )

    parser.add_argument(
        "--model",
        type=str,
        choices=["rf", "xgb", "svm"],
        default=None,
        help="Classifier (overrides config)",
    )

    parser.add_argument(
        "--runs",
        type=int,
        default=None,
        help="Number of seeded runs (overrides config)",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed; run r uses seed + r (overrides config)",
    )

    parser.add_argument(
        "--class-weights",
        dest="class_weighted",
        action="store_true",
        default=None,
        help="Weight classes by inverse prevalence (overrides config)",
    )
    parser.add_argument(
        "--no-class-weights",
        dest="class_weighted",
        action="store_false",
        help="Disable inverse-prevalence class weights (overrides config)",
    )

    parser.add_argument(
        "--save-model",
        action="store_true",
        help="Save the model of the last run with joblib",
    )

    parser.add_argument(
        "--output-dir",
        type=str,
        default="reports",
        help="Output directory for reports and figures (default: reports)",
    )

    return parser.parse_args()


def main():
    """Main execution function."""
    args = parse_args()

    logger.info("=" * 100)
    logger.info("SEPSIS LOOCV: Seed-Repeated External Validation")
    logger.info("=" * 100)

    config = load_config(args.config)

    # Override config with command-line arguments
    if args.model is not None:
        config["model"] = args.model
    if args.runs is not None:
        config["n_runs"] = args.runs
    if args.seed is not None:
        config["random_state"] = args.seed
    if args.class_weighted is not None:
        config["class_weighted"] = args.class_weighted

    apply_defaults(config)
    set_random_seeds(config["random_state"])

    if config["model"] == "rf":
        # Out-of-bag probabilities drive the threshold selection
        config["model_params"].setdefault("oob_score", True)

    run_id, output_dir = create_run_dir(Path(args.output_dir))
    logger.info(f"Run ID: {run_id}")
    logger.info(f"Output directory: {output_dir}")

    save_run_info(
        {
            "run_id": run_id,
            "flow": "external_validation",
            "config_file": args.config,
            "train_file": args.train,
            "validation_file": args.validation,
            **config,
        },
        output_dir / "run_info.json",
    )

    # Step 1: Load data
    for path in (args.train, args.validation):
        if not Path(path).exists():
            logger.error(f"Data file not found: {path}")
            sys.exit(1)

    logger.info(f"\nStep 1: Loading training data from {args.train}")
    train_df = load_data(Path(args.train), sheet_name=config["sheet_name"])
    logger.info(f"Loading validation data from {args.validation}")
    val_df = load_data(Path(args.validation), sheet_name=config["sheet_name"])

    # Step 2: Validation runs
    logger.info(
        f"\nStep 2: Running {config['n_runs']} validation runs with "
        f"{get_model_name(config['model'])}"
    )
    capability = create_capability(
        config["model"],
        params=config["model_params"],
        class_weighted=config["class_weighted"],
    )

    results = run_external_validation(
        train_df=train_df,
        val_df=val_df,
        feature_names=config["features"],
        target_col=config["target_column"],
        positive_label=config["positive_label"],
        capability=capability,
        config=config,
        id_col=config["id_column"],
    )

    # Step 3: Reports
    logger.info("\nStep 3: Generating reports and tables")
    generate_all_reports(
        results=results["runs"],
        summary=results["summary"],
        mean_roc=results["mean_roc"],
        output_dir=output_dir,
        title=f"{get_model_name(config['model'])} - External Validation Performance",
        description=(
            f"{config['n_runs']} seeded fits on {len(train_df)} training samples, "
            f"each scored once on {len(val_df)} validation samples with the "
            "Youden-optimal threshold from internal training-set probabilities."
        ),
        index_name="run",
        feature_importance=results["feature_importance"],
    )

    if args.save_model:
        model_path = output_dir / "artifacts" / "model_last_run.joblib"
        model_path.parent.mkdir(parents=True, exist_ok=True)
        joblib.dump(results["validator"].last_model_, model_path)
        logger.info(f"Saved last-run model to {model_path}")

    # Step 4: Figures
    logger.info("\nStep 4: Generating figures")
    grid, mean_tpr = results["mean_roc"]
    plot_mean_roc(
        grid,
        mean_tpr,
        summary=results["summary"],
        model_name=get_model_name(config["model"]),
        output_path=output_dir / "figures" / "mean_roc.png",
        title=f"Mean Validation ROC Curve ({config['n_runs']} runs)",
    )

    logger.info("\n" + "=" * 100)
    logger.info("Pipeline complete!")
    logger.info(f"All outputs saved to: {output_dir}")
    logger.info("=" * 100 + "\n")


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("\nInterrupted by user")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)
