#!/usr/bin/env python
"""
CLI entrypoint for repeated leave-one-out cross-validation.

Usage:
    python scripts/run_loocv.py --data biomarkers.csv --config configs/default.yaml --model rf --repeats 10
"""

import argparse
import logging
import random
import sys
from pathlib import Path

import matplotlib
import numpy as np

matplotlib.use("Agg")

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from sepsis_loocv.config import apply_defaults, load_config
from sepsis_loocv.io import load_data
from sepsis_loocv.loocv import run_repeated_loocv
from sepsis_loocv.models import create_capability, get_model_name
from sepsis_loocv.plotting import plot_mean_roc
from sepsis_loocv.reporting import create_run_dir, generate_all_reports, save_run_info

# Setup logging with UTF-8 encoding to handle special characters
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stdout),
        logging.FileHandler("sepsis_loocv.log", encoding="utf-8"),
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
        description="Run repeated leave-one-out cross-validation for sepsis prediction"
    )

    parser.add_argument(
        "--data",
        type=str,
        required=True,
        help="Path to input CSV or Excel data file",
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
        choices=["rf", "xgb", "svm", "baseline"],
        default=None,
        help="Classifier (overrides config)",
    )

    parser.add_argument(
        "--repeats",
        type=int,
        default=None,
        help="Number of LOOCV repeats (overrides config)",
    )

    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Base seed added to every fold seed (overrides config)",
    )

    parser.add_argument(
        "--n-jobs",
        type=int,
        default=None,
        help="Parallel jobs over folds (default: 1 = sequential)",
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
    logger.info("SEPSIS LOOCV: Repeated Leave-One-Out Evaluation")
    logger.info("=" * 100)

    config = load_config(args.config)

    # Override config with command-line arguments
    if args.model is not None:
        config["model"] = args.model
    if args.repeats is not None:
        config["n_repeats"] = args.repeats
    if args.seed is not None:
        config["random_state"] = args.seed
    if args.n_jobs is not None:
        config["n_jobs"] = args.n_jobs

    apply_defaults(config)
    set_random_seeds(config["random_state"])

    run_id, output_dir = create_run_dir(Path(args.output_dir))
    logger.info(f"Run ID: {run_id}")
    logger.info(f"Output directory: {output_dir}")

    save_run_info(
        {
            "run_id": run_id,
            "flow": "repeated_loocv",
            "config_file": args.config,
            "data_file": args.data,
            **config,
        },
        output_dir / "run_info.json",
    )

    # Step 1: Load data
    logger.info(f"\nStep 1: Loading data from {args.data}")
    data_path = Path(args.data)
    if not data_path.exists():
        logger.error(f"Data file not found: {args.data}")
        sys.exit(1)

    df = load_data(data_path, sheet_name=config["sheet_name"])

    # Step 2: Repeated LOOCV
    logger.info(
        f"\nStep 2: Running {config['n_repeats']}x LOOCV with "
        f"{get_model_name(config['model'])}"
    )
    capability = create_capability(
        config["model"],
        params=config["model_params"],
        class_weighted=config["class_weighted"],
    )

    results = run_repeated_loocv(
        df=df,
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
        results=results["repeats"],
        summary=results["summary"],
        mean_roc=results["mean_roc"],
        output_dir=output_dir,
        title=f"{get_model_name(config['model'])} - Repeated LOOCV Performance",
        description=(
            f"{config['n_repeats']} repeats of leave-one-out cross-validation on "
            f"{len(df)} samples using {len(results['feature_names'])} features; "
            "metrics computed on the pooled held-out predictions of each repeat."
        ),
        index_name="repeat",
    )

    # Step 4: Figures
    logger.info("\nStep 4: Generating figures")
    grid, mean_tpr = results["mean_roc"]
    plot_mean_roc(
        grid,
        mean_tpr,
        summary=results["summary"],
        model_name=get_model_name(config["model"]),
        output_path=output_dir / "figures" / "mean_roc.png",
        title=f"Mean ROC Curve ({config['n_repeats']}x LOOCV)",
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
