"""
Reporting module for generating tables and summaries.

Includes:
- Per-repeat / per-run metrics tables (CSV)
- Summary tables with mean, SD and n (CSV, Markdown)
- Prediction and feature-importance exports
- Mean ROC curve data
- Pretty console summaries
"""

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4

import numpy as np
import pandas as pd

from sepsis_loocv.metrics import METRIC_NAMES

logger = logging.getLogger(__name__)

CONFUSION_COLUMNS = ["tp", "fp", "fn", "tn", "threshold"]


def _to_serializable(obj: Any) -> Any:
    """Recursively convert numpy/pandas objects into JSON-serializable types."""
    if isinstance(obj, dict):
        return {k: _to_serializable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_to_serializable(v) for v in obj]
    if isinstance(obj, (np.generic,)):
        return obj.item()
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, Path):
        return str(obj)
    return obj


def create_metrics_table(
    results: List[Dict[str, Any]],
    index_name: str = "repeat",
) -> pd.DataFrame:
    """
    One row per repeat/run with every metric and the confusion counts.

    Parameters
    ----------
    results : list
        Result dicts with an ``index_name`` key and a ``metrics`` dict
    index_name : str
        'repeat' (LOOCV) or 'run' (validation)

    Returns
    -------
    pd.DataFrame
        Metrics table indexed by repeat/run
    """
    rows = []
    for result in results:
        row = {index_name: result[index_name]}
        for name in METRIC_NAMES + CONFUSION_COLUMNS:
            row[name] = result["metrics"].get(name, np.nan)
        rows.append(row)

    return pd.DataFrame(rows).set_index(index_name)


def save_summary_table(
    summary: pd.DataFrame,
    output_dir: Path,
    title: str,
    description: str,
    filename_stem: str = "summary",
):
    """
    Save summary table (rows mean / sd / n) to CSV and Markdown.

    Parameters
    ----------
    summary : pd.DataFrame
        Output of metrics.aggregate_metric_sets
    output_dir : Path
        Output directory
    title : str
        Markdown heading
    description : str
        One-paragraph description of the evaluation protocol
    filename_stem : str
        Filename stem (without extension)
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    # Save CSV
    csv_path = output_dir / f"{filename_stem}.csv"
    csv_table = summary.astype(object)
    # Counts are stored as floats alongside mean / sd
    csv_table.loc["n"] = summary.loc["n"].astype(int)
    csv_table.to_csv(csv_path, index_label="statistic")
    logger.info(f"Saved summary table (CSV) to {csv_path}")

    # Save Markdown
    md_path = output_dir / f"{filename_stem}.md"
    with open(md_path, "w") as f:
        f.write(f"# {title}\n\n")
        f.write(f"{description}\n\n")
        f.write(summary.to_markdown(floatfmt=".3f"))
        f.write("\n\n")
        f.write("## Interpretation\n\n")
        f.write(
            "Rows: **mean** and **sd** (sample standard deviation) across "
            "repeats/runs, **n** = number of repeats/runs with a defined value.\n\n"
        )
        f.write("**Metrics:**\n")
        f.write("- **accuracy**: Overall classification accuracy\n")
        f.write("- **precision**: Positive predictive value\n")
        f.write("- **sensitivity**: True positive rate (recall for sepsis class)\n")
        f.write("- **specificity**: True negative rate\n")
        f.write("- **f1**: Harmonic mean of precision and sensitivity\n")
        f.write(
            "- **roc_auc**: Area under the ROC curve (rank-sum estimator); "
            "missing when a repeat lacks one class\n"
        )

    logger.info(f"Saved summary report (Markdown) to {md_path}")


def print_console_summary(summary: pd.DataFrame, title: str):
    """
    Print pretty summary to console.

    Parameters
    ----------
    summary : pd.DataFrame
        Summary table
    title : str
        Banner title
    """
    print("\n" + "=" * 100)
    print(title.upper())
    print("=" * 100)
    print("\nResults (mean / sd / n):\n")
    print(summary.to_string(float_format=lambda v: f"{v:.3f}"))
    print("\n" + "=" * 100 + "\n")


def save_predictions(
    results: List[Dict[str, Any]],
    output_dir: Path,
    index_name: str = "repeat",
):
    """
    Save one predictions CSV per repeat/run.

    Parameters
    ----------
    results : list
        Result dicts with ``index_name`` and ``predictions`` keys
    output_dir : Path
        Output directory
    index_name : str
        'repeat' or 'run' (file prefix)
    """
    output_dir.mkdir(parents=True, exist_ok=True)

    for result in results:
        path = output_dir / f"{index_name}_{result[index_name]}.csv"
        result["predictions"].to_csv(path, index=False)

    logger.info(f"Saved {len(results)} prediction tables to {output_dir}")


def save_feature_importance(table: Optional[pd.DataFrame], output_path: Path):
    """Save the per-run feature importance table (skipped when None)."""
    if table is None:
        logger.info("Classifier exposes no feature importances; skipping export")
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(output_path)

    top = table.loc["mean"].sort_values(ascending=False).head(10)
    logger.info(f"Saved feature importances to {output_path}")
    logger.info(f"Top features by mean importance: {top.round(4).to_dict()}")


def save_mean_roc(grid: np.ndarray, mean_tpr: np.ndarray, output_path: Path):
    """Save averaged ROC curve data (fpr, mean_tpr)."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame({"fpr": grid, "mean_tpr": mean_tpr}).to_csv(output_path, index=False)
    logger.info(f"Saved mean ROC curve data to {output_path}")


def save_run_info(run_info: Dict[str, Any], output_path: Path):
    """Save run metadata as JSON."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        json.dump(_to_serializable(run_info), f, indent=2, default=str)
    logger.info(f"Saved run info to {output_path}")


def generate_all_reports(
    results: List[Dict[str, Any]],
    summary: pd.DataFrame,
    mean_roc: tuple,
    output_dir: Path,
    title: str,
    description: str,
    index_name: str = "repeat",
    feature_importance: Optional[pd.DataFrame] = None,
):
    """
    Generate all reports and save to output directory.

    Layout:
    - tables/{index_name}_metrics.csv
    - tables/summary.csv, tables/summary.md
    - tables/mean_roc.csv
    - tables/feature_importance.csv (validation flow)
    - predictions/{index_name}_<k>.csv

    Parameters
    ----------
    results : list
        Per-repeat/run result dicts
    summary : pd.DataFrame
        Aggregated metrics
    mean_roc : tuple
        (grid, mean_tpr)
    output_dir : Path
        Output directory
    title : str
        Report title
    description : str
        Evaluation protocol description
    index_name : str
        'repeat' or 'run'
    feature_importance : pd.DataFrame, optional
        Per-run feature importances
    """
    logger.info("Generating reports...")

    tables_dir = output_dir / "tables"
    tables_dir.mkdir(parents=True, exist_ok=True)

    metrics_table = create_metrics_table(results, index_name=index_name)
    metrics_path = tables_dir / f"{index_name}_metrics.csv"
    metrics_table.to_csv(metrics_path)
    logger.info(f"Saved per-{index_name} metrics to {metrics_path}")

    print_console_summary(summary, title)
    save_summary_table(summary, tables_dir, title=title, description=description)

    grid, mean_tpr = mean_roc
    save_mean_roc(grid, mean_tpr, tables_dir / "mean_roc.csv")

    save_predictions(results, output_dir / "predictions", index_name=index_name)

    if index_name == "run":
        save_feature_importance(feature_importance, tables_dir / "feature_importance.csv")

    logger.info(f"All reports saved to {output_dir}")


def create_run_dir(base_output_dir: Path) -> tuple:
    """
    Create ``<base>/run_<timestamp>_<uuid8>`` and return (run_id, path).
    """
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    short_uuid = str(uuid4())[:8]
    run_id = f"{timestamp}_{short_uuid}"

    output_dir = Path(base_output_dir) / f"run_{run_id}"
    output_dir.mkdir(parents=True, exist_ok=True)
    return run_id, output_dir
