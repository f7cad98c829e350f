"""
Plotting module for publication-quality figures.

Includes:
- Mean ROC curve across repeats/runs with diagonal reference
"""

import logging
from pathlib import Path
from typing import Optional

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

# Plot styling
plt.rcParams.update(
    {
        "font.size": 12,
        "axes.labelsize": 13,
        "axes.titlesize": 14,
        "xtick.labelsize": 13,
        "ytick.labelsize": 13,
        "legend.fontsize": 13,
        "figure.titlesize": 15,
        "figure.dpi": 150,
    }
)


def _save_figure(fig: plt.Figure, output_path: Optional[Path], description: str):
    """Save PNG and SVG variants for a figure."""
    if not output_path:
        return

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(output_path, dpi=300, bbox_inches="tight")
    svg_path = output_path.with_suffix(".svg")
    fig.savefig(svg_path, dpi=300, bbox_inches="tight")
    logger.info(f"Saved {description} to {output_path} and {svg_path}")


def plot_mean_roc(
    grid: np.ndarray,
    mean_tpr: np.ndarray,
    summary: Optional[pd.DataFrame] = None,
    model_name: str = "Model",
    output_path: Optional[Path] = None,
    title: str = "Mean ROC Curve",
):
    """
    Plot the averaged ROC curve.

    Parameters
    ----------
    grid : np.ndarray
        False positive rate grid
    mean_tpr : np.ndarray
        Mean true positive rate at each grid point
    summary : pd.DataFrame, optional
        Aggregated metrics; adds AUC mean ± SD to the legend
    model_name : str
        Legend label
    output_path : Path, optional
        Path to save figure
    title : str
        Figure title
    """
    fig, ax = plt.subplots(figsize=(8, 7))

    label = model_name
    if summary is not None and not np.isnan(summary.loc["mean", "roc_auc"]):
        label = (
            f"{model_name} (AuROC = {summary.loc['mean', 'roc_auc']:.3f} "
            f"± {summary.loc['sd', 'roc_auc']:.3f})"
        )

    ax.plot(grid, mean_tpr, color="tab:blue", lw=2, label=label)

    # Plot diagonal reference
    ax.plot([0, 1], [0, 1], "k--", lw=1, label="Chance (AuROC = 0.500)")

    ax.set_xlim([0, 1])
    ax.set_ylim([0, 1.02])
    ax.set_xlabel("False Positive Rate")
    ax.set_ylabel("True Positive Rate")
    ax.set_title(title)
    ax.legend(loc="lower right")
    ax.grid(alpha=0.3)

    plt.tight_layout()

    _save_figure(fig, output_path, "mean ROC curve")

    plt.close(fig)
