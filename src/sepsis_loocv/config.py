"""
Configuration loading for the evaluation scripts.

Configuration lives in a YAML file (see configs/default.yaml). Keys missing
from the file are filled from DEFAULT_CONFIG; command-line flags override
both.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)

DEFAULT_CONFIG: Dict[str, Any] = {
    "random_state": 0,
    "n_repeats": 10,
    "n_runs": 100,
    "n_jobs": 1,
    "model": "rf",
    "model_params": {},
    "class_weighted": False,
    "target_column": "sepsis",
    "positive_label": 1,
    "id_column": None,
    "features": None,
    "exclude_keywords": None,
    "sheet_name": None,
    "internal_cv_folds": 5,
    "roc_grid_points": 100,
}


def load_config(config_path: Optional[str]) -> dict:
    """
    Load configuration from YAML file.

    Parameters
    ----------
    config_path : str, optional
        Path to YAML file. A missing path or file yields an empty config.

    Returns
    -------
    dict
        Parsed configuration (without defaults applied)
    """
    if config_path is None:
        return {}

    config_file = Path(config_path)

    if not config_file.exists():
        logger.warning(f"Config file {config_path} not found. Using defaults.")
        return {}

    with open(config_file, "r") as f:
        config = yaml.safe_load(f) or {}

    logger.info(f"Loaded configuration from {config_path}")
    return config


def apply_defaults(config: dict) -> dict:
    """Fill keys absent from ``config`` with DEFAULT_CONFIG values (in place)."""
    for key, value in DEFAULT_CONFIG.items():
        if isinstance(value, dict):
            config.setdefault(key, dict(value))
        else:
            config.setdefault(key, value)
    if config["model_params"] is None:
        config["model_params"] = {}
    return config
