#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Configuration settings for the raster upscaling pipeline.

This module centralizes all configuration parameters used across the
upscaling modules. The default input and output paths are relative to the
working directory, so a bare run of the pipeline uses the standard project
layout. Any setting can be overridden from a YAML file with ``load_config``.
"""
from typing import Dict, List, Any, Optional, Union
import os
from pathlib import Path
import copy

import joblib
import yaml

# General configuration
DEFAULT_NODATA_VALUE: float = -9999.0
PREDICTION_NODATA: float = -9999.0
CHUNK_SIZE: int = 100000  # Rows per predict call
N_JOBS: int = max(joblib.cpu_count() - 1, 1)  # All cores but one

# Path configuration
DATA_DIR: Path = Path("data")
MODEL_PATH: Path = DATA_DIR / "model" / "model.joblib"
CALIBRATION_PATH: Path = DATA_DIR / "tables" / "calibration.csv"
VALIDATION_PATH: Path = DATA_DIR / "tables" / "validation.csv"
MASK_PATH: Path = DATA_DIR / "rasters" / "mask.tif"
COVARIATE_DIR: Path = DATA_DIR / "rasters" / "covariates"
DEFAULT_OUTPUT_DIR: Path = Path("output")
OUTPUT_RASTER_PATH: Path = DEFAULT_OUTPUT_DIR / "prediction.tif"

# Swiss CH1903+ / LV95
OUTPUT_CRS: Optional[str] = "EPSG:2056"

# Model configuration
RESPONSE_COLUMN: str = "response"
MASK_VALUE: int = 1
COVARIATE_EXTENSIONS: List[str] = [".tif", ".tiff"]

# "unsquared" reproduces sqrt(mean(observed - predicted)); "standard" squares
# the error before averaging.
RMSE_FORMULA: str = "unsquared"
RMSE_FORMULAS: List[str] = ["unsquared", "standard"]

# Export configuration
EXPORT_CONFIG: Dict[str, Any] = {
    "save_report": True,           # Write a run report next to the raster
    "report_format": "json",       # Options: 'json', 'yaml'
    "table_sep": ",",              # Separator of the calibration/validation CSVs
}

# Plot configuration
PLOT_CONFIG: Dict[str, Any] = {
    "make_plots": False,
    "plot_dir": DEFAULT_OUTPUT_DIR / "plots",
    "dpi": 300,
    "cmap": "viridis",
    "show_plots": False,
}

# Performance tuning
PERFORMANCE_CONFIG: Dict[str, Any] = {
    "chunk_size": CHUNK_SIZE,
    "n_jobs": N_JOBS,
    "show_progress": True,
}

# Logging configuration
LOGGING_CONFIG: Dict[str, Any] = {
    "level": "INFO",  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    "log_to_file": False,
    "log_file": DEFAULT_OUTPUT_DIR / "upscaling.log",
    "log_format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
}


def default_settings() -> Dict[str, Any]:
    """
    Build the settings dictionary consumed by the pipeline.

    Returns
    -------
    dict
        Fresh dictionary of settings, safe to modify.
    """
    settings = {
        "model_path": MODEL_PATH,
        "calibration_path": CALIBRATION_PATH,
        "validation_path": VALIDATION_PATH,
        "mask_path": MASK_PATH,
        "covariate_dir": COVARIATE_DIR,
        "covariate_extensions": list(COVARIATE_EXTENSIONS),
        "output_path": OUTPUT_RASTER_PATH,
        "output_crs": OUTPUT_CRS,
        "response_column": RESPONSE_COLUMN,
        "mask_value": MASK_VALUE,
        "rmse_formula": RMSE_FORMULA,
        "nodata": PREDICTION_NODATA,
        "report_path": None,
    }
    settings.update(copy.deepcopy(EXPORT_CONFIG))
    settings.update(copy.deepcopy(PLOT_CONFIG))
    settings.update(copy.deepcopy(PERFORMANCE_CONFIG))
    return settings


_PATH_KEYS = (
    "model_path", "calibration_path", "validation_path", "mask_path",
    "covariate_dir", "output_path", "plot_dir", "report_path",
)


def load_config(path: Optional[Union[str, Path]] = None,
                overrides: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Load settings, merging a YAML file and explicit overrides over the defaults.

    Parameters
    ----------
    path : str or Path, optional
        YAML file with a flat mapping of setting names to values.
    overrides : dict, optional
        Values taking precedence over both defaults and the file.
        ``None`` values are ignored.

    Returns
    -------
    dict
        Merged settings.

    Raises
    ------
    FileNotFoundError
        If the configuration file does not exist.
    ValueError
        If the file is not a mapping, or contains unknown settings.
    """
    settings = default_settings()

    if path is not None:
        if not os.path.exists(path):
            raise FileNotFoundError(f"Configuration file not found: {path}")
        with open(path, "r") as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file must contain a mapping: {path}")
        _merge(settings, loaded, source=str(path))

    if overrides:
        _merge(settings, {k: v for k, v in overrides.items() if v is not None},
               source="overrides")

    for key in _PATH_KEYS:
        if settings.get(key) is not None:
            settings[key] = Path(settings[key])

    if settings["rmse_formula"] not in RMSE_FORMULAS:
        raise ValueError(f"Unknown RMSE formula: {settings['rmse_formula']}")

    return settings


def _merge(settings: Dict[str, Any], values: Dict[str, Any], source: str) -> None:
    unknown = sorted(set(values) - set(settings))
    if unknown:
        raise ValueError(f"Unknown settings in {source}: {', '.join(unknown)}")
    settings.update(values)
