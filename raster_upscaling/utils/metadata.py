#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Run report for the raster upscaling pipeline.

The report records inputs, the covariate-to-file mapping, accuracy metrics
and summary statistics of the predictions, so a prediction map can be traced
back to the run that produced it.
"""
import os
import json
import math
import yaml
import numpy as np
import pandas as pd
from typing import Dict, Optional, Any
from datetime import datetime
from pathlib import Path

from raster_upscaling.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


def _to_builtin(value: Any) -> Any:
    """Convert numpy scalars, paths and NaN into JSON/YAML friendly values."""
    if isinstance(value, dict):
        return {str(k): _to_builtin(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_builtin(v) for v in value]
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, np.integer):
        return int(value)
    if isinstance(value, (float, np.floating)):
        value = float(value)
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, np.bool_):
        return bool(value)
    if value is None or isinstance(value, (str, int, bool)):
        return value
    return str(value)


def describe_predictions(prediction_table: pd.DataFrame, column: str = "prediction") -> Dict[str, Any]:
    """
    Summary statistics of a prediction column.

    Parameters
    ----------
    prediction_table : pd.DataFrame
        Table holding the predictions.
    column : str, optional
        Prediction column name.

    Returns
    -------
    dict
        Count, min, max, mean, median and std (None when empty).
    """
    values = prediction_table[column].dropna()

    if len(values) == 0:
        return {"count": 0, "min": None, "max": None, "mean": None, "median": None, "std": None}

    return {
        "count": int(len(values)),
        "min": float(values.min()),
        "max": float(values.max()),
        "mean": float(values.mean()),
        "median": float(values.median()),
        "std": float(values.std()),
    }


def save_run_report(
    result: Dict[str, Any],
    settings: Dict[str, Any],
    output_path: str,
    format: str = 'json',
    extra: Optional[Dict[str, Any]] = None
) -> str:
    """
    Save a report about an upscaling run.

    Parameters
    ----------
    result : dict
        Pipeline result (metrics, covariates, table sizes, outputs).
    settings : dict
        Settings used for the run.
    output_path : str
        Path to save the report.
    format : str, optional
        Output format, by default 'json'.
        Options: 'json', 'yaml'
    extra : dict, optional
        Additional entries merged into the report.

    Returns
    -------
    str
        Path of the saved report.
    """
    logger.info(f"Saving run report to {output_path}")

    report = {
        "timestamp": datetime.now().isoformat(),
        "settings": settings,
        **result,
    }
    if extra:
        report.update(extra)
    report = _to_builtin(report)

    os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)

    if format.lower() == 'json':
        with open(output_path, 'w') as f:
            json.dump(report, f, indent=2)
    elif format.lower() == 'yaml':
        with open(output_path, 'w') as f:
            yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False)
    else:
        raise ValueError(f"Unsupported format: {format}")

    return str(output_path)
