#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Model accuracy against held-out observations.

Metrics follow the conventions of the existing upscaling reports:

- bias is the mean of (observed - predicted), rounded to two decimals;
- RMSE defaults to sqrt(mean(observed - predicted)), without squaring the
  error first, so a negative mean error gives NaN. The conventional
  sqrt(mean((observed - predicted)**2)) is available as ``"standard"``;
- R² is the squared Pearson correlation, rounded to two decimals.

Degenerate input (no rows, constant values) yields NaN instead of raising.
"""
from typing import Dict, Tuple, Any, Union
import numpy as np
import pandas as pd

from raster_upscaling.core.config import RESPONSE_COLUMN, RMSE_FORMULA, RMSE_FORMULAS
from raster_upscaling.core.logging_config import get_module_logger
from raster_upscaling.upscaling.predictor import Predictor

# Initialize logger
logger = get_module_logger(__name__)

ArrayLike = Union[np.ndarray, pd.Series, list]

PREDICTED_COLUMN = "predicted"


def _residuals(observed: ArrayLike, predicted: ArrayLike) -> np.ndarray:
    observed = np.asarray(observed, dtype=np.float64)
    predicted = np.asarray(predicted, dtype=np.float64)
    if observed.shape != predicted.shape:
        raise ValueError(f"Shape mismatch: observed {observed.shape}, predicted {predicted.shape}")
    return observed - predicted


def compute_bias(observed: ArrayLike, predicted: ArrayLike) -> float:
    """Mean signed error (observed - predicted), rounded to 2 decimals."""
    residuals = _residuals(observed, predicted)
    if residuals.size == 0:
        return float("nan")
    return round(float(np.mean(residuals)), 2)


def compute_rmse(observed: ArrayLike, predicted: ArrayLike, formula: str = RMSE_FORMULA) -> float:
    """
    Root mean error of the predictions.

    Parameters
    ----------
    observed, predicted : array-like
        Paired values.
    formula : str, optional
        ``"unsquared"`` for sqrt(mean(observed - predicted)) or
        ``"standard"`` for sqrt(mean((observed - predicted)**2)).

    Returns
    -------
    float
        Unrounded value, NaN when undefined.
    """
    if formula not in RMSE_FORMULAS:
        raise ValueError(f"Unknown RMSE formula: {formula}")

    residuals = _residuals(observed, predicted)
    if residuals.size == 0:
        return float("nan")

    if formula == "standard":
        residuals = residuals ** 2

    with np.errstate(invalid="ignore"):
        return float(np.sqrt(np.mean(residuals)))


def compute_r2(observed: ArrayLike, predicted: ArrayLike) -> float:
    """Squared Pearson correlation, rounded to 2 decimals."""
    residuals = _residuals(observed, predicted)
    # NaN pairs propagate, as for bias and RMSE
    if residuals.size < 2 or np.isnan(residuals).any():
        return float("nan")

    r = pd.Series(np.asarray(observed, dtype=np.float64)).corr(
        pd.Series(np.asarray(predicted, dtype=np.float64)), method="pearson"
    )
    return round(float(r) ** 2, 2)


def compute_metrics(
    observed: ArrayLike,
    predicted: ArrayLike,
    rmse_formula: str = RMSE_FORMULA
) -> Dict[str, Any]:
    """
    Compute bias, RMSE and R² together.

    Returns
    -------
    dict
        Keys 'bias', 'rmse', 'r2' and 'n' (number of pairs).
    """
    return {
        'bias': compute_bias(observed, predicted),
        'rmse': compute_rmse(observed, predicted, formula=rmse_formula),
        'r2': compute_r2(observed, predicted),
        'n': int(len(np.asarray(observed))),
    }


def evaluate_model(
    predictor: Predictor,
    table: pd.DataFrame,
    response_column: str = RESPONSE_COLUMN,
    rmse_formula: str = RMSE_FORMULA
) -> Tuple[pd.DataFrame, Dict[str, Any]]:
    """
    Predict held-out rows and score the predictions.

    Parameters
    ----------
    predictor : Predictor
        Fitted model.
    table : pd.DataFrame
        Rows with the model's covariates and the observed response.
    response_column : str, optional
        Name of the observed response column.
    rmse_formula : str, optional
        See ``compute_rmse``.

    Returns
    -------
    tuple
        - Copy of ``table`` with a 'predicted' column
        - Metrics dictionary from ``compute_metrics``

    Raises
    ------
    ValueError
        If the response or any covariate column is missing.
    """
    if response_column not in table.columns:
        raise ValueError(f"Response column '{response_column}' not found in table")
    predictor.check_columns(table)

    evaluated = table.copy()
    evaluated[PREDICTED_COLUMN] = predictor.predict(table)

    if len(evaluated) == 0:
        logger.warning("Evaluation table is empty, metrics are undefined")

    metrics = compute_metrics(evaluated[response_column], evaluated[PREDICTED_COLUMN],
                              rmse_formula=rmse_formula)
    logger.info(format_metrics(metrics))
    return evaluated, metrics


def format_metrics(metrics: Dict[str, Any]) -> str:
    """One-line summary of a metrics dictionary."""
    return (f"n = {metrics['n']}, bias = {metrics['bias']:.2f}, "
            f"RMSE = {metrics['rmse']:.2f}, R² = {metrics['r2']:.2f}")
