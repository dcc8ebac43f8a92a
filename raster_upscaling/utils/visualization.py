#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Diagnostic plots for the raster upscaling pipeline.

This module draws the prediction map, observed-versus-predicted scatter
plots and the model's feature importances.
"""
import os
import numpy as np
import matplotlib.pyplot as plt
from typing import Any, Dict, Optional, Tuple
import pandas as pd

from raster_upscaling.core.config import PLOT_CONFIG, PREDICTION_NODATA
from raster_upscaling.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


def _finish(fig: plt.Figure, output_path: Optional[str], show_plot: bool, dpi: int) -> None:
    plt.tight_layout()

    if output_path:
        os.makedirs(os.path.dirname(os.path.abspath(output_path)), exist_ok=True)
        fig.savefig(output_path, dpi=dpi, bbox_inches='tight')
        logger.info(f"Saved plot to {output_path}")

    if show_plot:
        plt.show()
    else:
        plt.close(fig)


def plot_prediction_map(
    grid: np.ndarray,
    nodata: float = PREDICTION_NODATA,
    title: str = "Prediction",
    cmap: str = PLOT_CONFIG["cmap"],
    figsize: Tuple[int, int] = (10, 8),
    output_path: Optional[str] = None,
    show_plot: bool = False,
    dpi: int = PLOT_CONFIG["dpi"]
) -> plt.Figure:
    """
    Plot a prediction grid, hiding nodata cells.

    Parameters
    ----------
    grid : np.ndarray
        2D array of predictions.
    nodata : float, optional
        Value of empty cells.
    title : str, optional
        Plot title.
    cmap : str, optional
        Colormap name.
    figsize : tuple, optional
        Figure size.
    output_path : str, optional
        Path to save the plot, by default None.
    show_plot : bool, optional
        Whether to show the plot, by default False.
    dpi : int, optional
        Resolution of the saved image.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    masked = np.ma.masked_equal(grid, nodata)

    fig, ax = plt.subplots(figsize=figsize)
    im = ax.imshow(masked, cmap=cmap)
    plt.colorbar(im, ax=ax, shrink=0.8)
    ax.set_title(title)
    ax.set_xticks([])
    ax.set_yticks([])

    valid_data = masked.compressed()
    if len(valid_data) > 0:
        stats_text = (
            f"Min: {np.min(valid_data):.2f}\n"
            f"Max: {np.max(valid_data):.2f}\n"
            f"Mean: {np.mean(valid_data):.2f}\n"
            f"Std: {np.std(valid_data):.2f}"
        )
        fig.text(0.02, 0.02, stats_text, fontsize=10,
                 bbox=dict(facecolor='white', alpha=0.7))

    _finish(fig, output_path, show_plot, dpi)
    return fig


def plot_observed_vs_predicted(
    observed: np.ndarray,
    predicted: np.ndarray,
    metrics: Dict[str, Any],
    title: str = "Validation",
    figsize: Tuple[int, int] = (7, 7),
    output_path: Optional[str] = None,
    show_plot: bool = False,
    dpi: int = PLOT_CONFIG["dpi"]
) -> plt.Figure:
    """
    Scatter observed against predicted values with a 1:1 line.

    Parameters
    ----------
    observed, predicted : np.ndarray
        Paired values.
    metrics : dict
        Metrics shown in the corner box ('bias', 'rmse', 'r2', 'n').
    title : str, optional
        Plot title.

    Returns
    -------
    plt.Figure
        Matplotlib figure.
    """
    observed = np.asarray(observed, dtype=np.float64)
    predicted = np.asarray(predicted, dtype=np.float64)

    fig, ax = plt.subplots(figsize=figsize)

    if observed.size == 0:
        ax.text(0.5, 0.5, 'No valid data', ha='center', va='center', transform=ax.transAxes)
    else:
        all_values = np.concatenate([observed, predicted])
        vmin, vmax = np.min(all_values), np.max(all_values)
        padding = (vmax - vmin) * 0.05 or 1.0
        axis_min, axis_max = vmin - padding, vmax + padding

        ax.scatter(observed, predicted, alpha=0.6, s=20, edgecolors='none')
        ax.plot([axis_min, axis_max], [axis_min, axis_max], 'k--', linewidth=1.5, label='1:1 line')
        ax.set_xlim(axis_min, axis_max)
        ax.set_ylim(axis_min, axis_max)
        ax.set_aspect('equal', adjustable='box')
        ax.legend(loc='lower right')

    ax.set_xlabel('Observed')
    ax.set_ylabel('Predicted')
    ax.set_title(title)
    ax.grid(True, alpha=0.3, linewidth=0.5)

    metrics_text = (f"n = {metrics['n']}\n"
                    f"Bias = {metrics['bias']:.2f}\n"
                    f"RMSE = {metrics['rmse']:.2f}\n"
                    f"R² = {metrics['r2']:.2f}")
    ax.text(0.05, 0.95, metrics_text, transform=ax.transAxes,
            fontsize=11, verticalalignment='top',
            bbox=dict(boxstyle='round,pad=0.5', facecolor='white', alpha=0.9))

    _finish(fig, output_path, show_plot, dpi)
    return fig


def plot_feature_importance(
    estimator: Any,
    feature_names: list,
    figsize: Tuple[int, int] = (8, 6),
    output_path: Optional[str] = None,
    show_plot: bool = False,
    dpi: int = PLOT_CONFIG["dpi"]
) -> Optional[plt.Figure]:
    """
    Horizontal bar chart of ``estimator.feature_importances_``.

    Returns None when the estimator exposes no importances.
    """
    importances = getattr(estimator, "feature_importances_", None)
    if importances is None:
        logger.info(f"{type(estimator).__name__} has no feature importances, skipping plot")
        return None

    series = pd.Series(importances, index=feature_names).sort_values()

    fig, ax = plt.subplots(figsize=figsize)
    ax.barh(series.index, series.values, color='steelblue')
    ax.set_xlabel('Importance')
    ax.set_title('Feature importance')

    _finish(fig, output_path, show_plot, dpi)
    return fig


def plot_run(
    result: Dict[str, Any],
    evaluations: Dict[str, pd.DataFrame],
    grid: np.ndarray,
    predictor: Any,
    response_column: str,
    plot_dir: str,
    nodata: float = PREDICTION_NODATA,
    dpi: int = PLOT_CONFIG["dpi"],
    show_plots: bool = False
) -> Dict[str, str]:
    """
    Save every diagnostic plot of a pipeline run.

    Parameters
    ----------
    result : dict
        Pipeline result holding the per-dataset metrics under 'metrics'.
    evaluations : dict
        Dataset name to evaluated table ('predicted' column included).
    grid : np.ndarray
        Prediction grid.
    predictor : Predictor
        Model used in the run.
    response_column : str
        Observed response column name.
    plot_dir : str
        Output directory.

    Returns
    -------
    dict
        Plot name to file path.
    """
    paths = {}

    for name, table in evaluations.items():
        path = os.path.join(plot_dir, f"{name}_scatter.png")
        plot_observed_vs_predicted(
            table[response_column].to_numpy(),
            table["predicted"].to_numpy(),
            result["metrics"][name],
            title=name.capitalize(),
            output_path=path,
            show_plot=show_plots,
            dpi=dpi
        )
        paths[f"{name}_scatter"] = path

    path = os.path.join(plot_dir, "prediction_map.png")
    plot_prediction_map(grid, nodata=nodata, output_path=path, show_plot=show_plots, dpi=dpi)
    paths["prediction_map"] = path

    estimator = getattr(predictor, "estimator", None)
    if estimator is not None:
        path = os.path.join(plot_dir, "feature_importance.png")
        if plot_feature_importance(estimator, predictor.feature_names, output_path=path,
                                   show_plot=show_plots, dpi=dpi) is not None:
            paths["feature_importance"] = path

    return paths
