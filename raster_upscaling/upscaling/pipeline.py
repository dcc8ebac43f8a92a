#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
End-to-end upscaling run.

Stages run in a fixed order: load the model and rasters, flatten the
rasters into a covariate table, evaluate the model on held-out tables,
predict every cell and write the prediction raster. Each stage receives
what it needs as arguments and returns a new value; any failure aborts
the run.
"""
import time
from pathlib import Path
from typing import Any, Dict, Optional, Tuple
import pandas as pd

from raster_upscaling.core.config import load_config
from raster_upscaling.core.io import (
    CovariateStack, RasterData, find_covariate_files, load_covariate_stack,
    load_model, load_raster, load_table
)
from raster_upscaling.core.logging_config import get_module_logger
from raster_upscaling.upscaling.evaluation import evaluate_model
from raster_upscaling.upscaling.prediction import (
    PREDICTION_COLUMN, export_prediction_raster, predict_table
)
from raster_upscaling.upscaling.predictor import Predictor
from raster_upscaling.upscaling.table import raster_to_table
from raster_upscaling.utils.metadata import describe_predictions, save_run_report

# Initialize logger
logger = get_module_logger(__name__)


def load_rasters(
    settings: Dict[str, Any],
    predictor: Predictor
) -> Tuple[RasterData, CovariateStack, Dict[str, Path]]:
    """
    Load the mask and the covariates the model expects.

    Returns
    -------
    tuple
        - Mask raster data
        - Covariate stack
        - Covariate name to file mapping
    """
    covariate_files = find_covariate_files(
        settings["covariate_dir"],
        predictor.feature_names,
        extensions=settings.get("covariate_extensions")
    )
    stack = load_covariate_stack(covariate_files)
    mask_data = load_raster(settings["mask_path"])
    return mask_data, stack, covariate_files


def evaluate_tables(
    settings: Dict[str, Any],
    predictor: Predictor
) -> Tuple[Dict[str, pd.DataFrame], Dict[str, Dict[str, Any]]]:
    """
    Score the model on the validation table, and on the calibration table when configured.

    Returns
    -------
    tuple
        - Dataset name to evaluated table
        - Dataset name to metrics
    """
    datasets = [("validation", settings["validation_path"])]
    if settings.get("calibration_path") is not None:
        datasets.append(("calibration", settings["calibration_path"]))

    evaluations = {}
    metrics = {}
    for name, path in datasets:
        logger.info(f"Evaluating model on {name} data")
        table = load_table(path, sep=settings.get("table_sep", ","))
        evaluations[name], metrics[name] = evaluate_model(
            predictor,
            table,
            response_column=settings["response_column"],
            rmse_formula=settings["rmse_formula"]
        )
    return evaluations, metrics


def predict_area(
    settings: Dict[str, Any],
    predictor: Predictor,
    covariate_table: pd.DataFrame,
    stack: CovariateStack
) -> Tuple[pd.DataFrame, Path]:
    """
    Predict every row of the covariate table and write the raster.

    Returns
    -------
    tuple
        - Prediction table
        - Path of the written raster
    """
    prediction_table = predict_table(
        predictor,
        covariate_table,
        chunk_size=settings["chunk_size"],
        show_progress=settings.get("show_progress", False)
    )
    output_path = export_prediction_raster(
        prediction_table,
        stack,
        settings["output_path"],
        crs=settings["output_crs"],
        nodata=settings["nodata"]
    )
    return prediction_table, output_path


def run_pipeline(
    settings: Optional[Dict[str, Any]] = None,
    predictor: Optional[Predictor] = None,
    evaluate: bool = True,
    predict: bool = True
) -> Dict[str, Any]:
    """
    Run the upscaling workflow.

    Parameters
    ----------
    settings : dict, optional
        Settings from ``load_config``, by default the built-in defaults.
    predictor : Predictor, optional
        Model to use instead of loading ``settings['model_path']``.
    evaluate : bool, optional
        Score the model on the held-out tables.
    predict : bool, optional
        Produce the prediction raster.

    Returns
    -------
    dict
        Metrics per dataset, covariate mapping, row counts and output paths.
    """
    if settings is None:
        settings = load_config()

    start_time = time.time()

    if predictor is None:
        predictor = load_model(settings["model_path"], n_jobs=settings.get("n_jobs"))

    result = {
        "model": repr(predictor),
        "covariates": {},
        "metrics": {},
        "rows": {},
        "outputs": {},
    }
    evaluations = {}

    if predict:
        mask_data, stack, covariate_files = load_rasters(settings, predictor)
        result["covariates"] = {name: str(path) for name, path in covariate_files.items()}
        covariate_table = raster_to_table(mask_data, stack, target_value=settings["mask_value"])

    if evaluate:
        evaluations, result["metrics"] = evaluate_tables(settings, predictor)
        for name, table in evaluations.items():
            result["rows"][name] = len(table)

    if predict:
        prediction_table, output_path = predict_area(settings, predictor, covariate_table, stack)
        result["rows"]["covariate_table"] = len(prediction_table)
        result["outputs"]["raster"] = str(output_path)

        result["prediction"] = describe_predictions(prediction_table, PREDICTION_COLUMN)

        if settings.get("make_plots"):
            # matplotlib only loads for plotting runs
            from raster_upscaling.utils.visualization import plot_run
            grid = load_raster(output_path)[0]
            result["outputs"]["plots"] = plot_run(
                result,
                evaluations,
                grid,
                predictor,
                settings["response_column"],
                str(settings["plot_dir"]),
                nodata=settings["nodata"],
                dpi=settings.get("dpi", 300),
                show_plots=settings.get("show_plots", False)
            )

    if settings.get("save_report"):
        report_path = settings.get("report_path") or _default_report_path(settings)
        result["outputs"]["report"] = str(report_path)
        save_run_report(result, settings, str(report_path), format=settings.get("report_format", "json"))

    elapsed_time = time.time() - start_time
    logger.info(f"Upscaling run completed in {elapsed_time:.2f} seconds")
    return result


def _default_report_path(settings: Dict[str, Any]) -> Path:
    suffix = ".yaml" if settings.get("report_format", "json").lower() == "yaml" else ".json"
    return Path(settings["output_path"]).with_suffix(suffix)
