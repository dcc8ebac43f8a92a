#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Spatial prediction over the covariate table and export of the prediction map.
"""
from pathlib import Path
from typing import Any, Union
import numpy as np
import pandas as pd
from tqdm import tqdm

from raster_upscaling.core.config import CHUNK_SIZE, OUTPUT_CRS, PREDICTION_NODATA
from raster_upscaling.core.io import CovariateStack, write_raster
from raster_upscaling.core.logging_config import get_module_logger
from raster_upscaling.upscaling.predictor import Predictor
from raster_upscaling.upscaling.table import table_to_raster
from raster_upscaling.utils.utils import timer, chunk_slices

# Initialize logger
logger = get_module_logger(__name__)

PREDICTION_COLUMN = "prediction"


@timer
def predict_table(
    predictor: Predictor,
    table: pd.DataFrame,
    chunk_size: int = CHUNK_SIZE,
    column: str = PREDICTION_COLUMN,
    show_progress: bool = False
) -> pd.DataFrame:
    """
    Predict every row of a covariate table.

    Rows are passed to the model in consecutive chunks to bound memory use;
    predictions keep the row order.

    Parameters
    ----------
    predictor : Predictor
        Fitted model.
    table : pd.DataFrame
        Covariate table.
    chunk_size : int, optional
        Rows per predict call.
    column : str, optional
        Name of the added prediction column.
    show_progress : bool, optional
        Display a progress bar.

    Returns
    -------
    pd.DataFrame
        Copy of ``table`` with the prediction column.
    """
    predictor.check_columns(table)
    predicted = table.copy()

    if len(table) == 0:
        logger.warning("Covariate table is empty, nothing to predict")
        predicted[column] = np.empty(0, dtype=np.float64)
        return predicted

    slices = list(chunk_slices(len(table), chunk_size))
    logger.info(f"Predicting {len(table)} cells in {len(slices)} chunk(s)")

    parts = []
    for rows in tqdm(slices, desc="Predicting", unit="chunk", disable=not show_progress):
        parts.append(predictor.predict(table.iloc[rows]))

    predicted[column] = np.concatenate(parts)

    values = predicted[column]
    logger.info(f"Predictions range {values.min():.2f} to {values.max():.2f} "
                f"(mean {values.mean():.2f})")
    return predicted


def export_prediction_raster(
    prediction_table: pd.DataFrame,
    stack: CovariateStack,
    output_path: Union[str, Path],
    crs: Any = OUTPUT_CRS,
    nodata: float = PREDICTION_NODATA,
    column: str = PREDICTION_COLUMN
) -> Path:
    """
    Rasterize predictions onto the covariate grid and write a GeoTIFF.

    Parameters
    ----------
    prediction_table : pd.DataFrame
        Table with 'x', 'y' and the prediction column.
    stack : CovariateStack
        Covariates whose reference grid defines the output extent.
    output_path : str or Path
        Destination file, replaced if present.
    crs : str, optional
        Output coordinate reference system, by default EPSG:2056.
        ``None`` keeps the CRS of the covariate stack.
    nodata : float, optional
        Value of cells without a prediction.
    column : str, optional
        Prediction column name.

    Returns
    -------
    Path
        Path of the written raster.
    """
    grid = table_to_raster(
        prediction_table,
        column,
        stack.transform,
        stack.width,
        stack.height,
        nodata=nodata
    )

    if crs is None:
        crs = stack.crs

    logger.info(f"Writing prediction raster ({np.sum(grid != nodata)} cells with values)")
    return write_raster(grid, output_path, stack.transform, crs=crs, nodata=nodata)
