#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Conversion between rasters and per-pixel tables.

Rasters are flattened into one row per cell of the area of interest, keyed
by the (x, y) coordinate of the cell centre, and per-pixel values are
scattered back onto a grid to build the output raster.
"""
from typing import Any, Dict
import numpy as np
import pandas as pd

from raster_upscaling.core.config import MASK_VALUE, PREDICTION_NODATA
from raster_upscaling.core.io import CovariateStack, RasterData, cell_indices
from raster_upscaling.core.logging_config import get_module_logger
from raster_upscaling.utils.utils import timer

# Initialize logger
logger = get_module_logger(__name__)


def create_coordinates(raster_data: RasterData) -> Dict[str, np.ndarray]:
    """
    Create x,y coordinates of the centre of each cell in the raster.

    Parameters
    ----------
    raster_data : tuple
        Tuple containing:
        - 2D array of raster values
        - 2D boolean mask of valid data
        - Affine transform
        - Additional metadata dictionary

    Returns
    -------
    dict
        Dictionary with 'x' and 'y' arrays matching the raster shape.
    """
    arr, mask, transform, meta = raster_data
    height, width = arr.shape

    cols, rows = np.meshgrid(np.arange(width) + 0.5, np.arange(height) + 0.5)

    x_coords = transform.c + cols * transform.a + rows * transform.b
    y_coords = transform.f + cols * transform.d + rows * transform.e

    return {'x': x_coords, 'y': y_coords}


def mask_coordinates(mask_data: RasterData, target_value: int = MASK_VALUE) -> pd.DataFrame:
    """
    Coordinates of the cells flagged as area of interest.

    Parameters
    ----------
    mask_data : tuple
        Raster data of the mask.
    target_value : int, optional
        Cell value marking the area of interest, by default 1.

    Returns
    -------
    pd.DataFrame
        Columns 'x' and 'y', one row per flagged cell in row-major order.
    """
    arr, valid, _, _ = mask_data
    selected = valid & (arr == target_value)

    coordinates = create_coordinates(mask_data)
    return pd.DataFrame({
        'x': coordinates['x'][selected],
        'y': coordinates['y'][selected],
    })


@timer
def raster_to_table(
    mask_data: RasterData,
    stack: CovariateStack,
    target_value: int = MASK_VALUE
) -> pd.DataFrame:
    """
    Flatten the covariate stack into a table over the area of interest.

    Parameters
    ----------
    mask_data : tuple
        Raster data of the mask.
    stack : CovariateStack
        Covariate layers.
    target_value : int, optional
        Mask value marking the area of interest, by default 1.

    Returns
    -------
    pd.DataFrame
        Columns 'x', 'y' and one per covariate. Rows with a missing
        covariate value are dropped.
    """
    coords = mask_coordinates(mask_data, target_value)
    logger.info(f"Mask selects {len(coords)} cells")

    values = stack.sample(coords['x'].to_numpy(), coords['y'].to_numpy())
    table = pd.concat([coords, values], axis=1)

    n_before = len(table)
    table = table.dropna().reset_index(drop=True)
    n_dropped = n_before - len(table)
    if n_dropped:
        logger.warning(f"Dropped {n_dropped} of {n_before} cells with missing covariate values")

    logger.info(f"Covariate table has {len(table)} rows and {len(stack)} covariates")
    return table


def table_to_raster(
    table: pd.DataFrame,
    value_column: str,
    transform: Any,
    width: int,
    height: int,
    nodata: float = PREDICTION_NODATA
) -> np.ndarray:
    """
    Scatter per-pixel values back onto a grid.

    Parameters
    ----------
    table : pd.DataFrame
        Table with 'x', 'y' and ``value_column``.
    value_column : str
        Column holding the cell values.
    transform : affine.Affine
        Transform of the target grid.
    width, height : int
        Size of the target grid.
    nodata : float, optional
        Fill value for cells without a row.

    Returns
    -------
    np.ndarray
        float32 array of shape (height, width).
    """
    grid = np.full((height, width), nodata, dtype=np.float32)
    if len(table) == 0:
        logger.warning("No rows to rasterize, output is empty")
        return grid

    rows, cols = cell_indices(transform, table['x'].to_numpy(), table['y'].to_numpy())
    inside = (rows >= 0) & (rows < height) & (cols >= 0) & (cols < width)
    if not np.all(inside):
        logger.warning(f"{np.sum(~inside)} rows fall outside the target grid and were skipped")

    values = table[value_column].to_numpy(dtype=np.float32)
    grid[rows[inside], cols[inside]] = values[inside]
    return grid
