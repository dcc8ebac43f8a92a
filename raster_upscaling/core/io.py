#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Input/output handling for the raster upscaling pipeline.

This module handles loading the mask and covariate rasters, mapping the
model's covariates to raster files, loading tables and models, and writing
the prediction raster.
"""
import os
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union, Any
import numpy as np
import pandas as pd
import rasterio
import joblib

from raster_upscaling.core.config import DEFAULT_NODATA_VALUE, COVARIATE_EXTENSIONS
from raster_upscaling.core.logging_config import get_module_logger
from raster_upscaling.upscaling.predictor import EstimatorPredictor

# Initialize logger
logger = get_module_logger(__name__)

RasterData = Tuple[np.ndarray, np.ndarray, Any, Dict[str, Any]]
PathLike = Union[str, Path]


class MissingCovariateError(FileNotFoundError):
    """Raised when required covariates have no matching raster file."""

    def __init__(self, missing: Sequence[str], directory: PathLike):
        self.missing = list(missing)
        self.directory = str(directory)
        super().__init__(
            f"No raster found in {self.directory} for covariate(s): {', '.join(self.missing)}"
        )


def load_raster(path: PathLike) -> RasterData:
    """
    Load the first band of a raster file.

    Parameters
    ----------
    path : str or Path
        Path to the raster file (GeoTIFF or any format rasterio reads).

    Returns
    -------
    tuple
        - 2D array of raster values
        - 2D boolean mask of valid data
        - Affine transform
        - Additional metadata dictionary

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Raster file not found: {path}")

    logger.info(f"Loading raster from {path}")

    with rasterio.open(path) as src:
        arr = src.read(1)

        nodata = src.nodata
        if nodata is None:
            nodata = DEFAULT_NODATA_VALUE
            logger.warning(f"No nodata value found in {path}, using default: {nodata}")

        # True for valid data
        mask = arr != nodata
        if np.issubdtype(arr.dtype, np.floating):
            mask &= ~np.isnan(arr)

        transform = src.transform
        meta = {
            'width': src.width,
            'height': src.height,
            'crs': src.crs,
            'bounds': src.bounds._asdict(),
            'nodata': nodata,
            'dtype': str(arr.dtype),
            'count': src.count,
            'driver': src.driver,
            'res': src.res,
        }

    logger.debug(f"Loaded raster with shape {arr.shape}, {np.sum(mask)} valid cells")

    return arr, mask, transform, meta


class CovariateStack:
    """
    Co-registered covariate layers, one per model covariate.

    Each layer keeps its own transform, so points are located independently
    in every layer. The first layer defines the reference grid used for the
    output raster.

    Parameters
    ----------
    names : sequence of str
        Covariate names, in model order.
    layers : sequence of tuple
        Raster data tuples as returned by ``load_raster``, aligned with ``names``.
    """

    def __init__(self, names: Sequence[str], layers: Sequence[RasterData]):
        if len(names) != len(layers):
            raise ValueError(f"Got {len(names)} covariate names for {len(layers)} layers")
        if not layers:
            raise ValueError("A covariate stack needs at least one layer")

        self.names = list(names)
        # Invalid cells become NaN so they are dropped downstream
        self.arrays = [np.where(mask, arr.astype(np.float64), np.nan)
                       for arr, mask, _, _ in layers]
        self.transforms = [transform for _, _, transform, _ in layers]

        _, _, self.transform, self.meta = layers[0]

    @property
    def width(self) -> int:
        return self.meta['width']

    @property
    def height(self) -> int:
        return self.meta['height']

    @property
    def crs(self):
        return self.meta.get('crs')

    def __len__(self) -> int:
        return len(self.names)

    def misaligned_layers(self) -> List[str]:
        """Names of layers whose grid differs from the reference grid."""
        # Absolute tolerance; a relative one grows with projected coordinates
        atol = 1e-6 * abs(self.transform.a)
        return [
            name for name, arr, transform in zip(self.names, self.arrays, self.transforms)
            if arr.shape != (self.height, self.width)
            or not np.allclose(tuple(transform)[:6], tuple(self.transform)[:6], rtol=0, atol=atol)
        ]

    def sample(self, xs: np.ndarray, ys: np.ndarray) -> pd.DataFrame:
        """
        Read every covariate at the given coordinates.

        Points falling outside a layer, or on an invalid cell, get NaN.

        Parameters
        ----------
        xs, ys : np.ndarray
            Coordinates in the stack's reference system.

        Returns
        -------
        pd.DataFrame
            One column per covariate, one row per point.
        """
        xs = np.asarray(xs, dtype=np.float64)
        ys = np.asarray(ys, dtype=np.float64)
        values = {}

        for name, arr, transform in zip(self.names, self.arrays, self.transforms):
            rows, cols = cell_indices(transform, xs, ys)
            inside = (rows >= 0) & (rows < arr.shape[0]) & (cols >= 0) & (cols < arr.shape[1])

            column = np.full(len(xs), np.nan)
            column[inside] = arr[rows[inside], cols[inside]]
            values[name] = column

        return pd.DataFrame(values, columns=self.names)


def cell_indices(transform: Any, xs: np.ndarray, ys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """
    Row and column indices of the cells containing the given coordinates.

    Parameters
    ----------
    transform : affine.Affine
        Raster transform.
    xs, ys : np.ndarray
        Coordinates.

    Returns
    -------
    tuple
        Integer row and column arrays (may fall outside the grid).
    """
    xs = np.asarray(xs, dtype=np.float64)
    ys = np.asarray(ys, dtype=np.float64)
    inverse = ~transform
    cols = inverse.a * xs + inverse.b * ys + inverse.c
    rows = inverse.d * xs + inverse.e * ys + inverse.f
    return np.floor(rows).astype(np.int64), np.floor(cols).astype(np.int64)


def find_covariate_files(
    covariate_dir: PathLike,
    covariate_names: Sequence[str],
    extensions: Optional[Sequence[str]] = None
) -> Dict[str, Path]:
    """
    Map each expected covariate to one raster file in a directory.

    A file matches a covariate when the covariate name occurs in the file
    name (without extension). A file whose name equals the covariate name
    is preferred over partial matches.

    Parameters
    ----------
    covariate_dir : str or Path
        Directory holding one raster per covariate.
    covariate_names : sequence of str
        Covariates expected by the model.
    extensions : sequence of str, optional
        Accepted file extensions, by default COVARIATE_EXTENSIONS.

    Returns
    -------
    dict
        Covariate name to file path, in the order of ``covariate_names``.

    Raises
    ------
    FileNotFoundError
        If the directory does not exist.
    MissingCovariateError
        If any covariate has no matching file.
    ValueError
        If a covariate matches several files and none exactly.
    """
    covariate_dir = Path(covariate_dir)
    if not covariate_dir.is_dir():
        raise FileNotFoundError(f"Covariate directory not found: {covariate_dir}")

    extensions = {ext.lower() for ext in (extensions or COVARIATE_EXTENSIONS)}
    candidates = sorted(
        p for p in covariate_dir.iterdir()
        if p.is_file() and p.suffix.lower() in extensions
    )
    logger.debug(f"Found {len(candidates)} raster files in {covariate_dir}")

    mapping = {}
    missing = []

    for name in covariate_names:
        exact = [p for p in candidates if p.stem == name]
        partial = [p for p in candidates if name in p.stem]
        matches = exact or partial

        if not matches:
            missing.append(name)
        elif len(matches) > 1:
            raise ValueError(
                f"Covariate '{name}' matches several files: "
                f"{', '.join(p.name for p in matches)}"
            )
        else:
            mapping[name] = matches[0]
            logger.debug(f"Covariate '{name}' -> {matches[0].name}")

    if missing:
        raise MissingCovariateError(missing, covariate_dir)

    logger.info(f"Matched {len(mapping)} covariates to raster files")
    return mapping


def load_covariate_stack(covariate_files: Dict[str, PathLike]) -> CovariateStack:
    """
    Load the mapped covariate rasters into a stack.

    Parameters
    ----------
    covariate_files : dict
        Covariate name to raster path, as built by ``find_covariate_files``.

    Returns
    -------
    CovariateStack
        Layers in the mapping's order.
    """
    names = list(covariate_files)
    layers = [load_raster(covariate_files[name]) for name in names]
    stack = CovariateStack(names, layers)

    # Grids are assumed co-registered; a mismatch only leaves NaN cells behind
    misaligned = stack.misaligned_layers()
    if misaligned:
        logger.warning(f"Covariate grids differ from the reference grid: {', '.join(misaligned)}")

    logger.info(f"Loaded covariate stack with {len(stack)} layers "
                f"({stack.height} x {stack.width} cells)")
    return stack


def load_table(path: PathLike, sep: str = ",") -> pd.DataFrame:
    """
    Load a calibration or validation table from CSV.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Table not found: {path}")

    df = pd.read_csv(path, sep=sep)
    logger.info(f"Loaded table {path} with {len(df)} rows and {len(df.columns)} columns")
    return df


def load_model(path: PathLike, n_jobs: Optional[int] = None) -> EstimatorPredictor:
    """
    Load a serialized fitted model.

    The file holds either the estimator itself or a dictionary with a
    ``"model"`` entry and, optionally, the ``"feature_names"`` it expects.

    Parameters
    ----------
    path : str or Path
        Path to a joblib/pickle file.
    n_jobs : int, optional
        Thread count handed to the estimator.

    Returns
    -------
    EstimatorPredictor
        Model wrapped in the predictor interface.

    Raises
    ------
    FileNotFoundError
        If the file does not exist.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(f"Model file not found: {path}")

    logger.info(f"Loading model from {path}")
    obj = joblib.load(path)

    if isinstance(obj, dict):
        if "model" not in obj:
            raise ValueError(f"Model bundle {path} has no 'model' entry")
        predictor = EstimatorPredictor(obj["model"], obj.get("feature_names"), n_jobs=n_jobs)
    else:
        predictor = EstimatorPredictor(obj, n_jobs=n_jobs)

    logger.info(f"Model expects {len(predictor.feature_names)} covariates: "
                f"{', '.join(predictor.feature_names)}")
    return predictor


def write_raster(
    array: np.ndarray,
    output_path: PathLike,
    transform: Any,
    crs: Any = None,
    nodata: float = DEFAULT_NODATA_VALUE
) -> Path:
    """
    Write a single-band float32 GeoTIFF, replacing any existing file.

    Parameters
    ----------
    array : np.ndarray
        2D array of values.
    output_path : str or Path
        Destination file.
    transform : affine.Affine
        Georeferencing transform.
    crs : str or rasterio.crs.CRS, optional
        Coordinate reference system.
    nodata : float, optional
        Value marking empty cells.

    Returns
    -------
    Path
        Path of the written file.
    """
    output_path = Path(output_path)
    if output_path.parent != Path(""):
        os.makedirs(output_path.parent, exist_ok=True)

    if output_path.exists():
        logger.debug(f"Overwriting existing raster {output_path}")
        output_path.unlink()

    height, width = array.shape
    with rasterio.open(
        output_path,
        'w',
        driver='GTiff',
        height=height,
        width=width,
        count=1,
        dtype='float32',
        crs=crs,
        transform=transform,
        nodata=nodata
    ) as dst:
        dst.write(array.astype(np.float32), 1)

    logger.info(f"Saved raster to {output_path}")
    return output_path
