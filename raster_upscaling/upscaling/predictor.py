#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Model interface for the upscaling pipeline.

The pipeline only ever asks a model two things: which covariates it expects
and what it predicts for a table of rows. ``Predictor`` captures that
contract so any model type can be plugged in; ``EstimatorPredictor`` adapts
a fitted scikit-learn style estimator.
"""
from abc import ABC, abstractmethod
from typing import Any, List, Optional, Sequence
import numpy as np
import pandas as pd

from raster_upscaling.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


class Predictor(ABC):
    """Fitted model consumed through a single predict contract."""

    @property
    @abstractmethod
    def feature_names(self) -> List[str]:
        """Covariate names the model expects, in model order."""

    @abstractmethod
    def predict(self, rows: pd.DataFrame) -> np.ndarray:
        """Return one prediction per row of ``rows``, in row order."""

    def check_columns(self, rows: pd.DataFrame) -> None:
        """
        Raise if ``rows`` lacks any expected covariate column.

        Raises
        ------
        ValueError
            Listing every missing covariate.
        """
        missing = [name for name in self.feature_names if name not in rows.columns]
        if missing:
            raise ValueError(f"Missing covariate columns: {', '.join(missing)}")


class EstimatorPredictor(Predictor):
    """
    Adapter around a fitted estimator exposing ``predict(X)``.

    Parameters
    ----------
    estimator : object
        Fitted model, typically a scikit-learn regressor.
    feature_names : sequence of str, optional
        Expected covariates. Defaults to the estimator's ``feature_names_in_``.
    n_jobs : int, optional
        Thread count handed to estimators that support ``n_jobs``.
    """

    def __init__(
        self,
        estimator: Any,
        feature_names: Optional[Sequence[str]] = None,
        n_jobs: Optional[int] = None
    ):
        if not hasattr(estimator, "predict"):
            raise TypeError(f"Object of type {type(estimator).__name__} has no predict method")

        if feature_names is None:
            feature_names = getattr(estimator, "feature_names_in_", None)
        if feature_names is None or len(feature_names) == 0:
            raise ValueError(
                "Cannot determine covariate names: estimator has no feature_names_in_ "
                "and none were given"
            )

        self.estimator = estimator
        self._feature_names = [str(name) for name in feature_names]

        if n_jobs is not None:
            self.set_n_jobs(n_jobs)

    @property
    def feature_names(self) -> List[str]:
        return list(self._feature_names)

    def set_n_jobs(self, n_jobs: int) -> None:
        """Forward the thread count to the estimator when it accepts one."""
        get_params = getattr(self.estimator, "get_params", None)
        if get_params is None or "n_jobs" not in get_params(deep=False):
            logger.debug(f"{type(self.estimator).__name__} does not take n_jobs")
            return
        self.estimator.set_params(n_jobs=n_jobs)
        logger.debug(f"Set n_jobs={n_jobs} on {type(self.estimator).__name__}")

    def predict(self, rows: pd.DataFrame) -> np.ndarray:
        self.check_columns(rows)
        if len(rows) == 0:
            return np.empty(0, dtype=np.float64)

        values = self.estimator.predict(rows[self._feature_names])
        values = np.asarray(values, dtype=np.float64).ravel()

        if len(values) != len(rows):
            raise ValueError(
                f"Model returned {len(values)} predictions for {len(rows)} rows"
            )
        return values

    def __repr__(self) -> str:
        return (f"EstimatorPredictor({type(self.estimator).__name__}, "
                f"features={self._feature_names})")
