#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Utility functions for the raster upscaling pipeline.

This module provides common helpers used across the upscaling modules,
such as timing and chunked iteration.
"""
import time
import functools
from typing import Callable, Iterator

from raster_upscaling.core.logging_config import get_module_logger

# Initialize logger
logger = get_module_logger(__name__)


def timer(func: Callable) -> Callable:
    """
    Decorator to time function execution.

    Parameters
    ----------
    func : Callable
        Function to time.

    Returns
    -------
    Callable
        Wrapped function with timing.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time.time()
        result = func(*args, **kwargs)
        elapsed = time.time() - start_time
        logger.debug(f"Function {func.__name__} took {elapsed:.2f} seconds to run")
        return result
    return wrapper


def chunk_slices(n_rows: int, chunk_size: int) -> Iterator[slice]:
    """
    Yield consecutive row slices covering ``n_rows``.

    Parameters
    ----------
    n_rows : int
        Total number of rows.
    chunk_size : int
        Maximum rows per slice.

    Yields
    ------
    slice
        Row slices in order.
    """
    if chunk_size <= 0:
        raise ValueError("Chunk size must be positive")

    for start in range(0, n_rows, chunk_size):
        yield slice(start, min(start + chunk_size, n_rows))
