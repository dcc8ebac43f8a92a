#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for raster, table and model loading.
"""

import os
import shutil
import tempfile
import unittest
import numpy as np
import joblib
import rasterio
from rasterio.transform import Affine

from raster_upscaling.core import io
from raster_upscaling.core.config import DEFAULT_NODATA_VALUE

from synthetic import (
    CRS, NODATA, TRANSFORM, create_synthetic_covariates, fit_synthetic_model,
    save_synthetic_raster
)


class TestLoadRaster(unittest.TestCase):
    """Test single raster loading."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            io.load_raster(os.path.join(self.tmpdir, "missing.tif"))

    def test_valid_mask_excludes_nodata(self):
        elevation = create_synthetic_covariates()["elevation"]
        path = save_synthetic_raster(os.path.join(self.tmpdir, "elevation.tif"), elevation)

        arr, mask, transform, meta = io.load_raster(path)

        self.assertEqual(arr.shape, elevation.shape)
        self.assertFalse(mask[1, 2])
        self.assertEqual(int(mask.sum()), elevation.size - 1)
        self.assertEqual(meta['nodata'], NODATA)
        self.assertEqual(meta['width'], elevation.shape[1])
        np.testing.assert_allclose(tuple(transform)[:6], tuple(TRANSFORM)[:6])

    def test_default_nodata(self):
        array = np.arange(6, dtype=np.float32).reshape(2, 3)
        path = save_synthetic_raster(os.path.join(self.tmpdir, "plain.tif"), array, nodata=None)

        arr, mask, transform, meta = io.load_raster(path)

        self.assertEqual(meta['nodata'], DEFAULT_NODATA_VALUE)
        self.assertTrue(mask.all())


class TestFindCovariateFiles(unittest.TestCase):
    """Test the covariate name to file mapping."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        for name in ["ch_elevation_10m.tif", "slope.tif", "slope_std.tif", "notes.txt"]:
            open(os.path.join(self.tmpdir, name), "w").close()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_substring_match(self):
        mapping = io.find_covariate_files(self.tmpdir, ["elevation"])
        self.assertEqual(mapping["elevation"].name, "ch_elevation_10m.tif")

    def test_exact_match_preferred(self):
        mapping = io.find_covariate_files(self.tmpdir, ["slope"])
        self.assertEqual(mapping["slope"].name, "slope.tif")

    def test_order_follows_covariates(self):
        mapping = io.find_covariate_files(self.tmpdir, ["slope_std", "elevation", "slope"])
        self.assertEqual(list(mapping), ["slope_std", "elevation", "slope"])

    def test_missing_covariates_reported_together(self):
        with self.assertRaises(io.MissingCovariateError) as ctx:
            io.find_covariate_files(self.tmpdir, ["elevation", "aspect", "notes"])
        self.assertEqual(ctx.exception.missing, ["aspect", "notes"])
        self.assertIsInstance(ctx.exception, FileNotFoundError)

    def test_ambiguous_match(self):
        open(os.path.join(self.tmpdir, "dem_elevation.tif"), "w").close()
        with self.assertRaises(ValueError):
            io.find_covariate_files(self.tmpdir, ["elevation"])

    def test_missing_directory(self):
        with self.assertRaises(FileNotFoundError):
            io.find_covariate_files(os.path.join(self.tmpdir, "nope"), ["elevation"])


class TestCovariateStack(unittest.TestCase):
    """Test stack loading and point sampling."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.covariates = create_synthetic_covariates()
        self.files = {
            name: save_synthetic_raster(os.path.join(self.tmpdir, f"{name}.tif"), array)
            for name, array in self.covariates.items()
        }

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_sample_cell_centres(self):
        stack = io.load_covariate_stack(self.files)
        # Centre of row 0, column 3
        x = TRANSFORM.c + 3.5 * TRANSFORM.a
        y = TRANSFORM.f + 0.5 * TRANSFORM.e

        values = stack.sample(np.array([x]), np.array([y]))

        self.assertEqual(list(values.columns), ["elevation", "slope"])
        self.assertAlmostEqual(values.loc[0, "elevation"], float(self.covariates["elevation"][0, 3]))
        self.assertAlmostEqual(values.loc[0, "slope"], float(self.covariates["slope"][0, 3]), places=5)

    def test_nodata_and_outside_points_are_nan(self):
        stack = io.load_covariate_stack(self.files)
        xs = np.array([TRANSFORM.c + 2.5 * TRANSFORM.a, TRANSFORM.c - 50.0])
        ys = np.array([TRANSFORM.f + 1.5 * TRANSFORM.e, TRANSFORM.f + 0.5 * TRANSFORM.e])

        values = stack.sample(xs, ys)

        self.assertTrue(np.isnan(values.loc[0, "elevation"]))
        self.assertFalse(np.isnan(values.loc[0, "slope"]))
        self.assertTrue(values.loc[1].isna().all())

    def test_reference_grid(self):
        stack = io.load_covariate_stack(self.files)
        self.assertEqual((stack.height, stack.width), self.covariates["elevation"].shape)
        self.assertEqual(stack.crs, rasterio.crs.CRS.from_string(CRS))
        self.assertEqual(stack.misaligned_layers(), [])

    def _shift_slope(self, cells):
        shifted = TRANSFORM @ Affine.translation(cells, 0)
        self.files["slope"] = save_synthetic_raster(
            os.path.join(self.tmpdir, "slope_shifted.tif"), self.covariates["slope"], transform=shifted
        )

    def test_misaligned_layer_detected(self):
        self._shift_slope(2)
        stack = io.load_covariate_stack(self.files)
        self.assertEqual(stack.misaligned_layers(), ["slope"])

    def test_one_cell_shift_at_projected_coordinates(self):
        # 10 m offset against an origin of 2.6e6 m
        self._shift_slope(1)
        with self.assertLogs("upscaling", level="WARNING") as logs:
            stack = io.load_covariate_stack(self.files)
        self.assertEqual(stack.misaligned_layers(), ["slope"])
        self.assertTrue(any("slope" in line and "differ" in line for line in logs.output))

    def test_sub_micro_offset_is_aligned(self):
        nudged = Affine(TRANSFORM.a, 0.0, TRANSFORM.c + 1e-8, 0.0, TRANSFORM.e, TRANSFORM.f)
        self.files["slope"] = save_synthetic_raster(
            os.path.join(self.tmpdir, "slope_nudged.tif"), self.covariates["slope"], transform=nudged
        )
        stack = io.load_covariate_stack(self.files)
        self.assertEqual(stack.misaligned_layers(), [])


class TestLoadModelAndTable(unittest.TestCase):
    """Test model and table loading."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_load_estimator(self):
        path = os.path.join(self.tmpdir, "model.joblib")
        joblib.dump(fit_synthetic_model(), path)

        predictor = io.load_model(path)

        self.assertEqual(predictor.feature_names, ["elevation", "slope"])

    def test_load_bundle(self):
        path = os.path.join(self.tmpdir, "bundle.joblib")
        joblib.dump({"model": fit_synthetic_model(), "feature_names": ["elevation", "slope"]}, path)

        predictor = io.load_model(path)

        self.assertEqual(predictor.feature_names, ["elevation", "slope"])

    def test_bundle_without_model(self):
        path = os.path.join(self.tmpdir, "bundle.joblib")
        joblib.dump({"feature_names": ["elevation"]}, path)
        with self.assertRaises(ValueError):
            io.load_model(path)

    def test_missing_model(self):
        with self.assertRaises(FileNotFoundError):
            io.load_model(os.path.join(self.tmpdir, "missing.joblib"))

    def test_missing_table(self):
        with self.assertRaises(FileNotFoundError):
            io.load_table(os.path.join(self.tmpdir, "missing.csv"))


class TestWriteRaster(unittest.TestCase):
    """Test GeoTIFF output."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_float32_and_overwrite(self):
        path = os.path.join(self.tmpdir, "out", "prediction.tif")
        io.write_raster(np.zeros((3, 4)), path, TRANSFORM, crs=CRS)
        io.write_raster(np.ones((2, 2)), path, TRANSFORM, crs=CRS, nodata=-1.0)

        with rasterio.open(path) as src:
            self.assertEqual(src.dtypes[0], 'float32')
            self.assertEqual(src.count, 1)
            self.assertEqual((src.height, src.width), (2, 2))
            self.assertEqual(src.nodata, -1.0)
            self.assertEqual(src.crs, rasterio.crs.CRS.from_epsg(2056))


if __name__ == '__main__':
    unittest.main()
