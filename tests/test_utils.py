#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Tests for the shared helpers and the run report.
"""

import json
import math
import os
import shutil
import tempfile
import unittest
from pathlib import Path
import numpy as np
import pandas as pd
import yaml

from raster_upscaling.utils.metadata import _to_builtin, describe_predictions, save_run_report
from raster_upscaling.utils.utils import chunk_slices, timer


class TestChunkSlices(unittest.TestCase):

    def test_covers_all_rows(self):
        slices = list(chunk_slices(7, 3))
        self.assertEqual(slices, [slice(0, 3), slice(3, 6), slice(6, 7)])

    def test_no_rows(self):
        self.assertEqual(list(chunk_slices(0, 5)), [])

    def test_invalid_size(self):
        with self.assertRaises(ValueError):
            list(chunk_slices(10, -1))


class TestTimer(unittest.TestCase):

    def test_keeps_result_and_name(self):
        @timer
        def double(value):
            return 2 * value

        self.assertEqual(double(4), 8)
        self.assertEqual(double.__name__, "double")


class TestRunReport(unittest.TestCase):
    """Test report serialization."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.result = {
            "metrics": {"validation": {"bias": np.float64(0.25), "rmse": float("nan"),
                                       "r2": 0.9, "n": np.int64(12)}},
            "rows": {"covariate_table": 15},
            "outputs": {"raster": Path("output") / "prediction.tif"},
        }
        self.settings = {"output_crs": "EPSG:2056", "mask_path": Path("data") / "mask.tif"}

    def tearDown(self):
        shutil.rmtree(self.tmpdir)

    def test_builtin_conversion(self):
        converted = _to_builtin(self.result)
        self.assertIsNone(converted["metrics"]["validation"]["rmse"])
        self.assertIsInstance(converted["metrics"]["validation"]["n"], int)
        self.assertEqual(converted["outputs"]["raster"], os.path.join("output", "prediction.tif"))

    def test_json_report(self):
        path = save_run_report(self.result, self.settings, os.path.join(self.tmpdir, "run.json"),
                               extra={"note": "synthetic"})
        with open(path) as f:
            report = json.load(f)
        self.assertEqual(report["metrics"]["validation"]["bias"], 0.25)
        self.assertEqual(report["note"], "synthetic")
        self.assertIn("timestamp", report)

    def test_yaml_report(self):
        path = save_run_report(self.result, self.settings, os.path.join(self.tmpdir, "run.yaml"),
                               format="yaml")
        with open(path) as f:
            report = yaml.safe_load(f)
        self.assertEqual(report["settings"]["output_crs"], "EPSG:2056")

    def test_unsupported_format(self):
        with self.assertRaises(ValueError):
            save_run_report(self.result, self.settings, os.path.join(self.tmpdir, "run.xml"),
                            format="xml")

    def test_describe_predictions(self):
        stats = describe_predictions(pd.DataFrame({"prediction": [1.0, 2.0, 3.0]}))
        self.assertEqual(stats["count"], 3)
        self.assertEqual(stats["median"], 2.0)
        self.assertTrue(math.isclose(stats["std"], 1.0))

        empty = describe_predictions(pd.DataFrame({"prediction": []}))
        self.assertEqual(empty["count"], 0)
        self.assertIsNone(empty["mean"])


if __name__ == '__main__':
    unittest.main()
