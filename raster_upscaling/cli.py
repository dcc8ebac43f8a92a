#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Main entry point for the raster upscaling pipeline.

This script evaluates a trained model on held-out data and writes a
prediction raster over the masked study area. Without arguments it runs
the full workflow with the default paths from config.py.
"""
import sys
import argparse
from typing import Any, Dict, List, Optional

from raster_upscaling import __version__
from raster_upscaling.core.config import RMSE_FORMULAS, load_config
from raster_upscaling.core.logging_config import setup_logging, get_module_logger

# Initialize logger
logger = get_module_logger(__name__)

COMMANDS = ['run', 'evaluate', 'predict']


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to a YAML file overriding the default settings"
    )

    parser.add_argument(
        "--model", "-m",
        dest="model_path",
        help="Path to the serialized trained model (joblib)"
    )

    parser.add_argument(
        "--response", "-r",
        dest="response_column",
        help="Name of the observed response column"
    )

    parser.add_argument(
        "--n-jobs", "-j",
        dest="n_jobs",
        type=int,
        help="Threads used by the model (default: all cores but one)"
    )

    parser.add_argument(
        "--report",
        dest="save_report",
        action="store_true",
        default=None,
        help="Save a run report next to the output raster"
    )

    parser.add_argument(
        "--no-report",
        dest="save_report",
        action="store_false",
        default=None,
        help="Do not save a run report"
    )

    parser.add_argument(
        "--log-level", "-l",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default="INFO",
        help="Logging level (default: INFO)"
    )

    parser.add_argument(
        "--log-file",
        help="Also write the log to this file"
    )


def _add_evaluation_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--validation", "-v",
        dest="validation_path",
        help="Path to the validation table (CSV)"
    )

    calibration_group = parser.add_mutually_exclusive_group()
    calibration_group.add_argument(
        "--calibration",
        dest="calibration_path",
        help="Path to the calibration table (CSV)"
    )

    calibration_group.add_argument(
        "--no-calibration",
        dest="no_calibration",
        action="store_true",
        help="Do not score the model on the calibration table"
    )

    parser.add_argument(
        "--rmse-formula",
        dest="rmse_formula",
        choices=RMSE_FORMULAS,
        help="RMSE formula: 'unsquared' sqrt(mean(obs - pred)) or 'standard'"
    )


def _add_prediction_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--mask",
        dest="mask_path",
        help="Path to the mask raster (1 = area of interest)"
    )

    parser.add_argument(
        "--covariates",
        dest="covariate_dir",
        help="Directory with one raster per covariate"
    )

    parser.add_argument(
        "--output", "-o",
        dest="output_path",
        help="Path of the output prediction raster (GeoTIFF)"
    )

    crs_group = parser.add_mutually_exclusive_group()
    crs_group.add_argument(
        "--crs",
        dest="output_crs",
        help="CRS written to the output raster (default: EPSG:2056)"
    )

    crs_group.add_argument(
        "--keep-crs",
        dest="keep_crs",
        action="store_true",
        help="Write the covariates' own CRS to the output raster"
    )

    parser.add_argument(
        "--chunk-size",
        dest="chunk_size",
        type=int,
        help="Rows per predict call"
    )

    parser.add_argument(
        "--plots", "-p",
        dest="make_plots",
        action="store_true",
        default=None,
        help="Save diagnostic plots"
    )

    parser.add_argument(
        "--plot-dir",
        dest="plot_dir",
        help="Directory for diagnostic plots"
    )


def parse_arguments(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line arguments.

    Returns
    -------
    argparse.Namespace
        Parsed command line arguments.
    """
    argv = list(sys.argv[1:] if argv is None else argv)

    # No subcommand means a full run
    if not argv or argv[0] not in COMMANDS + ['-h', '--help', '--version']:
        argv.insert(0, 'run')

    parser = argparse.ArgumentParser(
        description="Evaluate a trained model and upscale it over a raster study area."
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Raster Upscaling Pipeline v{__version__}"
    )

    subparsers = parser.add_subparsers(dest='command', help='Command to execute')

    run_parser = subparsers.add_parser('run', help='Evaluate the model and write the prediction raster')
    _add_common_arguments(run_parser)
    _add_evaluation_arguments(run_parser)
    _add_prediction_arguments(run_parser)

    evaluate_parser = subparsers.add_parser('evaluate', help='Evaluate the model on held-out data only')
    _add_common_arguments(evaluate_parser)
    _add_evaluation_arguments(evaluate_parser)

    predict_parser = subparsers.add_parser('predict', help='Write the prediction raster only')
    _add_common_arguments(predict_parser)
    _add_prediction_arguments(predict_parser)

    return parser.parse_args(argv)


_SETTING_ARGUMENTS = (
    "model_path", "response_column", "n_jobs", "save_report",
    "validation_path", "calibration_path", "rmse_formula",
    "mask_path", "covariate_dir", "output_path", "output_crs",
    "chunk_size", "make_plots", "plot_dir",
)


def build_settings(args: argparse.Namespace) -> Dict[str, Any]:
    """
    Merge command line options over the configuration.

    Returns
    -------
    dict
        Settings for ``run_pipeline``.
    """
    overrides = {name: getattr(args, name, None) for name in _SETTING_ARGUMENTS}
    settings = load_config(args.config, overrides=overrides)

    # None overrides are ignored by load_config, so these are set afterwards
    if getattr(args, "keep_crs", False):
        settings["output_crs"] = None
    if getattr(args, "no_calibration", False):
        settings["calibration_path"] = None

    return settings


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main function to run the upscaling pipeline.

    Returns
    -------
    int
        Exit code.
    """
    args = parse_arguments(argv)

    setup_logging(log_level=args.log_level, log_file=args.log_file)

    try:
        # Import here to avoid loading rasterio before logging is set up
        from raster_upscaling.upscaling.evaluation import format_metrics
        from raster_upscaling.upscaling.pipeline import run_pipeline

        settings = build_settings(args)
        logger.info(f"Starting '{args.command}'")

        result = run_pipeline(
            settings,
            evaluate=args.command in ('run', 'evaluate'),
            predict=args.command in ('run', 'predict')
        )

        for name, metrics in result["metrics"].items():
            print(f"{name}: {format_metrics(metrics)}")
        if "raster" in result["outputs"]:
            print(f"prediction raster: {result['outputs']['raster']}")

        return 0

    except Exception as e:
        logger.exception(f"Error during upscaling: {str(e)}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
