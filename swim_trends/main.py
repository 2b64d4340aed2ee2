#!/usr/bin/env python
"""
Command line entry point for the swim trends pipeline.

Usage:
    python -m swim_trends.main extract --fit_dir ./data/fit
    python -m swim_trends.main trend --stroke freestyle --output trend.json
"""

import argparse
import datetime as dt
import json
import sys
from pathlib import Path
from typing import List, Optional

import pandas as pd
from loguru import logger

from swim_trends.config import SwimSettings
from swim_trends.service.fit_file_reader import read_fit_directory
from swim_trends.service.swim_analysis.common.data_models import TrendModelResult
from swim_trends.service.swim_analysis.core_metrics.speed_metrics import (
    add_speed_columns,
    drop_speed_outliers,
    summarize_sessions,
)
from swim_trends.service.swim_analysis.modeling.trend_model import fit_speed_trend
from swim_trends.service.swim_analysis.segmentation.lap_segmenter import (
    derive_enriched_laps,
    read_enriched_laps,
    write_enriched_laps,
)
from swim_trends.service_factory import ServiceFactory
from swim_trends.utils import ensure_directory


def setup_logger(out_dir: Path, level: str = "INFO") -> None:
    log_dir = ensure_directory(out_dir / "log")

    logger.remove()
    logger.add(sys.stderr, level=level)
    logger.add(log_dir / "debug.log", rotation="100 MB", retention="7 days", level="DEBUG")
    logger.add(log_dir / "error.log", rotation="100 MB", retention="7 days", level="ERROR")
    logger.info("logger initialised")


def run_extract(factory: ServiceFactory, fit_dir: Path, output_csv: Path) -> Path:
    """
    Read FIT files, store them and write the enriched lap table.

    The table covers the files read in this run. Session numbers come from the
    store, so they count every stored session of the same date.
    """
    batch = read_fit_directory(fit_dir)

    data_service = factory.swim_data_service
    data_service.store_batch(batch)

    file_ids = batch.file_ids
    enriched = derive_enriched_laps(data_service.load_laps_frame(file_ids), data_service.load_sessions_frame(file_ids))
    data_service.store_enriched_laps(enriched)

    for summary in data_service.query_session_summaries():
        logger.debug(f"Session summary: {summary}")

    return write_enriched_laps(enriched, output_csv)


def run_trend(
    settings: SwimSettings,
    csv_path: Path,
    stroke: Optional[str] = None,
    start_date: Optional[dt.date] = None,
    end_date: Optional[dt.date] = None,
) -> Optional[TrendModelResult]:
    """Fit the speed trend on a written enriched lap table."""
    enriched = read_enriched_laps(csv_path)
    session_dates = pd.to_datetime(enriched["session_date"])
    in_range = pd.Series(True, index=enriched.index)
    if start_date:
        in_range &= session_dates >= pd.Timestamp(start_date)
    if end_date:
        in_range &= session_dates <= pd.Timestamp(end_date)
    enriched = enriched.loc[in_range]

    laps = drop_speed_outliers(add_speed_columns(enriched), settings.analysis.max_speed_m_per_s)

    sessions = summarize_sessions(laps, stroke=stroke)
    logger.info(f"{len(sessions)} sessions in the model input")

    return fit_speed_trend(
        laps,
        stroke=stroke,
        include_stroke_effects=settings.analysis.include_stroke_effects,
        min_observations=settings.analysis.min_observations,
    )


def _parse_date(value: Optional[str], label: str) -> Optional[dt.date]:
    if not value:
        return None
    try:
        return dt.date.fromisoformat(value)
    except ValueError:
        logger.error(f"Invalid {label} date format: {value}. Use YYYY-MM-DD.")
        sys.exit(1)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Estimate swimming speed trends from FIT files")
    subparsers = parser.add_subparsers(dest="command", required=True)

    extract_parser = subparsers.add_parser("extract", help="Build the enriched lap table from FIT files")
    extract_parser.add_argument("--fit_dir", type=str, help="FIT file or directory (default: from settings)")
    extract_parser.add_argument("--output", type=str, help="Output CSV (default: from settings)")

    trend_parser = subparsers.add_parser("trend", help="Fit the speed trend model on the enriched lap table")
    trend_parser.add_argument("--input", type=str, help="Enriched lap CSV (default: from settings)")
    trend_parser.add_argument("--stroke", type=str, help="Only model laps of this stroke (e.g. freestyle)")
    trend_parser.add_argument("--start", type=str, help="First session date (YYYY-MM-DD format, optional)")
    trend_parser.add_argument("--end", type=str, help="Last session date (YYYY-MM-DD format, optional)")
    trend_parser.add_argument("--output", type=str, help="Write the model summary to this JSON file")

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = SwimSettings()
    setup_logger(settings.out_dir, settings.log_level)

    if args.command == "extract":
        factory = ServiceFactory(settings)
        try:
            fit_dir = Path(args.fit_dir) if args.fit_dir else settings.fit_dir
            output_csv = Path(args.output) if args.output else settings.output_csv_path
            run_extract(factory, fit_dir, output_csv)
        finally:
            factory.swim_data_service.close()
        return 0

    start_date = _parse_date(args.start, "start")
    end_date = _parse_date(args.end, "end")
    csv_path = Path(args.input) if args.input else settings.output_csv_path

    result = run_trend(settings, csv_path, stroke=args.stroke, start_date=start_date, end_date=end_date)
    if result is None:
        logger.error("Speed trend could not be fitted")
        return 1

    for coef in result.coefficients:
        logger.info(f"{coef.name:>24}: {coef.estimate:+.5f} (se {coef.std_error:.5f})")

    if args.output:
        output_path = Path(args.output)
        with open(output_path, "w") as f:
            json.dump(result.model_dump(mode="json"), f, indent=2)
        logger.info(f"Results written to {output_path}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
