"""
Speed metrics module.

This module provides functions for turning the enriched lap table into model
inputs: per-lap speed, elapsed days since the first session, outlier removal and
per-session summaries.
"""

from typing import Optional

import numpy as np
import pandas as pd
from loguru import logger

from swim_trends.service.swim_analysis.common.constants import SpeedThresholds


def add_speed_columns(enriched: pd.DataFrame) -> pd.DataFrame:
    """
    Add `speed_m_per_s` and `days_since_start` to an enriched lap table.

    Speed is the pool length divided by the lap time. It is NaN when either is
    missing or the lap time is not positive.

    Args:
        enriched: Enriched lap table (pool_length in meters)

    Returns:
        A copy of the table with the two columns added
    """
    frame = enriched.copy()

    pool_length = pd.to_numeric(frame["pool_length"]).astype(float)
    elapsed = pd.to_numeric(frame["total_elapsed_time"]).astype(float)
    speed = pool_length / elapsed.where(elapsed > 0)
    frame["speed_m_per_s"] = speed.replace([np.inf, -np.inf], np.nan)

    session_dates = pd.to_datetime(frame["session_date"])
    first_date = session_dates.min()
    frame["days_since_start"] = (session_dates - first_date).dt.days.astype(float)

    return frame


def drop_speed_outliers(
    frame: pd.DataFrame, max_speed: float = SpeedThresholds.MAX_REALISTIC_SPEED_M_PER_S
) -> pd.DataFrame:
    """
    Remove laps with an unknown or unrealistically high speed.

    Args:
        frame: Table with a `speed_m_per_s` column (see add_speed_columns)
        max_speed: Highest speed kept, in m/s

    Returns:
        Filtered copy of the table
    """
    speed = frame["speed_m_per_s"]
    too_fast = speed > max_speed
    unknown = speed.isna()

    if too_fast.any():
        logger.info(f"Dropping {int(too_fast.sum())} laps faster than {max_speed} m/s")
    if unknown.any():
        logger.info(f"Dropping {int(unknown.sum())} laps without a known speed")

    return frame.loc[~(too_fast | unknown)].reset_index(drop=True)


def summarize_sessions(frame: pd.DataFrame, stroke: Optional[str] = None) -> pd.DataFrame:
    """
    Summarize lap speeds per session.

    Args:
        frame: Table with `speed_m_per_s` (see add_speed_columns)
        stroke: Only summarize laps of this stroke

    Returns:
        One row per (session_date, session_number) with lap count, distance,
        mean and best speed, ordered by date
    """
    if stroke is not None:
        frame = frame.loc[frame["swim_stroke"].eq(stroke).fillna(False).astype(bool)]

    columns = ["session_date", "session_number", "laps", "distance_m", "mean_speed_m_per_s", "best_speed_m_per_s"]
    if frame.empty:
        return pd.DataFrame(columns=columns)

    summary = (
        frame.groupby(["session_date", "session_number"], dropna=False)
        .agg(
            laps=("speed_m_per_s", "size"),
            distance_m=("pool_length", "sum"),
            mean_speed_m_per_s=("speed_m_per_s", "mean"),
            best_speed_m_per_s=("speed_m_per_s", "max"),
        )
        .reset_index()
        .sort_values(["session_date", "session_number"])
        .reset_index(drop=True)
    )
    return summary[columns]
