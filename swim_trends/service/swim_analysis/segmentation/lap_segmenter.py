"""
Lap segmentation and feature derivation.

This module turns per-length records read from FIT files into the enriched lap
table: laps are split into sets at rest intervals, each lap gets its position
within the workout and within its set, non-swimming laps are dropped and
session attributes are joined on.
"""

from pathlib import Path
from typing import Iterable, List, Optional, Union

import pandas as pd
from loguru import logger

from swim_trends.service.swim_analysis.common.constants import Columns, LengthTypes, SwimStrokes

# Lap columns carried into the join with the session table
_LAP_OUTPUT_COLUMNS = [
    "file_id",
    "total_elapsed_time",
    "set_id",
    "lap_index",
    "lap_in_set",
    "pos_within_workout",
    "pos_within_set",
    "swim_stroke",
]

# Columns added by annotate_laps
ANNOTATION_COLUMNS = [
    "lap_index",
    "total_laps",
    "pos_within_workout",
    "set_id",
    "lap_in_set",
    "set_size",
    "pos_within_set",
]


def assign_set_ids(length_types: Iterable[str]) -> List[int]:
    """
    Assign a set id to every lap of one workout.

    The first set has id 1. An idle lap stays in the set it closes, and every lap
    after it gets the next id, so a workout without idle laps is a single set.

    Args:
        length_types: `length_type` values in recording order

    Returns:
        Set ids, one per lap
    """
    set_ids = []
    current_set = 1
    for length_type in length_types:
        set_ids.append(current_set)
        if isinstance(length_type, str) and length_type == LengthTypes.IDLE:
            current_set += 1
    return set_ids


def annotate_laps(laps: pd.DataFrame) -> pd.DataFrame:
    """
    Segment laps into sets and compute positional features.

    Positions within the workout are computed over every lap of a file, idle and
    drill laps included. Idle and drill laps are then dropped, and positions within
    each set are computed over the laps that remain.

    Args:
        laps: Lap table with at least `file_id` and `length_type`, in recording
            order within each file. It is not modified.

    Returns:
        Active, non-drill laps with the columns in ANNOTATION_COLUMNS added
    """
    columns = list(laps.columns) + [c for c in ANNOTATION_COLUMNS if c not in laps.columns]
    if laps.empty:
        return pd.DataFrame(columns=columns)

    frame = laps.reset_index(drop=True).copy()
    if "swim_stroke" not in frame.columns:
        frame["swim_stroke"] = None

    by_file = frame.groupby("file_id", sort=False)
    frame["lap_index"] = by_file.cumcount() + 1
    frame["total_laps"] = by_file["length_type"].transform("size")
    frame["pos_within_workout"] = frame["lap_index"] / frame["total_laps"]
    frame["set_id"] = by_file["length_type"].transform(lambda s: pd.Series(assign_set_ids(s), index=s.index))
    frame["set_id"] = frame["set_id"].astype(int)

    is_active = frame["length_type"].astype(object).eq(LengthTypes.ACTIVE)
    is_drill = frame["swim_stroke"].astype(object).eq(SwimStrokes.DRILL)
    is_swim = is_active & ~is_drill
    active = frame.loc[is_swim].copy()
    logger.debug(f"Kept {len(active)} of {len(frame)} laps after dropping idle and drill laps")

    if active.empty:
        return pd.DataFrame(columns=columns)

    by_set = active.groupby(["file_id", "set_id"], sort=False)
    active["lap_in_set"] = by_set.cumcount() + 1
    active["set_size"] = by_set["lap_index"].transform("size")
    active["pos_within_set"] = active["lap_in_set"] / active["set_size"]

    return active.reset_index(drop=True)


def _session_attributes(sessions: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Select the joined session columns, one row per file."""
    if sessions is None or sessions.empty:
        return pd.DataFrame(columns=Columns.SESSION_JOIN)

    attributes = sessions[Columns.SESSION_JOIN]
    duplicated = attributes["file_id"].duplicated()
    if duplicated.any():
        dup_ids = sorted(attributes.loc[duplicated, "file_id"].unique())
        logger.warning(f"Multiple sessions found for files {dup_ids}, keeping the first of each")
        attributes = attributes.loc[~duplicated]
    return attributes


def derive_enriched_laps(laps: pd.DataFrame, sessions: Optional[pd.DataFrame] = None) -> pd.DataFrame:
    """
    Build the enriched lap table.

    Args:
        laps: Raw lap table (see annotate_laps)
        sessions: Session table keyed by `file_id`. Files without a session row
            keep their laps with empty session columns.

    Returns:
        DataFrame with Columns.ENRICHED, in recording order
    """
    annotated = annotate_laps(laps)
    if annotated.empty:
        return _with_output_types(pd.DataFrame(columns=Columns.ENRICHED))

    attributes = _session_attributes(sessions)
    enriched = annotated[_LAP_OUTPUT_COLUMNS].merge(attributes, on="file_id", how="left", validate="many_to_one")

    missing = enriched.loc[enriched["session_date"].isna(), "file_id"].unique()
    if len(missing) > 0:
        logger.warning(f"No session metadata for {len(missing)} file(s): {sorted(missing)}")

    logger.info(
        f"Derived {len(enriched)} enriched laps from {annotated['file_id'].nunique()} file(s) "
        f"and {len(laps)} raw laps"
    )
    return _with_output_types(enriched[Columns.ENRICHED])


def _with_output_types(frame: pd.DataFrame) -> pd.DataFrame:
    frame = frame.copy()
    for column in Columns.INTEGER:
        frame[column] = pd.to_numeric(frame[column]).astype("Int64")
    for column in ["pool_length", "total_elapsed_time", "pos_within_workout", "pos_within_set"]:
        frame[column] = pd.to_numeric(frame[column]).astype(float)
    return frame


def write_enriched_laps(enriched: pd.DataFrame, path: Union[str, Path]) -> Path:
    """
    Write the enriched lap table to CSV.

    Dates are written as ISO strings and missing values as empty fields, so the
    same table always produces the same bytes.

    Args:
        enriched: Output of derive_enriched_laps
        path: Destination file

    Returns:
        Path of the written file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    out = _with_output_types(enriched[Columns.ENRICHED])
    out["session_date"] = pd.to_datetime(out["session_date"]).dt.strftime("%Y-%m-%d")
    out.to_csv(path, index=False, na_rep="", lineterminator="\n")

    logger.info(f"Wrote {len(out)} enriched laps to {path}")
    return path


def read_enriched_laps(path: Union[str, Path]) -> pd.DataFrame:
    """Load an enriched lap table written by write_enriched_laps."""
    frame = pd.read_csv(path, dtype={"swim_stroke": "string"})
    frame = _with_output_types(frame.reindex(columns=Columns.ENRICHED))
    frame["session_date"] = pd.to_datetime(frame["session_date"]).dt.date
    return frame
