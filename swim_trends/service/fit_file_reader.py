"""FIT file reader for pool swimming activities.

Reads `length` messages as lap records and the `session` message as the session
record. Files that cannot be read are reported as skipped and never raise.
"""

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import fitparse
from loguru import logger

from swim_trends.service.swim_analysis.common.constants import SwimSports
from swim_trends.service.swim_analysis.common.data_models import FitBatch, FitReadResult, LapRecord, SessionRecord
from swim_trends.service.swim_analysis.segmentation.session_table import assign_session_numbers
from swim_trends.utils import iter_fit_paths

SWIM_SPORTS = {SwimSports.SWIMMING, SwimSports.LAP_SWIMMING, SwimSports.OPEN_WATER}


def _as_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip().lower()
    return s or None


def _as_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _as_int(value: Any) -> Optional[int]:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first_values(fit_file: fitparse.FitFile, name: str) -> Optional[Dict[str, Any]]:
    for message in fit_file.get_messages(name):
        return message.get_values()
    return None


def _local_offset(fit_file: fitparse.FitFile) -> Optional[dt.timedelta]:
    """Offset between local time and UTC, taken from the activity message."""
    activity = _first_values(fit_file, "activity")
    if not activity:
        return None

    timestamp = activity.get("timestamp")
    local_timestamp = activity.get("local_timestamp")
    if isinstance(timestamp, dt.datetime) and isinstance(local_timestamp, dt.datetime):
        return local_timestamp.replace(tzinfo=None) - timestamp.replace(tzinfo=None)
    return None


def _extract_laps(fit_file: fitparse.FitFile, file_id: str) -> List[LapRecord]:
    laps = []
    for message in fit_file.get_messages("length"):
        values = message.get_values()
        laps.append(
            LapRecord(
                file_id=file_id,
                message_index=_as_int(values.get("message_index")),
                start_time=values.get("start_time"),
                total_elapsed_time=_as_float(values.get("total_elapsed_time")),
                total_timer_time=_as_float(values.get("total_timer_time")),
                length_type=_as_str(values.get("length_type")),
                swim_stroke=_as_str(values.get("swim_stroke")),
                total_strokes=_as_int(values.get("total_strokes")),
                avg_speed=_as_float(values.get("avg_speed")),
            )
        )
    return laps


def _extract_session(fit_file: fitparse.FitFile, file_id: str) -> Optional[SessionRecord]:
    values = _first_values(fit_file, "session")
    if values is None:
        return None

    start_time = values.get("start_time") or values.get("timestamp")
    if not isinstance(start_time, dt.datetime):
        logger.warning(f"Session in {file_id} has no start time")
        return None

    # fitparse returns naive UTC datetimes
    offset = _local_offset(fit_file)
    local_start = start_time + offset if offset is not None else start_time

    return SessionRecord(
        file_id=file_id,
        session_date=local_start.date(),
        start_time=start_time,
        pool_length=_as_float(values.get("pool_length")),
        pool_length_unit=_as_str(values.get("pool_length_unit")),
        sport=_as_str(values.get("sport")),
        sub_sport=_as_str(values.get("sub_sport")),
    )


def read_fit_file(path: Union[str, Path], file_id: Optional[str] = None) -> FitReadResult:
    """
    Read laps and the session from one FIT file.

    Args:
        path: Path to the FIT file
        file_id: Identifier for the file's records (default: the file name)

    Returns:
        FitReadResult. `error` is set, and no laps or session are returned, when
        the file cannot be parsed or is not a swimming activity.
    """
    path = Path(path)
    file_id = file_id or path.name

    try:
        fit_file = fitparse.FitFile(str(path))
        fit_file.parse()
        session = _extract_session(fit_file, file_id)
        laps = _extract_laps(fit_file, file_id)
    except Exception as e:
        logger.warning(f"Skipping {path}: failed to parse FIT file: {e}")
        return FitReadResult(file_id=file_id, path=path, error=f"parse_error: {e}")

    if session is not None and session.sport is not None and session.sport not in SWIM_SPORTS:
        logger.info(f"Skipping {path}: sport is {session.sport}")
        return FitReadResult(file_id=file_id, path=path, error=f"not_swimming: {session.sport}")

    if session is None:
        logger.warning(f"No session message in {path}, laps are kept without session metadata")

    logger.debug(f"Read {len(laps)} lengths from {path}")
    return FitReadResult(file_id=file_id, path=path, laps=laps, session=session)


def read_fit_directory(input_path: Union[str, Path]) -> FitBatch:
    """
    Read every FIT file under a path.

    Files are read in sorted path order. A file is identified by its path
    relative to the input directory, so equal names in different subdirectories
    stay apart. Skipped files are collected in `FitBatch.skipped`. Session
    numbers are assigned across the whole batch.

    Args:
        input_path: A FIT file or a directory searched recursively

    Returns:
        FitBatch with laps in recording order, file by file

    Raises:
        FileNotFoundError: If no FIT files are found
    """
    input_path = Path(input_path)
    fit_paths = iter_fit_paths(input_path)
    if not fit_paths:
        raise FileNotFoundError(f"No .fit files found at: {input_path}")

    logger.info(f"Reading {len(fit_paths)} FIT files from {input_path}")

    batch = FitBatch()
    for fit_path in fit_paths:
        file_id = fit_path.relative_to(input_path).as_posix() if input_path.is_dir() else fit_path.name
        result = read_fit_file(fit_path, file_id)
        if result.skipped:
            batch.skipped.append(result)
            continue
        batch.laps.extend(result.laps)
        if result.session is not None:
            batch.sessions.append(result.session)

    batch.sessions = assign_session_numbers(batch.sessions)

    logger.info(
        f"Read {len(batch.laps)} lengths and {len(batch.sessions)} sessions, skipped {len(batch.skipped)} files"
    )
    return batch
