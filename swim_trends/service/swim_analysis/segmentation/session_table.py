"""
Session and lap tables.

Conversion of FIT records into pandas frames with a fixed column layout, and
numbering of sessions that share a calendar date.
"""

import datetime as dt
from typing import Dict, Iterable, List

import pandas as pd

from swim_trends.service.swim_analysis.common.constants import Columns
from swim_trends.service.swim_analysis.common.data_models import LapRecord, SessionRecord


def assign_session_numbers(sessions: Iterable[SessionRecord]) -> List[SessionRecord]:
    """
    Number sessions within each calendar date.

    Sessions on the same date are ordered by start time (sessions without one go
    last), then by file id. The first session of a day gets number 1.

    Args:
        sessions: Session records, in any order

    Returns:
        Copies of the records with `session_number` set, in input order
    """
    sessions = list(sessions)

    def sort_key(session: SessionRecord):
        start = session.start_time
        if start is not None and start.tzinfo is not None:
            start = start.astimezone(dt.timezone.utc).replace(tzinfo=None)
        return (start is None, start or dt.datetime.min, session.file_id)

    by_date: Dict[dt.date, List[SessionRecord]] = {}
    for session in sessions:
        by_date.setdefault(session.session_date, []).append(session)

    numbers: Dict[str, int] = {}
    for same_day in by_date.values():
        for number, session in enumerate(sorted(same_day, key=sort_key), start=1):
            numbers[session.file_id] = number

    return [session.model_copy(update={"session_number": numbers[session.file_id]}) for session in sessions]


def laps_to_frame(laps: Iterable[LapRecord]) -> pd.DataFrame:
    """Build the raw lap table, keeping recording order."""
    rows = [lap.model_dump() for lap in laps]
    frame = pd.DataFrame(rows, columns=Columns.LAPS)
    for column in ["message_index", "total_strokes"]:
        frame[column] = frame[column].astype("Int64")
    return frame


def sessions_to_frame(sessions: Iterable[SessionRecord]) -> pd.DataFrame:
    """Build the session table keyed by file id."""
    rows = [session.model_dump() for session in sessions]
    frame = pd.DataFrame(rows, columns=Columns.SESSIONS)
    frame["session_number"] = frame["session_number"].astype("Int64")
    return frame
