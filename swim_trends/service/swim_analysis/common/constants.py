"""
Constants for the swim analysis framework.

This module defines constants used throughout the analysis framework, including:
- FIT enum values for length types, strokes and sports
- Column layouts of the lap, session and enriched lap tables
- Thresholds for the model input stage
"""


class LengthTypes:
    """Values of the FIT `length_type` field."""

    ACTIVE = "active"  # Swimming length
    IDLE = "idle"  # Rest interval, marks a set boundary


class SwimStrokes:
    """Values of the FIT `swim_stroke` field."""

    FREESTYLE = "freestyle"
    BACKSTROKE = "backstroke"
    BREASTSTROKE = "breaststroke"
    BUTTERFLY = "butterfly"
    DRILL = "drill"  # Excluded from the enriched lap table
    MIXED = "mixed"
    IM = "im"


class SwimSports:
    """Sport names accepted as swimming sessions."""

    SWIMMING = "swimming"
    LAP_SWIMMING = "lap_swimming"
    OPEN_WATER = "open_water"


class SpeedThresholds:
    """Thresholds applied when preparing model inputs."""

    MAX_REALISTIC_SPEED_M_PER_S = 2.5  # Faster laps are treated as recording errors
    DAYS_PER_YEAR = 365.25


class Columns:
    """Column layouts of the tables produced by the pipeline."""

    LAPS = [
        "file_id",
        "message_index",
        "start_time",
        "total_elapsed_time",
        "total_timer_time",
        "length_type",
        "swim_stroke",
        "total_strokes",
        "avg_speed",
    ]

    SESSIONS = [
        "file_id",
        "session_date",
        "session_number",
        "start_time",
        "pool_length",
        "pool_length_unit",
        "sport",
        "sub_sport",
    ]

    # Session attributes joined onto every enriched lap
    SESSION_JOIN = ["file_id", "session_date", "session_number", "pool_length"]

    # Persisted enriched lap table, in output order
    ENRICHED = [
        "session_date",
        "session_number",
        "pool_length",
        "total_elapsed_time",
        "set_id",
        "lap_index",
        "lap_in_set",
        "pos_within_workout",
        "pos_within_set",
        "swim_stroke",
    ]

    INTEGER = ["session_number", "set_id", "lap_index", "lap_in_set"]
