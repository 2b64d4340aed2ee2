"""
Data models for the swim analysis framework.

This module provides Pydantic models for:
- Records read from FIT files (laps and sessions)
- Per-file and per-batch read results
- Trend model outputs
"""

import datetime as dt
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field

from swim_trends.service.swim_analysis.common.constants import LengthTypes, SpeedThresholds


class LapRecord(BaseModel):
    """One pool length or rest interval as recorded by the device."""

    file_id: str
    message_index: Optional[int] = None  # Ordinal of the length message within the file
    start_time: Optional[dt.datetime] = None
    total_elapsed_time: Optional[float] = None  # Seconds
    total_timer_time: Optional[float] = None  # Seconds
    length_type: Optional[str] = LengthTypes.ACTIVE  # None when the device did not record it
    swim_stroke: Optional[str] = None
    total_strokes: Optional[int] = None
    avg_speed: Optional[float] = None  # m/s as reported by the device


class SessionRecord(BaseModel):
    """One workout, tied to a single FIT file."""

    file_id: str
    session_date: dt.date
    start_time: Optional[dt.datetime] = None
    pool_length: Optional[float] = None  # Meters, as stored in the FIT file
    pool_length_unit: Optional[str] = None  # metric / statute (display unit on the device)
    sport: Optional[str] = None
    sub_sport: Optional[str] = None
    session_number: Optional[int] = None  # Same-day ordinal, assigned once all files are read


class FitReadResult(BaseModel):
    """Outcome of reading a single FIT file."""

    file_id: str
    path: Path
    laps: List[LapRecord] = Field(default_factory=list)
    session: Optional[SessionRecord] = None
    error: Optional[str] = None  # Set when the file was skipped

    @property
    def skipped(self) -> bool:
        return self.error is not None


class FitBatch(BaseModel):
    """Laps and sessions collected from a set of FIT files."""

    laps: List[LapRecord] = Field(default_factory=list)
    sessions: List[SessionRecord] = Field(default_factory=list)
    skipped: List[FitReadResult] = Field(default_factory=list)

    @property
    def file_ids(self) -> List[str]:
        seen = dict.fromkeys(lap.file_id for lap in self.laps)
        seen.update(dict.fromkeys(session.file_id for session in self.sessions))
        return list(seen)


class CoefficientEstimate(BaseModel):
    """A single regression coefficient."""

    name: str
    estimate: float
    std_error: Optional[float] = None
    t_value: Optional[float] = None


class TrendModelResult(BaseModel):
    """Ordinary least squares fit of lap speed over time."""

    stroke: Optional[str] = None  # None when all strokes were modelled together
    n_observations: int
    coefficients: List[CoefficientEstimate] = Field(default_factory=list)
    r_squared: float
    residual_std_error: Optional[float] = None
    first_session_date: Optional[dt.date] = None
    last_session_date: Optional[dt.date] = None

    def coefficient(self, name: str) -> Optional[CoefficientEstimate]:
        for coef in self.coefficients:
            if coef.name == name:
                return coef
        return None

    @property
    def speed_change_per_year(self) -> Optional[float]:
        """Change in m/s per year implied by the `days_since_start` coefficient."""
        coef = self.coefficient("days_since_start")
        if coef is None:
            return None
        return coef.estimate * SpeedThresholds.DAYS_PER_YEAR
