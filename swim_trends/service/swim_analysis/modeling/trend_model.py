"""
Swimming speed trend model.

Fits an ordinary least squares regression of lap speed on the number of days
since the first session, controlling for the lap's position within the workout
and within its set, and optionally for the stroke.
"""

from typing import List, Optional, Tuple

import numpy as np
import pandas as pd
from loguru import logger

from swim_trends.service.swim_analysis.common.data_models import CoefficientEstimate, TrendModelResult

BASE_TERMS = ["days_since_start", "pos_within_workout", "pos_within_set"]


def build_design_matrix(
    frame: pd.DataFrame, include_stroke_effects: bool = True
) -> Tuple[np.ndarray, List[str]]:
    """
    Build the regression design matrix.

    Strokes are treatment coded against the alphabetically first stroke in the
    data. Laps without a stroke label form their own level, `unknown`.

    Args:
        frame: Model input with BASE_TERMS and `swim_stroke`
        include_stroke_effects: Whether to add stroke dummies

    Returns:
        (matrix, column names), the first column being the intercept
    """
    names = ["intercept"] + BASE_TERMS
    columns = [np.ones(len(frame))] + [frame[term].to_numpy(dtype=float) for term in BASE_TERMS]

    if include_stroke_effects:
        strokes = frame["swim_stroke"].astype("object").fillna("unknown").astype(str)
        levels = sorted(strokes.unique())
        for level in levels[1:]:
            names.append(f"stroke[{level}]")
            columns.append((strokes == level).to_numpy(dtype=float))

    return np.column_stack(columns), names


def fit_speed_trend(
    frame: pd.DataFrame,
    stroke: Optional[str] = None,
    include_stroke_effects: bool = True,
    min_observations: int = 10,
) -> Optional[TrendModelResult]:
    """
    Fit the speed trend model.

    Args:
        frame: Laps with `speed_m_per_s`, `days_since_start`, positional columns,
            `swim_stroke` and `session_date` (see speed_metrics)
        stroke: Only model laps of this stroke. Stroke effects are then omitted.
        include_stroke_effects: Whether to control for the stroke
        min_observations: Smallest number of laps to fit on

    Returns:
        TrendModelResult, or None when there is not enough data
    """
    if stroke is not None:
        frame = frame.loc[frame["swim_stroke"].eq(stroke).fillna(False).astype(bool)]
        include_stroke_effects = False

    required = ["speed_m_per_s"] + BASE_TERMS
    frame = frame.dropna(subset=required)

    if len(frame) < min_observations:
        logger.warning(f"Not enough laps to fit the speed trend ({len(frame)} < {min_observations})")
        return None

    X, names = build_design_matrix(frame, include_stroke_effects)
    y = frame["speed_m_per_s"].to_numpy(dtype=float)
    n_obs, n_params = X.shape

    if n_obs <= n_params:
        logger.warning(f"Not enough laps to fit {n_params} parameters ({n_obs} laps)")
        return None

    beta, _, rank, _ = np.linalg.lstsq(X, y, rcond=None)
    residuals = y - X @ beta
    rss = float(residuals @ residuals)
    tss = float(((y - y.mean()) ** 2).sum())
    r_squared = 1.0 - rss / tss if tss > 0 else 0.0

    dof = n_obs - rank
    sigma2 = rss / dof
    covariance = sigma2 * np.linalg.pinv(X.T @ X)
    std_errors = np.sqrt(np.clip(np.diag(covariance), 0.0, None))

    if rank < n_params:
        logger.warning(f"Design matrix is rank deficient ({rank} < {n_params}), estimates are not unique")

    coefficients = []
    for name, estimate, std_error in zip(names, beta, std_errors):
        t_value = float(estimate / std_error) if std_error > 0 else None
        coefficients.append(
            CoefficientEstimate(name=name, estimate=float(estimate), std_error=float(std_error), t_value=t_value)
        )

    session_dates = pd.to_datetime(frame["session_date"]).dropna()
    result = TrendModelResult(
        stroke=stroke,
        n_observations=n_obs,
        coefficients=coefficients,
        r_squared=r_squared,
        residual_std_error=float(np.sqrt(sigma2)),
        first_session_date=session_dates.min().date() if not session_dates.empty else None,
        last_session_date=session_dates.max().date() if not session_dates.empty else None,
    )
    logger.info(
        f"Fitted speed trend on {n_obs} laps (R^2={r_squared:.3f}, "
        f"change per year={result.speed_change_per_year:+.4f} m/s)"
    )
    return result
