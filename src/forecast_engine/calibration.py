"""
Calibration aggregation and tier classification.

Calibration score = 1 - mean Brier score over a forecaster's resolved
forecasts. The score is not clamped: a forecaster who is consistently
confident and wrong can go below zero.
"""

from typing import Iterable, List, Optional, Tuple, Union

import numpy as np

from .models import CalibrationProfile, ForecastRecord, Tier, ValidationError
from .scoring import SCORE_DECIMALS, brier_score


# (lower bound inclusive, tier), checked top down
TIER_THRESHOLDS: List[Tuple[float, Tier]] = [
    (0.92, Tier.EXPERT),
    (0.82, Tier.SKILLED),
    (0.72, Tier.LEARNING),
]

ResolvedForecast = Union[ForecastRecord, Tuple[int, bool]]


def _as_pair(item: ResolvedForecast) -> Tuple[int, bool]:
    if isinstance(item, ForecastRecord):
        if item.outcome is None:
            raise ValidationError(
                f"Forecast of {item.forecaster_id} on {item.event_id} has no outcome"
            )
        return item.probability_percent, item.outcome
    probability_percent, outcome = item
    return probability_percent, bool(outcome)


def calibration_score(resolved_forecasts: Iterable[ResolvedForecast]) -> Optional[float]:
    """
    Reduce a resolved forecast history to one calibration score.

    Args:
        resolved_forecasts: ForecastRecords with an outcome, or
            (probability_percent, outcome) pairs

    Returns:
        1 - mean Brier rounded to 4 decimals, or None for an empty history
    """
    pairs = [_as_pair(f) for f in resolved_forecasts]
    if not pairs:
        return None

    scores = np.array([brier_score(p, o) for p, o in pairs], dtype=np.float64)
    return round(1.0 - float(scores.mean()), SCORE_DECIMALS)


def calibration_tier(score: Optional[float]) -> Tier:
    """Map a calibration score to its tier. Lower bounds are inclusive."""
    if score is None:
        return Tier.UNRANKED
    for lower_bound, tier in TIER_THRESHOLDS:
        if score >= lower_bound:
            return tier
    return Tier.DEVELOPING


def build_profile(records: Iterable[ForecastRecord]) -> CalibrationProfile:
    """
    Recompute a forecaster's full profile from their records.

    Unresolved records are ignored.

    Args:
        records: All forecast records owned by one forecaster

    Returns:
        Fresh CalibrationProfile
    """
    resolved = [r for r in records if r.is_resolved]
    score = calibration_score(resolved)
    return CalibrationProfile(
        calibration_score=score,
        calibration_forecast_count=len(resolved),
        calibration_tier=calibration_tier(score),
    )


def profile_label(profile: Optional[CalibrationProfile]) -> str:
    """Short display label, e.g. 'Skilled · 12 resolved'."""
    if profile is None or profile.calibration_forecast_count == 0:
        return "No forecasts yet"
    return f"{profile.calibration_tier.value} · {profile.calibration_forecast_count} resolved"
