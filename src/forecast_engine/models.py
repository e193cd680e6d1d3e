"""
Record types for forecasts, prediction events and calibration profiles.

Records serialize to plain dictionaries (ISO 8601 timestamps) so they can
be written to the JSONL ledger and read back unchanged.
"""

from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional, Any


MIN_PROBABILITY_PERCENT = 1
MAX_PROBABILITY_PERCENT = 99


class ValidationError(Exception):
    """Raised when a probability or record fails validation."""
    pass


class Tier(str, Enum):
    """Qualitative calibration tier."""
    UNRANKED = "Unranked"
    DEVELOPING = "Developing"
    LEARNING = "Learning"
    SKILLED = "Skilled"
    EXPERT = "Expert"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_iso_datetime(dt_str: str) -> datetime:
    """
    Parse ISO 8601 datetime string to datetime object.

    Args:
        dt_str: ISO format datetime string

    Returns:
        Parsed datetime with UTC timezone

    Raises:
        ValidationError: If the string is not a valid timestamp
    """
    try:
        dt = datetime.fromisoformat(dt_str.replace('Z', '+00:00'))
    except (AttributeError, ValueError) as e:
        raise ValidationError(f"Invalid timestamp {dt_str!r}: {e}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def _format_dt(dt: Optional[datetime]) -> Optional[str]:
    return dt.isoformat() if dt is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return parse_iso_datetime(value) if value is not None else None


def validate_probability(probability_percent: Any) -> int:
    """
    Validate a submitted probability.

    Probabilities are whole percentages in [1, 99]; 0 and 100 are
    rejected so that no forecast is ever certain.

    Args:
        probability_percent: Candidate probability

    Returns:
        The probability as an int

    Raises:
        ValidationError: If not an integer or outside [1, 99]
    """
    # bool is an int subclass
    if isinstance(probability_percent, bool) or not isinstance(probability_percent, int):
        raise ValidationError(
            f"probability_percent must be an integer, got {probability_percent!r}"
        )
    if not MIN_PROBABILITY_PERCENT <= probability_percent <= MAX_PROBABILITY_PERCENT:
        raise ValidationError(
            f"probability_percent must be in [{MIN_PROBABILITY_PERCENT}, "
            f"{MAX_PROBABILITY_PERCENT}], got {probability_percent}"
        )
    return probability_percent


def validate_identifier(value: Any, name: str) -> str:
    """Require a non-empty string identifier."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string, got {value!r}")
    return value


@dataclass
class ForecastRecord:
    """One forecaster's probability estimate for one event."""
    event_id: str
    forecaster_id: str
    probability_percent: int
    submitted_at: datetime
    brier_score: Optional[float] = None
    calibration_contribution: Optional[float] = None
    outcome: Optional[bool] = None

    @property
    def key(self):
        return (self.event_id, self.forecaster_id)

    @property
    def is_resolved(self) -> bool:
        return self.outcome is not None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["submitted_at"] = _format_dt(self.submitted_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ForecastRecord":
        try:
            return cls(
                event_id=data["event_id"],
                forecaster_id=data["forecaster_id"],
                probability_percent=data["probability_percent"],
                submitted_at=parse_iso_datetime(data["submitted_at"]),
                brier_score=data.get("brier_score"),
                calibration_contribution=data.get("calibration_contribution"),
                outcome=data.get("outcome"),
            )
        except KeyError as e:
            raise ValidationError(f"Forecast record missing required field: {e}")


@dataclass
class PredictionEvent:
    """A yes/no question with a deadline."""
    id: str
    title: str
    category: str
    context: str
    deadline: datetime
    resolved: bool = False
    outcome: Optional[bool] = None
    resolved_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["deadline"] = _format_dt(self.deadline)
        data["resolved_at"] = _format_dt(self.resolved_at)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PredictionEvent":
        try:
            return cls(
                id=data["id"],
                title=data["title"],
                category=data.get("category", ""),
                context=data.get("context", ""),
                deadline=parse_iso_datetime(data["deadline"]),
                resolved=data.get("resolved", False),
                outcome=data.get("outcome"),
                resolved_at=_parse_dt(data.get("resolved_at")),
            )
        except KeyError as e:
            raise ValidationError(f"Event missing required field: {e}")


@dataclass
class CalibrationProfile:
    """Derived calibration state for one forecaster."""
    calibration_score: Optional[float] = None
    calibration_forecast_count: int = 0
    calibration_tier: Tier = Tier.UNRANKED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "calibration_score": self.calibration_score,
            "calibration_forecast_count": self.calibration_forecast_count,
            "calibration_tier": self.calibration_tier.value,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationProfile":
        try:
            tier = Tier(data.get("calibration_tier", Tier.UNRANKED.value))
        except ValueError as e:
            raise ValidationError(f"Unknown calibration tier: {e}")
        return cls(
            calibration_score=data.get("calibration_score"),
            calibration_forecast_count=data.get("calibration_forecast_count", 0),
            calibration_tier=tier,
        )
