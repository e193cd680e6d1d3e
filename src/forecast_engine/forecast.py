"""
Forecast submission and read-side queries.

Forecasts can only be created or cleared while their event is Open.
Editing is clear-then-resubmit; a record's probability is never changed
in place.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from . import consensus as cons
from .models import (
    CalibrationProfile,
    ForecastRecord,
    ValidationError,
    utc_now,
    validate_identifier,
    validate_probability,
)
from .resolver import ResolutionError
from .store import ForecastStore

logger = logging.getLogger(__name__)


class ForecastExistsError(ResolutionError):
    """Raised when a forecaster already has a forecast on an event."""
    pass


def _require_open_event(store: ForecastStore, event_id: str) -> None:
    event = store.get_event(event_id)
    if event is None:
        raise ValidationError(f"Unknown event: {event_id}")
    if event.resolved:
        raise ResolutionError(f"Event {event_id} is resolved; forecasts are closed")


def submit_forecast(
    store: ForecastStore,
    event_id: str,
    forecaster_id: str,
    probability_percent: int,
    submitted_at: Optional[datetime] = None
) -> ForecastRecord:
    """
    Create a forecaster's one forecast on an Open event.

    Args:
        store: Forecast store
        event_id: Event identifier
        forecaster_id: Forecaster identifier
        probability_percent: Probability of YES, integer in [1, 99]
        submitted_at: Submission time (defaults to now, UTC)

    Returns:
        The stored ForecastRecord

    Raises:
        ValidationError: Bad input or unknown event (no state change)
        ResolutionError: Event already resolved
        ForecastExistsError: A forecast already exists for this pair
    """
    validate_identifier(event_id, "event_id")
    validate_identifier(forecaster_id, "forecaster_id")
    validate_probability(probability_percent)

    with store.locked():
        _require_open_event(store, event_id)
        if store.get_forecast_record(event_id, forecaster_id) is not None:
            raise ForecastExistsError(
                f"{forecaster_id} already forecast {event_id}; clear it before resubmitting"
            )

        record = ForecastRecord(
            event_id=event_id,
            forecaster_id=forecaster_id,
            probability_percent=probability_percent,
            submitted_at=submitted_at or utc_now(),
        )
        store.put_forecast_record(record)

    logger.debug(f"{forecaster_id} forecast {probability_percent}% on {event_id}")
    return record


def clear_forecast(store: ForecastStore, event_id: str, forecaster_id: str) -> bool:
    """
    Delete a forecast so it can be resubmitted.

    Returns:
        True if a record was deleted, False if there was none

    Raises:
        ValidationError: Unknown event
        ResolutionError: Event already resolved
    """
    with store.locked():
        _require_open_event(store, event_id)
        if store.get_forecast_record(event_id, forecaster_id) is None:
            return False
        store.delete_forecast_record(event_id, forecaster_id)

    logger.info(f"Cleared forecast of {forecaster_id} on {event_id}")
    return True


def get_calibration(store: ForecastStore, forecaster_id: str) -> CalibrationProfile:
    """Current profile, or an empty Unranked profile if none exists yet."""
    return store.get_calibration_profile(forecaster_id) or CalibrationProfile()


def get_consensus(store: ForecastStore, event_id: str) -> Optional[int]:
    """Unweighted crowd consensus for an event."""
    return cons.consensus([r.probability_percent for r in store.list_forecast_records(event_id)])


def get_crowd_comparison(store: ForecastStore, event_id: str, forecaster_id: str) -> Dict[str, Any]:
    """
    Compare one forecaster with the crowd on an event.

    Raises:
        ValidationError: If the forecaster has no forecast on the event
    """
    record = store.get_forecast_record(event_id, forecaster_id)
    if record is None:
        raise ValidationError(f"{forecaster_id} has no forecast on {event_id}")
    percents = [r.probability_percent for r in store.list_forecast_records(event_id)]
    return cons.compare_to_crowd(record.probability_percent, percents)


def get_distribution(store: ForecastStore, event_id: str) -> Dict[str, int]:
    """Forecast counts per probability bucket for an event."""
    return cons.distribution([r.probability_percent for r in store.list_forecast_records(event_id)])
