"""
Event resolution: the Open -> Resolved transition and population rescoring.

Resolving an event scores every forecast on it and recomputes the
calibration profile of every forecaster involved. All of it is collected
into one ResolutionBatch and committed in a single store operation, so an
event is never visible as resolved with some forecasters unscored. If the
commit fails nothing has been applied and the call can simply be retried.
"""

import logging
from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from . import calibration
from . import scoring
from .models import ForecastRecord, ValidationError, utc_now
from .store import EventNotOpenError, ForecastStore, ResolutionBatch

logger = logging.getLogger(__name__)


class ResolutionError(Exception):
    """Raised when an event cannot be resolved or a forecast can no longer change."""
    pass


def score_records(records: List[ForecastRecord], outcome: bool) -> List[ForecastRecord]:
    """
    Attach Brier score, naive-baseline delta and outcome to each record.

    Scoring depends only on (probability, outcome), so applying it twice
    yields identical records.

    Args:
        records: Forecast records for one event
        outcome: Resolved outcome

    Returns:
        New scored records, same order
    """
    briers = scoring.brier_scores([r.probability_percent for r in records], outcome)
    return [
        replace(
            record,
            brier_score=float(brier),
            calibration_contribution=scoring.brier_delta_vs_naive(record.probability_percent, outcome),
            outcome=outcome,
        )
        for record, brier in zip(records, briers)
    ]


def build_resolution_batch(
    store: ForecastStore,
    event_id: str,
    outcome: bool,
    resolved_at: datetime,
    transition: bool = True
) -> ResolutionBatch:
    """
    Collect every write needed to resolve an event.

    Each affected forecaster's profile is rebuilt from their full history
    with this event's record replaced by its scored version.

    Args:
        store: Forecast store
        event_id: Event being resolved
        outcome: Resolved outcome
        resolved_at: Resolution timestamp
        transition: False when re-applying scores to a resolved event

    Returns:
        ResolutionBatch ready to commit
    """
    scored = score_records(store.list_forecast_records(event_id), outcome)

    profiles = {}
    for record in scored:
        history = [
            r for r in store.list_forecaster_records(record.forecaster_id)
            if r.event_id != event_id
        ]
        history.append(record)
        profiles[record.forecaster_id] = calibration.build_profile(history)

    return ResolutionBatch(
        event_id=event_id,
        outcome=outcome,
        resolved_at=resolved_at,
        records=scored,
        profiles=profiles,
        transition=transition,
    )


def resolve_event(
    store: ForecastStore,
    event_id: str,
    outcome: bool,
    resolved_at: Optional[datetime] = None
) -> ResolutionBatch:
    """
    Resolve an Open event and rescore its whole forecaster population.

    Args:
        store: Forecast store
        event_id: Event identifier
        outcome: True if the event happened
        resolved_at: Resolution timestamp (defaults to now, UTC)

    Returns:
        The committed ResolutionBatch

    Raises:
        ValidationError: If outcome is not a bool
        ResolutionError: If the event is unknown or already resolved
    """
    if not isinstance(outcome, bool):
        raise ValidationError(f"outcome must be a bool, got {outcome!r}")
    resolved_at = resolved_at or utc_now()

    with store.locked():
        event = store.get_event(event_id)
        if event is None:
            raise ResolutionError(f"Unknown event: {event_id}")
        if event.resolved:
            raise ResolutionError(f"Event {event_id} is already resolved")

        logger.info(f"Resolving event {event_id} as {'YES' if outcome else 'NO'}")
        batch = build_resolution_batch(store, event_id, outcome, resolved_at)

        try:
            store.commit_resolution(batch)
        except EventNotOpenError as e:
            raise ResolutionError(str(e))

    logger.info(
        f"Resolved event {event_id}: scored {len(batch.records)} forecast(s), "
        f"updated {len(batch.profiles)} profile(s)"
    )
    return batch


def rescore_event(store: ForecastStore, event_id: str) -> ResolutionBatch:
    """
    Re-apply scoring for an already-resolved event from its stored outcome.

    Produces the same scores and profiles as the original resolution when
    inputs are unchanged; used to converge after an adapter-level failure.

    Raises:
        ResolutionError: If the event is unknown or not yet resolved
    """
    with store.locked():
        event = store.get_event(event_id)
        if event is None:
            raise ResolutionError(f"Unknown event: {event_id}")
        if not event.resolved:
            raise ResolutionError(f"Event {event_id} is not resolved")

        batch = build_resolution_batch(
            store, event_id, event.outcome, event.resolved_at, transition=False
        )
        store.commit_resolution(batch)

    logger.info(f"Rescored event {event_id}: {len(batch.records)} forecast(s)")
    return batch


def summarize_batch(batch: ResolutionBatch) -> Dict[str, object]:
    """Plain-dict view of a committed batch for CLI/JSON output."""
    return {
        "event_id": batch.event_id,
        "outcome": "YES" if batch.outcome else "NO",
        "resolved_at": batch.resolved_at.isoformat(),
        "forecasts": [
            {
                "forecaster_id": r.forecaster_id,
                "probability_percent": r.probability_percent,
                "brier_score": round(r.brier_score, 4),
                "calibration_contribution": r.calibration_contribution,
            }
            for r in batch.records
        ],
        "profiles": {fid: p.to_dict() for fid, p in sorted(batch.profiles.items())},
    }
