"""
Storage interface for the forecasting engine, plus an in-memory adapter.

The engine never touches persistence directly. Everything it reads or
writes goes through ForecastStore, and every resolution is written as a
single ResolutionBatch so that readers never observe an event that is
resolved but only partly scored.
"""

import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Dict, Iterator, List, Optional, Tuple

from .models import CalibrationProfile, ForecastRecord, PredictionEvent


class StorageError(Exception):
    """Raised when a storage adapter fails."""
    pass


class EventNotOpenError(StorageError):
    """Raised when a resolved event is transitioned again."""
    pass


@dataclass
class ResolutionBatch:
    """
    All writes produced by resolving (or rescoring) one event.

    transition=True means the event must still be Open when the batch is
    committed; transition=False re-applies scores to a resolved event.
    """
    event_id: str
    outcome: bool
    resolved_at: datetime
    records: List[ForecastRecord] = field(default_factory=list)
    profiles: Dict[str, CalibrationProfile] = field(default_factory=dict)
    transition: bool = True

    def to_dict(self) -> Dict:
        return {
            "event_id": self.event_id,
            "outcome": self.outcome,
            "resolved_at": self.resolved_at.isoformat(),
            "records": [r.to_dict() for r in self.records],
            "profiles": {fid: p.to_dict() for fid, p in self.profiles.items()},
            "transition": self.transition,
        }


class ForecastStore(ABC):
    """Narrow persistence interface consumed by the engine."""

    @abstractmethod
    @contextmanager
    def locked(self) -> Iterator[None]:
        """Hold the store's write lock (reentrant) for a read-modify-write."""

    @abstractmethod
    def get_forecast_record(self, event_id: str, forecaster_id: str) -> Optional[ForecastRecord]:
        ...

    @abstractmethod
    def put_forecast_record(self, record: ForecastRecord) -> None:
        ...

    @abstractmethod
    def delete_forecast_record(self, event_id: str, forecaster_id: str) -> None:
        ...

    @abstractmethod
    def list_forecast_records(self, event_id: str) -> List[ForecastRecord]:
        ...

    @abstractmethod
    def list_forecaster_records(self, forecaster_id: str) -> List[ForecastRecord]:
        ...

    @abstractmethod
    def get_event(self, event_id: str) -> Optional[PredictionEvent]:
        ...

    @abstractmethod
    def put_event(self, event: PredictionEvent) -> None:
        ...

    @abstractmethod
    def list_events(self) -> List[PredictionEvent]:
        ...

    @abstractmethod
    def transition_event_to_resolved(
        self,
        event_id: str,
        outcome: bool,
        resolved_at: datetime
    ) -> None:
        """Mark an Open event Resolved. Raises EventNotOpenError otherwise."""

    @abstractmethod
    def get_calibration_profile(self, forecaster_id: str) -> Optional[CalibrationProfile]:
        ...

    @abstractmethod
    def put_calibration_profile(self, forecaster_id: str, profile: CalibrationProfile) -> None:
        ...

    @abstractmethod
    def list_forecasters(self) -> List[str]:
        """Every forecaster with at least one record, sorted."""

    @abstractmethod
    def commit_resolution(self, batch: ResolutionBatch) -> None:
        """Apply a ResolutionBatch all-or-nothing."""

    def list_all_forecasters_with_record(self, event_id: str) -> List[str]:
        return sorted(r.forecaster_id for r in self.list_forecast_records(event_id))


class InMemoryStore(ForecastStore):
    """Process-local store guarded by a reentrant lock."""

    def __init__(self):
        self._lock = threading.RLock()
        self._events: Dict[str, PredictionEvent] = {}
        self._records: Dict[Tuple[str, str], ForecastRecord] = {}
        self._profiles: Dict[str, CalibrationProfile] = {}

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._lock:
            yield

    def get_forecast_record(self, event_id, forecaster_id):
        with self._lock:
            record = self._records.get((event_id, forecaster_id))
            return replace(record) if record else None

    def put_forecast_record(self, record):
        with self._lock:
            self._records[record.key] = replace(record)

    def delete_forecast_record(self, event_id, forecaster_id):
        with self._lock:
            self._records.pop((event_id, forecaster_id), None)

    def list_forecast_records(self, event_id):
        with self._lock:
            return [
                replace(r) for key, r in sorted(self._records.items())
                if key[0] == event_id
            ]

    def list_forecaster_records(self, forecaster_id):
        with self._lock:
            return [
                replace(r) for key, r in sorted(self._records.items())
                if key[1] == forecaster_id
            ]

    def get_event(self, event_id):
        with self._lock:
            event = self._events.get(event_id)
            return replace(event) if event else None

    def put_event(self, event):
        with self._lock:
            self._events[event.id] = replace(event)

    def list_events(self):
        with self._lock:
            return [replace(e) for _, e in sorted(self._events.items())]

    def transition_event_to_resolved(self, event_id, outcome, resolved_at):
        with self._lock:
            event = self._events.get(event_id)
            if event is None:
                raise StorageError(f"Unknown event: {event_id}")
            if event.resolved:
                raise EventNotOpenError(f"Event {event_id} is already resolved")
            self._events[event_id] = replace(
                event, resolved=True, outcome=outcome, resolved_at=resolved_at
            )

    def get_calibration_profile(self, forecaster_id):
        with self._lock:
            profile = self._profiles.get(forecaster_id)
            return replace(profile) if profile else None

    def put_calibration_profile(self, forecaster_id, profile):
        with self._lock:
            self._profiles[forecaster_id] = replace(profile)

    def list_forecasters(self):
        with self._lock:
            return sorted({forecaster_id for _, forecaster_id in self._records})

    def commit_resolution(self, batch):
        with self._lock:
            event = self._events.get(batch.event_id)
            if event is None:
                raise StorageError(f"Unknown event: {batch.event_id}")
            if batch.transition and event.resolved:
                raise EventNotOpenError(f"Event {batch.event_id} is already resolved")

            # Stage everything before touching state
            events = dict(self._events)
            events[batch.event_id] = replace(
                event, resolved=True, outcome=batch.outcome, resolved_at=batch.resolved_at
            )
            records = dict(self._records)
            for record in batch.records:
                records[record.key] = replace(record)
            profiles = dict(self._profiles)
            for forecaster_id, profile in batch.profiles.items():
                profiles[forecaster_id] = replace(profile)

            self._events, self._records, self._profiles = events, records, profiles
