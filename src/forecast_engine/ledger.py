"""
Append-only JSONL ledger and the ForecastStore built on it.

Every committed change is exactly one line in the ledger file, written
under an exclusive lock and fsynced. A resolution is one line carrying
the whole ResolutionBatch, so a crash either leaves the full batch on
disk or none of it. State is rebuilt by replaying the file.
"""

import fcntl
import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .models import (
    CalibrationProfile,
    ForecastRecord,
    PredictionEvent,
    ValidationError,
    parse_iso_datetime,
)
from .store import EventNotOpenError, InMemoryStore, ForecastStore, ResolutionBatch, StorageError

logger = logging.getLogger(__name__)

LEDGER_DIR = Path("forecasting/ledger")
LEDGER_FILE = "ledger.jsonl"
LOCK_FILE = "ledger.lock"


class LedgerError(StorageError):
    """Raised when ledger operations fail."""
    pass


def ensure_ledger_dir(ledger_dir: Path = LEDGER_DIR) -> None:
    """Create ledger directory if it doesn't exist."""
    ledger_dir.mkdir(parents=True, exist_ok=True)


def _repair_tail(f) -> None:
    """
    Terminate or drop an unterminated last line before appending.

    The decision matches read_records: a tail that parses is a complete
    entry readers already apply, so it only gets its newline; anything
    else is a partial write and is truncated.
    """
    size = f.seek(0, os.SEEK_END)
    if size == 0:
        return
    f.seek(size - 1)
    if f.read(1) == b"\n":
        return

    f.seek(0)
    content = f.read()
    keep = content.rfind(b"\n") + 1
    try:
        json.loads(content[keep:].decode("utf-8"))
    except ValueError:
        logger.warning(f"Truncating torn ledger line ({size - keep} bytes)")
        f.truncate(keep)
        f.seek(keep)
        return

    logger.warning("Completing unterminated ledger line")
    f.seek(size)
    f.write(b"\n")


def append_record(file_path: Path, record: Dict[str, Any]) -> None:
    """
    Atomically append a record to a JSONL file.

    Uses file locking to ensure safe concurrent writes.

    Args:
        file_path: Path to JSONL file
        record: Record dictionary to append

    Raises:
        LedgerError: If append fails
    """
    ensure_ledger_dir(file_path.parent)

    try:
        # Serialize first to catch JSON errors before touching file
        line = (json.dumps(record, ensure_ascii=False, sort_keys=True) + "\n").encode("utf-8")

        with open(file_path, 'ab+') as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                _repair_tail(f)
                f.write(line)
                f.flush()
                os.fsync(f.fileno())
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

    except (IOError, OSError) as e:
        raise LedgerError(f"Failed to append record: {e}")
    except (TypeError, ValueError) as e:
        raise LedgerError(f"Failed to serialize record: {e}")


def read_records(file_path: Path) -> List[Dict[str, Any]]:
    """
    Read all records from a JSONL file.

    An unterminated final line that parses is a complete entry whose
    newline was lost and is kept; one that fails to parse is the remains
    of an interrupted append and is skipped.

    Args:
        file_path: Path to JSONL file

    Returns:
        List of record dictionaries

    Raises:
        LedgerError: If read fails or a complete line is invalid
    """
    if not file_path.exists():
        return []

    try:
        with open(file_path, 'r', encoding="utf-8") as f:
            lines = f.readlines()
    except IOError as e:
        raise LedgerError(f"Failed to read ledger: {e}")

    records = []
    for line_num, raw in enumerate(lines, 1):
        line = raw.strip()
        if not line:
            continue
        try:
            record = json.loads(line)
        except json.JSONDecodeError as e:
            if line_num == len(lines) and not raw.endswith("\n"):
                logger.warning(f"Ignoring torn final line {line_num} in {file_path}")
                continue
            raise LedgerError(f"Invalid JSON on line {line_num}: {e}")
        records.append(record)

    return records


ENTRY_TYPES = {
    "event_put",
    "forecast_put",
    "forecast_delete",
    "profile_put",
    "event_resolved",
    "resolution_batch",
}


def replay(entries: List[Dict[str, Any]]) -> InMemoryStore:
    """
    Rebuild store state from ledger entries, in order.

    Raises:
        LedgerError: On an unknown entry type or malformed payload
    """
    state = InMemoryStore()
    for i, entry in enumerate(entries, 1):
        entry_type = entry.get("entry_type")
        if entry_type not in ENTRY_TYPES:
            raise LedgerError(f"Unknown entry_type on entry {i}: {entry_type!r}")
        try:
            _apply_entry(state, entry_type, entry)
        except (KeyError, ValidationError, StorageError) as e:
            raise LedgerError(f"Cannot replay entry {i} ({entry_type}): {e}")
    return state


def _apply_entry(state: InMemoryStore, entry_type: str, entry: Dict[str, Any]) -> None:
    if entry_type == "event_put":
        state.put_event(PredictionEvent.from_dict(entry["event"]))
    elif entry_type == "forecast_put":
        state.put_forecast_record(ForecastRecord.from_dict(entry["record"]))
    elif entry_type == "forecast_delete":
        state.delete_forecast_record(entry["event_id"], entry["forecaster_id"])
    elif entry_type == "profile_put":
        state.put_calibration_profile(
            entry["forecaster_id"], CalibrationProfile.from_dict(entry["profile"])
        )
    elif entry_type == "event_resolved":
        state.transition_event_to_resolved(
            entry["event_id"], entry["outcome"], parse_iso_datetime(entry["resolved_at"])
        )
    elif entry_type == "resolution_batch":
        state.commit_resolution(_batch_from_dict(entry["batch"]))


def _batch_from_dict(data: Dict[str, Any]) -> ResolutionBatch:
    return ResolutionBatch(
        event_id=data["event_id"],
        outcome=data["outcome"],
        resolved_at=parse_iso_datetime(data["resolved_at"]),
        records=[ForecastRecord.from_dict(r) for r in data.get("records", [])],
        profiles={
            fid: CalibrationProfile.from_dict(p)
            for fid, p in data.get("profiles", {}).items()
        },
        transition=data.get("transition", True),
    )


class LedgerStore(ForecastStore):
    """
    ForecastStore persisted to an append-only JSONL ledger.

    Reads replay the ledger (cached until the file changes). Writers in
    any process serialize on an exclusive lock on ledger.lock, and state
    checks made while holding it (e.g. "event is still Open") stay valid
    until the append.
    """

    def __init__(self, ledger_dir: Path = LEDGER_DIR):
        self.ledger_dir = Path(ledger_dir)
        self.ledger_path = self.ledger_dir / LEDGER_FILE
        self.lock_path = self.ledger_dir / LOCK_FILE
        self._thread_lock = threading.RLock()
        self._lock_depth = 0
        self._lock_file = None
        self._cache: Optional[InMemoryStore] = None
        self._cache_key: Optional[Tuple[int, int]] = None

    @contextmanager
    def locked(self) -> Iterator[None]:
        with self._thread_lock:
            if self._lock_depth == 0:
                ensure_ledger_dir(self.ledger_dir)
                try:
                    self._lock_file = open(self.lock_path, 'a')
                    fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_EX)
                except OSError as e:
                    if self._lock_file is not None:
                        self._lock_file.close()
                        self._lock_file = None
                    raise LedgerError(f"Failed to lock ledger: {e}")
            self._lock_depth += 1
            try:
                yield
            finally:
                self._lock_depth -= 1
                if self._lock_depth == 0:
                    fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_UN)
                    self._lock_file.close()
                    self._lock_file = None

    def _state(self) -> InMemoryStore:
        try:
            stat = self.ledger_path.stat()
            key = (stat.st_size, stat.st_mtime_ns)
        except FileNotFoundError:
            key = (0, 0)

        with self._thread_lock:
            if self._cache is None or self._cache_key != key:
                self._cache = replay(read_records(self.ledger_path))
                self._cache_key = key
            return self._cache

    def _append(self, entry_type: str, payload: Dict[str, Any]) -> None:
        entry = {
            "entry_type": entry_type,
            "committed_at": datetime.now(timezone.utc).isoformat(),
        }
        entry.update(payload)
        with self.locked():
            append_record(self.ledger_path, entry)

    def get_forecast_record(self, event_id, forecaster_id):
        return self._state().get_forecast_record(event_id, forecaster_id)

    def put_forecast_record(self, record):
        self._append("forecast_put", {"record": record.to_dict()})

    def delete_forecast_record(self, event_id, forecaster_id):
        self._append("forecast_delete", {"event_id": event_id, "forecaster_id": forecaster_id})

    def list_forecast_records(self, event_id):
        return self._state().list_forecast_records(event_id)

    def list_forecaster_records(self, forecaster_id):
        return self._state().list_forecaster_records(forecaster_id)

    def get_event(self, event_id):
        return self._state().get_event(event_id)

    def put_event(self, event):
        self._append("event_put", {"event": event.to_dict()})

    def list_events(self):
        return self._state().list_events()

    def transition_event_to_resolved(self, event_id, outcome, resolved_at):
        with self.locked():
            event = self.get_event(event_id)
            if event is None:
                raise LedgerError(f"Unknown event: {event_id}")
            if event.resolved:
                raise EventNotOpenError(f"Event {event_id} is already resolved")
            self._append("event_resolved", {
                "event_id": event_id,
                "outcome": outcome,
                "resolved_at": resolved_at.isoformat(),
            })

    def get_calibration_profile(self, forecaster_id):
        return self._state().get_calibration_profile(forecaster_id)

    def put_calibration_profile(self, forecaster_id, profile):
        self._append("profile_put", {"forecaster_id": forecaster_id, "profile": profile.to_dict()})

    def list_forecasters(self):
        return self._state().list_forecasters()

    def commit_resolution(self, batch):
        with self.locked():
            event = self.get_event(batch.event_id)
            if event is None:
                raise LedgerError(f"Unknown event: {batch.event_id}")
            if batch.transition and event.resolved:
                raise EventNotOpenError(f"Event {batch.event_id} is already resolved")
            self._append("resolution_batch", {"batch": batch.to_dict()})
