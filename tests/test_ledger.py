"""
Tests for forecast_engine/ledger.py - Append-only JSONL ledger and LedgerStore.
"""

import json
import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest

from forecast_engine import ledger, resolver
from forecast_engine.forecast import submit_forecast
from forecast_engine.ledger import LedgerError, LedgerStore
from forecast_engine.models import CalibrationProfile, PredictionEvent, Tier
from forecast_engine.store import EventNotOpenError


DEADLINE = datetime(2026, 1, 22, tzinfo=timezone.utc)


@pytest.fixture
def temp_ledger_dir():
    """Create a temporary ledger directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def store(temp_ledger_dir):
    s = LedgerStore(temp_ledger_dir)
    s.put_event(PredictionEvent("e1", "Event one", "Index", "context", DEADLINE))
    return s


class TestAppendRecord:
    """Tests for append_record function."""

    def test_append_record_creates_file(self, temp_ledger_dir):
        """Test that append_record creates file if it doesn't exist."""
        file_path = temp_ledger_dir / "nested" / "test.jsonl"

        ledger.append_record(file_path, {"id": "test_1", "value": 42})

        with open(file_path) as f:
            lines = f.readlines()
        assert len(lines) == 1
        assert json.loads(lines[0])["id"] == "test_1"

    def test_append_record_appends_to_existing(self, temp_ledger_dir):
        file_path = temp_ledger_dir / "test.jsonl"

        for i in range(3):
            ledger.append_record(file_path, {"id": f"record_{i}"})

        assert len(ledger.read_records(file_path)) == 3

    def test_unserializable_record_leaves_file_untouched(self, temp_ledger_dir):
        file_path = temp_ledger_dir / "test.jsonl"
        ledger.append_record(file_path, {"id": "ok"})

        with pytest.raises(LedgerError, match="serialize"):
            ledger.append_record(file_path, {"id": object()})

        assert len(ledger.read_records(file_path)) == 1

    def test_torn_tail_is_truncated_before_append(self, temp_ledger_dir):
        """A partial line from an interrupted write doesn't corrupt the next append."""
        file_path = temp_ledger_dir / "test.jsonl"
        ledger.append_record(file_path, {"id": "record_1"})
        with open(file_path, 'a') as f:
            f.write('{"id": "rec')

        ledger.append_record(file_path, {"id": "record_2"})

        records = ledger.read_records(file_path)
        assert [r["id"] for r in records] == ["record_1", "record_2"]

    def test_complete_tail_is_terminated_before_append(self, temp_ledger_dir):
        """A whole entry that lost its newline is kept, not truncated."""
        file_path = temp_ledger_dir / "test.jsonl"
        ledger.append_record(file_path, {"id": "record_1"})
        ledger.append_record(file_path, {"id": "record_2"})
        with open(file_path, 'rb+') as f:
            f.truncate(f.seek(0, 2) - 1)

        ledger.append_record(file_path, {"id": "record_3"})

        records = ledger.read_records(file_path)
        assert [r["id"] for r in records] == ["record_1", "record_2", "record_3"]
        assert file_path.read_bytes().count(b"\n") == 3


class TestReadRecords:
    """Tests for read_records function."""

    def test_missing_file_is_empty(self, temp_ledger_dir):
        assert ledger.read_records(temp_ledger_dir / "nonexistent.jsonl") == []

    def test_complete_line_without_newline_is_kept(self, temp_ledger_dir):
        file_path = temp_ledger_dir / "test.jsonl"
        with open(file_path, 'w') as f:
            f.write('{"id": 1}\n{"id": 2}')

        assert [r["id"] for r in ledger.read_records(file_path)] == [1, 2]

    def test_torn_final_line_is_skipped(self, temp_ledger_dir):
        file_path = temp_ledger_dir / "test.jsonl"
        ledger.append_record(file_path, {"id": "record_1"})
        with open(file_path, 'a') as f:
            f.write('{"id": "rec')

        assert len(ledger.read_records(file_path)) == 1

    def test_invalid_complete_line_raises(self, temp_ledger_dir):
        file_path = temp_ledger_dir / "test.jsonl"
        with open(file_path, 'w') as f:
            f.write('{"id": 1}\nnot json\n{"id": 2}\n')

        with pytest.raises(LedgerError, match="line 2"):
            ledger.read_records(file_path)


class TestReplay:
    """Tests for replaying ledger entries into state."""

    def test_unknown_entry_type(self):
        with pytest.raises(LedgerError, match="Unknown entry_type"):
            ledger.replay([{"entry_type": "mystery"}])

    def test_malformed_payload(self):
        with pytest.raises(LedgerError, match="Cannot replay entry 1"):
            ledger.replay([{"entry_type": "forecast_put", "record": {"event_id": "e1"}}])


class TestLedgerStore:
    """Tests for the ledger-backed ForecastStore."""

    def test_state_survives_new_instance(self, store, temp_ledger_dir):
        submit_forecast(store, "e1", "alice", 70)
        store.put_calibration_profile("alice", CalibrationProfile(0.9, 3, Tier.LEARNING))

        reopened = LedgerStore(temp_ledger_dir)
        assert reopened.get_event("e1").title == "Event one"
        assert reopened.get_forecast_record("e1", "alice").probability_percent == 70
        assert reopened.get_calibration_profile("alice").calibration_score == 0.9

    def test_delete_is_replayed(self, store, temp_ledger_dir):
        submit_forecast(store, "e1", "alice", 70)
        store.delete_forecast_record("e1", "alice")

        assert LedgerStore(temp_ledger_dir).get_forecast_record("e1", "alice") is None

    def test_resolution_is_one_ledger_line(self, store):
        for forecaster_id, p in [("alice", 70), ("bob", 30), ("carol", 55)]:
            submit_forecast(store, "e1", forecaster_id, p)
        before = len(ledger.read_records(store.ledger_path))

        resolver.resolve_event(store, "e1", True)

        entries = ledger.read_records(store.ledger_path)
        assert len(entries) == before + 1
        assert entries[-1]["entry_type"] == "resolution_batch"
        assert len(entries[-1]["batch"]["records"]) == 3

    def test_torn_resolution_is_invisible(self, store, temp_ledger_dir):
        """A crash mid-write of a resolution leaves the event Open and unscored."""
        submit_forecast(store, "e1", "alice", 70)
        with open(store.ledger_path, 'a') as f:
            f.write('{"batch": {"event_id": "e1", "outcome": true, "rec')

        reopened = LedgerStore(temp_ledger_dir)
        assert reopened.get_event("e1").resolved is False
        assert reopened.get_forecast_record("e1", "alice").brier_score is None

        resolver.resolve_event(reopened, "e1", True)
        assert LedgerStore(temp_ledger_dir).get_forecast_record("e1", "alice").brier_score == pytest.approx(0.09)

    def test_resolution_missing_newline_survives_next_write(self, store, temp_ledger_dir):
        """A resolution readers have seen is never undone by a later append."""
        store.put_event(PredictionEvent("e2", "Event two", "Index", "", DEADLINE))
        submit_forecast(store, "e1", "alice", 70)
        resolver.resolve_event(store, "e1", True)
        with open(store.ledger_path, 'rb+') as f:
            f.truncate(f.seek(0, 2) - 1)

        reopened = LedgerStore(temp_ledger_dir)
        assert reopened.get_event("e1").resolved is True

        submit_forecast(reopened, "e2", "alice", 40)

        after = LedgerStore(temp_ledger_dir)
        assert after.get_event("e1").resolved is True
        assert after.get_event("e1").outcome is True
        assert after.get_forecast_record("e1", "alice").brier_score == pytest.approx(0.09)
        assert after.get_forecast_record("e2", "alice").probability_percent == 40
        with pytest.raises(resolver.ResolutionError, match="already resolved"):
            resolver.resolve_event(after, "e1", False)

    def test_other_instance_sees_resolution(self, store, temp_ledger_dir):
        other = LedgerStore(temp_ledger_dir)
        submit_forecast(store, "e1", "alice", 70)
        resolver.resolve_event(store, "e1", True)

        with pytest.raises(resolver.ResolutionError, match="already resolved"):
            resolver.resolve_event(other, "e1", True)

    def test_transition_event_to_resolved(self, store):
        store.transition_event_to_resolved("e1", False, DEADLINE)

        assert store.get_event("e1").outcome is False
        with pytest.raises(EventNotOpenError):
            store.transition_event_to_resolved("e1", True, DEADLINE)

    def test_locked_is_reentrant(self, store):
        with store.locked():
            with store.locked():
                submit_forecast(store, "e1", "alice", 70)

        assert store.get_forecast_record("e1", "alice") is not None
