"""
Tests for forecast_engine/reporter.py - Skill-weighted summary and leaderboard.
"""

import json
import logging
from datetime import datetime, timezone

import pytest

from forecast_engine import forecast, reporter, resolver
from forecast_engine.models import CalibrationProfile, PredictionEvent, Tier
from forecast_engine.store import InMemoryStore


DEADLINE = datetime(2026, 1, 22, tzinfo=timezone.utc)


def add_event(store, event_id):
    store.put_event(PredictionEvent(event_id, f"Event {event_id}", "Crypto", "", DEADLINE))


@pytest.fixture
def store():
    s = InMemoryStore()
    add_event(s, "e1")
    add_event(s, "e2")
    for forecaster_id, p in [("alice", 70), ("bob", 30), ("carol", 55)]:
        forecast.submit_forecast(s, "e1", forecaster_id, p)
        forecast.submit_forecast(s, "e2", forecaster_id, p)
    return s


class TestSkillWeightedSummary:
    """Tests for skill_weighted_summary."""

    def test_all_unranked_uses_neutral_weight(self, store):
        summary = reporter.skill_weighted_summary(store, "e2")

        assert summary["consensus"] == 52
        assert summary["unweighted_consensus"] == 52
        assert summary["forecaster_count"] == 3
        assert [f["calibration_score"] for f in summary["forecasters"]] == [0.5, 0.5, 0.5]
        # Equal weights fall back to id order
        assert [f["forecaster_id"] for f in summary["forecasters"]] == ["alice", "bob", "carol"]
        assert all(f["calibration_tier"] == "Unranked" for f in summary["forecasters"])

    def test_weighted_after_resolution(self, store):
        resolver.resolve_event(store, "e1", True)

        summary = reporter.skill_weighted_summary(store, "e2")

        assert [f["forecaster_id"] for f in summary["forecasters"]] == ["alice", "carol", "bob"]
        weights = {f["forecaster_id"]: f["calibration_score"] for f in summary["forecasters"]}
        assert weights == {"alice": 0.91, "carol": 0.7975, "bob": 0.51}
        # (70*0.91 + 55*0.7975 + 30*0.51) / 2.2175 = 55.41
        assert summary["consensus"] == 55
        assert summary["unweighted_consensus"] == 52

    def test_entry_fields(self, store):
        resolver.resolve_event(store, "e1", True)

        entry = reporter.skill_weighted_summary(store, "e2")["forecasters"][0]

        assert entry == {
            "forecaster_id": "alice",
            "probability_percent": 70,
            "calibration_score": 0.91,
            "calibration_tier": "Skilled",
            "resolved_n": 1,
        }

    def test_custom_neutral_weight(self, store):
        resolver.resolve_event(store, "e1", True)
        forecast.submit_forecast(store, "e2", "dave", 99)

        summary = reporter.skill_weighted_summary(store, "e2", neutral_weight=1.0)

        assert summary["forecasters"][0]["forecaster_id"] == "dave"
        assert summary["forecasters"][0]["calibration_tier"] == "Unranked"

    def test_zero_total_weight_falls_back(self, store, caplog):
        for forecaster_id in ("alice", "bob", "carol"):
            store.put_calibration_profile(
                forecaster_id, CalibrationProfile(0.0, 3, Tier.DEVELOPING)
            )

        with caplog.at_level(logging.WARNING):
            summary = reporter.skill_weighted_summary(store, "e2")

        assert summary["consensus"] == 52
        assert "Zero total weight" in caplog.text

    def test_event_without_forecasts(self):
        s = InMemoryStore()
        add_event(s, "empty")

        summary = reporter.skill_weighted_summary(s, "empty")

        assert summary["consensus"] is None
        assert summary["forecaster_count"] == 0
        assert summary["forecasters"] == []

    def test_write_summary_json(self, store, tmp_path):
        summary = reporter.skill_weighted_summary(store, "e2")
        output = tmp_path / "out" / "summary.json"

        reporter.write_summary_json(summary, output)

        with open(output) as f:
            assert json.load(f) == summary


class TestLeaderboard:
    """Tests for calibration_leaderboard and its markdown rendering."""

    def test_ranking(self, store):
        resolver.resolve_event(store, "e1", True)
        forecast.submit_forecast(store, "e2", "dave", 40)

        entries = reporter.calibration_leaderboard(store)

        assert [e["forecaster_id"] for e in entries] == ["alice", "carol", "bob", "dave"]
        assert [e["rank"] for e in entries] == [1, 2, 3, None]
        assert entries[-1]["calibration_tier"] == "Unranked"
        assert entries[-1]["resolved_n"] == 0

    def test_restricted_to_ids(self, store):
        resolver.resolve_event(store, "e1", False)

        entries = reporter.calibration_leaderboard(store, ["bob"])

        assert len(entries) == 1
        assert entries[0]["rank"] == 1
        assert entries[0]["calibration_score"] == 0.91

    def test_table_format(self, store):
        resolver.resolve_event(store, "e1", True)
        table = reporter.format_leaderboard_table(reporter.calibration_leaderboard(store))

        lines = table.split("\n")
        assert lines[0] == "| Rank | Forecaster | Calibration | Tier | N |"
        assert lines[2] == "| 1 | alice | 0.910 | Skilled | 1 |"
        assert len(lines) == 5

    def test_unranked_row(self):
        entries = [{
            "forecaster_id": "zed",
            "calibration_score": None,
            "calibration_tier": "Unranked",
            "resolved_n": 0,
            "rank": None,
        }]
        assert "| - | zed | - | Unranked | 0 |" in reporter.format_leaderboard_table(entries)

    def test_empty(self):
        assert reporter.format_leaderboard_table([]) == "*No entries*"
        assert "*No data available*" in reporter.generate_leaderboard([])

    def test_document_header(self, store):
        resolver.resolve_event(store, "e1", True)
        doc = reporter.generate_leaderboard(reporter.calibration_leaderboard(store))

        assert doc.startswith("## Calibration Leaderboard\n")
        assert "| 3 | bob | 0.510 | Developing | 1 |" in doc
