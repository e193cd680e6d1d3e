"""
Skill-weighted consensus export and calibration leaderboard.

Produces JSON-ready dictionaries and markdown tables from store state.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import consensus as cons
from .calibration import calibration_tier
from .forecast import get_calibration
from .store import ForecastStore


# Weight for forecasters without any resolved history
NEUTRAL_WEIGHT = 0.5


def skill_weighted_summary(
    store: ForecastStore,
    event_id: str,
    neutral_weight: float = NEUTRAL_WEIGHT
) -> Dict[str, Any]:
    """
    Export every forecast on an event weighted by forecaster skill.

    Each forecaster's weight is their current calibration score, or
    neutral_weight if they have none yet. Forecasters are listed by
    weight descending, ties broken by forecaster_id.

    Args:
        store: Forecast store
        event_id: Event identifier
        neutral_weight: Weight for unranked forecasters

    Returns:
        Dictionary with:
        - event_id
        - consensus: Weighted consensus percentage (None if no forecasts)
        - unweighted_consensus: Plain mean for comparison
        - forecaster_count
        - forecasters: List of per-forecaster entries
    """
    forecasters = []
    for record in store.list_forecast_records(event_id):
        profile = get_calibration(store, record.forecaster_id)
        score = profile.calibration_score
        weight = score if score is not None else neutral_weight
        forecasters.append({
            "forecaster_id": record.forecaster_id,
            "probability_percent": record.probability_percent,
            "calibration_score": weight,
            "calibration_tier": calibration_tier(score).value,
            "resolved_n": profile.calibration_forecast_count,
        })

    forecasters.sort(key=lambda f: (-f["calibration_score"], f["forecaster_id"]))

    percents = [f["probability_percent"] for f in forecasters]
    weights = [f["calibration_score"] for f in forecasters]

    return {
        "event_id": event_id,
        "consensus": cons.consensus(percents, weights),
        "unweighted_consensus": cons.consensus(percents),
        "forecaster_count": len(forecasters),
        "forecasters": forecasters,
    }


def write_summary_json(summary: Dict[str, Any], output_path: Path) -> Path:
    """Write a summary to disk as indented JSON."""
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, 'w') as f:
        json.dump(summary, f, indent=2)
    return output_path


def calibration_leaderboard(
    store: ForecastStore,
    forecaster_ids: Optional[List[str]] = None
) -> List[Dict[str, Any]]:
    """
    Rank forecasters by calibration score.

    Ranked forecasters come first (score descending, ties by id), then
    Unranked forecasters by id with rank None.

    Args:
        store: Forecast store
        forecaster_ids: Forecasters to include (default: all in store)

    Returns:
        List of leaderboard entries
    """
    if forecaster_ids is None:
        forecaster_ids = store.list_forecasters()

    ranked = []
    unranked = []
    for forecaster_id in forecaster_ids:
        profile = get_calibration(store, forecaster_id)
        entry = {
            "forecaster_id": forecaster_id,
            "calibration_score": profile.calibration_score,
            "calibration_tier": profile.calibration_tier.value,
            "resolved_n": profile.calibration_forecast_count,
        }
        if profile.calibration_score is None:
            unranked.append(entry)
        else:
            ranked.append(entry)

    ranked.sort(key=lambda e: (-e["calibration_score"], e["forecaster_id"]))
    unranked.sort(key=lambda e: e["forecaster_id"])

    for i, entry in enumerate(ranked, 1):
        entry["rank"] = i
    for entry in unranked:
        entry["rank"] = None

    return ranked + unranked


def format_leaderboard_table(entries: List[Dict[str, Any]]) -> str:
    """
    Format leaderboard entries as markdown table.

    Args:
        entries: Entries from calibration_leaderboard()

    Returns:
        Markdown table string
    """
    if not entries:
        return "*No entries*"

    def fmt(val, decimals=3):
        if val is None:
            return "-"
        if isinstance(val, float):
            return f"{val:.{decimals}f}"
        return str(val)

    lines = [
        "| Rank | Forecaster | Calibration | Tier | N |",
        "|------|------------|-------------|------|---|",
    ]
    for entry in entries:
        lines.append(
            f"| {fmt(entry.get('rank'))} | {entry['forecaster_id']} | "
            f"{fmt(entry.get('calibration_score'))} | {entry['calibration_tier']} | "
            f"{entry.get('resolved_n', 0)} |"
        )
    return "\n".join(lines)


def generate_leaderboard(entries: List[Dict[str, Any]]) -> str:
    """Leaderboard markdown document."""
    if not entries:
        return "## Calibration Leaderboard\n\n*No data available*\n"
    return "\n".join(["## Calibration Leaderboard", "", format_leaderboard_table(entries), ""])
