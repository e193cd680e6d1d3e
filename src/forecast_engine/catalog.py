"""
Prediction event catalog loading and validation.

Events are declared in a JSON catalog:

    {"catalog_version": "1.0.0", "events": [{"event_id": ..., ...}]}

validated against an embedded JSON Schema, then registered in a store.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema

from .models import PredictionEvent, ValidationError, parse_iso_datetime
from .store import ForecastStore

logger = logging.getLogger(__name__)


EVENT_CATALOG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "required": ["catalog_version", "events"],
    "properties": {
        "catalog_version": {"type": "string"},
        "events": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["event_id", "title", "category", "deadline_utc"],
                "properties": {
                    "event_id": {"type": "string", "minLength": 1},
                    "title": {"type": "string", "minLength": 1},
                    "category": {"type": "string"},
                    "context": {"type": "string"},
                    "deadline_utc": {"type": "string"},
                },
            },
        },
    },
}


class CatalogValidationError(Exception):
    """Raised when catalog validation fails."""
    pass


def load_catalog(path: Path) -> Dict[str, Any]:
    """
    Load event catalog from JSON file.

    Raises:
        FileNotFoundError: If catalog file doesn't exist
        json.JSONDecodeError: If catalog is invalid JSON
    """
    with open(path, 'r') as f:
        return json.load(f)


def validate_catalog(
    catalog: Dict[str, Any],
    schema: Optional[Dict[str, Any]] = None
) -> bool:
    """
    Validate catalog against schema and internal consistency rules.

    Consistency checks beyond the schema:
    1. event_id values are unique
    2. deadline_utc parses as an ISO 8601 timestamp

    Args:
        catalog: Parsed catalog dictionary
        schema: JSON Schema (default: EVENT_CATALOG_SCHEMA)

    Returns:
        True if valid

    Raises:
        CatalogValidationError: If validation fails
    """
    try:
        jsonschema.validate(catalog, schema or EVENT_CATALOG_SCHEMA)
    except jsonschema.ValidationError as e:
        # Transform jsonschema errors to our error format
        if "is a required property" in e.message:
            prop = e.message.split("'")[1] if "'" in e.message else "unknown"
            if e.absolute_path and len(e.absolute_path) >= 2:
                event_idx = e.absolute_path[1]
                raise CatalogValidationError(f"Event {event_idx} missing required field: {prop}")
            raise CatalogValidationError(f"Missing required field: {prop}")
        raise CatalogValidationError(f"Schema validation failed: {e.message}")

    event_ids = set()
    for i, event in enumerate(catalog["events"]):
        event_id = event["event_id"]
        if event_id in event_ids:
            raise CatalogValidationError(f"Duplicate event_id: {event_id}")
        event_ids.add(event_id)

        try:
            parse_iso_datetime(event["deadline_utc"])
        except ValidationError as e:
            raise CatalogValidationError(f"Event {i} ({event_id}): {e}")

    return True


def load_events(catalog: Dict[str, Any]) -> List[PredictionEvent]:
    """
    Convert a validated catalog into Open PredictionEvents.

    Raises:
        CatalogValidationError: If the catalog is invalid
    """
    validate_catalog(catalog)
    return [
        PredictionEvent(
            id=e["event_id"],
            title=e["title"],
            category=e["category"],
            context=e.get("context", ""),
            deadline=parse_iso_datetime(e["deadline_utc"]),
        )
        for e in catalog["events"]
    ]


def register_events(store: ForecastStore, events: List[PredictionEvent]) -> int:
    """
    Add events that the store does not know yet.

    Existing events are left as they are, so re-loading a catalog never
    reopens a resolved event.

    Returns:
        Number of events added
    """
    added = 0
    with store.locked():
        for event in events:
            if store.get_event(event.id) is not None:
                logger.debug(f"Event {event.id} already registered, skipping")
                continue
            store.put_event(event)
            added += 1

    logger.info(f"Registered {added} new event(s)")
    return added
