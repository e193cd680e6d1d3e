"""
Command-line interface for the forecasting engine.

Provides subcommands for loading events, submitting and clearing
forecasts, resolving events, and reporting calibration and consensus.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import catalog
from . import forecast
from . import reporter
from . import resolver
from .calibration import profile_label
from .config import ConfigError, load_config
from .ledger import LedgerStore
from .logging_config import configure_logging
from .models import ValidationError
from .store import StorageError

ENGINE_ERRORS = (ValidationError, resolver.ResolutionError, StorageError)


def cmd_events(args: argparse.Namespace) -> int:
    """Load events from a catalog into the ledger."""
    try:
        events = catalog.load_events(catalog.load_catalog(Path(args.catalog)))
        added = catalog.register_events(args.store, events)
        print(f"Registered {added} new event(s) of {len(events)} in catalog")
        return 0

    except (catalog.CatalogValidationError, OSError, json.JSONDecodeError) + ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_validate_catalog(args: argparse.Namespace) -> int:
    """Validate event catalog."""
    try:
        cat = catalog.load_catalog(Path(args.catalog))
        catalog.validate_catalog(cat)

        events = cat.get("events", [])
        print(f"Catalog valid: {args.catalog}")
        print(f"  Version: {cat.get('catalog_version')}")
        print(f"  Total events: {len(events)}")

        if args.verbose:
            print("\nEvents:")
            for e in events:
                print(f"  {e['event_id']}: {e['title']} [{e['category']}]")

        return 0

    except catalog.CatalogValidationError as e:
        print(f"Validation failed: {e}", file=sys.stderr)
        return 1
    except (OSError, json.JSONDecodeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_submit(args: argparse.Namespace) -> int:
    """Submit a forecast."""
    try:
        record = forecast.submit_forecast(
            args.store, args.event_id, args.forecaster_id, args.probability
        )
        print(f"Recorded {record.forecaster_id}: {record.probability_percent}% on {record.event_id}")
        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_clear(args: argparse.Namespace) -> int:
    """Clear a forecast so it can be resubmitted."""
    try:
        if forecast.clear_forecast(args.store, args.event_id, args.forecaster_id):
            print(f"Cleared forecast of {args.forecaster_id} on {args.event_id}")
        else:
            print(f"No forecast of {args.forecaster_id} on {args.event_id}")
        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_resolve(args: argparse.Namespace) -> int:
    """Resolve an event and rescore its forecasters."""
    try:
        batch = resolver.resolve_event(args.store, args.event_id, args.outcome == "yes")
        summary = resolver.summarize_batch(batch)

        print(f"Resolved {batch.event_id} as {summary['outcome']}: "
              f"{len(batch.records)} forecast(s) scored")

        if args.verbose:
            for f in summary["forecasts"]:
                print(f"  {f['forecaster_id']}: {f['probability_percent']}% "
                      f"Brier={f['brier_score']:.4f} vs naive={f['calibration_contribution']:+.4f}")

        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_rescore(args: argparse.Namespace) -> int:
    """Re-apply scoring to a resolved event."""
    try:
        batch = resolver.rescore_event(args.store, args.event_id)
        print(f"Rescored {batch.event_id}: {len(batch.records)} forecast(s)")
        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_calibration(args: argparse.Namespace) -> int:
    """Show a forecaster's calibration profile."""
    try:
        profile = forecast.get_calibration(args.store, args.forecaster_id)
        score = profile.calibration_score
        print(f"{args.forecaster_id}: {score:.3f}" if score is not None else f"{args.forecaster_id}: -")
        print(f"  {profile_label(profile)}")
        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_consensus(args: argparse.Namespace) -> int:
    """Show crowd consensus for an event."""
    try:
        value = forecast.get_consensus(args.store, args.event_id)
        if value is None:
            print(f"{args.event_id}: no forecasts")
            return 0
        print(f"{args.event_id}: crowd consensus {value}%")

        if args.forecaster_id:
            cmp = forecast.get_crowd_comparison(args.store, args.event_id, args.forecaster_id)
            print(f"  {args.forecaster_id}: {cmp['user']}% ({cmp['diff']:+d} vs crowd, "
                  f"{cmp['participants']} participant(s))")

        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_distribution(args: argparse.Namespace) -> int:
    """Show how forecasts on an event are spread across probability buckets."""
    try:
        counts = forecast.get_distribution(args.store, args.event_id)
        for label, count in counts.items():
            print(f"{label:>7}% | {'#' * count} {count}")
        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_summary(args: argparse.Namespace) -> int:
    """Export the skill-weighted summary for an event."""
    try:
        summary = reporter.skill_weighted_summary(
            args.store, args.event_id, neutral_weight=args.engine_config.neutral_weight
        )

        if args.output:
            reporter.write_summary_json(summary, Path(args.output))
            print(f"Summary written to {args.output}")
        else:
            print(json.dumps(summary, indent=2))

        return 0

    except ENGINE_ERRORS + (OSError,) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def cmd_leaderboard(args: argparse.Namespace) -> int:
    """Print the calibration leaderboard."""
    try:
        entries = reporter.calibration_leaderboard(args.store)
        print(reporter.generate_leaderboard(entries))
        return 0

    except ENGINE_ERRORS as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="forecast-engine",
        description="Forecast scoring, calibration and consensus"
    )

    parser.add_argument("--config", help="Path to JSON config file")
    parser.add_argument("--ledger-dir", help="Path to ledger directory (overrides config)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose output")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    events_parser = subparsers.add_parser("events", help="Register events from a catalog")
    events_parser.add_argument("--catalog", required=True, help="Path to event catalog")
    events_parser.set_defaults(func=cmd_events)

    validate_parser = subparsers.add_parser("validate", help="Validate event catalog")
    validate_parser.add_argument("--catalog", required=True, help="Path to event catalog")
    validate_parser.set_defaults(func=cmd_validate_catalog, needs_store=False)

    submit_parser = subparsers.add_parser("submit", help="Submit a forecast")
    submit_parser.add_argument("event_id")
    submit_parser.add_argument("forecaster_id")
    submit_parser.add_argument("probability", type=int, help="Probability of YES in percent (1-99)")
    submit_parser.set_defaults(func=cmd_submit)

    clear_parser = subparsers.add_parser("clear", help="Clear a forecast before resolution")
    clear_parser.add_argument("event_id")
    clear_parser.add_argument("forecaster_id")
    clear_parser.set_defaults(func=cmd_clear)

    resolve_parser = subparsers.add_parser("resolve", help="Resolve an event")
    resolve_parser.add_argument("event_id")
    resolve_parser.add_argument("outcome", choices=["yes", "no"])
    resolve_parser.set_defaults(func=cmd_resolve)

    rescore_parser = subparsers.add_parser("rescore", help="Re-apply scores to a resolved event")
    rescore_parser.add_argument("event_id")
    rescore_parser.set_defaults(func=cmd_rescore)

    calibration_parser = subparsers.add_parser("calibration", help="Show calibration profile")
    calibration_parser.add_argument("forecaster_id")
    calibration_parser.set_defaults(func=cmd_calibration)

    consensus_parser = subparsers.add_parser("consensus", help="Show crowd consensus")
    consensus_parser.add_argument("event_id")
    consensus_parser.add_argument("--forecaster-id", help="Compare this forecaster with the crowd")
    consensus_parser.set_defaults(func=cmd_consensus)

    distribution_parser = subparsers.add_parser("distribution", help="Show forecast distribution")
    distribution_parser.add_argument("event_id")
    distribution_parser.set_defaults(func=cmd_distribution)

    summary_parser = subparsers.add_parser("summary", help="Export skill-weighted summary")
    summary_parser.add_argument("event_id")
    summary_parser.add_argument("--output", "-o", help="Output file (JSON)")
    summary_parser.set_defaults(func=cmd_summary)

    leaderboard_parser = subparsers.add_parser("leaderboard", help="Show calibration leaderboard")
    leaderboard_parser.set_defaults(func=cmd_leaderboard)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        args.engine_config = load_config(Path(args.config) if args.config else None)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    configure_logging(
        logging.DEBUG if args.verbose else args.engine_config.log_level_value,
        args.engine_config.log_file,
    )

    if getattr(args, "needs_store", True):
        ledger_dir = Path(args.ledger_dir) if args.ledger_dir else args.engine_config.ledger_dir
        args.store = LedgerStore(ledger_dir)

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
