"""
Forecast Engine - Probabilistic forecast scoring and calibration.

Scores yes/no forecasts with the Brier rule, aggregates each forecaster's
history into a calibration score and tier, and computes crowd consensus,
plain or weighted by skill.

Modules:
    models - Forecast, event and calibration profile records
    scoring - Brier score and naive-baseline delta
    calibration - Calibration score, tiers and profiles
    consensus - Crowd consensus, crowd comparison and distribution buckets
    store - Storage interface and in-memory adapter
    ledger - Append-only JSONL ledger and ledger-backed store
    catalog - Event catalog loading and validation
    forecast - Forecast submission and read-side queries
    resolver - Atomic event resolution and rescoring
    reporter - Skill-weighted export and leaderboard
    config - Engine configuration
    logging_config - Package logger setup for entry points
    cli - Command-line interface entrypoints
"""

from . import models
from . import scoring
from . import calibration
from . import consensus
from . import store
from . import ledger
from . import catalog
from . import forecast
from . import resolver
from . import reporter
from . import config
from . import logging_config
from . import cli

__version__ = "1.0.0"
