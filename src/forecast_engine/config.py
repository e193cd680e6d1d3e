"""
Engine configuration.

Settings come from, in increasing priority: built-in defaults, an
optional JSON config file, and environment variables (a local .env file
is loaded first if present).

Environment variables:
    FORECAST_ENGINE_LEDGER_DIR  Ledger directory
    FORECAST_ENGINE_LOG_LEVEL   Logging level name (e.g. DEBUG)
    FORECAST_ENGINE_LOG_FILE    Optional log file path
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import jsonschema
from dotenv import load_dotenv

from .ledger import LEDGER_DIR
from .reporter import NEUTRAL_WEIGHT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/forecast_engine.json")

ENV_LEDGER_DIR = "FORECAST_ENGINE_LEDGER_DIR"
ENV_LOG_LEVEL = "FORECAST_ENGINE_LOG_LEVEL"
ENV_LOG_FILE = "FORECAST_ENGINE_LOG_FILE"

CONFIG_SCHEMA: Dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "ledger_dir": {"type": "string", "minLength": 1},
        "neutral_weight": {"type": "number", "minimum": 0, "maximum": 1},
        "log_level": {"enum": ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]},
        "log_file": {"type": ["string", "null"]},
    },
}


class ConfigError(Exception):
    """Raised when configuration is invalid."""
    pass


@dataclass
class EngineConfig:
    ledger_dir: Path = LEDGER_DIR
    neutral_weight: float = NEUTRAL_WEIGHT
    log_level: str = "INFO"
    log_file: Optional[str] = None

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level)


def load_config(config_path: Optional[Path] = None) -> EngineConfig:
    """
    Load engine configuration.

    Args:
        config_path: JSON config file (default: config/forecast_engine.json).
            A missing file is not an error; defaults are used.

    Returns:
        EngineConfig

    Raises:
        ConfigError: If the file is invalid JSON, violates the schema, or
            an environment override is invalid
    """
    env_path = Path.cwd() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
    data: Dict[str, Any] = {}
    try:
        with open(path) as f:
            data = json.load(f)
    except FileNotFoundError:
        if config_path is not None:
            logger.warning(f"Config not found at {path}, using defaults")
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid config JSON in {path}: {e}")

    if os.environ.get(ENV_LEDGER_DIR):
        data["ledger_dir"] = os.environ[ENV_LEDGER_DIR]
    if os.environ.get(ENV_LOG_LEVEL):
        data["log_level"] = os.environ[ENV_LOG_LEVEL].upper()
    if os.environ.get(ENV_LOG_FILE):
        data["log_file"] = os.environ[ENV_LOG_FILE]

    try:
        jsonschema.validate(data, CONFIG_SCHEMA)
    except jsonschema.ValidationError as e:
        raise ConfigError(f"Config validation failed: {e.message}")

    config = EngineConfig()
    if "ledger_dir" in data:
        config.ledger_dir = Path(data["ledger_dir"])
    if "neutral_weight" in data:
        config.neutral_weight = float(data["neutral_weight"])
    if "log_level" in data:
        config.log_level = data["log_level"]
    if "log_file" in data:
        config.log_file = data["log_file"]
    return config
