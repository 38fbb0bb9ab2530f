"""
Configuration Loader (``stock_config.loader``).

Loads YAML settings files, layers an override on top of the packaged
defaults and validates the result into a ``LedgerSettings``.  Runtime code
goes through ``stock_config.get_active_config()`` instead of calling this
module.

Failure modes
-------------
* Missing override file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Unknown keys, wrong types, out-of-range values -> ``ConfigurationError``
  listing every problem found.
"""

from __future__ import annotations

import hashlib
import json
import logging
from pathlib import Path
from typing import Any

import yaml

from stock_config.schema import LedgerSettings
from stock_kernel.exceptions import ConfigurationError

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_INT_MINIMUMS: dict[str, int] = {
    "usage_window_months": 1,
    "top_n": 1,
    "expiry_horizon_days": 0,
    "expiry_critical_days": 0,
    "expiry_warning_days": 0,
    "reorder_cover_months": 0,
    "query_batch_size": 1,
    "query_workers": 1,
}

_FLOAT_MINIMUMS: dict[str, float] = {
    "reorder_min_monthly_usage": 0.0,
}

_STR_FIELDS = ("database_url", "central_warehouse_id", "log_level")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        ConfigurationError: if the document is not a mapping.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(str(path), ["top-level YAML value must be a mapping"])
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 over the merged settings."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def validate_settings(data: dict[str, Any]) -> list[str]:
    problems: list[str] = []

    unknown = sorted(set(data) - LedgerSettings.field_names())
    if unknown:
        problems.append(f"unknown keys: {', '.join(unknown)}")

    for name in _STR_FIELDS:
        value = data.get(name)
        if not isinstance(value, str) or not value.strip():
            problems.append(f"{name} must be a non-empty string")

    for name, minimum in _INT_MINIMUMS.items():
        value = data.get(name)
        if isinstance(value, bool) or not isinstance(value, int):
            problems.append(f"{name} must be an integer")
        elif value < minimum:
            problems.append(f"{name} must be >= {minimum}, got {value}")

    for name, minimum in _FLOAT_MINIMUMS.items():
        value = data.get(name)
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            problems.append(f"{name} must be a number")
        elif value < minimum:
            problems.append(f"{name} must be >= {minimum}, got {value}")

    level = data.get("log_level")
    if isinstance(level, str) and not isinstance(
        logging.getLevelName(level.upper()), int
    ):
        problems.append(f"log_level {level!r} is not a logging level")

    critical = data.get("expiry_critical_days")
    warning = data.get("expiry_warning_days")
    if isinstance(critical, int) and isinstance(warning, int) and critical > warning:
        problems.append("expiry_critical_days cannot exceed expiry_warning_days")

    return problems


def load_settings(path: Path | None = None) -> tuple[LedgerSettings, str]:
    """
    Merge ``path`` over the packaged defaults and validate.

    Returns:
        The settings and the checksum of the merged mapping.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    source = str(DEFAULTS_PATH)
    if path is not None:
        data.update(load_yaml_file(Path(path)))
        source = str(path)

    problems = validate_settings(data)
    if problems:
        raise ConfigurationError(source, problems)

    data["log_level"] = data["log_level"].upper()
    return LedgerSettings(**data), compute_checksum(data)
