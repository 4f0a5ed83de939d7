"""
Config Loader — Load alert thresholds from file and environment.

Sources, lowest precedence first:
1. AlertThresholds defaults
2. YAML file (config/thresholds.yaml, or an explicit path)
3. Master JSON key: CIVICOPS_THRESHOLDS env var with several thresholds
4. Individual keys: one env var per threshold

## Usage

    # Option 1: Master config
    export CIVICOPS_THRESHOLDS='{"p95_latency_ms": 500, "memory_mb": 512}'

    # Option 2: Individual keys
    export CIVICOPS_P95_LATENCY_MS=500
    export CIVICOPS_MEMORY_MB=512
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..observability.health import AlertThresholds
from ..validation import ConfigurationError, validate_thresholds

logger = logging.getLogger(__name__)

MASTER_ENV_VAR = "CIVICOPS_THRESHOLDS"

DEFAULT_THRESHOLDS_PATH = Path("config/thresholds.yaml")

# Threshold field -> individual env var
ENV_VARS = {
    "error_rate_percent": "CIVICOPS_ERROR_RATE_PERCENT",
    "p95_latency_ms": "CIVICOPS_P95_LATENCY_MS",
    "memory_mb": "CIVICOPS_MEMORY_MB",
    "cache_hit_rate_percent": "CIVICOPS_CACHE_HIT_RATE_PERCENT",
    "queue_depth": "CIVICOPS_QUEUE_DEPTH",
}


def load_yaml(path: Path) -> Dict[str, Any]:
    """Load a YAML mapping; an empty file yields an empty dict."""
    try:
        with path.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} must contain a mapping, got {type(data).__name__}")
    # Allow either a bare mapping or one nested under "thresholds"
    if "thresholds" not in data:
        return data
    nested = data["thresholds"]
    if nested is None:
        return {}
    if not isinstance(nested, dict):
        raise ConfigurationError(
            f"{path}: thresholds must be a mapping, got {type(nested).__name__}"
        )
    return nested


def _parse_master_config(raw: str) -> Dict[str, Any]:
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Invalid {MASTER_ENV_VAR} JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"{MASTER_ENV_VAR} must be a JSON object")
    return {k.lower(): v for k, v in data.items()}


def _load_individual_vars(env: Mapping[str, str]) -> Dict[str, float]:
    values = {}
    for field_name, var in ENV_VARS.items():
        raw = env.get(var)
        if raw is None or raw == "":
            continue
        try:
            values[field_name] = float(raw)
        except ValueError as e:
            raise ConfigurationError(f"{var} must be a number, got {raw!r}") from e
    return values


def load_thresholds(
    path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> AlertThresholds:
    """
    Build alert thresholds from defaults, file and environment.

    Args:
        path: Thresholds YAML file. Defaults to config/thresholds.yaml;
              a missing file is skipped.
        env: Environment mapping (defaults to os.environ)

    Returns:
        Merged AlertThresholds

    Raises:
        ConfigurationError: Malformed file, JSON, or values
    """
    env = os.environ if env is None else env
    merged: Dict[str, Any] = {}

    yaml_path = Path(path) if path is not None else DEFAULT_THRESHOLDS_PATH
    if yaml_path.exists():
        merged.update(load_yaml(yaml_path))
        logger.info(f"Loaded thresholds from {yaml_path}")
    elif path is not None:
        logger.warning(f"Thresholds file not found: {yaml_path}")

    master = env.get(MASTER_ENV_VAR)
    if master:
        merged.update(_parse_master_config(master))
        logger.info(f"Loaded thresholds from {MASTER_ENV_VAR}")

    merged.update(_load_individual_vars(env))

    unknown = sorted(set(merged) - set(AlertThresholds.model_fields))
    if unknown:
        raise ConfigurationError(f"Unknown threshold fields: {unknown}")

    try:
        thresholds = AlertThresholds(**merged)
    except PydanticValidationError as e:
        raise ConfigurationError(f"Invalid threshold configuration: {e}") from e

    for issue in validate_thresholds(thresholds.model_dump()):
        logger.warning(f"Threshold configuration: {issue}")

    return thresholds
