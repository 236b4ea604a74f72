"""
Configuration system for plancheck.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional JSON or YAML config file for local development
- Per-detector enable/disable

Detector thresholds are deliberately absent: they are part of each
detector's contract and are not tunable.

Usage:
    from plancheck.config import get_config

    config = get_config()

    # Normalizer limits
    normalizer = Normalizer(config=config.normalizer_config())

    # Check if a detector is enabled
    if config.is_detector_enabled("row_count_mismatch"):
        ...
"""

from __future__ import annotations

import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from plancheck.parser.config import NormalizerConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "PLANCHECK_"
DETECTOR_PREFIX = "PLANCHECK_DETECTOR_"


class DetectorConfig(BaseModel):
    """Configuration for a single detector."""

    model_config = ConfigDict(frozen=True)

    enabled: bool = Field(default=True, description="Whether the detector runs")


class Config(BaseModel):
    """
    plancheck configuration.

    Loaded from environment variables or a config file.
    """

    model_config = ConfigDict(frozen=True)

    # Normalizer
    primary_enabled: bool = Field(
        default=True,
        description="Run the primary structured parser before the fallbacks",
    )
    primary_timeout_ms: int = Field(
        default=10_000,
        gt=0,
        description="Deadline for the primary parser in milliseconds",
    )
    max_input_size_mb: float = Field(
        default=100.0,
        gt=0,
        description="Inputs larger than this produce the Parse Error node",
    )
    max_depth: int = Field(default=100, gt=0, description="Maximum plan tree depth")
    max_nodes: int = Field(default=50_000, gt=0, description="Maximum plan node count")

    # Observability
    log_buffer_size: int = Field(
        default=1000,
        gt=0,
        description="Capacity of the in-memory event buffer",
    )

    # Detectors
    detectors: dict[str, DetectorConfig] = Field(
        default_factory=dict,
        description="Per-detector configurations, keyed by detector id",
    )

    def is_detector_enabled(self, detector_id: str) -> bool:
        """Check if a detector is enabled (detectors are enabled by default)."""
        if detector_id in self.detectors:
            return self.detectors[detector_id].enabled
        return True

    def normalizer_config(self) -> NormalizerConfig:
        return NormalizerConfig(
            primary_enabled=self.primary_enabled,
            primary_timeout_ms=self.primary_timeout_ms,
            max_input_size_mb=self.max_input_size_mb,
            max_depth=self.max_depth,
            max_nodes=self.max_nodes,
        )


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_env_float(value: str | None, default: float) -> float:
    """Parse float from environment variable."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


def load_config_from_env() -> Config:
    """
    Load configuration from environment variables.

    Environment variable naming convention:
    - PLANCHECK_<SETTING> for global settings
    - PLANCHECK_DETECTOR_<DETECTOR_ID>_ENABLED for detectors

    Examples:
    - PLANCHECK_PRIMARY_TIMEOUT_MS=2000
    - PLANCHECK_MAX_INPUT_SIZE_MB=10
    - PLANCHECK_DETECTOR_ROW_COUNT_MISMATCH_ENABLED=false
    """
    env = os.environ
    config_kwargs: dict[str, Any] = {
        "primary_enabled": _parse_env_bool(env.get("PLANCHECK_PRIMARY_ENABLED"), True),
        "primary_timeout_ms": _parse_env_int(env.get("PLANCHECK_PRIMARY_TIMEOUT_MS"), 10_000),
        "max_input_size_mb": _parse_env_float(env.get("PLANCHECK_MAX_INPUT_SIZE_MB"), 100.0),
        "max_depth": _parse_env_int(env.get("PLANCHECK_MAX_DEPTH"), 100),
        "max_nodes": _parse_env_int(env.get("PLANCHECK_MAX_NODES"), 50_000),
        "log_buffer_size": _parse_env_int(env.get("PLANCHECK_LOG_BUFFER_SIZE"), 1000),
    }

    detectors: dict[str, DetectorConfig] = {}
    for key, value in env.items():
        if not key.startswith(DETECTOR_PREFIX):
            continue
        name, _, setting = key[len(DETECTOR_PREFIX):].rpartition("_")
        if not name:
            continue
        if setting.lower() == "enabled":
            detectors[name.lower()] = DetectorConfig(enabled=_parse_env_bool(value, True))
        else:
            logger.warning("Ignoring unknown detector setting %s=%s", key, value)

    config_kwargs["detectors"] = detectors

    try:
        return Config(**config_kwargs)
    except ValidationError as e:
        logger.error("Invalid configuration in environment, using defaults: %s", e)
        return Config(detectors=detectors)


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file is missing or invalid.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path, encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)

        return Config(**(data or {}))
    except (OSError, ValueError, TypeError, yaml.YAMLError) as e:
        logger.error("Failed to load config from %s: %s", path, e)
        return load_config_from_env()


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. PLANCHECK_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("PLANCHECK_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
