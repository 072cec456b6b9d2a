"""
Configuration system for QueryTune.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional config file for local development
- Tunable heuristic constants and structural bounds
- Per-code advisory suppression

Usage:
    from querytune.config import get_config, AdvisorConfig

    # Load from environment (default)
    config = get_config()

    # Heuristic constants
    config.range_selectivity       # 0.3
    config.high_row_scan_ratio     # 0.3

    # Check if an advisory code is suppressed
    if config.is_code_enabled(AdvisoryCode.FULL_INDEX_SCAN):
        ...

The core never reads the global config on its own: components receive an
AdvisorConfig explicitly, and only TuningAdvisor falls back to get_config().
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from enum import Enum
from functools import lru_cache
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from querytune.advisor.models import AdvisoryCode
from querytune.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    """Environment profiles."""

    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"

    @classmethod
    def from_string(cls, value: str) -> "Environment":
        """Parse environment from string, defaulting to development."""
        try:
            return cls(value.lower())
        except ValueError:
            return cls.DEVELOPMENT


class AdvisorConfig(BaseModel):
    """
    QueryTune configuration.

    Loaded from environment variables and optional config file.
    """

    model_config = ConfigDict(frozen=True)

    environment: Environment = Field(
        default=Environment.DEVELOPMENT,
        description="Current environment (development/staging/production)",
    )

    # Selectivity model
    range_selectivity: float = Field(
        default=0.3,
        gt=0.0,
        le=1.0,
        description="Heuristic selectivity assigned to sargable range predicates",
    )
    default_selectivity: float = Field(
        default=0.5,
        gt=0.0,
        le=1.0,
        description="Selectivity used when a column has no usable statistics",
    )

    # Plan risk classifier
    high_row_scan_ratio: float = Field(
        default=0.3,
        gt=0.0,
        description="rows/table_rows ratio above which HIGH_ROW_SCAN_RATIO fires",
    )

    # Structural bounds
    max_predicates: int = Field(
        default=256,
        ge=1,
        description="Maximum predicates accepted per analysis call",
    )
    max_wrap_depth: int = Field(
        default=8,
        ge=0,
        description="Maximum expression-wrap depth of a predicate column",
    )
    max_plan_rows: int = Field(
        default=256,
        ge=1,
        description="Maximum plan rows accepted per analysis call",
    )

    disabled_codes: frozenset[AdvisoryCode] = Field(
        default_factory=frozenset,
        description="Advisory codes dropped from reports",
    )

    def is_code_enabled(self, code: AdvisoryCode) -> bool:
        """Check if an advisory code should be reported."""
        return code not in self.disabled_codes

    def config_hash(self) -> str:
        """Short stable hash of the configuration for report reproducibility."""
        config_dict = self.model_dump(mode="json")
        config_dict["disabled_codes"] = sorted(config_dict["disabled_codes"])
        config_json = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def _parse_env_int(value: str | None, default: int) -> int:
    """Parse integer from environment variable."""
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning("Could not parse integer %r, using %s", value, default)
        return default


def _parse_env_float(value: str | None, default: float) -> float:
    """Parse float from environment variable."""
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        logger.warning("Could not parse float %r, using %s", value, default)
        return default


def _parse_env_codes(value: str | None) -> frozenset[AdvisoryCode]:
    """Parse a comma-separated list of advisory codes."""
    if not value:
        return frozenset()
    codes: set[AdvisoryCode] = set()
    for raw in value.split(","):
        name = raw.strip().upper()
        if not name:
            continue
        try:
            codes.add(AdvisoryCode(name))
        except ValueError:
            logger.warning("Ignoring unknown advisory code %r", name)
    return frozenset(codes)


def load_config_from_env() -> AdvisorConfig:
    """
    Load configuration from environment variables.

    Examples:
    - QUERYTUNE_ENVIRONMENT=production
    - QUERYTUNE_RANGE_SELECTIVITY=0.25
    - QUERYTUNE_DEFAULT_SELECTIVITY=0.5
    - QUERYTUNE_HIGH_ROW_SCAN_RATIO=0.3
    - QUERYTUNE_MAX_PREDICATES=256
    - QUERYTUNE_MAX_WRAP_DEPTH=8
    - QUERYTUNE_MAX_PLAN_ROWS=256
    - QUERYTUNE_DISABLED_CODES=COVERING_INDEX,FULL_INDEX_SCAN
    """
    env = os.environ
    config_kwargs: dict[str, Any] = {
        "environment": Environment.from_string(
            env.get("QUERYTUNE_ENVIRONMENT", "development")
        ),
        "range_selectivity": _parse_env_float(
            env.get("QUERYTUNE_RANGE_SELECTIVITY"), 0.3
        ),
        "default_selectivity": _parse_env_float(
            env.get("QUERYTUNE_DEFAULT_SELECTIVITY"), 0.5
        ),
        "high_row_scan_ratio": _parse_env_float(
            env.get("QUERYTUNE_HIGH_ROW_SCAN_RATIO"), 0.3
        ),
        "max_predicates": _parse_env_int(env.get("QUERYTUNE_MAX_PREDICATES"), 256),
        "max_wrap_depth": _parse_env_int(env.get("QUERYTUNE_MAX_WRAP_DEPTH"), 8),
        "max_plan_rows": _parse_env_int(env.get("QUERYTUNE_MAX_PLAN_ROWS"), 256),
        "disabled_codes": _parse_env_codes(env.get("QUERYTUNE_DISABLED_CODES")),
    }

    try:
        return AdvisorConfig(**config_kwargs)
    except ValidationError as e:
        logger.warning("Invalid QUERYTUNE_* environment, using defaults: %s", e)
        return AdvisorConfig()


def load_config_from_file(path: Path, strict: bool = False) -> AdvisorConfig:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file is missing or broken.

    Args:
        path: JSON file, or .yaml/.yml when PyYAML is installed.
        strict: Raise instead of falling back.

    Raises:
        ConfigurationError: In strict mode, if the file cannot be loaded.
    """
    if not path.exists():
        if strict:
            raise ConfigurationError(f"Config file not found: {path}")
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    try:
        with open(path) as f:
            if path.suffix in (".yaml", ".yml"):
                try:
                    import yaml
                except ImportError:
                    if strict:
                        raise ConfigurationError(
                            f"PyYAML is required to load {path}"
                        ) from None
                    logger.warning("PyYAML not installed, cannot load YAML config")
                    return load_config_from_env()
                data = yaml.safe_load(f) or {}
            else:
                data = json.load(f)

        return AdvisorConfig(**data)
    except ConfigurationError:
        raise
    except ValidationError as e:
        if strict:
            key = ".".join(str(part) for part in e.errors()[0]["loc"])
            raise ConfigurationError(
                f"Invalid config in {path}: {e}", config_key=key or None
            ) from e
        logger.error("Failed to load config from %s: %s", path, e)
        return load_config_from_env()
    except Exception as e:
        if strict:
            raise ConfigurationError(f"Failed to load config from {path}: {e}") from e
        logger.error("Failed to load config from %s: %s", path, e)
        return load_config_from_env()


@lru_cache(maxsize=1)
def get_config() -> AdvisorConfig:
    """
    Get the process-wide default configuration.

    Loads from:
    1. QUERYTUNE_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get("QUERYTUNE_CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
