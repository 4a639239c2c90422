"""
Configuration system for queryartifacts.

Implements 12-factor config principles:
- Environment variables as primary config source
- Optional JSON/YAML config file for local development
- Every decision threshold and scoring weight is tunable

Usage:
    from queryartifacts.config import get_config, Config

    # Load from environment (default)
    config = get_config()

    if coverage < config.create_threshold:
        ...

Environment variable naming convention:
    QUERYARTIFACTS_<SETTING>, e.g.
    - QUERYARTIFACTS_CREATE_THRESHOLD=75
    - QUERYARTIFACTS_CACHE_ENABLED=true
    - QUERYARTIFACTS_DEFAULT_SCHEMA=HR
    - QUERYARTIFACTS_CONFIG_FILE=queryartifacts.yaml
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from queryartifacts.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "QUERYARTIFACTS_"


class Config(BaseModel):
    """
    queryartifacts configuration.

    Loaded from environment variables and optional config file.
    """

    model_config = ConfigDict(frozen=True)

    # Recommendation decision boundaries (percent coverage)
    create_threshold: float = Field(
        default=80.0,
        ge=0,
        le=100,
        description="Best existing coverage below this triggers a recommendation",
    )
    extend_threshold: float = Field(
        default=50.0,
        ge=0,
        le=100,
        description="Coverage at or above this allows EXTEND_INDEX for a prefix index",
    )

    # Scoring
    neutral_selectivity: float = Field(
        default=0.001,
        gt=0,
        le=1,
        description="Selectivity assumed for columns without statistics",
    )
    selectivity_weight: float = Field(
        default=60.0,
        ge=0,
        description="Maximum score contributed by leading-column selectivity",
    )
    sort_avoidance_bonus: float = Field(
        default=20.0,
        ge=0,
        description="Bonus when the index would deliver GROUP BY / ORDER BY order",
    )
    covering_bonus: float = Field(
        default=20.0,
        ge=0,
        description="Bonus when the index would cover every referenced column",
    )

    # SQL parsing
    max_subquery_depth: int = Field(
        default=1,
        ge=0,
        description="Deepest subquery nesting accepted by the parser",
    )

    # DDL generation
    index_name_max_length: int = Field(
        default=30,
        ge=8,
        le=128,
        description="Maximum length of generated index names",
    )
    default_schema: str | None = Field(
        default=None,
        description="Schema used for unqualified tables when the request names none",
    )

    # Catalog access
    metadata_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Upper bound for one catalog metadata fetch",
    )
    cache_enabled: bool = Field(
        default=False,
        description="Cache catalog metadata between analyses",
    )
    cache_size: int = Field(
        default=256,
        gt=0,
        description="Maximum number of cached (connection, owner, table) entries",
    )
    cache_ttl_seconds: float = Field(
        default=300.0,
        gt=0,
        description="Catalog cache TTL in seconds",
    )

    @model_validator(mode="after")
    def _check_thresholds(self) -> "Config":
        if self.extend_threshold > self.create_threshold:
            raise ValueError(
                "extend_threshold must not exceed create_threshold "
                f"({self.extend_threshold} > {self.create_threshold})"
            )
        return self

    def config_hash(self) -> str:
        """
        Hash of the analysis-relevant settings.

        Cache settings are excluded since they never change results.
        """
        config_dict = self.model_dump(
            exclude={"cache_enabled", "cache_size", "cache_ttl_seconds"}
        )
        config_json = json.dumps(config_dict, sort_keys=True, default=str)
        return hashlib.sha256(config_json.encode()).hexdigest()[:16]


def _parse_env_bool(value: str | None, default: bool = False) -> bool:
    """Parse boolean from environment variable."""
    if value is None:
        return default
    return value.lower() in ("true", "1", "yes", "on")


def _parse_env_number(key: str, value: str) -> int | float:
    try:
        return float(value) if "." in value else int(value)
    except ValueError as e:
        raise ConfigurationError(
            f"Could not parse {ENV_PREFIX}{key.upper()}={value!r} as a number",
            config_key=key,
        ) from e


def load_config_from_env(environ: dict[str, str] | None = None) -> Config:
    """
    Load configuration from environment variables.

    Unknown QUERYARTIFACTS_* variables are ignored with a warning.
    """
    env = os.environ if environ is None else environ
    fields = Config.model_fields
    kwargs: dict[str, Any] = {}

    for key, value in env.items():
        if not key.startswith(ENV_PREFIX) or key == f"{ENV_PREFIX}CONFIG_FILE":
            continue
        name = key[len(ENV_PREFIX):].lower()
        if name not in fields:
            logger.warning("Ignoring unknown setting %s", key)
            continue

        annotation = fields[name].annotation
        if annotation is bool:
            kwargs[name] = _parse_env_bool(value)
        elif annotation in (int, float):
            kwargs[name] = _parse_env_number(name, value)
        else:
            kwargs[name] = value or None

    return _build(kwargs, source="environment")


def load_config_from_file(path: Path) -> Config:
    """
    Load configuration from a JSON or YAML file.

    Falls back to environment variables when the file does not exist.
    """
    if not path.exists():
        logger.warning("Config file not found: %s, using environment", path)
        return load_config_from_env()

    with open(path) as f:
        if path.suffix in (".yaml", ".yml"):
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        else:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigurationError(f"Invalid JSON in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {path} must contain a mapping")

    return _build(data, source=str(path))


def _build(data: dict[str, Any], source: str) -> Config:
    try:
        return Config(**data)
    except ValidationError as e:
        first = e.errors()[0]
        key = ".".join(str(p) for p in first.get("loc", ())) or None
        raise ConfigurationError(
            f"Invalid configuration from {source}: {first.get('msg')}",
            config_key=key,
        ) from e


@lru_cache(maxsize=1)
def get_config() -> Config:
    """
    Get the global configuration instance.

    Loads from:
    1. QUERYARTIFACTS_CONFIG_FILE environment variable (if set)
    2. Environment variables (default)

    Result is cached for the lifetime of the process.
    """
    config_file = os.environ.get(f"{ENV_PREFIX}CONFIG_FILE")

    if config_file:
        return load_config_from_file(Path(config_file))

    return load_config_from_env()


def reset_config() -> None:
    """Reset the cached configuration (mainly for testing)."""
    get_config.cache_clear()
