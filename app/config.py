"""Configuration utilities for the survey flow service.

This module loads application configuration with the following rules:
- Primary source: `flow_config.json` at the project root.
- Overrides: environment variables, then optional text files under `config/`.
- Validation: Pydantic models enforce required fields and value constraints.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator


CONFIG_DIR = Path("config")
ROOT_FLOW_CONFIG = Path("flow_config.json")
logger = logging.getLogger(__name__)

# Fixed-point caps used when no configuration is loaded
DEFAULT_AVAILABILITY_MAX_PASSES = 10
DEFAULT_REACHABILITY_MAX_PASSES = 20
DEFAULT_SAVE_MAX_ATTEMPTS = 3
DEFAULT_RETRY_DELAY_SECONDS = 0.1


def _read_config_file(rel_path: str) -> Optional[str]:
    path = CONFIG_DIR / rel_path
    try:
        if path.exists():
            return path.read_text(encoding="utf-8").strip()
    except (OSError, UnicodeDecodeError) as e:
        logger.warning("Failed to read override %s: %s", path, e)
        return None
    return None


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)


class DatabaseConfig(BaseModel):
    dsn: str

    @field_validator("dsn")
    @classmethod
    def dsn_must_be_non_empty(cls, v: str) -> str:
        if not isinstance(v, str) or not v.strip():
            raise ValueError("database.dsn must be a non-empty string")
        return v


class FlowConfig(BaseModel):
    availability_max_passes: int = Field(default=DEFAULT_AVAILABILITY_MAX_PASSES, ge=1)
    reachability_max_passes: int = Field(default=DEFAULT_REACHABILITY_MAX_PASSES, ge=1)


class PersistenceConfig(BaseModel):
    save_max_attempts: int = Field(default=DEFAULT_SAVE_MAX_ATTEMPTS, ge=1)
    retry_delay_seconds: float = Field(default=DEFAULT_RETRY_DELAY_SECONDS, ge=0)


class AppConfig(BaseModel):
    database: DatabaseConfig
    flow: FlowConfig
    persistence: PersistenceConfig


def _read_json_file(path: Path) -> dict:
    try:
        if path.exists():
            return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.error("Failed to read JSON config %s: %s", path, e)
    return {}


def load_config() -> AppConfig:
    """Load configuration with validation.

    Precedence (highest first):
    1) Environment variables
    2) Text files in `config/` (optional)
    3) flow_config.json at project root (primary base)
    4) Safe defaults for development
    """

    base = _read_json_file(ROOT_FLOW_CONFIG)

    def _base(path: str, default: Optional[str] = None) -> Optional[str]:
        cur: object = base
        for key in path.split("."):
            if not isinstance(cur, dict) or key not in cur:
                return default
            cur = cur[key]
        return str(cur) if cur is not None else default

    dsn = (
        _env("TEST_DATABASE_URL")
        or _env("DATABASE_URL")
        or _read_config_file("database.url")
        or _base("database.dsn")
        or "sqlite+pysqlite:///:memory:"
    )

    availability_text = (
        _env("FLOW_AVAILABILITY_MAX_PASSES")
        or _read_config_file("flow.availability_max_passes")
        or _base("flow.availability_max_passes", str(DEFAULT_AVAILABILITY_MAX_PASSES))
    )
    reachability_text = (
        _env("FLOW_REACHABILITY_MAX_PASSES")
        or _read_config_file("flow.reachability_max_passes")
        or _base("flow.reachability_max_passes", str(DEFAULT_REACHABILITY_MAX_PASSES))
    )
    attempts_text = (
        _env("RESPONSE_SAVE_MAX_ATTEMPTS")
        or _read_config_file("persistence.save_max_attempts")
        or _base("persistence.save_max_attempts", str(DEFAULT_SAVE_MAX_ATTEMPTS))
    )
    delay_text = (
        _env("RESPONSE_SAVE_RETRY_DELAY_SECONDS")
        or _read_config_file("persistence.retry_delay_seconds")
        or _base("persistence.retry_delay_seconds", str(DEFAULT_RETRY_DELAY_SECONDS))
    )

    try:
        cfg = AppConfig(
            database=DatabaseConfig(dsn=dsn),
            flow=FlowConfig(
                availability_max_passes=str(availability_text).strip(),
                reachability_max_passes=str(reachability_text).strip(),
            ),
            persistence=PersistenceConfig(
                save_max_attempts=str(attempts_text).strip(),
                retry_delay_seconds=str(delay_text).strip(),
            ),
        )
        return cfg
    except PydanticValidationError as e:
        logger.error("Invalid application configuration: %s", e)
        raise


__all__ = [
    "AppConfig",
    "DatabaseConfig",
    "FlowConfig",
    "PersistenceConfig",
    "load_config",
    "DEFAULT_AVAILABILITY_MAX_PASSES",
    "DEFAULT_REACHABILITY_MAX_PASSES",
    "DEFAULT_SAVE_MAX_ATTEMPTS",
    "DEFAULT_RETRY_DELAY_SECONDS",
]
