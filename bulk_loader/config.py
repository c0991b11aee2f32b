"""
Configuration settings for the parallel CSV bulk loader.

Uses Pydantic Settings to load environment variables (and an optional `.env`
file) for the database connection, pool sizing, worker count, retry policy and
logging. A JSON config file can be layered on top with `load_config_file`; it
accepts both the field names below and the legacy keys `db_pass` and
`db_address`.
"""
from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from bulk_loader.errors import ConfigError

_LEGACY_KEYS = {
    "db_pass": "db_password",
    "db_address": "db_host",
}


class Settings(BaseSettings):
    # Database
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("bulk_loader", alias="DB_NAME")
    db_table: str = Field("records", alias="DB_TABLE")
    db_connect_timeout_s: int = Field(10, alias="DB_CONNECT_TIMEOUT_S", ge=1)

    # Connection pool
    db_max_idle_conns: int = Field(2, alias="DB_MAX_IDLE_CONNS", ge=0)
    db_max_open_conns: int = Field(10, alias="DB_MAX_OPEN_CONNS", ge=1)
    db_acquire_timeout_s: float = Field(30.0, alias="DB_ACQUIRE_TIMEOUT_S", gt=0)

    # Workers
    total_worker: int = Field(10, alias="TOTAL_WORKER", ge=1)
    progress_interval: int = Field(100, alias="PROGRESS_INTERVAL", ge=0)

    # Retry policy (retry_max_attempts=0 retries without limit)
    retry_max_attempts: int = Field(5, alias="RETRY_MAX_ATTEMPTS", ge=0)
    retry_backoff_initial_s: float = Field(0.05, alias="RETRY_BACKOFF_INITIAL_S", ge=0)
    retry_backoff_max_s: float = Field(2.0, alias="RETRY_BACKOFF_MAX_S", ge=0)
    retry_permanent_errors: bool = Field(False, alias="RETRY_PERMANENT_ERRORS")
    dead_letter_path: Optional[Path] = Field(None, alias="DEAD_LETTER_PATH")

    # Input
    csv_delimiter: Optional[str] = Field(None, alias="CSV_DELIMITER", min_length=1, max_length=1)
    csv_encoding: str = Field("utf-8-sig", alias="CSV_ENCODING")

    # Application
    debug: bool = Field(False, alias="DEBUG")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    json_logs: bool = Field(False, alias="JSON_LOGS")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_pool_bounds(self) -> "Settings":
        if self.db_max_idle_conns > self.db_max_open_conns:
            raise ValueError(
                f"db_max_idle_conns ({self.db_max_idle_conns}) cannot exceed "
                f"db_max_open_conns ({self.db_max_open_conns})"
            )
        return self

    @property
    def effective_log_level(self) -> str:
        return "DEBUG" if self.debug else self.log_level.upper()


def _normalize_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for key, value in data.items():
        name = _LEGACY_KEYS.get(key.lower(), key.lower())
        normalized[name] = value
    return normalized


def load_config_file(path: Path | str, **overrides: Any) -> Settings:
    """
    Build Settings from a JSON config file.

    Values from the file take precedence over environment variables; non-None
    keyword `overrides` (typically CLI options) take precedence over both.

    Raises
    ------
    ConfigError
        If the file cannot be read, is not a JSON object, or fails validation.
    """
    config_path = Path(path)
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Cannot read config file {config_path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a JSON object")

    values = _normalize_keys(data)
    values.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return Settings(**values)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration in {config_path}: {exc}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings", "load_config_file"]
