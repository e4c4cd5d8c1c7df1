"""Configuration loading from environment variables + .env + optional YAML."""

from __future__ import annotations

import math
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError, ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ironarchive.errors import ConfigError
from ironarchive.masking import mask_connection_string

REQUIRED_FIELDS = (
    "database_url",
    "redis_url",
    "meilisearch_url",
    "meili_master_key",
    "jwt_secret",
)

DURATION_FIELDS = (
    "db_max_conn_lifetime",
    "db_max_conn_idle_time",
    "db_health_check_period",
    "probe_timeout",
    "meilisearch_timeout",
    "shutdown_timeout",
)

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_BARE_SECONDS = re.compile(r"\d+(?:\.\d+)?")


def parse_duration(value: str) -> float:
    """Parse ``1h30m``, ``300ms`` or a bare number of seconds into seconds."""
    text = value.strip()
    if not text:
        raise ValueError("empty duration")
    if _BARE_SECONDS.fullmatch(text):
        return float(text)

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text):
        raise ValueError(f"invalid duration {value!r}")
    return total


class ServiceConfig(BaseSettings):
    """Connection settings, pool tuning and timeout budgets. Immutable once built."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_ignore_empty=True,
        extra="ignore",
        frozen=True,
    )

    # Backing services
    database_url: str = ""
    redis_url: str = ""
    meilisearch_url: str = ""
    meili_master_key: str = ""
    jwt_secret: str = ""

    # Server
    server_port: str = "8080"
    server_host: str = "localhost"
    log_level: str = "info"
    log_format: str = "json"
    email_storage_path: str = "./data/emails"

    # Relational store pool (durations in seconds)
    db_max_conns: int = 25
    db_min_conns: int = 5
    db_max_conn_lifetime: float = 3600.0
    db_max_conn_idle_time: float = 1800.0
    db_health_check_period: float = 60.0

    # Timeout budgets (seconds)
    probe_timeout: float = 5.0
    meilisearch_timeout: float = 5.0
    shutdown_timeout: float = 10.0

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Environment beats .env, which beats YAML/init values.
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @field_validator("db_max_conns", "db_min_conns", mode="before")
    @classmethod
    def int_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError:
                return cls.model_fields[info.field_name].default
        return value

    @field_validator(*DURATION_FIELDS, mode="before")
    @classmethod
    def duration_or_default(cls, value: Any, info: ValidationInfo) -> Any:
        if isinstance(value, str):
            try:
                return parse_duration(value)
            except ValueError:
                return cls.model_fields[info.field_name].default
        if isinstance(value, (int, float)) and not (math.isfinite(value) and value >= 0):
            return cls.model_fields[info.field_name].default
        return value

    @model_validator(mode="after")
    def check_required(self) -> ServiceConfig:
        for field_name in REQUIRED_FIELDS:
            if not getattr(self, field_name):
                raise ValueError(f"{field_name.upper()} is required")
        return self

    @classmethod
    def load(cls, path: str | Path = "ironarchive.yaml", env_file: str | Path | None = ".env") -> ServiceConfig:
        """Build the config from env vars, ``.env`` and an optional YAML file.

        Raises ConfigError naming the first missing required variable.
        """
        yaml_data: dict[str, Any] = {}
        yaml_path = Path(path)
        try:
            if yaml_path.exists():
                with yaml_path.open("r", encoding="utf-8") as f:
                    raw = yaml.safe_load(f) or {}
                yaml_data = _flatten_yaml(raw.get("ironarchive", {}) or {})
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"failed to read {yaml_path}: {exc}") from exc

        try:
            return cls(_env_file=env_file, **yaml_data)
        except ValidationError as exc:
            raise ConfigError(_first_error(exc)) from exc

    def describe(self) -> dict[str, Any]:
        """Settings safe to log: URLs masked, secrets left out."""
        return {
            "database_url": mask_connection_string(self.database_url),
            "redis_url": mask_connection_string(self.redis_url),
            "meilisearch_url": mask_connection_string(self.meilisearch_url),
            "server": f"{self.server_host}:{self.server_port}",
            "log_level": self.log_level,
            "log_format": self.log_format,
            "email_storage_path": self.email_storage_path,
            "db_pool": {
                "max_conns": self.db_max_conns,
                "min_conns": self.db_min_conns,
                "max_conn_lifetime": self.db_max_conn_lifetime,
                "max_conn_idle_time": self.db_max_conn_idle_time,
                "health_check_period": self.db_health_check_period,
            },
            "probe_timeout": self.probe_timeout,
            "meilisearch_timeout": self.meilisearch_timeout,
            "shutdown_timeout": self.shutdown_timeout,
        }


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    cause = err.get("ctx", {}).get("error")
    if cause is not None:
        return str(cause)
    location = ".".join(str(part) for part in err.get("loc", ()))
    return f"{location.upper()}: {err['msg']}" if location else err["msg"]


def _flatten_yaml(data: dict, prefix: str = "") -> dict:
    """Flatten nested YAML (``db: {max_conns: 10}``) into ``db_max_conns`` keys."""
    flat: dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}_{key}" if prefix else str(key)
        if isinstance(value, dict):
            flat.update(_flatten_yaml(value, full_key))
        else:
            flat[full_key.lower()] = value
    return flat
