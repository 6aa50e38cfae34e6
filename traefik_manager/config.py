from __future__ import annotations

import os
import re
import tempfile
from functools import lru_cache
from typing import Any

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_LOG_FORMATS = {"json", "text"}


def parse_duration(value: Any) -> float:
    """Parse ``15s``, ``500ms``, ``1m30s`` or a plain number of seconds."""
    if isinstance(value, bool):
        raise ValueError("duration must be a number or a string like '15s'")
    if isinstance(value, (int, float)):
        return float(value)
    text = str(value).strip()
    if not text:
        raise ValueError("duration must not be empty")
    try:
        return float(text)
    except ValueError:
        pass
    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            break
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"invalid duration '{text}'")
    return total


def split_csv(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _normalize_path(value: str) -> str:
    path = "/" + value.strip().strip("/")
    return path if path != "/" else ""


class Settings(BaseSettings):
    app_name: str = Field(default="traefik-manager")
    app_version: str = Field(default="1.0.0")

    server_host: str = Field(default="0.0.0.0")
    server_port: int = Field(default=9000)
    server_base_path: str = Field(default="/api/v1")
    server_read_timeout: float = Field(default=15.0)
    server_write_timeout: float = Field(default=15.0)

    storage_file_path: str = Field(
        default=os.path.join(tempfile.gettempdir(), "traefik-manager.json")
    )
    storage_save_interval: float = Field(default=5.0)

    provider_path: str = Field(default="/traefik/provider")

    auth_enabled: bool = Field(default=False)
    auth_header_name: str = Field(default="X-API-Key")
    auth_key: str = Field(default="")
    auth_exclude_paths: str = Field(default="")

    provider_auth_enabled: bool = Field(default=False)
    provider_auth_header_name: str = Field(default="X-API-Key")
    provider_auth_key: str = Field(default="")

    cors_allowed_origins: str = Field(default="*")
    cors_allowed_methods: str = Field(default="GET,POST,PUT,DELETE,OPTIONS")
    cors_allowed_headers: str = Field(default="Content-Type,Authorization")
    cors_allow_credentials: bool = Field(default=False)
    cors_max_age: int = Field(default=300)

    log_level: str = Field(default="info")
    log_format: str = Field(default="json")
    log_file_path: str = Field(default="")
    log_use_colors: bool = Field(default=True)

    metrics_enabled: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @field_validator(
        "server_read_timeout",
        "server_write_timeout",
        "storage_save_interval",
        mode="before",
    )
    @classmethod
    def _parse_durations(cls, value: Any) -> float:
        return parse_duration(value)

    @field_validator("server_base_path", "provider_path")
    @classmethod
    def _normalize_paths(cls, value: str) -> str:
        return _normalize_path(value)

    @field_validator("log_format")
    @classmethod
    def _normalize_log_format(cls, value: str) -> str:
        normalized = value.strip().lower()
        if normalized not in _LOG_FORMATS:
            raise ValueError("LOG_FORMAT must be 'json' or 'text'.")
        return normalized

    @model_validator(mode="after")
    def validate_auth_keys(self) -> "Settings":
        issues: list[str] = []
        if self.auth_enabled and not self.auth_key:
            issues.append("AUTH_KEY is required when AUTH_ENABLED is true.")
        if self.provider_auth_enabled and not self.provider_auth_key:
            issues.append("PROVIDER_AUTH_KEY is required when PROVIDER_AUTH_ENABLED is true.")
        if self.storage_save_interval < 0:
            issues.append("STORAGE_SAVE_INTERVAL must not be negative.")
        if not self.provider_path:
            issues.append("PROVIDER_PATH must not be empty.")
        if issues:
            raise ValueError(" ".join(issues))
        return self

    @property
    def health_path(self) -> str:
        return f"{self.server_base_path}/health"

    @property
    def cors_origins(self) -> list[str]:
        return split_csv(self.cors_allowed_origins)

    @property
    def cors_methods(self) -> list[str]:
        return split_csv(self.cors_allowed_methods)

    @property
    def cors_headers(self) -> list[str]:
        return split_csv(self.cors_allowed_headers)

    @property
    def excluded_paths(self) -> list[str]:
        paths = [self.health_path]
        if self.auth_enabled:
            paths.append(self.provider_path)
        paths.extend(_normalize_path(item) for item in split_csv(self.auth_exclude_paths))
        return [path for path in paths if path]


@lru_cache
def get_settings() -> Settings:
    return Settings()
