"""Configuration management for the user records service."""
from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def default_database_path() -> Path:
    return (_PROJECT_ROOT / "data" / "users.sqlite3").resolve(strict=False)


def resolve_database_path(env_value: Optional[str], base_path: Path | None = None) -> Path:
    """Resolve the on-disk path for the record store."""

    if not env_value:
        return default_database_path()
    raw = Path(env_value).expanduser()
    if raw.is_absolute() or base_path is None:
        return raw.resolve(strict=False)
    return (base_path / raw).resolve(strict=False)


@dataclass(frozen=True)
class ServiceConfig:
    """Runtime settings for the HTTP service and its record store."""

    database_path: Path
    host: str = "0.0.0.0"
    port: int = 8080
    default_page_size: int = 10
    max_page_size: int = 100
    log_level: str = "INFO"
    cors_origins: Tuple[str, ...] = ("*",)

    def __post_init__(self) -> None:
        if not 1 <= self.port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {self.port}")
        if self.default_page_size < 1 or self.max_page_size < 1:
            raise ValueError("Page sizes must be at least 1")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size must not exceed max_page_size")

    @staticmethod
    def from_dict(data: Mapping[str, object], base_path: Path | None = None) -> "ServiceConfig":
        """Create a :class:`ServiceConfig` from raw dictionary data."""

        raw_origins = data.get("cors_origins", ["*"])
        if isinstance(raw_origins, str):
            raw_origins = [raw_origins]
        if not isinstance(raw_origins, (list, tuple)):
            raise ValueError("cors_origins must be a string or a list of strings")
        origins = tuple(str(origin).strip() for origin in raw_origins if str(origin).strip())

        db_value = data.get("database_path")
        return ServiceConfig(
            database_path=resolve_database_path(str(db_value) if db_value else None, base_path),
            host=str(data.get("host", "0.0.0.0")),
            port=int(data.get("port", 8080)),
            default_page_size=int(data.get("default_page_size", 10)),
            max_page_size=int(data.get("max_page_size", 100)),
            log_level=str(data.get("log_level", "INFO")).upper(),
            cors_origins=origins or ("*",),
        )


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    return (_PROJECT_ROOT / "config" / "service.yaml").resolve(strict=False)


def _apply_env_overrides(config: ServiceConfig, environ: Mapping[str, str]) -> ServiceConfig:
    overrides: Dict[str, object] = {}
    if environ.get("USERSVC_DB_PATH"):
        overrides["database_path"] = resolve_database_path(environ["USERSVC_DB_PATH"])
    if environ.get("USERSVC_HOST"):
        overrides["host"] = environ["USERSVC_HOST"].strip()
    if environ.get("USERSVC_PORT"):
        try:
            overrides["port"] = int(environ["USERSVC_PORT"])
        except ValueError as exc:
            raise ValueError(f"USERSVC_PORT must be an integer, got {environ['USERSVC_PORT']!r}") from exc
    if environ.get("USERSVC_LOG_LEVEL"):
        overrides["log_level"] = environ["USERSVC_LOG_LEVEL"].strip().upper()
    if not overrides:
        return config
    return replace(config, **overrides)


def load_service_config(
    config_path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ServiceConfig:
    """Load service settings from YAML (when present) and the environment.

    A missing configuration file is not an error; defaults are used instead.
    Environment variables always win over values from the file.
    """

    env = os.environ if environ is None else environ
    path = config_path or resolve_config_path(env.get("USERSVC_CONFIG"))

    raw: Dict[str, object] = {}
    if path.is_file():
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Configuration file {path} must contain a mapping")
        section = loaded.get("service", {}) or {}
        if not isinstance(section, dict):
            raise ValueError("The 'service' section of the configuration must be a mapping")
        raw = section

    config = ServiceConfig.from_dict(raw, base_path=path.parent)
    return _apply_env_overrides(config, env)


__all__ = [
    "ServiceConfig",
    "default_database_path",
    "load_service_config",
    "resolve_config_path",
    "resolve_database_path",
]
