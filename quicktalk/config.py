"""Configuration loading for the QuickTalk service."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .codes import DEFAULT_CODE_TTL
from .errors import ConfigurationError
from .relay import DEFAULT_INBOX_QUEUE_SIZE
from .sessions import DEFAULT_SESSION_TTL

DEFAULT_CORS_ORIGINS = ("http://localhost:3000", "http://localhost:5173")

_ENV_KEYS = {
    "database_path": "QUICKTALK_DB_PATH",
    "code_ttl_seconds": "QUICKTALK_CODE_TTL_SECONDS",
    "session_ttl_minutes": "QUICKTALK_SESSION_TTL_MINUTES",
    "inbox_queue_size": "QUICKTALK_INBOX_QUEUE_SIZE",
    "cors_origins": "QUICKTALK_CORS_ORIGINS",
    "trusted_proxies": "QUICKTALK_TRUSTED_PROXIES",
}


def resolve_database_path(value: Optional[str]) -> Path:
    """Resolve the on-disk path for the SQLite database."""

    if value:
        return Path(value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "quicktalk.sqlite3").resolve(strict=False)


def resolve_config_path(env_value: Optional[str]) -> Optional[Path]:
    if not env_value:
        return None
    return Path(env_value).expanduser().resolve(strict=False)


def _positive_int(value: object, name: str) -> int:
    try:
        parsed = int(str(value).strip())
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"Invalid integer value {value!r} for {name}") from exc
    if parsed <= 0:
        raise ConfigurationError(f"{name} must be greater than zero")
    return parsed


def _string_list(value: object) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple)):
        items = [str(item) for item in value]
    else:
        raise ConfigurationError("Expected a list or a comma-separated string")
    return tuple(item.strip() for item in items if item.strip())


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the service."""

    database_path: Path
    code_ttl: timedelta = DEFAULT_CODE_TTL
    session_ttl: timedelta = DEFAULT_SESSION_TTL
    inbox_queue_size: int = DEFAULT_INBOX_QUEUE_SIZE
    cors_origins: Tuple[str, ...] = DEFAULT_CORS_ORIGINS
    trusted_proxies: Tuple[str, ...] = ()

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "Settings":
        """Create :class:`Settings` from merged file and environment values."""

        unknown = set(data) - set(_ENV_KEYS)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        raw_path = data.get("database_path")
        code_ttl = DEFAULT_CODE_TTL
        if data.get("code_ttl_seconds") is not None:
            code_ttl = timedelta(seconds=_positive_int(data["code_ttl_seconds"], "code_ttl_seconds"))
        session_ttl = DEFAULT_SESSION_TTL
        if data.get("session_ttl_minutes") is not None:
            session_ttl = timedelta(
                minutes=_positive_int(data["session_ttl_minutes"], "session_ttl_minutes")
            )
        queue_size = DEFAULT_INBOX_QUEUE_SIZE
        if data.get("inbox_queue_size") is not None:
            queue_size = _positive_int(data["inbox_queue_size"], "inbox_queue_size")
        cors_origins = DEFAULT_CORS_ORIGINS
        if data.get("cors_origins") is not None:
            cors_origins = _string_list(data["cors_origins"])

        return Settings(
            database_path=resolve_database_path(str(raw_path) if raw_path else None),
            code_ttl=code_ttl,
            session_ttl=session_ttl,
            inbox_queue_size=queue_size,
            cors_origins=cors_origins,
            trusted_proxies=_string_list(data.get("trusted_proxies")),
        )


def _read_config_file(config_path: Path) -> Dict[str, object]:
    with config_path.open("r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Configuration file {config_path} must contain a mapping")
    section = raw.get("quicktalk", raw)
    if not isinstance(section, dict):
        raise ConfigurationError("The 'quicktalk' section must be a mapping")
    return dict(section)


def load_settings(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Load settings from an optional YAML file, overridden by environment variables."""

    env = os.environ if environ is None else environ
    if config_path is None:
        config_path = resolve_config_path(env.get("QUICKTALK_CONFIG"))

    values: Dict[str, object] = {}
    if config_path is not None:
        values.update(_read_config_file(config_path))

    for key, env_name in _ENV_KEYS.items():
        raw = env.get(env_name)
        if raw is not None and raw.strip() != "":
            values[key] = raw

    return Settings.from_dict(values)


__all__ = ["Settings", "load_settings", "resolve_config_path", "resolve_database_path"]
