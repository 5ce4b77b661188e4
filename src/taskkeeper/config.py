# src/taskkeeper/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Remote API is optional: without TASKKEEPER_API_URL everything runs on the local cache.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKKEEPER"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def normalize_api_url(raw: str | None) -> str | None:
    """'http://host:3000' -> 'http://host:3000/api'; blank -> None."""
    if raw is None:
        return None
    url = raw.strip().rstrip("/")
    if not url:
        return None
    if not url.endswith("/api"):
        url += "/api"
    return url


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Remote API (optional) ----
    api_url: str | None
    api_token: str | None
    http_timeout_seconds: float

    # ---- Local cache ----
    user_id: str
    data_dir: Path
    local_db_path: Path

    # ---- Scheduler ----
    sweep_interval_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskkeeper").strip() or "taskkeeper"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        api_url = normalize_api_url(os.getenv(_k("API_URL")))
        api_token = _env(_k("API_TOKEN"), "").strip() or None
        http_timeout_seconds = max(1.0, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 10.0))

        user_id = _env(_k("USER_ID"), "local").strip() or "local"
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskkeeper"))
        local_db_path = _env_path(_k("LOCAL_DB_PATH"), data_dir / "taskkeeper.sqlite3")

        sweep_interval_seconds = float(max(1, _env_int(_k("SWEEP_INTERVAL_SECONDS"), 60)))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            api_url=api_url,
            api_token=api_token,
            http_timeout_seconds=http_timeout_seconds,
            user_id=user_id,
            data_dir=data_dir,
            local_db_path=local_db_path,
            sweep_interval_seconds=sweep_interval_seconds,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    """Load .env once (existing environment wins) and cache the Settings."""
    global _SETTINGS
    if _SETTINGS is None:
        load_dotenv(override=False)
        _SETTINGS = Settings.from_env()
    return _SETTINGS
