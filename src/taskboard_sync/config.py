# src/taskboard_sync/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once and passed explicitly.
- No secrets required at import time.
- Firebase variables of the old web client are accepted as fallbacks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "TASKBOARD"

STORE_BACKENDS = ("memory", "sqlite", "firestore")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
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


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Remote store ----
    store_backend: str
    collection: str
    poll_interval_seconds: float
    http_timeout_seconds: float

    # ---- Firestore (REST) ----
    firestore_project_id: Optional[str]
    firestore_api_key: Optional[str]
    firestore_database: str
    firestore_base_url: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    sqlite_path: Path

    @staticmethod
    def from_env(*, load_env_file: bool = True) -> "Settings":
        if load_env_file:
            load_dotenv(override=False)

        app_name = _env(_k("APP_NAME"), "taskboard")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        store_backend = _env(_k("STORE_BACKEND"), "sqlite").strip().lower()
        if store_backend not in STORE_BACKENDS:
            store_backend = "sqlite"

        collection = _env(_k("COLLECTION"), "tasks").strip() or "tasks"
        poll_interval_seconds = max(0.05, _env_float(_k("POLL_INTERVAL_SECONDS"), 1.0))
        http_timeout_seconds = max(1.0, _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0))

        firestore_project_id = _first_env(
            _k("FIRESTORE_PROJECT_ID"), "REACT_APP_FIREBASE_PROJECT_ID", default=None
        )
        firestore_api_key = _first_env(
            _k("FIRESTORE_API_KEY"), "REACT_APP_FIREBASE_API_KEY", default=None
        )
        firestore_database = _env(_k("FIRESTORE_DATABASE"), "(default)")
        firestore_base_url = _env(
            _k("FIRESTORE_BASE_URL"), "https://firestore.googleapis.com/v1"
        ).rstrip("/")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskboard"))
        sqlite_path = _env_path(_k("SQLITE_PATH"), data_dir / "board.sqlite3")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            store_backend=store_backend,
            collection=collection,
            poll_interval_seconds=poll_interval_seconds,
            http_timeout_seconds=http_timeout_seconds,
            firestore_project_id=firestore_project_id,
            firestore_api_key=firestore_api_key,
            firestore_database=firestore_database,
            firestore_base_url=firestore_base_url,
            data_dir=data_dir,
            sqlite_path=sqlite_path,
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
