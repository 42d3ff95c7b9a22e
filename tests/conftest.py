# tests/conftest.py

from __future__ import annotations

from pathlib import Path
from types import SimpleNamespace

import pytest

from taskboard_sync.core.state import AppState
from taskboard_sync.sync.engine import SyncEngine

from .fakes import FakeRemoteStore


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap helpers.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the developer's .env.
    """
    return SimpleNamespace(
        app_name="taskboard-test",
        log_level="DEBUG",
        store_backend="memory",
        collection="tasks",
        poll_interval_seconds=0.01,
        http_timeout_seconds=5.0,
        firestore_project_id=None,
        firestore_api_key=None,
        firestore_database="(default)",
        firestore_base_url="https://firestore.test/v1",
        # Paths (tmp per test run)
        data_dir=tmp_path / "data",
        sqlite_path=tmp_path / "data" / "board.sqlite3",
    )


@pytest.fixture()
def store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture()
def engine(store: FakeRemoteStore) -> SyncEngine:
    return SyncEngine(store, collection="tasks")


@pytest.fixture()
def state(settings: SimpleNamespace, store: FakeRemoteStore, engine: SyncEngine) -> AppState:
    """AppState wired with the recording fake store."""
    return AppState(settings=settings, store=store, engine=engine)
