# src/taskboard_sync/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- builds the one RemoteStore handle the process owns,
- wires it into the SyncEngine and AppState.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..core.ports import RemoteStore
from ..core.state import AppState
from ..stores.firestore_rest import FirestoreRestStore
from ..stores.memory_store import InMemoryDocumentStore
from ..stores.sqlite_store import SqliteDocumentStore
from ..sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)


def create_store(settings) -> RemoteStore:
    backend = str(getattr(settings, "store_backend", "sqlite")).lower()

    if backend == "memory":
        logger.warning("Using in-memory store: the board is not shared and is lost on exit.")
        return InMemoryDocumentStore()

    if backend == "firestore":
        if not settings.firestore_project_id:
            raise ValueError("Firestore backend selected but TASKBOARD_FIRESTORE_PROJECT_ID is not set")
        return FirestoreRestStore(
            project_id=settings.firestore_project_id,
            api_key=settings.firestore_api_key,
            database=settings.firestore_database,
            base_url=settings.firestore_base_url,
            poll_interval=settings.poll_interval_seconds,
            timeout=settings.http_timeout_seconds,
        )

    return SqliteDocumentStore(settings.sqlite_path, poll_interval=settings.poll_interval_seconds)


def create_initial_state(*, settings=None, store: RemoteStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings (and the store) injectable makes the app easier to test
    and avoids hidden global config reads. If settings is None, falls back to
    get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if store is None:
        store = create_store(settings)

    engine = SyncEngine(store, collection=settings.collection)
    logger.info(
        "Board wired backend=%s collection=%s",
        getattr(settings, "store_backend", "?"),
        settings.collection,
    )
    return AppState(settings=settings, store=store, engine=engine)
