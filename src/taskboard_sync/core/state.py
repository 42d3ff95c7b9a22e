# src/taskboard_sync/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..sync.engine import SyncEngine
from .ports import RemoteStore


@dataclass
class AppState:
    # Settings object (config.Settings in the app, SimpleNamespace in tests).
    settings: Any

    # Explicitly owned store handle; its lifecycle follows engine start/stop.
    store: RemoteStore
    engine: SyncEngine
