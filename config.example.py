# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
Do NOT commit real secrets (the Firestore API key in particular). Keep them in
.env (local, gitignored).

This file exists to make the repo self-documenting even without opening .env.
"""

ENV_VARS = {
    # App / logging
    "TASKBOARD_APP_NAME": "App display name (default: taskboard).",
    "TASKBOARD_LOG_LEVEL": "Console logging level (default: INFO). The log file always gets DEBUG.",
    # Remote store
    "TASKBOARD_STORE_BACKEND": "memory | sqlite | firestore (default: sqlite).",
    "TASKBOARD_COLLECTION": "Collection holding the task documents (default: tasks).",
    "TASKBOARD_POLL_INTERVAL_SECONDS": "Change-stream poll interval for sqlite/firestore (default: 1.0).",
    "TASKBOARD_HTTP_TIMEOUT_SECONDS": "Firestore REST request timeout (default: 15).",
    # Firestore (REST)
    "TASKBOARD_FIRESTORE_PROJECT_ID": (
        "Firebase project id (required for firestore; falls back to REACT_APP_FIREBASE_PROJECT_ID)."
    ),
    "TASKBOARD_FIRESTORE_API_KEY": (
        "Web API key sent as ?key= (optional; falls back to REACT_APP_FIREBASE_API_KEY)."
    ),
    "TASKBOARD_FIRESTORE_DATABASE": "Database id (default: (default)).",
    "TASKBOARD_FIRESTORE_BASE_URL": (
        "REST base URL (default: https://firestore.googleapis.com/v1; point at the emulator for local runs)."
    ),
    # Paths (gitignored)
    "TASKBOARD_DATA_DIR": "Local data directory, also holds taskboard.log (default: .local/taskboard).",
    "TASKBOARD_SQLITE_PATH": "SQLite document store path (default: <data_dir>/board.sqlite3).",
}
