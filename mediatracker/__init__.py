from pathlib import Path
from typing import Any, Dict, Optional

from mediatracker.domain import (
    AppState,
    Completed,
    MediaEntry,
    MonitorStatus,
    PlayerState,
    ProgressUpdated,
    Sample,
    SessionEnded,
    WatchRecord,
)
from mediatracker.drivers import build_launcher, build_status_client
from mediatracker.monitor import MonitorController
from mediatracker.repository import create_repository
from mediatracker.services import LibraryService
from mediatracker import settings as settings_mgr

__version__ = "0.1.0"


def create_library_service(app_settings: Optional[Dict[str, Any]] = None) -> LibraryService:
    """Wires the store, the VLC driver and the monitor from the application settings."""
    app_settings = app_settings or settings_mgr.load_settings()
    threshold = float(app_settings.get("completion_threshold", 0.8))

    repository = create_repository(
        app_settings.get("store_backend", "sqlite"),
        Path(app_settings.get("database_path", settings_mgr.DEFAULT_SETTINGS["database_path"])).expanduser(),
    )
    monitor = MonitorController(
        build_status_client(app_settings),
        repository,
        poll_interval=float(app_settings.get("poll_interval", 2.0)),
        completion_threshold=threshold,
        max_consecutive_failures=int(app_settings.get("max_consecutive_failures", 15)),
    )
    return LibraryService(repository, build_launcher(app_settings), monitor, completion_threshold=threshold)


__all__ = [
    "AppState",
    "Completed",
    "LibraryService",
    "MediaEntry",
    "MonitorController",
    "MonitorStatus",
    "PlayerState",
    "ProgressUpdated",
    "Sample",
    "SessionEnded",
    "WatchRecord",
    "create_library_service",
    "settings_mgr",
]
