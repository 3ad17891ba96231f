import json
import logging
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

APP_DIR = Path("~/.mediatracker").expanduser()
DEFAULT_SETTINGS_PATH = APP_DIR / "settings.json"

DEFAULT_SETTINGS: Dict[str, Any] = {
    "player_executable": "vlc",
    "http_host": "localhost",
    "http_port": 8080,
    "http_password": "mediatracker",
    "poll_interval": 2.0,  # Seconds between status polls
    "status_timeout": 1.0,  # Per-request timeout, independent of poll_interval
    "completion_threshold": 0.8,
    "max_consecutive_failures": 15,  # 0 keeps polling an unreachable player forever
    "store_backend": "sqlite",  # sqlite, json
    "database_path": str(APP_DIR / "app.db"),
    "log_level": "INFO",
}


def logs_dir() -> Path:
    return APP_DIR / "logs"


def log_path() -> Path:
    return logs_dir() / "app.log"


def load_settings(settings_path: Path = DEFAULT_SETTINGS_PATH) -> Dict[str, Any]:
    """Loads application settings from a JSON file, filling in defaults."""
    settings = dict(DEFAULT_SETTINGS)
    if not settings_path.exists():
        return settings

    try:
        with open(settings_path, 'r', encoding='utf-8') as f:
            stored = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable settings file %s: %s", settings_path, e)
        return settings

    if isinstance(stored, dict):
        settings.update(stored)
    else:
        logger.warning("Ignoring settings file %s: not a JSON object", settings_path)
    return settings


def save_settings(settings: Dict[str, Any], settings_path: Path = DEFAULT_SETTINGS_PATH) -> None:
    """Saves application settings to a JSON file."""
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    with open(settings_path, 'w', encoding='utf-8') as f:
        json.dump(settings, f, indent=4)
