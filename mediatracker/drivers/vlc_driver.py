import logging
import math
import os
import platform
import shutil
import subprocess
from typing import Any, Dict, List, Optional

import requests

from mediatracker.domain import PlayerState, Sample
from mediatracker.errors import MalformedResponseError, PlayerUnreachableError
from mediatracker.interfaces import IPlayerLauncher, IStatusClient, LaunchResult

logger = logging.getLogger(__name__)

STATUS_PATH = "/requests/status.json"
DEFAULT_HTTP_PORT = 8080
DEFAULT_HTTP_PASSWORD = "mediatracker"

WINDOWS_VLC_PATHS = [
    r"C:\Program Files\VideoLAN\VLC\vlc.exe",
    r"C:\Program Files (x86)\VideoLAN\VLC\vlc.exe",
]


def _number(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None or value == "":
        return 0.0
    if isinstance(value, bool):
        raise MalformedResponseError(f"Field '{key}' is not a number: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise MalformedResponseError(f"Field '{key}' is not a number: {value!r}")
    if not math.isfinite(number):
        raise MalformedResponseError(f"Field '{key}' is not finite: {value!r}")
    return number


def parse_status(data: Any) -> Sample:
    """Normalizes a decoded VLC status.json document into a Sample."""
    if not isinstance(data, dict):
        raise MalformedResponseError("Status document is not a JSON object")

    raw_state = data.get("state") or PlayerState.STOPPED.value
    try:
        state = PlayerState(str(raw_state).lower())
    except ValueError:
        raise MalformedResponseError(f"Unknown player state: {raw_state!r}")

    meta: Any = data
    for key in ("information", "category", "meta"):
        meta = meta.get(key) if isinstance(meta, dict) else None
    title = str(meta.get("filename") or "") if isinstance(meta, dict) else ""

    return Sample(
        state=state,
        position=_number(data, "position"),
        time=_number(data, "time"),
        length=_number(data, "length"),
        title=title,
    )


class VlcStatusClient(IStatusClient):
    """
    Reads VLC's HTTP interface status. One request per poll, no retries;
    the timeout bounds how long a hung player can hold up a tick.
    """

    def __init__(self, host: str = "localhost", port: int = DEFAULT_HTTP_PORT,
                 password: str = DEFAULT_HTTP_PASSWORD, timeout: float = 1.0):
        self.url = f"http://{host}:{port}{STATUS_PATH}"
        self.auth = ("", password)
        self.timeout = timeout

    def poll(self) -> Sample:
        try:
            response = requests.get(self.url, auth=self.auth, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise PlayerUnreachableError(f"VLC not responding: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Failed to parse VLC response") from e
        return parse_status(data)


class VlcDriver(IPlayerLauncher):
    """Starts VLC with its HTTP interface enabled so playback can be monitored."""

    def __init__(self, player_executable_path: str = "vlc", http_port: int = DEFAULT_HTTP_PORT,
                 http_password: str = DEFAULT_HTTP_PASSWORD):
        self.player_executable_path = player_executable_path
        self.http_port = http_port
        self.http_password = http_password

    def find_executable(self) -> Optional[str]:
        candidates = [self.player_executable_path]
        if platform.system() == "Windows":
            candidates.extend(WINDOWS_VLC_PATHS)
        candidates.append("vlc")

        for candidate in candidates:
            if not candidate:
                continue
            if os.path.isfile(candidate):
                return candidate
            found = shutil.which(candidate)
            if found:
                return found
        return None

    def build_command(self, executable: str, path: str) -> List[str]:
        return [
            executable,
            path,
            "--extraintf", "http",
            "--http-password", self.http_password,
            "--http-port", str(self.http_port),
        ]

    def launch(self, path: str) -> LaunchResult:
        executable = self.find_executable()
        if executable is None:
            logger.warning("VLC not found, opening %s with the default application", path)
            try:
                open_file_in_default_app(path)
            except OSError as e:
                return LaunchResult(success=False, message=str(e))
            return LaunchResult(success=True, message="Opened with default application (VLC not found)")

        command = self.build_command(executable, path)
        logger.info("Launching VLC: %s", " ".join(command))
        try:
            subprocess.Popen(command, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL,
                             start_new_session=platform.system() != "Windows")
        except OSError as e:
            logger.error("Error opening file with VLC: %s", e)
            return LaunchResult(success=False, message=str(e))
        return LaunchResult(success=True)


def open_file_in_default_app(path: str) -> None:
    """Opens the file in the system's default application for that file type."""
    path = os.path.abspath(path)
    if platform.system() == "Windows":
        os.startfile(path)
    elif platform.system() == "Darwin":  # macOS
        subprocess.Popen(['open', path])
    else:  # Linux
        subprocess.Popen(['xdg-open', path])
