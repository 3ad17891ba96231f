from typing import Any, Dict

from mediatracker.drivers.vlc_driver import VlcDriver, VlcStatusClient


def build_launcher(app_settings: Dict[str, Any]) -> VlcDriver:
    """Creates the player launcher described by the application settings."""
    return VlcDriver(
        player_executable_path=app_settings.get("player_executable", "vlc"),
        http_port=int(app_settings.get("http_port", 8080)),
        http_password=app_settings.get("http_password", "mediatracker"),
    )


def build_status_client(app_settings: Dict[str, Any]) -> VlcStatusClient:
    """Creates a status client pointed at the launcher's HTTP interface."""
    return VlcStatusClient(
        host=app_settings.get("http_host", "localhost"),
        port=int(app_settings.get("http_port", 8080)),
        password=app_settings.get("http_password", "mediatracker"),
        timeout=float(app_settings.get("status_timeout", 1.0)),
    )


__all__ = ["VlcDriver", "VlcStatusClient", "build_launcher", "build_status_client"]
