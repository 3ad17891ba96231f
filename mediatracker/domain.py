import os
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional


def normalize_path(path: str) -> str:
    """Returns the store key for a file path (separator and case normalized)."""
    return os.path.normcase(os.path.normpath(path))


class PlayerState(str, Enum):
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"


class MonitorStatus(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    STOPPING = "stopping"


@dataclass
class WatchRecord:
    """Durable per-file watch state."""
    file_path: str
    file_name: str = ""
    file_size: int = 0
    watch_count: int = 0
    last_position: float = 0.0  # Last known playback time in seconds
    total_duration: float = 0.0  # Last known media length in seconds
    watched_percentage: float = 0.0
    watched_date: datetime = field(default_factory=datetime.now)

    @classmethod
    def new(cls, file_path: str, file_name: Optional[str] = None, file_size: int = 0,
            now: Optional[datetime] = None) -> "WatchRecord":
        return cls(
            file_path=file_path,
            file_name=file_name if file_name is not None else os.path.basename(file_path),
            file_size=file_size,
            watched_date=now or datetime.now(),
        )

    @property
    def key(self) -> str:
        return normalize_path(self.file_path)

    def is_watched(self, threshold: float = 0.8) -> bool:
        return self.watched_percentage >= threshold * 100

    def copy(self, **changes) -> "WatchRecord":
        return replace(self, **changes)


@dataclass(frozen=True)
class Sample:
    """One normalized reading of the player's status endpoint."""
    state: PlayerState = PlayerState.STOPPED
    position: float = 0.0  # Playback position as a ratio in [0, 1]
    time: float = 0.0
    length: float = 0.0
    title: str = ""


@dataclass(frozen=True)
class ProgressUpdated:
    file_path: str
    position: float
    length: float
    percentage: int


@dataclass(frozen=True)
class Completed:
    file_path: str


@dataclass(frozen=True)
class SessionEnded:
    file_path: str
    reason: str = "stopped"


@dataclass
class AppState:
    """Browser location restored on the next start."""
    last_folder: str = ""
    last_path: str = ""
    last_updated: datetime = field(default_factory=datetime.now)


@dataclass
class MediaEntry:
    """A folder or video file as listed by the browser."""
    name: str
    path: str
    size: int = 0
    modified: Optional[datetime] = None
    extension: str = ""
    is_folder: bool = False
    title: str = ""
    record: Optional[WatchRecord] = None
    is_watched: bool = False

    @property
    def watched_percentage(self) -> float:
        return self.record.watched_percentage if self.record else 0.0
