from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from mediatracker.domain import AppState, Sample, WatchRecord


@dataclass
class LaunchResult:
    success: bool
    message: str = ""


class IStatusClient(ABC):
    """Abstract Base Class for clients of a media player's live status."""

    @abstractmethod
    def poll(self) -> Sample:
        """
        Queries the player's status once.

        Returns:
            Sample: The normalized playback status.

        Raises:
            PollError: If the player is unreachable or its answer is malformed.
        """
        pass


class IPlayerLauncher(ABC):
    """Abstract Base Class for starting an external media player."""

    @abstractmethod
    def launch(self, path: str) -> LaunchResult:
        """
        Starts the player on the given file with its status endpoint enabled.

        Args:
            path (str): The path to the media file.
        """
        pass


class IRepository(ABC):
    """Abstract Base Class for the watch-state store."""

    @abstractmethod
    def get(self, file_path: str) -> Optional[WatchRecord]:
        """
        Returns the record stored for a file path, or None.

        Args:
            file_path (str): Any spelling of the path; it is normalized before lookup.
        """
        pass

    @abstractmethod
    def upsert(self, record: WatchRecord) -> None:
        """
        Inserts or replaces the record for its file path (last write wins).

        Raises:
            StoreWriteFailure: If the record could not be written.
        """
        pass

    @abstractmethod
    def list_all(self) -> List[WatchRecord]:
        """Returns every stored record."""
        pass

    @abstractmethod
    def remove(self, file_path: str) -> None:
        """Deletes the record for a file path. Missing paths are ignored."""
        pass

    @abstractmethod
    def load_app_state(self) -> AppState:
        """Returns the saved browser location, or an empty AppState."""
        pass

    @abstractmethod
    def save_app_state(self, state: AppState) -> None:
        """Persists the browser location."""
        pass

    def close(self) -> None:
        """Releases any held resources."""
        pass
