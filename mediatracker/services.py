import logging
import os
from datetime import datetime
from typing import Dict, List, Optional, Tuple, Union

from mediatracker.domain import AppState, MediaEntry, Sample, WatchRecord, normalize_path
from mediatracker.errors import PollError
from mediatracker.interfaces import IPlayerLauncher, IRepository, LaunchResult
from mediatracker.monitor import MonitorController
from mediatracker.reconciler import COMPLETION_THRESHOLD
from mediatracker.utils import list_directory, split_breadcrumbs

logger = logging.getLogger(__name__)


class LibraryService:
    """
    Entry point for the presentation layer: browsing folders, playing files
    and reading or removing watch records. Progress itself is written only
    by the monitor.
    """

    def __init__(self, repository: IRepository, launcher: IPlayerLauncher,
                 monitor: MonitorController, completion_threshold: float = COMPLETION_THRESHOLD):
        self.repository = repository
        self.launcher = launcher
        self.monitor = monitor
        self.completion_threshold = completion_threshold

    def list_folder(self, path: str) -> List[MediaEntry]:
        """Lists a folder and attaches the stored watch record to each video."""
        entries = list_directory(path)
        records: Dict[str, WatchRecord] = {r.key: r for r in self.repository.list_all()}
        for entry in entries:
            if entry.is_folder:
                continue
            record = records.get(normalize_path(entry.path))
            if record is not None:
                entry.record = record
                entry.is_watched = record.is_watched(self.completion_threshold)
        return entries

    def mark_played(self, file_path: str, file_name: Optional[str] = None,
                    file_size: Optional[int] = None) -> WatchRecord:
        """
        Records that playback of a file was requested. Creates the record when
        missing; an existing record is returned as is. The watch count is left
        to the monitor, which counts each session once.
        """
        record = self.repository.get(file_path)
        if record is not None:
            return record

        if file_size is None:
            try:
                file_size = os.path.getsize(file_path)
            except OSError:
                file_size = 0
        record = WatchRecord.new(file_path, file_name=file_name, file_size=file_size)
        self.repository.upsert(record)
        logger.info("Tracking new video: %s", record.file_name)
        return record

    def play(self, file_path: str) -> LaunchResult:
        """
        Launches the player on a file and starts monitoring its progress.
        Once the player is up the monitor always starts; a StoreError from
        recording the play is raised after that.
        """
        result = self.launcher.launch(file_path)
        if not result.success:
            logger.error("Failed to open %s: %s", file_path, result.message)
            return result

        try:
            self.mark_played(file_path)
        finally:
            self.monitor.start(file_path)
        return result

    def stop_monitoring(self) -> None:
        self.monitor.stop()

    def get_live_status(self) -> Union[Sample, PollError]:
        return self.monitor.get_live_status()

    def get_progress(self, file_path: str) -> Optional[WatchRecord]:
        return self.repository.get(file_path)

    def get_watched_records(self) -> List[WatchRecord]:
        """Returns all records, most recently watched first."""
        return sorted(self.repository.list_all(), key=lambda r: r.watched_date, reverse=True)

    def remove_from_watched(self, file_path: str) -> None:
        active = self.monitor.active_session
        if active is not None and normalize_path(active.target_path) == normalize_path(file_path):
            self.monitor.stop()
        self.repository.remove(file_path)

    def open_folder(self, path: str) -> List[MediaEntry]:
        """
        Lists a folder and remembers it as the last visited location. The
        app state is only written when the location changes.
        """
        entries = self.list_folder(path)
        if self.repository.load_app_state().last_path != path:
            self.repository.save_app_state(AppState(last_folder=path, last_path=path, last_updated=datetime.now()))
        return entries

    def restore_last_folder(self) -> str:
        """Returns the last visited folder if it still exists, else an empty string."""
        state = self.repository.load_app_state()
        if state.last_path and os.path.isdir(state.last_path):
            return state.last_path
        return ""

    @staticmethod
    def breadcrumbs(path: str) -> List[Tuple[str, str]]:
        return split_breadcrumbs(path)
