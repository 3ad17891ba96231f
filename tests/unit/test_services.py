"""Tests for services.py: browsing, the played signal and monitor wiring."""

from __future__ import annotations

import os
from datetime import datetime
from unittest.mock import patch

import pytest

from mediatracker.domain import MonitorStatus, WatchRecord
from mediatracker.errors import StoreWriteFailure
from mediatracker.monitor import MonitorController
from mediatracker.services import LibraryService
from tests.conftest import FailingStore, FakeLauncher, ScriptedStatusClient, playing


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def service(repo, launcher, controller) -> LibraryService:
    return LibraryService(repo, launcher, controller)


@pytest.fixture
def library(tmp_path):
    folder = tmp_path / "Shows"
    folder.mkdir()
    (folder / "Season 2").mkdir()
    (folder / "b-episode.mkv").write_bytes(b"x" * 2048)
    (folder / "A-episode.MP4").write_bytes(b"x" * 10)
    (folder / "notes.txt").write_text("not a video")
    return folder


class TestBrowsing:
    def test_list_folder_orders_and_filters(self, service, library):
        entries = service.list_folder(str(library))
        assert [e.name for e in entries] == ["Season 2", "A-episode.MP4", "b-episode.mkv"]
        assert entries[0].is_folder
        assert entries[1].extension == ".mp4"
        assert entries[2].size == 2048

    def test_list_folder_attaches_watch_records(self, service, repo, library):
        video = str(library / "b-episode.mkv")
        repo.upsert(WatchRecord.new(video).copy(watched_percentage=85.0, watch_count=1))
        entries = {e.name: e for e in service.list_folder(str(library))}
        assert entries["b-episode.mkv"].is_watched is True
        assert entries["b-episode.mkv"].watched_percentage == 85.0
        assert entries["A-episode.MP4"].record is None
        assert entries["A-episode.MP4"].is_watched is False

    def test_watched_boundary_is_inclusive(self, service, repo, library):
        video = str(library / "b-episode.mkv")
        repo.upsert(WatchRecord.new(video).copy(watched_percentage=80.0))
        entries = {e.name: e for e in service.list_folder(str(library))}
        assert entries["b-episode.mkv"].is_watched is True

    def test_missing_folder_lists_nothing(self, service, tmp_path):
        assert service.list_folder(str(tmp_path / "gone")) == []

    def test_open_folder_remembers_location(self, service, repo, library):
        service.open_folder(str(library))
        assert repo.load_app_state().last_path == str(library)
        assert service.restore_last_folder() == str(library)

    def test_reopening_same_folder_does_not_rewrite_state(self, service, repo, library):
        with patch.object(repo, "save_app_state", wraps=repo.save_app_state) as save:
            service.open_folder(str(library))
            service.open_folder(str(library))
            service.open_folder(str(library))
            assert save.call_count == 1
            service.open_folder(str(library / "Season 2"))
            assert save.call_count == 2

    def test_restore_ignores_deleted_folder(self, service, library):
        service.open_folder(str(library / "Season 2"))
        os.rmdir(library / "Season 2")
        assert service.restore_last_folder() == ""

    def test_breadcrumbs_end_at_folder(self, service, library):
        crumbs = service.breadcrumbs(str(library))
        assert crumbs[-1] == ("Shows", str(library))
        assert crumbs[0][1] == os.path.dirname(crumbs[0][1])


class TestPlayback:
    def test_play_creates_record_and_starts_monitor(self, service, repo, launcher, controller, library):
        video = str(library / "b-episode.mkv")
        result = service.play(video)

        assert result.success
        assert launcher.launched == [video]
        record = repo.get(video)
        assert record.watch_count == 0
        assert record.file_name == "b-episode.mkv"
        assert record.file_size == 2048
        assert controller.active_session.target_path == video

    def test_failed_launch_changes_nothing(self, repo, controller, library):
        service = LibraryService(repo, FakeLauncher(success=False, message="no vlc"), controller)
        result = service.play(str(library / "b-episode.mkv"))
        assert not result.success
        assert repo.list_all() == []
        assert controller.status == MonitorStatus.IDLE

    def test_store_failure_still_starts_monitor(self, repo, timers, library):
        video = str(library / "b-episode.mkv")
        store = FailingStore(repo)
        controller = MonitorController(ScriptedStatusClient(playing(0.5, 50, 100)), store, timer_factory=timers)
        service = LibraryService(store, FakeLauncher(), controller)

        with pytest.raises(StoreWriteFailure):
            service.play(video)

        assert controller.status == MonitorStatus.ACTIVE
        assert controller.active_session.target_path == video
        timers.tick()
        assert controller.active_session.record.watch_count == 1
        assert store.attempts == 2

    def test_mark_played_keeps_existing_record(self, service, repo):
        existing = WatchRecord.new("/videos/a.mkv", file_size=10).copy(watch_count=3, watched_percentage=50.0)
        repo.upsert(existing)
        assert service.mark_played("/videos/a.mkv", "renamed.mkv", 999) == existing
        assert repo.get("/videos/a.mkv").file_name == "a.mkv"

    def test_one_count_per_play(self, service, repo, status_client, timers, library):
        video = str(library / "b-episode.mkv")
        status_client.items = [playing(0.5, 50, 100), playing(0.9, 90, 100)]

        service.play(video)
        timers.tick(5)
        assert repo.get(video).watch_count == 1

        status_client.items = [playing(0.95, 95, 100)]
        service.play(video)
        timers.tick(5)
        assert repo.get(video).watch_count == 2

    def test_stop_monitoring(self, service, controller, library):
        service.play(str(library / "b-episode.mkv"))
        service.stop_monitoring()
        service.stop_monitoring()
        assert controller.status == MonitorStatus.IDLE

    def test_remove_from_watched_stops_active_session(self, service, repo, controller, library):
        video = str(library / "b-episode.mkv")
        service.play(video)
        service.remove_from_watched(video)
        assert repo.get(video) is None
        assert controller.status == MonitorStatus.IDLE

    def test_remove_other_file_keeps_session(self, service, repo, controller, library):
        service.play(str(library / "b-episode.mkv"))
        repo.upsert(WatchRecord.new("/videos/other.mkv"))
        service.remove_from_watched("/videos/other.mkv")
        assert controller.status == MonitorStatus.ACTIVE

    def test_watched_records_most_recent_first(self, service, repo):
        repo.upsert(WatchRecord.new("/videos/old.mkv", now=datetime(2026, 1, 1)))
        repo.upsert(WatchRecord.new("/videos/new.mkv", now=datetime(2026, 6, 1)))
        assert [r.file_name for r in service.get_watched_records()] == ["new.mkv", "old.mkv"]

    def test_get_progress(self, service, repo):
        repo.upsert(WatchRecord.new("/videos/a.mkv").copy(last_position=42.0))
        assert service.get_progress("/videos/a.mkv").last_position == 42.0
        assert service.get_progress("/videos/missing.mkv") is None
