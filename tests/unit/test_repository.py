"""Tests for repository.py: both store backends against the same contract."""

from __future__ import annotations

import sqlite3
from datetime import datetime

import pytest

from mediatracker.domain import AppState, WatchRecord
from mediatracker.errors import StoreWriteFailure
from mediatracker.repository import JsonRepository, SqliteRepository, create_repository

WATCHED_AT = datetime(2026, 10, 1, 21, 0)


@pytest.fixture(params=["sqlite", "json"])
def backend(request, tmp_path):
    path = tmp_path / ("app.db" if request.param == "sqlite" else "records.json")
    repository = create_repository(request.param, path)
    yield repository, path, request.param
    repository.close()


def sample_record(path="/videos/show/e01.mkv", **changes) -> WatchRecord:
    record = WatchRecord(
        file_path=path,
        file_name="e01.mkv",
        file_size=734003200,
        watch_count=2,
        last_position=1250.5,
        total_duration=2700.0,
        watched_percentage=46.0,
        watched_date=WATCHED_AT,
    )
    return record.copy(**changes)


class TestStoreContract:
    def test_get_missing(self, backend):
        repository, _, _ = backend
        assert repository.get("/videos/none.mkv") is None

    def test_upsert_then_get(self, backend):
        repository, _, _ = backend
        repository.upsert(sample_record())
        assert repository.get("/videos/show/e01.mkv") == sample_record()

    def test_upsert_replaces(self, backend):
        repository, _, _ = backend
        repository.upsert(sample_record())
        repository.upsert(sample_record(watch_count=3, watched_percentage=90.0))
        stored = repository.get("/videos/show/e01.mkv")
        assert stored.watch_count == 3
        assert stored.watched_percentage == 90.0
        assert len(repository.list_all()) == 1

    def test_lookup_uses_normalized_path(self, backend):
        repository, _, _ = backend
        repository.upsert(sample_record())
        assert repository.get("/videos/show/../show/./e01.mkv") is not None

    def test_list_all(self, backend):
        repository, _, _ = backend
        repository.upsert(sample_record())
        repository.upsert(sample_record("/videos/show/e02.mkv", file_name="e02.mkv"))
        assert sorted(r.file_name for r in repository.list_all()) == ["e01.mkv", "e02.mkv"]

    def test_remove(self, backend):
        repository, _, _ = backend
        repository.upsert(sample_record())
        repository.remove("/videos/show/e01.mkv")
        assert repository.get("/videos/show/e01.mkv") is None
        repository.remove("/videos/show/e01.mkv")

    def test_returned_records_are_copies(self, backend):
        repository, _, _ = backend
        repository.upsert(sample_record())
        repository.get("/videos/show/e01.mkv").watch_count = 99
        assert repository.get("/videos/show/e01.mkv").watch_count == 2

    def test_app_state_defaults_to_empty(self, backend):
        repository, _, _ = backend
        state = repository.load_app_state()
        assert (state.last_folder, state.last_path) == ("", "")

    def test_app_state_is_saved(self, backend):
        repository, _, _ = backend
        repository.save_app_state(AppState(last_folder="/videos", last_path="/videos/show", last_updated=WATCHED_AT))
        state = repository.load_app_state()
        assert state.last_path == "/videos/show"
        assert state.last_updated == WATCHED_AT

    def test_data_survives_reopen(self, backend):
        repository, path, name = backend
        repository.upsert(sample_record())
        repository.save_app_state(AppState(last_folder="/videos", last_path="/videos"))
        reopened = create_repository(name, path)
        try:
            assert reopened.get("/videos/show/e01.mkv") == sample_record()
            assert reopened.load_app_state().last_path == "/videos"
        finally:
            reopened.close()


class TestWriteFailures:
    def test_sqlite_closed_connection(self, tmp_path):
        repository = SqliteRepository(tmp_path / "app.db")
        repository.close()
        with pytest.raises(StoreWriteFailure):
            repository.upsert(sample_record())

    def test_json_unwritable_target(self, tmp_path):
        target = tmp_path / "records.json"
        repository = JsonRepository(target)
        target.mkdir()
        with pytest.raises(StoreWriteFailure):
            repository.upsert(sample_record())

    def test_json_failed_write_leaves_memory_unchanged(self, tmp_path):
        target = tmp_path / "records.json"
        repository = JsonRepository(target)
        repository.upsert(sample_record())
        target.unlink()
        target.mkdir()

        with pytest.raises(StoreWriteFailure):
            repository.upsert(sample_record(watch_count=9))
        with pytest.raises(StoreWriteFailure):
            repository.upsert(sample_record("/videos/show/e02.mkv"))
        with pytest.raises(StoreWriteFailure):
            repository.remove("/videos/show/e01.mkv")
        with pytest.raises(StoreWriteFailure):
            repository.save_app_state(AppState(last_folder="/videos", last_path="/videos"))

        assert repository.get("/videos/show/e01.mkv") == sample_record()
        assert repository.get("/videos/show/e02.mkv") is None
        assert repository.load_app_state().last_path == ""


def test_unknown_backend_falls_back_to_sqlite(tmp_path):
    repository = create_repository("postgres", tmp_path / "app.db")
    try:
        assert isinstance(repository, SqliteRepository)
    finally:
        repository.close()


def test_legacy_table_is_migrated(tmp_path):
    db_path = tmp_path / "app.db"
    conn = sqlite3.connect(str(db_path))
    conn.executescript("""
        CREATE TABLE watched_videos (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            file_path TEXT UNIQUE,
            file_name TEXT,
            file_size INTEGER,
            watched_date DATETIME DEFAULT CURRENT_TIMESTAMP,
            watch_count INTEGER DEFAULT 1,
            last_position REAL DEFAULT 0,
            total_duration INTEGER DEFAULT 0,
            watched_percentage REAL DEFAULT 0
        );
        INSERT INTO watched_videos (file_path, file_name, file_size, watched_date, last_position,
                                    total_duration, watched_percentage)
        VALUES ('/videos/old.mkv', 'old.mkv', 100, '2025-03-04 10:20:30', 600, 1200, 50);
    """)
    conn.commit()
    conn.close()

    repository = SqliteRepository(db_path)
    try:
        record = repository.get("/videos/old.mkv")
        assert record.watch_count == 1
        assert record.total_duration == 1200.0
        assert record.watched_date == datetime(2025, 3, 4, 10, 20, 30)
        assert len(repository.list_all()) == 1
    finally:
        repository.close()
