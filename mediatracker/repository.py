import json
import logging
import sqlite3
import threading
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from mediatracker.domain import AppState, WatchRecord, normalize_path
from mediatracker.errors import StoreReadFailure, StoreWriteFailure
from mediatracker.interfaces import IRepository

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS watched_videos (
    path_key TEXT PRIMARY KEY,
    file_path TEXT NOT NULL,
    file_name TEXT,
    file_size INTEGER DEFAULT 0,
    watched_date TEXT,
    watch_count INTEGER DEFAULT 0,
    last_position REAL DEFAULT 0,
    total_duration REAL DEFAULT 0,
    watched_percentage REAL DEFAULT 0
);
CREATE TABLE IF NOT EXISTS app_state (
    id INTEGER PRIMARY KEY CHECK (id = 1),
    last_folder TEXT DEFAULT '',
    last_path TEXT DEFAULT '',
    last_updated TEXT
);
"""

_RECORD_COLUMNS = (
    "file_path, file_name, file_size, watched_date, watch_count, "
    "last_position, total_duration, watched_percentage"
)
_INSERT_RECORD = f"INTO watched_videos (path_key, {_RECORD_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)"


def _record_values(record: WatchRecord) -> tuple:
    return (
        record.key,
        record.file_path,
        record.file_name,
        record.file_size,
        record.watched_date.isoformat(),
        record.watch_count,
        record.last_position,
        record.total_duration,
        record.watched_percentage,
    )


def _parse_date(value: Optional[str]) -> datetime:
    if not value:
        return datetime.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return datetime.now()


def _to_float(value) -> float:
    try:
        return float(value)
    except (ValueError, TypeError):
        return 0.0


class JSONEncoder(json.JSONEncoder):
    """Custom JSON encoder to handle datetime objects."""
    def default(self, obj):
        if isinstance(obj, datetime):
            return obj.isoformat()
        return super().default(obj)


class SqliteRepository(IRepository):
    """
    Watch-state store backed by a local SQLite file.
    A single connection is shared between the UI thread and the monitor's
    timer thread, so every statement runs under a lock.
    """

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path).expanduser()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._migrate_legacy_table()
        self._conn.executescript(_SCHEMA)
        self._import_legacy_rows()
        logger.info("Connected to SQLite database at %s", self.db_path)

    def _migrate_legacy_table(self) -> None:
        """Moves a watched_videos table without path keys out of the way."""
        columns = [row["name"] for row in self._conn.execute("PRAGMA table_info(watched_videos)")]
        if columns and "path_key" not in columns:
            self._conn.execute("ALTER TABLE watched_videos RENAME TO watched_videos_legacy")
            self._conn.commit()
            logger.info("Renamed legacy watched_videos table for migration")

    def _import_legacy_rows(self) -> None:
        legacy = self._conn.execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = 'watched_videos_legacy'"
        ).fetchone()
        if legacy is None:
            return

        rows = self._conn.execute(f"SELECT {_RECORD_COLUMNS} FROM watched_videos_legacy").fetchall()
        for row in rows:
            self._conn.execute(f"INSERT OR IGNORE {_INSERT_RECORD}", _record_values(self._row_to_record(row)))
        self._conn.execute("DROP TABLE watched_videos_legacy")
        self._conn.commit()
        logger.info("Imported %d legacy watch records", len(rows))

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> WatchRecord:
        return WatchRecord(
            file_path=row["file_path"],
            file_name=row["file_name"] or "",
            file_size=int(row["file_size"] or 0),
            watch_count=int(row["watch_count"] or 0),
            last_position=_to_float(row["last_position"]),
            total_duration=_to_float(row["total_duration"]),
            watched_percentage=_to_float(row["watched_percentage"]),
            watched_date=_parse_date(row["watched_date"]),
        )

    def get(self, file_path: str) -> Optional[WatchRecord]:
        try:
            with self._lock:
                row = self._conn.execute(
                    f"SELECT {_RECORD_COLUMNS} FROM watched_videos WHERE path_key = ?",
                    (normalize_path(file_path),),
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Could not read record for {file_path}: {e}") from e
        return self._row_to_record(row) if row else None

    def upsert(self, record: WatchRecord) -> None:
        try:
            with self._lock:
                self._conn.execute(f"INSERT OR REPLACE {_INSERT_RECORD}", _record_values(record))
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreWriteFailure(f"Could not write record for {record.file_path}: {e}") from e

    def list_all(self) -> List[WatchRecord]:
        try:
            with self._lock:
                rows = self._conn.execute(
                    f"SELECT {_RECORD_COLUMNS} FROM watched_videos"
                ).fetchall()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Could not list records: {e}") from e
        return [self._row_to_record(row) for row in rows]

    def remove(self, file_path: str) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    "DELETE FROM watched_videos WHERE path_key = ?", (normalize_path(file_path),)
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreWriteFailure(f"Could not remove record for {file_path}: {e}") from e
        logger.info("Removed watch record for %s", file_path)

    def load_app_state(self) -> AppState:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT last_folder, last_path, last_updated FROM app_state WHERE id = 1"
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreReadFailure(f"Could not read app state: {e}") from e
        if row is None:
            return AppState()
        return AppState(
            last_folder=row["last_folder"] or "",
            last_path=row["last_path"] or "",
            last_updated=_parse_date(row["last_updated"]),
        )

    def save_app_state(self, state: AppState) -> None:
        try:
            with self._lock:
                self._conn.execute(
                    """INSERT OR REPLACE INTO app_state (id, last_folder, last_path, last_updated)
                       VALUES (1, ?, ?, ?)""",
                    (state.last_folder, state.last_path, state.last_updated.isoformat()),
                )
                self._conn.commit()
        except sqlite3.Error as e:
            raise StoreWriteFailure(f"Could not save app state: {e}") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()
        logger.info("Database connection closed")


class JsonRepository(IRepository):
    """
    Concrete implementation of IRepository that saves and loads watch records
    to a local JSON file. The whole file is rewritten on every change.
    """
    def __init__(self, storage_file: Path):
        self.storage_file = Path(storage_file).expanduser()
        self._lock = threading.Lock()
        self.app_state = AppState()
        self.records: Dict[str, WatchRecord] = self._load_from_file()

    def _load_from_file(self) -> Dict[str, WatchRecord]:
        """Loads records from the JSON file."""
        if not self.storage_file.exists():
            return {}

        try:
            with open(self.storage_file, 'r', encoding='utf-8') as f:
                raw_data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreReadFailure(f"Could not load {self.storage_file}: {e}") from e

        state = raw_data.get('app_state') or {}
        self.app_state = AppState(
            last_folder=state.get('last_folder', ''),
            last_path=state.get('last_path', ''),
            last_updated=_parse_date(state.get('last_updated')),
        )

        loaded_records = {}
        for data in raw_data.get('records', {}).values():
            record = WatchRecord(
                file_path=data['file_path'],
                file_name=data.get('file_name', ''),
                file_size=int(data.get('file_size') or 0),
                watch_count=int(data.get('watch_count') or 0),
                last_position=_to_float(data.get('last_position')),
                total_duration=_to_float(data.get('total_duration')),
                watched_percentage=_to_float(data.get('watched_percentage')),
                watched_date=_parse_date(data.get('watched_date')),
            )
            loaded_records[record.key] = record
        return loaded_records

    def _save_to_file(self) -> None:
        """Saves current records to the JSON file."""
        serializable_data = {
            "app_state": self.app_state.__dict__,
            "records": {key: record.__dict__ for key, record in self.records.items()},
        }
        try:
            self.storage_file.parent.mkdir(parents=True, exist_ok=True)
            with open(self.storage_file, 'w', encoding='utf-8') as f:
                json.dump(serializable_data, f, indent=4, cls=JSONEncoder)
        except OSError as e:
            raise StoreWriteFailure(f"Could not write {self.storage_file}: {e}") from e

    def get(self, file_path: str) -> Optional[WatchRecord]:
        with self._lock:
            record = self.records.get(normalize_path(file_path))
            return record.copy() if record else None

    def upsert(self, record: WatchRecord) -> None:
        with self._lock:
            previous = self.records.get(record.key)
            self.records[record.key] = record.copy()
            try:
                self._save_to_file()
            except StoreWriteFailure:
                if previous is None:
                    del self.records[record.key]
                else:
                    self.records[record.key] = previous
                raise

    def list_all(self) -> List[WatchRecord]:
        with self._lock:
            return [record.copy() for record in self.records.values()]

    def remove(self, file_path: str) -> None:
        with self._lock:
            key = normalize_path(file_path)
            previous = self.records.pop(key, None)
            if previous is None:
                return
            try:
                self._save_to_file()
            except StoreWriteFailure:
                self.records[key] = previous
                raise
        logger.info("Removed watch record for %s", file_path)

    def load_app_state(self) -> AppState:
        with self._lock:
            return AppState(**self.app_state.__dict__)

    def save_app_state(self, state: AppState) -> None:
        with self._lock:
            previous = self.app_state
            self.app_state = AppState(**state.__dict__)
            try:
                self._save_to_file()
            except StoreWriteFailure:
                self.app_state = previous
                raise


def create_repository(backend: str, path: Path) -> IRepository:
    """Builds the store selected by the `store_backend` setting."""
    if backend == "json":
        return JsonRepository(path)
    if backend != "sqlite":
        logger.warning("Unknown store backend '%s'. Falling back to sqlite.", backend)
    return SqliteRepository(path)
