import json
import logging
import sqlite3
import time
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from config import DEFAULT_DB_PATH, DEFAULT_SETTINGS_PATH, YamlConfig
from models import Progress, TimerSnapshot
from settings_schema import SETTING_KEYS, SettingsSchema, validate_settings

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class Database:
    """Provides SQLite connection management and schema initialization."""

    _TABLE_DEFINITIONS = {
        "kv_store": (
            """CREATE TABLE kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
        "settings": (
            """CREATE TABLE settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );""",
            ["key", "value"],
        ),
    }

    def __init__(self, db_path: str = DEFAULT_DB_PATH) -> None:
        self._db_path = db_path
        self._ensure_schema()
        self._init_settings()

    @contextmanager
    def _connection(self):
        connection = sqlite3.connect(self._db_path)
        try:
            yield connection
            connection.commit()
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        with self._connection() as conn:
            for table, (sql, columns) in self._TABLE_DEFINITIONS.items():
                self._ensure_table(conn, table, sql, columns)

    def _ensure_table(
        self, conn: sqlite3.Connection, table: str, sql: str, columns: List[str]
    ) -> None:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name=?;", (table,)
        )
        if cur.fetchone() is None:
            conn.execute(sql)
            return

        cur = conn.execute(f"PRAGMA table_info({table});")
        existing_cols = [row[1] for row in cur.fetchall()]
        if existing_cols == columns:
            return

        logger.warning("Rebuilding table %s with columns %s", table, columns)
        conn.execute(f"DROP TABLE IF EXISTS {table}_old;")
        conn.execute(f"ALTER TABLE {table} RENAME TO {table}_old;")
        conn.execute(sql)
        common = [c for c in existing_cols if c in columns]
        if common:
            cols = ", ".join(common)
            conn.execute(
                f"INSERT OR IGNORE INTO {table} ({cols}) SELECT {cols} FROM {table}_old;"
            )
        conn.execute(f"DROP TABLE {table}_old;")

    def _init_settings(self) -> None:
        defaults = {
            key: "1" if value else "0"
            for key, value in SettingsSchema().model_dump().items()
        }
        with self._connection() as conn:
            for key, value in defaults.items():
                conn.execute(
                    "INSERT OR IGNORE INTO settings (key, value) VALUES (?, ?);",
                    (key, value),
                )


class BaseRepository(Database):
    """Base repository providing helper methods."""

    def execute(self, query: str, params: Tuple = ()) -> int:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.lastrowid

    def fetch_all(self, query: str, params: Tuple = ()) -> List[Tuple]:
        with self._connection() as conn:
            cursor = conn.cursor()
            cursor.execute(query, params)
            return cursor.fetchall()

    def _delete_all(self, table: str) -> None:
        self.execute(f"DELETE FROM {table};")


class KeyValueRepository(BaseRepository):
    """String key/value storage shared by progress, profile and UI state."""

    def get(self, key: str) -> Optional[str]:
        rows = self.fetch_all("SELECT value FROM kv_store WHERE key = ?;", (key,))
        return rows[0][0] if rows else None

    def set(self, key: str, value: str) -> None:
        self.execute(
            "INSERT INTO kv_store (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
            (key, value),
        )

    def remove(self, key: str) -> None:
        self.execute("DELETE FROM kv_store WHERE key = ?;", (key,))

    def get_json(self, key: str) -> Any:
        """Return the decoded JSON value or ``None`` when absent.

        Raises ``ValueError`` when the stored text is not valid JSON.
        """
        raw = self.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))


def _drop_malformed(data: Progress) -> Progress:
    kept: Progress = {}
    for uid, item in data.items():
        if not isinstance(item, dict):
            logger.warning("Dropping malformed progress entry for %s", uid)
            continue
        kept[uid] = item
    return kept


def _clear_snapshots(data: Progress) -> Progress:
    migrated: Progress = {}
    for uid, item in _drop_malformed(data).items():
        item = dict(item)
        if item.get("inProgress") or "snap" in item:
            logger.warning("Clearing legacy in-progress snapshot for %s", uid)
            item["inProgress"] = False
            item.pop("snap", None)
        migrated[uid] = item
    return migrated


class ProgressRepository(KeyValueRepository):
    """Versioned progress map keyed by workout id."""

    KEY = "lean_timer.progress"
    SCHEMA_VERSION = 1
    RESUME_KEY = "lean_timer.resume"

    # version -> function upgrading data from that version to the next
    MIGRATIONS: Dict[int, Callable[[Progress], Progress]] = {
        0: _clear_snapshots,
    }

    def _corrupt(self, reason: str) -> Progress:
        logger.error("Progress data corrupt (%s); wiping stored progress", reason)
        self.remove(self.KEY)
        return {}

    def load(self) -> Progress:
        raw = self.get(self.KEY)
        if raw is None:
            return {}
        try:
            blob = json.loads(raw)
        except ValueError as e:
            return self._corrupt(str(e))
        if not isinstance(blob, dict):
            return self._corrupt("expected an object")

        if "version" in blob and "data" in blob:
            version = blob["version"]
            data = blob["data"]
            if not isinstance(version, int) or isinstance(version, bool) or version < 0:
                return self._corrupt(f"bad version {version!r}")
            if version > self.SCHEMA_VERSION:
                return self._corrupt(f"unknown version {version}")
            if not isinstance(data, dict):
                return self._corrupt("envelope data is not an object")
        else:
            version = 0
            data = blob

        if version == self.SCHEMA_VERSION:
            kept = _drop_malformed(data)
            if len(kept) != len(data):
                self.save(kept)
            return kept

        while version < self.SCHEMA_VERSION:
            logger.warning(
                "Migrating progress from version %s to %s", version, version + 1
            )
            data = self.MIGRATIONS[version](data)
            version += 1
        self.save(data)
        return data

    def save(self, progress: Progress) -> None:
        self.set_json(self.KEY, {"version": self.SCHEMA_VERSION, "data": progress})

    def mark_done(self, uid: str) -> Progress:
        progress = self.load()
        item = dict(progress.get(uid) or {})
        item.update({"done": True, "inProgress": False, "ts": _now_ms()})
        item.pop("snap", None)
        progress[uid] = item
        self.save(progress)
        return progress

    def mark_in_progress(self, uid: str, snap: TimerSnapshot | dict) -> Progress:
        if isinstance(snap, TimerSnapshot):
            snap = snap.to_dict()
        progress = self.load()
        item = dict(progress.get(uid) or {})
        item.update({"done": False, "inProgress": True, "snap": snap, "ts": _now_ms()})
        progress[uid] = item
        self.save(progress)
        return progress

    def clear_in_progress(self, uid: str) -> Progress:
        progress = self.load()
        if uid in progress:
            item = dict(progress[uid])
            item["inProgress"] = False
            item.pop("snap", None)
            progress[uid] = item
            self.save(progress)
        return progress

    def save_reps(self, uid: str, reps: List[int]) -> Progress:
        progress = self.load()
        if uid in progress:
            item = dict(progress[uid])
            item["reps"] = list(reps)
            item["ts"] = _now_ms()
            progress[uid] = item
            self.save(progress)
        return progress

    def toggle_done(self, uid: str) -> Progress:
        progress = self.load()
        item = dict(progress.get(uid) or {})
        done = not item.get("done", False)
        item.update({"done": done, "inProgress": False, "ts": _now_ms()})
        item.pop("snap", None)
        if not done:
            item.pop("reps", None)
        progress[uid] = item
        self.save(progress)
        return progress

    def mark_many_done(self, uids: Iterable[str]) -> Progress:
        progress = self.load()
        now = _now_ms()
        for uid in uids:
            progress[uid] = {"done": True, "inProgress": False, "ts": now}
        self.save(progress)
        return progress

    def remove_many(self, uids: Iterable[str]) -> Progress:
        progress = self.load()
        for uid in uids:
            progress.pop(uid, None)
        self.save(progress)
        return progress

    def reset_all(self) -> None:
        self.remove(self.KEY)
        self.remove(self.RESUME_KEY)


class ProfileRepository(KeyValueRepository):
    """User profile stored in a versioned envelope."""

    KEY = "lean_timer.profile"
    SCHEMA_VERSION = 1

    def load(self) -> Optional[dict]:
        try:
            blob = self.get_json(self.KEY)
        except ValueError:
            logger.error("Profile data unreadable; ignoring")
            return None
        if blob is None:
            return None
        if isinstance(blob, dict) and "version" in blob and "data" in blob:
            return blob["data"]
        # legacy profiles were stored without an envelope
        logger.warning("Re-saving legacy profile data in a versioned envelope")
        self.save(blob)
        return blob

    def save(self, profile: dict) -> None:
        self.set_json(self.KEY, {"version": self.SCHEMA_VERSION, "data": profile})

    def clear(self) -> None:
        self.remove(self.KEY)


class UIStateRepository(KeyValueRepository):
    """Collapse state, music selection and the stand-alone resume snapshot."""

    COLLAPSE_KEY = "lean_timer.history_collapse"
    MUSIC_KEY = "lean_timer.music_video_id"
    RESUME_KEY = ProgressRepository.RESUME_KEY

    def load_collapse_state(self) -> Dict[str, bool]:
        try:
            data = self.get_json(self.COLLAPSE_KEY)
        except ValueError:
            logger.warning("Collapse state unreadable; using defaults")
            return {}
        return data if isinstance(data, dict) else {}

    def save_collapse_state(self, state: Dict[str, bool]) -> None:
        self.set_json(self.COLLAPSE_KEY, state)

    def get_music_id(self) -> Optional[str]:
        return self.get(self.MUSIC_KEY)

    def set_music_id(self, video_id: str) -> None:
        self.set(self.MUSIC_KEY, video_id)

    def clear_music_id(self) -> None:
        self.remove(self.MUSIC_KEY)

    def store_resume(self, snap: TimerSnapshot | dict) -> None:
        if isinstance(snap, TimerSnapshot):
            snap = snap.to_dict()
        self.set_json(self.RESUME_KEY, {"version": 1, "data": snap})

    def load_resume(self) -> Optional[dict]:
        try:
            blob = self.get_json(self.RESUME_KEY)
        except ValueError:
            logger.error("Resume snapshot unreadable; discarding")
            self.clear_resume()
            return None
        if not isinstance(blob, dict):
            return None
        data = blob.get("data")
        return data if isinstance(data, dict) else None

    def clear_resume(self) -> None:
        self.remove(self.RESUME_KEY)


class SettingsRepository(BaseRepository):
    """Repository for timer settings synchronized with YAML."""

    def __init__(
        self, db_path: str = DEFAULT_DB_PATH, yaml_path: str = DEFAULT_SETTINGS_PATH
    ) -> None:
        super().__init__(db_path)
        self._yaml = YamlConfig(yaml_path)
        self._sync_from_yaml()
        self._sync_to_yaml()

    def _raw_all_settings(self) -> dict:
        rows = self.fetch_all("SELECT key, value FROM settings ORDER BY key;")
        result: dict[str, bool | str] = {}
        for k, v in rows:
            if k in SETTING_KEYS:
                result[k] = v in {"1", "1.0", "true", "True"}
            else:
                result[k] = v
        return result

    def _sync_from_yaml(self) -> None:
        data = self._yaml.load()
        if not data:
            return
        try:
            validate_settings(data)
        except ValueError as e:
            logger.error("Ignoring invalid settings file: %s", e)
            return
        with self._connection() as conn:
            for key, value in data.items():
                val = str(value)
                if key in SETTING_KEYS:
                    val = "1" if val in {"1", "1.0", "true", "True"} else "0"
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, val),
                )

    def _sync_to_yaml(self) -> None:
        self._yaml.save(self._raw_all_settings())

    def all_settings(self) -> dict:
        self._sync_from_yaml()
        return self._raw_all_settings()

    def load_settings(self) -> SettingsSchema:
        data = self.all_settings()
        return SettingsSchema(**{k: v for k, v in data.items() if k in SETTING_KEYS})

    def save_settings(self, settings: SettingsSchema) -> None:
        with self._connection() as conn:
            for key, value in settings.model_dump().items():
                conn.execute(
                    "INSERT INTO settings (key, value) VALUES (?, ?) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value;",
                    (key, "1" if value else "0"),
                )
        self._sync_to_yaml()

    def reset(self) -> None:
        self._delete_all("settings")
        self._init_settings()
        self._sync_to_yaml()
