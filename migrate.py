import json
import logging
import sqlite3
import sys

from db import ProfileRepository, ProgressRepository, UIStateRepository

# keys used by the browser build's local storage
LEGACY_KEYS = {
    'leanTimerProgress': ProgressRepository.KEY,
    'leanTimerResume': UIStateRepository.RESUME_KEY,
    'leanTimerCollapse': UIStateRepository.COLLAPSE_KEY,
    'leanTimerYT': UIStateRepository.MUSIC_KEY,
    'leanTimerProfile': ProfileRepository.KEY,
}

def migrate(db_path='timer.db'):
    conn = sqlite3.connect(db_path)
    cur = conn.cursor()
    cur.execute("PRAGMA table_info(kv_store);")
    if not cur.fetchall():
        cur.execute(
            "CREATE TABLE kv_store (key TEXT PRIMARY KEY, value TEXT NOT NULL);"
        )
    for old, new in LEGACY_KEYS.items():
        cur.execute("SELECT value FROM kv_store WHERE key = ?;", (old,))
        row = cur.fetchone()
        if row is None:
            continue
        cur.execute(
            "INSERT OR IGNORE INTO kv_store (key, value) VALUES (?, ?);", (new, row[0])
        )
        cur.execute("DELETE FROM kv_store WHERE key = ?;", (old,))
    conn.commit()
    conn.close()
    progress = ProgressRepository(db_path).load()
    ProfileRepository(db_path).load()
    return {"entries": len(progress), "version": ProgressRepository.SCHEMA_VERSION}

if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    path = sys.argv[1] if len(sys.argv) > 1 else 'timer.db'
    print(json.dumps(migrate(path)))
