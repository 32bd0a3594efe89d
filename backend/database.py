import sqlite3
import json
import logging
import os
from datetime import datetime
from typing import Any
from contextlib import contextmanager

logger = logging.getLogger(__name__)

DATABASE_PATH = os.getenv("CHECKLIST_DB_PATH", "checklist.db")

@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()

def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    env = dict(os.environ, CHECKLIST_DB_PATH=os.path.abspath(DATABASE_PATH))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        env=env,
        check=True
    )


def get_value(key: str, default: Any = None) -> Any:
    """
    Read a JSON value stored under key.
    Returns default when the key is absent or the stored text is not valid JSON.
    """
    with get_db() as conn:
        row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
    if row is None:
        return default
    try:
        return json.loads(row["value"])
    except json.JSONDecodeError:
        logger.warning("Stored value for %r is not valid JSON, using default", key)
        return default


def set_value(key: str, value: Any) -> None:
    """Store a JSON-serializable value under key, replacing any previous value."""
    now = datetime.now().isoformat()
    with get_db() as conn:
        conn.execute(
            """INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)
               ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = excluded.updated_at""",
            (key, json.dumps(value), now)
        )
        conn.commit()


def remove_value(key: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        conn.commit()
        return cursor.rowcount > 0
