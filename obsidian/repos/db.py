"""Database initialization and connection management.

Runs migrations on first boot, provides connection factory.
"""

import pathlib
import sqlite3


_MIGRATION_DIR = pathlib.Path(__file__).resolve().parent.parent.parent / "db" / "migrations"


def init_db(db_path: str) -> None:
    """Initialize the database by running the schema migration.

    Creates the parent directory of a file-backed database if needed.

    Args:
        db_path: Path to the SQLite database file (or ``":memory:"``).
    """
    if db_path != ":memory:":
        pathlib.Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path)
    try:
        cur = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='kv_state'"
        )
        if cur.fetchone() is None:
            migration_file = _MIGRATION_DIR / "001_initial_schema.sql"
            sql = migration_file.read_text(encoding="utf-8")
            conn.executescript(sql)
    finally:
        conn.close()


def get_connection(db_path: str) -> sqlite3.Connection:
    """Return a new SQLite connection with row-factory enabled.

    Callers are responsible for closing the connection.
    """
    conn = sqlite3.connect(db_path)
    conn.row_factory = sqlite3.Row
    return conn
