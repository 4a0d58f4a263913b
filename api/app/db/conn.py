import sqlite3

from app.core import config


def db_path() -> str:
    return config.WW_DB_PATH


def get_conn() -> sqlite3.Connection:
    """Return a new SQLite connection with Row factory."""
    conn = sqlite3.connect(db_path())
    conn.row_factory = sqlite3.Row
    return conn
