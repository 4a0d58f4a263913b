import logging
import os
from pathlib import Path

from app.db.conn import db_path, get_conn

logger = logging.getLogger("wellwell.migrate")

_SCHEMA_FILE = Path(__file__).parent / "schema.sql"


def run_migration() -> None:
    """Create / open the SQLite DB and apply the idempotent schema."""
    directory = os.path.dirname(db_path())
    if directory:
        os.makedirs(directory, exist_ok=True)

    conn = get_conn()
    try:
        conn.executescript(_SCHEMA_FILE.read_text())
        conn.commit()
        logger.info("Migration complete (%s)", db_path())
    finally:
        conn.close()
