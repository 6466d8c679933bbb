"""Database initialization for Inkwell's on-device store."""

import logging
import sqlite3
from pathlib import Path
from typing import Optional

from .defaults import data_dir

logger = logging.getLogger(__name__)


def default_db_path() -> Path:
    """$XDG_DATA_HOME/inkwell/inkwell.db (or ~/.local/share/inkwell/inkwell.db)."""
    return data_dir() / "inkwell.db"


def init_db(db_path: Optional[Path] = None) -> Path:
    """Initialize the key-value database with schema.

    Args:
        db_path: Optional custom database path for testing.
                 Defaults to $XDG_DATA_HOME/inkwell/inkwell.db

    Returns:
        Path to the created/verified database

    Raises:
        sqlite3.Error: If database creation fails
    """
    if db_path is None:
        db_path = default_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    schema_file = Path(__file__).parent / "schema.sql"
    if not schema_file.exists():
        raise FileNotFoundError(f"Schema file not found: {schema_file}")

    conn = sqlite3.connect(db_path)
    try:
        conn.executescript(schema_file.read_text())
        conn.commit()

        cursor = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name='kv_store'"
        )
        if cursor.fetchone() is None:
            raise sqlite3.Error("Failed to create table: kv_store")

        logger.debug(f"Database ready at: {db_path}")
        return db_path

    except sqlite3.Error as e:
        conn.rollback()
        raise sqlite3.Error(f"Failed to initialize database: {e}")
    finally:
        conn.close()


def get_db_connection(db_path: Optional[Path] = None) -> sqlite3.Connection:
    """Get a connection to an initialized Inkwell database.

    Ensures WAL mode and other pragmas are set correctly.

    Returns:
        SQLite connection with proper settings
    """
    if db_path is None:
        db_path = default_db_path()

    if not db_path.exists():
        raise FileNotFoundError(
            f"Database not found at {db_path}. Run init_db() first."
        )

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row

    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute("PRAGMA busy_timeout=5000")
    conn.execute("PRAGMA synchronous=NORMAL")

    return conn
