"""
Database connection management.

Provides SQLite connections and the single-writer transaction used by every
mutation in the repository layer.
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from listing_guard.core.errors import StorageError

DEFAULT_DB_PATH = "listing_guard.db"
DEFAULT_BUSY_TIMEOUT = 30.0


def get_connection(db_path: str = DEFAULT_DB_PATH, timeout: float = DEFAULT_BUSY_TIMEOUT) -> sqlite3.Connection:
    """Create and return a SQLite database connection with foreign keys enabled.

    The connection runs in autocommit mode; transactions are opened explicitly
    through `write_transaction`.

    Args:
        db_path: Path to SQLite database file
        timeout: Seconds to wait for another writer to release the lock

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=timeout, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def write_transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run a block under the database write lock.

    BEGIN IMMEDIATE acquires the RESERVED lock before the first statement, so
    two writers can never interleave their reads and writes. Commits on
    success, rolls back on any exception and re-raises it.
    """
    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except BaseException:
        conn.rollback()
        raise
    conn.commit()


@contextmanager
def storage_errors(operation: str) -> Iterator[None]:
    """Wrap driver errors with the name of the failing operation."""
    try:
        yield
    except sqlite3.Error as e:
        raise StorageError(operation, e) from e
