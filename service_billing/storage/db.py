"""
Database connection management.

Provides SQLite connection for data persistence.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = "service_billing.db") -> sqlite3.Connection:
    """Create and return a SQLite connection in manual transaction mode.

    Autocommit is disabled at the driver level (isolation_level=None) so
    callers issue BEGIN/COMMIT themselves and control lock acquisition.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection with foreign key constraints enabled
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), isolation_level=None, timeout=30.0)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def initialize_schema(db_path: str = "service_billing.db") -> None:
    """Create the document table if it doesn't exist.

    Every document is addressed by its slash-separated path and carries a
    version counter that is bumped on each committed write.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS document (
                path TEXT PRIMARY KEY,
                parent TEXT NOT NULL,
                data TEXT NOT NULL,
                version INTEGER NOT NULL
            )
        """)
        conn.execute("""
            CREATE INDEX IF NOT EXISTS idx_document_parent
                ON document(parent)
        """)
    finally:
        conn.close()
