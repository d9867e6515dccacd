"""
Database connection management.

Provides the SQLite connection backing the response cache.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = ".ai-gateway-cache.db") -> sqlite3.Connection:
    """Create and return a SQLite connection, creating the parent directory if needed.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    if path.parent and not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA journal_mode = WAL")
    return conn
