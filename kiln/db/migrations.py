"""Database initialisation.

``init_db(conn)`` is idempotent and safe to call on an existing database.
"""

from __future__ import annotations

import sqlite3

from kiln.config import settings


def init_db(conn: sqlite3.Connection) -> None:
    """Create the ``articles`` table, its indexes, and the ``updated_at`` trigger.

    Every DDL statement uses ``IF NOT EXISTS`` so calling this repeatedly on
    the same database is safe.
    """
    sql = settings.schema_path.read_text(encoding="utf-8")
    # executescript() issues an implicit COMMIT first; fine for DDL-only scripts.
    conn.executescript(sql)
