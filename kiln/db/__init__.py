"""Database layer package.

Public re-exports so callers can write::

    from kiln.db import get_connection, init_db
    from kiln.db import articles
"""

from kiln.db.connection import get_connection
from kiln.db.migrations import init_db
from kiln.db import articles

__all__ = ["get_connection", "init_db", "articles"]
