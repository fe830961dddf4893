"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from kiln.api import app

    uvicorn kiln.api:app --reload
"""

from kiln.api.app import app

__all__ = ["app"]
