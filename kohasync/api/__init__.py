"""HTTP surface for the sync store.

A single JSON endpoint, /api/sync, built with FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
