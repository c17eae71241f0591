"""Web dashboard for logtail.

Serves the client's buffered entries and connection status as JSON
using FastAPI.
"""

from .app import create_app

__all__ = ["create_app"]
