"""FastAPI dashboard exposing the tail client's live view."""

import logging
from datetime import datetime
from typing import Any

from fastapi import FastAPI, Query

from ..client import LogTailClient
from ..config import Config

logger = logging.getLogger(__name__)


def _entry_to_json(entry) -> dict[str, Any]:
    return {
        "id": entry.sequence_id,
        "formatted": entry.formatted,
        "level": entry.level,
        "logger": entry.logger_name,
        "timestamp": entry.event.timestamp.isoformat(),
        "message": entry.event.message,
        "exception": entry.event.exception,
    }


def create_app(config: Config, client: LogTailClient) -> FastAPI:
    """Create the FastAPI dashboard application.

    Args:
        config: Application configuration.
        client: Tail client whose buffer is served. Read-only access.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="logtail Dashboard",
        description="Live view of recent log activity",
        version="0.1.0",
    )

    # Store references for route handlers
    app.state.config = config
    app.state.client = client

    @app.get("/api/logs")
    async def api_logs(
        logger_name: str | None = Query(default=None, alias="logger"),
        level: str | None = None,
        limit: int = 100,
    ) -> dict[str, Any]:
        """Get buffered entries, newest last."""
        entries = client.query(logger_name=logger_name, min_level=level, limit=limit)
        return {
            "timestamp": datetime.now().isoformat(),
            "connected": client.is_connected,
            "offset": client.current_offset,
            "count": len(entries),
            "entries": [_entry_to_json(e) for e in entries],
        }

    @app.get("/api/loggers")
    async def api_loggers() -> dict[str, Any]:
        """Get the logger names known from the last catch-up."""
        loggers = sorted(client.loggers())
        return {"count": len(loggers), "loggers": loggers}

    @app.get("/api/status")
    async def api_status() -> dict[str, Any]:
        """Get connection and buffer statistics."""
        status = client.get_status()
        status["client_name"] = config.client.name
        status["timestamp"] = datetime.now().isoformat()
        return status

    @app.get("/api/health")
    async def api_health() -> dict[str, Any]:
        """Health check endpoint.

        Always returns 200 OK; a lost feed shows up as connected=false
        while the last received entries stay available.
        """
        return {
            "status": "ok",
            "timestamp": datetime.now().isoformat(),
            "client_name": config.client.name,
            "connected": client.is_connected,
            "state": client.state.value,
        }

    return app
