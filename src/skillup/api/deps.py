from __future__ import annotations

from fastapi.requests import HTTPConnection

from ..services.bootstrap import AppServices


def get_services(conn: HTTPConnection) -> AppServices:
    """Return the service container built at app creation (HTTP or WebSocket)."""
    return conn.app.state.services
