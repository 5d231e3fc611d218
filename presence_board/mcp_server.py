"""MCP server exposing read-only presence board tools."""

from __future__ import annotations

from typing import Optional

from mcp.server.fastmcp import FastMCP

from .actions import Caller, EventMembersParams, GetStatusParams
from .api import build_cache
from .config import load_settings
from .db import Database
from .service import PresenceService

mcp = FastMCP("presence-board")

_service: Optional[PresenceService] = None


def get_service() -> PresenceService:
    global _service
    if _service is None:
        settings = load_settings()
        _service = PresenceService(settings, Database(settings.database_path), build_cache(settings))
    return _service


@mcp.tool()
async def get_board_status(office: str, since: int = 0) -> dict:
    """Return member statuses changed after `since` (epoch ms); 0 returns everyone."""

    service = get_service()
    result = await service.get_status(Caller(office_id=office), GetStatusParams(since=max(since, 0)))
    await service.background.drain()
    return result.to_wire()


@mcp.tool()
async def get_event_members(office: str, event_id: str, date: Optional[str] = None) -> dict:
    """Return who takes part in a vacation or event on the given day (YYYY-MM-DD)."""

    service = get_service()
    params = EventMembersParams(office=office, event_id=event_id, date=date or "")
    return await service.get_event_members(Caller(office_id=office), params)


__all__ = ["mcp", "get_service", "get_board_status", "get_event_members"]
