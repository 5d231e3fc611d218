"""FastAPI application exposing the presence board action endpoint."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional
from urllib.parse import parse_qsl

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask

from .actions import Action, ActionRequest, parse_request
from .cache import CacheStore, KVCache, MemoryCache, now_ms
from .config import Settings, load_settings
from .db import Database
from .errors import InvalidPayloadError, PresenceError, StoreError, UnknownActionError
from .service import PresenceService

logger = logging.getLogger(__name__)


def build_cache(settings: Settings) -> CacheStore:
    if settings.kv_api_url:
        return KVCache(settings.kv_api_url, settings.kv_api_token, timeout=settings.kv_timeout_sec)
    return MemoryCache()


async def read_body(request: Request) -> Dict[str, Any]:
    """Decode a JSON or URL-encoded body into a flat parameter map."""

    raw = (await request.body()).decode("utf-8", errors="replace")
    if not raw.strip():
        return {}
    content_type = request.headers.get("content-type", "").lower()
    if "application/json" in content_type or raw.lstrip().startswith("{"):
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise InvalidPayloadError("body is not valid JSON", code="invalid_json") from exc
        if not isinstance(data, dict):
            raise InvalidPayloadError("body must be a JSON object", code="invalid_json")
        return data
    return dict(parse_qsl(raw, keep_blank_values=True))


def create_app(settings: Optional[Settings] = None, service: Optional[PresenceService] = None) -> FastAPI:
    settings = settings or load_settings()
    cache: Optional[CacheStore] = None
    if service is None:
        database = Database(settings.database_path)
        cache = build_cache(settings)
        service = PresenceService(settings, database, cache)

    app = FastAPI(title="Presence Board API", version="1.0.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins,
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["content-type", "if-none-match"],
        expose_headers=["ETag"],
    )
    app.state.service = service

    @app.on_event("shutdown")
    async def shutdown_event() -> None:  # pragma: no cover - io bound
        await service.close()
        if isinstance(cache, KVCache):
            await cache.close()

    def reply(payload: Dict[str, Any], status_code: int = 200, headers: Optional[Dict[str, str]] = None) -> Response:
        # pending cache writes finish after the response has been sent
        return JSONResponse(
            payload,
            status_code=status_code,
            headers=headers,
            background=BackgroundTask(service.background.drain),
        )

    async def dispatch(req: ActionRequest, if_none_match: Optional[str]) -> Response:
        caller, params = req.caller, req.params
        match req.action:
            case Action.LOGIN:
                return reply(await service.login(params))
            case Action.GET_CONFIG:
                return reply(await service.get_config(caller, params))
            case Action.PUBLIC_LIST_OFFICES:
                return reply(await service.public_list_offices())
            case Action.LIST_OFFICES:
                return reply(await service.list_offices(caller))
            case Action.GET:
                result = await service.get_status(caller, params, if_none_match)
                headers = {"ETag": result.etag} if result.etag else None
                if result.not_modified:
                    return Response(
                        status_code=304,
                        headers=headers,
                        background=BackgroundTask(service.background.drain),
                    )
                return reply(result.to_wire(), headers=headers)
            case Action.SET:
                return reply(await service.set_status(caller, params))
            case Action.GET_TOOLS:
                return reply(await service.get_tools(caller, params))
            case Action.SET_TOOLS:
                return reply(await service.set_tools(caller, params))
            case Action.GET_NOTICES:
                return reply(await service.get_notices(caller, params))
            case Action.SET_NOTICES:
                return reply(await service.set_notices(caller, params))
            case Action.GET_VACATION:
                return reply(await service.get_vacation(caller, params))
            case Action.SET_VACATION:
                return reply(await service.set_vacation(caller, params))
            case Action.DELETE_VACATION:
                return reply(await service.delete_vacation(caller, params))
            case Action.SET_VACATION_BITS:
                return reply(await service.set_vacation_bits(caller, params))
            case Action.GET_EVENT_MEMBERS:
                return reply(await service.get_event_members(caller, params))
        raise UnknownActionError(req.action.value)  # pragma: no cover

    @app.get("/healthz")
    async def healthcheck() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/")
    async def handle(request: Request) -> Response:
        try:
            body = await read_body(request)
            action_request = parse_request(body)
            return await dispatch(action_request, request.headers.get("if-none-match"))
        except UnknownActionError as exc:
            return reply({"error": exc.code, "action": exc.action})
        except PresenceError as exc:
            if isinstance(exc, StoreError):
                logger.error("Store failure: %s", exc.detail)
                return reply({"ok": False, "error": exc.detail, "timestamp": now_ms()}, status_code=500)
            return reply({"ok": False, "error": exc.error, "code": exc.code, "detail": exc.detail})
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error while serving request")
            return reply({"ok": False, "error": str(exc), "timestamp": now_ms()}, status_code=500)

    return app


__all__ = ["build_cache", "read_body", "create_app"]
