"""Cache store backends, cache keys, and background cache writes."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from typing import Any, Dict, Optional, Protocol, Tuple
from urllib.parse import quote

import httpx

from .errors import CacheStoreError

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

# Remote KV namespaces reject shorter expirations.
MIN_KV_TTL_SECONDS = 60


def now_ms() -> int:
    return int(time.time() * 1000)


# region Keys
def status_key(office_id: str) -> str:
    return f"status:{office_id}"


def last_update_key(office_id: str) -> str:
    return f"lastUpdate:{office_id}"


def vacations_key(office_id: str) -> str:
    return f"vacations:{office_id}"


def notices_key(office_id: str) -> str:
    return f"notices:{office_id}"


def tools_key(office_id: str) -> str:
    return f"tools:{office_id}"


def config_key(office_id: str) -> str:
    return f"config:{office_id}"


# endregion


class CacheStore(Protocol):
    """Minimal TTL key-value contract shared by every cache backend."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


class MemoryCache:
    """In-process TTL cache. The clock is injectable so expiry is testable."""

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._items: Dict[str, Tuple[str, int]] = {}

    async def get(self, key: str) -> Optional[str]:
        item = self._items.get(key)
        if item is None:
            return None
        value, expires_at = item
        if self._clock() >= expires_at:
            self._items.pop(key, None)
            return None
        return value

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        now = self._clock()
        self._prune(now)
        self._items[key] = (value, now + int(ttl_seconds) * 1000)

    def _prune(self, now: int) -> None:
        expired = [key for key, (_, expires_at) in self._items.items() if now >= expires_at]
        for key in expired:
            del self._items[key]

    async def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._items


class KVCache:
    """Async client for a remote key-value namespace exposed over HTTP."""

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def _path(key: str) -> str:
        return f"values/{quote(key, safe='')}"

    async def get(self, key: str) -> Optional[str]:
        try:
            response = await self._client.get(self._path(key))
        except httpx.HTTPError as exc:
            raise CacheStoreError(f"kv get {key} failed: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.is_error:
            raise CacheStoreError(f"kv get {key} returned {response.status_code}")
        return response.text

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        params = {"expiration_ttl": max(int(ttl_seconds), MIN_KV_TTL_SECONDS)}
        try:
            response = await self._client.put(self._path(key), params=params, content=value.encode("utf-8"))
        except httpx.HTTPError as exc:
            raise CacheStoreError(f"kv put {key} failed: {exc}") from exc
        if response.is_error:
            raise CacheStoreError(f"kv put {key} returned {response.status_code}")

    async def delete(self, key: str) -> None:
        try:
            response = await self._client.delete(self._path(key))
        except httpx.HTTPError as exc:
            raise CacheStoreError(f"kv delete {key} failed: {exc}") from exc
        if response.is_error and response.status_code != 404:
            raise CacheStoreError(f"kv delete {key} returned {response.status_code}")


class SafeCache:
    """Wrap a cache so that it can never fail a request.

    A failing ``get`` reads as a miss; failing writes are logged and dropped.
    """

    def __init__(self, inner: CacheStore) -> None:
        self.inner = inner

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self.inner.get(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache get failed for %s, treating as miss: %s", key, exc)
            return None

    async def put(self, key: str, value: str, ttl_seconds: int) -> None:
        try:
            await self.inner.put(key, value, ttl_seconds)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache put failed for %s: %s", key, exc)

    async def delete(self, key: str) -> None:
        try:
            await self.inner.delete(key)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache delete failed for %s: %s", key, exc)


class BackgroundTasks:
    """Fire-and-forget runner for best-effort cache writes.

    Failures are logged and never reach the request that scheduled them.
    ``drain`` lets the HTTP layer (after the response is sent) and tests wait
    for pending writes.
    """

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task[Any]] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro, name=label)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background task %s failed: %s", task.get_name(), exc)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


async def cached_json(
    cache: CacheStore,
    background: BackgroundTasks,
    key: str,
    ttl_seconds: int,
    load: Callable[[], Awaitable[str]],
    use_cache: bool = True,
) -> str:
    """Cache-by-key read: serve ``key`` when present, else load and store it."""

    if use_cache:
        cached = await cache.get(key)
        if cached is not None:
            return cached
    body = await load()
    background.spawn(cache.put(key, body, ttl_seconds), f"cache-put:{key}")
    return body


__all__ = [
    "Clock",
    "now_ms",
    "status_key",
    "last_update_key",
    "vacations_key",
    "notices_key",
    "tools_key",
    "config_key",
    "CacheStore",
    "MemoryCache",
    "KVCache",
    "SafeCache",
    "BackgroundTasks",
    "cached_json",
]
