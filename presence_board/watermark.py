"""Per-office watermark of the latest status write."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .cache import CacheStore, last_update_key
from .models import coerce_timestamp

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GateResult:
    fresh: bool
    watermark: Optional[int] = None


class WatermarkGate:
    """Answers "has anything changed since X" without touching the snapshot.

    The stored value only ever moves forward and is kept separately from the
    status snapshot so it survives snapshot invalidation.
    """

    def __init__(self, cache: CacheStore, ttl_seconds: int) -> None:
        self.cache = cache
        self.ttl_seconds = ttl_seconds

    async def read(self, office_id: str) -> Optional[int]:
        raw = await self.cache.get(last_update_key(office_id))
        if raw is None:
            return None
        value = coerce_timestamp(raw)
        return value or None

    async def check(self, office_id: str, since: int) -> GateResult:
        if since <= 0:
            return GateResult(fresh=False)
        watermark = await self.read(office_id)
        if watermark is not None and watermark <= since:
            return GateResult(fresh=True, watermark=watermark)
        return GateResult(fresh=False, watermark=watermark)

    async def advance(self, office_id: str, now: int) -> int:
        existing = await self.read(office_id) or 0
        value = max(existing, now)
        await self.cache.put(last_update_key(office_id), str(value), self.ttl_seconds)
        logger.debug("Watermark for %s advanced to %s", office_id, value)
        return value


__all__ = ["GateResult", "WatermarkGate"]
