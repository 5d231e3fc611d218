"""Full per-office status snapshot kept in the cache store."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from .cache import BackgroundTasks, CacheStore, status_key
from .db import Database, run_store
from .models import MemberStatus, SnapshotEntry, coerce_timestamp

logger = logging.getLogger(__name__)


def compute_max_updated(members: Mapping[str, MemberStatus], fallback: int = 0) -> int:
    """Largest member ``updated`` stamp, or ``fallback`` when none is usable."""

    best = 0
    for state in members.values():
        stamp = coerce_timestamp(state.updated)
        if stamp > best:
            best = stamp
    return best or fallback


class SnapshotCache:
    def __init__(
        self,
        database: Database,
        cache: CacheStore,
        background: BackgroundTasks,
        ttl_seconds: int = 60,
    ) -> None:
        self.database = database
        self.cache = cache
        self.background = background
        self.ttl_seconds = ttl_seconds

    @property
    def ttl_ms(self) -> int:
        return self.ttl_seconds * 1000

    async def read(self, office_id: str) -> Optional[SnapshotEntry]:
        raw = await self.cache.get(status_key(office_id))
        if raw is None:
            return None
        entry = SnapshotEntry.loads(raw)
        if entry is None:
            logger.warning("Discarding undecodable snapshot for %s", office_id)
        return entry

    async def read_fresh(self, office_id: str, now: int) -> Optional[SnapshotEntry]:
        """Return the snapshot only while it is younger than the TTL."""

        entry = await self.read(office_id)
        if entry is None or now - entry.cached_at > self.ttl_ms:
            return None
        return entry

    async def refresh_from_store(self, office_id: str, now: int, fallback: int = 0) -> SnapshotEntry:
        """Rebuild the snapshot with one store read and cache it in the background.

        Store errors propagate before anything is written to the cache.
        """

        members: Dict[str, MemberStatus] = await run_store(
            self.database.list_member_statuses, office_id
        )
        entry = SnapshotEntry(
            cached_at=now,
            max_updated=compute_max_updated(members, fallback),
            members=members,
        )
        self.background.spawn(self.store(office_id, entry), f"snapshot-put:{office_id}")
        return entry

    async def store(self, office_id: str, entry: SnapshotEntry) -> None:
        await self.cache.put(status_key(office_id), entry.dumps(), self.ttl_seconds)

    async def invalidate(self, office_id: str) -> None:
        await self.cache.delete(status_key(office_id))

    async def warm(self, office_id: str, updates: Mapping[str, Mapping[str, object]], now: int) -> bool:
        """Merge freshly written fields into the cached snapshot.

        Returns False, leaving the cache untouched, when there is nothing to warm.
        """

        entry = await self.read(office_id)
        if entry is None:
            return False
        for member_id, fields in updates.items():
            current = entry.members.get(member_id, MemberStatus())
            entry.members[member_id] = current.merged(fields, now)
        entry.max_updated = max(entry.max_updated, now)
        await self.store(office_id, entry)
        return True


__all__ = ["compute_max_updated", "SnapshotCache"]
