"""Differential status reads against a ``since`` watermark."""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .cache import Clock, now_ms
from .models import SnapshotEntry
from .snapshot import SnapshotCache, compute_max_updated
from .watermark import WatermarkGate

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ReadResult:
    data: Dict[str, Dict[str, Any]]
    max_updated: int
    server_now: int
    etag: Optional[str] = None
    not_modified: bool = False
    source: str = "store"

    def to_wire(self) -> Dict[str, Any]:
        return {
            "ok": True,
            "data": self.data,
            "maxUpdated": self.max_updated,
            "serverNow": self.server_now,
        }


def make_etag(office_id: str, max_updated: int, since: int) -> str:
    digest = hashlib.sha1(f"{office_id}:{max_updated}:{since}".encode("utf-8")).hexdigest()
    return f'"{digest[:20]}"'


def etag_matches(if_none_match: Optional[str], etag: str) -> bool:
    if not if_none_match:
        return False
    candidates = [token.strip() for token in if_none_match.split(",")]
    for candidate in candidates:
        if candidate == "*":
            return True
        if candidate.startswith("W/"):
            candidate = candidate[2:]
        if candidate == etag:
            return True
    return False


class DiffReadResolver:
    """Decide for each read whether the gate, the snapshot or the store answers it."""

    def __init__(self, gate: WatermarkGate, snapshots: SnapshotCache, clock: Clock = now_ms) -> None:
        self.gate = gate
        self.snapshots = snapshots
        self.clock = clock

    async def resolve(
        self,
        office_id: str,
        since: int = 0,
        nocache: bool = False,
        if_none_match: Optional[str] = None,
        now: Optional[int] = None,
    ) -> ReadResult:
        now = self.clock() if now is None else now
        since = max(int(since or 0), 0)

        watermark: Optional[int] = None
        if since > 0 and not nocache:
            gate = await self.gate.check(office_id, since)
            if gate.fresh:
                logger.debug("Gate short-circuit for %s since=%s", office_id, since)
                return ReadResult(data={}, max_updated=int(gate.watermark or since), server_now=now, source="gate")
            watermark = gate.watermark

        entry: Optional[SnapshotEntry] = None
        source = "cache"
        if not nocache:
            entry = await self.snapshots.read_fresh(office_id, now)
            # a snapshot older than a known write is stale even inside its TTL
            if entry is not None and watermark is not None and entry.max_updated < watermark:
                entry = None
        if entry is None:
            # the entry is shared by every reader, so its fallback never comes from a client
            entry = await self.snapshots.refresh_from_store(office_id, now, fallback=now)
            source = "store"
        return self._respond(office_id, entry, since, if_none_match, now, source)

    def _respond(
        self,
        office_id: str,
        entry: SnapshotEntry,
        since: int,
        if_none_match: Optional[str],
        now: int,
        source: str,
    ) -> ReadResult:
        if since > 0:
            changed = {mid: st for mid, st in entry.members.items() if st.updated > since}
            max_updated = max(compute_max_updated(changed, since), since)
        else:
            changed = entry.members
            max_updated = entry.max_updated
        etag = make_etag(office_id, max_updated, since)
        if etag_matches(if_none_match, etag):
            return ReadResult(
                data={},
                max_updated=max_updated,
                server_now=now,
                etag=etag,
                not_modified=True,
                source=source,
            )
        return ReadResult(
            data={mid: st.to_wire() for mid, st in changed.items()},
            max_updated=max_updated,
            server_now=now,
            etag=etag,
            source=source,
        )


__all__ = ["ReadResult", "make_etag", "etag_matches", "DiffReadResolver"]
