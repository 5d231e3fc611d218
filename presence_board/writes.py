"""Status writes and the cache bookkeeping that follows them."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

from .cache import BackgroundTasks, Clock, now_ms
from .db import Database, run_store
from .errors import InvalidPayloadError
from .models import STATUS_FIELDS
from .snapshot import SnapshotCache
from .watermark import WatermarkGate

logger = logging.getLogger(__name__)


class WriteCoordinator:
    """Apply member status updates, then invalidate (or warm) the snapshot.

    Members are written one by one with no rollback: a store failure stops
    the batch, leaves the caches alone, and the client re-sends the whole set.
    """

    def __init__(
        self,
        database: Database,
        snapshots: SnapshotCache,
        gate: WatermarkGate,
        background: BackgroundTasks,
        warm_on_write: bool = False,
        clock: Clock = now_ms,
    ) -> None:
        self.database = database
        self.snapshots = snapshots
        self.gate = gate
        self.background = background
        self.warm_on_write = warm_on_write
        self.clock = clock

    async def apply_status_updates(
        self,
        office_id: str,
        updates: Mapping[str, Mapping[str, Any]],
        now: Optional[int] = None,
    ) -> Dict[str, int]:
        """Write each member's supplied fields and return ``{member_id: now}``.

        Ids unknown to the office reject the whole batch before anything is
        written. A member removed while the batch runs is skipped.
        """

        now = self.clock() if now is None else now
        if not updates:
            return {}
        known = await run_store(self.database.list_member_ids, office_id)
        unknown = sorted(set(updates) - known)
        if unknown:
            raise InvalidPayloadError(
                f"unknown member(s) in office {office_id}: {', '.join(unknown)}",
                code="unknown_member",
            )

        written: Dict[str, Dict[str, Any]] = {}
        acks: Dict[str, int] = {}
        for member_id, fields in updates.items():
            partial = {key: fields[key] for key in STATUS_FIELDS if key in fields}
            found = await run_store(self.database.update_member_status, office_id, member_id, partial, now)
            if not found:
                logger.warning("Member %s vanished from %s mid-batch; skipped", member_id, office_id)
                continue
            written[member_id] = partial
            acks[member_id] = now

        if acks:
            self.background.spawn(self._settle(office_id, written, now), f"settle-write:{office_id}")
            logger.info("Stored %s status update(s) for %s", len(acks), office_id)
        return acks

    async def _settle(self, office_id: str, written: Mapping[str, Mapping[str, Any]], now: int) -> None:
        if self.warm_on_write:
            await self.snapshots.warm(office_id, written, now)
        else:
            await self.snapshots.invalidate(office_id)
        await self.gate.advance(office_id, now)


__all__ = ["WriteCoordinator"]
