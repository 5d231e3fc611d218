"""Core orchestration logic for the presence board."""

from __future__ import annotations

import json
import logging
import uuid
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from .actions import (
    Caller,
    DeleteVacationParams,
    EventMembersParams,
    GetStatusParams,
    LoginParams,
    ReadParams,
    SetNoticesParams,
    SetStatusParams,
    SetToolsParams,
    SetVacationBitsParams,
    SetVacationParams,
)
from .bitset import coerce_visible_flag, decode_members_bits, normalize_date, roster_order, summarize_members
from .cache import (
    BackgroundTasks,
    CacheStore,
    Clock,
    SafeCache,
    cached_json,
    config_key,
    notices_key,
    now_ms,
    tools_key,
    vacations_key,
)
from .config import Settings
from .db import Database, run_store
from .errors import ForbiddenError, InvalidPayloadError, UnauthorizedError
from .models import Member, Notice, Vacation
from .resolver import DiffReadResolver, ReadResult
from .snapshot import SnapshotCache
from .watermark import WatermarkGate
from .writes import WriteCoordinator

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_OFFICE_ADMIN = "officeAdmin"
ROLE_SUPER_ADMIN = "superAdmin"

RolePredicate = Callable[[str], bool]


def is_admin(role: str) -> bool:
    return role in {ROLE_OFFICE_ADMIN, ROLE_SUPER_ADMIN}


class PresenceService:
    """High-level service behind every request kind."""

    def __init__(
        self,
        settings: Settings,
        database: Database,
        cache: CacheStore,
        clock: Clock = now_ms,
        admin_check: RolePredicate = is_admin,
    ) -> None:
        self.settings = settings
        self.database = database
        self.cache = SafeCache(cache)
        self.clock = clock
        self.admin_check = admin_check
        self.background = BackgroundTasks()
        self.gate = WatermarkGate(self.cache, settings.resource_cache_ttl_sec)
        self.snapshots = SnapshotCache(database, self.cache, self.background, settings.status_cache_ttl_sec)
        self.resolver = DiffReadResolver(self.gate, self.snapshots, clock)
        self.writes = WriteCoordinator(
            database,
            self.snapshots,
            self.gate,
            self.background,
            warm_on_write=settings.warm_on_write,
            clock=clock,
        )

    async def close(self) -> None:
        await self.background.drain()

    # region Helpers
    def _office(self, requested: str, caller: Caller) -> str:
        office_id = requested or caller.office_id or self.settings.default_office
        if not office_id:
            raise UnauthorizedError("office is required")
        return office_id

    @staticmethod
    def _require_office(caller: Caller) -> str:
        if not caller.office_id:
            raise UnauthorizedError("tokenOffice is required")
        return caller.office_id

    def _invalidate(self, key: str) -> None:
        self.background.spawn(self.cache.delete(key), f"cache-delete:{key}")

    async def _cached(self, key: str, load: Callable[[], Any], nocache: bool = False) -> Dict[str, Any]:
        async def build() -> str:
            return json.dumps(await load(), ensure_ascii=False)

        body = await cached_json(
            self.cache,
            self.background,
            key,
            self.settings.resource_cache_ttl_sec,
            build,
            use_cache=not nocache,
        )
        return json.loads(body)

    async def roster(self, office_id: str) -> List[Member]:
        members = await run_store(self.database.list_members, office_id)
        return roster_order(members)

    # endregion

    # region Offices
    async def login(self, params: LoginParams) -> Dict[str, Any]:
        office = await run_store(self.database.get_office, params.office)
        if office is None:
            raise UnauthorizedError("office not found", code="office_not_found")
        if office.admin_password and params.password == office.admin_password:
            role = ROLE_OFFICE_ADMIN
        elif office.password and params.password == office.password:
            role = ROLE_USER
        else:
            raise UnauthorizedError("invalid password", code="invalid_password")
        logger.info("Login to %s as %s", office.id, role)
        return {"ok": True, "role": role, "office": office.id, "officeName": office.name}

    async def public_list_offices(self) -> Dict[str, Any]:
        offices = await run_store(self.database.list_offices, True)
        return {"ok": True, "offices": offices}

    async def list_offices(self, caller: Caller) -> Dict[str, Any]:
        if caller.role != ROLE_SUPER_ADMIN:
            raise ForbiddenError("superAdmin role required")
        offices = await run_store(self.database.list_offices, False)
        return {"ok": True, "offices": offices}

    async def get_config(self, caller: Caller, params: ReadParams) -> Dict[str, Any]:
        office_id = self._office(params.office, caller)

        async def load() -> Dict[str, Any]:
            groups: Dict[str, Dict[str, Any]] = {}
            for member in await self.roster(office_id):
                title = member.group or "未設定"
                groups.setdefault(title, {"title": title, "members": []})["members"].append(member.to_config())
            return {"ok": True, "groups": list(groups.values()), "updated": self.clock()}

        return await self._cached(config_key(office_id), load, params.nocache)

    # endregion

    # region Status
    async def get_status(
        self,
        caller: Caller,
        params: GetStatusParams,
        if_none_match: Optional[str] = None,
    ) -> ReadResult:
        office_id = self._office("", caller)
        nocache = params.nocache and self.admin_check(caller.role)
        if params.nocache and not nocache:
            logger.debug("Ignoring nocache from non-admin caller on %s", office_id)
        return await self.resolver.resolve(office_id, params.since, nocache=nocache, if_none_match=if_none_match)

    async def set_status(self, caller: Caller, params: SetStatusParams) -> Dict[str, Any]:
        office_id = self._require_office(caller)
        rev = await self.writes.apply_status_updates(office_id, params.updates)
        return {"ok": True, "rev": rev, "serverUpdated": dict(rev)}

    # endregion

    # region Tools and notices
    async def get_tools(self, caller: Caller, params: ReadParams) -> Dict[str, Any]:
        office_id = self._office(params.office, caller)

        async def load() -> Dict[str, Any]:
            raw = await run_store(self.database.get_tools, office_id)
            try:
                tools = json.loads(raw) if raw else []
            except ValueError:
                logger.warning("Stored tools for %s are not valid JSON", office_id)
                tools = []
            return {"ok": True, "tools": tools}

        return await self._cached(tools_key(office_id), load, params.nocache)

    async def set_tools(self, caller: Caller, params: SetToolsParams) -> Dict[str, Any]:
        office_id = self._require_office(caller)
        await run_store(self.database.set_tools, office_id, params.tools_json, self.clock())
        self._invalidate(tools_key(office_id))
        return {"ok": True}

    async def get_notices(self, caller: Caller, params: ReadParams) -> Dict[str, Any]:
        office_id = self._office(params.office, caller)

        async def load() -> Dict[str, Any]:
            notices = await run_store(self.database.list_notices, office_id)
            return {"ok": True, "notices": [notice.to_wire() for notice in notices]}

        return await self._cached(notices_key(office_id), load, params.nocache)

    async def set_notices(self, caller: Caller, params: SetNoticesParams) -> Dict[str, Any]:
        office_id = self._require_office(caller)
        now = self.clock()
        notices = [
            Notice(
                id=str(item.get("id") or f"notice_{now}_{uuid.uuid4().hex[:5]}"),
                title=str(item.get("title") or ""),
                content=str(item.get("content") or ""),
                visible=coerce_visible_flag(item.get("visible", True)),
                updated=now,
            )
            for item in params.notices
        ]
        await run_store(self.database.replace_notices, office_id, notices)
        self._invalidate(notices_key(office_id))
        return {"ok": True}

    # endregion

    # region Vacations
    async def get_vacation(self, caller: Caller, params: ReadParams) -> Dict[str, Any]:
        office_id = self._office(params.office, caller)

        async def load() -> Dict[str, Any]:
            vacations = await run_store(self.database.list_vacations, office_id)
            return {"ok": True, "vacations": [v.to_wire() for v in vacations]}

        return await self._cached(vacations_key(office_id), load, params.nocache)

    async def set_vacation(self, caller: Caller, params: SetVacationParams) -> Dict[str, Any]:
        office_id = self._require_office(caller)
        now = self.clock()
        vacations = [self._vacation_from_item(office_id, item, now) for item in params.items]
        await run_store(self.database.upsert_vacations, vacations)
        self._invalidate(vacations_key(office_id))
        return {"ok": True, "ids": [v.id for v in vacations]}

    @staticmethod
    def _vacation_from_item(office_id: str, item: Dict[str, Any], now: int) -> Vacation:
        try:
            order = int(item.get("order") or 0)
        except (TypeError, ValueError) as exc:
            raise InvalidPayloadError("order must be an integer", code="invalid_vacation") from exc
        return Vacation(
            id=str(item.get("id") or f"vacation_{now}_{uuid.uuid4().hex[:5]}"),
            office_id=office_id,
            title=str(item.get("title") or ""),
            start_date=str(item.get("startDate") or item.get("start") or ""),
            end_date=str(item.get("endDate") or item.get("end") or ""),
            color=str(item.get("color") or ""),
            visible=item.get("visible") is not False,
            members_bits=item.get("membersBits") or "",
            is_vacation=item.get("isVacation") is not False,
            note=str(item.get("note") or ""),
            notice_id=str(item.get("noticeId") or ""),
            notice_title=str(item.get("noticeTitle") or ""),
            order=order,
            vacancy_office=str(item.get("office") or ""),
            updated=now,
        )

    async def delete_vacation(self, caller: Caller, params: DeleteVacationParams) -> Dict[str, Any]:
        office_id = self._require_office(caller)
        await run_store(self.database.delete_vacation, office_id, params.id)
        self._invalidate(vacations_key(office_id))
        return {"ok": True}

    async def set_vacation_bits(self, caller: Caller, params: SetVacationBitsParams) -> Dict[str, Any]:
        office_id = self._require_office(caller)
        found = await run_store(
            self.database.set_vacation_bits, office_id, params.id, params.members_bits, self.clock()
        )
        if not found:
            raise InvalidPayloadError(f"vacation {params.id} not found", code="not_found")
        self._invalidate(vacations_key(office_id))
        return {"ok": True}

    async def get_event_members(self, caller: Caller, params: EventMembersParams) -> Dict[str, Any]:
        """Decode who takes part in an event on a given day (today by default)."""

        office_id = self._office(params.office, caller)
        target = normalize_date(params.date) if params.date else date.today().isoformat()
        if not target:
            raise InvalidPayloadError(f"invalid date {params.date!r}", code="invalid_date")
        vacation = await run_store(self.database.get_vacation, office_id, params.event_id)
        if vacation is None:
            raise InvalidPayloadError(f"vacation {params.event_id} not found", code="not_found")
        roster = await self.roster(office_id)
        decoded = decode_members_bits(vacation.members_bits, target, vacation.start_date, vacation.end_date, roster)
        return {
            "ok": True,
            "id": vacation.id,
            "date": target,
            **decoded.to_wire(),
            "summary": summarize_members(vacation.members_bits, roster),
        }

    # endregion


__all__ = [
    "ROLE_USER",
    "ROLE_OFFICE_ADMIN",
    "ROLE_SUPER_ADMIN",
    "is_admin",
    "PresenceService",
]
