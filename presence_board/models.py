"""Dataclasses representing presence board domain models.

Rows coming out of the record store are decoded here exactly once, so the
rest of the package never has to guess at missing or malformed fields.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

STATUS_FIELDS = ("status", "time", "note", "workHours")


def coerce_timestamp(value: Any) -> int:
    """Return an epoch-millisecond timestamp, or 0 when missing or non-finite."""

    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(number) or number < 0:
        return 0
    return int(number)


def _text(value: Any) -> str:
    return "" if value is None else str(value)


@dataclass(slots=True)
class Office:
    id: str
    name: str
    password: str = ""
    admin_password: str = ""
    is_public: bool = False

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Office":
        return cls(
            id=_text(row["id"]),
            name=_text(row["name"]) or _text(row["id"]),
            password=_text(row["password"]),
            admin_password=_text(row["admin_password"]),
            is_public=bool(row["is_public"]),
        )


@dataclass(slots=True)
class MemberStatus:
    status: str = ""
    time: str = ""
    note: str = ""
    work_hours: str = ""
    updated: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "MemberStatus":
        return cls(
            status=_text(row["status"]),
            time=_text(row["time"]),
            note=_text(row["note"]),
            work_hours=_text(row["work_hours"]),
            updated=coerce_timestamp(row["updated"]),
        )

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "MemberStatus":
        return cls(
            status=_text(data.get("status")),
            time=_text(data.get("time")),
            note=_text(data.get("note")),
            work_hours=_text(data.get("workHours")),
            updated=coerce_timestamp(data.get("updated")),
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "time": self.time,
            "note": self.note,
            "workHours": self.work_hours,
            "updated": self.updated,
            "serverUpdated": self.updated,
        }

    def merged(self, fields: Mapping[str, Any], updated: int) -> "MemberStatus":
        """Return a copy with the supplied wire fields replaced."""

        return MemberStatus(
            status=_text(fields["status"]) if "status" in fields else self.status,
            time=_text(fields["time"]) if "time" in fields else self.time,
            note=_text(fields["note"]) if "note" in fields else self.note,
            work_hours=_text(fields["workHours"]) if "workHours" in fields else self.work_hours,
            updated=updated,
        )


@dataclass(slots=True)
class Member:
    id: str
    office_id: str
    name: str
    group: str = ""
    order: int = 0
    ext: str = ""
    state: MemberStatus = field(default_factory=MemberStatus)

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Member":
        return cls(
            id=_text(row["id"]),
            office_id=_text(row["office_id"]),
            name=_text(row["name"]),
            group=_text(row["group_name"]),
            order=int(row["display_order"] or 0),
            ext=_text(row["ext"]),
            state=MemberStatus.from_row(row),
        )

    def to_config(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "group": self.group,
            "order": self.order,
            "status": self.state.status,
            "time": self.state.time,
            "note": self.state.note,
            "workHours": self.state.work_hours,
            "ext": self.ext,
        }


@dataclass(slots=True)
class Vacation:
    id: str
    office_id: str
    title: str = ""
    start_date: str = ""
    end_date: str = ""
    color: str = ""
    visible: bool = True
    members_bits: str = ""
    is_vacation: bool = True
    note: str = ""
    notice_id: str = ""
    notice_title: str = ""
    order: int = 0
    vacancy_office: str = ""
    updated: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Vacation":
        return cls(
            id=_text(row["id"]),
            office_id=_text(row["office_id"]),
            title=_text(row["title"]),
            start_date=_text(row["start_date"]),
            end_date=_text(row["end_date"]),
            color=_text(row["color"]),
            visible=bool(row["visible"]),
            members_bits=_text(row["members_bits"]),
            is_vacation=bool(row["is_vacation"]),
            note=_text(row["note"]),
            notice_id=_text(row["notice_id"]),
            notice_title=_text(row["notice_title"]),
            order=int(row["display_order"] or 0),
            vacancy_office=_text(row["vacancy_office"]),
            updated=coerce_timestamp(row["updated"]),
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "startDate": self.start_date,
            "endDate": self.end_date,
            "color": self.color,
            "visible": self.visible,
            "membersBits": self.members_bits,
            "isVacation": self.is_vacation,
            "note": self.note,
            "noticeId": self.notice_id,
            "noticeTitle": self.notice_title,
            "order": self.order,
            "office": self.vacancy_office or self.office_id,
        }


@dataclass(slots=True)
class Notice:
    id: str
    title: str = ""
    content: str = ""
    visible: bool = True
    updated: int = 0

    @classmethod
    def from_row(cls, row: Mapping[str, Any]) -> "Notice":
        return cls(
            id=_text(row["id"]),
            title=_text(row["title"]),
            content=_text(row["content"]),
            visible=bool(row["visible"]),
            updated=coerce_timestamp(row["updated"]),
        )

    def to_wire(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "visible": self.visible,
            "updated": self.updated,
        }


@dataclass(slots=True)
class SnapshotEntry:
    """Cached copy of one office's member statuses."""

    cached_at: int
    max_updated: int
    members: Dict[str, MemberStatus] = field(default_factory=dict)

    def dumps(self) -> str:
        return json.dumps(
            {
                "cachedAt": self.cached_at,
                "maxUpdated": self.max_updated,
                "members": {mid: st.to_wire() for mid, st in self.members.items()},
            },
            ensure_ascii=False,
        )

    @classmethod
    def loads(cls, raw: str) -> Optional["SnapshotEntry"]:
        """Decode a cached entry; a corrupt value reads as a miss."""

        try:
            data = json.loads(raw)
            members = {
                str(mid): MemberStatus.from_wire(value)
                for mid, value in (data.get("members") or {}).items()
            }
            return cls(
                cached_at=coerce_timestamp(data.get("cachedAt")),
                max_updated=coerce_timestamp(data.get("maxUpdated")),
                members=members,
            )
        except (ValueError, TypeError, AttributeError):
            return None


__all__ = [
    "STATUS_FIELDS",
    "coerce_timestamp",
    "Office",
    "MemberStatus",
    "Member",
    "Vacation",
    "Notice",
    "SnapshotEntry",
]
