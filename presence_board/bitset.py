"""Compact per-day membership encoding for vacations and events.

A transport string is either one bitstring that applies to every day of the
event, or one ``;``-separated segment per day. A segment may carry an explicit
``YYYY-MM-DD:`` prefix. Bit ``i`` refers to position ``i`` of the office roster
(members grouped in order of first appearance, then by display order).
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, Sequence

NAME_SEPARATOR = "、"

_DATE_RE = re.compile(r"^\s*(\d{4})[-/.](\d{1,2})[-/.](\d{1,2})")
_HIDDEN_FLAGS = {"false", "0", "off", "no", "hide"}


class RosterMember(Protocol):
    id: str
    name: str


@dataclass(slots=True)
class DecodedMembers:
    member_ids: List[str] = field(default_factory=list)
    member_names: str = ""

    def to_wire(self) -> Dict[str, Any]:
        return {"memberIds": list(self.member_ids), "memberNames": self.member_names}


def _parse_date(value: Any) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        return None
    match = _DATE_RE.match(str(value))
    if not match:
        return None
    try:
        return date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
    except ValueError:
        return None


def normalize_date(value: Any) -> str:
    """Return ``YYYY-MM-DD`` for anything date-like, or ``""``."""

    parsed = _parse_date(value)
    return parsed.isoformat() if parsed else ""


def date_range(start: Any, end: Any) -> List[str]:
    first, last = _parse_date(start), _parse_date(end)
    if first is None or last is None or first > last:
        return []
    return [(first + timedelta(days=offset)).isoformat() for offset in range((last - first).days + 1)]


def roster_order(members: Iterable[RosterMember]) -> List[RosterMember]:
    """Flatten members into roster positions.

    ``members`` must already be sorted by display order; groups keep the order
    in which they first appear.
    """

    groups: Dict[str, List[RosterMember]] = {}
    for member in members:
        groups.setdefault(getattr(member, "group", "") or "", []).append(member)
    return [member for group in groups.values() for member in group]


def split_parts(bits_str: Optional[str]) -> List[str]:
    return [part.strip() for part in (bits_str or "").split(";") if part.strip()]


def _segment_bits(part: str) -> str:
    if ":" in part:
        return part.split(":")[1]
    return part


def _segment_date(part: str) -> str:
    if ":" not in part:
        return ""
    return normalize_date(part.split(":")[0])


def _select(bits: str, roster: Sequence[RosterMember]) -> DecodedMembers:
    positions = [i for i in range(min(len(bits), len(roster))) if bits[i] == "1"]
    chosen = [roster[i] for i in positions]
    return DecodedMembers(
        member_ids=[str(member.id) for member in chosen],
        member_names=NAME_SEPARATOR.join(member.name for member in chosen if member.name),
    )


def _match_part(parts: Sequence[str], target: str) -> Optional[str]:
    for part in parts:
        if _segment_date(part) == target:
            return part
    if len(parts) == 1 and ":" not in parts[0]:
        return parts[0]
    return None


def decode_members_bits(
    bits_str: Optional[str],
    target_date: Any,
    start_date: Any,
    end_date: Any,
    roster: Sequence[RosterMember],
) -> DecodedMembers:
    """Resolve which roster members take part in an event on ``target_date``.

    Never raises: bitstrings shorter or longer than the roster, ranges that
    grew after the bits were written, and junk input all degrade to the best
    available answer or an empty result.
    """

    target = normalize_date(target_date)
    if not target or not roster:
        return DecodedMembers()
    start = normalize_date(start_date)
    end = normalize_date(end_date)
    parts = split_parts(bits_str)

    def by_parts() -> DecodedMembers:
        part = _match_part(parts, target)
        return _select(_segment_bits(part), roster) if part is not None else DecodedMembers()

    if not start or not end or not (start <= target <= end) or not parts:
        return by_parts()

    slots = date_range(start, end)
    offset = slots.index(target)
    if offset >= len(parts):
        return by_parts()
    return _select(_segment_bits(parts[offset]), roster)


def encode_members_bits(
    roster_ids: Sequence[str],
    assignments: Mapping[Any, Iterable[str]],
    start_date: Any,
    end_date: Any,
    explicit_dates: bool = False,
) -> str:
    """Encode per-day member sets for ``[start_date, end_date]``.

    ``assignments`` maps a date to member ids; days without an entry are empty.
    """

    slots = date_range(start_date, end_date)
    if not slots:
        raise ValueError(f"invalid date range {start_date!r}..{end_date!r}")
    positions = {str(member_id): index for index, member_id in enumerate(roster_ids)}
    by_day: Dict[str, set[str]] = {}
    for day, member_ids in assignments.items():
        key = normalize_date(day)
        if not key:
            raise ValueError(f"invalid date {day!r}")
        by_day[key] = {str(member_id) for member_id in member_ids}

    segments: List[str] = []
    for day in slots:
        selected = by_day.get(day, set())
        unknown = selected - positions.keys()
        if unknown:
            raise ValueError(f"members not in roster: {sorted(unknown)}")
        bits = ["0"] * len(roster_ids)
        for member_id in selected:
            bits[positions[member_id]] = "1"
        segments.append("".join(bits))

    if not explicit_dates and len(set(segments)) == 1:
        return segments[0]
    if explicit_dates:
        segments = [f"{day}:{bits}" for day, bits in zip(slots, segments)]
    return ";".join(segments)


def summarize_members(bits_str: Optional[str], roster: Sequence[RosterMember], limit: int = 3) -> str:
    """Short label naming everyone who appears on any day of the event."""

    selected: set[int] = set()
    for part in split_parts(bits_str):
        bits = _segment_bits(part)
        selected.update(i for i in range(min(len(bits), len(roster))) if bits[i] == "1")
    names = [roster[i].name or "" for i in sorted(selected)]
    if not names:
        return ""
    if len(names) <= limit:
        return NAME_SEPARATOR.join(names)
    return f"{NAME_SEPARATOR.join(names[:limit])} ほか{len(names) - limit}名"


def coerce_visible_flag(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, (int, float)):
        return raw != 0
    if isinstance(raw, str):
        text = raw.strip().lower()
        return bool(text) and text not in _HIDDEN_FLAGS
    return False


__all__ = [
    "NAME_SEPARATOR",
    "RosterMember",
    "DecodedMembers",
    "normalize_date",
    "date_range",
    "roster_order",
    "split_parts",
    "decode_members_bits",
    "encode_members_bits",
    "summarize_members",
    "coerce_visible_flag",
]
