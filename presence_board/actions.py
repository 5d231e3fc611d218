"""Typed request kinds accepted by the single POST endpoint.

Every raw body is decoded here once into an :class:`ActionRequest` whose
``params`` is the dataclass for that action. Handlers never look at the raw
body again.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from .errors import InvalidPayloadError, UnknownActionError
from .models import coerce_timestamp


class Action(str, Enum):
    LOGIN = "login"
    GET_CONFIG = "getConfig"
    PUBLIC_LIST_OFFICES = "publicListOffices"
    LIST_OFFICES = "listOffices"
    GET = "get"
    SET = "set"
    GET_TOOLS = "getTools"
    SET_TOOLS = "setTools"
    GET_NOTICES = "getNotices"
    SET_NOTICES = "setNotices"
    GET_VACATION = "getVacation"
    SET_VACATION = "setVacation"
    DELETE_VACATION = "deleteVacation"
    SET_VACATION_BITS = "setVacationBits"
    GET_EVENT_MEMBERS = "getEventMembers"


@dataclass(slots=True)
class Caller:
    office_id: str = ""
    role: str = ""


@dataclass(slots=True)
class NoParams:
    pass


@dataclass(slots=True)
class LoginParams:
    office: str
    password: str


@dataclass(slots=True)
class ReadParams:
    """Cache-by-key resource reads (config, tools, notices, vacations)."""

    office: str = ""
    nocache: bool = False


@dataclass(slots=True)
class GetStatusParams:
    since: int = 0
    nocache: bool = False


@dataclass(slots=True)
class SetStatusParams:
    updates: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass(slots=True)
class SetToolsParams:
    tools_json: str = "[]"


@dataclass(slots=True)
class SetNoticesParams:
    notices: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class SetVacationParams:
    items: List[Dict[str, Any]] = field(default_factory=list)


@dataclass(slots=True)
class DeleteVacationParams:
    id: str


@dataclass(slots=True)
class SetVacationBitsParams:
    id: str
    members_bits: str = ""


@dataclass(slots=True)
class EventMembersParams:
    office: str
    event_id: str
    date: str


Params = Union[
    NoParams,
    LoginParams,
    ReadParams,
    GetStatusParams,
    SetStatusParams,
    SetToolsParams,
    SetNoticesParams,
    SetVacationParams,
    DeleteVacationParams,
    SetVacationBitsParams,
    EventMembersParams,
]


@dataclass(slots=True)
class ActionRequest:
    action: Action
    caller: Caller
    params: Params


def _text(body: Mapping[str, Any], key: str) -> Optional[str]:
    value = body.get(key)
    return None if value is None else str(value)


def _json(body: Mapping[str, Any], key: str, default: Any) -> Any:
    """Decode a field that may arrive as a JSON string (form bodies) or as JSON."""

    value = body.get(key)
    if value is None or value == "":
        return default
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except ValueError as exc:
        raise InvalidPayloadError(f"{key} is not valid JSON", code="invalid_json") from exc


def _flag(body: Mapping[str, Any], key: str) -> bool:
    return _text(body, key) in {"1", "true"}


def _read_params(body: Mapping[str, Any], caller: Caller) -> ReadParams:
    return ReadParams(office=_text(body, "office") or caller.office_id, nocache=_flag(body, "nocache"))


def _parse_set(body: Mapping[str, Any], caller: Caller) -> SetStatusParams:
    payload = _json(body, "data", {})
    if not isinstance(payload, dict):
        raise InvalidPayloadError("data must be an object", code="invalid_data")
    updates = payload.get("data", {})
    if not isinstance(updates, dict) or not all(isinstance(v, dict) for v in updates.values()):
        raise InvalidPayloadError("data.data must map member ids to objects", code="invalid_data")
    return SetStatusParams(updates={str(k): v for k, v in updates.items()})


def _parse_set_tools(body: Mapping[str, Any], caller: Caller) -> SetToolsParams:
    tools = _json(body, "tools", [])
    return SetToolsParams(tools_json=json.dumps(tools, ensure_ascii=False))


def _parse_set_notices(body: Mapping[str, Any], caller: Caller) -> SetNoticesParams:
    notices = _json(body, "notices", [])
    if not isinstance(notices, list) or not all(isinstance(n, dict) for n in notices):
        raise InvalidPayloadError("notices must be a list of objects", code="invalid_notices")
    return SetNoticesParams(notices=notices)


def _parse_set_vacation(body: Mapping[str, Any], caller: Caller) -> SetVacationParams:
    key = "vacations" if body.get("vacations") not in (None, "") else "data"
    raw = _json(body, key, None)
    if raw is None:
        raise InvalidPayloadError("vacations are required")
    items = raw if isinstance(raw, list) else [raw]
    if not all(isinstance(item, dict) for item in items):
        raise InvalidPayloadError("vacations must be objects", code="invalid_vacation")
    for item in items:
        bits = item.get("membersBits")
        if bits is not None and not isinstance(bits, str):
            raise InvalidPayloadError("membersBits must be a string", code="invalid_members_bits")
    return SetVacationParams(items=items)


def _parse_delete_vacation(body: Mapping[str, Any], caller: Caller) -> DeleteVacationParams:
    vacation_id = _text(body, "id")
    if not vacation_id:
        raise InvalidPayloadError("id is required")
    return DeleteVacationParams(id=vacation_id)


def _parse_set_bits(body: Mapping[str, Any], caller: Caller) -> SetVacationBitsParams:
    payload = _json(body, "data", {})
    if not isinstance(payload, dict) or not payload.get("id"):
        raise InvalidPayloadError("data.id is required")
    bits = payload.get("membersBits") or ""
    if not isinstance(bits, str):
        raise InvalidPayloadError("membersBits must be a string", code="invalid_members_bits")
    return SetVacationBitsParams(id=str(payload["id"]), members_bits=bits)


def _parse_event_members(body: Mapping[str, Any], caller: Caller) -> EventMembersParams:
    event_id = _text(body, "id")
    if not event_id:
        raise InvalidPayloadError("id is required")
    return EventMembersParams(
        office=_text(body, "office") or caller.office_id,
        event_id=event_id,
        date=_text(body, "date") or "",
    )


_PARSERS: Dict[Action, Callable[[Mapping[str, Any], Caller], Params]] = {
    Action.LOGIN: lambda body, caller: LoginParams(
        office=_text(body, "office") or "", password=_text(body, "password") or ""
    ),
    Action.GET_CONFIG: _read_params,
    Action.PUBLIC_LIST_OFFICES: lambda body, caller: NoParams(),
    Action.LIST_OFFICES: lambda body, caller: NoParams(),
    Action.GET: lambda body, caller: GetStatusParams(
        since=coerce_timestamp(body.get("since")), nocache=_flag(body, "nocache")
    ),
    Action.SET: _parse_set,
    Action.GET_TOOLS: _read_params,
    Action.SET_TOOLS: _parse_set_tools,
    Action.GET_NOTICES: _read_params,
    Action.SET_NOTICES: _parse_set_notices,
    Action.GET_VACATION: _read_params,
    Action.SET_VACATION: _parse_set_vacation,
    Action.DELETE_VACATION: _parse_delete_vacation,
    Action.SET_VACATION_BITS: _parse_set_bits,
    Action.GET_EVENT_MEMBERS: _parse_event_members,
}


def parse_request(body: Mapping[str, Any]) -> ActionRequest:
    raw_action = _text(body, "action")
    try:
        action = Action(raw_action)
    except ValueError as exc:
        raise UnknownActionError(raw_action) from exc
    caller = Caller(office_id=_text(body, "tokenOffice") or "", role=_text(body, "tokenRole") or "")
    return ActionRequest(action=action, caller=caller, params=_PARSERS[action](body, caller))


__all__ = [
    "Action",
    "Caller",
    "NoParams",
    "LoginParams",
    "ReadParams",
    "GetStatusParams",
    "SetStatusParams",
    "SetToolsParams",
    "SetNoticesParams",
    "SetVacationParams",
    "DeleteVacationParams",
    "SetVacationBitsParams",
    "EventMembersParams",
    "ActionRequest",
    "parse_request",
]
