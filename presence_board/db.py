"""SQLite record store for the presence board."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, TypeVar

from .errors import StoreError
from .models import Member, MemberStatus, Notice, Office, Vacation

Connection = sqlite3.Connection
Row = sqlite3.Row

# wire field -> column
STATUS_COLUMNS = {
    "status": "status",
    "time": "time",
    "note": "note",
    "workHours": "work_hours",
}


T = TypeVar("T")


async def run_store(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking store call off the event loop; SQLite errors become ``StoreError``."""

    try:
        return await asyncio.to_thread(func, *args)
    except sqlite3.Error as exc:
        raise StoreError(f"store failure: {exc}") from exc


class Database:
    """Lightweight wrapper around SQLite operations."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._initialize()

    @contextmanager
    def connect(self) -> Iterator[Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _initialize(self) -> None:
        with self.connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS offices (
                    id TEXT PRIMARY KEY,
                    name TEXT,
                    password TEXT,
                    admin_password TEXT,
                    is_public INTEGER DEFAULT 0
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS members (
                    id TEXT NOT NULL,
                    office_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    group_name TEXT,
                    display_order INTEGER DEFAULT 0,
                    status TEXT,
                    time TEXT,
                    note TEXT,
                    work_hours TEXT,
                    ext TEXT,
                    updated INTEGER,
                    PRIMARY KEY(office_id, id),
                    FOREIGN KEY(office_id) REFERENCES offices(id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS vacations (
                    id TEXT NOT NULL,
                    office_id TEXT NOT NULL,
                    title TEXT,
                    start_date TEXT,
                    end_date TEXT,
                    color TEXT,
                    visible INTEGER DEFAULT 1,
                    members_bits TEXT,
                    is_vacation INTEGER DEFAULT 1,
                    note TEXT,
                    notice_id TEXT,
                    notice_title TEXT,
                    display_order INTEGER DEFAULT 0,
                    vacancy_office TEXT,
                    updated INTEGER,
                    PRIMARY KEY(office_id, id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS notices (
                    id TEXT NOT NULL,
                    office_id TEXT NOT NULL,
                    title TEXT,
                    content TEXT,
                    visible INTEGER DEFAULT 1,
                    updated INTEGER,
                    PRIMARY KEY(office_id, id)
                )
                """
            )
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS tools_config (
                    office_id TEXT PRIMARY KEY,
                    tools_json TEXT NOT NULL,
                    updated_at INTEGER
                )
                """
            )
            conn.commit()

    # region Offices
    def upsert_office(self, office: Office) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO offices (id, name, password, admin_password, is_public)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    name=excluded.name,
                    password=excluded.password,
                    admin_password=excluded.admin_password,
                    is_public=excluded.is_public
                """,
                (office.id, office.name, office.password, office.admin_password, int(office.is_public)),
            )
            conn.commit()

    def get_office(self, office_id: str) -> Optional[Office]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM offices WHERE id = ?", (office_id,)).fetchone()
            return Office.from_row(row) if row else None

    def list_offices(self, public_only: bool = False) -> List[Dict[str, str]]:
        query = "SELECT id, name FROM offices"
        if public_only:
            query += " WHERE is_public = 1"
        with self.connect() as conn:
            rows = conn.execute(query + " ORDER BY id").fetchall()
            return [{"id": row["id"], "name": row["name"] or row["id"]} for row in rows]

    # endregion

    # region Members
    def upsert_member(self, member: Member) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO members (id, office_id, name, group_name, display_order,
                                     status, time, note, work_hours, ext, updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(office_id, id) DO UPDATE SET
                    name=excluded.name,
                    group_name=excluded.group_name,
                    display_order=excluded.display_order,
                    ext=excluded.ext
                """,
                (
                    member.id,
                    member.office_id,
                    member.name,
                    member.group,
                    member.order,
                    member.state.status,
                    member.state.time,
                    member.state.note,
                    member.state.work_hours,
                    member.ext,
                    member.state.updated or None,
                ),
            )
            conn.commit()

    def list_members(self, office_id: str) -> List[Member]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM members WHERE office_id = ? ORDER BY display_order ASC, name ASC",
                (office_id,),
            ).fetchall()
            return [Member.from_row(row) for row in rows]

    def list_member_ids(self, office_id: str) -> set[str]:
        with self.connect() as conn:
            rows = conn.execute("SELECT id FROM members WHERE office_id = ?", (office_id,)).fetchall()
            return {row["id"] for row in rows}

    def list_member_statuses(self, office_id: str) -> Dict[str, MemberStatus]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT id, status, time, note, work_hours, updated FROM members WHERE office_id = ?",
                (office_id,),
            ).fetchall()
            return {row["id"]: MemberStatus.from_row(row) for row in rows}

    def update_member_status(
        self,
        office_id: str,
        member_id: str,
        fields: Mapping[str, Any],
        updated: int,
    ) -> bool:
        """Write the supplied status fields; return False for an unknown member."""

        assignments = [f"{column} = ?" for key, column in STATUS_COLUMNS.items() if key in fields]
        values: List[Any] = [
            "" if fields[key] is None else str(fields[key]) for key in STATUS_COLUMNS if key in fields
        ]
        assignments.append("updated = ?")
        values.extend([updated, office_id, member_id])
        with self.connect() as conn:
            cursor = conn.execute(
                f"UPDATE members SET {', '.join(assignments)} WHERE office_id = ? AND id = ?",
                values,
            )
            conn.commit()
            return cursor.rowcount > 0

    # endregion

    # region Vacations
    def list_vacations(self, office_id: str, limit: int = 300) -> List[Vacation]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM vacations WHERE office_id = ? ORDER BY start_date ASC LIMIT ?",
                (office_id, limit),
            ).fetchall()
            return [Vacation.from_row(row) for row in rows]

    def get_vacation(self, office_id: str, vacation_id: str) -> Optional[Vacation]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT * FROM vacations WHERE office_id = ? AND id = ?",
                (office_id, vacation_id),
            ).fetchone()
            return Vacation.from_row(row) if row else None

    def upsert_vacations(self, vacations: Iterable[Vacation]) -> None:
        with self.connect() as conn:
            conn.executemany(
                """
                INSERT INTO vacations (id, office_id, title, start_date, end_date, color, visible,
                                       members_bits, is_vacation, note, notice_id, notice_title,
                                       display_order, vacancy_office, updated)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(office_id, id) DO UPDATE SET
                    title=excluded.title,
                    start_date=excluded.start_date,
                    end_date=excluded.end_date,
                    color=excluded.color,
                    visible=excluded.visible,
                    members_bits=excluded.members_bits,
                    is_vacation=excluded.is_vacation,
                    note=excluded.note,
                    notice_id=excluded.notice_id,
                    notice_title=excluded.notice_title,
                    display_order=excluded.display_order,
                    vacancy_office=excluded.vacancy_office,
                    updated=excluded.updated
                """,
                [
                    (
                        v.id,
                        v.office_id,
                        v.title,
                        v.start_date,
                        v.end_date,
                        v.color,
                        int(v.visible),
                        v.members_bits,
                        int(v.is_vacation),
                        v.note,
                        v.notice_id,
                        v.notice_title,
                        v.order,
                        v.vacancy_office,
                        v.updated,
                    )
                    for v in vacations
                ],
            )
            conn.commit()

    def delete_vacation(self, office_id: str, vacation_id: str) -> None:
        with self.connect() as conn:
            conn.execute(
                "DELETE FROM vacations WHERE office_id = ? AND id = ?",
                (office_id, vacation_id),
            )
            conn.commit()

    def set_vacation_bits(self, office_id: str, vacation_id: str, members_bits: str, updated: int) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(
                "UPDATE vacations SET members_bits = ?, updated = ? WHERE office_id = ? AND id = ?",
                (members_bits, updated, office_id, vacation_id),
            )
            conn.commit()
            return cursor.rowcount > 0

    # endregion

    # region Notices
    def list_notices(self, office_id: str, limit: int = 100) -> List[Notice]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM notices WHERE office_id = ? ORDER BY updated DESC LIMIT ?",
                (office_id, limit),
            ).fetchall()
            return [Notice.from_row(row) for row in rows]

    def replace_notices(self, office_id: str, notices: Iterable[Notice]) -> None:
        with self.connect() as conn:
            conn.execute("DELETE FROM notices WHERE office_id = ?", (office_id,))
            conn.executemany(
                """
                INSERT INTO notices (id, office_id, title, content, visible, updated)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                [(n.id, office_id, n.title, n.content, int(n.visible), n.updated) for n in notices],
            )
            conn.commit()

    # endregion

    # region Tools
    def get_tools(self, office_id: str) -> Optional[str]:
        with self.connect() as conn:
            row = conn.execute(
                "SELECT tools_json FROM tools_config WHERE office_id = ?",
                (office_id,),
            ).fetchone()
            return row["tools_json"] if row else None

    def set_tools(self, office_id: str, tools_json: str, updated: int) -> None:
        with self.connect() as conn:
            conn.execute(
                """
                INSERT INTO tools_config (office_id, tools_json, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(office_id) DO UPDATE SET
                    tools_json=excluded.tools_json,
                    updated_at=excluded.updated_at
                """,
                (office_id, tools_json, updated),
            )
            conn.commit()

    # endregion


__all__ = ["Database", "STATUS_COLUMNS", "run_store"]
