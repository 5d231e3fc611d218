"""Shared test fixtures.

Provides a temp SQLite database seeded with one office, an in-memory cache,
and a controllable clock shared by the cache and the service.
"""

import pytest

from presence_board.cache import MemoryCache
from presence_board.config import Settings
from presence_board.db import Database
from presence_board.errors import CacheStoreError
from presence_board.models import Member, MemberStatus, Office
from presence_board.service import PresenceService

OFFICE = "tokyo"


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = 1_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class CountingDatabase(Database):
    """Database that counts full status reads."""

    def __init__(self, path):
        super().__init__(path)
        self.status_reads = 0

    def list_member_statuses(self, office_id):
        self.status_reads += 1
        return super().list_member_statuses(office_id)


class BrokenCache:
    """Cache backend whose every call fails."""

    async def get(self, key):
        raise CacheStoreError("kv down")

    async def put(self, key, value, ttl_seconds):
        raise CacheStoreError("kv down")

    async def delete(self, key):
        raise CacheStoreError("kv down")


def seed(database: Database) -> None:
    database.upsert_office(Office(id=OFFICE, name="Tokyo", password="pw", admin_password="admin", is_public=True))
    database.upsert_office(Office(id="osaka", name="Osaka", password="pw2"))
    members = [
        Member(id="m1", office_id=OFFICE, name="Alice", group="Sales", order=1,
               state=MemberStatus(status="在席", updated=500)),
        Member(id="m2", office_id=OFFICE, name="Bob", group="Dev", order=2,
               state=MemberStatus(status="外出", time="15:00", updated=700)),
        Member(id="m3", office_id=OFFICE, name="Carol", group="Sales", order=3),
    ]
    for member in members:
        database.upsert_member(member)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def database(tmp_path):
    db = CountingDatabase(tmp_path / "board.db")
    seed(db)
    return db


@pytest.fixture
def cache(clock):
    return MemoryCache(clock)


@pytest.fixture
def settings(tmp_path):
    return Settings(database_path=tmp_path / "board.db")


@pytest.fixture
def service(settings, database, cache, clock):
    return PresenceService(settings, database, cache, clock=clock)
