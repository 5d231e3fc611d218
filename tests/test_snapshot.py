"""Tests for the watermark gate and the status snapshot cache."""

import sqlite3

import pytest

from presence_board.cache import BackgroundTasks, last_update_key, status_key
from presence_board.errors import StoreError
from presence_board.models import MemberStatus, SnapshotEntry
from presence_board.snapshot import SnapshotCache, compute_max_updated
from presence_board.watermark import WatermarkGate

from conftest import OFFICE


@pytest.fixture
def background():
    return BackgroundTasks()


@pytest.fixture
def snapshots(database, cache, background):
    return SnapshotCache(database, cache, background, ttl_seconds=60)


class TestComputeMaxUpdated:
    def test_ignores_missing_and_non_finite_stamps(self):
        members = {
            "a": MemberStatus(updated=10),
            "b": MemberStatus(updated=float("nan")),
            "c": MemberStatus(updated=None),
            "d": MemberStatus(updated=30),
        }
        assert compute_max_updated(members) == 30

    def test_fallback_when_nothing_is_stamped(self):
        assert compute_max_updated({}, fallback=42) == 42
        assert compute_max_updated({"a": MemberStatus(updated=0)}, fallback=42) == 42


class TestWatermarkGate:
    @pytest.mark.asyncio
    async def test_absent_watermark_is_not_fresh(self, cache):
        gate = WatermarkGate(cache, 3600)
        result = await gate.check(OFFICE, 100)
        assert not result.fresh
        assert result.watermark is None

    @pytest.mark.asyncio
    async def test_fresh_when_watermark_not_newer_than_since(self, cache):
        gate = WatermarkGate(cache, 3600)
        await gate.advance(OFFICE, 500)
        assert (await gate.check(OFFICE, 500)).fresh
        assert (await gate.check(OFFICE, 900)).watermark == 500
        stale = await gate.check(OFFICE, 499)
        assert not stale.fresh
        assert stale.watermark == 500

    @pytest.mark.asyncio
    async def test_since_zero_never_consults_the_gate(self, cache):
        gate = WatermarkGate(cache, 3600)
        await gate.advance(OFFICE, 500)
        assert not (await gate.check(OFFICE, 0)).fresh

    @pytest.mark.asyncio
    async def test_advance_never_moves_backwards(self, cache):
        gate = WatermarkGate(cache, 3600)
        assert await gate.advance(OFFICE, 900) == 900
        assert await gate.advance(OFFICE, 300) == 900
        assert await cache.get(last_update_key(OFFICE)) == "900"


class TestSnapshotCache:
    @pytest.mark.asyncio
    async def test_refresh_reads_store_once_and_caches(self, snapshots, database, cache, background, clock):
        entry = await snapshots.refresh_from_store(OFFICE, clock(), fallback=1)
        assert database.status_reads == 1
        assert set(entry.members) == {"m1", "m2", "m3"}
        assert entry.max_updated == 700
        await background.drain()
        cached = SnapshotEntry.loads(await cache.get(status_key(OFFICE)))
        assert cached.max_updated == 700
        assert cached.members["m2"].time == "15:00"

    @pytest.mark.asyncio
    async def test_empty_office_uses_fallback(self, snapshots, clock):
        entry = await snapshots.refresh_from_store("nowhere", clock(), fallback=1234)
        assert entry.members == {}
        assert entry.max_updated == 1234

    @pytest.mark.asyncio
    async def test_read_fresh_respects_ttl(self, snapshots, background, clock):
        await snapshots.refresh_from_store(OFFICE, clock())
        await background.drain()
        start = clock()
        assert await snapshots.read_fresh(OFFICE, start + 60_000) is not None
        assert await snapshots.read_fresh(OFFICE, start + 60_001) is None

    @pytest.mark.asyncio
    async def test_store_error_propagates_without_cache_write(self, snapshots, database, cache, background, clock):
        def fail(office_id):
            raise sqlite3.OperationalError("disk I/O error")

        database.list_member_statuses = fail
        with pytest.raises(StoreError):
            await snapshots.refresh_from_store(OFFICE, clock())
        await background.drain()
        assert await cache.get(status_key(OFFICE)) is None

    @pytest.mark.asyncio
    async def test_corrupt_entry_reads_as_miss(self, snapshots, cache, clock):
        await cache.put(status_key(OFFICE), "not json", 60)
        assert await snapshots.read_fresh(OFFICE, clock()) is None

    @pytest.mark.asyncio
    async def test_warm_merges_updates_and_raises_max(self, snapshots, background, clock):
        await snapshots.refresh_from_store(OFFICE, clock())
        await background.drain()
        assert await snapshots.warm(OFFICE, {"m3": {"status": "在宅勤務"}}, 5000)
        entry = await snapshots.read(OFFICE)
        assert entry.members["m3"].status == "在宅勤務"
        assert entry.members["m3"].updated == 5000
        assert entry.members["m1"].status == "在席"
        assert entry.max_updated == 5000

    @pytest.mark.asyncio
    async def test_warm_without_entry_is_a_no_op(self, snapshots, cache):
        assert not await snapshots.warm(OFFICE, {"m1": {"status": "x"}}, 5000)
        assert await cache.get(status_key(OFFICE)) is None
