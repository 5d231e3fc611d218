"""Tests for row decoding, snapshot serialization and settings loading."""

import pytest

from presence_board.config import load_settings
from presence_board.models import MemberStatus, SnapshotEntry, coerce_timestamp


@pytest.mark.parametrize(
    "raw, expected",
    [(None, 0), (True, 0), ("", 0), ("12", 12), (12.9, 12), (float("inf"), 0), (-1, 0), ({}, 0)],
)
def test_coerce_timestamp(raw, expected):
    assert coerce_timestamp(raw) == expected


def test_merged_keeps_unsupplied_fields():
    state = MemberStatus(status="在席", time="09:00", note="n", work_hours="9-18", updated=1)
    merged = state.merged({"note": None, "workHours": "10-19"}, 50)
    assert merged == MemberStatus(status="在席", time="09:00", note="", work_hours="10-19", updated=50)


def test_snapshot_entry_survives_the_cache():
    entry = SnapshotEntry(cached_at=10, max_updated=20, members={"m1": MemberStatus(status="外出", updated=20)})
    restored = SnapshotEntry.loads(entry.dumps())
    assert restored == entry


@pytest.mark.parametrize("raw", ["", "[]", '{"members": 3}', "{"])
def test_corrupt_snapshot_entry(raw):
    assert SnapshotEntry.loads(raw) is None


ENV_NAMES = (
    "DATABASE_PATH",
    "STATUS_CACHE_TTL_SEC",
    "RESOURCE_CACHE_TTL_SEC",
    "WARM_ON_WRITE",
    "KV_API_URL",
    "CORS_ALLOW_ORIGINS",
)


@pytest.fixture
def clean_env(monkeypatch):
    # set then delete so monkeypatch also removes anything an env file loads
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestLoadSettings:
    def test_defaults(self, clean_env, tmp_path):
        settings = load_settings(str(tmp_path / "missing.env"))
        assert settings.status_cache_ttl_sec == 60
        assert settings.resource_cache_ttl_sec == 3600
        assert settings.warm_on_write is False
        assert settings.kv_api_url is None
        assert settings.cors_allow_origins == ["*"]

    def test_env_file_values(self, clean_env, tmp_path):
        env = tmp_path / "board.env"
        env.write_text(
            "STATUS_CACHE_TTL_SEC=30\nWARM_ON_WRITE=true\nCORS_ALLOW_ORIGINS=https://a.example, https://b.example\n"
        )
        settings = load_settings(str(env))
        assert settings.status_cache_ttl_sec == 30
        assert settings.warm_on_write is True
        assert settings.cors_allow_origins == ["https://a.example", "https://b.example"]

    def test_invalid_ttl(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("STATUS_CACHE_TTL_SEC", "soon")
        with pytest.raises(RuntimeError):
            load_settings(str(tmp_path / "missing.env"))
