"""Configuration helpers for the presence board."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv


@dataclass(slots=True)
class Settings:
    """Runtime configuration values loaded from environment variables."""

    database_path: Path
    default_office: str = ""
    status_cache_ttl_sec: int = 60
    resource_cache_ttl_sec: int = 3600
    warm_on_write: bool = False
    kv_api_url: Optional[str] = None
    kv_api_token: Optional[str] = None
    kv_timeout_sec: float = 5.0
    cors_allow_origins: List[str] = field(default_factory=lambda: ["*"])


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc
    if value <= 0:
        raise RuntimeError(f"{name} must be positive, got {value}")
    return value


def _flag_env(name: str) -> bool:
    return os.getenv(name, "0").strip().lower() in {"1", "true", "yes", "on"}


def load_settings(env_file: str | None = None) -> Settings:
    """Load settings from the environment, optionally from a specific file."""

    if env_file:
        load_dotenv(env_file)
    else:
        load_dotenv()

    db_path = Path(os.getenv("DATABASE_PATH", "presence_board.db")).expanduser()
    origins = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOW_ORIGINS", "*").split(",")
        if origin.strip()
    ]
    try:
        kv_timeout = float(os.getenv("KV_TIMEOUT_SEC", "5"))
    except ValueError as exc:
        raise RuntimeError("KV_TIMEOUT_SEC must be a number") from exc

    return Settings(
        database_path=db_path,
        default_office=os.getenv("DEFAULT_OFFICE", ""),
        status_cache_ttl_sec=_int_env("STATUS_CACHE_TTL_SEC", 60),
        resource_cache_ttl_sec=_int_env("RESOURCE_CACHE_TTL_SEC", 3600),
        warm_on_write=_flag_env("WARM_ON_WRITE"),
        kv_api_url=os.getenv("KV_API_URL") or None,
        kv_api_token=os.getenv("KV_API_TOKEN") or None,
        kv_timeout_sec=kv_timeout,
        cors_allow_origins=origins or ["*"],
    )


__all__ = ["Settings", "load_settings"]
