from __future__ import annotations

from typing import Any

from .clock import MonotonicClock
from .config import Settings
from .store import WardenStore


def build_store(settings: Settings, clock: MonotonicClock | None = None) -> Any:
    if settings.backend == "sqlite":
        return WardenStore(settings.sqlite_path, clock=clock)

    if not settings.postgres_dsn:
        raise ValueError("WARDEN_POSTGRES_DSN is required when WARDEN_BACKEND=postgres")

    from .postgres_store import PostgresWardenStore

    return PostgresWardenStore(settings.postgres_dsn, clock=clock)
