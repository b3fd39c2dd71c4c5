from __future__ import annotations

import json
import os
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Iterable

import aiosqlite

from ..models import DangerousMode, GuildPolicy, LogFlags, RoleAction, RolePolicy, SavedRoles


def _sqlite_busy_timeout_ms() -> int:
    raw = os.getenv("WARDEN_SQLITE_BUSY_TIMEOUT_MS", "5000").strip()
    try:
        timeout = int(raw)
    except ValueError:
        timeout = 5000
    return max(0, min(timeout, 60000))


@asynccontextmanager
async def _sqlite_connection(db_path: str | Path) -> AsyncIterator[aiosqlite.Connection]:
    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA foreign_keys=ON")
        timeout_ms = _sqlite_busy_timeout_ms()
        if timeout_ms > 0:
            await db.execute(f"PRAGMA busy_timeout={timeout_ms}")
        yield db


_ID_LIMIT = 1 << 64
_SIGNED_LIMIT = 1 << 63


def to_db_id(value: object) -> int:
    """Fold an unsigned 64-bit snowflake into the signed range of an INTEGER/BIGINT column."""
    ident = int(value)  # type: ignore[call-overload]
    if not 0 <= ident < _ID_LIMIT:
        raise ValueError(f"id {ident} is outside the unsigned 64-bit range")
    return ident - _ID_LIMIT if ident >= _SIGNED_LIMIT else ident


def from_db_id(value: object) -> int:
    ident = int(value or 0)  # type: ignore[call-overload]
    return ident + _ID_LIMIT if ident < 0 else ident


def encode_role_ids(role_ids: Iterable[int] | None) -> str | None:
    if role_ids is None:
        return None
    return json.dumps(sorted({int(role_id) for role_id in role_ids}))


def decode_role_ids(raw: object) -> frozenset[int] | None:
    if raw is None:
        return None
    try:
        values = json.loads(str(raw))
    except ValueError:
        return frozenset()
    if not isinstance(values, list):
        return frozenset()
    result: set[int] = set()
    for value in values:
        try:
            result.add(int(value))
        except (TypeError, ValueError):
            continue
    return frozenset(result)


def _enum_or_default(enum_type, raw: object, default):  # type: ignore[no-untyped-def]
    try:
        return enum_type(int(raw))  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default


def guild_policy_from_row(row) -> GuildPolicy:  # type: ignore[no-untyped-def]
    return GuildPolicy(
        guild_id=from_db_id(row["guild_id"]),
        default_action=_enum_or_default(RoleAction, row["default_action"], RoleAction.UNSET),
        dangerous_mode=_enum_or_default(DangerousMode, row["dangerous_mode"], DangerousMode.IGNORE_IF_UNSET),
        log_channel_id=from_db_id(row["log_channel_id"]),
        log_flags=LogFlags(int(row["log_flags"] or 0) & (LogFlags.SAVED | LogFlags.RESTORED)),
    )


def role_policy_from_row(row) -> RolePolicy:  # type: ignore[no-untyped-def]
    return RolePolicy(
        role_id=from_db_id(row["role_id"]),
        guild_id=from_db_id(row["guild_id"]),
        action=_enum_or_default(RoleAction, row["action"], RoleAction.UNSET),
    )


def saved_roles_from_row(row) -> SavedRoles:  # type: ignore[no-untyped-def]
    return SavedRoles(
        guild_id=from_db_id(row["guild_id"]),
        user_id=from_db_id(row["user_id"]),
        role_ids=decode_role_ids(row["role_ids"]),
        timestamp=int(row["timestamp"] or 0),
    )
