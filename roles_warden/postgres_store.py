from __future__ import annotations

import asyncio
import logging
from typing import Dict, Iterable, List

import asyncpg

from .clock import MonotonicClock
from .models import GuildPolicy, RoleAction, RolePolicy, SavedRoles
from .storage.utils import (
    encode_role_ids,
    guild_policy_from_row,
    role_policy_from_row,
    saved_roles_from_row,
    to_db_id,
)


logger = logging.getLogger("roles_warden")


class PostgresWardenStore:
    """Postgres-backed store implementing the same API as WardenStore."""

    SCHEMA_VERSION = 3
    backend_name = "postgres"

    def __init__(self, dsn: str, clock: MonotonicClock | None = None) -> None:
        self.dsn = dsn.strip()
        if not self.dsn:
            raise ValueError("WARDEN_POSTGRES_DSN cannot be empty")
        self.clock = clock or MonotonicClock()
        self._pool: asyncpg.Pool | None = None
        self._init_lock = asyncio.Lock()
        self._initialized = False

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(
                dsn=self.dsn,
                min_size=1,
                max_size=6,
                command_timeout=30.0,
            )
        return self._pool

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        self._initialized = False

    async def ping(self) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")

    async def init(self) -> None:
        async with self._init_lock:
            if self._initialized:
                return
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                async with conn.transaction():
                    version = await self._get_schema_version(conn)
                    if version > self.SCHEMA_VERSION:
                        raise RuntimeError(
                            f"Postgres warden schema version {version} is newer than supported {self.SCHEMA_VERSION}. "
                            "Upgrade the bot before starting."
                        )
                    await self._migrate_schema(conn)
                    await self._create_schema(conn)
                    if version != self.SCHEMA_VERSION:
                        await self._set_schema_version(conn, self.SCHEMA_VERSION)
            self._initialized = True

    async def _get_schema_version(self, conn: asyncpg.Connection) -> int:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS warden_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """
        )
        row = await conn.fetchrow("SELECT value FROM warden_meta WHERE key = 'schema_version'")
        if row is None:
            return 0
        try:
            return int(str(row["value"]))
        except ValueError:
            return 0

    async def _set_schema_version(self, conn: asyncpg.Connection, version: int) -> None:
        await conn.execute(
            """
            INSERT INTO warden_meta (key, value, updated_at)
            VALUES ('schema_version', $1, NOW())
            ON CONFLICT(key) DO UPDATE SET
                value = EXCLUDED.value,
                updated_at = NOW()
            """,
            str(int(version)),
        )

    async def _migrate_schema(self, conn: asyncpg.Connection) -> None:
        exists = await conn.fetchval("SELECT to_regclass('guild_policies') IS NOT NULL")
        if not exists:
            return
        # v2: log destination columns (additive).
        await conn.execute(
            """
            ALTER TABLE guild_policies
            ADD COLUMN IF NOT EXISTS log_channel_id BIGINT NOT NULL DEFAULT 0;

            ALTER TABLE guild_policies
            ADD COLUMN IF NOT EXISTS log_flags INTEGER NOT NULL DEFAULT 0;
            """
        )
        # v3: administrator-only flag widened to the dangerous-permission mode.
        legacy = await conn.fetchval(
            """
            SELECT 1
            FROM information_schema.columns
            WHERE table_name = 'guild_policies' AND column_name = 'ignore_admin'
            """
        )
        if legacy:
            await conn.execute("ALTER TABLE guild_policies RENAME COLUMN ignore_admin TO dangerous_mode")

    async def _create_schema(self, conn: asyncpg.Connection) -> None:
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS guild_policies (
                guild_id BIGINT PRIMARY KEY,
                default_action INTEGER NOT NULL DEFAULT 0,
                dangerous_mode INTEGER NOT NULL DEFAULT 0,
                log_channel_id BIGINT NOT NULL DEFAULT 0,
                log_flags INTEGER NOT NULL DEFAULT 0,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE TABLE IF NOT EXISTS role_policies (
                role_id BIGINT PRIMARY KEY,
                guild_id BIGINT NOT NULL,
                action INTEGER NOT NULL,
                updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            );

            CREATE INDEX IF NOT EXISTS idx_role_policies_guild
            ON role_policies(guild_id);

            CREATE TABLE IF NOT EXISTS saved_roles (
                guild_id BIGINT NOT NULL,
                user_id BIGINT NOT NULL,
                role_ids TEXT,
                timestamp BIGINT NOT NULL DEFAULT 0,
                PRIMARY KEY (guild_id, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_saved_roles_guild
            ON saved_roles(guild_id);
            """
        )

    async def get_guild_policy(self, guild_id: int) -> GuildPolicy:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT guild_id, default_action, dangerous_mode, log_channel_id, log_flags
                FROM guild_policies
                WHERE guild_id = $1
                """,
                to_db_id(guild_id),
            )
        if row is None:
            return GuildPolicy.default(guild_id)
        return guild_policy_from_row(row)

    async def set_guild_policy(self, policy: GuildPolicy) -> None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO guild_policies (guild_id, default_action, dangerous_mode, log_channel_id, log_flags, updated_at)
                VALUES ($1, $2, $3, $4, $5, NOW())
                ON CONFLICT(guild_id) DO UPDATE SET
                    default_action = EXCLUDED.default_action,
                    dangerous_mode = EXCLUDED.dangerous_mode,
                    log_channel_id = EXCLUDED.log_channel_id,
                    log_flags = EXCLUDED.log_flags,
                    updated_at = NOW()
                """,
                to_db_id(policy.guild_id),
                int(policy.default_action),
                int(policy.dangerous_mode),
                to_db_id(policy.log_channel_id),
                int(policy.log_flags),
            )

    async def remove_guild_policy(self, guild_id: int) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            status = await conn.execute("DELETE FROM guild_policies WHERE guild_id = $1", to_db_id(guild_id))
        return _affected(status) > 0

    async def get_role_policy(self, role_id: int, guild_id: int) -> RolePolicy:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT role_id, guild_id, action FROM role_policies WHERE role_id = $1",
                to_db_id(role_id),
            )
        if row is None:
            return RolePolicy.default(role_id, guild_id)
        return role_policy_from_row(row)

    async def get_role_policies(self, role_ids: Iterable[int], default_guild_id: int = 0) -> Dict[int, RolePolicy]:
        wanted = [int(role_id) for role_id in role_ids]
        found: Dict[int, RolePolicy] = {}
        if wanted:
            pool = await self._ensure_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    "SELECT role_id, guild_id, action FROM role_policies WHERE role_id = ANY($1::bigint[])",
                    [to_db_id(role_id) for role_id in wanted],
                )
            for row in rows:
                policy = role_policy_from_row(row)
                found[policy.role_id] = policy
        return {role_id: found.get(role_id) or RolePolicy.default(role_id, default_guild_id) for role_id in wanted}

    async def get_guild_role_policies(self, guild_id: int) -> List[RolePolicy]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT role_id, guild_id, action FROM role_policies WHERE guild_id = $1 ORDER BY role_id",
                to_db_id(guild_id),
            )
        return sorted((role_policy_from_row(row) for row in rows), key=lambda policy: policy.role_id)

    async def set_role_policy(self, policy: RolePolicy) -> None:
        if policy.action is RoleAction.UNSET:
            await self.remove_role_policy(policy.role_id)
            return
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO role_policies (role_id, guild_id, action, updated_at)
                VALUES ($1, $2, $3, NOW())
                ON CONFLICT(role_id) DO UPDATE SET
                    guild_id = EXCLUDED.guild_id,
                    action = EXCLUDED.action,
                    updated_at = NOW()
                """,
                to_db_id(policy.role_id),
                to_db_id(policy.guild_id),
                int(policy.action),
            )

    async def remove_role_policy(self, role_id: int) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            status = await conn.execute("DELETE FROM role_policies WHERE role_id = $1", to_db_id(role_id))
        return _affected(status) > 0

    async def clear_guild_role_policies(self, guild_id: int) -> int:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            status = await conn.execute("DELETE FROM role_policies WHERE guild_id = $1", to_db_id(guild_id))
        return _affected(status)

    async def get_saved_roles(self, guild_id: int, user_id: int) -> SavedRoles:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT guild_id, user_id, role_ids, timestamp
                FROM saved_roles
                WHERE guild_id = $1 AND user_id = $2
                """,
                to_db_id(guild_id),
                to_db_id(user_id),
            )
        if row is None:
            return SavedRoles(guild_id=int(guild_id), user_id=int(user_id))
        return saved_roles_from_row(row)

    async def set_saved_roles(self, guild_id: int, user_id: int, role_ids: Iterable[int]) -> SavedRoles:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO saved_roles (guild_id, user_id, role_ids, timestamp)
                VALUES ($1, $2, $3, $4)
                ON CONFLICT(guild_id, user_id) DO UPDATE SET
                    role_ids = EXCLUDED.role_ids,
                    timestamp = GREATEST(EXCLUDED.timestamp, saved_roles.timestamp + 1)
                RETURNING guild_id, user_id, role_ids, timestamp
                """,
                to_db_id(guild_id),
                to_db_id(user_id),
                encode_role_ids(role_ids),
                self.clock.now_ms(),
            )
        return saved_roles_from_row(row)

    async def remove_saved_roles(self, guild_id: int, user_id: int) -> bool:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            status = await conn.execute(
                "DELETE FROM saved_roles WHERE guild_id = $1 AND user_id = $2",
                to_db_id(guild_id),
                to_db_id(user_id),
            )
        return _affected(status) > 0

    async def clear_guild_saved_roles(self, guild_id: int) -> int:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            status = await conn.execute("DELETE FROM saved_roles WHERE guild_id = $1", to_db_id(guild_id))
        return _affected(status)

    async def count_saved_roles(self, guild_id: int) -> int:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            value = await conn.fetchval("SELECT COUNT(*) FROM saved_roles WHERE guild_id = $1", to_db_id(guild_id))
        return int(value or 0)

    async def clear_guild(self, guild_id: int) -> tuple[bool, int, int]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            async with conn.transaction():
                policy_status = await conn.execute("DELETE FROM guild_policies WHERE guild_id = $1", to_db_id(guild_id))
                roles_status = await conn.execute("DELETE FROM role_policies WHERE guild_id = $1", to_db_id(guild_id))
                saved_status = await conn.execute("DELETE FROM saved_roles WHERE guild_id = $1", to_db_id(guild_id))
        return _affected(policy_status) > 0, _affected(roles_status), _affected(saved_status)


def _affected(status: str) -> int:
    # asyncpg returns command tags such as "DELETE 3".
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0
