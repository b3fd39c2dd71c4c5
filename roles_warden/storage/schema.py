from __future__ import annotations

import os
from pathlib import Path

import aiosqlite

from .utils import _sqlite_connection


class WardenSchemaMixin:
    SCHEMA_VERSION = 3

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    @staticmethod
    def _allow_destructive_reset_on_mismatch() -> bool:
        raw = os.getenv("WARDEN_SQLITE_RESET_ON_SCHEMA_MISMATCH", "")
        return raw.strip().lower() in {"1", "true", "yes", "y", "on"}

    async def _has_user_tables(self, db: aiosqlite.Connection) -> bool:
        async with db.execute(
            """
            SELECT 1
            FROM sqlite_master
            WHERE type = 'table'
              AND name NOT LIKE 'sqlite_%'
            LIMIT 1
            """
        ) as cursor:
            row = await cursor.fetchone()
        return bool(row)

    async def init(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("PRAGMA journal_mode=WAL")
            async with db.execute("PRAGMA user_version") as cursor:
                row = await cursor.fetchone()
            version = int(row[0]) if row else 0
            has_tables = await self._has_user_tables(db)

            if version > self.SCHEMA_VERSION:
                if has_tables and self._allow_destructive_reset_on_mismatch():
                    await self._reset_schema(db)
                    await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")
                    await db.commit()
                    return
                raise RuntimeError(
                    "SQLite schema version mismatch detected (database is newer than this bot build). "
                    f"Found user_version={version}, supported={self.SCHEMA_VERSION}. "
                    "Set WARDEN_SQLITE_RESET_ON_SCHEMA_MISMATCH=1 to allow destructive reset."
                )

            if not has_tables:
                await self._create_schema(db)
            else:
                await self._migrate_schema(db, version)
                await self._create_schema(db)
            if version != self.SCHEMA_VERSION:
                await db.execute(f"PRAGMA user_version = {self.SCHEMA_VERSION}")

            await db.commit()

    async def _reset_schema(self, db: aiosqlite.Connection) -> None:
        for table in ("saved_roles", "role_policies", "guild_policies"):
            await db.execute(f"DROP TABLE IF EXISTS {table}")
        await self._create_schema(db)

    async def _table_columns(self, db: aiosqlite.Connection, table_name: str) -> set[str]:
        cols: set[str] = set()
        async with db.execute(f"PRAGMA table_info({table_name})") as cursor:
            rows = await cursor.fetchall()
        for row in rows:
            cols.add(str(row[1]))
        return cols

    async def _add_column_if_missing(self, db: aiosqlite.Connection, table_name: str, column_sql: str) -> None:
        column_name = str(column_sql.split()[0]).strip()
        if not column_name:
            return
        cols = await self._table_columns(db, table_name)
        if not cols or column_name in cols:
            return
        await db.execute(f"ALTER TABLE {table_name} ADD COLUMN {column_sql}")

    async def _migrate_schema(self, db: aiosqlite.Connection, from_version: int) -> None:
        if from_version < 2:
            await self._migrate_v2_log_columns(db)
        if from_version < 3:
            await self._migrate_v3_dangerous_mode(db)
        # Idempotent; repairs databases left half-migrated.
        await self._migrate_v2_log_columns(db)
        await self._migrate_v3_dangerous_mode(db)

    async def _migrate_v2_log_columns(self, db: aiosqlite.Connection) -> None:
        await self._add_column_if_missing(db, "guild_policies", "log_channel_id INTEGER NOT NULL DEFAULT 0")
        await self._add_column_if_missing(db, "guild_policies", "log_flags INTEGER NOT NULL DEFAULT 0")

    async def _migrate_v3_dangerous_mode(self, db: aiosqlite.Connection) -> None:
        cols = await self._table_columns(db, "guild_policies")
        if "ignore_admin" in cols and "dangerous_mode" not in cols:
            await db.execute("ALTER TABLE guild_policies RENAME COLUMN ignore_admin TO dangerous_mode")

    async def _create_schema(self, db: aiosqlite.Connection) -> None:
        await db.executescript(
            """
            CREATE TABLE IF NOT EXISTS guild_policies (
                guild_id INTEGER PRIMARY KEY,
                default_action INTEGER NOT NULL DEFAULT 0,
                dangerous_mode INTEGER NOT NULL DEFAULT 0,
                log_channel_id INTEGER NOT NULL DEFAULT 0,
                log_flags INTEGER NOT NULL DEFAULT 0,
                updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE TABLE IF NOT EXISTS role_policies (
                role_id INTEGER PRIMARY KEY,
                guild_id INTEGER NOT NULL,
                action INTEGER NOT NULL,
                updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            );

            CREATE INDEX IF NOT EXISTS idx_role_policies_guild
            ON role_policies(guild_id);

            CREATE TABLE IF NOT EXISTS saved_roles (
                guild_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                role_ids TEXT,
                timestamp INTEGER NOT NULL DEFAULT 0,
                PRIMARY KEY (guild_id, user_id)
            );

            CREATE INDEX IF NOT EXISTS idx_saved_roles_guild
            ON saved_roles(guild_id);
            """
        )
