from __future__ import annotations

from typing import Iterable

import aiosqlite

from ..models import SavedRoles
from .utils import _sqlite_connection, encode_role_ids, saved_roles_from_row, to_db_id


class SavedRolesMixin:
    async def get_saved_roles(self, guild_id: int, user_id: int) -> SavedRoles:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT guild_id, user_id, role_ids, timestamp
                FROM saved_roles
                WHERE guild_id = ? AND user_id = ?
                """,
                (to_db_id(guild_id), to_db_id(user_id)),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return SavedRoles(guild_id=int(guild_id), user_id=int(user_id))
        return saved_roles_from_row(row)

    async def set_saved_roles(self, guild_id: int, user_id: int, role_ids: Iterable[int]) -> SavedRoles:
        encoded = encode_role_ids(role_ids)
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            # Stored timestamp always moves forward for the key, whatever the clock says.
            await db.execute(
                """
                INSERT INTO saved_roles (guild_id, user_id, role_ids, timestamp)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(guild_id, user_id) DO UPDATE SET
                    role_ids = excluded.role_ids,
                    timestamp = MAX(excluded.timestamp, saved_roles.timestamp + 1)
                """,
                (to_db_id(guild_id), to_db_id(user_id), encoded, self.clock.now_ms()),
            )
            async with db.execute(
                """
                SELECT guild_id, user_id, role_ids, timestamp
                FROM saved_roles
                WHERE guild_id = ? AND user_id = ?
                """,
                (to_db_id(guild_id), to_db_id(user_id)),
            ) as cursor:
                row = await cursor.fetchone()
            await db.commit()
        return saved_roles_from_row(row)

    async def remove_saved_roles(self, guild_id: int, user_id: int) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute(
                "DELETE FROM saved_roles WHERE guild_id = ? AND user_id = ?",
                (to_db_id(guild_id), to_db_id(user_id)),
            )
            await db.commit()
            return cursor.rowcount > 0

    async def clear_guild_saved_roles(self, guild_id: int) -> int:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute("DELETE FROM saved_roles WHERE guild_id = ?", (to_db_id(guild_id),))
            await db.commit()
            return max(0, cursor.rowcount)

    async def count_saved_roles(self, guild_id: int) -> int:
        async with _sqlite_connection(self.db_path) as db:
            async with db.execute("SELECT COUNT(*) FROM saved_roles WHERE guild_id = ?", (to_db_id(guild_id),)) as cursor:
                row = await cursor.fetchone()
        return int(row[0]) if row else 0
