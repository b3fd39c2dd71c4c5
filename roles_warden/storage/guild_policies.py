from __future__ import annotations

import aiosqlite

from ..models import GuildPolicy
from .utils import _sqlite_connection, guild_policy_from_row, to_db_id


class GuildPoliciesMixin:
    async def get_guild_policy(self, guild_id: int) -> GuildPolicy:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                """
                SELECT guild_id, default_action, dangerous_mode, log_channel_id, log_flags
                FROM guild_policies
                WHERE guild_id = ?
                """,
                (to_db_id(guild_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return GuildPolicy.default(guild_id)
        return guild_policy_from_row(row)

    async def set_guild_policy(self, policy: GuildPolicy) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO guild_policies (guild_id, default_action, dangerous_mode, log_channel_id, log_flags, updated_at)
                VALUES (?, ?, ?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(guild_id) DO UPDATE SET
                    default_action = excluded.default_action,
                    dangerous_mode = excluded.dangerous_mode,
                    log_channel_id = excluded.log_channel_id,
                    log_flags = excluded.log_flags,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (
                    to_db_id(policy.guild_id),
                    int(policy.default_action),
                    int(policy.dangerous_mode),
                    to_db_id(policy.log_channel_id),
                    int(policy.log_flags),
                ),
            )
            await db.commit()

    async def remove_guild_policy(self, guild_id: int) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute("DELETE FROM guild_policies WHERE guild_id = ?", (to_db_id(guild_id),))
            await db.commit()
            return cursor.rowcount > 0
