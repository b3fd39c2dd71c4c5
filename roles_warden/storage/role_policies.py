from __future__ import annotations

from typing import Dict, Iterable, List

import aiosqlite

from ..models import RoleAction, RolePolicy
from .utils import _sqlite_connection, role_policy_from_row, to_db_id


class RolePoliciesMixin:
    async def get_role_policy(self, role_id: int, guild_id: int) -> RolePolicy:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT role_id, guild_id, action FROM role_policies WHERE role_id = ?",
                (to_db_id(role_id),),
            ) as cursor:
                row = await cursor.fetchone()
        if row is None:
            return RolePolicy.default(role_id, guild_id)
        return role_policy_from_row(row)

    async def get_role_policies(self, role_ids: Iterable[int], default_guild_id: int = 0) -> Dict[int, RolePolicy]:
        wanted = [int(role_id) for role_id in role_ids]
        found: Dict[int, RolePolicy] = {}
        if wanted:
            placeholders = ", ".join("?" for _ in wanted)
            async with _sqlite_connection(self.db_path) as db:
                db.row_factory = aiosqlite.Row
                async with db.execute(
                    f"SELECT role_id, guild_id, action FROM role_policies WHERE role_id IN ({placeholders})",
                    tuple(to_db_id(role_id) for role_id in wanted),
                ) as cursor:
                    rows = await cursor.fetchall()
            for row in rows:
                policy = role_policy_from_row(row)
                found[policy.role_id] = policy
        return {role_id: found.get(role_id) or RolePolicy.default(role_id, default_guild_id) for role_id in wanted}

    async def get_guild_role_policies(self, guild_id: int) -> List[RolePolicy]:
        async with _sqlite_connection(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT role_id, guild_id, action FROM role_policies WHERE guild_id = ? ORDER BY role_id",
                (to_db_id(guild_id),),
            ) as cursor:
                rows = await cursor.fetchall()
        return sorted((role_policy_from_row(row) for row in rows), key=lambda policy: policy.role_id)

    async def set_role_policy(self, policy: RolePolicy) -> None:
        if policy.action is RoleAction.UNSET:
            await self.remove_role_policy(policy.role_id)
            return
        async with _sqlite_connection(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO role_policies (role_id, guild_id, action, updated_at)
                VALUES (?, ?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(role_id) DO UPDATE SET
                    guild_id = excluded.guild_id,
                    action = excluded.action,
                    updated_at = CURRENT_TIMESTAMP
                """,
                (to_db_id(policy.role_id), to_db_id(policy.guild_id), int(policy.action)),
            )
            await db.commit()

    async def remove_role_policy(self, role_id: int) -> bool:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute("DELETE FROM role_policies WHERE role_id = ?", (to_db_id(role_id),))
            await db.commit()
            return cursor.rowcount > 0

    async def clear_guild_role_policies(self, guild_id: int) -> int:
        async with _sqlite_connection(self.db_path) as db:
            cursor = await db.execute("DELETE FROM role_policies WHERE guild_id = ?", (to_db_id(guild_id),))
            await db.commit()
            return max(0, cursor.rowcount)
