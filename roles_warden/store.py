from __future__ import annotations

from pathlib import Path

from .clock import MonotonicClock
from .storage.guild_policies import GuildPoliciesMixin
from .storage.role_policies import RolePoliciesMixin
from .storage.saved_roles import SavedRolesMixin
from .storage.schema import WardenSchemaMixin
from .storage.utils import _sqlite_connection


class WardenStore(
    WardenSchemaMixin,
    GuildPoliciesMixin,
    RolePoliciesMixin,
    SavedRolesMixin,
):
    """SQLite store for guild policies, role policies and saved member roles."""

    backend_name = "sqlite"

    def __init__(self, db_path: Path, clock: MonotonicClock | None = None) -> None:
        super().__init__(db_path)
        self.clock = clock or MonotonicClock()

    async def ping(self) -> None:
        async with _sqlite_connection(self.db_path) as db:
            await db.execute("SELECT 1")

    async def close(self) -> None:
        # Connections are opened per operation.
        return None

    async def clear_guild(self, guild_id: int) -> tuple[bool, int, int]:
        policy_removed = await self.remove_guild_policy(guild_id)
        roles_cleared = await self.clear_guild_role_policies(guild_id)
        saved_cleared = await self.clear_guild_saved_roles(guild_id)
        return policy_removed, roles_cleared, saved_cleared
