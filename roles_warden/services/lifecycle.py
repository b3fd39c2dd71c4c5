from __future__ import annotations

import logging
from typing import Any

from ..models import LogFlags
from .reporting import LogReporter

logger = logging.getLogger("roles_warden")


class GuildLifecycle:
    """Cleans stored state when guilds or roles go away."""

    def __init__(self, store: Any, reporter: LogReporter) -> None:
        self.store = store
        self.reporter = reporter

    async def reset_guild(self, guild: Any, reason: str) -> None:
        try:
            policy_removed, roles_cleared, saved_cleared = await self.store.clear_guild(guild.id)
        except Exception:
            logger.exception("Clearing guild=%s failed, event dropped", guild.id)
            return
        logger.info(
            "Removed data for %s (%s): %s (policy=%s, role policies=%s, saved members=%s)",
            guild,
            guild.id,
            reason,
            policy_removed,
            roles_cleared,
            saved_cleared,
        )

    async def on_guild_remove(self, guild: Any) -> None:
        await self.reset_guild(guild, "bot is no longer at the server")

    async def on_guild_join(self, guild: Any) -> None:
        await self.reset_guild(guild, "bot joined the server, dropping stale data")

    async def on_guild_role_delete(self, role: Any) -> None:
        try:
            removed = await self.store.remove_role_policy(role.id)
        except Exception:
            logger.exception("Removing policy for role=%s failed, event dropped", role.id)
            return
        if removed:
            logger.info(
                "Removed role policy for %s (%s) => %s (%s): role was deleted",
                role.guild,
                role.guild.id,
                role,
                role.id,
            )

    async def on_member_remove(self, member: Any) -> None:
        # Saved roles stay in place so the next join can restore them.
        guild = member.guild
        try:
            policy = await self.store.get_guild_policy(guild.id)
            if not policy.logs(LogFlags.SAVED):
                return
            saved = await self.store.get_saved_roles(guild.id, member.id)
            await self.reporter.report_saved(guild, policy, saved)
        except Exception:
            logger.exception("Reporting saved roles failed (guild=%s user=%s)", guild.id, member.id)
