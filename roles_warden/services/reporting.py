from __future__ import annotations

import logging
from typing import Any, Iterable

import discord

from .. import __version__
from ..models import GuildPolicy, LogFlags, RestoreReport, SavedRoles

logger = logging.getLogger("roles_warden")


def create_embed() -> discord.Embed:
    embed = discord.Embed()
    embed.set_footer(text=f"roles-warden v{__version__}")
    return embed


FIELD_VALUE_LIMIT = 1024


def join_within(items: Iterable[str], separator: str = ", ", limit: int = FIELD_VALUE_LIMIT) -> str:
    """Join whole items up to `limit` characters, summarising the rest as `… (+N more)`."""
    values = list(items)
    joined = separator.join(values)
    if len(joined) <= limit:
        return joined
    kept: list[str] = []
    for index, value in enumerate(values):
        candidate = separator.join([*kept, value])
        tail = f"{separator}… (+{len(values) - index - 1} more)"
        if len(candidate) + len(tail) > limit:
            break
        kept.append(value)
    tail = f"… (+{len(values) - len(kept)} more)"
    return separator.join([*kept, tail]) if kept else tail


def role_mentions(role_ids: Iterable[int], limit: int = FIELD_VALUE_LIMIT) -> str:
    return join_within((f"<@&{role_id}>" for role_id in role_ids), limit=limit)


def restored_embed(report: RestoreReport) -> discord.Embed:
    embed = create_embed()
    embed.title = "User roles restored"
    embed.add_field(name="User", value=f"<@{report.user_id}>", inline=True)
    applied = report.applied
    embed.add_field(name="Roles", value=role_mentions(applied) if applied else "No roles restored", inline=False)
    if report.failed:
        lines = [f"<@&{item.role_id}> - {item.reason}" for item in report.failed]
        embed.add_field(name="Failed", value=join_within(lines, "\n"), inline=False)
    return embed


def saved_embed(saved: SavedRoles) -> discord.Embed:
    # Roles are saved on every member update; this only reports the record on leave.
    embed = create_embed()
    embed.title = "User roles saved"
    embed.add_field(name="User", value=f"<@{saved.user_id}>", inline=True)
    if saved.role_ids:
        embed.add_field(name="Roles", value=role_mentions(saved.ordered_role_ids()), inline=False)
    else:
        embed.add_field(name="Roles", value="No roles saved", inline=False)
    return embed


def can_log_to(channel: Any) -> bool:
    guild = getattr(channel, "guild", None)
    if guild is None:
        return False
    me = guild.me
    if me is None:
        return False
    if not me.guild_permissions.manage_roles:
        return False
    perms = channel.permissions_for(me)
    return bool(perms.send_messages and perms.embed_links)


class LogReporter:
    def resolve_log_channel(self, guild: Any, policy: GuildPolicy, flag: LogFlags) -> Any | None:
        if not policy.logs(flag):
            return None
        channel = guild.get_channel(policy.log_channel_id)
        if channel is None:
            logger.debug("Log channel %s missing in guild=%s", policy.log_channel_id, guild.id)
            return None
        if not can_log_to(channel):
            logger.debug("Missing permissions for log channel %s in guild=%s", channel.id, guild.id)
            return None
        return channel

    async def _send(self, channel: Any, embed: discord.Embed) -> bool:
        try:
            await channel.send(embed=embed)
        except discord.HTTPException as exc:
            logger.warning("Failed to post warden log to channel=%s: %s", getattr(channel, "id", "?"), exc)
            return False
        return True

    async def report_restored(self, guild: Any, policy: GuildPolicy, report: RestoreReport) -> bool:
        channel = self.resolve_log_channel(guild, policy, LogFlags.RESTORED)
        if channel is None:
            return False
        return await self._send(channel, restored_embed(report))

    async def report_saved(self, guild: Any, policy: GuildPolicy, saved: SavedRoles) -> bool:
        channel = self.resolve_log_channel(guild, policy, LogFlags.SAVED)
        if channel is None:
            return False
        return await self._send(channel, saved_embed(saved))
