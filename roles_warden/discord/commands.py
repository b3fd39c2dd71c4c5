from __future__ import annotations

import logging
from typing import Any, Callable, Iterable

import discord
from discord.ext import commands

from ..models import DangerousMode, GuildPolicy, LogFlags, RoleAction, RolePolicy
from ..permissions import describe_dangerous
from ..resolver import resolve_role_action
from ..services.reporting import can_log_to, create_embed, join_within, role_mentions

logger = logging.getLogger("roles_warden")


_ROLE_ACTION_ALIASES = {
    "persist": RoleAction.PERSIST,
    "keep": RoleAction.PERSIST,
    "ignore": RoleAction.IGNORE,
    "skip": RoleAction.IGNORE,
    "unset": RoleAction.UNSET,
    "default": RoleAction.UNSET,
}

_DANGEROUS_MODE_ALIASES = {
    "ignore_if_unset": DangerousMode.IGNORE_IF_UNSET,
    "default_only": DangerousMode.IGNORE_IF_UNSET,
    "default": DangerousMode.IGNORE_IF_UNSET,
    "always_ignore": DangerousMode.ALWAYS_IGNORE,
    "always": DangerousMode.ALWAYS_IGNORE,
    "never_ignore": DangerousMode.NEVER_IGNORE,
    "never": DangerousMode.NEVER_IGNORE,
}

_TOGGLE_ON = {"1", "on", "true", "yes", "y", "enable", "enabled"}
_TOGGLE_OFF = {"0", "off", "false", "no", "n", "disable", "disabled"}


def _normalize_word(value: str) -> str:
    return str(value or "").strip().lower().replace("-", "_").replace(" ", "_")


def parse_role_action(value: str) -> RoleAction:
    key = _normalize_word(value)
    if key not in _ROLE_ACTION_ALIASES:
        raise ValueError(f"Unknown action `{value}`. Use persist, ignore or unset.")
    return _ROLE_ACTION_ALIASES[key]


def parse_dangerous_mode(value: str) -> DangerousMode:
    key = _normalize_word(value)
    if key not in _DANGEROUS_MODE_ALIASES:
        raise ValueError(f"Unknown mode `{value}`. Use ignore_if_unset, always_ignore or never_ignore.")
    return _DANGEROUS_MODE_ALIASES[key]


def parse_toggle(value: str) -> bool:
    key = _normalize_word(value)
    if key in _TOGGLE_ON:
        return True
    if key in _TOGGLE_OFF:
        return False
    raise ValueError(f"Unknown switch `{value}`. Use on or off.")


def action_label(action: RoleAction) -> str:
    return action.name.capitalize()


def mode_label(mode: DangerousMode) -> str:
    return mode.name.replace("_", " ").capitalize()


def flags_label(flags: LogFlags) -> str:
    names = [flag.name.capitalize() for flag in (LogFlags.SAVED, LogFlags.RESTORED) if flag in flags]
    return ", ".join(names) if names else "None"


def toggle_log_flag(policy: GuildPolicy, flag: LogFlags, enable: bool) -> GuildPolicy:
    if enable:
        policy.log_flags |= flag
    else:
        policy.log_flags &= ~flag
    return policy


def role_policy_lines(
    policy: GuildPolicy,
    role_policies: Iterable[RolePolicy],
    get_role: Callable[[int], Any],
) -> list[str]:
    """Configured roles that still exist, with the action a rejoin would take."""
    lines: list[str] = []
    for role_policy in role_policies:
        if role_policy.action is RoleAction.UNSET:
            continue
        role = get_role(role_policy.role_id)
        if role is None:
            continue
        effective = resolve_role_action(policy, role_policy, role)
        line = f"<@&{role_policy.role_id}> - {action_label(role_policy.action)}"
        if effective is not role_policy.action:
            dangerous = ", ".join(describe_dangerous(role.permissions)) or "dangerous"
            line += f" (effective: {action_label(effective)}, {dangerous})"
        lines.append(line)
    return lines


def has_permission(ctx: commands.Context, permission_name: str) -> bool:
    if not ctx.guild or not isinstance(ctx.author, discord.Member):
        return False
    perms = ctx.author.guild_permissions
    return perms.administrator or bool(getattr(perms, permission_name, False))


def register_commands(bot: Any) -> None:
    store = bot.store
    prefix = bot.settings.command_prefix

    async def _guard(ctx: commands.Context) -> bool:
        if not ctx.guild:
            await ctx.send("This command works only in a server.")
            return False
        if not has_permission(ctx, "manage_roles"):
            await ctx.send("You need `Manage Roles` permission for this command.")
            return False
        return True

    async def _reply(ctx: commands.Context, description: str, *, ok: bool = True) -> None:
        embed = create_embed()
        embed.color = discord.Color.green() if ok else discord.Color.red()
        embed.description = description
        await ctx.send(embed=embed)

    @bot.command(name="warden_help")
    async def warden_help(ctx: commands.Context) -> None:
        lines = [
            "Roles Warden commands (Manage Roles):",
            f"`{prefix}warden_show` Show current configuration.",
            f"`{prefix}warden_log #channel` Set the log channel.",
            f"`{prefix}warden_log_remove` Remove the log channel.",
            f"`{prefix}warden_log_saved on|off` Log saved member roles.",
            f"`{prefix}warden_log_restored on|off` Log restored member roles.",
            f"`{prefix}warden_default persist|ignore|unset` Default action for unconfigured roles.",
            f"`{prefix}warden_dangerous ignore_if_unset|always_ignore|never_ignore` Dangerous role mode.",
            f"`{prefix}warden_role @role persist|ignore|unset` Configure one role.",
            f"`{prefix}warden_reset_roles` Reset all configured roles.",
            f"`{prefix}warden_saved @user` Show saved roles of a user.",
        ]
        await ctx.send("\n".join(lines))

    @bot.command(name="warden_show")
    async def warden_show(ctx: commands.Context) -> None:
        if not await _guard(ctx):
            return
        guild = ctx.guild
        policy = await store.get_guild_policy(guild.id)
        role_policies = await store.get_guild_role_policies(guild.id)
        saved_count = await store.count_saved_roles(guild.id)

        embed = create_embed()
        embed.title = f"Configuration for {guild.name}"
        embed.add_field(name="Default Action", value=action_label(policy.effective_default_action), inline=True)
        embed.add_field(name="Dangerous Roles", value=mode_label(policy.dangerous_mode), inline=True)

        log_text = "Not configured"
        if policy.log_channel_id:
            channel = guild.get_channel(policy.log_channel_id)
            if channel is not None and can_log_to(channel):
                log_text = f"✅ {channel.mention}"
            else:
                log_text = f"❌ <#{policy.log_channel_id}>"
        embed.add_field(name="Log Channel", value=log_text, inline=True)
        embed.add_field(name="Log Types", value=flags_label(policy.log_flags), inline=True)
        embed.add_field(name="Saved Members", value=str(saved_count), inline=True)

        lines = role_policy_lines(policy, role_policies, guild.get_role)
        embed.add_field(name="Configured Roles", value=join_within(lines, "\n") if lines else "All defaults", inline=False)
        await ctx.send(embed=embed)

    @bot.command(name="warden_log")
    async def warden_log(ctx: commands.Context, channel: discord.TextChannel) -> None:
        if not await _guard(ctx):
            return
        if channel.guild.id != ctx.guild.id:
            await _reply(ctx, "Channel must be on this server.", ok=False)
            return
        policy = await store.get_guild_policy(ctx.guild.id)
        policy.log_channel_id = channel.id
        await store.set_guild_policy(policy)

        message = f"Log channel is now set to {channel.mention}."
        if not can_log_to(channel):
            message += (
                f"\nWarning: bot is missing permissions at {channel.mention}:"
                " Manage Roles, Send Messages, Embed Links."
            )
        await _reply(ctx, message)

    @bot.command(name="warden_log_remove")
    async def warden_log_remove(ctx: commands.Context) -> None:
        if not await _guard(ctx):
            return
        policy = await store.get_guild_policy(ctx.guild.id)
        policy.log_channel_id = 0
        await store.set_guild_policy(policy)
        await _reply(ctx, "Log channel is now removed.")

    async def _set_log_flag(ctx: commands.Context, flag: LogFlags, value: str, noun: str) -> None:
        if not await _guard(ctx):
            return
        try:
            enable = parse_toggle(value)
        except ValueError as exc:
            await _reply(ctx, str(exc), ok=False)
            return
        policy = await store.get_guild_policy(ctx.guild.id)
        await store.set_guild_policy(toggle_log_flag(policy, flag, enable))
        state = "will now be logged" if enable else "will no longer be logged"
        await _reply(ctx, f"{noun} roles {state}.")

    @bot.command(name="warden_log_saved")
    async def warden_log_saved(ctx: commands.Context, value: str) -> None:
        await _set_log_flag(ctx, LogFlags.SAVED, value, "Saved")

    @bot.command(name="warden_log_restored")
    async def warden_log_restored(ctx: commands.Context, value: str) -> None:
        await _set_log_flag(ctx, LogFlags.RESTORED, value, "Restored")

    @bot.command(name="warden_default")
    async def warden_default(ctx: commands.Context, value: str) -> None:
        if not await _guard(ctx):
            return
        try:
            action = parse_role_action(value)
        except ValueError as exc:
            await _reply(ctx, str(exc), ok=False)
            return
        policy = await store.get_guild_policy(ctx.guild.id)
        policy.default_action = action
        await store.set_guild_policy(policy)
        # Stored UNSET is shown as the effective value.
        await _reply(ctx, f"Default action is now set to **{action_label(policy.effective_default_action)}**.")

    @bot.command(name="warden_dangerous")
    async def warden_dangerous(ctx: commands.Context, value: str) -> None:
        if not await _guard(ctx):
            return
        try:
            mode = parse_dangerous_mode(value)
        except ValueError as exc:
            await _reply(ctx, str(exc), ok=False)
            return
        policy = await store.get_guild_policy(ctx.guild.id)
        policy.dangerous_mode = mode
        await store.set_guild_policy(policy)
        await _reply(ctx, f"Dangerous role mode is now set to **{mode_label(mode)}**.")

    @bot.command(name="warden_role")
    async def warden_role(ctx: commands.Context, role: discord.Role, value: str) -> None:
        if not await _guard(ctx):
            return
        if role.guild.id != ctx.guild.id:
            await _reply(ctx, "Role must be on this server.", ok=False)
            return
        try:
            action = parse_role_action(value)
        except ValueError as exc:
            await _reply(ctx, str(exc), ok=False)
            return
        await store.set_role_policy(RolePolicy(role_id=role.id, guild_id=ctx.guild.id, action=action))
        await _reply(ctx, f"Role {role.mention} is now set to **{action_label(action)}**.")

    @bot.command(name="warden_reset_roles")
    async def warden_reset_roles(ctx: commands.Context) -> None:
        if not await _guard(ctx):
            return
        cleared = await store.clear_guild_role_policies(ctx.guild.id)
        await _reply(ctx, f"All configured roles reset to default ({cleared} removed).")

    @bot.command(name="warden_saved")
    async def warden_saved(ctx: commands.Context, user: discord.User) -> None:
        if not await _guard(ctx):
            return
        saved = await store.get_saved_roles(ctx.guild.id, user.id)
        if not saved.exists:
            await _reply(ctx, f"No roles saved for <@{user.id}>.")
            return
        roles_text = role_mentions(saved.ordered_role_ids()) or "No roles"
        await _reply(ctx, f"Saved roles for <@{user.id}> (<t:{saved.timestamp // 1000}:R>):\n{roles_text}"[:4000])

    @bot.event
    async def on_command_error(ctx: commands.Context, error: commands.CommandError) -> None:
        if isinstance(error, commands.CommandNotFound):
            return
        if isinstance(error, (commands.MissingRequiredArgument, commands.BadArgument)):
            await ctx.send(f"Invalid arguments. Use `{prefix}warden_help`.")
            return
        logger.exception("Command error: %s", error)
        await ctx.send("Command failed.")
