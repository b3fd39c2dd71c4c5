from __future__ import annotations

import discord


# Create-invite, create-events and create-expressions are granted to @everyone
# by default and stay out of the mask.
DANGEROUS_PERMISSIONS = discord.Permissions(
    administrator=True,
    # server structure
    manage_channels=True,
    manage_expressions=True,
    manage_events=True,
    manage_guild=True,
    manage_messages=True,
    manage_nicknames=True,
    manage_roles=True,
    manage_threads=True,
    manage_webhooks=True,
    # moderation
    ban_members=True,
    deafen_members=True,
    kick_members=True,
    moderate_members=True,
    move_members=True,
    mute_members=True,
    # insight
    view_audit_log=True,
    view_guild_insights=True,
    view_creator_monetization_analytics=True,
)

DANGEROUS_MASK: int = DANGEROUS_PERMISSIONS.value


def _permission_value(permissions: int | discord.Permissions) -> int:
    if isinstance(permissions, discord.Permissions):
        return permissions.value
    return int(permissions)


def is_dangerous(permissions: int | discord.Permissions) -> bool:
    return (_permission_value(permissions) & DANGEROUS_MASK) != 0


def describe_dangerous(permissions: int | discord.Permissions) -> list[str]:
    hits = discord.Permissions(_permission_value(permissions) & DANGEROUS_MASK)
    return [name for name, enabled in hits if enabled]


def role_is_dangerous(role: object | None) -> bool:
    """Classify a live role; a role that no longer exists grants nothing."""
    if role is None:
        return False
    return is_dangerous(getattr(role, "permissions", 0))
