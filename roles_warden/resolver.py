from __future__ import annotations

from .models import DangerousMode, GuildPolicy, RoleAction, RolePolicy
from .permissions import role_is_dangerous


def resolve_action(guild_policy: GuildPolicy, role_policy: RolePolicy, is_dangerous: bool) -> RoleAction:
    """Decide whether a single role persists across a rejoin.

    Dangerous roles are ignored outright under ``ALWAYS_IGNORE`` (even when the
    role itself is configured to persist) and ignored when unconfigured under
    ``IGNORE_IF_UNSET``. Otherwise the role's own action wins, then the guild
    default, then ``PERSIST``. The result is never ``UNSET``.
    """
    if is_dangerous:
        if guild_policy.dangerous_mode is DangerousMode.ALWAYS_IGNORE:
            return RoleAction.IGNORE
        if role_policy.action is RoleAction.UNSET and guild_policy.dangerous_mode is DangerousMode.IGNORE_IF_UNSET:
            return RoleAction.IGNORE

    action = role_policy.action
    if action is RoleAction.UNSET:
        action = guild_policy.default_action
    if action is RoleAction.UNSET:
        action = RoleAction.PERSIST
    return action


def resolve_role_action(guild_policy: GuildPolicy, role_policy: RolePolicy, role: object | None) -> RoleAction:
    return resolve_action(guild_policy, role_policy, role_is_dangerous(role))
