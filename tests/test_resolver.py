from __future__ import annotations

import itertools
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

discord = pytest.importorskip("discord")

from roles_warden.models import DangerousMode, GuildPolicy, RoleAction, RolePolicy  # noqa: E402
from roles_warden.resolver import resolve_action, resolve_role_action  # noqa: E402


def _policies(default: RoleAction, mode: DangerousMode, action: RoleAction) -> tuple[GuildPolicy, RolePolicy]:
    return (
        GuildPolicy(guild_id=1, default_action=default, dangerous_mode=mode),
        RolePolicy(role_id=10, guild_id=1, action=action),
    )


def test_resolve_never_returns_unset() -> None:
    for default, mode, action, dangerous in itertools.product(RoleAction, DangerousMode, RoleAction, (False, True)):
        guild_policy, role_policy = _policies(default, mode, action)
        assert resolve_action(guild_policy, role_policy, dangerous) is not RoleAction.UNSET


def test_always_ignore_overrides_explicit_persist_for_dangerous_role() -> None:
    guild_policy, role_policy = _policies(RoleAction.PERSIST, DangerousMode.ALWAYS_IGNORE, RoleAction.PERSIST)
    assert resolve_action(guild_policy, role_policy, True) is RoleAction.IGNORE


def test_always_ignore_leaves_safe_roles_alone() -> None:
    guild_policy, role_policy = _policies(RoleAction.UNSET, DangerousMode.ALWAYS_IGNORE, RoleAction.UNSET)
    assert resolve_action(guild_policy, role_policy, False) is RoleAction.PERSIST


def test_never_ignore_does_not_ignore_for_danger_alone() -> None:
    for default, action in itertools.product(RoleAction, RoleAction):
        guild_policy, role_policy = _policies(default, DangerousMode.NEVER_IGNORE, action)
        assert resolve_action(guild_policy, role_policy, True) is resolve_action(guild_policy, role_policy, False)


def test_unset_everywhere_resolves_to_persist() -> None:
    guild_policy, role_policy = _policies(RoleAction.UNSET, DangerousMode.IGNORE_IF_UNSET, RoleAction.UNSET)
    assert resolve_action(guild_policy, role_policy, False) is RoleAction.PERSIST


def test_ignore_if_unset_only_applies_to_unconfigured_dangerous_roles() -> None:
    guild_policy, role_policy = _policies(RoleAction.PERSIST, DangerousMode.IGNORE_IF_UNSET, RoleAction.UNSET)
    assert resolve_action(guild_policy, role_policy, True) is RoleAction.IGNORE

    role_policy.action = RoleAction.PERSIST
    assert resolve_action(guild_policy, role_policy, True) is RoleAction.PERSIST


def test_role_action_beats_guild_default() -> None:
    guild_policy, role_policy = _policies(RoleAction.IGNORE, DangerousMode.IGNORE_IF_UNSET, RoleAction.PERSIST)
    assert resolve_action(guild_policy, role_policy, False) is RoleAction.PERSIST

    guild_policy, role_policy = _policies(RoleAction.PERSIST, DangerousMode.IGNORE_IF_UNSET, RoleAction.IGNORE)
    assert resolve_action(guild_policy, role_policy, False) is RoleAction.IGNORE


def test_guild_default_applies_to_unconfigured_role() -> None:
    guild_policy, role_policy = _policies(RoleAction.IGNORE, DangerousMode.NEVER_IGNORE, RoleAction.UNSET)
    assert resolve_action(guild_policy, role_policy, False) is RoleAction.IGNORE


def test_resolve_role_action_reads_live_permissions() -> None:
    guild_policy, role_policy = _policies(RoleAction.UNSET, DangerousMode.IGNORE_IF_UNSET, RoleAction.UNSET)
    admin = SimpleNamespace(id=10, permissions=discord.Permissions(administrator=True))
    member_role = SimpleNamespace(id=10, permissions=discord.Permissions(send_messages=True))

    assert resolve_role_action(guild_policy, role_policy, admin) is RoleAction.IGNORE
    assert resolve_role_action(guild_policy, role_policy, member_role) is RoleAction.PERSIST
    assert resolve_role_action(guild_policy, role_policy, None) is RoleAction.PERSIST
