from __future__ import annotations

import logging
from typing import Any, Iterable

from ..guard import RestorationGuard
from ..models import SavedRoles

logger = logging.getLogger("roles_warden")


def role_ids_of(roles: Iterable[Any]) -> frozenset[int]:
    """Ids of a member's roles without the guild's @everyone role."""
    result: set[int] = set()
    for role in roles:
        is_default = getattr(role, "is_default", None)
        if callable(is_default) and is_default():
            continue
        result.add(int(role.id))
    return frozenset(result)


class SnapshotWriter:
    """Keeps the saved role set of every member in step with their live roles."""

    def __init__(self, store: Any, guard: RestorationGuard) -> None:
        self.store = store
        self.guard = guard

    async def on_member_update(self, before: Any, after: Any) -> None:
        try:
            await self.on_role_set_changed(after, getattr(before, "roles", None), after.roles)
        except Exception:
            logger.exception(
                "Saving roles failed, event dropped (guild=%s user=%s)",
                getattr(after.guild, "id", "?"),
                after.id,
            )

    async def on_role_set_changed(
        self,
        member: Any,
        old_roles: Iterable[Any] | None,
        new_roles: Iterable[Any],
    ) -> bool:
        guild_id = member.guild.id
        if self.guard.is_restoring(guild_id, member.id):
            logger.debug("Skipping role snapshot for user=%s guild=%s: restore in progress", member.id, guild_id)
            return False

        new_ids = role_ids_of(new_roles)
        if old_roles is not None and role_ids_of(old_roles) == new_ids:
            return False

        logger.info("User %s (%s) at guild %s roles updated", member, member.id, guild_id)
        await self.store.set_saved_roles(guild_id, member.id, new_ids)
        return True

    async def capture(self, member: Any, role_ids: Iterable[int] | None = None) -> SavedRoles:
        ids = frozenset(int(r) for r in role_ids) if role_ids is not None else role_ids_of(member.roles)
        return await self.store.set_saved_roles(member.guild.id, member.id, ids)
