from __future__ import annotations

import logging
from typing import Any, Dict

import discord

from ..guard import RestorationGuard
from ..models import GuildPolicy, RestoreOutcome, RestoreReport, RoleAction, RolePolicy
from ..resolver import resolve_role_action
from .reporting import LogReporter
from .snapshots import SnapshotWriter, role_ids_of

logger = logging.getLogger("roles_warden")


def _is_default(role: Any) -> bool:
    is_default = getattr(role, "is_default", None)
    return bool(callable(is_default) and is_default())


def _is_managed(role: Any) -> bool:
    return bool(getattr(role, "managed", False)) or _is_default(role)


def top_assignable_position(me: Any) -> int:
    """Highest position among the bot's own roles, @everyone excluded."""
    positions = [role.position for role in getattr(me, "roles", ()) if not _is_default(role)]
    return max(positions, default=0)


class RestorationEngine:
    """Re-grants saved roles when a member joins a guild again.

    Each saved role is resolved against the guild and role policies using the
    role's current permissions, then granted only if it still exists, is not
    managed by an integration and sits below the bot's own top role. Grant
    failures are recorded per role and never stop the remaining roles.
    """

    def __init__(
        self,
        store: Any,
        guard: RestorationGuard,
        snapshots: SnapshotWriter,
        reporter: LogReporter,
        *,
        grant_reason: str = "Restoring saved roles on rejoin",
    ) -> None:
        self.store = store
        self.guard = guard
        self.snapshots = snapshots
        self.reporter = reporter
        self.grant_reason = grant_reason

    async def on_member_join(self, member: Any) -> None:
        try:
            await self.restore_member(member)
        except Exception:
            logger.exception(
                "Restoring roles failed, event dropped (guild=%s user=%s)",
                getattr(member.guild, "id", "?"),
                member.id,
            )

    async def restore_member(self, member: Any) -> RestoreReport | None:
        guild = member.guild
        if not self.guard.try_acquire(guild.id, member.id):
            logger.debug("Restore already running for user=%s guild=%s", member.id, guild.id)
            return None

        logger.info("User %s (%s) joined %s (%s), restoring roles", member, member.id, guild, guild.id)
        report = RestoreReport(guild_id=guild.id, user_id=member.id)
        try:
            saved = await self.store.get_saved_roles(guild.id, member.id)
            policy = await self.store.get_guild_policy(guild.id)
            role_policies = await self.store.get_role_policies(saved.ordered_role_ids(), guild.id)
            await self._restore_roles(member, policy, role_policies, report)
        finally:
            self.guard.release(guild.id, member.id)

        try:
            await self.snapshots.capture(member, await self._live_role_ids(member, report))
        except Exception:
            logger.exception("Saving roles after restore failed (guild=%s user=%s)", guild.id, member.id)

        logger.info(
            "User %s (%s) at %s (%s) roles restored (Applied: %s | Skipped: %s | Failed: %s)",
            member,
            member.id,
            guild,
            guild.id,
            len(report.applied),
            len(report.skipped),
            len(report.failed),
        )
        await self.reporter.report_restored(guild, policy, report)
        return report

    async def _restore_roles(
        self,
        member: Any,
        policy: GuildPolicy,
        role_policies: Dict[int, RolePolicy],
        report: RestoreReport,
    ) -> None:
        guild = member.guild
        me = guild.me
        can_manage = bool(me is not None and me.guild_permissions.manage_roles)
        top_position = top_assignable_position(me) if me is not None else 0

        for role_id, role_policy in role_policies.items():
            role = guild.get_role(role_id)
            if resolve_role_action(policy, role_policy, role) is not RoleAction.PERSIST:
                report.add(role_id, RestoreOutcome.SKIPPED_POLICY)
                continue
            if role is None:
                report.add(role_id, RestoreOutcome.SKIPPED_MISSING)
                continue
            if _is_managed(role):
                report.add(role_id, RestoreOutcome.SKIPPED_MANAGED)
                continue
            if not can_manage:
                report.add(role_id, RestoreOutcome.SKIPPED_PERMISSION)
                continue
            if role.position >= top_position:
                report.add(role_id, RestoreOutcome.SKIPPED_RANK)
                continue

            try:
                await member.add_roles(role, reason=self.grant_reason)
            except discord.HTTPException as exc:
                reason = exc.text or str(exc)
                logger.warning(
                    "Failed to restore role=%s for user=%s guild=%s: %s",
                    role_id,
                    member.id,
                    guild.id,
                    reason,
                )
                report.add(role_id, RestoreOutcome.FAILED, reason)
                continue
            report.add(role_id, RestoreOutcome.APPLIED)

        for item in report.results:
            if item.outcome not in (RestoreOutcome.APPLIED, RestoreOutcome.FAILED):
                logger.debug("Role %s for user=%s skipped: %s", item.role_id, member.id, item.outcome.value)

    async def _live_role_ids(self, member: Any, report: RestoreReport) -> frozenset[int]:
        # The cached member does not see grants until the gateway echoes them back.
        try:
            fresh = await member.guild.fetch_member(member.id)
        except discord.HTTPException as exc:
            logger.debug("Could not refetch user=%s after restore: %s", member.id, exc)
            return role_ids_of(member.roles) | frozenset(report.applied)
        return role_ids_of(fresh.roles)
