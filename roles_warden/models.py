from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum, IntFlag


class RoleAction(IntEnum):
    UNSET = 0
    PERSIST = 1
    IGNORE = 2


class DangerousMode(IntEnum):
    IGNORE_IF_UNSET = 0
    ALWAYS_IGNORE = 1
    NEVER_IGNORE = 2


class LogFlags(IntFlag):
    NONE = 0
    SAVED = 1
    RESTORED = 2


class RestoreOutcome(Enum):
    APPLIED = "applied"
    SKIPPED_POLICY = "skipped_policy"
    SKIPPED_MISSING = "skipped_missing"
    SKIPPED_MANAGED = "skipped_managed"
    SKIPPED_PERMISSION = "skipped_permission"
    SKIPPED_RANK = "skipped_rank"
    FAILED = "failed"


@dataclass(slots=True)
class GuildPolicy:
    guild_id: int
    default_action: RoleAction = RoleAction.UNSET
    dangerous_mode: DangerousMode = DangerousMode.IGNORE_IF_UNSET
    log_channel_id: int = 0
    log_flags: LogFlags = LogFlags.NONE

    @classmethod
    def default(cls, guild_id: int) -> "GuildPolicy":
        return cls(guild_id=int(guild_id))

    @property
    def effective_default_action(self) -> RoleAction:
        # Stored UNSET behaves as PERSIST.
        if self.default_action is RoleAction.UNSET:
            return RoleAction.PERSIST
        return self.default_action

    def logs(self, flag: LogFlags) -> bool:
        return bool(self.log_channel_id) and flag in self.log_flags


@dataclass(slots=True)
class RolePolicy:
    role_id: int
    guild_id: int
    action: RoleAction = RoleAction.UNSET

    @classmethod
    def default(cls, role_id: int, guild_id: int) -> "RolePolicy":
        return cls(role_id=int(role_id), guild_id=int(guild_id))


@dataclass(slots=True)
class SavedRoles:
    """Last known role set of one member in one guild.

    ``role_ids is None`` means nothing was ever stored for the pair, while an
    empty frozenset is a stored record with no roles.
    """

    guild_id: int
    user_id: int
    role_ids: frozenset[int] | None = None
    timestamp: int = 0

    @property
    def exists(self) -> bool:
        return self.role_ids is not None

    def ordered_role_ids(self) -> list[int]:
        return sorted(self.role_ids or ())


@dataclass(slots=True)
class RoleRestoreResult:
    role_id: int
    outcome: RestoreOutcome
    reason: str = ""


@dataclass(slots=True)
class RestoreReport:
    guild_id: int
    user_id: int
    results: list[RoleRestoreResult] = field(default_factory=list)

    def add(self, role_id: int, outcome: RestoreOutcome, reason: str = "") -> None:
        self.results.append(RoleRestoreResult(role_id=role_id, outcome=outcome, reason=reason))

    def with_outcome(self, outcome: RestoreOutcome) -> list[int]:
        return [item.role_id for item in self.results if item.outcome is outcome]

    @property
    def applied(self) -> list[int]:
        return self.with_outcome(RestoreOutcome.APPLIED)

    @property
    def failed(self) -> list[RoleRestoreResult]:
        return [item for item in self.results if item.outcome is RestoreOutcome.FAILED]

    @property
    def skipped(self) -> list[int]:
        return [
            item.role_id
            for item in self.results
            if item.outcome not in (RestoreOutcome.APPLIED, RestoreOutcome.FAILED)
        ]

    def outcome_of(self, role_id: int) -> RestoreOutcome | None:
        for item in self.results:
            if item.role_id == role_id:
                return item.outcome
        return None
