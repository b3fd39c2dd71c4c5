from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Protocol

from .guard import RestorationGuard
from .services.lifecycle import GuildLifecycle
from .services.reporting import LogReporter
from .services.restoration import RestorationEngine
from .services.snapshots import SnapshotWriter

logger = logging.getLogger("roles_warden")

Handler = Callable[..., Awaitable[None]]


class EventSource(Protocol):
    def add_listener(self, func: Handler, name: str = ...) -> None: ...

    def remove_listener(self, func: Handler, name: str = ...) -> None: ...


@dataclass(slots=True)
class WardenServices:
    store: Any
    guard: RestorationGuard
    reporter: LogReporter
    snapshots: SnapshotWriter
    restoration: RestorationEngine
    lifecycle: GuildLifecycle

    @classmethod
    def build(cls, store: Any, *, grant_reason: str = "Restoring saved roles on rejoin") -> "WardenServices":
        guard = RestorationGuard()
        reporter = LogReporter()
        snapshots = SnapshotWriter(store, guard)
        restoration = RestorationEngine(store, guard, snapshots, reporter, grant_reason=grant_reason)
        lifecycle = GuildLifecycle(store, reporter)
        return cls(
            store=store,
            guard=guard,
            reporter=reporter,
            snapshots=snapshots,
            restoration=restoration,
            lifecycle=lifecycle,
        )

    def handlers(self) -> list[tuple[str, Handler]]:
        return [
            ("on_member_join", self.restoration.on_member_join),
            ("on_member_update", self.snapshots.on_member_update),
            ("on_member_remove", self.lifecycle.on_member_remove),
            ("on_guild_join", self.lifecycle.on_guild_join),
            ("on_guild_remove", self.lifecycle.on_guild_remove),
            ("on_guild_role_delete", self.lifecycle.on_guild_role_delete),
        ]

    def subscribe(self, source: EventSource) -> None:
        for name, handler in self.handlers():
            source.add_listener(handler, name)
        logger.info("Subscribed %s warden handlers", len(self.handlers()))

    def unsubscribe(self, source: EventSource) -> None:
        for name, handler in self.handlers():
            source.remove_listener(handler, name)
        logger.info("Unsubscribed warden handlers")
