from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

pytest.importorskip("discord")

from roles_warden.guard import RestorationGuard  # noqa: E402
from roles_warden.models import SavedRoles  # noqa: E402
from roles_warden.services.snapshots import SnapshotWriter, role_ids_of  # noqa: E402


class _RecordingStore:
    def __init__(self, *, fail: bool = False) -> None:
        self.writes: list[tuple[int, int, frozenset[int]]] = []
        self._fail = fail

    async def set_saved_roles(self, guild_id: int, user_id: int, role_ids) -> SavedRoles:  # type: ignore[no-untyped-def]
        if self._fail:
            raise RuntimeError("disk full")
        ids = frozenset(role_ids)
        self.writes.append((guild_id, user_id, ids))
        return SavedRoles(guild_id=guild_id, user_id=user_id, role_ids=ids, timestamp=len(self.writes))


def _role(role_id: int, *, default: bool = False) -> SimpleNamespace:
    return SimpleNamespace(id=role_id, is_default=lambda: default)


def _member(roles: list[SimpleNamespace], *, guild_id: int = 1, user_id: int = 2) -> SimpleNamespace:
    return SimpleNamespace(id=user_id, guild=SimpleNamespace(id=guild_id), roles=roles)


def test_role_ids_of_drops_everyone_role() -> None:
    assert role_ids_of([_role(1, default=True), _role(5), _role(7)]) == frozenset({5, 7})


def test_identical_role_sets_write_once() -> None:
    store = _RecordingStore()
    writer = SnapshotWriter(store, RestorationGuard())
    member = _member([])

    first = asyncio.run(writer.on_role_set_changed(member, [_role(1, default=True)], [_role(1, default=True), _role(5)]))
    second = asyncio.run(writer.on_role_set_changed(member, [_role(5)], [_role(5)]))

    assert first is True
    assert second is False
    assert store.writes == [(1, 2, frozenset({5}))]


def test_unknown_previous_roles_always_write() -> None:
    store = _RecordingStore()
    writer = SnapshotWriter(store, RestorationGuard())

    assert asyncio.run(writer.on_role_set_changed(_member([]), None, [_role(5)])) is True
    assert len(store.writes) == 1


def test_held_guard_blocks_writes_until_release() -> None:
    store = _RecordingStore()
    guard = RestorationGuard()
    writer = SnapshotWriter(store, guard)
    member = _member([_role(5), _role(6)])

    guard.try_acquire(1, 2)
    assert asyncio.run(writer.on_role_set_changed(member, [_role(5)], member.roles)) is False
    assert store.writes == []

    guard.release(1, 2)
    asyncio.run(writer.capture(member))
    assert store.writes == [(1, 2, frozenset({5, 6}))]


def test_guard_is_per_user() -> None:
    store = _RecordingStore()
    guard = RestorationGuard()
    writer = SnapshotWriter(store, guard)
    guard.try_acquire(1, 99)

    assert asyncio.run(writer.on_role_set_changed(_member([]), [], [_role(5)])) is True


def test_member_update_handler_swallows_store_failures() -> None:
    writer = SnapshotWriter(_RecordingStore(fail=True), RestorationGuard())
    before = _member([])
    after = _member([_role(5)])

    asyncio.run(writer.on_member_update(before, after))


def test_capture_accepts_explicit_role_ids() -> None:
    store = _RecordingStore()
    writer = SnapshotWriter(store, RestorationGuard())

    saved = asyncio.run(writer.capture(_member([_role(5)]), [7, 8]))

    assert saved.role_ids == frozenset({7, 8})
