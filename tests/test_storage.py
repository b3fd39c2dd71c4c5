from __future__ import annotations

import asyncio
import sqlite3
import sys
from pathlib import Path

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from roles_warden.models import DangerousMode, GuildPolicy, LogFlags, RoleAction, RolePolicy  # noqa: E402
from roles_warden.storage.schema import WardenSchemaMixin  # noqa: E402
from roles_warden.storage.utils import from_db_id, to_db_id  # noqa: E402
from roles_warden.store import WardenStore  # noqa: E402


class _FrozenClock:
    def __init__(self, value: int) -> None:
        self.value = value

    def now_ms(self) -> int:
        return self.value


def _store(tmp_path: Path, clock: object | None = None) -> WardenStore:
    store = WardenStore(tmp_path / "warden.db", clock=clock)  # type: ignore[arg-type]
    asyncio.run(store.init())
    return store


def test_missing_guild_policy_reads_as_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)
    policy = asyncio.run(store.get_guild_policy(42))
    assert policy == GuildPolicy.default(42)
    assert policy.effective_default_action is RoleAction.PERSIST


def test_guild_policy_round_trips_every_field(tmp_path: Path) -> None:
    store = _store(tmp_path)
    policy = GuildPolicy(
        guild_id=7,
        default_action=RoleAction.IGNORE,
        dangerous_mode=DangerousMode.NEVER_IGNORE,
        log_channel_id=555,
        log_flags=LogFlags.SAVED | LogFlags.RESTORED,
    )

    asyncio.run(store.set_guild_policy(policy))

    assert asyncio.run(store.get_guild_policy(7)) == policy


def test_unset_role_policy_write_deletes_row(tmp_path: Path) -> None:
    store = _store(tmp_path)
    never_set = asyncio.run(store.get_role_policy(100, 1))

    asyncio.run(store.set_role_policy(RolePolicy(role_id=100, guild_id=1, action=RoleAction.IGNORE)))
    assert asyncio.run(store.get_role_policy(100, 1)).action is RoleAction.IGNORE

    asyncio.run(store.set_role_policy(RolePolicy(role_id=100, guild_id=1, action=RoleAction.UNSET)))
    assert asyncio.run(store.get_role_policy(100, 1)) == never_set
    assert asyncio.run(store.get_guild_role_policies(1)) == []


def test_get_role_policies_fills_missing_with_defaults(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.set_role_policy(RolePolicy(role_id=2, guild_id=1, action=RoleAction.PERSIST)))

    policies = asyncio.run(store.get_role_policies([1, 2, 3], 1))

    assert list(policies) == [1, 2, 3]
    assert policies[1] == RolePolicy.default(1, 1)
    assert policies[2].action is RoleAction.PERSIST
    assert policies[3].action is RoleAction.UNSET


def test_saved_roles_distinguish_absent_from_empty(tmp_path: Path) -> None:
    store = _store(tmp_path)

    absent = asyncio.run(store.get_saved_roles(1, 2))
    assert absent.role_ids is None
    assert not absent.exists

    asyncio.run(store.set_saved_roles(1, 2, []))
    empty = asyncio.run(store.get_saved_roles(1, 2))
    assert empty.role_ids == frozenset()
    assert empty.exists


def test_saved_roles_replace_previous_set(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.set_saved_roles(1, 2, [30, 10, 20]))
    asyncio.run(store.set_saved_roles(1, 2, [20, 40]))

    saved = asyncio.run(store.get_saved_roles(1, 2))
    assert saved.role_ids == frozenset({20, 40})
    assert saved.ordered_role_ids() == [20, 40]


def test_saved_roles_timestamp_strictly_increases_with_frozen_clock(tmp_path: Path) -> None:
    store = _store(tmp_path, clock=_FrozenClock(1_000))

    first = asyncio.run(store.set_saved_roles(1, 2, [10]))
    second = asyncio.run(store.set_saved_roles(1, 2, [11]))
    third = asyncio.run(store.set_saved_roles(1, 2, [12]))

    assert first.timestamp == 1_000
    assert second.timestamp == 1_001
    assert third.timestamp == 1_002


def test_saved_roles_timestamp_survives_clock_moving_back(tmp_path: Path) -> None:
    clock = _FrozenClock(5_000)
    store = _store(tmp_path, clock=clock)
    first = asyncio.run(store.set_saved_roles(1, 2, [10]))

    clock.value = 10
    second = asyncio.run(store.set_saved_roles(1, 2, [10]))

    assert second.timestamp > first.timestamp


def test_clear_guild_resets_every_record(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.set_guild_policy(GuildPolicy(guild_id=1, default_action=RoleAction.IGNORE)))
    asyncio.run(store.set_role_policy(RolePolicy(role_id=10, guild_id=1, action=RoleAction.PERSIST)))
    asyncio.run(store.set_role_policy(RolePolicy(role_id=20, guild_id=2, action=RoleAction.PERSIST)))
    asyncio.run(store.set_saved_roles(1, 99, [10]))
    asyncio.run(store.set_saved_roles(2, 99, [20]))

    result = asyncio.run(store.clear_guild(1))

    assert result == (True, 1, 1)
    assert asyncio.run(store.get_guild_policy(1)) == GuildPolicy.default(1)
    assert asyncio.run(store.get_role_policy(10, 1)) == RolePolicy.default(10, 1)
    assert not asyncio.run(store.get_saved_roles(1, 99)).exists
    assert asyncio.run(store.get_role_policy(20, 2)).action is RoleAction.PERSIST
    assert asyncio.run(store.get_saved_roles(2, 99)).role_ids == frozenset({20})


def test_remove_role_policy_reports_whether_row_existed(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.set_role_policy(RolePolicy(role_id=10, guild_id=1, action=RoleAction.IGNORE)))

    assert asyncio.run(store.remove_role_policy(10)) is True
    assert asyncio.run(store.remove_role_policy(10)) is False


def test_count_saved_roles_is_per_guild(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.set_saved_roles(1, 1, [10]))
    asyncio.run(store.set_saved_roles(1, 2, []))
    asyncio.run(store.set_saved_roles(2, 1, [10]))

    assert asyncio.run(store.count_saved_roles(1)) == 2
    assert asyncio.run(store.count_saved_roles(3)) == 0


def test_v1_database_is_migrated_in_place(tmp_path: Path) -> None:
    db_path = tmp_path / "warden.db"
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE guild_policies (
                guild_id INTEGER PRIMARY KEY,
                default_action INTEGER NOT NULL DEFAULT 0,
                ignore_admin INTEGER NOT NULL DEFAULT 0,
                updated_at DATETIME NOT NULL DEFAULT CURRENT_TIMESTAMP
            )
            """
        )
        conn.execute("INSERT INTO guild_policies (guild_id, default_action, ignore_admin) VALUES (5, 2, 1)")
        conn.execute("PRAGMA user_version = 1")
        conn.commit()

    store = WardenStore(db_path)
    asyncio.run(store.init())

    policy = asyncio.run(store.get_guild_policy(5))
    assert policy.default_action is RoleAction.IGNORE
    assert policy.dangerous_mode is DangerousMode.ALWAYS_IGNORE
    assert policy.log_channel_id == 0
    assert policy.log_flags == LogFlags.NONE

    with sqlite3.connect(db_path) as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
    assert version == WardenSchemaMixin.SCHEMA_VERSION


def test_schema_mismatch_raises_without_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("WARDEN_SQLITE_RESET_ON_SCHEMA_MISMATCH", raising=False)
    db_path = tmp_path / "warden.db"

    asyncio.run(WardenSchemaMixin(db_path).init())
    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    with pytest.raises(RuntimeError, match="schema version mismatch"):
        asyncio.run(WardenSchemaMixin(db_path).init())


def test_schema_mismatch_can_reset_with_explicit_opt_in(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    db_path = tmp_path / "warden.db"
    store = WardenStore(db_path)
    asyncio.run(store.init())
    asyncio.run(store.set_saved_roles(1, 2, [10]))

    with sqlite3.connect(db_path) as conn:
        conn.execute("PRAGMA user_version = 999")
        conn.commit()

    monkeypatch.setenv("WARDEN_SQLITE_RESET_ON_SCHEMA_MISMATCH", "1")
    asyncio.run(WardenSchemaMixin(db_path).init())

    with sqlite3.connect(db_path) as conn:
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        rows = conn.execute("SELECT COUNT(*) FROM saved_roles").fetchone()[0]
    assert version == WardenSchemaMixin.SCHEMA_VERSION
    assert rows == 0


def test_remove_saved_roles_and_ping(tmp_path: Path) -> None:
    store = _store(tmp_path)
    asyncio.run(store.ping())
    asyncio.run(store.set_saved_roles(1, 2, [10]))

    assert asyncio.run(store.remove_saved_roles(1, 2)) is True
    assert asyncio.run(store.remove_saved_roles(1, 2)) is False
    assert not asyncio.run(store.get_saved_roles(1, 2)).exists


HIGH_ID = 2**64 - 5


def test_db_id_conversion_covers_unsigned_range() -> None:
    assert to_db_id(5) == 5
    assert to_db_id(2**63) == -(2**63)
    assert from_db_id(to_db_id(HIGH_ID)) == HIGH_ID
    assert from_db_id(to_db_id(2**63 - 1)) == 2**63 - 1
    with pytest.raises(ValueError, match="unsigned 64-bit"):
        to_db_id(2**64)
    with pytest.raises(ValueError, match="unsigned 64-bit"):
        to_db_id(-1)


def test_ids_above_signed_range_round_trip(tmp_path: Path) -> None:
    store = _store(tmp_path)
    policy = GuildPolicy(guild_id=HIGH_ID, default_action=RoleAction.IGNORE, log_channel_id=HIGH_ID - 1)

    asyncio.run(store.set_guild_policy(policy))
    asyncio.run(store.set_role_policy(RolePolicy(role_id=HIGH_ID - 2, guild_id=HIGH_ID, action=RoleAction.PERSIST)))
    asyncio.run(store.set_role_policy(RolePolicy(role_id=7, guild_id=HIGH_ID, action=RoleAction.IGNORE)))
    asyncio.run(store.set_saved_roles(HIGH_ID, HIGH_ID - 3, [HIGH_ID - 2, 7]))

    assert asyncio.run(store.get_guild_policy(HIGH_ID)) == policy
    assert [p.role_id for p in asyncio.run(store.get_guild_role_policies(HIGH_ID))] == [7, HIGH_ID - 2]
    lookup = asyncio.run(store.get_role_policies([HIGH_ID - 2, 7], HIGH_ID))
    assert lookup[HIGH_ID - 2].action is RoleAction.PERSIST
    saved = asyncio.run(store.get_saved_roles(HIGH_ID, HIGH_ID - 3))
    assert saved.user_id == HIGH_ID - 3
    assert saved.role_ids == frozenset({HIGH_ID - 2, 7})
    assert asyncio.run(store.count_saved_roles(HIGH_ID)) == 1
    assert asyncio.run(store.clear_guild(HIGH_ID)) == (True, 2, 1)


def test_out_of_range_id_is_rejected(tmp_path: Path) -> None:
    store = _store(tmp_path)
    with pytest.raises(ValueError, match="unsigned 64-bit"):
        asyncio.run(store.get_saved_roles(2**64, 1))
