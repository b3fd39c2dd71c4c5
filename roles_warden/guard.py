from __future__ import annotations

import threading


class RestorationGuard:
    """Set of (guild, user) pairs whose roles are currently being restored.

    One instance is shared by the restoration engine and the snapshot writer.
    It lives in process memory only and starts empty.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._restoring: set[tuple[int, int]] = set()

    def try_acquire(self, guild_id: int, user_id: int) -> bool:
        key = (int(guild_id), int(user_id))
        with self._lock:
            if key in self._restoring:
                return False
            self._restoring.add(key)
            return True

    def release(self, guild_id: int, user_id: int) -> None:
        with self._lock:
            self._restoring.discard((int(guild_id), int(user_id)))

    def is_restoring(self, guild_id: int, user_id: int) -> bool:
        with self._lock:
            return (int(guild_id), int(user_id)) in self._restoring
