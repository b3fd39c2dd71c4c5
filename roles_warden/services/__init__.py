from .lifecycle import GuildLifecycle
from .reporting import LogReporter
from .restoration import RestorationEngine
from .snapshots import SnapshotWriter

__all__ = ["GuildLifecycle", "LogReporter", "RestorationEngine", "SnapshotWriter"]
