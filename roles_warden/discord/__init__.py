from .client import RolesWardenBot
from .commands import register_commands

__all__ = ["RolesWardenBot", "register_commands"]
