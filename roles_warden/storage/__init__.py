from .guild_policies import GuildPoliciesMixin
from .role_policies import RolePoliciesMixin
from .saved_roles import SavedRolesMixin
from .schema import WardenSchemaMixin

__all__ = [
    "WardenSchemaMixin",
    "GuildPoliciesMixin",
    "RolePoliciesMixin",
    "SavedRolesMixin",
]
