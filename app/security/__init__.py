"""Identity and role primitives shared by the API and ticket domain."""

from .roles import ASSIGNABLE_ROLES, Identity, Role

__all__ = [
    "ASSIGNABLE_ROLES",
    "Identity",
    "Role",
]
