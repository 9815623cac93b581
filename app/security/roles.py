"""Caller roles and the identity resolved once per request."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Access level attached to every identity."""

    MANAGER = "MANAGER"
    SUPPORT = "SUPPORT"
    USER = "USER"


# Roles a ticket may be assigned to.
ASSIGNABLE_ROLES: frozenset[Role] = frozenset({Role.MANAGER, Role.SUPPORT})


@dataclass(frozen=True, slots=True)
class Identity:
    """Verified caller: a user id plus the role it acts under."""

    id: int
    role: Role

    def has_role(self, *roles: Role) -> bool:
        return self.role in roles
