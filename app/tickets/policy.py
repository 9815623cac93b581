"""Role rule tables for ticket operations.

Two layers live here. ``OPERATION_ROLES`` is the coarse gate the HTTP layer
applies before an operation runs at all. ``STATUS_CHANGE_RULES`` holds the
fine-grained status update rules the lifecycle engine checks against the
locked ticket row, before the transition graph is consulted.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from app.security import Identity, Role

from .errors import TicketPermissionError
from .models import Ticket
from .state import TicketStatus


class TicketOperation(str, Enum):
    CREATE = "create"
    VIEW = "view"
    ASSIGN = "assign"
    UPDATE_STATUS = "update_status"
    MANAGE_USERS = "manage_users"


OPERATION_ROLES: Mapping[TicketOperation, frozenset[Role]] = {
    TicketOperation.CREATE: frozenset({Role.USER}),
    TicketOperation.VIEW: frozenset(Role),
    TicketOperation.ASSIGN: frozenset({Role.MANAGER}),
    TicketOperation.UPDATE_STATUS: frozenset({Role.MANAGER, Role.SUPPORT}),
    TicketOperation.MANAGE_USERS: frozenset({Role.MANAGER}),
}


@dataclass(frozen=True, slots=True)
class StatusChangeRule:
    """Targets a role may request, optionally only on tickets assigned to it."""

    targets: frozenset[TicketStatus]
    assignee_only: bool = False

    def check(self, ticket: Ticket, target: TicketStatus, requester_id: int, role: Role) -> None:
        if self.assignee_only and ticket.assigned_to != requester_id:
            raise TicketPermissionError(
                f"{role.value} can only update tickets assigned to them"
            )
        if target not in self.targets:
            allowed = ", ".join(sorted(status.value for status in self.targets))
            raise TicketPermissionError(f"{role.value} can only set status to {allowed}")


STATUS_CHANGE_RULES: Mapping[Role, StatusChangeRule] = {
    Role.SUPPORT: StatusChangeRule(
        targets=frozenset({TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED}),
        assignee_only=True,
    ),
    Role.MANAGER: StatusChangeRule(targets=frozenset({TicketStatus.CLOSED})),
}


def roles_for(operation: TicketOperation) -> frozenset[Role]:
    return OPERATION_ROLES.get(operation, frozenset())


def authorize_status_change(
    ticket: Ticket,
    target: TicketStatus,
    *,
    requester_id: int,
    requester_role: Role,
) -> None:
    """Raise :class:`TicketPermissionError` unless the role rule admits the request."""

    rule = STATUS_CHANGE_RULES.get(requester_role)
    if rule is None:
        raise TicketPermissionError(f"{requester_role.value} cannot change ticket status")
    rule.check(ticket, target, requester_id, requester_role)


def can_view(ticket: Ticket, identity: Identity) -> bool:
    if identity.role is Role.MANAGER:
        return True
    if identity.role is Role.SUPPORT:
        return ticket.assigned_to == identity.id
    return ticket.created_by == identity.id
