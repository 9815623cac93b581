from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from app.security import Role

from .state import TicketStatus


class TicketPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(slots=True)
class Ticket:
    """Aggregate representing a support ticket entry."""

    id: int
    title: str
    description: str
    priority: TicketPriority
    status: TicketStatus
    created_by: int
    assigned_to: int | None
    created_at: datetime


@dataclass(slots=True, frozen=True)
class StatusLogEntry:
    """Immutable record of one accepted status transition."""

    id: int
    ticket_id: int
    old_status: TicketStatus
    new_status: TicketStatus
    changed_by: int
    changed_at: datetime


@dataclass(slots=True)
class UserAccount:
    """Stored user that can act on or be assigned to tickets."""

    id: int
    name: str
    email: str
    role: Role
    created_at: datetime
