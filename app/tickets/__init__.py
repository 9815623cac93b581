"""Ticket lifecycle domain models and services."""

from .errors import (
    InvalidTicketInputError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketPermissionError,
    TicketServiceError,
    TicketStoreError,
)
from .models import StatusLogEntry, Ticket, TicketPriority, UserAccount
from .repository import TicketRepository, TicketTransaction
from .service import TicketService
from .state import TicketStateMachine, TicketStatus

__all__ = [
    "InvalidTicketInputError",
    "InvalidTicketTransitionError",
    "StatusLogEntry",
    "Ticket",
    "TicketNotFoundError",
    "TicketPermissionError",
    "TicketPriority",
    "TicketRepository",
    "TicketService",
    "TicketServiceError",
    "TicketStateMachine",
    "TicketStatus",
    "TicketStoreError",
    "TicketTransaction",
    "UserAccount",
]
