"""Failure taxonomy for ticket lifecycle operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .state import TicketStatus


class TicketServiceError(RuntimeError):
    """Base error for ticket service issues."""


class TicketNotFoundError(TicketServiceError):
    """Raised when a ticket could not be located."""

    def __init__(self, ticket_id: int) -> None:
        super().__init__(f"Ticket {ticket_id} not found")
        self.ticket_id = ticket_id


class InvalidTicketInputError(TicketServiceError):
    """Raised when an argument references something the operation cannot accept."""


class TicketPermissionError(TicketServiceError):
    """Raised when the caller's role or ownership does not allow the operation."""


class InvalidTicketTransitionError(TicketServiceError):
    """Raised when attempting to transition to a status the graph does not allow."""

    def __init__(self, current: "TicketStatus", target: "TicketStatus") -> None:
        super().__init__(f"Invalid status transition from {current.value} to {target.value}")
        self.current = current
        self.target = target


class TicketStoreError(TicketServiceError):
    """Raised when the underlying store fails unexpectedly."""
