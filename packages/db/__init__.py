"""Database models and utilities."""

from .models import TicketStatusLogTable, TicketTable, UserTable

__all__ = [
    "TicketStatusLogTable",
    "TicketTable",
    "UserTable",
]
