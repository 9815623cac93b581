"""SQLModel table definitions for the helpdesk data layer."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    """Return a timezone aware UTC timestamp."""

    return datetime.now(timezone.utc)


class UserTable(SQLModel, table=True):
    """People who open, work or manage tickets."""

    __tablename__ = "users"

    id: int | None = Field(default=None, primary_key=True)
    name: str = Field(sa_column=Column(String(255), nullable=False))
    email: str = Field(sa_column=Column(String(255), nullable=False, unique=True))
    role: str = Field(sa_column=Column(String(20), nullable=False))
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketTable(SQLModel, table=True):
    """Support tickets and their current lifecycle state."""

    __tablename__ = "tickets"

    id: int | None = Field(default=None, primary_key=True)
    title: str = Field(sa_column=Column(String(255), nullable=False))
    description: str = Field(sa_column=Column(Text, nullable=False))
    priority: str = Field(default="MEDIUM", sa_column=Column(String(20), nullable=False))
    status: str = Field(default="OPEN", sa_column=Column(String(20), nullable=False, index=True))
    created_by: int = Field(sa_column=Column(Integer, ForeignKey("users.id"), nullable=False, index=True))
    assigned_to: int | None = Field(
        default=None, sa_column=Column(Integer, ForeignKey("users.id"), nullable=True, index=True)
    )
    created_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))


class TicketStatusLogTable(SQLModel, table=True):
    """Append-only audit trail of ticket status transitions."""

    __tablename__ = "ticket_status_logs"

    id: int | None = Field(default=None, primary_key=True)
    ticket_id: int = Field(sa_column=Column(Integer, ForeignKey("tickets.id"), nullable=False, index=True))
    old_status: str = Field(sa_column=Column(String(20), nullable=False))
    new_status: str = Field(sa_column=Column(String(20), nullable=False))
    changed_by: int = Field(sa_column=Column(Integer, ForeignKey("users.id"), nullable=False))
    changed_at: datetime = Field(default_factory=_utcnow, sa_column=Column(DateTime(timezone=True), nullable=False))
