from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.sql import Select
from sqlmodel import SQLModel, select

from app.security import Role
from packages.db.models import TicketStatusLogTable, TicketTable, UserTable

from .models import StatusLogEntry, Ticket, TicketPriority, UserAccount
from .state import TicketStatus


def lock_ticket_statement(ticket_id: int) -> Select:
    """``SELECT ... FOR UPDATE`` on a single ticket row."""

    return select(TicketTable).where(TicketTable.id == ticket_id).with_for_update()


class TicketTransaction:
    """Reads and writes performed inside one database transaction.

    Tickets are read through :meth:`lock_ticket`, so the row stays locked
    until the surrounding transaction commits or rolls back.
    """

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def lock_ticket(self, ticket_id: int) -> Ticket | None:
        result = await self._session.execute(lock_ticket_statement(ticket_id))
        row = result.scalars().first()
        if row is None:
            return None
        return TicketRepository._table_to_ticket(row)

    async def get_user(self, user_id: int) -> UserAccount | None:
        row = await self._session.get(UserTable, user_id)
        if row is None:
            return None
        return TicketRepository._table_to_user(row)

    async def update_ticket(
        self,
        ticket_id: int,
        *,
        status: TicketStatus,
        assigned_to: int | None = None,
    ) -> Ticket | None:
        """Persist a new status and, when given, a new assignee."""

        row = await self._session.get(TicketTable, ticket_id)
        if row is None:
            return None
        row.status = status.value
        if assigned_to is not None:
            row.assigned_to = assigned_to
        await self._session.flush()
        return TicketRepository._table_to_ticket(row)

    async def append_status_log(
        self,
        *,
        ticket_id: int,
        old_status: TicketStatus,
        new_status: TicketStatus,
        changed_by: int,
    ) -> StatusLogEntry:
        row = TicketStatusLogTable(
            ticket_id=ticket_id,
            old_status=old_status.value,
            new_status=new_status.value,
            changed_by=changed_by,
            changed_at=datetime.now(timezone.utc),
        )
        self._session.add(row)
        await self._session.flush()
        return TicketRepository._table_to_log_entry(row)


class TicketRepository:
    """Persistence helper wrapping `users`, `tickets` and `ticket_status_logs`."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._engine: AsyncEngine | None = engine

    async def ensure_schema(self) -> None:
        if self._engine is None:
            raise RuntimeError("Session factory is not bound to an async engine")
        async with self._engine.begin() as connection:
            await connection.run_sync(SQLModel.metadata.create_all)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[TicketTransaction]:
        """Run the body in one transaction: commit on success, roll back on any error."""

        async with self._session_factory() as session:
            async with session.begin():
                yield TicketTransaction(session)

    async def create_user(self, *, name: str, email: str, role: Role) -> UserAccount:
        async with self._session_factory() as session:
            async with session.begin():
                row = UserTable(name=name, email=email, role=role.value, created_at=datetime.now(timezone.utc))
                session.add(row)
                await session.flush()
                return self._table_to_user(row)

    async def list_users(self) -> list[UserAccount]:
        async with self._session_factory() as session:
            result = await session.execute(select(UserTable).order_by(UserTable.id.asc()))
            return [self._table_to_user(row) for row in result.scalars().all()]

    async def get_user(self, user_id: int) -> UserAccount | None:
        async with self._session_factory() as session:
            row = await session.get(UserTable, user_id)
            if row is None:
                return None
            return self._table_to_user(row)

    async def create_ticket(
        self,
        *,
        title: str,
        description: str,
        priority: TicketPriority,
        status: TicketStatus,
        created_by: int,
    ) -> Ticket:
        async with self._session_factory() as session:
            async with session.begin():
                row = TicketTable(
                    title=title,
                    description=description,
                    priority=priority.value,
                    status=status.value,
                    created_by=created_by,
                    assigned_to=None,
                    created_at=datetime.now(timezone.utc),
                )
                session.add(row)
                await session.flush()
                return self._table_to_ticket(row)

    async def get_ticket(self, ticket_id: int) -> Ticket | None:
        async with self._session_factory() as session:
            row = await session.get(TicketTable, ticket_id)
            if row is None:
                return None
            return self._table_to_ticket(row)

    async def list_tickets(
        self,
        *,
        created_by: int | None = None,
        assigned_to: int | None = None,
    ) -> list[Ticket]:
        statement = select(TicketTable)
        if created_by is not None:
            statement = statement.where(TicketTable.created_by == created_by)
        if assigned_to is not None:
            statement = statement.where(TicketTable.assigned_to == assigned_to)
        statement = statement.order_by(TicketTable.created_at.desc(), TicketTable.id.desc())

        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_ticket(row) for row in result.scalars().all()]

    async def get_status_log(self, ticket_id: int) -> list[StatusLogEntry]:
        statement = (
            select(TicketStatusLogTable)
            .where(TicketStatusLogTable.ticket_id == ticket_id)
            .order_by(TicketStatusLogTable.changed_at.asc(), TicketStatusLogTable.id.asc())
        )
        async with self._session_factory() as session:
            result = await session.execute(statement)
            return [self._table_to_log_entry(row) for row in result.scalars().all()]

    @staticmethod
    def _table_to_ticket(row: TicketTable) -> Ticket:
        return Ticket(
            id=_ensure_id(row.id),
            title=row.title,
            description=row.description,
            priority=TicketPriority(row.priority),
            status=TicketStatus(row.status),
            created_by=row.created_by,
            assigned_to=row.assigned_to,
            created_at=_ensure_datetime(row.created_at),
        )

    @staticmethod
    def _table_to_log_entry(row: TicketStatusLogTable) -> StatusLogEntry:
        return StatusLogEntry(
            id=_ensure_id(row.id),
            ticket_id=row.ticket_id,
            old_status=TicketStatus(row.old_status),
            new_status=TicketStatus(row.new_status),
            changed_by=row.changed_by,
            changed_at=_ensure_datetime(row.changed_at),
        )

    @staticmethod
    def _table_to_user(row: UserTable) -> UserAccount:
        return UserAccount(
            id=_ensure_id(row.id),
            name=row.name,
            email=row.email,
            role=Role(row.role),
            created_at=_ensure_datetime(row.created_at),
        )


def _ensure_id(value: int | None) -> int:
    if value is None:
        raise RuntimeError("Row has not been flushed; primary key is missing")
    return int(value)


def _ensure_datetime(value: datetime | None) -> datetime:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    raise TypeError("Expected datetime value from database")


