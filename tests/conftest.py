from __future__ import annotations

from dataclasses import dataclass

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.security import Identity, Role
from app.tickets.models import UserAccount
from app.tickets.repository import TicketRepository
from app.tickets.service import TicketService


@dataclass(slots=True)
class Staff:
    manager: UserAccount
    support: UserAccount
    other_support: UserAccount
    requester: UserAccount

    @staticmethod
    def identity(account: UserAccount) -> Identity:
        return Identity(id=account.id, role=account.role)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncEngine:
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'helpdesk.db'}")
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def repository(engine: AsyncEngine) -> TicketRepository:
    repository = TicketRepository(async_sessionmaker(engine, expire_on_commit=False), engine=engine)
    await repository.ensure_schema()
    return repository


@pytest.fixture
def service(repository: TicketRepository) -> TicketService:
    return TicketService(repository)


@pytest_asyncio.fixture
async def staff(repository: TicketRepository) -> Staff:
    return Staff(
        manager=await repository.create_user(name="Maya", email="maya@example.com", role=Role.MANAGER),
        support=await repository.create_user(name="Sam", email="sam@example.com", role=Role.SUPPORT),
        other_support=await repository.create_user(name="Sol", email="sol@example.com", role=Role.SUPPORT),
        requester=await repository.create_user(name="Uma", email="uma@example.com", role=Role.USER),
    )
