import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from app.security import Role
from app.tickets.errors import InvalidTicketTransitionError
from app.tickets.models import StatusLogEntry, Ticket, TicketPriority
from app.tickets.service import TicketService
from app.tickets.state import TicketStatus

SUPPORT_ID = 2
MANAGER_ID = 1


class LockingTicketStore:
    """In-memory store with one lock per ticket, held for the whole transaction."""

    def __init__(self, tickets: list[Ticket]) -> None:
        self.tickets = {ticket.id: ticket for ticket in tickets}
        self.log: list[StatusLogEntry] = []
        self.locks = {ticket.id: asyncio.Lock() for ticket in tickets}
        self.observed: list[tuple[int, TicketStatus]] = []

    @asynccontextmanager
    async def transaction(self):
        tx = _LockingTransaction(self)
        try:
            yield tx
        finally:
            tx.release()


class _LockingTransaction:
    def __init__(self, store: LockingTicketStore) -> None:
        self._store = store
        self._held: list[asyncio.Lock] = []

    async def lock_ticket(self, ticket_id: int) -> Ticket | None:
        lock = self._store.locks.get(ticket_id)
        if lock is None:
            return None
        await lock.acquire()
        self._held.append(lock)
        await asyncio.sleep(0)
        ticket = self._store.tickets[ticket_id]
        self._store.observed.append((ticket_id, ticket.status))
        return ticket

    async def get_user(self, user_id: int):
        return None

    async def update_ticket(self, ticket_id: int, *, status: TicketStatus, assigned_to: int | None = None):
        await asyncio.sleep(0)
        ticket = replace(self._store.tickets[ticket_id], status=status)
        if assigned_to is not None:
            ticket.assigned_to = assigned_to
        self._store.tickets[ticket_id] = ticket
        return ticket

    async def append_status_log(self, *, ticket_id, old_status, new_status, changed_by):
        entry = StatusLogEntry(
            id=len(self._store.log) + 1,
            ticket_id=ticket_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            changed_at=datetime.now(timezone.utc),
        )
        self._store.log.append(entry)
        return entry

    def release(self) -> None:
        while self._held:
            self._held.pop().release()


def _ticket(ticket_id: int, status: TicketStatus) -> Ticket:
    return Ticket(
        id=ticket_id,
        title=f"Ticket {ticket_id}",
        description="Keyboard keys stick after coffee spill",
        priority=TicketPriority.LOW,
        status=status,
        created_by=3,
        assigned_to=SUPPORT_ID,
        created_at=datetime.now(timezone.utc),
    )


@pytest.mark.asyncio
async def test_same_ticket_updates_are_serialized():
    store = LockingTicketStore([_ticket(1, TicketStatus.IN_PROGRESS)])
    service = TicketService(store)  # type: ignore[arg-type]

    results = await asyncio.gather(
        service.update_status(1, new_status=TicketStatus.RESOLVED, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT),
        service.update_status(1, new_status=TicketStatus.CLOSED, requester_id=MANAGER_ID, requester_role=Role.MANAGER),
        return_exceptions=True,
    )

    assert [result.status for result in results] == [TicketStatus.RESOLVED, TicketStatus.CLOSED]
    # The second request saw the status committed by the first.
    assert store.observed == [(1, TicketStatus.IN_PROGRESS), (1, TicketStatus.RESOLVED)]
    assert [(entry.old_status, entry.new_status) for entry in store.log] == [
        (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED),
        (TicketStatus.RESOLVED, TicketStatus.CLOSED),
    ]


@pytest.mark.asyncio
async def test_second_request_is_validated_against_new_state():
    store = LockingTicketStore([_ticket(1, TicketStatus.OPEN)])
    service = TicketService(store)  # type: ignore[arg-type]

    results = await asyncio.gather(
        service.update_status(
            1, new_status=TicketStatus.IN_PROGRESS, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT
        ),
        service.update_status(
            1, new_status=TicketStatus.IN_PROGRESS, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT
        ),
        service.update_status(1, new_status=TicketStatus.RESOLVED, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT),
        return_exceptions=True,
    )

    assert results[0].status is TicketStatus.IN_PROGRESS
    assert isinstance(results[1], InvalidTicketTransitionError)
    assert results[1].current is TicketStatus.IN_PROGRESS
    assert results[2].status is TicketStatus.RESOLVED
    assert [status for _, status in store.observed] == [
        TicketStatus.OPEN,
        TicketStatus.IN_PROGRESS,
        TicketStatus.IN_PROGRESS,
    ]
    assert [(entry.old_status, entry.new_status) for entry in store.log] == [
        (TicketStatus.OPEN, TicketStatus.IN_PROGRESS),
        (TicketStatus.IN_PROGRESS, TicketStatus.RESOLVED),
    ]


@pytest.mark.asyncio
async def test_duplicate_concurrent_request_sees_committed_state():
    store = LockingTicketStore([_ticket(1, TicketStatus.IN_PROGRESS)])
    service = TicketService(store)  # type: ignore[arg-type]

    results = await asyncio.gather(
        service.update_status(1, new_status=TicketStatus.RESOLVED, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT),
        service.update_status(1, new_status=TicketStatus.RESOLVED, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT),
        return_exceptions=True,
    )

    assert results[0].status is TicketStatus.RESOLVED
    assert isinstance(results[1], InvalidTicketTransitionError)
    assert len(store.log) == 1
    assert store.tickets[1].status is TicketStatus.RESOLVED


@pytest.mark.asyncio
async def test_different_tickets_do_not_block_each_other():
    store = LockingTicketStore([_ticket(1, TicketStatus.IN_PROGRESS), _ticket(2, TicketStatus.IN_PROGRESS)])
    service = TicketService(store)  # type: ignore[arg-type]

    await store.locks[1].acquire()
    blocked = asyncio.create_task(
        service.update_status(1, new_status=TicketStatus.RESOLVED, requester_id=SUPPORT_ID, requester_role=Role.SUPPORT)
    )
    try:
        updated = await asyncio.wait_for(
            service.update_status(
                2, new_status=TicketStatus.CLOSED, requester_id=MANAGER_ID, requester_role=Role.MANAGER
            ),
            timeout=1,
        )
        assert updated.status is TicketStatus.CLOSED
        assert not blocked.done()
    finally:
        store.locks[1].release()

    resolved = await blocked
    assert resolved.status is TicketStatus.RESOLVED
    assert store.tickets[1].status is TicketStatus.RESOLVED
