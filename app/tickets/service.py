from __future__ import annotations

import logging

from opentelemetry import trace
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from app.security import ASSIGNABLE_ROLES, Identity, Role

from .errors import (
    InvalidTicketInputError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketPermissionError,
    TicketServiceError,
    TicketStoreError,
)
from .models import StatusLogEntry, Ticket, TicketPriority, UserAccount
from .policy import authorize_status_change, can_view
from .repository import TicketRepository
from .state import TicketStateMachine, TicketStatus

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

__all__ = [
    "InvalidTicketInputError",
    "InvalidTicketTransitionError",
    "TicketNotFoundError",
    "TicketPermissionError",
    "TicketService",
    "TicketServiceError",
    "TicketStoreError",
]


class TicketService:
    """Ticket lifecycle engine plus the role-scoped read side.

    ``assign_ticket`` and ``update_status`` each run in a single transaction
    holding the ticket's row lock from the first read until commit, so
    concurrent requests for the same ticket are applied one after another and
    every check runs against the latest committed state.
    """

    def __init__(
        self,
        repository: TicketRepository,
        *,
        state_machine: type[TicketStateMachine] = TicketStateMachine,
    ) -> None:
        self._repository = repository
        self._state_machine = state_machine

    async def ensure_schema(self) -> None:
        await self._repository.ensure_schema()

    async def create_user(self, *, name: str, email: str, role: Role) -> UserAccount:
        """Register a directory entry a ticket can be created by or assigned to."""

        try:
            user = await self._repository.create_user(name=name, email=email, role=role)
        except IntegrityError as exc:
            logger.warning("User creation rejected: email %s already registered", email)
            raise InvalidTicketInputError("Email already registered") from exc
        logger.info("User %s created with role %s", user.id, role.value)
        return user

    async def list_users(self) -> list[UserAccount]:
        return await self._repository.list_users()

    async def create_ticket(
        self,
        *,
        title: str,
        description: str,
        creator_id: int,
        priority: TicketPriority = TicketPriority.MEDIUM,
    ) -> Ticket:
        ticket = await self._repository.create_ticket(
            title=title,
            description=description,
            priority=priority,
            status=self._state_machine.initial_state(),
            created_by=creator_id,
        )
        logger.info("Ticket %s created by user %s", ticket.id, creator_id)
        return ticket

    async def list_tickets(self, identity: Identity) -> list[Ticket]:
        if identity.role is Role.MANAGER:
            return await self._repository.list_tickets()
        if identity.role is Role.SUPPORT:
            return await self._repository.list_tickets(assigned_to=identity.id)
        return await self._repository.list_tickets(created_by=identity.id)

    async def get_ticket(self, ticket_id: int, identity: Identity) -> Ticket:
        ticket = await self._repository.get_ticket(ticket_id)
        if ticket is None:
            raise TicketNotFoundError(ticket_id)
        if not can_view(ticket, identity):
            raise TicketPermissionError(f"Ticket {ticket_id} is outside your role scope")
        return ticket

    async def get_status_log(self, ticket_id: int, identity: Identity) -> list[StatusLogEntry]:
        await self.get_ticket(ticket_id, identity)
        return await self._repository.get_status_log(ticket_id)

    async def assign_ticket(self, ticket_id: int, *, assignee_id: int, requester_id: int) -> Ticket:
        """Assign the ticket and force it to IN_PROGRESS.

        The status change is a side effect of assignment and bypasses the
        transition graph, so a RESOLVED or CLOSED ticket is reopened too. A
        log entry is written only when the status actually changes.
        """

        with tracer.start_as_current_span("tickets.assign") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("ticket.assignee_id", assignee_id)
            try:
                async with self._repository.transaction() as tx:
                    ticket = await tx.lock_ticket(ticket_id)
                    if ticket is None:
                        raise TicketNotFoundError(ticket_id)

                    assignee = await tx.get_user(assignee_id)
                    if assignee is None:
                        raise InvalidTicketInputError(f"Assignee {assignee_id} not found")
                    if assignee.role not in ASSIGNABLE_ROLES:
                        raise InvalidTicketInputError(f"Cannot assign ticket to a {assignee.role.value} role")

                    previous = ticket.status
                    updated = await tx.update_ticket(
                        ticket_id, status=TicketStatus.IN_PROGRESS, assigned_to=assignee_id
                    )
                    if updated is None:
                        raise TicketNotFoundError(ticket_id)
                    if previous is not TicketStatus.IN_PROGRESS:
                        await tx.append_status_log(
                            ticket_id=ticket_id,
                            old_status=previous,
                            new_status=TicketStatus.IN_PROGRESS,
                            changed_by=requester_id,
                        )
            except TicketServiceError as exc:
                logger.warning(
                    "Assignment of ticket %s to user %s by user %s rejected: %s",
                    ticket_id,
                    assignee_id,
                    requester_id,
                    exc,
                )
                raise
            except SQLAlchemyError as exc:
                logger.exception(
                    "Assignment of ticket %s to user %s by user %s failed", ticket_id, assignee_id, requester_id
                )
                raise TicketStoreError("Ticket store failure") from exc

        logger.info(
            "Ticket %s assigned to user %s by user %s (%s -> %s)",
            ticket_id,
            assignee_id,
            requester_id,
            previous.value,
            updated.status.value,
        )
        return updated

    async def update_status(
        self,
        ticket_id: int,
        *,
        new_status: TicketStatus,
        requester_id: int,
        requester_role: Role,
    ) -> Ticket:
        """Move the ticket to ``new_status``.

        Checks run in a fixed order against the locked row: existence, then
        the role rule (ownership and permitted targets), then the transition
        graph.
        """

        with tracer.start_as_current_span("tickets.update_status") as span:
            span.set_attribute("ticket.id", ticket_id)
            span.set_attribute("ticket.target_status", new_status.value)
            try:
                async with self._repository.transaction() as tx:
                    ticket = await tx.lock_ticket(ticket_id)
                    if ticket is None:
                        raise TicketNotFoundError(ticket_id)

                    authorize_status_change(
                        ticket, new_status, requester_id=requester_id, requester_role=requester_role
                    )
                    previous = ticket.status
                    self._state_machine.assert_transition(previous, new_status)

                    updated = await tx.update_ticket(ticket_id, status=new_status)
                    if updated is None:
                        raise TicketNotFoundError(ticket_id)
                    await tx.append_status_log(
                        ticket_id=ticket_id,
                        old_status=previous,
                        new_status=new_status,
                        changed_by=requester_id,
                    )
            except TicketServiceError as exc:
                logger.warning(
                    "Status update of ticket %s to %s by %s user %s rejected: %s",
                    ticket_id,
                    new_status.value,
                    requester_role.value,
                    requester_id,
                    exc,
                )
                raise
            except SQLAlchemyError as exc:
                logger.exception(
                    "Status update of ticket %s to %s by user %s failed", ticket_id, new_status.value, requester_id
                )
                raise TicketStoreError("Ticket store failure") from exc

        logger.info(
            "Ticket %s moved %s -> %s by %s user %s",
            ticket_id,
            previous.value,
            new_status.value,
            requester_role.value,
            requester_id,
        )
        return updated
