from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field

from app.dependencies.tickets import (
    AssignerIdentity,
    CreatorIdentity,
    StatusUpdaterIdentity,
    TicketServiceDep,
    ViewerIdentity,
)
from app.tickets.errors import (
    InvalidTicketInputError,
    InvalidTicketTransitionError,
    TicketNotFoundError,
    TicketPermissionError,
    TicketServiceError,
)
from app.tickets.models import StatusLogEntry, Ticket, TicketPriority
from app.tickets.state import TicketStatus

router = APIRouter(prefix="/tickets", tags=["tickets"])


class TicketCreateRequest(BaseModel):
    title: str = Field(..., min_length=5, max_length=255)
    description: str = Field(..., min_length=10)
    priority: TicketPriority = Field(default=TicketPriority.MEDIUM)


class TicketAssignRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    assignee_id: int = Field(..., gt=0, alias="assigneeId")


class TicketStatusChangeRequest(BaseModel):
    status: TicketStatus


class TicketResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    description: str
    priority: TicketPriority
    status: TicketStatus
    created_by: int
    assigned_to: int | None
    created_at: datetime


class StatusLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    ticket_id: int
    old_status: TicketStatus
    new_status: TicketStatus
    changed_by: int
    changed_at: datetime


def _to_response(ticket: Ticket) -> TicketResponse:
    return TicketResponse.model_validate(ticket)


def _to_log_response(entry: StatusLogEntry) -> StatusLogResponse:
    return StatusLogResponse.model_validate(entry)


def _to_http_error(exc: TicketServiceError) -> HTTPException:
    if isinstance(exc, TicketNotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, TicketPermissionError):
        return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Forbidden: {exc}")
    if isinstance(exc, (InvalidTicketInputError, InvalidTicketTransitionError)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Internal server error")


@router.post("", response_model=TicketResponse, status_code=status.HTTP_201_CREATED)
async def create_ticket(
    payload: TicketCreateRequest,
    service: TicketServiceDep,
    identity: CreatorIdentity,
) -> TicketResponse:
    ticket = await service.create_ticket(
        title=payload.title,
        description=payload.description,
        priority=payload.priority,
        creator_id=identity.id,
    )
    return _to_response(ticket)


@router.get("", response_model=list[TicketResponse])
async def list_tickets(service: TicketServiceDep, identity: ViewerIdentity) -> list[TicketResponse]:
    tickets = await service.list_tickets(identity)
    return [_to_response(ticket) for ticket in tickets]


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(ticket_id: int, service: TicketServiceDep, identity: ViewerIdentity) -> TicketResponse:
    try:
        ticket = await service.get_ticket(ticket_id, identity)
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}/assign", response_model=TicketResponse)
async def assign_ticket(
    ticket_id: int,
    payload: TicketAssignRequest,
    service: TicketServiceDep,
    identity: AssignerIdentity,
) -> TicketResponse:
    try:
        ticket = await service.assign_ticket(
            ticket_id,
            assignee_id=payload.assignee_id,
            requester_id=identity.id,
        )
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return _to_response(ticket)


@router.patch("/{ticket_id}/status", response_model=TicketResponse)
async def change_ticket_status(
    ticket_id: int,
    payload: TicketStatusChangeRequest,
    service: TicketServiceDep,
    identity: StatusUpdaterIdentity,
) -> TicketResponse:
    try:
        ticket = await service.update_status(
            ticket_id,
            new_status=payload.status,
            requester_id=identity.id,
            requester_role=identity.role,
        )
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return _to_response(ticket)


@router.get("/{ticket_id}/status-log", response_model=list[StatusLogResponse])
async def get_ticket_status_log(
    ticket_id: int,
    service: TicketServiceDep,
    identity: ViewerIdentity,
) -> list[StatusLogResponse]:
    try:
        entries = await service.get_status_log(ticket_id, identity)
    except TicketServiceError as exc:
        raise _to_http_error(exc) from exc
    return [_to_log_response(entry) for entry in entries]
