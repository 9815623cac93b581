from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from app.dependencies.auth import role_required
from app.security import Identity
from app.tickets.policy import TicketOperation, roles_for
from app.tickets.service import TicketService

require_creator = role_required(*roles_for(TicketOperation.CREATE))
require_viewer = role_required(*roles_for(TicketOperation.VIEW))
require_assigner = role_required(*roles_for(TicketOperation.ASSIGN))
require_status_updater = role_required(*roles_for(TicketOperation.UPDATE_STATUS))
require_user_manager = role_required(*roles_for(TicketOperation.MANAGE_USERS))

CreatorIdentity = Annotated[Identity, Depends(require_creator)]
ViewerIdentity = Annotated[Identity, Depends(require_viewer)]
AssignerIdentity = Annotated[Identity, Depends(require_assigner)]
StatusUpdaterIdentity = Annotated[Identity, Depends(require_status_updater)]
UserManagerIdentity = Annotated[Identity, Depends(require_user_manager)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service


TicketServiceDep = Annotated[TicketService, Depends(get_ticket_service)]
