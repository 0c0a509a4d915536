from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request

from ticketflow.dependencies.auth import User, authenticated_required, capability_required
from ticketflow.tickets.permissions import Capability
from ticketflow.tickets.service import TicketService

require_user = authenticated_required()
require_view_all = capability_required(Capability.VIEW_ALL)

AuthenticatedUser = Annotated[User, Depends(require_user)]
SupervisorUser = Annotated[User, Depends(require_view_all)]


async def get_ticket_service(request: Request) -> TicketService:
    service = getattr(request.app.state, "ticket_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Ticket service is not configured")
    return service
