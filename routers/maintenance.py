# routers/maintenance.py
"""
Maintenance ticket events that drive the reminder schedule.

- Tenant: raises tickets, can close their own
- Owner / Admin: acknowledges and updates status
"""
from fastapi import APIRouter, Depends, HTTPException, status

from models.maintenance import TicketActor
from schemas.maintenance import (
     TicketCreate,
     TicketStatusUpdate,
     TicketResponse,
     TicketEventResponse,
     TicketTimelineResponse,
)
from security import get_container, require_owner, verify_token
from services.container import ServiceContainer
from services.exceptions import TicketNotFound

router = APIRouter(prefix="/api/maintenance-tickets", tags=["maintenance"])


def _actor_for(token: dict) -> TicketActor:
     role = str(token.get("role", "")).lower()
     if role == "tenant":
          return TicketActor.TENANT
     if role in ("owner", "admin"):
          return TicketActor.OWNER
     return TicketActor.SYSTEM


@router.post(
     "",
     response_model=TicketResponse,
     status_code=status.HTTP_201_CREATED,
     summary="Raise a maintenance request"
)
def create_ticket(
     body: TicketCreate,
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(verify_token),
):
     """
     Create the ticket, notify the owner and start periodic reminders
     (every 30 minutes for HIGH/URGENT, hourly otherwise).
     """
     tenant = container.invoices.get_tenant(body.tenant_id)
     if tenant is None or tenant.owner_id != body.owner_id:
          raise HTTPException(status_code=404, detail="Tenant not found for this owner")

     return container.reminders.create_ticket(
          owner_id=body.owner_id,
          tenant_id=body.tenant_id,
          title=body.title,
          category=body.category,
          priority=body.priority,
          description=body.description,
          actor_user_id=token.get("id"),
     )


@router.post(
     "/{ticket_id}/acknowledge",
     response_model=TicketResponse,
     summary="Owner acknowledges a ticket"
)
def acknowledge_ticket(
     ticket_id: int,
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_owner),
):
     try:
          return container.reminders.acknowledge(ticket_id, actor_user_id=token.get("id"))
     except TicketNotFound as e:
          raise HTTPException(status_code=404, detail=str(e))


@router.patch(
     "/{ticket_id}/status",
     response_model=TicketResponse,
     summary="Update ticket status"
)
def update_ticket_status(
     ticket_id: int,
     body: TicketStatusUpdate,
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(verify_token),
):
     """Resolving or closing a ticket cancels all of its reminders."""
     try:
          return container.reminders.update_status(
               ticket_id,
               body.status,
               actor=_actor_for(token),
               actor_user_id=token.get("id"),
               note=body.note,
          )
     except TicketNotFound as e:
          raise HTTPException(status_code=404, detail=str(e))


@router.get(
     "/{ticket_id}/timeline",
     response_model=TicketTimelineResponse,
     summary="Ticket event log"
)
def get_ticket_timeline(
     ticket_id: int,
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(verify_token),
):
     if container.tickets.get_ticket(ticket_id) is None:
          raise HTTPException(status_code=404, detail=f"Maintenance ticket {ticket_id} not found")

     events = container.tickets.list_ticket_events(ticket_id)
     return TicketTimelineResponse(
          ticket_id=ticket_id,
          events=[TicketEventResponse.model_validate(e) for e in events],
     )
