# schemas/maintenance.py
"""
Pydantic schemas for maintenance ticket events.
"""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field, ConfigDict

from models.maintenance import TicketAction, TicketActor, TicketPriority, TicketStatus


class TicketCreate(BaseModel):
     """Schema for a tenant raising a maintenance request."""
     owner_id: int = Field(..., gt=0)
     tenant_id: int = Field(..., gt=0, description="Tenant profile ID")
     title: str = Field(..., min_length=1, max_length=255)
     category: str = Field(..., min_length=1, max_length=100)
     description: Optional[str] = None
     priority: TicketPriority = Field(default=TicketPriority.MEDIUM)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "owner_id": 12,
                    "tenant_id": 40,
                    "title": "Water leak in bathroom",
                    "category": "PLUMBING",
                    "priority": "HIGH"
               }
          }
     )


class TicketStatusUpdate(BaseModel):
     status: TicketStatus
     note: Optional[str] = Field(None, max_length=400)


class TicketResponse(BaseModel):
     id: int
     owner_id: int
     tenant_id: int
     title: str
     category: str
     priority: TicketPriority
     status: TicketStatus
     got_it_by_owner: bool
     got_it_at: Optional[datetime] = None
     resolved_at: Optional[datetime] = None
     created_at: datetime

     model_config = ConfigDict(from_attributes=True)


class TicketEventResponse(BaseModel):
     actor: TicketActor
     action: TicketAction
     text: Optional[str] = None
     created_at: datetime

     model_config = ConfigDict(from_attributes=True)


class TicketTimelineResponse(BaseModel):
     ticket_id: int
     events: List[TicketEventResponse]
