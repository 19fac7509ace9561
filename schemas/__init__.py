# schemas/__init__.py
from .billing import (
     BillingTriggerRequest,
     BillingRunResponse,
     OverdueRunResponse,
     QueueStatusResponse,
     FailedJobResponse,
     FailedJobListResponse,
     ScheduleUpdateRequest,
)
from .maintenance import (
     TicketCreate,
     TicketStatusUpdate,
     TicketResponse,
     TicketEventResponse,
     TicketTimelineResponse,
)

__all__ = [
     "BillingTriggerRequest",
     "BillingRunResponse",
     "OverdueRunResponse",
     "QueueStatusResponse",
     "FailedJobResponse",
     "FailedJobListResponse",
     "ScheduleUpdateRequest",
     "TicketCreate",
     "TicketStatusUpdate",
     "TicketResponse",
     "TicketEventResponse",
     "TicketTimelineResponse",
]
