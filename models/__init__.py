from .base import Base
from .user import User, UserRole, BillingSettings
from .tenant import TenantProfile, TenantStatus
from .invoice import Invoice, InvoiceStatus, ElectricityBill, UtilityChargeStatus, UNSETTLED_STATUSES
from .maintenance import (
     MaintenanceTicket,
     TicketEvent,
     TicketStatus,
     TicketPriority,
     TicketActor,
     TicketAction,
     TERMINAL_TICKET_STATUSES,
)

__all__ = [
     "Base",
     "User",
     "UserRole",
     "BillingSettings",
     "TenantProfile",
     "TenantStatus",
     "Invoice",
     "InvoiceStatus",
     "ElectricityBill",
     "UtilityChargeStatus",
     "UNSETTLED_STATUSES",
     "MaintenanceTicket",
     "TicketEvent",
     "TicketStatus",
     "TicketPriority",
     "TicketActor",
     "TicketAction",
     "TERMINAL_TICKET_STATUSES",
]
