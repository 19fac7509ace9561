from utils.dates import InvalidMonth


class BillingError(Exception):
     """Base class for billing and scheduling errors."""


class InvoiceAlreadyExists(BillingError):
     """Uniqueness conflict on (tenant_id, month). Callers treat it as a skip."""

     def __init__(self, tenant_id: int, month: str):
          super().__init__(f"Invoice already exists for tenant {tenant_id}, month {month}")
          self.tenant_id = tenant_id
          self.month = month


class TicketNotFound(BillingError):
     def __init__(self, ticket_id: int):
          super().__init__(f"Maintenance ticket {ticket_id} not found")
          self.ticket_id = ticket_id


class QueueUnavailable(BillingError):
     """Recurring schedules cannot be registered while the job queue is degraded."""
