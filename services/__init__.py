# services/__init__.py
from .exceptions import (
     BillingError,
     InvalidMonth,
     InvoiceAlreadyExists,
     TicketNotFound,
     QueueUnavailable,
)
from .billing_service import BillingService, BillingRunResult
from .late_fee_service import OverdueProcessor, OverdueRunResult, calculate_late_fee
from .notification_service import NotificationDispatcher
from .queue_service import JobQueue, JobHandle, QueueState, Repeat, Worker
from .reminder_service import MaintenanceReminderScheduler, ReminderState

__all__ = [
     "BillingError",
     "InvalidMonth",
     "InvoiceAlreadyExists",
     "TicketNotFound",
     "QueueUnavailable",
     "BillingService",
     "BillingRunResult",
     "OverdueProcessor",
     "OverdueRunResult",
     "calculate_late_fee",
     "NotificationDispatcher",
     "JobQueue",
     "JobHandle",
     "QueueState",
     "Repeat",
     "Worker",
     "MaintenanceReminderScheduler",
     "ReminderState",
]
