"""
Maintenance reminder escalation.

Each open ticket is in one of three reminder states, derived from the ticket
row itself rather than stored separately:

     PERIODIC_ACTIVE     -> owner nudged every 30 min (HIGH/URGENT) or 60 min
     ACKNOWLEDGED_DAILY  -> owner said "got it": one check 24h after that,
                            plus a daily nudge until the ticket is resolved
     TERMINATED          -> RESOLVED or CLOSED, no reminder jobs remain

The queue registrations for a ticket always use the same three job ids, so
rescheduling overwrites and cancelling is a best-effort removal of all three.
"""
import enum
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from models import (
     MaintenanceTicket,
     TicketAction,
     TicketActor,
     TicketPriority,
     TicketStatus,
     TERMINAL_TICKET_STATUSES,
)
from services.exceptions import TicketNotFound
from services.notification_service import (
     NotificationChannel,
     NotificationDispatcher,
     NotificationKind,
     NotificationPriority,
)
from services.queue_service import JobQueue, Repeat
from services.repository import InvoiceRepository, TicketRepository
from utils.dates import utcnow

logger = logging.getLogger(__name__)

REMINDER_JOB = "maintenance_reminder"

PERIODIC = "periodic"
UNRESOLVED_24H = "unresolved_24h"

URGENT_INTERVAL = timedelta(minutes=30)
STANDARD_INTERVAL = timedelta(minutes=60)
UNRESOLVED_AFTER = timedelta(hours=24)


class ReminderState(str, enum.Enum):
     PERIODIC_ACTIVE = "PERIODIC_ACTIVE"
     ACKNOWLEDGED_DAILY = "ACKNOWLEDGED_DAILY"
     TERMINATED = "TERMINATED"


def reminder_state(ticket: Optional[MaintenanceTicket]) -> ReminderState:
     if ticket is None or ticket.is_terminal:
          return ReminderState.TERMINATED
     if ticket.got_it_by_owner:
          return ReminderState.ACKNOWLEDGED_DAILY
     return ReminderState.PERIODIC_ACTIVE


def reminder_interval(priority: TicketPriority) -> timedelta:
     if priority in (TicketPriority.HIGH, TicketPriority.URGENT):
          return URGENT_INTERVAL
     return STANDARD_INTERVAL


def periodic_job_id(ticket_id: int) -> str:
     return f"reminder-{ticket_id}"


def unresolved_check_job_id(ticket_id: int) -> str:
     return f"24h-check-{ticket_id}"


def daily_job_id(ticket_id: int) -> str:
     return f"daily-reminder-{ticket_id}"


def ticket_job_ids(ticket_id: int):
     return (periodic_job_id(ticket_id), unresolved_check_job_id(ticket_id), daily_job_id(ticket_id))


class MaintenanceReminderScheduler:

     def __init__(
          self,
          tickets: TicketRepository,
          invoices: InvoiceRepository,
          notifications: NotificationDispatcher,
          queue: JobQueue,
          daily_reminder_cron: str = "0 9 * * *",
          clock: Callable[[], datetime] = utcnow,
     ):
          self.tickets = tickets
          self.invoices = invoices
          self.notifications = notifications
          self.queue = queue
          self.daily_reminder_cron = daily_reminder_cron
          self._clock = clock

     # ------------------------------------------------------------------
     # Ticket events
     # ------------------------------------------------------------------

     def create_ticket(
          self,
          owner_id: int,
          tenant_id: int,
          title: str,
          category: str,
          priority: TicketPriority = TicketPriority.MEDIUM,
          description: Optional[str] = None,
          actor_user_id: Optional[int] = None,
     ) -> MaintenanceTicket:
          ticket = self.tickets.create_ticket(
               owner_id=owner_id,
               tenant_id=tenant_id,
               title=title,
               category=category,
               priority=priority,
               description=description,
               actor_user_id=actor_user_id,
          )
          self.on_ticket_created(ticket)
          return ticket

     def on_ticket_created(self, ticket: MaintenanceTicket) -> None:
          tenant_name = self._tenant_name(ticket.tenant_id)
          channels = [NotificationChannel.WEBSOCKET, NotificationChannel.EMAIL]
          if ticket.priority in (TicketPriority.HIGH, TicketPriority.URGENT):
               channels.append(NotificationChannel.SMS)
          self.notifications.dispatch(
               user_id=ticket.owner_id,
               kind=NotificationKind.MAINTENANCE_REQUEST,
               title=f"New {ticket.priority.value} Priority Maintenance Request",
               message=f'{tenant_name} has submitted a maintenance request: "{ticket.title}"',
               data={"ticketId": ticket.id, "category": ticket.category},
               channels=channels,
               priority=NotificationPriority(ticket.priority.value),
          )
          self.start_periodic(ticket)

     def start_periodic(self, ticket: MaintenanceTicket) -> None:
          interval = reminder_interval(ticket.priority)
          handle = self.queue.enqueue(
               REMINDER_JOB,
               self._payload(ticket, PERIODIC),
               repeat=Repeat(every=interval),
               job_id=periodic_job_id(ticket.id),
          )
          if handle.scheduled:
               logger.info(
                    f"✅ Scheduled {ticket.priority.value} priority reminders every "
                    f"{int(interval.total_seconds() // 60)} minutes for ticket {ticket.id}"
               )

     def acknowledge(self, ticket_id: int, actor_user_id: Optional[int] = None) -> MaintenanceTicket:
          """
          Owner's "got it". Records the acknowledgment once, tells the tenant
          and switches the ticket to daily reminders right away.

          Raises:
               TicketNotFound: no such ticket
          """
          ticket, changed = self.tickets.acknowledge_ticket(ticket_id, actor_user_id=actor_user_id)
          if ticket is None:
               raise TicketNotFound(ticket_id)
          if not changed:
               return ticket

          tenant_user_id = self._tenant_user_id(ticket.tenant_id)
          if tenant_user_id:
               self.notifications.dispatch(
                    user_id=tenant_user_id,
                    kind=NotificationKind.OWNER_ACKNOWLEDGED,
                    title="Owner Has Seen Your Request",
                    message=f'The owner has acknowledged your maintenance request: "{ticket.title}"',
                    data={"ticketId": ticket.id},
                    priority=NotificationPriority.MEDIUM,
               )
          self.escalate_to_daily(ticket)
          return ticket

     def escalate_to_daily(self, ticket: MaintenanceTicket) -> None:
          """PERIODIC_ACTIVE -> ACKNOWLEDGED_DAILY."""
          self.queue.cancel(periodic_job_id(ticket.id))

          got_it_at = ticket.got_it_at or self._clock()
          check_at = got_it_at + UNRESOLVED_AFTER
          if check_at > self._clock():
               self.queue.enqueue(
                    REMINDER_JOB,
                    self._payload(ticket, UNRESOLVED_24H),
                    run_at=check_at,
                    job_id=unresolved_check_job_id(ticket.id),
               )
          self.queue.enqueue(
               REMINDER_JOB,
               self._payload(ticket, UNRESOLVED_24H),
               repeat=Repeat(cron=self.daily_reminder_cron),
               job_id=daily_job_id(ticket.id),
          )
          self.tickets.append_ticket_event(
               ticket.id,
               TicketAction.ESCALATED_TO_DAILY,
               "Periodic reminders stopped; daily reminders scheduled",
          )
          logger.info(f"✅ Ticket {ticket.id} switched to daily reminders")

     def update_status(
          self,
          ticket_id: int,
          status: TicketStatus,
          actor: TicketActor = TicketActor.OWNER,
          actor_user_id: Optional[int] = None,
          note: Optional[str] = None,
     ) -> MaintenanceTicket:
          """
          Resolving or closing cancels every reminder. Reopening a resolved or
          closed ticket clears the acknowledgment and restarts periodic
          reminders.

          Raises:
               TicketNotFound: no such ticket
          """
          current = self.tickets.get_ticket(ticket_id)
          if current is None:
               raise TicketNotFound(ticket_id)
          reopened = current.is_terminal and status not in TERMINAL_TICKET_STATUSES

          ticket = self.tickets.update_ticket_status(
               ticket_id, status, actor=actor, actor_user_id=actor_user_id, note=note
          )
          if ticket is None:
               raise TicketNotFound(ticket_id)

          tenant_user_id = self._tenant_user_id(ticket.tenant_id)
          if tenant_user_id:
               update = note or f"status changed to {status.value}"
               self.notifications.dispatch(
                    user_id=tenant_user_id,
                    kind=NotificationKind.MAINTENANCE_UPDATE,
                    title="Maintenance Request Update",
                    message=f'Update on "{ticket.title}": {update}',
                    data={"ticketId": ticket.id, "status": status.value},
                    priority=NotificationPriority.MEDIUM,
               )

          if ticket.is_terminal:
               self.cancel_all(ticket.id)
               self.tickets.append_ticket_event(
                    ticket.id, TicketAction.REMINDERS_CANCELLED, f"Ticket {status.value.lower()}"
               )
          elif reopened:
               logger.info(f"Ticket {ticket.id} reopened, restarting reminders")
               self.start_periodic(ticket)
          return ticket

     def cancel_all(self, ticket_id: int) -> None:
          """Remove every reminder registration for the ticket. Missing ones are ignored."""
          for job_id in ticket_job_ids(ticket_id):
               self.queue.cancel(job_id)
          logger.info(f"✅ Cancelled all reminders for ticket {ticket_id}")

     # ------------------------------------------------------------------
     # Queue entry point
     # ------------------------------------------------------------------

     def handle_job(self, payload: Dict[str, Any]) -> Dict[str, Any]:
          ticket_id = int(payload["ticket_id"])
          reminder_type = payload.get("reminder_type", PERIODIC)
          logger.info(f"🔔 Processing {reminder_type} reminder for ticket {ticket_id}")

          ticket = self.tickets.get_ticket(ticket_id)
          state = reminder_state(ticket)

          if ticket is None:
               logger.warning(f"⚠️ Ticket {ticket_id} not found, cancelling reminders")
               self.cancel_all(ticket_id)
               return {"state": state.value, "sent": False, "reason": "ticket not found"}

          if state == ReminderState.TERMINATED:
               logger.info(f"Ticket {ticket_id} is {ticket.status.value}, stopping reminders")
               self.cancel_all(ticket_id)
               return {"state": state.value, "sent": False, "reason": ticket.status.value}

          if reminder_type == PERIODIC:
               if state == ReminderState.ACKNOWLEDGED_DAILY:
                    self.escalate_to_daily(ticket)
                    return {"state": state.value, "sent": False, "reason": "acknowledged"}
               self._send_periodic(ticket)
               return {"state": state.value, "sent": True}

          return {"state": state.value, "sent": self._send_unresolved(ticket)}

     def _send_periodic(self, ticket: MaintenanceTicket) -> None:
          days_pending = (self._clock() - ticket.created_at) // timedelta(days=1)
          self.notifications.dispatch(
               user_id=ticket.owner_id,
               kind=NotificationKind.MAINTENANCE_REMINDER,
               title="Reminder: Pending Maintenance Request",
               message=f'"{ticket.title}" has been pending for {days_pending} day(s). Please take action.',
               data={"ticketId": ticket.id, "daysPending": days_pending},
               priority=NotificationPriority(ticket.priority.value),
          )
          self.tickets.touch_ticket_reminder(ticket.id)
          self.tickets.append_ticket_event(
               ticket.id, TicketAction.REMINDER_SENT, f"Reminder sent ({days_pending} day(s) pending)"
          )

     def _send_unresolved(self, ticket: MaintenanceTicket) -> bool:
          if ticket.got_it_at is None:
               return False
          elapsed = self._clock() - ticket.got_it_at
          if elapsed < UNRESOLVED_AFTER:
               return False

          hours = int(elapsed.total_seconds() // 3600)
          recipients = [ticket.owner_id]
          tenant_user_id = self._tenant_user_id(ticket.tenant_id)
          if tenant_user_id:
               recipients.append(tenant_user_id)

          for user_id in recipients:
               self.notifications.dispatch(
                    user_id=user_id,
                    kind=NotificationKind.MAINTENANCE_REMINDER,
                    title="Unresolved Maintenance Request",
                    message=f'"{ticket.title}" has been unresolved for {hours} hours. Please update the status.',
                    data={"ticketId": ticket.id, "hoursUnresolved": hours},
                    priority=NotificationPriority.HIGH,
               )
          self.tickets.append_ticket_event(
               ticket.id, TicketAction.UNRESOLVED_ALERT, f"Unresolved {hours} hours after acknowledgment"
          )
          return True

     # ------------------------------------------------------------------

     def _payload(self, ticket: MaintenanceTicket, reminder_type: str) -> Dict[str, Any]:
          return {
               "ticket_id": ticket.id,
               "owner_id": ticket.owner_id,
               "tenant_id": ticket.tenant_id,
               "reminder_type": reminder_type,
               "priority": ticket.priority.value,
          }

     def _tenant_user_id(self, tenant_id: int) -> Optional[int]:
          tenant = self.invoices.get_tenant(tenant_id)
          return tenant.user_id if tenant is not None else None

     def _tenant_name(self, tenant_id: int) -> str:
          tenant = self.invoices.get_tenant(tenant_id)
          return tenant.name if tenant is not None else "A tenant"
