"""
Repository layer over the relational store.

Every public method runs in its own short transaction, so a failure while
processing one tenant or invoice never rolls back work already committed
for another. "Not found" is returned as None, never raised.

Returned ORM objects are detached (the session factory is configured with
expire_on_commit=False); relationships callers need are eager-loaded.
"""
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import joinedload, sessionmaker

from database import session_scope
from models import (
     User,
     UserRole,
     TenantProfile,
     TenantStatus,
     Invoice,
     InvoiceStatus,
     ElectricityBill,
     UtilityChargeStatus,
     UNSETTLED_STATUSES,
     MaintenanceTicket,
     TicketEvent,
     TicketStatus,
     TicketPriority,
     TicketActor,
     TicketAction,
     TERMINAL_TICKET_STATUSES,
)
from services.exceptions import InvoiceAlreadyExists
from utils.dates import utcnow


@dataclass(frozen=True)
class UserContact:
     """Delivery destinations for one user."""
     user_id: int
     name: str
     email: Optional[str]
     phone: Optional[str]
     phone_verified: bool
     fcm_token: Optional[str]


class _Repository:

     def __init__(self, session_factory: sessionmaker, clock=utcnow):
          self._session_factory = session_factory
          self._clock = clock

     def _scope(self):
          return session_scope(self._session_factory)


class UserRepository(_Repository):
     """Owner lookups and notification contact details."""

     def get_owner(self, owner_id: int) -> Optional[User]:
          with self._scope() as db:
               return (
                    db.query(User)
                    .options(joinedload(User.billing_settings))
                    .filter(User.id == owner_id, User.role == UserRole.OWNER)
                    .first()
               )

     def list_active_owner_ids(self) -> List[int]:
          with self._scope() as db:
               rows = (
                    db.query(User.id)
                    .filter(User.role == UserRole.OWNER, User.is_active.is_(True))
                    .order_by(User.id)
                    .all()
               )
               return [row[0] for row in rows]

     def get_user_contact(self, user_id: int) -> Optional[UserContact]:
          with self._scope() as db:
               user = db.query(User).filter(User.id == user_id).first()
               if user is None:
                    return None
               return UserContact(
                    user_id=user.id,
                    name=user.full_name,
                    email=user.email,
                    phone=user.phone,
                    phone_verified=bool(user.phone_verified),
                    fcm_token=user.fcm_token,
               )

     def clear_push_token(self, user_id: int) -> None:
          with self._scope() as db:
               db.query(User).filter(User.id == user_id).update(
                    {User.fcm_token: None}, synchronize_session=False
               )

     def revoke_phone(self, user_id: int) -> None:
          """Mark the phone unverified so SMS stops targeting it."""
          with self._scope() as db:
               db.query(User).filter(User.id == user_id).update(
                    {User.phone_verified: False}, synchronize_session=False
               )


class InvoiceRepository(_Repository):
     """Tenants, utility charges and invoices."""

     def list_active_tenants(self, owner_id: int) -> List[TenantProfile]:
          with self._scope() as db:
               return (
                    db.query(TenantProfile)
                    .filter(
                         TenantProfile.owner_id == owner_id,
                         TenantProfile.status == TenantStatus.ACTIVE,
                    )
                    .order_by(TenantProfile.id)
                    .all()
               )

     def get_tenant(self, tenant_id: int) -> Optional[TenantProfile]:
          with self._scope() as db:
               return db.query(TenantProfile).filter(TenantProfile.id == tenant_id).first()

     def find_invoice(self, tenant_id: int, month: str) -> Optional[Invoice]:
          with self._scope() as db:
               return (
                    db.query(Invoice)
                    .filter(Invoice.tenant_id == tenant_id, Invoice.month == month)
                    .first()
               )

     def get_invoice(self, invoice_id: int) -> Optional[Invoice]:
          with self._scope() as db:
               return db.query(Invoice).filter(Invoice.id == invoice_id).first()

     def find_approved_utility_charge(self, tenant_id: int, month: str) -> Optional[ElectricityBill]:
          with self._scope() as db:
               return (
                    db.query(ElectricityBill)
                    .filter(
                         ElectricityBill.tenant_id == tenant_id,
                         ElectricityBill.month == month,
                         ElectricityBill.status == UtilityChargeStatus.APPROVED,
                    )
                    .order_by(ElectricityBill.id.desc())
                    .first()
               )

     def create_invoice(
          self,
          owner_id: int,
          tenant_id: int,
          month: str,
          base_rent: Decimal,
          electricity_charges: Decimal,
          due_date,
          other_charges: Decimal = Decimal("0"),
     ) -> Invoice:
          """
          Persist a DUE invoice.

          Raises:
               InvoiceAlreadyExists: another writer already created the
                    (tenant_id, month) invoice
          """
          amount = Decimal(base_rent) + Decimal(electricity_charges) + Decimal(other_charges)
          now = self._clock()
          invoice = Invoice(
               owner_id=owner_id,
               tenant_id=tenant_id,
               month=month,
               base_rent=base_rent,
               electricity_charges=electricity_charges,
               other_charges=other_charges,
               late_fees=Decimal("0"),
               amount=amount,
               due_date=due_date,
               status=InvoiceStatus.DUE,
               created_at=now,
               updated_at=now,
          )
          try:
               with self._scope() as db:
                    db.add(invoice)
                    db.flush()
          except IntegrityError:
               if self.find_invoice(tenant_id, month) is not None:
                    raise InvoiceAlreadyExists(tenant_id, month)
               raise
          return invoice

     def list_overdue_invoices(self, now: datetime) -> List[Invoice]:
          """Invoices past due date that are still DUE or PARTIAL."""
          with self._scope() as db:
               return (
                    db.query(Invoice)
                    .options(
                         joinedload(Invoice.owner).joinedload(User.billing_settings),
                         joinedload(Invoice.tenant),
                    )
                    .filter(
                         Invoice.due_date < now.date(),
                         Invoice.status.in_(UNSETTLED_STATUSES),
                    )
                    .order_by(Invoice.due_date, Invoice.id)
                    .all()
               )

     def apply_late_fee(self, invoice_id: int, fee: Decimal) -> bool:
          """
          Mark the invoice OVERDUE and add `fee` to both late_fees and amount.

          The update only matches while late_fees is still zero and the
          invoice is unsettled, so concurrent or repeated scans apply the fee
          at most once. Returns True if this call applied it.
          """
          with self._scope() as db:
               matched = (
                    db.query(Invoice)
                    .filter(
                         Invoice.id == invoice_id,
                         Invoice.late_fees == 0,
                         Invoice.status.in_(UNSETTLED_STATUSES),
                    )
                    .update(
                         {
                              Invoice.status: InvoiceStatus.OVERDUE,
                              Invoice.late_fees: fee,
                              Invoice.amount: Invoice.amount + fee,
                              Invoice.updated_at: self._clock(),
                         },
                         synchronize_session=False,
                    )
               )
               return matched == 1


class TicketRepository(_Repository):
     """Maintenance tickets and their append-only timeline."""

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
          now = self._clock()
          ticket = MaintenanceTicket(
               owner_id=owner_id,
               tenant_id=tenant_id,
               title=title,
               description=description,
               category=category,
               priority=priority,
               status=TicketStatus.OPEN,
               got_it_by_owner=False,
               created_at=now,
               updated_at=now,
          )
          with self._scope() as db:
               db.add(ticket)
               db.flush()
               db.add(TicketEvent(
                    ticket_id=ticket.id,
                    actor=TicketActor.TENANT,
                    actor_user_id=actor_user_id,
                    action=TicketAction.CREATED,
                    text=title,
                    created_at=now,
               ))
          return ticket

     def get_ticket(self, ticket_id: int) -> Optional[MaintenanceTicket]:
          with self._scope() as db:
               return db.query(MaintenanceTicket).filter(MaintenanceTicket.id == ticket_id).first()

     def acknowledge_ticket(
          self,
          ticket_id: int,
          actor_user_id: Optional[int] = None,
     ) -> Tuple[Optional[MaintenanceTicket], bool]:
          """
          Record the owner's acknowledgment once.

          Returns (ticket, changed). changed is False when the ticket was
          already acknowledged or is resolved/closed; (None, False) when the
          ticket does not exist.
          """
          now = self._clock()
          with self._scope() as db:
               ticket = db.query(MaintenanceTicket).filter(MaintenanceTicket.id == ticket_id).first()
               if ticket is None:
                    return None, False
               if ticket.got_it_by_owner or ticket.is_terminal:
                    return ticket, False

               ticket.got_it_by_owner = True
               ticket.got_it_at = now
               ticket.updated_at = now
               db.add(TicketEvent(
                    ticket_id=ticket.id,
                    actor=TicketActor.OWNER,
                    actor_user_id=actor_user_id,
                    action=TicketAction.ACKNOWLEDGED,
                    text="Owner acknowledged the request",
                    created_at=now,
               ))
               db.flush()
               return ticket, True

     def update_ticket_status(
          self,
          ticket_id: int,
          status: TicketStatus,
          actor: TicketActor = TicketActor.OWNER,
          actor_user_id: Optional[int] = None,
          note: Optional[str] = None,
     ) -> Optional[MaintenanceTicket]:
          now = self._clock()
          with self._scope() as db:
               ticket = db.query(MaintenanceTicket).filter(MaintenanceTicket.id == ticket_id).first()
               if ticket is None:
                    return None

               previous = ticket.status
               ticket.status = status
               ticket.updated_at = now
               if status == TicketStatus.RESOLVED and previous != TicketStatus.RESOLVED:
                    ticket.resolved_at = now
               if previous in TERMINAL_TICKET_STATUSES and not ticket.is_terminal:
                    # Reopened: the owner has to acknowledge again
                    ticket.got_it_by_owner = False
                    ticket.got_it_at = None
                    ticket.resolved_at = None

               text = f"{previous.value} -> {status.value}"
               if note:
                    text = f"{text}: {note}"
               db.add(TicketEvent(
                    ticket_id=ticket.id,
                    actor=actor,
                    actor_user_id=actor_user_id,
                    action=TicketAction.STATUS_CHANGED,
                    text=text[:500],
                    created_at=now,
               ))
               db.flush()
               return ticket

     def touch_ticket_reminder(self, ticket_id: int) -> None:
          with self._scope() as db:
               db.query(MaintenanceTicket).filter(MaintenanceTicket.id == ticket_id).update(
                    {MaintenanceTicket.last_reminder_at: self._clock()},
                    synchronize_session=False,
               )

     def append_ticket_event(
          self,
          ticket_id: int,
          action: TicketAction,
          text: Optional[str] = None,
          actor: TicketActor = TicketActor.SYSTEM,
          actor_user_id: Optional[int] = None,
     ) -> TicketEvent:
          event = TicketEvent(
               ticket_id=ticket_id,
               actor=actor,
               actor_user_id=actor_user_id,
               action=action,
               text=text[:500] if text else None,
               created_at=self._clock(),
          )
          with self._scope() as db:
               db.add(event)
               db.flush()
          return event

     def list_ticket_events(self, ticket_id: int) -> List[TicketEvent]:
          with self._scope() as db:
               return (
                    db.query(TicketEvent)
                    .filter(TicketEvent.ticket_id == ticket_id)
                    .order_by(TicketEvent.id)
                    .all()
               )
