"""
MaintenanceTicket model and its append-only timeline.

The timeline is stored as one ticket_events row per event rather than a
mutable JSON column; rows are only ever inserted.
"""
import enum

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, Enum, ForeignKey, func
from sqlalchemy.orm import relationship
from .base import Base


class TicketStatus(str, enum.Enum):
     OPEN = "OPEN"
     IN_PROGRESS = "IN_PROGRESS"
     RESOLVED = "RESOLVED"
     CLOSED = "CLOSED"


TERMINAL_TICKET_STATUSES = (TicketStatus.RESOLVED, TicketStatus.CLOSED)


class TicketPriority(str, enum.Enum):
     LOW = "LOW"
     MEDIUM = "MEDIUM"
     HIGH = "HIGH"
     URGENT = "URGENT"


class TicketActor(str, enum.Enum):
     TENANT = "TENANT"
     OWNER = "OWNER"
     SYSTEM = "SYSTEM"


class TicketAction(str, enum.Enum):
     CREATED = "CREATED"
     REMINDER_SENT = "REMINDER_SENT"
     ACKNOWLEDGED = "ACKNOWLEDGED"
     ESCALATED_TO_DAILY = "ESCALATED_TO_DAILY"
     UNRESOLVED_ALERT = "UNRESOLVED_ALERT"
     STATUS_CHANGED = "STATUS_CHANGED"
     REMINDERS_CANCELLED = "REMINDERS_CANCELLED"


class MaintenanceTicket(Base):
     """
     Maintenance request raised by a tenant against their owner.
     """
     __tablename__ = "maintenance_tickets"

     id = Column(Integer, primary_key=True, autoincrement=True)
     owner_id = Column(Integer, ForeignKey("users.id", ondelete="NO ACTION"), nullable=False, index=True)
     tenant_id = Column(Integer, ForeignKey("tenant_profiles.id", ondelete="CASCADE"), nullable=False, index=True)

     title = Column(String(255), nullable=False)
     description = Column(Text, nullable=True)
     category = Column(String(100), nullable=False)
     priority = Column(
          Enum(TicketPriority, name="ticket_priority", create_constraint=True),
          default=TicketPriority.MEDIUM,
          nullable=False
     )
     status = Column(
          Enum(TicketStatus, name="ticket_status", create_constraint=True),
          default=TicketStatus.OPEN,
          nullable=False,
          index=True
     )

     # Owner acknowledgment; one-way until resolution
     got_it_by_owner = Column(Boolean, default=False, nullable=False)
     got_it_at = Column(DateTime, nullable=True)

     last_reminder_at = Column(DateTime, nullable=True)
     resolved_at = Column(DateTime, nullable=True)

     # Timestamps
     created_at = Column(DateTime, server_default=func.now(), nullable=False)
     updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now(), nullable=False)

     # Relationships
     events = relationship(
          "TicketEvent",
          back_populates="ticket",
          order_by="TicketEvent.id",
          cascade="all, delete-orphan"
     )

     def __repr__(self):
          return f"<MaintenanceTicket(id={self.id}, priority='{self.priority.value}', status='{self.status.value}')>"

     @property
     def is_terminal(self) -> bool:
          return self.status in TERMINAL_TICKET_STATUSES


class TicketEvent(Base):
     """One timeline entry. Insert-only."""
     __tablename__ = "ticket_events"

     id = Column(Integer, primary_key=True, autoincrement=True)
     ticket_id = Column(
          Integer,
          ForeignKey("maintenance_tickets.id", ondelete="CASCADE"),
          nullable=False,
          index=True
     )
     actor = Column(Enum(TicketActor, name="ticket_actor", create_constraint=True), nullable=False)
     actor_user_id = Column(Integer, nullable=True)
     action = Column(Enum(TicketAction, name="ticket_action", create_constraint=True), nullable=False)
     text = Column(String(500), nullable=True)
     created_at = Column(DateTime, server_default=func.now(), nullable=False)

     ticket = relationship("MaintenanceTicket", back_populates="events")

     def __repr__(self):
          return f"<TicketEvent(ticket_id={self.ticket_id}, action='{self.action.value}')>"
