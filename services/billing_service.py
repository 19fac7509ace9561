"""
Billing Service - monthly invoice generation.

One invoice per ACTIVE tenant per month. Re-running a month is safe: a tenant
that already has an invoice for the month is skipped, and a concurrent
writer that wins the (tenant_id, month) uniqueness race is treated the same
way. Every tenant is handled in its own transaction and a failure for one
tenant is logged and counted without stopping the others.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from models import TenantProfile, User
from services.exceptions import InvoiceAlreadyExists
from services.notification_service import (
     NotificationChannel,
     NotificationDispatcher,
     NotificationKind,
     NotificationPriority,
)
from services.repository import InvoiceRepository, UserRepository
from utils.dates import due_date, next_month, parse_month, utcnow

logger = logging.getLogger(__name__)

BILLING_JOB = "generate_monthly_invoices"


@dataclass
class BillingRunResult:
     created: int = 0
     skipped: int = 0
     failed: int = 0

     def __add__(self, other: "BillingRunResult") -> "BillingRunResult":
          return BillingRunResult(
               created=self.created + other.created,
               skipped=self.skipped + other.skipped,
               failed=self.failed + other.failed,
          )

     def as_dict(self) -> Dict[str, int]:
          return asdict(self)


def format_rupees(amount) -> str:
     return f"₹{Decimal(amount):,.2f}"


def billing_job_id(month: str, owner_id: Optional[int] = None) -> str:
     """Deterministic id so re-triggering the same month overwrites the pending job."""
     if owner_id is None:
          return f"monthly-billing-{month}"
     return f"monthly-billing-{month}-{owner_id}"


class BillingService:
     """Generates monthly invoices for owners and their active tenants."""

     def __init__(
          self,
          invoices: InvoiceRepository,
          users: UserRepository,
          notifications: NotificationDispatcher,
          default_due_day: int = 5,
          clock: Callable[[], datetime] = utcnow,
     ):
          self.invoices = invoices
          self.users = users
          self.notifications = notifications
          self.default_due_day = default_due_day
          self._clock = clock

     def default_month(self) -> str:
          """Month billed when none is given: the one after today."""
          return next_month(self._clock())

     def resolve_due_day(self, owner: User) -> int:
          settings = owner.billing_settings
          if settings is not None and settings.due_day:
               return settings.due_day
          return self.default_due_day

     def generate_for_owner(self, owner_id: int, month: str) -> BillingRunResult:
          """
          Create the month's invoices for every ACTIVE tenant of one owner.

          An unknown, inactive or auto-generation-disabled owner is a skip and
          returns an empty result. Errors reading the owner or the tenant list
          propagate so the job can be retried; per-tenant errors do not.

          Raises:
               InvalidMonth: month is not "YYYY-MM"
          """
          parse_month(month)
          result = BillingRunResult()

          owner = self.users.get_owner(owner_id)
          if owner is None or not owner.is_active:
               logger.info(f"Skipping billing for owner {owner_id}: not found or inactive")
               return result
          if not owner.auto_generate_invoices:
               logger.info(f"Skipping billing for owner {owner_id}: auto-generation disabled")
               return result

          invoice_due_date = due_date(month, self.resolve_due_day(owner))
          tenants = self.invoices.list_active_tenants(owner_id)
          logger.info(f"📄 Generating {month} invoices for owner {owner_id} ({len(tenants)} active tenants)")

          for tenant in tenants:
               try:
                    if self._generate_for_tenant(owner, tenant, month, invoice_due_date):
                         result.created += 1
                    else:
                         result.skipped += 1
               except Exception as e:
                    result.failed += 1
                    logger.error(f"❌ Failed to generate invoice for tenant {tenant.id} ({month}): {e}")

          logger.info(
               f"✅ Owner {owner_id} {month}: {result.created} created, "
               f"{result.skipped} skipped, {result.failed} failed"
          )
          return result

     def _generate_for_tenant(self, owner: User, tenant: TenantProfile, month: str, invoice_due_date: date) -> bool:
          if self.invoices.find_invoice(tenant.id, month) is not None:
               logger.info(f"Invoice already exists for tenant {tenant.id} ({month}), skipping")
               return False

          electricity = Decimal("0")
          charge = self.invoices.find_approved_utility_charge(tenant.id, month)
          if charge is not None:
               electricity = Decimal(charge.amount)

          try:
               invoice = self.invoices.create_invoice(
                    owner_id=owner.id,
                    tenant_id=tenant.id,
                    month=month,
                    base_rent=Decimal(tenant.monthly_rent),
                    electricity_charges=electricity,
                    due_date=invoice_due_date,
               )
          except InvoiceAlreadyExists:
               logger.info(f"Invoice for tenant {tenant.id} ({month}) created concurrently, skipping")
               return False

          logger.info(f"✅ Generated invoice {invoice.id} for tenant {tenant.name} ({month})")
          self._notify_invoice_generated(tenant, invoice)
          return True

     def _notify_invoice_generated(self, tenant: TenantProfile, invoice) -> None:
          # The invoice is already committed; nothing here may undo it
          if not tenant.user_id:
               return
          try:
               self.notifications.dispatch(
                    user_id=tenant.user_id,
                    kind=NotificationKind.PAYMENT_DUE,
                    title="New Invoice Generated",
                    message=(
                         f"A new invoice for {format_rupees(invoice.amount)} has been generated "
                         f"for {invoice.month}. Due date: {invoice.due_date.isoformat()}"
                    ),
                    data={
                         "invoiceId": invoice.id,
                         "month": invoice.month,
                         "amount": str(invoice.amount),
                         "dueDate": invoice.due_date.isoformat(),
                    },
                    channels=[NotificationChannel.WEBSOCKET, NotificationChannel.EMAIL],
                    priority=NotificationPriority.HIGH,
               )
          except Exception as e:
               logger.error(f"❌ Failed to notify tenant {tenant.id} about invoice {invoice.id}: {e}")

     def generate_for_all_owners(self, month: str) -> BillingRunResult:
          """Run generate_for_owner for every active owner, continuing past owner-level errors."""
          parse_month(month)
          total = BillingRunResult()
          for owner_id in self.users.list_active_owner_ids():
               try:
                    total = total + self.generate_for_owner(owner_id, month)
               except Exception as e:
                    total.failed += 1
                    logger.error(f"❌ Error generating invoices for owner {owner_id}: {e}")

          logger.info(f"📊 Monthly billing {month}: {total.created} invoices created")
          return total

     def handle_job(self, payload: Dict[str, Any]) -> Dict[str, Any]:
          """
          Queue entry point for BILLING_JOB.

          A payload without a month (the recurring registration) bills the
          month following the run time.
          """
          month = payload.get("month") or self.default_month()
          owner_id = payload.get("owner_id")
          if owner_id is not None:
               result = self.generate_for_owner(int(owner_id), month)
          else:
               result = self.generate_for_all_owners(month)
          return dict(result.as_dict(), month=month, owner_id=owner_id)
