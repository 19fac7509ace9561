"""
Overdue invoice processing.

The daily scan moves unpaid invoices past their due date to OVERDUE and adds
a one-time late fee, capped at half the base rent. Whether the fee has been
applied is decided by the conditional update in the repository, not by the
row read here, so repeated or overlapping scans never stack fees.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from decimal import ROUND_DOWN, ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict

from models import Invoice
from services.notification_service import (
     NotificationChannel,
     NotificationDispatcher,
     NotificationKind,
     NotificationPriority,
)
from services.billing_service import format_rupees
from services.repository import InvoiceRepository
from utils.dates import days_between, utcnow

logger = logging.getLogger(__name__)

OVERDUE_JOB = "process_overdue_invoices"
OVERDUE_JOB_ID = "daily-overdue-check"

MAX_LATE_FEE_RATIO = Decimal("0.5")
CENTS = Decimal("0.01")


@dataclass
class OverdueRunResult:
     processed: int = 0
     skipped: int = 0
     failed: int = 0

     def as_dict(self) -> Dict[str, int]:
          return asdict(self)


def calculate_late_fee(base_rent, percentage) -> Decimal:
     """
     min(rent * pct / 100, rent * 0.5) in paise.

     The percentage fee rounds half up; the cap rounds down so the fee never
     exceeds half the rent.
     """
     rent = Decimal(base_rent)
     pct = Decimal(percentage)
     if rent <= 0 or pct <= 0:
          return Decimal("0.00")
     fee = (rent * pct / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
     cap = (rent * MAX_LATE_FEE_RATIO).quantize(CENTS, rounding=ROUND_DOWN)
     return min(fee, cap)


class OverdueProcessor:

     def __init__(
          self,
          invoices: InvoiceRepository,
          notifications: NotificationDispatcher,
          default_late_fee_percentage: Decimal = Decimal("2"),
          clock: Callable[[], datetime] = utcnow,
     ):
          self.invoices = invoices
          self.notifications = notifications
          self.default_late_fee_percentage = Decimal(default_late_fee_percentage)
          self._clock = clock

     def late_fee_percentage(self, invoice: Invoice) -> Decimal:
          """Owner billing settings, then the owner's own percentage, then the configured default."""
          owner = invoice.owner
          if owner is not None:
               if owner.billing_settings is not None and owner.billing_settings.late_fee_percentage is not None:
                    return Decimal(owner.billing_settings.late_fee_percentage)
               if owner.late_fee_percentage is not None:
                    return Decimal(owner.late_fee_percentage)
          return self.default_late_fee_percentage

     def process_overdue(self, now: datetime = None) -> OverdueRunResult:
          now = now or self._clock()
          result = OverdueRunResult()
          invoices = self.invoices.list_overdue_invoices(now)
          logger.info(f"🔍 Found {len(invoices)} unpaid invoices past due date")

          for invoice in invoices:
               try:
                    if self._process_invoice(invoice, now):
                         result.processed += 1
                    else:
                         result.skipped += 1
               except Exception as e:
                    result.failed += 1
                    logger.error(f"❌ Failed to process overdue invoice {invoice.id}: {e}")

          logger.info(
               f"✅ Overdue scan: {result.processed} processed, "
               f"{result.skipped} skipped, {result.failed} failed"
          )
          return result

     def _process_invoice(self, invoice: Invoice, now: datetime) -> bool:
          days_late = days_between(invoice.due_date, now.date())
          if days_late <= 0:
               return False
          if Decimal(invoice.late_fees or 0) > 0:
               logger.info(f"Late fee already applied to invoice {invoice.id}, skipping")
               return False

          fee = calculate_late_fee(invoice.base_rent, self.late_fee_percentage(invoice))
          if fee <= 0:
               logger.info(f"No late fee due on invoice {invoice.id} (zero rate or rent), skipping")
               return False
          if not self.invoices.apply_late_fee(invoice.id, fee):
               logger.info(f"Invoice {invoice.id} changed since the scan read it, skipping")
               return False

          logger.info(f"✅ Applied late fee of {format_rupees(fee)} to invoice {invoice.id} ({days_late} days late)")
          self._notify_overdue(invoice, fee, days_late)
          return True

     def _notify_overdue(self, invoice: Invoice, fee: Decimal, days_late: int) -> None:
          tenant = invoice.tenant
          if tenant is None or not tenant.user_id:
               return
          try:
               self.notifications.dispatch(
                    user_id=tenant.user_id,
                    kind=NotificationKind.PAYMENT_DUE,
                    title="Overdue Payment Notice",
                    message=(
                         f"Your invoice for {invoice.month} is overdue. "
                         f"Late fee of {format_rupees(fee)} has been applied."
                    ),
                    data={
                         "invoiceId": invoice.id,
                         "month": invoice.month,
                         "lateFees": str(fee),
                         "daysLate": days_late,
                    },
                    channels=[NotificationChannel.WEBSOCKET, NotificationChannel.EMAIL],
                    priority=NotificationPriority.HIGH,
               )
          except Exception as e:
               logger.error(f"❌ Failed to notify tenant about overdue invoice {invoice.id}: {e}")

     def handle_job(self, payload: Dict[str, Any]) -> Dict[str, int]:
          return self.process_overdue().as_dict()
