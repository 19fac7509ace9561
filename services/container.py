"""
Process-wide wiring.

The API process and each dramatiq worker process build exactly one
ServiceContainer at startup and pass its members into whatever needs them.
Tests build one from fakes by passing the collaborators explicitly.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, Optional

import dramatiq
import redis
from apscheduler.schedulers.base import BaseScheduler
from dramatiq.rate_limits.backends import RedisBackend
from sqlalchemy.orm import sessionmaker

from config import Settings
from database import create_session_factory
from services.exceptions import QueueUnavailable
from services.billing_service import BILLING_JOB, BillingService, billing_job_id
from services.late_fee_service import OVERDUE_JOB, OVERDUE_JOB_ID, OverdueProcessor
from services.notification_service import (
     EmailChannel,
     NotificationDispatcher,
     PushChannel,
     RealtimeChannel,
     SmsChannel,
)
from services.queue_service import JobHandle, JobQueue, Repeat, build_broker, build_scheduler
from services.reminder_service import REMINDER_JOB, MaintenanceReminderScheduler
from services.repository import InvoiceRepository, TicketRepository, UserRepository
from utils.dates import utcnow
from utils.email import BrevoEmailProvider
from utils.push import FcmPushProvider
from utils.realtime import RedisRealtimeProvider
from utils.sms import TelnyxSmsProvider

logger = logging.getLogger(__name__)

BILLING_QUEUE = "billing"
REMINDER_QUEUE = "maintenance-reminders"
RECURRING_BILLING_JOB_ID = "recurring-monthly-billing"


@dataclass
class ServiceContainer:
     settings: Settings
     session_factory: sessionmaker
     redis: redis.Redis
     users: UserRepository
     invoices: InvoiceRepository
     tickets: TicketRepository
     notifications: NotificationDispatcher
     queue: JobQueue
     billing: BillingService
     overdue: OverdueProcessor
     reminders: MaintenanceReminderScheduler


def build_redis(settings: Settings) -> redis.Redis:
     return redis.Redis(
          host=settings.redis_host,
          port=settings.redis_port,
          db=settings.redis_db,
          password=settings.redis_password,
          socket_connect_timeout=2,
     )


def build_container(
     settings: Settings,
     session_factory: Optional[sessionmaker] = None,
     redis_client: Optional[redis.Redis] = None,
     scheduler: Optional[BaseScheduler] = None,
     broker: Optional[dramatiq.Broker] = None,
     rate_limit_backend=None,
     dispatcher: Optional[NotificationDispatcher] = None,
     clock: Callable[[], datetime] = utcnow,
) -> ServiceContainer:
     session_factory = session_factory or create_session_factory(settings)
     redis_client = redis_client if redis_client is not None else build_redis(settings)

     users = UserRepository(session_factory, clock=clock)
     invoices = InvoiceRepository(session_factory, clock=clock)
     tickets = TicketRepository(session_factory, clock=clock)

     if dispatcher is None:
          dispatcher = NotificationDispatcher(sms_escalation=settings.sms_escalation)
          dispatcher.subscribe(RealtimeChannel(RedisRealtimeProvider(redis_client)))
          dispatcher.subscribe(PushChannel(users, FcmPushProvider(settings.firebase_service_account_path)))
          dispatcher.subscribe(EmailChannel(users, BrevoEmailProvider(
               settings.brevo_api_key, settings.email_sender_name, settings.email_sender_address
          )))
          dispatcher.subscribe(SmsChannel(users, TelnyxSmsProvider(
               settings.telnyx_api_key, settings.telnyx_from_number, settings.telnyx_messaging_profile_id
          )))

     queue = JobQueue(
          scheduler=scheduler or build_scheduler(settings),
          broker=broker or build_broker(settings),
          redis_client=redis_client,
          clock=clock,
     )

     billing = BillingService(
          invoices, users, dispatcher, default_due_day=settings.default_due_day, clock=clock
     )
     overdue = OverdueProcessor(
          invoices,
          dispatcher,
          default_late_fee_percentage=settings.default_late_fee_percentage,
          clock=clock,
     )
     reminders = MaintenanceReminderScheduler(
          tickets,
          invoices,
          dispatcher,
          queue,
          daily_reminder_cron=settings.daily_reminder_cron,
          clock=clock,
     )

     if rate_limit_backend is None:
          rate_limit_backend = RedisBackend(client=redis_client)
     register_workers(queue, settings, billing, overdue, reminders, rate_limit_backend)

     return ServiceContainer(
          settings=settings,
          session_factory=session_factory,
          redis=redis_client,
          users=users,
          invoices=invoices,
          tickets=tickets,
          notifications=dispatcher,
          queue=queue,
          billing=billing,
          overdue=overdue,
          reminders=reminders,
     )


def _log_success(job_id, payload, result):
     logger.info(f"✅ Job {job_id} completed: {result}")


def _log_failure(job_id, payload, error):
     logger.error(f"❌ Job {job_id} failed after all attempts: {error}")


def register_workers(
     queue: JobQueue,
     settings: Settings,
     billing: BillingService,
     overdue: OverdueProcessor,
     reminders: MaintenanceReminderScheduler,
     rate_limit_backend,
) -> None:
     queue.worker(
          BILLING_JOB,
          billing.handle_job,
          queue_name=BILLING_QUEUE,
          concurrency=1,
          rate_limit=(1, 60),
          max_attempts=settings.billing_max_attempts,
          min_backoff_ms=settings.billing_min_backoff_ms,
          rate_limit_backend=rate_limit_backend,
          on_success=_log_success,
          on_failure=_log_failure,
     )
     queue.worker(
          OVERDUE_JOB,
          overdue.handle_job,
          queue_name=BILLING_QUEUE,
          concurrency=1,
          max_attempts=settings.billing_max_attempts,
          min_backoff_ms=settings.billing_min_backoff_ms,
          rate_limit_backend=rate_limit_backend,
          on_success=_log_success,
          on_failure=_log_failure,
     )
     queue.worker(
          REMINDER_JOB,
          reminders.handle_job,
          queue_name=REMINDER_QUEUE,
          concurrency=5,
          rate_limit=(10, 1),
          max_attempts=settings.reminder_max_attempts,
          min_backoff_ms=1000,
          rate_limit_backend=rate_limit_backend,
          on_failure=_log_failure,
     )


def schedule_recurring_jobs(
     container: ServiceContainer,
     billing_cron: Optional[str] = None,
     overdue_cron: Optional[str] = None,
) -> Dict[str, JobHandle]:
     """
     (Re)register the monthly billing and daily overdue crons under fixed ids.

     The billing registration carries no month; each run bills the month
     after its own run time.
     """
     if not container.queue.available:
          raise QueueUnavailable("cannot register recurring jobs while the job queue is degraded")

     billing_cron = billing_cron or container.settings.billing_cron
     overdue_cron = overdue_cron or container.settings.overdue_cron
     handles = {
          RECURRING_BILLING_JOB_ID: container.queue.enqueue(
               BILLING_JOB, {"month": None}, repeat=Repeat(cron=billing_cron), job_id=RECURRING_BILLING_JOB_ID
          ),
          OVERDUE_JOB_ID: container.queue.enqueue(
               OVERDUE_JOB, {}, repeat=Repeat(cron=overdue_cron), job_id=OVERDUE_JOB_ID
          ),
     }
     if all(h.scheduled for h in handles.values()):
          logger.info(f"✅ Recurring jobs scheduled (billing '{billing_cron}', overdue '{overdue_cron}')")
     return handles


def enqueue_billing(container: ServiceContainer, month: str, owner_id: Optional[int] = None) -> JobHandle:
     payload = {"month": month, "owner_id": owner_id}
     return container.queue.enqueue(BILLING_JOB, payload, job_id=billing_job_id(month, owner_id))
