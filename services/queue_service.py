"""
Job queue abstraction.

Scheduling and execution are split the same way the worker stack does it:

- APScheduler holds every registration (immediate, delayed, interval or
  cron) in a redis job store, keyed by job id. Re-using a job id replaces
  the registration instead of adding a second one, and cancelling removes
  it whether it is one-shot or repeating.
- When a registration fires, a dramatiq message is sent to the actor named
  after the job type. dramatiq workers execute it with per-type concurrency
  and rate limits and retry failures with exponential backoff. A job that
  exhausts its attempts is pushed onto an operator-visible failure list.

The queue is a two-state capability. When redis cannot be reached (at
startup or later) it moves to DEGRADED, logs that once, and from then on
enqueue/cancel are no-ops that return a synthetic handle. Callers treat an
unscheduled handle as "scheduling was skipped", never as an error.
"""
import enum
import json
import logging
import uuid
from contextlib import ExitStack
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

import dramatiq
import redis
from apscheduler.jobstores.base import JobLookupError
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.jobstores.redis import RedisJobStore
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage
from dramatiq.rate_limits import ConcurrentRateLimiter, RateLimitExceeded, WindowRateLimiter

from config import Settings
from utils.dates import utcnow

logger = logging.getLogger(__name__)

FAILED_JOBS_KEY = "jobs:failed"
FAILED_JOBS_LIMIT = 500
HEARTBEAT_SECONDS = 30


class QueueState(str, enum.Enum):
     AVAILABLE = "AVAILABLE"
     DEGRADED = "DEGRADED"


@dataclass(frozen=True)
class Repeat:
     """Repeat either at a fixed interval or on a 5-field cron expression."""
     every: Optional[timedelta] = None
     cron: Optional[str] = None

     def __post_init__(self):
          if (self.every is None) == (self.cron is None):
               raise ValueError("Repeat needs exactly one of 'every' or 'cron'")


@dataclass(frozen=True)
class JobHandle:
     job_id: str
     job_type: str
     scheduled: bool
     next_run_time: Optional[datetime] = None


def build_broker(settings: Settings) -> RedisBroker:
     broker = RedisBroker(
          host=settings.redis_host,
          port=settings.redis_port,
          db=settings.redis_db,
          password=settings.redis_password,
     )
     broker.add_middleware(CurrentMessage())
     dramatiq.set_broker(broker)
     return broker


def build_scheduler(settings: Settings) -> BackgroundScheduler:
     jobstores = {
          "default": RedisJobStore(
               jobs_key="billing:apscheduler.jobs",
               run_times_key="billing:apscheduler.run_times",
               db=settings.redis_db,
               host=settings.redis_host,
               port=settings.redis_port,
               password=settings.redis_password,
          ),
          "local": MemoryJobStore(),
     }
     return BackgroundScheduler(
          jobstores=jobstores,
          job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": 600},
          timezone=settings.scheduler_timezone,
     )


def send_scheduled_job(job_type: str, job_id: str, payload: Dict[str, Any]) -> None:
     """APScheduler entry point: hand a fired registration to its dramatiq actor."""
     actor = dramatiq.get_broker().get_actor(job_type)
     actor.send_with_options(kwargs={"job_id": job_id, "payload": payload})
     logger.debug(f"Dispatched {job_type} job {job_id}")


def heartbeat() -> None:
     # Wakes the scheduler so registrations written by other processes are picked up
     logger.debug(f"💓 scheduler heartbeat at {utcnow().isoformat()}")


class JobQueue:

     def __init__(
          self,
          scheduler: BackgroundScheduler,
          broker: dramatiq.Broker,
          redis_client: redis.Redis,
          clock: Callable[[], datetime] = utcnow,
     ):
          self.scheduler = scheduler
          self.broker = broker
          self.redis = redis_client
          self._clock = clock
          self._state = QueueState.AVAILABLE
          self._paused = False
          self.workers: Dict[str, "Worker"] = {}

     # ------------------------------------------------------------------
     # Lifecycle
     # ------------------------------------------------------------------

     @property
     def state(self) -> QueueState:
          return self._state

     @property
     def available(self) -> bool:
          return self._state == QueueState.AVAILABLE

     def start(self, paused: bool = False) -> QueueState:
          """
          Probe redis and start the scheduler.

          paused=True is for dramatiq worker processes: registrations can be
          written and removed but nothing fires there.
          """
          self._paused = paused
          return self.probe()

     def probe(self) -> QueueState:
          """Re-check the broker; the only place DEGRADED can recover."""
          try:
               self.redis.ping()
          except redis.RedisError as e:
               self._degrade(f"redis unreachable: {e}")
               return self._state

          if self._state == QueueState.DEGRADED:
               self._state = QueueState.AVAILABLE
               logger.info("✅ Job queue available again; scheduling resumed")
          self._ensure_scheduler()
          return self._state

     def _ensure_scheduler(self) -> None:
          if self.scheduler.running:
               return
          self.scheduler.start(paused=self._paused)
          if not self._paused:
               self.scheduler.add_job(
                    heartbeat,
                    IntervalTrigger(seconds=HEARTBEAT_SECONDS),
                    id="scheduler-heartbeat",
                    jobstore="local",
                    replace_existing=True,
               )
          logger.info(f"✅ Job scheduler started{' (paused)' if self._paused else ''}")

     def shutdown(self) -> None:
          if self.scheduler.running:
               self.scheduler.shutdown(wait=False)
               logger.info("Job scheduler stopped")

     def _degrade(self, reason: str) -> None:
          if self._state == QueueState.DEGRADED:
               return
          self._state = QueueState.DEGRADED
          logger.warning(
               f"⚠️ Job queue DEGRADED ({reason}). Background scheduling is disabled; "
               f"direct operations keep working."
          )

     # ------------------------------------------------------------------
     # Scheduling
     # ------------------------------------------------------------------

     def enqueue(
          self,
          job_type: str,
          payload: Dict[str, Any],
          delay: Optional[timedelta] = None,
          repeat: Optional[Repeat] = None,
          job_id: Optional[str] = None,
          run_at: Optional[datetime] = None,
     ) -> JobHandle:
          """
          Register a job. With no delay/run_at/repeat it runs as soon as the
          scheduler picks it up. Re-using job_id overwrites the existing
          registration. Never raises for broker outages.
          """
          job_id = job_id or uuid.uuid4().hex
          if not self.available:
               logger.debug(f"Queue degraded; skipped scheduling {job_type} job {job_id}")
               return JobHandle(job_id=job_id, job_type=job_type, scheduled=False)

          trigger = self._build_trigger(delay=delay, repeat=repeat, run_at=run_at)
          try:
               job = self.scheduler.add_job(
                    send_scheduled_job,
                    trigger=trigger,
                    args=[job_type, job_id, payload],
                    id=job_id,
                    name=job_type,
                    replace_existing=True,
               )
          except redis.RedisError as e:
               self._degrade(f"redis error while scheduling: {e}")
               return JobHandle(job_id=job_id, job_type=job_type, scheduled=False)

          return JobHandle(
               job_id=job_id,
               job_type=job_type,
               scheduled=True,
               next_run_time=getattr(job, "next_run_time", None),
          )

     def cancel(self, job_id: str) -> bool:
          """
          Remove a registration, one-shot or repeating. Unknown ids are a
          no-op. Returns True if something was removed.
          """
          if not self.available:
               logger.debug(f"Queue degraded; skipped cancelling job {job_id}")
               return False
          try:
               self.scheduler.remove_job(job_id)
          except JobLookupError:
               return False
          except redis.RedisError as e:
               self._degrade(f"redis error while cancelling: {e}")
               return False
          logger.info(f"✅ Removed job {job_id}")
          return True

     def get_job(self, job_id: str) -> Optional[JobHandle]:
          if not self.available:
               return None
          try:
               job = self.scheduler.get_job(job_id)
          except redis.RedisError as e:
               self._degrade(f"redis error while reading jobs: {e}")
               return None
          if job is None:
               return None
          return JobHandle(job_id=job.id, job_type=job.name, scheduled=True, next_run_time=job.next_run_time)

     def _build_trigger(
          self,
          delay: Optional[timedelta],
          repeat: Optional[Repeat],
          run_at: Optional[datetime],
     ):
          tz = self.scheduler.timezone
          if repeat is not None:
               if repeat.every is not None:
                    return IntervalTrigger(seconds=int(repeat.every.total_seconds()), timezone=tz)
               return CronTrigger.from_crontab(repeat.cron, timezone=tz)

          if run_at is None:
               run_at = self._clock() + (delay or timedelta(0))
          if run_at.tzinfo is None:
               run_at = run_at.replace(tzinfo=timezone.utc)
          return DateTrigger(run_date=run_at, timezone=tz)

     # ------------------------------------------------------------------
     # Execution
     # ------------------------------------------------------------------

     def worker(self, job_type: str, handler: Callable[[Dict[str, Any]], Any], **options) -> "Worker":
          worker = Worker(self, job_type, handler, **options)
          self.workers[job_type] = worker
          return worker

     def record_failure(self, job_type: str, job_id: str, payload: Dict[str, Any], error: str) -> None:
          entry = {
               "job_id": job_id,
               "job_type": job_type,
               "payload": payload,
               "error": error,
               "failed_at": self._clock().isoformat(),
          }
          logger.error(f"❌ Job {job_type} {job_id} failed permanently: {error}")
          try:
               pipe = self.redis.pipeline()
               pipe.lpush(FAILED_JOBS_KEY, json.dumps(entry, default=str))
               pipe.ltrim(FAILED_JOBS_KEY, 0, FAILED_JOBS_LIMIT - 1)
               pipe.execute()
          except redis.RedisError as e:
               logger.error(f"Could not record failed job {job_id}: {e}")

     def failed_jobs(self, limit: int = 50) -> List[Dict[str, Any]]:
          try:
               raw = self.redis.lrange(FAILED_JOBS_KEY, 0, limit - 1)
          except redis.RedisError as e:
               logger.warning(f"Could not read failed jobs: {e}")
               return []
          return [json.loads(item) for item in raw]


class Worker:
     """
     Consumer for one job type.

     The handler receives the job payload. Concurrency and rate limits are
     enforced with dramatiq rate limiters shared across worker processes; a
     throttled job is re-sent after a short delay instead of being counted
     as a failed attempt.
     """

     def __init__(
          self,
          job_queue: JobQueue,
          job_type: str,
          handler: Callable[[Dict[str, Any]], Any],
          queue_name: str = "default",
          concurrency: int = 1,
          rate_limit: Optional[Tuple[int, int]] = None,
          max_attempts: int = 3,
          min_backoff_ms: int = 5000,
          max_backoff_ms: int = 300000,
          throttle_delay_ms: int = 1000,
          rate_limit_backend=None,
          on_success: Optional[Callable[[str, Dict[str, Any], Any], None]] = None,
          on_failure: Optional[Callable[[str, Dict[str, Any], Exception], None]] = None,
     ):
          self.job_queue = job_queue
          self.job_type = job_type
          self.handler = handler
          self.max_attempts = max_attempts
          self.throttle_delay_ms = throttle_delay_ms
          self.on_success = on_success
          self.on_failure = on_failure

          self.limiters = []
          if rate_limit_backend is not None:
               self.limiters.append(ConcurrentRateLimiter(
                    rate_limit_backend, f"{job_type}:concurrency", limit=concurrency
               ))
               if rate_limit is not None:
                    limit, window_seconds = rate_limit
                    self.limiters.append(WindowRateLimiter(
                         rate_limit_backend, f"{job_type}:window", limit=limit, window=window_seconds
                    ))

          self.actor = dramatiq.actor(
               self.run,
               actor_name=job_type,
               queue_name=queue_name,
               broker=job_queue.broker,
               max_retries=max(max_attempts - 1, 0),
               min_backoff=min_backoff_ms,
               max_backoff=max_backoff_ms,
          )

     def run(self, job_id: str, payload: Dict[str, Any]):
          logger.info(f"🔔 Processing {self.job_type} job {job_id}")
          try:
               with ExitStack() as stack:
                    for limiter in self.limiters:
                         stack.enter_context(limiter.acquire(raise_on_failure=True))
                    result = self.handler(payload)
          except RateLimitExceeded:
               logger.info(f"{self.job_type} job {job_id} throttled; re-queued in {self.throttle_delay_ms}ms")
               self.actor.send_with_options(
                    kwargs={"job_id": job_id, "payload": payload},
                    delay=self.throttle_delay_ms,
               )
               return None
          except Exception as e:
               if self._is_last_attempt():
                    self.job_queue.record_failure(self.job_type, job_id, payload, repr(e))
                    self._callback(self.on_failure, job_id, payload, e)
               else:
                    logger.warning(f"⚠️ {self.job_type} job {job_id} failed, will retry: {e}")
               raise

          logger.info(f"✅ {self.job_type} job {job_id} completed")
          self._callback(self.on_success, job_id, payload, result)
          return result

     def _is_last_attempt(self) -> bool:
          message = CurrentMessage.get_current_message()
          retries = message.options.get("retries", 0) if message is not None else 0
          return retries >= self.max_attempts - 1

     def _callback(self, callback, job_id, payload, value) -> None:
          if callback is None:
               return
          try:
               callback(job_id, payload, value)
          except Exception as e:
               logger.error(f"{self.job_type} callback for job {job_id} raised: {e}")
