# tests/conftest.py - shared fixtures: in-memory database, fixed clock, recording fakes

from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from database import create_session_factory, init_db, session_scope
from models import (
    BillingSettings,
    ElectricityBill,
    Invoice,
    InvoiceStatus,
    TenantProfile,
    TenantStatus,
    User,
    UserRole,
    UtilityChargeStatus,
)
from services.notification_service import ChannelAdapter, NotificationChannel, NotificationDispatcher
from services.queue_service import JobHandle, QueueState
from services.repository import InvoiceRepository, TicketRepository, UserRepository
from utils.delivery import ProviderResult


class FixedClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta
        return self.now


class RecordingChannel(ChannelAdapter):
    """Channel adapter that records every request it is asked to deliver."""

    def __init__(self, channel, result=None, error=None):
        self.channel = channel
        self.result = result or ProviderResult.success()
        self.error = error
        self.requests = []

    def deliver(self, request):
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return self.result

    def kinds(self):
        return [r.kind for r in self.requests]


class RecordingQueue:
    """In-memory stand-in for JobQueue: registrations keyed by job id."""

    def __init__(self, available=True):
        self.jobs = {}
        self.cancelled = []
        self._available = available

    @property
    def available(self):
        return self._available

    @property
    def state(self):
        return QueueState.AVAILABLE if self._available else QueueState.DEGRADED

    def enqueue(self, job_type, payload, delay=None, repeat=None, job_id=None, run_at=None):
        if not self._available:
            return JobHandle(job_id=job_id, job_type=job_type, scheduled=False)
        self.jobs[job_id] = {
            "job_type": job_type,
            "payload": payload,
            "delay": delay,
            "repeat": repeat,
            "run_at": run_at,
        }
        return JobHandle(job_id=job_id, job_type=job_type, scheduled=True, next_run_time=run_at)

    def cancel(self, job_id):
        self.cancelled.append(job_id)
        return self.jobs.pop(job_id, None) is not None

    def get_job(self, job_id):
        job = self.jobs.get(job_id)
        if job is None:
            return None
        return JobHandle(job_id=job_id, job_type=job["job_type"], scheduled=True, next_run_time=job["run_at"])


@pytest.fixture
def clock():
    return FixedClock(datetime(2024, 3, 15, 10, 0, 0))


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    init_db(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def users(session_factory, clock):
    return UserRepository(session_factory, clock=clock)


@pytest.fixture
def invoices(session_factory, clock):
    return InvoiceRepository(session_factory, clock=clock)


@pytest.fixture
def tickets(session_factory, clock):
    return TicketRepository(session_factory, clock=clock)


@pytest.fixture
def channels():
    return {channel: RecordingChannel(channel) for channel in NotificationChannel}


@pytest.fixture
def dispatcher(channels):
    dispatcher = NotificationDispatcher(sms_escalation="high")
    for adapter in channels.values():
        dispatcher.subscribe(adapter)
    return dispatcher


@pytest.fixture
def queue():
    return RecordingQueue()


# ---------------------------------------------------------------------------
# Seed helpers
# ---------------------------------------------------------------------------

_counter = {"n": 0}


def _unique_email(prefix):
    _counter["n"] += 1
    return f"{prefix}{_counter['n']}@example.com"


def make_user(session_factory, role=UserRole.OWNER, **overrides):
    values = {
        "email": _unique_email(role.value.lower()),
        "first_name": "Test",
        "last_name": role.value.title(),
        "role": role,
        "is_active": True,
        "auto_generate_invoices": True,
        "phone": "+919800000000",
        "phone_verified": True,
        "created_at": datetime(2024, 1, 1),
    }
    values.update(overrides)
    user = User(**values)
    with session_scope(session_factory) as db:
        db.add(user)
        db.flush()
    return user


def make_billing_settings(session_factory, owner, due_day=5, late_fee_percentage=Decimal("2")):
    settings = BillingSettings(
        owner_id=owner.id,
        due_day=due_day,
        late_fee_percentage=late_fee_percentage,
        updated_at=datetime(2024, 1, 1),
    )
    with session_scope(session_factory) as db:
        db.add(settings)
    return settings


def make_tenant(session_factory, owner, rent, status=TenantStatus.ACTIVE, with_user=True):
    user_id = None
    if with_user:
        user_id = make_user(session_factory, role=UserRole.TENANT).id
    tenant = TenantProfile(
        owner_id=owner.id,
        user_id=user_id,
        name=f"Tenant {rent}",
        monthly_rent=Decimal(str(rent)),
        status=status,
        created_at=datetime(2024, 1, 1),
        updated_at=datetime(2024, 1, 1),
    )
    with session_scope(session_factory) as db:
        db.add(tenant)
        db.flush()
    return tenant


def make_electricity_bill(session_factory, tenant, month, amount, status=UtilityChargeStatus.APPROVED):
    bill = ElectricityBill(
        owner_id=tenant.owner_id,
        tenant_id=tenant.id,
        month=month,
        units_consumed=Decimal("100"),
        amount=Decimal(str(amount)),
        status=status,
        created_at=datetime(2024, 1, 1),
    )
    with session_scope(session_factory) as db:
        db.add(bill)
    return bill


def make_invoice(session_factory, tenant, month, due_date, base_rent=None,
                 late_fees=Decimal("0"), status=InvoiceStatus.DUE):
    rent = Decimal(str(base_rent)) if base_rent is not None else Decimal(tenant.monthly_rent)
    invoice = Invoice(
        owner_id=tenant.owner_id,
        tenant_id=tenant.id,
        month=month,
        base_rent=rent,
        electricity_charges=Decimal("0"),
        other_charges=Decimal("0"),
        late_fees=late_fees,
        amount=rent + late_fees,
        due_date=due_date,
        status=status,
        created_at=datetime(2024, 1, 1),
        updated_at=datetime(2024, 1, 1),
    )
    with session_scope(session_factory) as db:
        db.add(invoice)
        db.flush()
    return invoice
