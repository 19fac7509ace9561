# tests/test_reminder_service.py - maintenance reminder escalation

from datetime import timedelta

import pytest

from database import session_scope
from models import MaintenanceTicket, TicketAction, TicketPriority, TicketStatus
from services.exceptions import TicketNotFound
from services.notification_service import NotificationChannel, NotificationKind
from services.queue_service import Repeat
from services.reminder_service import (
    PERIODIC,
    REMINDER_JOB,
    UNRESOLVED_24H,
    MaintenanceReminderScheduler,
    ReminderState,
    daily_job_id,
    periodic_job_id,
    reminder_state,
    unresolved_check_job_id,
)
from tests.conftest import RecordingQueue, make_tenant, make_user

WS = NotificationChannel.WEBSOCKET


def _sent(channels, title_prefix, user_id=None):
    return [
        r for r in channels[WS].requests
        if r.title.startswith(title_prefix) and (user_id is None or r.user_id == user_id)
    ]


class TestMaintenanceReminderScheduler:

    @pytest.fixture
    def owner(self, session_factory):
        return make_user(session_factory)

    @pytest.fixture
    def tenant(self, session_factory, owner):
        return make_tenant(session_factory, owner, 5000)

    @pytest.fixture
    def scheduler(self, tickets, invoices, dispatcher, queue, clock):
        return MaintenanceReminderScheduler(
            tickets, invoices, dispatcher, queue, daily_reminder_cron="0 9 * * *", clock=clock
        )

    def _create(self, scheduler, owner, tenant, priority=TicketPriority.HIGH):
        return scheduler.create_ticket(
            owner_id=owner.id,
            tenant_id=tenant.id,
            title="Water leak",
            category="PLUMBING",
            priority=priority,
        )

    def _tick(self, scheduler, ticket, reminder_type=PERIODIC):
        return scheduler.handle_job({
            "ticket_id": ticket.id,
            "owner_id": ticket.owner_id,
            "tenant_id": ticket.tenant_id,
            "reminder_type": reminder_type,
            "priority": ticket.priority.value,
        })

    # -- creation -----------------------------------------------------------

    def test_high_priority_ticket_reminds_every_30_minutes(self, scheduler, owner, tenant, queue, channels):
        ticket = self._create(scheduler, owner, tenant, TicketPriority.HIGH)

        job = queue.jobs[periodic_job_id(ticket.id)]
        assert job["job_type"] == REMINDER_JOB
        assert job["repeat"] == Repeat(every=timedelta(minutes=30))
        assert job["payload"]["reminder_type"] == PERIODIC

        request = channels[WS].requests[0]
        assert request.kind == NotificationKind.MAINTENANCE_REQUEST
        assert request.user_id == owner.id
        assert len(channels[NotificationChannel.SMS].requests) == 1

    @pytest.mark.parametrize("priority", [TicketPriority.LOW, TicketPriority.MEDIUM])
    def test_normal_priority_ticket_reminds_hourly(self, scheduler, owner, tenant, queue, channels, priority):
        ticket = self._create(scheduler, owner, tenant, priority)

        assert queue.jobs[periodic_job_id(ticket.id)]["repeat"] == Repeat(every=timedelta(minutes=60))
        assert channels[NotificationChannel.SMS].requests == []

    def test_rescheduling_overwrites(self, scheduler, owner, tenant, queue):
        ticket = self._create(scheduler, owner, tenant)
        scheduler.start_periodic(ticket)

        assert list(queue.jobs) == [periodic_job_id(ticket.id)]

    # -- escalation ---------------------------------------------------------

    def test_escalation_sequence(self, scheduler, owner, tenant, queue, channels, clock):
        ticket = self._create(scheduler, owner, tenant, TicketPriority.HIGH)

        for _ in range(4):
            clock.advance(timedelta(minutes=30))
            self._tick(scheduler, ticket)

        assert len(_sent(channels, "Reminder: Pending")) == 4
        assert _sent(channels, "Unresolved") == []

        acknowledged_at = clock.advance(timedelta(minutes=5))
        scheduler.acknowledge(ticket.id, actor_user_id=owner.id)

        assert periodic_job_id(ticket.id) not in queue.jobs
        check = queue.jobs[unresolved_check_job_id(ticket.id)]
        assert check["run_at"] == acknowledged_at + timedelta(hours=24)
        assert check["repeat"] is None
        assert check["payload"]["reminder_type"] == UNRESOLVED_24H
        assert queue.jobs[daily_job_id(ticket.id)]["repeat"] == Repeat(cron="0 9 * * *")
        assert _sent(channels, "Owner Has Seen", user_id=tenant.user_id)

        # a periodic tick already in flight sends nothing after acknowledgment
        clock.advance(timedelta(minutes=25))
        self._tick(scheduler, ticket)
        assert len(_sent(channels, "Reminder: Pending")) == 4

        # daily nudge before 24h have passed is silent
        clock.advance(timedelta(hours=2))
        assert self._tick(scheduler, ticket, UNRESOLVED_24H)["sent"] is False

        # the 24h check fires exactly 24h after acknowledgment
        clock.now = acknowledged_at + timedelta(hours=24)
        assert self._tick(scheduler, ticket, UNRESOLVED_24H)["sent"] is True
        unresolved = _sent(channels, "Unresolved")
        assert {r.user_id for r in unresolved} == {owner.id, tenant.user_id}
        assert "24 hours" in unresolved[0].message

    def test_periodic_reminder_reports_days_pending(self, scheduler, owner, tenant, channels, clock, tickets):
        ticket = self._create(scheduler, owner, tenant, TicketPriority.LOW)

        clock.advance(timedelta(days=2, hours=3))
        result = self._tick(scheduler, ticket)

        assert result == {"state": "PERIODIC_ACTIVE", "sent": True}
        reminder = _sent(channels, "Reminder: Pending")[0]
        assert reminder.data["daysPending"] == 2
        assert reminder.user_id == owner.id
        assert tickets.get_ticket(ticket.id).last_reminder_at == clock.now

    def test_tick_after_out_of_band_acknowledgment_escalates(self, scheduler, owner, tenant, queue,
                                                               session_factory, clock):
        ticket = self._create(scheduler, owner, tenant)
        with session_scope(session_factory) as db:
            db.query(MaintenanceTicket).filter(MaintenanceTicket.id == ticket.id).update({
                MaintenanceTicket.got_it_by_owner: True,
                MaintenanceTicket.got_it_at: clock.now - timedelta(days=2),
            })

        result = self._tick(scheduler, ticket)

        assert result["state"] == ReminderState.ACKNOWLEDGED_DAILY.value
        assert periodic_job_id(ticket.id) not in queue.jobs
        # the 24h mark is already behind us; only the daily job remains
        assert unresolved_check_job_id(ticket.id) not in queue.jobs
        assert daily_job_id(ticket.id) in queue.jobs

    def test_acknowledge_is_recorded_once(self, scheduler, owner, tenant, channels, tickets):
        ticket = self._create(scheduler, owner, tenant)

        first = scheduler.acknowledge(ticket.id)
        second = scheduler.acknowledge(ticket.id)

        assert first.got_it_by_owner and second.got_it_by_owner
        assert len(_sent(channels, "Owner Has Seen")) == 1
        actions = [e.action for e in tickets.list_ticket_events(ticket.id)]
        assert actions.count(TicketAction.ACKNOWLEDGED) == 1

    def test_acknowledge_unknown_ticket(self, scheduler):
        with pytest.raises(TicketNotFound):
            scheduler.acknowledge(31337)

    # -- termination --------------------------------------------------------

    @pytest.mark.parametrize("status", [TicketStatus.RESOLVED, TicketStatus.CLOSED])
    def test_resolution_cancels_every_job(self, scheduler, owner, tenant, queue, status):
        ticket = self._create(scheduler, owner, tenant)
        scheduler.acknowledge(ticket.id)

        updated = scheduler.update_status(ticket.id, status, note="Fixed the pipe")

        assert updated.status == status
        assert queue.jobs == {}
        for job_id in (periodic_job_id(ticket.id), unresolved_check_job_id(ticket.id), daily_job_id(ticket.id)):
            assert job_id in queue.cancelled

    def test_resolution_sets_resolved_at_and_notifies_tenant(self, scheduler, owner, tenant, channels, clock):
        ticket = self._create(scheduler, owner, tenant)

        updated = scheduler.update_status(ticket.id, TicketStatus.RESOLVED)

        assert updated.resolved_at == clock.now
        assert _sent(channels, "Maintenance Request Update", user_id=tenant.user_id)

    def test_in_progress_keeps_reminders(self, scheduler, owner, tenant, queue):
        ticket = self._create(scheduler, owner, tenant)

        scheduler.update_status(ticket.id, TicketStatus.IN_PROGRESS)

        assert periodic_job_id(ticket.id) in queue.jobs

    @pytest.mark.parametrize("reopen_as", [TicketStatus.OPEN, TicketStatus.IN_PROGRESS])
    def test_reopening_restarts_periodic_reminders(self, scheduler, owner, tenant, queue, channels, clock, reopen_as):
        ticket = self._create(scheduler, owner, tenant, TicketPriority.HIGH)
        scheduler.acknowledge(ticket.id)
        scheduler.update_status(ticket.id, TicketStatus.RESOLVED)
        assert queue.jobs == {}

        reopened = scheduler.update_status(ticket.id, reopen_as, note="Leak is back")

        assert reopened.got_it_by_owner is False
        assert reopened.got_it_at is None
        assert reopened.resolved_at is None
        assert reminder_state(reopened) == ReminderState.PERIODIC_ACTIVE
        assert queue.jobs[periodic_job_id(ticket.id)]["repeat"] == Repeat(every=timedelta(minutes=30))

        clock.advance(timedelta(minutes=30))
        assert self._tick(scheduler, ticket)["sent"] is True
        assert len(_sent(channels, "Reminder: Pending")) == 1

    def test_moving_between_open_states_does_not_reschedule(self, scheduler, owner, tenant, queue):
        ticket = self._create(scheduler, owner, tenant)
        queue.jobs.clear()

        scheduler.update_status(ticket.id, TicketStatus.IN_PROGRESS)

        assert queue.jobs == {}

    def test_tick_on_resolved_ticket_stops(self, scheduler, owner, tenant, channels, queue):
        ticket = self._create(scheduler, owner, tenant)
        scheduler.update_status(ticket.id, TicketStatus.RESOLVED)

        result = self._tick(scheduler, ticket)

        assert result["state"] == ReminderState.TERMINATED.value
        assert _sent(channels, "Reminder: Pending") == []

    def test_tick_for_deleted_ticket_cancels(self, scheduler, queue):
        result = scheduler.handle_job({"ticket_id": 555, "reminder_type": PERIODIC})

        assert result["sent"] is False
        assert periodic_job_id(555) in queue.cancelled

    def test_cancelling_twice_is_a_noop(self, scheduler):
        scheduler.cancel_all(999)
        scheduler.cancel_all(999)

    def test_update_unknown_ticket(self, scheduler):
        with pytest.raises(TicketNotFound):
            scheduler.update_status(404, TicketStatus.CLOSED)

    def test_timeline_is_ordered(self, scheduler, owner, tenant, tickets, clock):
        ticket = self._create(scheduler, owner, tenant)
        clock.advance(timedelta(hours=1))
        self._tick(scheduler, ticket)
        scheduler.acknowledge(ticket.id)
        scheduler.update_status(ticket.id, TicketStatus.RESOLVED)

        actions = [e.action for e in tickets.list_ticket_events(ticket.id)]
        assert actions == [
            TicketAction.CREATED,
            TicketAction.REMINDER_SENT,
            TicketAction.ACKNOWLEDGED,
            TicketAction.ESCALATED_TO_DAILY,
            TicketAction.STATUS_CHANGED,
            TicketAction.REMINDERS_CANCELLED,
        ]

    # -- degraded queue -----------------------------------------------------

    def test_ticket_lifecycle_with_degraded_queue(self, tickets, invoices, dispatcher, clock, owner, tenant):
        scheduler = MaintenanceReminderScheduler(
            tickets, invoices, dispatcher, RecordingQueue(available=False), clock=clock
        )

        ticket = self._create(scheduler, owner, tenant)
        scheduler.acknowledge(ticket.id)
        scheduler.update_status(ticket.id, TicketStatus.CLOSED)

        assert tickets.get_ticket(ticket.id).status == TicketStatus.CLOSED


def test_reminder_state_derivation():
    ticket = MaintenanceTicket(status=TicketStatus.OPEN, got_it_by_owner=False)
    assert reminder_state(ticket) == ReminderState.PERIODIC_ACTIVE
    ticket.got_it_by_owner = True
    assert reminder_state(ticket) == ReminderState.ACKNOWLEDGED_DAILY
    ticket.status = TicketStatus.CLOSED
    assert reminder_state(ticket) == ReminderState.TERMINATED
    assert reminder_state(None) == ReminderState.TERMINATED
