# routers/billing.py
"""
Billing operator API.

Manual triggers for invoice generation and the overdue scan, plus visibility
into the job queue. Every route requires an admin token.

A direct run works whether or not the job queue is reachable; a queued run
against a degraded queue reports scheduled=false instead of failing.
"""
from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from schemas.billing import (
     BillingTriggerRequest,
     BillingRunResponse,
     OverdueRunResponse,
     QueueStatusResponse,
     FailedJobResponse,
     FailedJobListResponse,
     ScheduleUpdateRequest,
)
from security import get_container, require_admin
from services.container import (
     RECURRING_BILLING_JOB_ID,
     ServiceContainer,
     enqueue_billing,
     schedule_recurring_jobs,
)
from services.exceptions import InvalidMonth, QueueUnavailable
from services.late_fee_service import OVERDUE_JOB_ID

router = APIRouter(prefix="/api/billing", tags=["billing"])

RECURRING_JOB_IDS = (RECURRING_BILLING_JOB_ID, OVERDUE_JOB_ID)


@router.post(
     "/generate",
     response_model=BillingRunResponse,
     summary="Generate monthly invoices"
)
def generate_invoices(
     body: BillingTriggerRequest,
     response: Response,
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_admin),
):
     """
     Generate invoices for one owner or for every active owner.

     - **month**: YYYY-MM, defaults to next month
     - **owner_id**: optional owner scope
     - **direct**: run now and return counts instead of queueing
     """
     month = body.month or container.billing.default_month()

     if not body.direct:
          handle = enqueue_billing(container, month, body.owner_id)
          response.status_code = status.HTTP_202_ACCEPTED
          return BillingRunResponse(
               month=month,
               owner_id=body.owner_id,
               direct=False,
               job_id=handle.job_id,
               scheduled=handle.scheduled,
          )

     try:
          if body.owner_id is not None:
               result = container.billing.generate_for_owner(body.owner_id, month)
          else:
               result = container.billing.generate_for_all_owners(month)
     except InvalidMonth as e:
          raise HTTPException(status_code=400, detail=str(e))

     return BillingRunResponse(
          month=month,
          owner_id=body.owner_id,
          direct=True,
          **result.as_dict(),
     )


@router.post(
     "/overdue",
     response_model=OverdueRunResponse,
     summary="Run the overdue scan now"
)
def process_overdue(
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_admin),
):
     return OverdueRunResponse(**container.overdue.process_overdue().as_dict())


@router.get(
     "/jobs/failed",
     response_model=FailedJobListResponse,
     summary="Jobs that exhausted their retries"
)
def list_failed_jobs(
     limit: int = Query(50, ge=1, le=500),
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_admin),
):
     jobs = [FailedJobResponse(**entry) for entry in container.queue.failed_jobs(limit)]
     return FailedJobListResponse(jobs=jobs, total=len(jobs))


@router.get(
     "/queue",
     response_model=QueueStatusResponse,
     summary="Job queue state and recurring schedule"
)
def queue_status(
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_admin),
):
     jobs = {}
     for job_id in RECURRING_JOB_IDS:
          handle = container.queue.get_job(job_id)
          jobs[job_id] = handle.next_run_time if handle else None
     return QueueStatusResponse(state=container.queue.state.value, jobs=jobs)


@router.post(
     "/queue/probe",
     response_model=QueueStatusResponse,
     summary="Re-check the job broker"
)
def probe_queue(
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_admin),
):
     state = container.queue.probe()
     return QueueStatusResponse(state=state.value)


@router.put(
     "/schedule",
     response_model=QueueStatusResponse,
     summary="Change the recurring billing and overdue schedules"
)
def update_schedule(
     body: ScheduleUpdateRequest,
     container: ServiceContainer = Depends(get_container),
     token: dict = Depends(require_admin),
):
     try:
          handles = schedule_recurring_jobs(
               container,
               billing_cron=body.billing_cron,
               overdue_cron=body.overdue_cron,
          )
     except QueueUnavailable:
          raise HTTPException(status_code=503, detail="Job queue unavailable")
     except ValueError as e:
          raise HTTPException(status_code=422, detail=f"Invalid cron expression: {e}")

     return QueueStatusResponse(
          state=container.queue.state.value,
          jobs={job_id: handle.next_run_time for job_id, handle in handles.items()},
     )
