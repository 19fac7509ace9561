# schemas/billing.py
"""
Pydantic schemas for the billing operator endpoints.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field, ConfigDict


MONTH_REGEX = r"^\d{4}-(0[1-9]|1[0-2])$"


class BillingTriggerRequest(BaseModel):
     """Manual billing trigger. Without a month the following calendar month is billed."""
     month: Optional[str] = Field(None, pattern=MONTH_REGEX, description="Target month, YYYY-MM")
     owner_id: Optional[int] = Field(None, gt=0, description="Limit the run to one owner")
     direct: bool = Field(False, description="Run synchronously instead of queueing")

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "month": "2024-03",
                    "owner_id": 12,
                    "direct": True
               }
          }
     )


class BillingRunResponse(BaseModel):
     """Result of a direct run or the handle of a queued one."""
     month: str
     owner_id: Optional[int] = None
     direct: bool
     created: int = 0
     skipped: int = 0
     failed: int = 0
     job_id: Optional[str] = None
     scheduled: Optional[bool] = None


class OverdueRunResponse(BaseModel):
     processed: int
     skipped: int
     failed: int


class QueueStatusResponse(BaseModel):
     state: str
     jobs: Dict[str, Optional[datetime]] = Field(
          default_factory=dict, description="Recurring job id -> next run time"
     )


class FailedJobResponse(BaseModel):
     job_id: str
     job_type: str
     payload: Dict[str, Any] = Field(default_factory=dict)
     error: str
     failed_at: datetime


class FailedJobListResponse(BaseModel):
     jobs: List[FailedJobResponse]
     total: int


class ScheduleUpdateRequest(BaseModel):
     """New cron expressions (5-field) for the recurring jobs."""
     billing_cron: Optional[str] = Field(None, min_length=9, max_length=100)
     overdue_cron: Optional[str] = Field(None, min_length=9, max_length=100)

     model_config = ConfigDict(
          json_schema_extra={
               "example": {
                    "billing_cron": "0 2 28 * *",
                    "overdue_cron": "0 3 * * *"
               }
          }
     )
