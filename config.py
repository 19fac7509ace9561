"""
Application configuration loaded from the environment.

A single Settings object is built at process start (API or worker) and
handed to the service container. Nothing else reads os.environ directly.
"""
import os
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv

# Load environment variables
load_dotenv()


SMS_ESCALATION_MODES = ("high", "high_with_email", "off")


def _env_bool(name: str, default: str = "false") -> bool:
     return os.getenv(name, default).lower() == "true"


def _build_database_url() -> str:
     """
     Prefer an explicit DATABASE_URL; otherwise build the MS SQL Server URL
     from the individual DB_* variables.
     """
     explicit = os.getenv("DATABASE_URL")
     if explicit:
          return explicit

     safe_user = quote_plus(os.getenv("DB_USER") or "")
     safe_pass = quote_plus(os.getenv("DB_PASS") or "")
     server = os.getenv("DB_SERVER", "localhost")
     port = os.getenv("DB_PORT", "1433")
     name = os.getenv("DB_NAME", "billing")
     return f"mssql+pymssql://{safe_user}:{safe_pass}@{server}:{port}/{name}"


@dataclass(frozen=True)
class Settings:
     """Runtime configuration. Construct with Settings.from_env()."""

     database_url: str = "sqlite:///./billing.db"
     sql_echo: bool = False

     redis_host: str = "localhost"
     redis_port: int = 6379
     redis_db: int = 0
     redis_password: Optional[str] = None

     scheduler_timezone: str = "UTC"
     billing_cron: str = "0 2 28 * *"
     overdue_cron: str = "0 3 * * *"
     daily_reminder_cron: str = "0 9 * * *"

     default_due_day: int = 5
     default_late_fee_percentage: Decimal = Decimal("2")
     sms_escalation: str = "high"

     billing_max_attempts: int = 3
     billing_min_backoff_ms: int = 5000
     reminder_max_attempts: int = 3

     brevo_api_key: Optional[str] = None
     email_sender_name: str = "StayTrack"
     email_sender_address: str = "noreply@staytrack.app"
     telnyx_api_key: Optional[str] = None
     telnyx_from_number: Optional[str] = None
     telnyx_messaging_profile_id: Optional[str] = None
     firebase_service_account_path: Optional[str] = None

     jwt_secret: Optional[str] = None
     cors_origins: List[str] = field(default_factory=list)
     log_level: str = "INFO"

     def __post_init__(self):
          if self.sms_escalation not in SMS_ESCALATION_MODES:
               raise ValueError(
                    f"SMS_ESCALATION must be one of {SMS_ESCALATION_MODES}, got {self.sms_escalation!r}"
               )
          if not 1 <= self.default_due_day <= 31:
               raise ValueError(f"DEFAULT_DUE_DAY must be between 1 and 31, got {self.default_due_day}")

     @classmethod
     def from_env(cls) -> "Settings":
          origins = [o.strip() for o in os.getenv("CORS_ORIGINS", "").split(",") if o.strip()]
          return cls(
               database_url=_build_database_url(),
               sql_echo=_env_bool("SQL_ECHO"),
               redis_host=os.getenv("REDIS_HOST", "localhost"),
               redis_port=int(os.getenv("REDIS_PORT", "6379")),
               redis_db=int(os.getenv("REDIS_DB", "0")),
               redis_password=os.getenv("REDIS_PASSWORD") or None,
               scheduler_timezone=os.getenv("SCHEDULER_TIMEZONE", "UTC"),
               billing_cron=os.getenv("BILLING_CRON", "0 2 28 * *"),
               overdue_cron=os.getenv("OVERDUE_CRON", "0 3 * * *"),
               daily_reminder_cron=os.getenv("DAILY_REMINDER_CRON", "0 9 * * *"),
               default_due_day=int(os.getenv("DEFAULT_DUE_DAY", "5")),
               default_late_fee_percentage=Decimal(os.getenv("DEFAULT_LATE_FEE_PERCENTAGE", "2")),
               sms_escalation=os.getenv("SMS_ESCALATION", "high").lower(),
               billing_max_attempts=int(os.getenv("BILLING_MAX_ATTEMPTS", "3")),
               billing_min_backoff_ms=int(os.getenv("BILLING_MIN_BACKOFF_MS", "5000")),
               reminder_max_attempts=int(os.getenv("REMINDER_MAX_ATTEMPTS", "3")),
               brevo_api_key=os.getenv("BREVO_API_KEY"),
               email_sender_name=os.getenv("EMAIL_SENDER_NAME", "StayTrack"),
               email_sender_address=os.getenv("EMAIL_SENDER_ADDRESS", "noreply@staytrack.app"),
               telnyx_api_key=os.getenv("TELNYX_API_KEY"),
               telnyx_from_number=os.getenv("TELNYX_FROM_NUMBER"),
               telnyx_messaging_profile_id=os.getenv("TELNYX_MESSAGING_PROFILE_ID"),
               firebase_service_account_path=os.getenv("FIREBASE_SERVICE_ACCOUNT_PATH"),
               jwt_secret=os.getenv("JWT_SECRET"),
               cors_origins=origins,
               log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
          )
