"""
Notification dispatch.

A logical notification is published once to the dispatcher; every channel
adapter subscribed for a requested channel receives it independently. A
failing adapter is logged and never stops the others, and dispatch() never
raises to the billing or reminder code that called it.

Channel selection is the explicit channel list plus priority escalation:
under the default "high" policy a HIGH or URGENT notification also goes out
by SMS ("high_with_email" only escalates when EMAIL was requested, "off"
never escalates).
"""
import enum
import logging
import uuid
from abc import ABC, abstractmethod
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from services.repository import UserRepository
from utils.dates import utcnow
from utils.delivery import ProviderResult

logger = logging.getLogger(__name__)


class NotificationChannel(str, enum.Enum):
     WEBSOCKET = "WEBSOCKET"
     PUSH = "PUSH"
     EMAIL = "EMAIL"
     SMS = "SMS"


# Delivery order when several channels are requested
CHANNEL_ORDER = (
     NotificationChannel.WEBSOCKET,
     NotificationChannel.PUSH,
     NotificationChannel.EMAIL,
     NotificationChannel.SMS,
)

DEFAULT_CHANNELS = (NotificationChannel.WEBSOCKET, NotificationChannel.EMAIL)


class NotificationKind(str, enum.Enum):
     MAINTENANCE_REQUEST = "MAINTENANCE_REQUEST"
     MAINTENANCE_REMINDER = "MAINTENANCE_REMINDER"
     MAINTENANCE_UPDATE = "MAINTENANCE_UPDATE"
     OWNER_ACKNOWLEDGED = "OWNER_ACKNOWLEDGED"
     PAYMENT_DUE = "PAYMENT_DUE"
     PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
     SYSTEM_ALERT = "SYSTEM_ALERT"


class NotificationPriority(str, enum.Enum):
     LOW = "LOW"
     MEDIUM = "MEDIUM"
     HIGH = "HIGH"
     URGENT = "URGENT"


ESCALATING_PRIORITIES = (NotificationPriority.HIGH, NotificationPriority.URGENT)


class DeliveryStatus(str, enum.Enum):
     SENT = "SENT"
     SKIPPED = "SKIPPED"
     FAILED = "FAILED"
     NO_ADAPTER = "NO_ADAPTER"


@dataclass(frozen=True)
class NotificationRequest:
     user_id: int
     kind: NotificationKind
     title: str
     message: str
     data: Dict[str, Any] = field(default_factory=dict)
     priority: NotificationPriority = NotificationPriority.MEDIUM
     channels: Tuple[NotificationChannel, ...] = DEFAULT_CHANNELS
     id: str = field(default_factory=lambda: uuid.uuid4().hex)
     created_at: datetime = field(default_factory=utcnow)

     def as_payload(self) -> Dict[str, Any]:
          return {
               "id": self.id,
               "type": self.kind.value,
               "title": self.title,
               "message": self.message,
               "data": self.data,
               "priority": self.priority.value,
               "createdAt": self.created_at.isoformat(),
          }


class ChannelAdapter(ABC):
     """Subscriber for one notification channel."""

     channel: NotificationChannel

     @abstractmethod
     def deliver(self, request: NotificationRequest) -> ProviderResult:
          ...


class RealtimeChannel(ChannelAdapter):
     channel = NotificationChannel.WEBSOCKET

     def __init__(self, provider):
          self.provider = provider

     def deliver(self, request: NotificationRequest) -> ProviderResult:
          return self.provider.send_realtime(request.user_id, request.as_payload())


class EmailChannel(ChannelAdapter):
     channel = NotificationChannel.EMAIL

     def __init__(self, users: UserRepository, provider):
          self.users = users
          self.provider = provider

     def deliver(self, request: NotificationRequest) -> ProviderResult:
          contact = self.users.get_user_contact(request.user_id)
          if contact is None or not contact.email:
               return ProviderResult.skip("no email address on file")
          body = self.provider.render(contact.name, request.title, request.message)
          return self.provider.send_email(contact.email, request.title, body)


class PushChannel(ChannelAdapter):
     channel = NotificationChannel.PUSH

     def __init__(self, users: UserRepository, provider):
          self.users = users
          self.provider = provider

     def deliver(self, request: NotificationRequest) -> ProviderResult:
          contact = self.users.get_user_contact(request.user_id)
          if contact is None or not contact.fcm_token:
               return ProviderResult.skip("no device token on file")

          data = dict(request.data, notification_type=request.kind.value)
          result = self.provider.send_push(contact.fcm_token, request.title, request.message, data)
          if result.permanent:
               _cleanup(lambda: self.users.clear_push_token(request.user_id), "push token", request.user_id)
          return result


class SmsChannel(ChannelAdapter):
     channel = NotificationChannel.SMS

     def __init__(self, users: UserRepository, provider):
          self.users = users
          self.provider = provider

     def deliver(self, request: NotificationRequest) -> ProviderResult:
          contact = self.users.get_user_contact(request.user_id)
          if contact is None or not contact.phone:
               return ProviderResult.skip("no phone number on file")
          if not contact.phone_verified:
               return ProviderResult.skip("phone number not verified")

          result = self.provider.send_sms(contact.phone, f"{request.title}: {request.message}")
          if result.permanent:
               _cleanup(lambda: self.users.revoke_phone(request.user_id), "phone verification", request.user_id)
          return result


def _cleanup(action, what: str, user_id: int) -> None:
     """Best-effort removal of a dead destination; never affects the delivery result."""
     try:
          action()
          logger.info(f"🗑️ Removed invalid {what} for user {user_id}")
     except Exception as e:
          logger.warning(f"Failed to remove invalid {what} for user {user_id}: {e}")


class NotificationDispatcher:
     """Fans a notification out to every subscribed adapter of each selected channel."""

     def __init__(self, sms_escalation: str = "high"):
          self.sms_escalation = sms_escalation
          self._subscribers: Dict[NotificationChannel, List[ChannelAdapter]] = defaultdict(list)

     def subscribe(self, adapter: ChannelAdapter) -> None:
          self._subscribers[adapter.channel].append(adapter)

     def resolve_channels(
          self,
          channels: Optional[Iterable[NotificationChannel]],
          priority: NotificationPriority,
     ) -> Tuple[NotificationChannel, ...]:
          requested = set(channels) if channels is not None else set(DEFAULT_CHANNELS)

          if priority in ESCALATING_PRIORITIES and NotificationChannel.SMS not in requested:
               if self.sms_escalation == "high":
                    requested.add(NotificationChannel.SMS)
               elif self.sms_escalation == "high_with_email" and NotificationChannel.EMAIL in requested:
                    requested.add(NotificationChannel.SMS)

          return tuple(c for c in CHANNEL_ORDER if c in requested)

     def dispatch(
          self,
          user_id: int,
          kind: NotificationKind,
          title: str,
          message: str,
          data: Optional[Dict[str, Any]] = None,
          channels: Optional[Iterable[NotificationChannel]] = None,
          priority: NotificationPriority = NotificationPriority.MEDIUM,
     ) -> Dict[NotificationChannel, DeliveryStatus]:
          """
          Publish one notification. Returns the delivery status per channel;
          never raises.
          """
          report: Dict[NotificationChannel, DeliveryStatus] = {}
          try:
               request = NotificationRequest(
                    user_id=user_id,
                    kind=NotificationKind(kind),
                    title=title,
                    message=message,
                    data=dict(data or {}),
                    priority=NotificationPriority(priority),
                    channels=self.resolve_channels(channels, NotificationPriority(priority)),
               )
          except Exception as e:
               logger.error(f"❌ Invalid notification for user {user_id}: {e}")
               return report

          logger.info(f"📬 Notification {request.kind.value} for user {user_id}: {title}")
          for channel in request.channels:
               report[channel] = self._publish(channel, request)
          return report

     def _publish(self, channel: NotificationChannel, request: NotificationRequest) -> DeliveryStatus:
          adapters = self._subscribers.get(channel)
          if not adapters:
               logger.debug(f"No adapter subscribed for {channel.value}")
               return DeliveryStatus.NO_ADAPTER

          status = DeliveryStatus.SKIPPED
          for adapter in adapters:
               try:
                    result = adapter.deliver(request)
               except Exception as e:
                    logger.error(f"❌ {channel.value} notification to user {request.user_id} raised: {e}")
                    status = DeliveryStatus.FAILED if status != DeliveryStatus.SENT else status
                    continue

               if result.ok:
                    status = DeliveryStatus.SENT
               elif result.skipped:
                    logger.debug(f"{channel.value} skipped for user {request.user_id}: {result.error}")
               else:
                    logger.warning(f"⚠️ {channel.value} notification to user {request.user_id} failed: {result.error}")
                    if status != DeliveryStatus.SENT:
                         status = DeliveryStatus.FAILED
          return status
