"""
Firebase Cloud Messaging push delivery.

The Firebase Admin SDK is initialised lazily on first use so processes
without a service account still start.
"""
import json
import logging
from typing import Any, Dict, Optional

import firebase_admin
from firebase_admin import credentials, exceptions as firebase_exceptions, messaging

from utils.delivery import ProviderResult

logger = logging.getLogger(__name__)

APP_NAME = "billing-notifications"

# Errors meaning the token will never be deliverable again
PERMANENT_ERRORS = (
     messaging.UnregisteredError,
     messaging.SenderIdMismatchError,
)


class FcmPushProvider:
     """Service for sending FCM push notifications"""

     def __init__(self, service_account_path: Optional[str]):
          self.service_account_path = service_account_path
          self._app = None

     def _initialize(self) -> bool:
          if self._app is not None:
               return True

          if not self.service_account_path:
               return False

          try:
               self._app = firebase_admin.get_app(APP_NAME)
          except ValueError:
               try:
                    cred = credentials.Certificate(self.service_account_path)
                    self._app = firebase_admin.initialize_app(cred, name=APP_NAME)
                    logger.info("Firebase Admin SDK initialized successfully")
               except Exception as e:
                    logger.error(f"Failed to initialize Firebase Admin SDK: {e}")
                    return False
          return True

     def send_push(
          self,
          device_token: str,
          title: str,
          body: str,
          data: Optional[Dict[str, Any]] = None,
     ) -> ProviderResult:
          if not self._initialize():
               return ProviderResult.skip("Firebase service account not configured")

          # FCM data payloads must be Dict[str, str]
          payload_data = {
               key: value if isinstance(value, str) else json.dumps(value, default=str)
               for key, value in (data or {}).items()
          }

          message = messaging.Message(
               notification=messaging.Notification(title=title, body=body),
               data=payload_data,
               token=device_token,
               android=messaging.AndroidConfig(priority="high"),
          )

          try:
               messaging.send(message, app=self._app)
          except PERMANENT_ERRORS as e:
               return ProviderResult.failure(f"FCM token rejected: {e}", permanent=True)
          except (firebase_exceptions.FirebaseError, ValueError) as e:
               return ProviderResult.failure(f"FCM send failed: {e}")
          return ProviderResult.success()
