from typing import Any, Dict, Optional

import requests

from utils.delivery import ProviderResult


# Telnyx error codes meaning the destination number itself is unusable
INVALID_DESTINATION_CODES = {"40310", "40311", "40300"}


class TelnyxSmsProvider:
     """Telnyx messaging gateway implementation."""

     BASE_URL = "https://api.telnyx.com/v2"

     def __init__(
          self,
          api_key: Optional[str],
          from_number: Optional[str],
          messaging_profile_id: Optional[str] = None,
          timeout: int = 10,
     ):
          self.api_key = api_key
          self.from_number = from_number
          self.messaging_profile_id = messaging_profile_id
          self.timeout = timeout

     @property
     def configured(self) -> bool:
          return bool(self.api_key and self.from_number)

     def sanitize_payload(self, data: Dict[str, Any]) -> Dict[str, Any]:
          if self.messaging_profile_id:
               data["messaging_profile_id"] = self.messaging_profile_id
          return data

     def send_sms(self, phone_number: str, text: str) -> ProviderResult:
          if not self.configured:
               return ProviderResult.skip("Telnyx credentials not configured")

          payload = self.sanitize_payload({"from": self.from_number, "to": phone_number, "text": text})
          try:
               resp = requests.post(
                    f"{self.BASE_URL}/messages",
                    headers={"Authorization": f"Bearer {self.api_key}"},
                    json=payload,
                    timeout=self.timeout,
               )
          except requests.RequestException as e:
               return ProviderResult.failure(f"Telnyx request failed: {e}")

          if resp.status_code < 300:
               return ProviderResult.success()
          return ProviderResult.failure(
               f"Telnyx error {resp.status_code}: {resp.text}",
               permanent=self._is_invalid_destination(resp),
          )

     def _is_invalid_destination(self, resp) -> bool:
          if resp.status_code != 422 and resp.status_code != 400:
               return False
          try:
               errors = resp.json().get("errors", [])
          except ValueError:
               return False
          return any(str(err.get("code")) in INVALID_DESTINATION_CODES for err in errors)
