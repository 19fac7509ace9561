from html import escape
from typing import Optional

import requests

from utils.delivery import ProviderResult


BREVO_URL = "https://api.brevo.com/v3/smtp/email"


class BrevoEmailProvider:
     """Transactional email through the Brevo SMTP API."""

     def __init__(self, api_key: Optional[str], sender_name: str, sender_address: str, timeout: int = 10):
          self.api_key = api_key
          self.sender_name = sender_name
          self.sender_address = sender_address
          self.timeout = timeout

     def render(self, name: str, title: str, message: str) -> str:
          return f"""
               <h2>{escape(title)}</h2>
               <p>Hi {escape(name)},</p>
               <p>{escape(message)}</p>
          """

     def send_email(self, address: str, subject: str, body: str) -> ProviderResult:
          if not self.api_key:
               return ProviderResult.skip("BREVO_API_KEY is not set")

          try:
               response = requests.post(
                    BREVO_URL,
                    headers={
                         "api-key": self.api_key,
                         "Content-Type": "application/json",
                    },
                    json={
                         "sender": {"name": self.sender_name, "email": self.sender_address},
                         "to": [{"email": address}],
                         "subject": subject,
                         "htmlContent": body,
                    },
                    timeout=self.timeout,
               )
          except requests.RequestException as e:
               return ProviderResult.failure(f"Brevo request failed: {e}")

          if response.status_code not in (200, 201, 202):
               return ProviderResult.failure(f"Brevo error {response.status_code}: {response.text}")
          return ProviderResult.success()
