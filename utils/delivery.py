from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ProviderResult:
     """
     Outcome of one provider call. Providers return this instead of raising.

     permanent marks a destination that will never accept delivery (bad
     device token, invalid phone number); skipped marks a call that had
     nothing to deliver to (user offline, no destination on file).
     """
     ok: bool
     permanent: bool = False
     skipped: bool = False
     error: Optional[str] = None

     @classmethod
     def success(cls) -> "ProviderResult":
          return cls(ok=True)

     @classmethod
     def failure(cls, error: str, permanent: bool = False) -> "ProviderResult":
          return cls(ok=False, permanent=permanent, error=error)

     @classmethod
     def skip(cls, reason: str) -> "ProviderResult":
          return cls(ok=False, skipped=True, error=reason)
