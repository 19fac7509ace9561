"""
Request dependencies shared by the routers: bearer-token auth and access to
the process's ServiceContainer.
"""
from typing import Optional

from fastapi import Depends, HTTPException, Request
from jose import JWTError, jwt

from services.container import ServiceContainer

ALGORITHM = "HS256"


def get_container(request: Request) -> ServiceContainer:
     return request.app.state.container


def decode_token(token: str, secret: Optional[str]) -> dict:
     """Raises JWTError for a bad signature, an expired token or a missing secret."""
     if not secret:
          raise JWTError("JWT_SECRET is not configured")
     return jwt.decode(token, secret, algorithms=[ALGORITHM])


# Token Auth Dependency
def verify_token(request: Request, container: ServiceContainer = Depends(get_container)) -> dict:
     auth = request.headers.get("Authorization")
     if not auth or not auth.startswith("Bearer "):
          raise HTTPException(status_code=401, detail="Missing token")
     token = auth.split(" ")[1]
     try:
          return decode_token(token, container.settings.jwt_secret)
     except JWTError:
          raise HTTPException(status_code=403, detail="Invalid token")


def _role(token: dict) -> str:
     return str(token.get("role", "")).lower()


def require_admin(token: dict = Depends(verify_token)) -> dict:
     if _role(token) != "admin":
          raise HTTPException(status_code=403, detail="Admin access required")
     return token


def require_owner(token: dict = Depends(verify_token)) -> dict:
     if _role(token) not in ("owner", "admin"):
          raise HTTPException(status_code=403, detail="Owner access required")
     return token
