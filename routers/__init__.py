# routers/__init__.py
from .billing import router as billing_router
from .maintenance import router as maintenance_router
from .notifications import router as notifications_router

__all__ = [
     "billing_router",
     "maintenance_router",
     "notifications_router",
]
