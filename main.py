import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings
from database import check_connection, init_db
from routers import billing_router, maintenance_router, notifications_router
from services.container import ServiceContainer, build_container, schedule_recurring_jobs
from services.queue_service import QueueState

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def create_app(settings: Optional[Settings] = None, container: Optional[ServiceContainer] = None) -> FastAPI:
    settings = settings or Settings.from_env()
    configure_logging(settings)
    container = container or build_container(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if settings.database_url.startswith("sqlite"):
            init_db(container.session_factory.kw["bind"])

        # The API process is the one that fires scheduled jobs
        if container.queue.start() == QueueState.AVAILABLE:
            schedule_recurring_jobs(container)
        else:
            logger.warning("⚠️ Starting without background scheduling; direct billing only")
        yield
        container.queue.shutdown()

    # App instance
    app = FastAPI(title="Billing & Reminder Scheduler", lifespan=lifespan)
    app.state.container = container

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(billing_router)
    app.include_router(maintenance_router)
    app.include_router(notifications_router)

    @app.get("/health")
    def health():
        return {
            "status": "ok",
            "database": check_connection(container.session_factory.kw["bind"]),
            "queue": container.queue.state.value,
        }

    # 404 Fallback for unknown routes; route-raised 404s keep their detail
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return JSONResponse(status_code=404, content={"error": "Route not found"})
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail}, headers=getattr(exc, "headers", None))

    @app.middleware("http")
    async def error_middleware(request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.exception(f"❌ Unhandled error on {request.method} {request.url.path}")
            return JSONResponse(status_code=500, content={"error": "Internal server error"})

    return app


if __name__ == "__main__":
    port = int(os.getenv("PORT", 10000))
    uvicorn.run("main:create_app", factory=True, host="0.0.0.0", port=port, reload=True)
