"""FastAPI application entry point for the Coliving Platform API."""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from coliving_platform.app.config import get_settings
from coliving_platform.app.errors import setup_exception_handlers
from coliving_platform.infra.database import async_session, init_db
from coliving_platform.infra.rate_limiter import rate_limiter
from coliving_platform.services import agreement_service, payment_service

logger = logging.getLogger(__name__)


async def agreement_monitor_loop():
    """Expire overdue agreements and send due agreement and rent reminders on a fixed interval."""
    interval = get_settings().agreement_monitor_interval_minutes
    while True:
        try:
            async with async_session() as db:
                expired_count = await agreement_service.expire_overdue(db)
                if expired_count:
                    logger.info("Agreement monitor: expired %d agreements", expired_count)
                reminded = await agreement_service.process_due_reminders(db)
                if reminded:
                    logger.info("Agreement monitor: sent %d reminders", reminded)
                rent_reminded = await payment_service.process_payment_reminders(db)
                if rent_reminded:
                    logger.info("Agreement monitor: sent %d rent reminders", rent_reminded)
            removed = await rate_limiter.cleanup()
            if removed:
                logger.info("Agreement monitor: evicted %d rate limit windows", removed)
        except Exception as e:
            logger.error("Agreement monitor error: %s", e)
        await asyncio.sleep(interval * 60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: initialize database and start the agreement monitor."""
    await init_db()
    monitor = asyncio.create_task(agreement_monitor_loop())
    yield
    monitor.cancel()


settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.debug else logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    datefmt="%H:%M:%S",
)

app = FastAPI(
    title="Coliving Platform API",
    lifespan=lifespan,
    debug=settings.debug,
)

# CORS middleware: any origin in debug mode
_cors_origins = settings.cors_origins_list
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=("*" not in _cors_origins),
    allow_methods=["*"],
    allow_headers=["*"],
)

setup_exception_handlers(app)

# ---------------------------------------------------------------------------
# Route includes
# ---------------------------------------------------------------------------
from coliving_platform.app.routes.auth import router as auth_router
from coliving_platform.app.routes.properties import router as properties_router, payments_router, expenses_router
from coliving_platform.app.routes.reimbursements import router as reimbursements_router
from coliving_platform.app.routes.agreement_templates import router as agreement_templates_router
from coliving_platform.app.routes.agreements import router as agreements_router
from coliving_platform.app.routes.tenants import router as tenants_router
from coliving_platform.app.routes.communications import router as communications_router
from coliving_platform.app.routes.maintenance import router as maintenance_router
from coliving_platform.app.routes.reports import router as reports_router
from coliving_platform.app.routes.photos import router as photos_router

app.include_router(auth_router)
app.include_router(properties_router)
app.include_router(payments_router)
app.include_router(expenses_router)
app.include_router(reimbursements_router)
# Templates first: /api/agreements/{id} would otherwise match /templates
app.include_router(agreement_templates_router)
app.include_router(agreements_router)
app.include_router(tenants_router)
app.include_router(communications_router)
app.include_router(maintenance_router)
app.include_router(reports_router)
app.include_router(photos_router)

# Static file mount for uploaded photos
_uploads_dir = Path(settings.uploads_dir)
_uploads_dir.mkdir(parents=True, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=str(_uploads_dir)), name="uploads")


@app.get("/health", tags=["health"])
async def health_check():
    """Return service health status."""
    return {"status": "ok", "service": "coliving-platform"}


def run() -> None:
    """Run the application with uvicorn (used by project.scripts entry point)."""
    uvicorn.run(
        "coliving_platform.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
