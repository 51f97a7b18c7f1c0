import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from checklist_sync.api.v1 import api_router
from checklist_sync.config import settings
from checklist_sync.core.error_handlers import register_error_handlers
from checklist_sync.shell import create_services

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    services = getattr(app.state, "services", None) or create_services(settings)
    app.state.services = services
    await services.start()
    logger.info("%s %s started", settings.APP_NAME, settings.APP_VERSION)
    yield
    await services.stop()


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    docs_url="/api/docs",
    openapi_url="/api/openapi.json",
    lifespan=lifespan,
)

# --- Error handlers ---
register_error_handlers(app)

# --- Routes ---
app.include_router(api_router)


@app.get("/api/health")
async def health_check():
    """Local store health plus last known connectivity."""
    services = app.state.services
    checks: dict = {"version": settings.APP_VERSION}
    healthy = True

    start = time.monotonic()
    try:
        checks["store"] = {
            "status": "ok",
            "tables": await services.store.get_database_stats(),
            "latency_ms": round((time.monotonic() - start) * 1000, 1),
        }
    except Exception as exc:
        healthy = False
        checks["store"] = {"status": "error", "detail": str(exc)[:200]}

    checks["online"] = services.connectivity.is_online
    checks["syncing"] = services.sync_manager.is_running
    checks["status"] = "healthy" if healthy else "degraded"

    status_code = 200 if healthy else 503
    return JSONResponse(content=checks, status_code=status_code)
