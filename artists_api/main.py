# artists_api/main.py
import logging

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from artists_api import __version__
from artists_api.api.v1.auth import router as auth_router
from artists_api.api.v1.regionals import router as regionals_router
from artists_api.core.config import get_settings
from artists_api.core.deps import get_sync_service
from artists_api.db.session import init_db
from artists_api.services.regional_sync import RegionalSyncScheduler

# -----------------------------------------------------------------------------
# Logging: make sure we see clear startup errors in the console
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)
log = logging.getLogger("artists_api")

settings = get_settings()

# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------
app = FastAPI(title="Artists API", version=__version__, debug=settings.DEBUG)

app.include_router(auth_router, tags=["auth"])
app.include_router(regionals_router, prefix="/api/v1", tags=["regionals"])


# -----------------------------------------------------------------------------
# Startup / shutdown
# -----------------------------------------------------------------------------
@app.on_event("startup")
async def _startup() -> None:
    """
    Create missing tables, seed the admin, and start the periodic sync.

    init_db() is non-destructive (create_all only adds missing tables).
    """
    try:
        init_db()
        log.info("DB init completed.")
    except Exception as e:
        # Never crash the app on init errors; log and allow /ping to work.
        log.exception("DB init failed: %s", e)
        return

    if settings.REGIONAL_SYNC_ENABLED:
        scheduler = RegionalSyncScheduler(
            get_sync_service(), settings.REGIONAL_SYNC_INTERVAL_SECONDS
        )
        scheduler.start()
        app.state.regional_scheduler = scheduler


@app.on_event("shutdown")
async def _shutdown() -> None:
    scheduler = getattr(app.state, "regional_scheduler", None)
    if scheduler is not None:
        await scheduler.stop()


# -----------------------------------------------------------------------------
# Minimal health endpoint
# -----------------------------------------------------------------------------
@app.get("/ping")
def ping():
    """Simple liveness check."""
    return {"ok": True}


# -----------------------------------------------------------------------------
# Exception handlers
# -----------------------------------------------------------------------------
@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request, exc):
    return JSONResponse(
        status_code=exc.status_code,
        content={"ok": False, "error": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={
            "ok": False,
            "error": "Validation error",
            "errors": jsonable_encoder(exc.errors()),
        },
    )
