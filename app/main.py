import logging
import uuid

from fastapi import FastAPI, HTTPException, status
from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy import text

from app.config import settings
from app.auth import router as auth_router
from app.routers.activities import router as activities_router
from app.routers.attendance_settings import router as attendance_settings_router
from app.core import exceptions
from app.database import AsyncSessionLocal
from app.services.absence_scheduler import AbsenceMarkingScheduler, ScheduleConfig
from app.services.absence_service import AbsenceService
from app.services.attendance_settings_service import AttendanceSettingsService
from app.services.timezone_service import get_company_timezone

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    openapi_url=f"{settings.API_V1_STR}/openapi.json"
)

# CORS must be added before other middleware
configured_origins = [str(origin).rstrip("/") for origin in settings.BACKEND_CORS_ORIGINS]
default_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
]
allow_origins = configured_origins if settings.APP_ENV == "production" else list(dict.fromkeys([*default_origins, *configured_origins]))

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def attach_request_id(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response

# Exception Handlers
app.add_exception_handler(RequestValidationError, exceptions.validation_exception_handler)  # type: ignore
app.add_exception_handler(IntegrityError, exceptions.integrity_exception_handler)  # type: ignore
app.add_exception_handler(exceptions.HRMSError, exceptions.domain_exception_handler)  # type: ignore

# Routers
app.include_router(auth_router.router, prefix=f"{settings.API_V1_STR}/auth", tags=["Auth"])
app.include_router(activities_router, prefix=f"{settings.API_V1_STR}/activities", tags=["Activities"])
app.include_router(attendance_settings_router, prefix=f"{settings.API_V1_STR}/attendance-settings", tags=["Attendance Settings"])

@app.get("/health")
async def health_check():
    return {"status": "ok"}


@app.get("/healthz")
async def healthz():
    try:
        async with AsyncSessionLocal() as db:
            await db.execute(text("SELECT 1"))
    except Exception as exc:
        logger.exception("Health check failed")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="database unavailable",
        ) from exc
    return {"status": "ok", "database": "ok"}

@app.get("/")
async def root():
    return {"message": "Welcome to the HRMS API", "docs": "/docs"}


async def _read_absence_schedule() -> ScheduleConfig | None:
    async with AsyncSessionLocal() as db:
        attendance_settings = await AttendanceSettingsService.get(db)
    if attendance_settings is None:
        return None
    return ScheduleConfig(
        enabled=attendance_settings.auto_absence_enabled,
        marking_time=attendance_settings.absence_marking_time,
    )


async def _run_absence_marking() -> dict:
    async with AsyncSessionLocal() as db:
        summary = await AbsenceService.mark_absences_for_today(db)
        await db.commit()
    return summary.to_dict()


def build_absence_scheduler() -> AbsenceMarkingScheduler:
    return AbsenceMarkingScheduler(
        settings_reader=_read_absence_schedule,
        action=_run_absence_marking,
        tz=get_company_timezone(),
        history_size=settings.ABSENCE_HISTORY_SIZE,
    )


app.state.absence_scheduler = build_absence_scheduler()


@app.on_event("startup")
async def startup_absence_scheduler() -> None:
    _validate_security_settings()
    if not settings.ABSENCE_SCHEDULER_ENABLED:
        logger.info("Absence marking scheduler disabled by config")
        return
    await app.state.absence_scheduler.initialize()


@app.on_event("shutdown")
async def shutdown_absence_scheduler() -> None:
    await app.state.absence_scheduler.shutdown()


def _validate_security_settings() -> None:
    if settings.APP_ENV != "production":
        return

    errors: list[str] = []
    if len(settings.SECRET_KEY.strip()) < 24 or settings.SECRET_KEY == "change-me":
        errors.append("SECRET_KEY must be at least 24 characters in production.")
    if not settings.BACKEND_CORS_ORIGINS:
        errors.append("BACKEND_CORS_ORIGINS must be explicitly configured in production.")

    if errors:
        raise RuntimeError("; ".join(errors))
