from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from survey360.api.assignments import router as assignments_router
from survey360.api.audit import router as audit_router
from survey360.api.auth import router as auth_router
from survey360.api.employees import router as employees_router
from survey360.api.health import router as health_router
from survey360.api.me import router as me_router
from survey360.api.participants import evaluators_router, subjects_router
from survey360.api.relationships import router as relationships_router
from survey360.api.reminders import router as reminders_router
from survey360.api.reports import router as reports_router
from survey360.api.root import router as root_router
from survey360.api.submissions import router as submissions_router
from survey360.api.surveys import router as surveys_router
from survey360.api.tenants import router as tenants_router
from survey360.api.users import router as users_router
from survey360.core.config import settings
from survey360.core.email import EmailSender
from survey360.core.logger import configure_logging, get_logger
from survey360.core.reminders import ReminderScheduler
from survey360.db.session import SessionLocal
from survey360.middlewares.logging_middleware import LoggingMiddleware

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    scheduler = None
    if settings.REMINDER_ENABLED:
        scheduler = ReminderScheduler(
            SessionLocal,
            EmailSender.from_settings(),
            interval_hours=settings.REMINDER_INTERVAL_HOURS,
        )
        scheduler.start()
    logger.info("Survey360 started (env=%s, reminders=%s)", settings.APP_ENV, settings.REMINDER_ENABLED)
    yield
    if scheduler:
        scheduler.stop()


app = FastAPI(title="Survey360", lifespan=lifespan)

app.add_middleware(LoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# non-tenant routes first so /admin, /auth and /health never hit tenant resolution
app.include_router(root_router)
app.include_router(health_router)
app.include_router(auth_router)
app.include_router(tenants_router)

app.include_router(me_router)
app.include_router(users_router)
app.include_router(employees_router)
app.include_router(subjects_router)
app.include_router(evaluators_router)
app.include_router(relationships_router)
app.include_router(surveys_router)
app.include_router(assignments_router)
app.include_router(submissions_router)
app.include_router(reminders_router)
app.include_router(reports_router)
app.include_router(audit_router)
