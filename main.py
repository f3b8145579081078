from contextlib import asynccontextmanager

import structlog
import uvicorn
from apscheduler.schedulers.background import BackgroundScheduler
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from auth import auth_router
from config import get_settings
from database import init_db
from errors import register_exception_handlers
from logging_config import configure_logging
from notifications import sms_router
from recurrence import run_recurring_job
from router import router
from seed import seed_database
from storage import open_storage

settings = get_settings()
configure_logging(settings)
logger = structlog.get_logger()


def create_scheduler() -> BackgroundScheduler:
    scheduler = BackgroundScheduler()
    scheduler.add_job(
        run_recurring_job, "cron", hour=0, minute=0, id="recurring-events"
    )  # Run daily at midnight
    return scheduler


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.storage_backend == "sql":
        init_db()
    if settings.seed_demo:
        with open_storage() as storage:
            seed_database(storage)

    scheduler = None
    if settings.scheduler_enabled:
        scheduler = create_scheduler()
        scheduler.start()
        logger.info("Scheduler started", jobs=[job.id for job in scheduler.get_jobs()])
    app.state.scheduler = scheduler

    logger.info(
        "Committee portal started",
        storage_backend=settings.storage_backend,
        auth_enabled=settings.auth_enabled,
    )
    yield

    if scheduler is not None:
        scheduler.shutdown(wait=False)


app = FastAPI(title=settings.app_name, lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
register_exception_handlers(app)

app.include_router(router, prefix="/api", tags=["committee"])
app.include_router(sms_router, prefix="/api", tags=["sms"])
app.include_router(auth_router, prefix="/auth", tags=["authentication"])


@app.get("/")
def home():
    return {"message": "Welcome to the Social Committee Portal API"}


if __name__ == "__main__":
    uvicorn.run(app, host=settings.host, port=settings.port)
