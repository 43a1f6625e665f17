"""Reminder scheduler FastAPI application."""

from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI

from reminder_scheduler.config import settings
from reminder_scheduler.database import close_database
from reminder_scheduler.logging_config import get_logger, setup_logging
from reminder_scheduler.middleware import CorrelationIdMiddleware
from reminder_scheduler.routers.health import router as health_router
from reminder_scheduler.routers.reminders import router as reminders_router
from reminder_scheduler.services.scheduler import start_scheduler, stop_scheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Reminder scheduler started")
    start_scheduler()

    yield

    logger.info("Shutting down reminder scheduler...")
    stop_scheduler()
    await close_database()
    logger.info("Reminder scheduler shutdown complete")


app = FastAPI(
    title="Glucose Reminder Scheduler",
    description="Adaptive weekly scheduling of glucose measurement reminders",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(health_router)
app.include_router(reminders_router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "Glucose Reminder Scheduler",
        "version": "0.1.0",
        "docs": "/docs",
    }
