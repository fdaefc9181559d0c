import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI

# Import all models to ensure they're registered with SQLAlchemy Base
# This is needed for relationships between models in different files
from . import (
    models,  # noqa: F401
    models_notification,  # noqa: F401
    models_recurring,  # noqa: F401
)
from .config import SCHEDULERS_ENABLED
from .database import Base, engine
from .domain.recurring.router import router as recurring_router
from .domain.reminders.router import router as reminders_router
from .routes.scheduler import router as scheduler_router
from .workers.scheduler import SchedulerSupervisor

# Configure logging
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
        logger.info("Database tables created successfully")
    except Exception as e:
        # Ignore "already exists" errors from race conditions between workers
        error_msg = str(e)
        if "already exists" in error_msg or "duplicate key" in error_msg:
            logger.info("Database tables already exist (created by another worker)")
        else:
            logger.error(f"Failed to create database tables: {e}")

    supervisor = SchedulerSupervisor()
    app.state.supervisor = supervisor
    if SCHEDULERS_ENABLED:
        supervisor.start_all()
    else:
        logger.info("Background schedulers disabled (SCHEDULERS_ENABLED=false)")

    yield

    logger.info("Application shutting down...")
    await supervisor.shutdown()


app = FastAPI(title="BizOps Scheduler API", version="1.0.0", lifespan=lifespan)

app.include_router(scheduler_router)
app.include_router(recurring_router)
app.include_router(reminders_router)


@app.get("/health")
async def health():
    return {"status": "ok"}
