"""
Application lifespan management for startup and shutdown events
"""
import logging
from contextlib import asynccontextmanager

from .config import settings
from .db import init_db
from .workers.sync_scheduler import SyncScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app):
    """Manage application lifespan events"""
    logger.info("Starting betlink (env=%s)", settings.env)

    init_db()
    logger.info("Database tables ready")

    scheduler = SyncScheduler()
    app.state.sync_scheduler = scheduler
    if settings.sync_scheduler_enabled:
        await scheduler.start()
    else:
        logger.info("Sync scheduler not started (SYNC_SCHEDULER_ENABLED=false)")

    try:
        yield
    finally:
        logger.info("Shutting down betlink...")
        await scheduler.stop()
        logger.info("Shutdown complete")
