"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import accounts, consents, payments, sync
from api.dependencies import close_clients
from config import settings
from database import init_db
from logging_config import setup_logging
from services.sync_scheduler import SyncScheduler

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables and start the sync scheduler when the integration is enabled."""
    try:
        init_db()
    except Exception:
        logger.warning("Database initialization failed on startup", exc_info=True)

    scheduler = None
    if settings.OPEN_FINANCE_ENABLED:
        scheduler = SyncScheduler()
        try:
            scheduler.start()
        except Exception:
            logger.error("Open Finance sync scheduler failed to start", exc_info=True)
            scheduler = None
    else:
        logger.info("Open Finance integration disabled; sync scheduler not started")

    app.state.sync_scheduler = scheduler
    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown()
        close_clients()


app = FastAPI(
    title="Open Finance Sync",
    description="Consent, account, transaction and payment synchronization with Open Finance institutions",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(accounts.router)
app.include_router(consents.router)
app.include_router(payments.router)
app.include_router(sync.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}
