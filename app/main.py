from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from app.api import admin, reports
from app.core.config import settings
from app.db.base import get_db
from app.models.transaction import Transaction
from app.services.scheduler import get_scheduler_status, start_scheduler, stop_scheduler
import logging

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

# Get logger for this module
logger = logging.getLogger(__name__)
logger.info("Starting Thrift Society Ledger API")

API_VERSION = "2.0.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.ENABLE_ARCHIVE_SCHEDULER:
        start_scheduler()
    yield
    stop_scheduler()


app = FastAPI(
    title="Thrift Society Ledger API",
    description=settings.SOCIETY_NAME,
    version=API_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://127.0.0.1:3000", "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)

# Include routers
app.include_router(admin.router)
app.include_router(reports.router)


@app.get("/")
def root():
    """Root endpoint."""
    return {"message": "Thrift Society Ledger API", "version": API_VERSION}


@app.get("/api/health")
def health_check(db: Session = Depends(get_db)):
    """Database connectivity plus the ledger's newest live month."""
    db_status = "unreachable"
    db_error = None
    latest_month = None
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
        latest_month = db.query(func.max(Transaction.month)).scalar()
    except SQLAlchemyError as e:
        db_error = str(e)

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "version": API_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "services": {
            "api": "ok",
            "database": db_status,
            "archive_scheduler": "running" if get_scheduler_status()["running"] else "stopped",
        },
        "latest_month": latest_month,
        **({"database_error": db_error} if db_error else {})
    }
