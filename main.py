"""
PayDesk - FastAPI Application Entry Point

This is the main entry point for the FastAPI application.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from paydesk import __version__
from paydesk.config import settings
from paydesk.database import init_db, close_db, engine
from paydesk.routers import accounts, employees, salary_slips, invoices
from paydesk.utils.error_handling import setup_exception_handlers

# Configure logging
logging.basicConfig(
    level=logging.INFO if not settings.debug else logging.DEBUG,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for FastAPI.
    Handles startup and shutdown events.
    """
    # Startup
    logger.info(f"Starting {settings.app_name}...")
    logger.info(f"Environment: {settings.app_env}")

    # Initialize database (dev only - use migrations in production)
    if settings.is_development:
        await init_db()
        logger.info("Database tables initialized")

    yield

    # Shutdown
    logger.info(f"Shutting down {settings.app_name}...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="Payroll roster synchronisation, period salary slips and batch document generation",
    version=__version__,
    docs_url="/api/docs" if settings.is_development else None,
    redoc_url="/api/redoc" if settings.is_development else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["Content-Disposition"],
)

# Standardized error responses
setup_exception_handlers(app)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    database = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        logger.warning(f"Health check could not reach the database: {e}")
        database = "unavailable"
    return {
        "status": "healthy",
        "database": database,
        "version": __version__,
    }


# ===========================================
# INCLUDE ROUTERS
# ===========================================

ACCOUNT_SCOPE = "/api/v1/accounts/{account_id}"

app.include_router(accounts.router, prefix="/api/v1/accounts", tags=["Accounts"])
app.include_router(employees.router, prefix=ACCOUNT_SCOPE, tags=["Employees"])
app.include_router(salary_slips.router, prefix=ACCOUNT_SCOPE, tags=["Salary Slips"])
app.include_router(invoices.router, prefix=ACCOUNT_SCOPE, tags=["Invoices"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.debug)
