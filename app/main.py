from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from app.config import settings
from app.api.v1.router import api_router
from app.core.exceptions import (
    AdditionalTaxError,
    BillingEngineError,
    InvalidTransition,
    NegativeAmount,
    RecurringProfileError,
    UnresolvableJurisdiction,
)
from app.database import init_db, async_session_factory
from app.jobs.scheduler import start_scheduler, shutdown_scheduler, get_job_status


logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Create tables
    - Start background scheduler (recurring invoices, overdue marking)
    """
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
    await init_db()

    if settings.SCHEDULER_ENABLED:
        start_scheduler()

    yield

    # Shutdown
    shutdown_scheduler()
    logger.info("Shutting down...")


# OpenAPI Tags with detailed descriptions
OPENAPI_TAGS = [
    {"name": "Billing", "description": "GST totals, amount in words, invoices, status changes and payments"},
    {"name": "Recurring Invoices", "description": "Recurring invoice profiles and their generated invoices"},
    {"name": "Health", "description": "Service health"},
]

API_DESCRIPTION = """
## Invoice Billing Engine

GST invoice computation and document lifecycle.

- **Jurisdiction**: place of supply resolved from free-text addresses
- **GST**: CGST + SGST for intra-state supply, IGST for inter-state supply
- **Totals**: invoice-level discount, TDS/TCS, adjustment, amount in words
- **Lifecycle**: DRAFT -> SENT/UNPAID -> PARTIALLY_PAID -> PAID, OVERDUE, CANCELLED, VOID
- **Recurring**: daily/weekly/monthly/yearly profiles generating invoices

### Error Codes

| Code | Description |
|------|-------------|
| 404 | Not Found - Resource doesn't exist |
| 409 | Conflict - Status change not allowed, or concurrent update |
| 422 | Unprocessable Entity - Validation or business rule violation |
"""

# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description=API_DESCRIPTION,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_tags=OPENAPI_TAGS,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_router)


ERROR_STATUS_CODES = {
    InvalidTransition: 409,
    NegativeAmount: 422,
    AdditionalTaxError: 422,
    UnresolvableJurisdiction: 422,
    RecurringProfileError: 422,
}


@app.exception_handler(BillingEngineError)
async def billing_engine_exception_handler(request: Request, exc: BillingEngineError):
    """Map billing engine errors to HTTP responses."""
    status_code = next(
        (code for error_type, code in ERROR_STATUS_CODES.items() if isinstance(exc, error_type)),
        400,
    )
    logger.info(f"{request.method} {request.url.path} rejected: {exc.error_code} {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(StaleDataError)
@app.exception_handler(IntegrityError)
async def concurrent_update_exception_handler(request: Request, exc: Exception):
    """Another request changed the same record first."""
    logger.warning(f"{request.method} {request.url.path} conflict: {type(exc).__name__}: {exc}")
    return JSONResponse(
        status_code=409,
        content={
            "error": "The record was modified by another request, reload and retry",
            "code": "CONCURRENT_UPDATE",
            "details": {},
        },
    )


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint with database validation."""
    from sqlalchemy import text
    from datetime import datetime, timezone

    health_status = {
        "status": "healthy",
        "app": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "database": "unknown"
        }
    }

    # Check database connectivity
    try:
        async with async_session_factory() as session:
            result = await session.execute(text("SELECT 1"))
            result.scalar()
            health_status["checks"]["database"] = "connected"
    except Exception as e:
        health_status["status"] = "unhealthy"
        health_status["checks"]["database"] = f"error: {str(e)}"

    # Return 503 if unhealthy
    if health_status["status"] == "unhealthy":
        return JSONResponse(status_code=503, content=health_status)

    return health_status


@app.get("/jobs", tags=["Health"])
async def scheduled_jobs():
    """Background jobs and their next run times."""
    return {"scheduler_enabled": settings.SCHEDULER_ENABLED, "jobs": get_job_status()}


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
        "redoc": "/redoc",
    }
