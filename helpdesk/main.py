"""
Helpdesk SLA Engine - Main Application
=======================================

SLA violation detection and escalation for the helpdesk.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities and value objects
- Infrastructure: Database, rule seed, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from helpdesk.config import settings
from helpdesk.core import ApplicationException

# Infrastructure
from helpdesk.infrastructure.database import (
    close_database, create_tables, get_session_context, init_database
)

# SLA Module
from helpdesk.sla.infrastructure.external import SLARuleSeedLoader, SLAScheduler
from helpdesk.sla.services import SLAEvaluator, build_rule_service
from helpdesk.sla.interfaces import sla_router

# Shared
from helpdesk.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from helpdesk.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)

# Global service instances
sla_scheduler = None
database_ready = False


async def seed_default_rules() -> int:
    """Insert the default SLA rules for priorities that have none."""
    seed = SLARuleSeedLoader(settings.sla_rules_seed_path).load()
    async with get_session_context() as session:
        created = await build_rule_service(session).seed_defaults(seed)
    return len(created)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database
    3. Create database tables
    4. Seed default SLA rules (optional)
    5. Start SLA scheduler (when the interval is positive)

    SHUTDOWN:
    1. Stop SLA scheduler
    2. Close database connections
    """
    global sla_scheduler, database_ready

    # === STARTUP ===
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting SLA engine", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })
    app.state.settings = settings

    logger.info("Initializing database")
    init_database()

    # Note: if the database is not available the server still starts but
    # database-dependent endpoints will fail
    try:
        await create_tables()
        database_ready = True
    except Exception as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    if database_ready and settings.sla_seed_on_startup:
        try:
            rules_created = await seed_default_rules()
            logger.info("Default SLA rules seeded on startup", extra={"rules_created": rules_created})
        except ApplicationException as e:
            logger.warning("Default SLA rules not seeded", extra={"error": e.message})

    if settings.sla_evaluation_interval > 0:
        sla_evaluator = SLAEvaluator()

        async def sla_evaluation_job():
            """Background SLA pass."""
            try:
                async with get_session_context() as session:
                    await sla_evaluator.evaluate(session)
            except Exception as e:
                logger.error("SLA pass failed", extra={"error": str(e)}, exc_info=True)

        sla_scheduler = SLAScheduler(interval_seconds=settings.sla_evaluation_interval)
        await sla_scheduler.start(sla_evaluation_job)
    else:
        logger.info("SLA scheduler disabled")

    logger.info("SLA engine started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down SLA engine")

    if sla_scheduler:
        await sla_scheduler.stop()
        sla_scheduler = None

    await close_database()

    logger.info("SLA engine shutdown complete")


# Create FastAPI application
app = FastAPI(
    title="Helpdesk SLA Engine API",
    description="""
    ## SLA Violation & Escalation Engine

    Watches open helpdesk tickets against the SLA rule of their priority.

    **Features:**
    - Response and resolution deadline tracking per priority
    - One violation per breached clock, resolved when the ticket closes
    - Level-by-level escalation to users or roles
    - Notification records for breaches and escalations
    - Compliance reports over 7d / 30d / 90d / 1y
    - Background pass every `SLA_EVALUATION_INTERVAL` seconds
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# === CORS Middleware ===
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

# === Include Module Routers ===
app.include_router(sla_router)


# === Health Check Endpoint ===

@app.get("/health", tags=["Health"], responses={
    200: {
        "description": "Service is healthy",
        "content": {
            "application/json": {
                "example": {
                    "status": "healthy",
                    "version": "1.0.0",
                    "environment": "development",
                    "checks": {
                        "database": "connected",
                        "sla_scheduler": "running"
                    }
                }
            }
        }
    }
})
async def health_check():
    """
    Health check endpoint for load balancers and orchestrators.
    """
    checks = {
        "database": "connected" if database_ready else "unavailable",
        "sla_scheduler": "running" if sla_scheduler and sla_scheduler.is_running else "stopped",
    }

    return {
        "status": "healthy" if database_ready else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint with API information."""
    return {
        "service": "Helpdesk SLA Engine",
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
        "modules": {
            "sla": {
                "prefix": "/sla",
                "endpoints": [
                    "GET/POST /sla/rules - SLA rules per priority",
                    "GET /sla/violations - Recorded violations",
                    "GET /sla/escalations - Escalation history",
                    "GET /sla/notifications - SLA notifications",
                    "GET /sla/reports/compliance - Compliance report",
                    "POST /sla/check-violations - Run violation detection",
                    "POST /sla/check-escalations - Run escalation check"
                ]
            }
        }
    }


# === Development Entry Point ===

def run() -> None:
    import uvicorn

    uvicorn.run(
        "helpdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower()
    )


if __name__ == "__main__":
    run()
