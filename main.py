# ============================================================================
# CASE WORKFLOW ENGINE - MAIN APPLICATION
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - FastAPI application entry point
# PURPOSE: Main application wiring pool, services and routes
# CREATED: 12 OCT 2026
# ============================================================================
"""
Case Workflow Engine Main Application

FastAPI application that:
1. Provides the HTTP API for templates, instances, steps and context
2. Optionally applies the database schema on startup
3. Optionally loads seed templates from WORKFLOW_TEMPLATES_DIR

There is no background loop: every scheduler pass runs inside the
request that triggered it.

Usage:
    uvicorn main:app --host 0.0.0.0 --port 8000
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from __version__ import __version__, BUILD_DATE, EPOCH
from core.config import get_defaults
from core.errors import WorkflowError
from repositories import init_pool, close_pool, ensure_schema
from services import InstanceService, NotificationService, TemplateService
from api.routes import router, request_validation_error_handler, set_services, workflow_error_handler

# Configure logging using our structured logging system
from core.logging import configure_logging

configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Initializes services on startup, cleans up on shutdown.
    """
    defaults = get_defaults()
    logger.info(f"Starting Case Workflow Engine v{__version__} (Epoch {EPOCH}, Build {BUILD_DATE})")

    # Initialize database pool
    pool = await init_pool()
    logger.info("Database pool initialized")

    if defaults.database.ensure_schema_on_startup:
        count = await ensure_schema(pool)
        logger.info(f"Schema ensured ({count} statements)")

    template_service = TemplateService(pool)
    if defaults.templates.load_on_startup:
        count = await template_service.load_all()
        logger.info(f"Loaded {count} seed templates")

    instance_service = InstanceService(
        pool,
        template_service,
        notification_service=NotificationService(),
    )
    context_service = instance_service.context_service

    # Set services for API routes
    set_services(
        template_service=template_service,
        instance_service=instance_service,
        context_service=context_service,
    )

    yield

    # Shutdown
    logger.info("Shutting down Case Workflow Engine...")
    await close_pool()
    logger.info("Case Workflow Engine stopped")


# Create FastAPI app
app = FastAPI(
    title="Case Workflow Engine",
    description=f"Epoch {EPOCH} case workflow dependency and condition engine",
    version=__version__,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(WorkflowError, workflow_error_handler)
app.add_exception_handler(RequestValidationError, request_validation_error_handler)

# Include API routes
app.include_router(router, prefix="/api/v1")


# Root endpoint
@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Case Workflow Engine",
        "version": __version__,
        "epoch": EPOCH,
        "build_date": BUILD_DATE,
        "status": "running",
        "docs": "/docs",
    }


# ============================================================================
# MAIN ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    import uvicorn

    host = os.environ.get("HOST", "0.0.0.0")
    port = int(os.environ.get("PORT", "8000"))

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=os.environ.get("RELOAD", "false").lower() == "true",
    )
