# ============================================================================
# API MODULE
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - FastAPI routes
# PURPOSE: HTTP API for templates, instances, steps and context
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Module

FastAPI routes for the workflow engine.
"""

from .routes import router, request_validation_error_handler, set_services, workflow_error_handler
from .schemas import (
    TemplateCreate,
    TemplateResponse,
    InstanceCreate,
    InstanceDetailResponse,
    ErrorResponse,
)

__all__ = [
    "router",
    "set_services",
    "workflow_error_handler",
    "request_validation_error_handler",
    "TemplateCreate",
    "TemplateResponse",
    "InstanceCreate",
    "InstanceDetailResponse",
    "ErrorResponse",
]
