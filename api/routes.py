# ============================================================================
# API ROUTES
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - FastAPI route definitions
# PURPOSE: HTTP endpoints for templates, instances, steps and context
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Routes

FastAPI routes for the workflow engine. Mounted under /api/v1.

Services raise WorkflowError subclasses; workflow_error_handler turns
them into JSON with the status code the error carries. Request bodies
that fail schema validation get the same {"error", "issues"} shape from
request_validation_error_handler.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from core.contracts import InstanceStatus
from core.errors import WorkflowError, WorkflowValidationError
from core.models import condition_config_errors, parse_condition_config
from handlers import get_action_registry
from orchestrator.engine.conditions import get_condition_evaluator
from orchestrator.engine.validation import describe_dependencies
from .schemas import (
    ActionHandlerResponse,
    ConditionValidationResponse,
    ContextPatch,
    ContextResponse,
    ErrorResponse,
    InstanceCreate,
    InstanceDetailResponse,
    InstanceListResponse,
    InstanceResponse,
    StepComplete,
    StepSkip,
    StepStart,
    TemplateCreate,
    TemplateListResponse,
    TemplatePublish,
    TemplateResponse,
    TemplateUpdate,
    ValidateConditionRequest,
    ValidateStepsRequest,
    ValidationResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


# ============================================================================
# DEPENDENCY INJECTION
# ============================================================================
# These will be set by the main app at startup

_template_service = None
_instance_service = None
_context_service = None


def set_services(template_service, instance_service, context_service):
    """Set service instances for dependency injection."""
    global _template_service, _instance_service, _context_service
    _template_service = template_service
    _instance_service = instance_service
    _context_service = context_service


def get_template_service():
    if _template_service is None:
        raise HTTPException(500, "Services not initialized")
    return _template_service


def get_instance_service():
    if _instance_service is None:
        raise HTTPException(500, "Services not initialized")
    return _instance_service


def get_context_service():
    if _context_service is None:
        raise HTTPException(500, "Services not initialized")
    return _context_service


# ============================================================================
# ERROR HANDLING
# ============================================================================

async def workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
    """Map WorkflowError subclasses to their status code."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.status_code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())



async def request_validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request-body errors in the same shape as WorkflowValidationError."""
    error = WorkflowValidationError.from_errors(exc.errors())
    logger.info(f"{request.method} {request.url.path} -> 422: {error.message}")
    return JSONResponse(status_code=error.status_code, content=error.to_dict())


# ============================================================================
# VALIDATION
# ============================================================================

@router.post(
    "/workflows/validate",
    response_model=ValidationResponse,
    responses={422: {"model": ErrorResponse}},
    tags=["Validation"],
)
async def validate_steps(request: ValidateStepsRequest):
    """
    Validate a step list without storing it.

    Returns 200 with a dependency summary when valid, 422 with every
    issue found otherwise.
    """
    service = get_template_service()
    issues = service.validate(request.steps)
    if issues:
        raise WorkflowValidationError(issues)
    return ValidationResponse(valid=True, dependency_summary=describe_dependencies(request.steps))


@router.post(
    "/workflows/validate-condition",
    response_model=ConditionValidationResponse,
    tags=["Validation"],
)
async def validate_condition(request: ValidateConditionRequest):
    """
    Check a condition configuration and optionally evaluate it.

    Evaluation runs against `test_context` as the instance context.
    """
    errors = condition_config_errors(request.condition)
    if errors:
        return ConditionValidationResponse(valid=False, errors=errors)

    evaluation = None
    if request.test_context is not None:
        condition = parse_condition_config(request.condition)
        result = get_condition_evaluator().evaluate_safe(condition, request.test_context)
        evaluation = result.to_dict()

    return ConditionValidationResponse(valid=True, evaluation=evaluation)


@router.get(
    "/workflows/actions",
    response_model=List[ActionHandlerResponse],
    tags=["Validation"],
)
async def list_action_handlers():
    """Config and completion schemas for every action type."""
    return [handler.describe() for handler in get_action_registry().list()]


# ============================================================================
# TEMPLATES
# ============================================================================

@router.post(
    "/workflows/templates",
    response_model=TemplateResponse,
    status_code=201,
    responses={422: {"model": ErrorResponse}},
    tags=["Templates"],
)
async def create_template(request: TemplateCreate):
    """Create a template. Stored as draft version 1."""
    service = get_template_service()
    template = await service.create_template(request.to_template())
    return TemplateResponse.from_template(template, service.describe(template))


@router.get("/workflows/templates", response_model=TemplateListResponse, tags=["Templates"])
async def list_templates(
    active_only: bool = Query(False, description="Only templates with a published version"),
    limit: int = Query(100, ge=1, le=1000),
):
    """List the latest version of each template."""
    templates = await get_template_service().list_templates(active_only=active_only, limit=limit)
    return TemplateListResponse(
        templates=[TemplateResponse.from_template(t) for t in templates],
        total=len(templates),
    )


@router.get(
    "/workflows/templates/{template_id}",
    response_model=TemplateResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Templates"],
)
async def get_template(template_id: str, version: Optional[int] = Query(None, ge=1)):
    service = get_template_service()
    template = await service.get_template(template_id, version)
    return TemplateResponse.from_template(template, service.describe(template))


@router.put(
    "/workflows/templates/{template_id}",
    response_model=TemplateResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Templates"],
)
async def update_template(template_id: str, request: TemplateUpdate):
    """
    Edit a template.

    Drafts are edited in place; editing a published template creates a
    new draft version.
    """
    service = get_template_service()
    template = await service.update_template(
        template_id,
        name=request.name,
        description=request.description,
        steps=request.steps,
    )
    return TemplateResponse.from_template(template, service.describe(template))


@router.post(
    "/workflows/templates/{template_id}/publish",
    response_model=TemplateResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
    tags=["Templates"],
)
async def publish_template(template_id: str, request: Optional[TemplatePublish] = None):
    service = get_template_service()
    version = request.version if request else None
    template = await service.publish_template(template_id, version)
    return TemplateResponse.from_template(template, service.describe(template))


@router.post(
    "/workflows/templates/{template_id}/instantiate",
    response_model=InstanceDetailResponse,
    status_code=201,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Instances"],
)
async def instantiate_template(template_id: str, request: Optional[InstanceCreate] = None):
    """Start an instance of the published version of a template."""
    request = request or InstanceCreate()
    state = await get_instance_service().instantiate(
        template_id,
        case_id=request.case_id,
        context=request.context,
        created_by=request.created_by,
    )
    return state.to_dict()


# ============================================================================
# INSTANCES
# ============================================================================

@router.get("/workflows/instances", response_model=InstanceListResponse, tags=["Instances"])
async def list_instances(
    template_id: Optional[str] = None,
    case_id: Optional[str] = None,
    status: Optional[InstanceStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
):
    instances = await get_instance_service().list_instances(
        template_id=template_id, case_id=case_id, status=status, limit=limit
    )
    return InstanceListResponse(
        instances=[InstanceResponse(**i.model_dump()) for i in instances],
        total=len(instances),
    )


@router.get(
    "/workflows/instances/{instance_id}",
    response_model=InstanceDetailResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Instances"],
)
async def get_instance(instance_id: str):
    state = await get_instance_service().get_instance(instance_id)
    return state.to_dict()


@router.post(
    "/workflows/instances/{instance_id}/advance",
    response_model=InstanceDetailResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Instances"],
)
async def advance_instance(instance_id: str):
    """Run a scheduler pass, e.g. after the context was edited."""
    state = await get_instance_service().advance(instance_id)
    return state.to_dict()


@router.post(
    "/workflows/instances/{instance_id}/cancel",
    response_model=InstanceResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Instances"],
)
async def cancel_instance(instance_id: str):
    instance = await get_instance_service().cancel_instance(instance_id)
    return InstanceResponse(**instance.model_dump())


@router.get(
    "/workflows/instances/{instance_id}/dependencies",
    responses={404: {"model": ErrorResponse}},
    tags=["Instances"],
)
async def get_dependencies(instance_id: str):
    """Dependency status of every step, plus ready and blocked step ids."""
    return await get_instance_service().get_dependency_report(instance_id)


# ============================================================================
# CONTEXT
# ============================================================================

@router.get(
    "/workflows/instances/{instance_id}/context",
    response_model=ContextResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Context"],
)
async def get_context(instance_id: str):
    context = await get_context_service().get(instance_id)
    return ContextResponse(instance_id=instance_id, context=context)


@router.patch(
    "/workflows/instances/{instance_id}/context",
    response_model=ContextResponse,
    responses={404: {"model": ErrorResponse}},
    tags=["Context"],
)
async def patch_context(instance_id: str, request: ContextPatch):
    """
    Merge (`updates`), replace (`context`) or clear (`clear: true`).

    Does not run the scheduler; call .../advance afterwards if conditions
    depend on the changed keys.
    """
    service = get_context_service()
    if request.clear:
        context = await service.clear(instance_id)
    elif request.context is not None:
        context = await service.replace(instance_id, request.context)
    else:
        context = await service.merge(instance_id, request.updates)
    return ContextResponse(instance_id=instance_id, context=context)


# ============================================================================
# STEPS
# ============================================================================

@router.post(
    "/workflows/steps/{step_id}/start",
    response_model=InstanceDetailResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Steps"],
)
async def start_step(step_id: str, request: Optional[StepStart] = None):
    by = request.by if request else None
    state = await get_instance_service().start_step(step_id, by=by)
    return state.to_dict()


@router.post(
    "/workflows/steps/{step_id}/complete",
    response_model=InstanceDetailResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Steps"],
)
async def complete_step(step_id: str, request: Optional[StepComplete] = None):
    """Complete a step; `context_updates` are merged before the scheduler pass."""
    request = request or StepComplete()
    state = await get_instance_service().complete_step(
        step_id,
        by=request.by,
        payload=request.payload,
        context_updates=request.context_updates,
    )
    return state.to_dict()


@router.post(
    "/workflows/steps/{step_id}/skip",
    response_model=InstanceDetailResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    tags=["Steps"],
)
async def skip_step(step_id: str, request: Optional[StepSkip] = None):
    request = request or StepSkip()
    state = await get_instance_service().skip_step(step_id, by=request.by, note=request.note)
    return state.to_dict()
