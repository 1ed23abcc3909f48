# ============================================================================
# API SCHEMAS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - Request/Response schemas
# PURPOSE: Pydantic models for API validation
# CREATED: 12 OCT 2026
# ============================================================================
"""
API Schemas

Request and response models for the API.

Step definitions in requests are TemplateStep models directly, so the
condition_config union and depends_on shorthand behave exactly as they
do for stored templates.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, model_validator

from core.contracts import ActionState, ActionType, ConditionType, InstanceStatus, RoleScope
from core.models import TemplateStep, WorkflowTemplate


# ============================================================================
# REQUEST SCHEMAS
# ============================================================================

class TemplateCreate(BaseModel):
    """Request to create a new template (stored as draft v1)."""
    template_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=128)
    description: Optional[str] = None
    steps: List[TemplateStep] = Field(default_factory=list)
    created_by: Optional[str] = Field(None, max_length=128)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "template_id": "client_intake",
                    "name": "Client Intake",
                    "steps": [
                        {"order": 0, "title": "Collect documents"},
                        {"order": 1, "title": "Conflict check", "depends_on": [0]},
                        {
                            "order": 2,
                            "title": "Escalate to partner",
                            "depends_on": [1],
                            "condition_type": "IF_TRUE",
                            "condition_config": {
                                "type": "simple",
                                "field": "workflow.context.conflict_found",
                                "operator": "==",
                                "value": True,
                            },
                        },
                    ],
                }
            ]
        }
    }

    def to_template(self) -> WorkflowTemplate:
        return WorkflowTemplate(
            template_id=self.template_id,
            name=self.name,
            description=self.description,
            steps=self.steps,
            created_by=self.created_by,
        )


class TemplateUpdate(BaseModel):
    """Request to edit a template. Omitted fields are unchanged."""
    name: Optional[str] = Field(None, min_length=1, max_length=128)
    description: Optional[str] = None
    steps: Optional[List[TemplateStep]] = None


class TemplatePublish(BaseModel):
    version: Optional[int] = Field(None, ge=1, description="Version to publish; latest if omitted")


class ValidateStepsRequest(BaseModel):
    """Request to validate a step list without storing it."""
    steps: List[TemplateStep]


class ValidateConditionRequest(BaseModel):
    """Parse a condition and optionally evaluate it against a test context."""
    condition: Dict[str, Any]
    test_context: Optional[Dict[str, Any]] = None


class InstanceCreate(BaseModel):
    """Request to instantiate the published version of a template."""
    case_id: Optional[str] = Field(None, max_length=128)
    context: Dict[str, Any] = Field(default_factory=dict)
    created_by: Optional[str] = Field(None, max_length=128)


class StepStart(BaseModel):
    by: Optional[str] = Field(None, max_length=128)


class StepComplete(BaseModel):
    by: Optional[str] = Field(None, max_length=128)
    payload: Optional[Any] = None
    context_updates: Optional[Dict[str, Any]] = None


class StepSkip(BaseModel):
    by: Optional[str] = Field(None, max_length=128)
    note: Optional[str] = Field(None, max_length=2000)


class ContextPatch(BaseModel):
    """
    Exactly one of:
        {"clear": true}          - empty the context
        {"context": {...}}       - replace the context
        {"updates": {...}}       - merge into the context
    """
    updates: Optional[Dict[str, Any]] = None
    context: Optional[Dict[str, Any]] = None
    clear: bool = False

    @model_validator(mode="after")
    def exactly_one_mode(self):
        modes = [self.clear, self.context is not None, self.updates is not None]
        if sum(1 for m in modes if m) != 1:
            raise ValueError("Provide exactly one of 'updates', 'context' or 'clear: true'")
        return self


# ============================================================================
# RESPONSE SCHEMAS
# ============================================================================

class TemplateResponse(BaseModel):
    """Template details."""
    template_id: str
    name: str
    description: Optional[str]
    version: int
    is_active: bool
    steps: List[TemplateStep]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    published_at: Optional[datetime]
    dependency_summary: Optional[str] = None

    @classmethod
    def from_template(cls, template: WorkflowTemplate, summary: Optional[str] = None) -> "TemplateResponse":
        return cls(**template.model_dump(), dependency_summary=summary)


class TemplateListResponse(BaseModel):
    templates: List[TemplateResponse]
    total: int


class ValidationIssueResponse(BaseModel):
    field: str
    message: str
    step_order: Optional[int] = None


class ValidationResponse(BaseModel):
    valid: bool
    issues: List[ValidationIssueResponse] = Field(default_factory=list)
    dependency_summary: Optional[str] = None


class ConditionValidationResponse(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    evaluation: Optional[Dict[str, Any]] = None


class ActionHandlerResponse(BaseModel):
    """Schemas of one action type's handler."""
    action_type: str
    handler: str
    config_schema: Dict[str, Any]
    completion_schema: Optional[Dict[str, Any]] = None
    payload_required: bool = False


class StepResponse(BaseModel):
    """Instance step details."""
    step_id: str
    instance_id: str
    template_order: int
    title: str
    description: Optional[str]
    action_type: ActionType
    role_scope: RoleScope
    required: bool
    action_state: ActionState
    depends_on: List[str]
    dependency_logic: str
    condition_type: ConditionType
    condition_config: Optional[Dict[str, Any]]
    assigned_to: Optional[str]
    notes: Optional[str]
    action_data: Dict[str, Any]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    updated_at: datetime
    version: int


class InstanceResponse(BaseModel):
    """Instance summary."""
    instance_id: str
    template_id: str
    template_version: int
    case_id: Optional[str]
    status: InstanceStatus
    context: Dict[str, Any]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime
    completed_at: Optional[datetime]


class InstanceDetailResponse(BaseModel):
    """Instance with steps and, after an action, the scheduler pass summary."""
    instance: InstanceResponse
    steps: List[StepResponse]
    scheduling: Optional[Dict[str, Any]] = None


class InstanceListResponse(BaseModel):
    instances: List[InstanceResponse]
    total: int


class ContextResponse(BaseModel):
    instance_id: str
    context: Dict[str, Any]


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    code: Optional[str] = None
    issues: Optional[List[ValidationIssueResponse]] = None
