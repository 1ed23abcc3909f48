# ============================================================================
# ACTION HANDLERS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core - One handler per action type
# PURPOSE: Config/completion schemas and the data each action records
# CREATED: 12 OCT 2026
# ============================================================================
"""
Action Handlers

Registered on import. Keys written to action_data and to the instance
context are snake_case, so conditions can address them as
`workflow.context.<key>`.

Type                    Payload             Records
APPROVAL_LAWYER         approved, comment   decision
SIGNATURE_CLIENT        document_id         session_id, completed_at
REQUEST_DOC_CLIENT      document_id         uploaded_document_id, status
PAYMENT_CLIENT          paid_at             intent_id, paid_at
CHECKLIST               completed_items     completed_items
WRITE_TEXT              content, format     content, submitted_at
POPULATE_QUESTIONNAIRE  response_id         response_id, completed_at
TASK                    notes, evidence     completed_by, completed_at
"""

import logging
import uuid
from typing import Annotated, List, Literal, Optional

from pydantic import BaseModel, Field, PositiveInt

from core.contracts import ActionType
from core.errors import ActionHandlerError
from handlers.registry import ActionContext, ActionHandler, register_action_handler

logger = logging.getLogger(__name__)


# ============================================================================
# APPROVAL
# ============================================================================

class ApprovalConfig(BaseModel):
    approver_role: Optional[Literal["LAWYER", "ADMIN"]] = None
    message: Optional[str] = Field(default=None, max_length=2000)


class ApprovalPayload(BaseModel):
    approved: bool
    comment: Optional[str] = Field(default=None, max_length=2000)


@register_action_handler
class ApprovalHandler(ActionHandler):
    """A lawyer approves or rejects. The decision is kept on the step."""

    action_type = ActionType.APPROVAL_LAWYER
    config_model = ApprovalConfig
    completion_model = ApprovalPayload
    payload_required = True

    def complete(self, ctx: ActionContext, payload: ApprovalPayload) -> None:
        ctx.data["decision"] = {
            "approved": payload.approved,
            "comment": payload.comment,
            "decided_at": ctx.timestamp,
            "decided_by": ctx.by,
        }
        logger.info(f"Step {ctx.step.step_id} approval decision: approved={payload.approved}")


# ============================================================================
# CLIENT ACTIONS
# ============================================================================

class SignatureConfig(BaseModel):
    document_id: Optional[str] = Field(default=None, min_length=1)
    provider: Literal["mock", "stripe", "docusign"] = "mock"


class SignaturePayload(BaseModel):
    document_id: Optional[str] = Field(default=None, min_length=1)


@register_action_handler
class SignatureHandler(ActionHandler):
    """
    Client signs a document.

    The document may be fixed in the template config or chosen when the
    signature is completed; one of the two is required.
    """

    action_type = ActionType.SIGNATURE_CLIENT
    config_model = SignatureConfig
    completion_model = SignaturePayload

    def start(self, ctx: ActionContext) -> None:
        ctx.data.setdefault("session_id", f"sig_{uuid.uuid4()}")
        ctx.data["provider"] = ctx.config.provider

    def complete(self, ctx: ActionContext, payload: Optional[SignaturePayload]) -> None:
        document_id = (payload.document_id if payload else None) or ctx.config.document_id
        if not document_id:
            raise ActionHandlerError(
                "A document must be selected before completing the signature.",
                code="MISSING_DOCUMENT",
            )
        ctx.data["document_id"] = document_id
        ctx.data["completed_at"] = ctx.timestamp
        ctx.update_context(
            signature_completed=True,
            signed_by=ctx.by,
            signed_at=ctx.timestamp,
            document_id=document_id,
        )


class RequestDocConfig(BaseModel):
    request_text: str = Field(..., min_length=1)
    accepted_file_types: Optional[List[str]] = None


class RequestDocPayload(BaseModel):
    document_id: Optional[str] = Field(default=None, min_length=1)


@register_action_handler
class RequestDocHandler(ActionHandler):
    action_type = ActionType.REQUEST_DOC_CLIENT
    config_model = RequestDocConfig
    completion_model = RequestDocPayload

    def start(self, ctx: ActionContext) -> None:
        ctx.data["status"] = "OPEN"

    def complete(self, ctx: ActionContext, payload: Optional[RequestDocPayload]) -> None:
        document_id = payload.document_id if payload else None
        if document_id:
            ctx.data["uploaded_document_id"] = document_id
        ctx.data["status"] = "FULFILLED"

        count = ctx.instance_context.get("document_count")
        if document_id:
            count = (count or 0) + 1
        updates = {
            "documents_requested": True,
            "document_uploaded_id": document_id,
            "uploaded_by": ctx.by,
            "uploaded_at": ctx.timestamp,
            "document_count": count,
        }
        ctx.update_context(**{k: v for k, v in updates.items() if v is not None})


class PaymentConfig(BaseModel):
    amount: float = Field(..., ge=0)
    currency: str = Field(..., min_length=3, max_length=10)
    provider: Literal["mock", "stripe"] = "mock"


class PaymentPayload(BaseModel):
    paid_at: Optional[str] = None


@register_action_handler
class PaymentHandler(ActionHandler):
    action_type = ActionType.PAYMENT_CLIENT
    config_model = PaymentConfig
    completion_model = PaymentPayload

    def start(self, ctx: ActionContext) -> None:
        ctx.data.setdefault("intent_id", f"pay_{uuid.uuid4()}")
        ctx.data["provider"] = ctx.config.provider

    def complete(self, ctx: ActionContext, payload: Optional[PaymentPayload]) -> None:
        ctx.data["paid_at"] = (payload.paid_at if payload else None) or ctx.data.get("paid_at") or ctx.timestamp


# ============================================================================
# INTERNAL WORK
# ============================================================================

class ChecklistConfig(BaseModel):
    items: List[Annotated[str, Field(min_length=1)]] = Field(default_factory=list)


class ChecklistPayload(BaseModel):
    completed_items: Optional[List[str]] = None


@register_action_handler
class ChecklistHandler(ActionHandler):
    """Completing without a payload ticks every configured item."""

    action_type = ActionType.CHECKLIST
    config_model = ChecklistConfig
    completion_model = ChecklistPayload

    def complete(self, ctx: ActionContext, payload: Optional[ChecklistPayload]) -> None:
        if payload is not None and payload.completed_items is not None:
            ctx.data["completed_items"] = payload.completed_items
        else:
            ctx.data["completed_items"] = list(ctx.config.items)


class WriteTextConfig(BaseModel):
    title: str = Field(..., min_length=1)
    description: str = ""
    placeholder: str = "Enter your text here..."
    min_length: int = Field(default=0, ge=0)
    max_length: Optional[int] = Field(default=None, ge=1)
    required: bool = True


class WriteTextPayload(BaseModel):
    content: str = Field(..., min_length=1)
    format: Literal["plain", "html"] = "plain"


@register_action_handler
class WriteTextHandler(ActionHandler):
    """
    The assignee writes text for the step.

    The text is published to the instance context as
    `text_<step_id>` (full record) and `text_<step_id>_content`.
    """

    action_type = ActionType.WRITE_TEXT
    config_model = WriteTextConfig
    completion_model = WriteTextPayload
    payload_required = True

    def check_config(self, config: WriteTextConfig) -> None:
        if config.max_length and config.min_length and config.max_length < config.min_length:
            raise ActionHandlerError(
                f"Invalid {self.action_type.value} config",
                code="INVALID_CONFIG",
                errors=[{
                    "loc": ("max_length",),
                    "msg": "max_length must be greater than or equal to min_length",
                }],
            )

    def complete(self, ctx: ActionContext, payload: WriteTextPayload) -> None:
        length = len(payload.content)
        config: WriteTextConfig = ctx.config
        if config.min_length and length < config.min_length:
            raise ActionHandlerError(
                f"Text must be at least {config.min_length} characters (current: {length})",
                code="VALIDATION_ERROR",
            )
        if config.max_length and length > config.max_length:
            raise ActionHandlerError(
                f"Text must not exceed {config.max_length} characters (current: {length})",
                code="VALIDATION_ERROR",
            )

        ctx.data.update({
            "content": payload.content,
            "format": payload.format,
            "submitted_at": ctx.timestamp,
            "submitted_by": ctx.by,
        })
        key = f"text_{ctx.step.step_id}"
        ctx.update_context(**{
            key: {
                "title": config.title,
                "content": payload.content,
                "format": payload.format,
                "length": length,
                "submitted_at": ctx.timestamp,
                "submitted_by": ctx.by,
            },
            f"{key}_content": payload.content,
        })


class QuestionnaireConfig(BaseModel):
    questionnaire_id: str = Field(..., min_length=1)
    title: str = Field(..., min_length=1)
    description: str = ""
    due_in_days: Optional[int] = Field(default=None, ge=0)


class QuestionnairePayload(BaseModel):
    response_id: str = Field(..., min_length=1)


@register_action_handler
class QuestionnaireHandler(ActionHandler):
    action_type = ActionType.POPULATE_QUESTIONNAIRE
    config_model = QuestionnaireConfig
    completion_model = QuestionnairePayload
    payload_required = True

    def start(self, ctx: ActionContext) -> None:
        ctx.data["questionnaire_id"] = ctx.config.questionnaire_id
        ctx.data["started_at"] = ctx.timestamp

    def complete(self, ctx: ActionContext, payload: QuestionnairePayload) -> None:
        ctx.data.update({
            "response_id": payload.response_id,
            "questionnaire_id": ctx.config.questionnaire_id,
            "questionnaire_title": ctx.config.title,
            "completed_at": ctx.timestamp,
            "completed_by": ctx.by,
        })
        ctx.update_context(**{f"questionnaire_{ctx.step.step_id}_response_id": payload.response_id})


class TaskConfig(BaseModel):
    description: Optional[str] = None
    requires_evidence: bool = False
    estimated_minutes: Optional[PositiveInt] = None


class TaskPayload(BaseModel):
    notes: Optional[str] = None
    evidence: Optional[List[str]] = None


@register_action_handler
class TaskHandler(ActionHandler):
    """
    Plain to-do. Completion details stay on the step; a template usually
    has several tasks, so nothing is written to the shared context.
    """

    action_type = ActionType.TASK
    config_model = TaskConfig
    completion_model = TaskPayload

    def complete(self, ctx: ActionContext, payload: Optional[TaskPayload]) -> None:
        notes = payload.notes if payload else None
        evidence = payload.evidence if payload else None
        if ctx.config.requires_evidence and not evidence:
            raise ActionHandlerError(
                "This task requires evidence (documents) to be provided",
                code="EVIDENCE_REQUIRED",
            )
        ctx.data["completed_by"] = ctx.by
        ctx.data["completed_at"] = ctx.timestamp
        if notes:
            ctx.data["notes"] = notes
        if evidence:
            ctx.data["evidence"] = evidence


__all__ = [
    "ApprovalHandler",
    "SignatureHandler",
    "RequestDocHandler",
    "PaymentHandler",
    "ChecklistHandler",
    "WriteTextHandler",
    "QuestionnaireHandler",
    "TaskHandler",
]
