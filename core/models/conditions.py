# ============================================================================
# CONDITION CONFIGURATION MODELS
# ============================================================================
# EPOCH: 1 - CASE WORKFLOW ENGINE
# STATUS: Core model - Step activation conditions
# PURPOSE: Tagged condition variants attached to template and instance steps
# LAST_REVIEWED: 12 OCT 2026
# EXPORTS: SimpleCondition, CompoundCondition, AlwaysCondition,
#          SwitchCondition, ConditionConfig, InvalidCondition,
#          StoredConditionConfig, parse_condition_config
# DEPENDENCIES: pydantic
# ============================================================================
"""
Condition Configuration Models

A step's condition_config is one of four variants, tagged on `type`:

    {"type": "simple", "field": "workflow.context.approved",
     "operator": "==", "value": true}

    {"type": "compound", "logic": "AND", "conditions": [<cond>, <cond>]}

    {"type": "always"}

    {"type": "switch", "field": "tier", "cases": {...}, "default_step": 3}

Authors often omit `type`. An untagged mapping is tagged by shape:
`logic`/`conditions` means compound, `field` + `operator` means simple,
`cases` means switch.

Switch conditions are stored and returned unchanged; the engine does not
evaluate them yet.
"""

from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    TypeAdapter,
    ValidationError,
    model_validator,
)

from core.contracts import CompoundLogic, ConditionOperator
from core.errors import ConditionValidationError


class SimpleCondition(BaseModel):
    """Compare the value found at `field` with `value` using `operator`."""
    type: Literal["simple"] = "simple"
    field: str = Field(..., min_length=1, description="Dotted path into the evaluation namespace")
    operator: ConditionOperator
    value: Any = None

    @model_validator(mode="after")
    def check_value_present(self) -> "SimpleCondition":
        # Explicit null is a value; an absent key is not
        if self.operator.requires_value() and "value" not in self.model_fields_set:
            raise ValueError(f'Operator "{self.operator.value}" requires a value')
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, list):
                raise ValueError(f'Operator "{self.operator.value}" requires a list value')
        return self


class CompoundCondition(BaseModel):
    """Combine two or more conditions with AND / OR."""
    type: Literal["compound"] = "compound"
    logic: CompoundLogic
    conditions: List["ConditionConfig"] = Field(..., min_length=2)


class AlwaysCondition(BaseModel):
    type: Literal["always"] = "always"


class SwitchCondition(BaseModel):
    """
    Multi-branch dispatch on a field value.

    Reserved: accepted and persisted, but evaluating it raises.
    Unknown keys are preserved so the payload round-trips unchanged.
    """
    model_config = ConfigDict(extra="allow")

    type: Literal["switch"] = "switch"
    field: str = Field(..., min_length=1)
    cases: Dict[str, Any] = Field(default_factory=dict)
    default_step: Optional[Any] = None


def _condition_tag(value: Any) -> Optional[str]:
    """Resolve the variant tag, inferring it from shape when absent."""
    if isinstance(value, dict):
        tag = value.get("type")
        if isinstance(tag, str):
            return tag
        if "logic" in value or "conditions" in value:
            return "compound"
        if "field" in value and "operator" in value:
            return "simple"
        if "cases" in value:
            return "switch"
        return None
    return getattr(value, "type", None)


ConditionConfig = Annotated[
    Union[
        Annotated[SimpleCondition, Tag("simple")],
        Annotated[CompoundCondition, Tag("compound")],
        Annotated[AlwaysCondition, Tag("always")],
        Annotated[SwitchCondition, Tag("switch")],
    ],
    Discriminator(
        _condition_tag,
        custom_error_type="invalid_condition",
        custom_error_message="Condition must be a simple, compound, always or switch condition",
    ),
]

CompoundCondition.model_rebuild()


class InvalidCondition(BaseModel):
    """
    A stored condition that no longer validates.

    Only produced when instance steps are loaded from storage. The raw
    payload is kept so it is written back unchanged; evaluating it raises.
    """
    type: Literal["invalid"] = "invalid"
    raw: Any = None
    error: str


# One corrupt row must not stop the rest of an instance from loading
StoredConditionConfig = Annotated[
    Union[ConditionConfig, InvalidCondition],
    Field(union_mode="left_to_right"),
]

_condition_adapter: TypeAdapter = TypeAdapter(ConditionConfig)


def _format_errors(exc: ValidationError) -> List[str]:
    messages = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        message = error.get("msg", "invalid")
        messages.append(f"{location}: {message}" if location else message)
    return messages


def condition_config_errors(raw: Any) -> List[str]:
    """
    Validate a raw condition mapping.

    Returns list of error messages (empty if valid).
    """
    try:
        _condition_adapter.validate_python(raw)
    except ValidationError as e:
        return _format_errors(e)
    return []


def parse_condition_config(raw: Any) -> ConditionConfig:
    """
    Parse a raw condition mapping into its tagged variant.

    Raises:
        ConditionValidationError: If the mapping is not a valid condition
    """
    if isinstance(raw, (SimpleCondition, CompoundCondition, AlwaysCondition, SwitchCondition)):
        return raw
    try:
        return _condition_adapter.validate_python(raw)
    except ValidationError as e:
        raise ConditionValidationError(
            "Invalid condition: " + "; ".join(_format_errors(e))
        ) from e


__all__ = [
    "SimpleCondition",
    "CompoundCondition",
    "AlwaysCondition",
    "SwitchCondition",
    "ConditionConfig",
    "InvalidCondition",
    "StoredConditionConfig",
    "condition_config_errors",
    "parse_condition_config",
]
