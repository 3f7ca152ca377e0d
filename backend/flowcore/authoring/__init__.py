"""Authoring: definition model, validation and the runtime compiler."""

from .compiler import compile_definition, compile_to_payload, create_runtime_step_id
from .models import (
    Action,
    AdvancementCondition,
    BranchCondition,
    BranchStep,
    RuntimeStep,
    StandardStep,
    StatusDefinition,
    Track,
    Trigger,
    WorkflowDefinition,
    parse_definition,
)
from .validator import validate_definition

__all__ = [
    "Action",
    "AdvancementCondition",
    "BranchCondition",
    "BranchStep",
    "RuntimeStep",
    "StandardStep",
    "StatusDefinition",
    "Track",
    "Trigger",
    "WorkflowDefinition",
    "compile_definition",
    "compile_to_payload",
    "create_runtime_step_id",
    "parse_definition",
    "validate_definition",
]
