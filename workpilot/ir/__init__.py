from workpilot.ir.inputs import (
    DEFAULT_INPUT_FIELD,
    ensure_minimum_inputs,
    normalize_key,
    parse_input_fields,
)
from workpilot.ir.spec_schema import (
    InputField,
    Pilot,
    RecordPayload,
    RunLog,
    WorkflowCompileSpec,
    WorkflowStep,
)
from workpilot.ir.validators import (
    SpecValidationError,
    check_step_invariants,
    enforce_compile_constraints,
    normalize_inputs,
    normalize_steps,
)
from workpilot.ir.versioning import PilotPatch, apply_pilot_patch

__all__ = [
    "DEFAULT_INPUT_FIELD",
    "InputField",
    "Pilot",
    "PilotPatch",
    "RecordPayload",
    "RunLog",
    "SpecValidationError",
    "WorkflowCompileSpec",
    "WorkflowStep",
    "apply_pilot_patch",
    "check_step_invariants",
    "enforce_compile_constraints",
    "ensure_minimum_inputs",
    "normalize_inputs",
    "normalize_key",
    "normalize_steps",
    "parse_input_fields",
]
