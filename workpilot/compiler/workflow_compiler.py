"""
Task description to workflow specification compiler.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from typing import List, Literal, Optional

from pydantic import BaseModel

from workpilot.backend.generation import CompileRequest, GenerationBackend
from workpilot.ir.inputs import ensure_minimum_inputs, input_template_lines, parse_input_fields
from workpilot.ir.spec_schema import (
    InputField,
    RecordMode,
    RecordPayload,
    WorkflowCompileSpec,
    WorkflowStep,
)
from workpilot.ir.validators import (
    SpecValidationError,
    check_step_invariants,
    enforce_compile_constraints,
)

LOGGER = logging.getLogger(__name__)

CompileMode = Literal["generated", "fallback"]

DEFAULT_ONE_LINER = "Turns a repetitive task into a workflow you can run on demand."

_MODE_CONTEXT = {
    "capture": "captured screen",
    "describe": "task description",
    "prompt": "prompt definition",
}


class CompileResult(BaseModel):
    spec: WorkflowCompileSpec
    mode: CompileMode


def slugify(value: str) -> str:
    normalized = re.sub(r"[^a-z0-9\s_-]", "", value.lower()).strip()
    normalized = re.sub(r"[\s-]+", "_", normalized)
    return normalized or "workflow"


def build_default_name(candidate: Optional[str] = None) -> str:
    if candidate and candidate.strip():
        return candidate.strip()
    return f"WorkPilot-{slugify(datetime.now(timezone.utc).isoformat())}"


def fallback_one_liner(name: str, record: RecordPayload) -> str:
    for source in (record.capture_note, record.task_description, record.prompt, name):
        if source and source.strip():
            return source.strip()[:80]
    return DEFAULT_ONE_LINER


def build_fallback_steps(inputs: List[InputField], mode: RecordMode) -> List[WorkflowStep]:
    prompt_template = "\n".join(
        [
            "You are the WorkPilot execution engine.",
            "Write the result in markdown based on the input below.",
            input_template_lines(inputs),
        ]
    )
    return [
        WorkflowStep(
            id="step_1",
            order=1,
            type="trigger",
            title="Collect request",
            description="Collect the values submitted through the input form.",
        ),
        WorkflowStep(
            id="step_2",
            order=2,
            type="action",
            title="Organize context",
            description=f"Organize the context from the {_MODE_CONTEXT[mode]}.",
        ),
        WorkflowStep(
            id="step_3",
            order=3,
            type="action",
            title="Prepare draft",
            description="Prepare the key points before the final generation.",
        ),
        WorkflowStep(
            id="step_4",
            order=4,
            type="condition",
            title="Approval checkpoint",
            description="Proceed to the final generation after the user approves.",
            requires_approval=True,
        ),
        WorkflowStep(
            id="step_5",
            order=5,
            type="output",
            title="Generate final result",
            description="Generate the final result from the input values.",
            tool="llm",
            prompt_template=prompt_template,
        ),
    ]


class WorkflowCompiler:
    def __init__(self, backend: GenerationBackend, output_language: str = "English") -> None:
        self.backend = backend
        self.output_language = output_language

    def compile(
        self,
        *,
        name: str,
        record_mode: RecordMode,
        record: RecordPayload,
    ) -> CompileResult:
        csv_inputs = ensure_minimum_inputs(parse_input_fields(record.inputs_csv))

        if self.backend.is_configured():
            outcome = self.backend.compile(self._build_request(name, record_mode, record))
            if outcome.ok and outcome.spec is not None:
                spec = enforce_compile_constraints(outcome.spec, csv_inputs)
                try:
                    check_step_invariants(spec.steps)
                except SpecValidationError as exc:
                    LOGGER.warning("WorkflowCompiler fallback to template spec: %s", exc)
                else:
                    return CompileResult(spec=spec, mode="generated")
            else:
                LOGGER.warning("WorkflowCompiler fallback to template spec: %s", outcome.error)

        fallback = WorkflowCompileSpec(
            one_liner=fallback_one_liner(name, record),
            inputs=csv_inputs,
            steps=build_fallback_steps(csv_inputs, record_mode),
        )
        spec = enforce_compile_constraints(fallback, csv_inputs)
        check_step_invariants(spec.steps)
        return CompileResult(spec=spec, mode="fallback")

    def _build_request(
        self, name: str, record_mode: RecordMode, record: RecordPayload
    ) -> CompileRequest:
        image = record.capture_data_url if record_mode == "capture" else None
        return CompileRequest(
            name=name,
            record_mode=record_mode,
            record=record,
            image_data_url=image or None,
            output_language=self.output_language,
        )
