"""
Normalization and validation of workflow step lists and input fields.
"""

from __future__ import annotations

from typing import List, Sequence

from workpilot.config import MAX_STEPS, MIN_COMPILED_STEPS
from workpilot.ir.inputs import (
    dedupe_inputs,
    ensure_minimum_inputs,
    input_template_lines,
    normalize_key,
)
from workpilot.ir.spec_schema import InputField, WorkflowCompileSpec, WorkflowStep

DEFAULT_PROMPT_TEMPLATE = "Write the result based on the provided input values."


class SpecValidationError(ValueError):
    """Raised when a workflow step list fails semantic validation."""


def _input_prompt_template(inputs: Sequence[InputField]) -> str:
    return (
        "Write the result based on the following input values.\n"
        + input_template_lines(inputs)
    )


def _sorted_and_capped(steps: Sequence[WorkflowStep]) -> List[WorkflowStep]:
    # sorted() is stable, so equal orders keep their submitted position.
    ordered = sorted(steps, key=lambda step: step.order)[:MAX_STEPS]
    return [
        step.model_copy(
            update={"order": index, "id": step.id.strip() or f"step_{index}"}
        )
        for index, step in enumerate(ordered, start=1)
    ]


def _demote_extra_generation_steps(
    steps: List[WorkflowStep], default_template: str
) -> List[WorkflowStep]:
    seen = 0
    result: List[WorkflowStep] = []
    for step in steps:
        if step.tool != "llm":
            result.append(step)
            continue
        seen += 1
        if seen == 1:
            if not step.prompt_template:
                step = step.model_copy(update={"prompt_template": default_template})
            result.append(step)
        else:
            result.append(
                step.model_copy(update={"tool": "simulated", "prompt_template": None})
            )
    return result


def normalize_steps(steps: Sequence[WorkflowStep]) -> List[WorkflowStep]:
    """
    Enforce the step-list invariants on an edited step list.

    Sorts by order, keeps the first six, renumbers from 1, guarantees an
    approval checkpoint and exactly one generation step. Returns new step
    objects; the input list is left untouched.
    """

    if not steps:
        raise SpecValidationError("Workflow must include at least one step.")

    normalized = _sorted_and_capped(steps)

    if not any(step.requires_approval for step in normalized):
        index = max(0, len(normalized) - 2)
        normalized[index] = normalized[index].model_copy(
            update={"requires_approval": True, "type": "condition"}
        )

    if not any(step.tool == "llm" for step in normalized):
        last = normalized[-1]
        normalized[-1] = last.model_copy(
            update={
                "tool": "llm",
                "type": "output",
                "prompt_template": last.prompt_template or DEFAULT_PROMPT_TEMPLATE,
            }
        )

    return _demote_extra_generation_steps(normalized, DEFAULT_PROMPT_TEMPLATE)


def normalize_inputs(inputs: Sequence[InputField]) -> List[InputField]:
    return ensure_minimum_inputs(dedupe_inputs(inputs))


def enforce_compile_constraints(
    spec: WorkflowCompileSpec, fallback_inputs: Sequence[InputField]
) -> WorkflowCompileSpec:
    """Bring a compiled spec (usually backend output) into the 4-6 step shape."""

    candidate_inputs = [
        field.model_copy(update={"key": normalize_key(field.key)}) for field in spec.inputs
    ]
    inputs = normalize_inputs(candidate_inputs or list(fallback_inputs))
    prompt_template = _input_prompt_template(inputs)

    steps = _sorted_and_capped(spec.steps)
    while len(steps) < MIN_COMPILED_STEPS:
        order = len(steps) + 1
        steps.append(
            WorkflowStep(
                id=f"step_{order}",
                order=order,
                type="action",
                title=f"Additional step {order}",
                description="Supplementary step added to complete the workflow.",
                tool="simulated",
                requires_approval=False,
            )
        )

    if not any(step.tool == "llm" for step in steps):
        last = steps[-1]
        steps[-1] = last.model_copy(
            update={
                "type": "output",
                "tool": "llm",
                "title": "Generate final result",
                "prompt_template": last.prompt_template or prompt_template,
            }
        )
    steps = _demote_extra_generation_steps(steps, prompt_template)

    if not any(step.requires_approval for step in steps):
        index = max(0, len(steps) - 2)
        steps[index] = steps[index].model_copy(
            update={
                "requires_approval": True,
                "type": "condition",
                "title": "Approve result",
                "description": "Approve before the final result is generated.",
            }
        )

    return WorkflowCompileSpec(one_liner=spec.one_liner, inputs=inputs, steps=steps)


def check_step_invariants(steps: Sequence[WorkflowStep]) -> None:
    if not 1 <= len(steps) <= MAX_STEPS:
        raise SpecValidationError(
            f"Workflow must have between 1 and {MAX_STEPS} steps, got {len(steps)}."
        )
    orders = [step.order for step in steps]
    if orders != list(range(1, len(steps) + 1)):
        raise SpecValidationError(f"Step orders must be contiguous from 1: {orders}")
    generation = [step for step in steps if step.tool == "llm"]
    if len(generation) != 1:
        raise SpecValidationError(
            f"Workflow must have exactly one llm step, got {len(generation)}."
        )
    if not generation[0].prompt_template:
        raise SpecValidationError(f"Step '{generation[0].id}' is missing a prompt template.")
    if not any(step.requires_approval for step in steps):
        raise SpecValidationError("Workflow must include at least one approval checkpoint.")
