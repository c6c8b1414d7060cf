"""
Editor-path updates for persisted pilots.

Every structural edit produces a new pilot with ``version`` bumped by one;
``id``, ``credits`` and ``created_at`` are never touched here.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import Field

from workpilot.ir.spec_schema import InputField, Pilot, StrictModel, WorkflowStep
from workpilot.ir.validators import normalize_inputs, normalize_steps


class PilotPatch(StrictModel):
    one_liner: Optional[str] = Field(default=None, min_length=1)
    inputs: Optional[List[InputField]] = None
    steps: Optional[List[WorkflowStep]] = Field(default=None, min_length=1)


def bump_version(pilot: Pilot) -> int:
    return pilot.version + 1


def apply_pilot_patch(pilot: Pilot, patch: PilotPatch) -> Pilot:
    update = {
        "one_liner": patch.one_liner if patch.one_liner is not None else pilot.one_liner,
        "inputs": normalize_inputs(patch.inputs) if patch.inputs is not None else pilot.inputs,
        "steps": normalize_steps(patch.steps) if patch.steps is not None else pilot.steps,
        "version": bump_version(pilot),
    }
    return pilot.model_copy(update=update, deep=True)
