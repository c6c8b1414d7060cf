"""
Typed data model for WorkPilot pilots, workflow steps and run logs.
"""

from __future__ import annotations

import json
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

RecordMode = Literal["capture", "describe", "prompt"]
StepType = Literal["trigger", "action", "condition", "output"]
StepTool = Literal["simulated", "llm"]
RunStatus = Literal["success", "error"]

RECORD_MODES = ("capture", "describe", "prompt")


class StrictModel(BaseModel):
    """Base model that rejects undeclared fields."""

    model_config = ConfigDict(extra="forbid")


class InputField(StrictModel):
    key: str = Field(min_length=1)
    label: str = Field(min_length=1)
    required: bool = True
    placeholder: Optional[str] = None


class WorkflowStep(StrictModel):
    id: str = ""
    order: int = Field(ge=1)
    type: StepType
    title: str = Field(min_length=1)
    description: str = Field(min_length=1)
    tool: StepTool = "simulated"
    requires_approval: bool = False
    prompt_template: Optional[str] = None


class RecordPayload(StrictModel):
    task_description: Optional[str] = None
    prompt: Optional[str] = None
    inputs_csv: Optional[str] = None
    example_input: Optional[str] = None
    example_output: Optional[str] = None
    capture_data_url: Optional[str] = None
    capture_note: Optional[str] = None


class WorkflowCompileSpec(StrictModel):
    one_liner: str = Field(min_length=1)
    inputs: List[InputField] = Field(default_factory=list)
    steps: List[WorkflowStep] = Field(default_factory=list)

    def generation_step(self) -> Optional[WorkflowStep]:
        return next((step for step in self.steps if step.tool == "llm"), None)


class Pilot(StrictModel):
    id: str
    name: str
    one_liner: str
    record_mode: RecordMode
    record: RecordPayload = Field(default_factory=RecordPayload)
    inputs: List[InputField] = Field(default_factory=list)
    steps: List[WorkflowStep] = Field(default_factory=list)
    credits: int = Field(default=50, ge=0)
    version: int = Field(default=1, ge=1)
    created_at: str

    def generation_step(self) -> Optional[WorkflowStep]:
        return next((step for step in self.steps if step.tool == "llm"), None)

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.model_dump(), indent=indent, sort_keys=True)


class RunLog(StrictModel):
    id: str
    pilot_id: str
    created_at: str
    input_values: Dict[str, str] = Field(default_factory=dict)
    output_preview: str = ""
    total_tokens: Optional[int] = None
    status: RunStatus
