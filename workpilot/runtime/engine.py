"""
Run engine: renders a pilot's prompt template and produces the run output.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel

from workpilot.backend.generation import GenerationBackend
from workpilot.ir.inputs import input_template_lines
from workpilot.ir.spec_schema import Pilot

LOGGER = logging.getLogger(__name__)

RunMode = Literal["generated", "fallback"]

PLACEHOLDER_PATTERN = re.compile(r"{{\s*([A-Za-z0-9_]+)\s*}}")
EMPTY_VALUE_LABEL = "(empty)"

SUGGESTED_NEXT_STEPS = [
    "1. Summarize the key issues in three lines.",
    "2. List the next actionable items in priority order.",
    "3. Draft a message template for sharing the result.",
]


class RunResult(BaseModel):
    output: str
    total_tokens: Optional[int] = None
    mode: RunMode


def apply_variables(template: str, values: Mapping[str, str]) -> str:
    return PLACEHOLDER_PATTERN.sub(lambda match: values.get(match.group(1)) or "", template)


def build_prompt_template(pilot: Pilot) -> str:
    step = pilot.generation_step()
    if step is not None and step.prompt_template:
        return step.prompt_template
    return "Write the result using the input below.\n" + input_template_lines(pilot.inputs)


def build_fallback_output(pilot: Pilot, values: Mapping[str, str]) -> str:
    lines: List[str] = []
    seen = set()
    for field in pilot.inputs:
        seen.add(field.key)
        lines.append(f"- **{field.key}**: {values.get(field.key) or EMPTY_VALUE_LABEL}")
    for key, value in values.items():
        if key not in seen:
            lines.append(f"- **{key}**: {value or EMPTY_VALUE_LABEL}")

    return "\n".join(
        [
            f"# {pilot.name} run result",
            "",
            "## Summary",
            pilot.one_liner,
            "",
            "## Inputs",
            *(lines or ["- No input values were provided."]),
            "",
            "## Suggested next steps",
            *SUGGESTED_NEXT_STEPS,
        ]
    )


class RunEngine:
    def __init__(self, backend: GenerationBackend) -> None:
        self.backend = backend

    def run(self, pilot: Pilot, values: Dict[str, str]) -> RunResult:
        prompt = apply_variables(build_prompt_template(pilot), values)

        if self.backend.is_configured():
            outcome = self.backend.generate(prompt)
            if outcome.ok:
                return RunResult(
                    output=outcome.text,
                    total_tokens=outcome.total_tokens,
                    mode="generated",
                )
            LOGGER.warning("RunEngine fallback to templated report: %s", outcome.error)

        return RunResult(output=build_fallback_output(pilot, values), mode="fallback")
