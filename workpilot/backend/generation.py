"""
Generation backend port and its LangChain implementation.

Backend failures are returned as outcomes with ``ok=False``; callers branch on
the outcome instead of catching exceptions.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from pydantic import BaseModel, ValidationError

from workpilot.backend.langchain_tool_calling import (
    extract_schema_payload,
    invoke_with_schema,
    response_text,
    response_total_tokens,
)
from workpilot.config import MAX_STEPS, MIN_COMPILED_STEPS
from workpilot.ir.spec_schema import RecordMode, RecordPayload, WorkflowCompileSpec

LOGGER = logging.getLogger(__name__)

EMPTY_GENERATION_TEXT = "The backend could not generate a result."


class CompileRequest(BaseModel):
    name: str
    record_mode: RecordMode
    record: RecordPayload
    image_data_url: Optional[str] = None
    output_language: str = "English"


class CompileOutcome(BaseModel):
    ok: bool
    spec: Optional[WorkflowCompileSpec] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, spec: WorkflowCompileSpec) -> "CompileOutcome":
        return cls(ok=True, spec=spec)

    @classmethod
    def failure(cls, error: str) -> "CompileOutcome":
        return cls(ok=False, error=error)


class GenerateOutcome(BaseModel):
    ok: bool
    text: str = ""
    total_tokens: Optional[int] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, text: str, total_tokens: Optional[int] = None) -> "GenerateOutcome":
        return cls(ok=True, text=text, total_tokens=total_tokens)

    @classmethod
    def failure(cls, error: str) -> "GenerateOutcome":
        return cls(ok=False, error=error)


class GenerationBackend(Protocol):
    def is_configured(self) -> bool:  # pragma: no cover - protocol only
        ...

    def compile(self, request: CompileRequest) -> CompileOutcome:  # pragma: no cover - protocol only
        ...

    def generate(self, prompt: str) -> GenerateOutcome:  # pragma: no cover - protocol only
        ...


class UnconfiguredBackend:
    """Backend used when no chat model is available."""

    def is_configured(self) -> bool:
        return False

    def compile(self, request: CompileRequest) -> CompileOutcome:
        return CompileOutcome.failure("Generation backend is not configured.")

    def generate(self, prompt: str) -> GenerateOutcome:
        return GenerateOutcome.failure("Generation backend is not configured.")


def build_compile_instructions(output_language: str) -> str:
    return "\n".join(
        [
            "You are a workflow compiler for WorkPilot.",
            "Return only structured JSON matching the WorkflowCompileSpec schema.",
            "Constraints:",
            f"- steps length must be between {MIN_COMPILED_STEPS} and {MAX_STEPS}",
            "- exactly one step must have tool=llm",
            "- at least one step must have requires_approval=true",
            "- if tool=llm then prompt_template is required and can use {{variable}} syntax",
            "- step type is one of trigger, action, condition, output",
            f"- output language should be {output_language}",
        ]
    )


def validate_compile_payload(payload: Any) -> CompileOutcome:
    if not isinstance(payload, dict):
        return CompileOutcome.failure("No JSON object found in backend reply.")
    try:
        return CompileOutcome.success(WorkflowCompileSpec.model_validate(payload))
    except ValidationError as exc:
        return CompileOutcome.failure(f"Backend spec failed validation: {exc}")


class LangChainGenerationBackend:
    def __init__(self, llm: Optional[Any] = None) -> None:
        self.llm = llm

    def is_configured(self) -> bool:
        return self.llm is not None

    def compile(self, request: CompileRequest) -> CompileOutcome:
        if self.llm is None:
            return CompileOutcome.failure("Generation backend is not configured.")

        message = self._compile_message(request)
        try:
            response = invoke_with_schema(self.llm, [message], schema=WorkflowCompileSpec)
        except Exception as exc:
            LOGGER.warning("Compile request to generation backend failed: %s", exc)
            return CompileOutcome.failure(f"Backend call failed: {exc}")
        return validate_compile_payload(extract_schema_payload(response))

    def generate(self, prompt: str) -> GenerateOutcome:
        if self.llm is None:
            return GenerateOutcome.failure("Generation backend is not configured.")

        from langchain_core.messages import HumanMessage

        try:
            response = self.llm.invoke([HumanMessage(content=prompt)])
        except Exception as exc:
            LOGGER.warning("Generate request to generation backend failed: %s", exc)
            return GenerateOutcome.failure(f"Backend call failed: {exc}")
        text = response_text(response).strip() or EMPTY_GENERATION_TEXT
        return GenerateOutcome.success(text, response_total_tokens(response))

    @staticmethod
    def _compile_message(request: CompileRequest) -> Any:
        from langchain_core.messages import HumanMessage

        payload = {
            "name": request.name,
            "record_mode": request.record_mode,
            "record": request.record.model_dump(exclude={"capture_data_url"}, exclude_none=True),
        }
        text = (
            build_compile_instructions(request.output_language)
            + "\n\nInput:\n"
            + json.dumps(payload, indent=2, ensure_ascii=False)
        )
        content = [{"type": "text", "text": text}]
        if request.image_data_url:
            content.append({"type": "image_url", "image_url": {"url": request.image_data_url}})
        return HumanMessage(content=content)


def build_generation_backend(settings: Any) -> GenerationBackend:
    """Return a LangChain backend when enabled in ``settings``, else an unconfigured one."""

    if not getattr(settings, "llm_enabled", False):
        return UnconfiguredBackend()

    from workpilot.llm import build_chat_bedrock_converse

    return LangChainGenerationBackend(
        build_chat_bedrock_converse(region_name=getattr(settings, "region_name", None))
    )
