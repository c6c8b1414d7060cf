from typing import List, Optional

import pytest

from workpilot.backend.generation import (
    CompileOutcome,
    CompileRequest,
    GenerateOutcome,
    validate_compile_payload,
)
from workpilot.ir.spec_schema import InputField, Pilot, WorkflowStep
from workpilot.memory.memory_store import InMemoryPilotStore
from workpilot.memory.sqlite_store import SQLitePilotStore
from workpilot.memory.store import PilotRepository


class FakeBackend:
    def __init__(
        self,
        *,
        configured: bool = True,
        compile_payload: Optional[dict] = None,
        compile_error: Optional[str] = None,
        generate_text: Optional[str] = "generated output",
        generate_tokens: Optional[int] = 42,
        generate_error: Optional[str] = None,
    ) -> None:
        self.configured = configured
        self.compile_payload = compile_payload
        self.compile_error = compile_error
        self.generate_text = generate_text
        self.generate_tokens = generate_tokens
        self.generate_error = generate_error
        self.compile_requests: List[CompileRequest] = []
        self.prompts: List[str] = []

    def is_configured(self) -> bool:
        return self.configured

    def compile(self, request: CompileRequest) -> CompileOutcome:
        self.compile_requests.append(request)
        if self.compile_error:
            return CompileOutcome.failure(self.compile_error)
        return validate_compile_payload(self.compile_payload)

    def generate(self, prompt: str) -> GenerateOutcome:
        self.prompts.append(prompt)
        if self.generate_error:
            return GenerateOutcome.failure(self.generate_error)
        return GenerateOutcome.success(self.generate_text or "", self.generate_tokens)


def make_pilot(**overrides) -> Pilot:
    payload = dict(
        id="pilot-1",
        name="Weekly report",
        one_liner="Summarize weekly customer notes",
        record_mode="describe",
        inputs=[
            InputField(key="company_name", label="Company name", required=True),
            InputField(key="notes", label="Notes", required=False),
        ],
        steps=[
            WorkflowStep(
                id="step_1", order=1, type="trigger", title="Collect", description="Collect input"
            ),
            WorkflowStep(
                id="step_2",
                order=2,
                type="condition",
                title="Approve",
                description="Wait for approval",
                requires_approval=True,
            ),
            WorkflowStep(
                id="step_3",
                order=3,
                type="output",
                title="Generate",
                description="Generate the result",
                tool="llm",
                prompt_template="Company: {{company_name}}\nNotes: {{ notes }}",
            ),
        ],
        credits=50,
        version=1,
        created_at="2026-02-21T00:00:00+00:00",
    )
    payload.update(overrides)
    return Pilot(**payload)


@pytest.fixture
def pilot() -> Pilot:
    return make_pilot()


@pytest.fixture
def memory_store() -> InMemoryPilotStore:
    return InMemoryPilotStore()


@pytest.fixture
def sqlite_store(tmp_path) -> SQLitePilotStore:
    return SQLitePilotStore(str(tmp_path / "workpilot.db"))


@pytest.fixture
def repository(memory_store) -> PilotRepository:
    return PilotRepository(primary=SQLitePilotStore(None), fallback=memory_store)
