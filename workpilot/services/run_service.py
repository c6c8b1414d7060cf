"""
Run stage: validates run values, executes the pilot and commits credits plus run log.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field

from workpilot.config import RUN_PREVIEW_CHARS
from workpilot.ir.spec_schema import Pilot, RunLog, RunStatus
from workpilot.memory.store import PilotRepository
from workpilot.memory.store_contract import StoreContext
from workpilot.runtime.engine import RunEngine, RunMode
from workpilot.services.retention import RetentionResult, RetentionSweep

LOGGER = logging.getLogger(__name__)

RunOutcomeStatus = Literal[
    "success", "not_found", "insufficient_credits", "missing_required", "error"
]

DEFAULT_RUN_ERROR = "An error occurred while running the pilot."


class RunOutcome(BaseModel):
    status: RunOutcomeStatus
    output: Optional[str] = None
    mode: Optional[RunMode] = None
    credits_left: Optional[int] = None
    total_tokens: Optional[int] = None
    run_log: Optional[RunLog] = None
    error: Optional[str] = None
    missing_required_keys: List[str] = Field(default_factory=list)
    missing_required_labels: List[str] = Field(default_factory=list)
    retention: Optional[RetentionResult] = None


def find_missing_required(pilot: Pilot, values: Dict[str, str]) -> List[Tuple[str, str]]:
    return [
        (field.key, field.label)
        for field in pilot.inputs
        if field.required and not (values.get(field.key) or "").strip()
    ]


def build_run_log(
    *,
    pilot_id: str,
    values: Dict[str, str],
    preview: str,
    status: RunStatus,
    total_tokens: Optional[int] = None,
) -> RunLog:
    return RunLog(
        id=str(uuid.uuid4()),
        pilot_id=pilot_id,
        created_at=datetime.now(timezone.utc).isoformat(),
        input_values=dict(values),
        output_preview=preview[:RUN_PREVIEW_CHARS],
        total_tokens=total_tokens,
        status=status,
    )


class RunService:
    def __init__(
        self,
        *,
        repository: PilotRepository,
        engine: RunEngine,
        retention: RetentionSweep,
    ) -> None:
        self.repository = repository
        self.engine = engine
        self.retention = retention

    def run(
        self,
        pilot_id: str,
        values: Dict[str, str],
        context: Optional[StoreContext] = None,
    ) -> RunOutcome:
        retention = self.retention.cleanup(context)

        pilot = self.repository.get_pilot(pilot_id, context)
        if pilot is None:
            return RunOutcome(status="not_found", retention=retention)

        missing = find_missing_required(pilot, values)
        if missing:
            return RunOutcome(
                status="missing_required",
                missing_required_keys=[key for key, _ in missing],
                missing_required_labels=[label for _, label in missing],
                retention=retention,
            )

        if pilot.credits <= 0:
            return RunOutcome(status="insufficient_credits", retention=retention)

        try:
            result = self.engine.run(pilot, values)
        except Exception as exc:
            message = str(exc) or DEFAULT_RUN_ERROR
            LOGGER.error(
                "Run failed pilot=%s requestId=%s error=%s",
                pilot_id,
                context.request_id if context else None,
                message,
            )
            log = build_run_log(
                pilot_id=pilot_id, values=values, preview=message, status="error"
            )
            commit = self.repository.commit_run(pilot_id, log, context)
            if commit.status != "success":
                return RunOutcome(status=commit.status, retention=retention)
            return RunOutcome(
                status="error",
                error=message,
                credits_left=commit.credits_left,
                run_log=log,
                retention=retention,
            )

        log = build_run_log(
            pilot_id=pilot_id,
            values=values,
            preview=result.output,
            status="success",
            total_tokens=result.total_tokens,
        )
        commit = self.repository.commit_run(pilot_id, log, context)
        if commit.status != "success":
            return RunOutcome(status=commit.status, retention=retention)

        return RunOutcome(
            status="success",
            output=result.output,
            mode=result.mode,
            credits_left=commit.credits_left,
            total_tokens=result.total_tokens,
            run_log=log,
            retention=retention,
        )
