"""
Pilot creation, lookup and editing.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field

from workpilot.compiler.workflow_compiler import CompileMode, WorkflowCompiler, build_default_name
from workpilot.config import INITIAL_CREDITS
from workpilot.ir.spec_schema import Pilot, RecordMode, RecordPayload, RunLog
from workpilot.ir.versioning import PilotPatch, apply_pilot_patch
from workpilot.memory.store import PilotRepository
from workpilot.memory.store_contract import StoreContext

LOGGER = logging.getLogger(__name__)


class CreatedPilot(BaseModel):
    pilot: Pilot
    compile_mode: CompileMode


class PilotView(BaseModel):
    pilot: Pilot
    recent_runs: List[RunLog] = Field(default_factory=list)


class PilotService:
    def __init__(
        self,
        *,
        repository: PilotRepository,
        compiler: WorkflowCompiler,
        initial_credits: int = INITIAL_CREDITS,
    ) -> None:
        self.repository = repository
        self.compiler = compiler
        self.initial_credits = initial_credits

    def create_pilot(
        self,
        *,
        name: Optional[str],
        record_mode: RecordMode,
        record: RecordPayload,
        context: Optional[StoreContext] = None,
    ) -> CreatedPilot:
        resolved_name = build_default_name(name)
        result = self.compiler.compile(
            name=resolved_name, record_mode=record_mode, record=record
        )
        pilot = Pilot(
            id=str(uuid.uuid4()),
            name=resolved_name,
            one_liner=result.spec.one_liner,
            record_mode=record_mode,
            record=record,
            inputs=result.spec.inputs,
            steps=result.spec.steps,
            credits=self.initial_credits,
            version=1,
            created_at=datetime.now(timezone.utc).isoformat(),
        )
        saved = self.repository.save_pilot(pilot, context)
        LOGGER.info("Created pilot %s compile_mode=%s", saved.id, result.mode)
        return CreatedPilot(pilot=saved, compile_mode=result.mode)

    def get_pilot(
        self,
        pilot_id: str,
        context: Optional[StoreContext] = None,
        run_log_limit: int = 3,
    ) -> Optional[PilotView]:
        pilot = self.repository.get_pilot(pilot_id, context)
        if pilot is None:
            return None
        return PilotView(
            pilot=pilot,
            recent_runs=self.repository.get_run_logs(pilot_id, run_log_limit, context),
        )

    def patch_pilot(
        self,
        pilot_id: str,
        patch: PilotPatch,
        context: Optional[StoreContext] = None,
    ) -> Optional[Pilot]:
        updated = self.repository.update_pilot(
            pilot_id, lambda previous: apply_pilot_patch(previous, patch), context
        )
        if updated is not None:
            LOGGER.info("Patched pilot %s to version %s", pilot_id, updated.version)
        return updated
