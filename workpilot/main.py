"""
WorkPilot wiring and command-line entrypoint.
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from workpilot.backend.generation import GenerationBackend, build_generation_backend
from workpilot.compiler.workflow_compiler import WorkflowCompiler
from workpilot.config import WorkPilotSettings
from workpilot.ir.spec_schema import RECORD_MODES, RecordPayload
from workpilot.memory.memory_store import InMemoryPilotStore
from workpilot.memory.sqlite_store import SQLitePilotStore
from workpilot.memory.store import PilotRepository
from workpilot.memory.store_contract import StoreContext
from workpilot.runtime.engine import RunEngine
from workpilot.services.pilot_service import PilotService
from workpilot.services.retention import RetentionSweep
from workpilot.services.run_service import RunService


class WorkPilot:
    """
    Owns the stores and services for one process. Build it once and hand it to
    whatever serves requests.
    """

    def __init__(
        self,
        settings: Optional[WorkPilotSettings] = None,
        *,
        repository: Optional[PilotRepository] = None,
        backend: Optional[GenerationBackend] = None,
    ) -> None:
        self.settings = settings or WorkPilotSettings.from_env()
        self.repository = repository or PilotRepository(
            primary=SQLitePilotStore(
                self.settings.db_path, run_log_limit=self.settings.run_log_limit
            ),
            fallback=InMemoryPilotStore(run_log_limit=self.settings.run_log_limit),
        )
        self.backend = backend or build_generation_backend(self.settings)
        self.compiler = WorkflowCompiler(
            self.backend, output_language=self.settings.output_language
        )
        self.engine = RunEngine(self.backend)
        self.retention = RetentionSweep(
            self.repository,
            retention_days=self.settings.retention_days,
            interval_hours=self.settings.retention_interval_hours,
        )
        self.pilots = PilotService(
            repository=self.repository,
            compiler=self.compiler,
            initial_credits=self.settings.initial_credits,
        )
        self.runs = RunService(
            repository=self.repository,
            engine=self.engine,
            retention=self.retention,
        )

    def context(self, request_id: Optional[str] = None) -> StoreContext:
        return StoreContext(
            request_id=request_id,
            storage_mode_hint=self.repository.resolve_storage_mode_hint(),
        )


def _load_values(raw_json: Optional[str], json_file: Optional[str]) -> Dict[str, str]:
    if raw_json:
        payload = json.loads(raw_json)
    elif json_file:
        payload = json.loads(Path(json_file).read_text(encoding="utf-8"))
    else:
        payload = {}
    return {str(key): str(value) for key, value in payload.items()}


def _read_optional(text: Optional[str], file_path: Optional[str]) -> Optional[str]:
    if text:
        return text
    if file_path:
        return Path(file_path).read_text(encoding="utf-8")
    return None


def _print_json(payload: Any) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True, ensure_ascii=False))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="WorkPilot workflow builder")
    parser.add_argument("--db", type=str, default=None, help="SQLite database path")
    parser.add_argument("--llm", action="store_true", help="Enable the Bedrock backend")
    sub = parser.add_subparsers(dest="command", required=True)

    compile_cmd = sub.add_parser("compile", help="Compile a task description into a pilot")
    compile_cmd.add_argument("--name", type=str, default=None)
    compile_cmd.add_argument("--record-mode", choices=RECORD_MODES, default="describe")
    compile_cmd.add_argument("--task-description", type=str, default=None)
    compile_cmd.add_argument("--task-file", type=str, default=None)
    compile_cmd.add_argument("--prompt", type=str, default=None)
    compile_cmd.add_argument("--inputs-csv", type=str, default=None)
    compile_cmd.add_argument("--inputs-file", type=str, default=None)

    show_cmd = sub.add_parser("show", help="Show a pilot and its recent runs")
    show_cmd.add_argument("pilot_id")
    show_cmd.add_argument("--limit", type=int, default=3)

    run_cmd = sub.add_parser("run", help="Run a pilot with input values")
    run_cmd.add_argument("pilot_id")
    run_cmd.add_argument("--input-json", type=str, default=None)
    run_cmd.add_argument("--input-file", type=str, default=None)

    sub.add_parser("sweep", help="Run the run-log retention sweep")
    return parser


def main(argv: Optional[list] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = build_parser().parse_args(argv)

    settings = WorkPilotSettings.from_env()
    settings.db_path = args.db or settings.db_path or ".workpilot/workpilot.db"
    settings.llm_enabled = args.llm or settings.llm_enabled
    app = WorkPilot(settings)
    context = app.context()

    if args.command == "compile":
        record = RecordPayload(
            task_description=_read_optional(args.task_description, args.task_file),
            prompt=args.prompt,
            inputs_csv=_read_optional(args.inputs_csv, args.inputs_file),
        )
        created = app.pilots.create_pilot(
            name=args.name, record_mode=args.record_mode, record=record, context=context
        )
        _print_json(created.model_dump())
        return 0

    if args.command == "show":
        view = app.pilots.get_pilot(args.pilot_id, context, run_log_limit=args.limit)
        if view is None:
            _print_json({"error": f"Pilot not found: {args.pilot_id}"})
            return 1
        _print_json(view.model_dump())
        return 0

    if args.command == "run":
        outcome = app.runs.run(
            args.pilot_id, _load_values(args.input_json, args.input_file), context
        )
        _print_json(outcome.model_dump(exclude_none=True))
        return 0 if outcome.status == "success" else 1

    result = app.retention.cleanup(context)
    _print_json(result.model_dump())
    return 0 if result.error is None else 1


if __name__ == "__main__":
    raise SystemExit(main())
