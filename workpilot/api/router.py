"""
FastAPI router for WorkPilot.

Async handlers read the body on the event loop and hand service calls to the
threadpool, since the services block on sqlite and the chat model.
"""

from __future__ import annotations

import base64
import binascii
import re
import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from workpilot.config import WorkPilotSettings
from workpilot.ir.spec_schema import RecordMode, RecordPayload
from workpilot.ir.versioning import PilotPatch
from workpilot.main import WorkPilot
from workpilot.services.pilot_service import CreatedPilot
from workpilot.services.run_service import RunOutcome

APP_VERSION = "0.1.0"
REQUEST_ID_HEADER = "x-request-id"

_DATA_URL_PATTERN = re.compile(r"^data:([^;,]+);base64,(.*)$", re.DOTALL)

_RUN_STATUS_CODES = {
    "not_found": 404,
    "insufficient_credits": 402,
    "missing_required": 400,
    "error": 500,
}


class CreatePilotRequest(BaseModel):
    name: Optional[str] = None
    record_mode: RecordMode = "describe"
    record: RecordPayload = Field(default_factory=RecordPayload)


class RunRequest(BaseModel):
    pilot_id: str = Field(min_length=1)
    values: Dict[str, str] = Field(default_factory=dict)


class CaptureValidationError(ValueError):
    """Raised when an uploaded capture is not an acceptable image."""


def validate_capture_data_url(data_url: str, max_bytes: int) -> None:
    match = _DATA_URL_PATTERN.match(data_url.strip())
    if not match:
        raise CaptureValidationError("Capture must be a base64 data URL.")
    if not match.group(1).startswith("image/"):
        raise CaptureValidationError("Only image files can be uploaded.")
    try:
        decoded = base64.b64decode(match.group(2), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise CaptureValidationError("Capture payload is not valid base64.") from exc
    if len(decoded) > max_bytes:
        raise CaptureValidationError(
            f"Image files must be {max_bytes // (1024 * 1024)}MB or smaller."
        )


def get_request_id(request: Request) -> str:
    header = (request.headers.get(REQUEST_ID_HEADER) or "").strip()
    return header or str(uuid.uuid4())


def json_with_request_id(payload: Any, request_id: str, status_code: int = 200) -> JSONResponse:
    return JSONResponse(
        content=payload, status_code=status_code, headers={REQUEST_ID_HEADER: request_id}
    )


def _first_error(exc: ValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request."
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


def _workpilot(request: Request) -> WorkPilot:
    return request.app.state.workpilot


router = APIRouter(tags=["workpilot"])


@router.get("/health")
def health(request: Request) -> JSONResponse:
    request_id = get_request_id(request)
    app = _workpilot(request)
    storage = app.repository.storage_health()
    return json_with_request_id(
        {
            "ok": True,
            "version": APP_VERSION,
            "storage_mode": storage.storage_mode,
            "db_reachable": storage.db_reachable,
            "llm_configured": app.backend.is_configured(),
            "fallback_reason": storage.fallback_reason,
        },
        request_id,
    )


@router.post("/pilots")
async def create_pilot(request: Request) -> JSONResponse:
    request_id = get_request_id(request)
    app = _workpilot(request)
    try:
        payload = CreatePilotRequest.model_validate(await request.json())
    except ValidationError as exc:
        return json_with_request_id({"error": _first_error(exc)}, request_id, 400)
    except ValueError:
        return json_with_request_id({"error": "Request body must be JSON."}, request_id, 400)

    capture = payload.record.capture_data_url
    if capture:
        try:
            validate_capture_data_url(capture, app.settings.max_capture_bytes)
        except CaptureValidationError as exc:
            return json_with_request_id({"error": str(exc)}, request_id, 400)

    def _create() -> CreatedPilot:
        return app.pilots.create_pilot(
            name=payload.name,
            record_mode=payload.record_mode,
            record=payload.record,
            context=app.context(request_id),
        )

    created = await run_in_threadpool(_create)
    return json_with_request_id(
        {
            "pilot": created.pilot.model_dump(),
            "url": f"/pilot/{created.pilot.id}",
            "compile_mode": created.compile_mode,
        },
        request_id,
    )


@router.get("/pilots/{pilot_id}")
def get_pilot(pilot_id: str, request: Request) -> JSONResponse:
    request_id = get_request_id(request)
    app = _workpilot(request)
    view = app.pilots.get_pilot(pilot_id, app.context(request_id), run_log_limit=3)
    if view is None:
        return json_with_request_id({"error": "Pilot not found."}, request_id, 404)
    return json_with_request_id(
        {
            "pilot": view.pilot.model_dump(),
            "run_logs_last3": [log.model_dump() for log in view.recent_runs],
        },
        request_id,
    )


@router.patch("/pilots/{pilot_id}")
async def patch_pilot(pilot_id: str, request: Request) -> JSONResponse:
    request_id = get_request_id(request)
    app = _workpilot(request)
    context = await run_in_threadpool(app.context, request_id)
    existing = await run_in_threadpool(app.repository.get_pilot, pilot_id, context)
    if existing is None:
        return json_with_request_id({"error": "Pilot not found."}, request_id, 404)

    try:
        patch = PilotPatch.model_validate(await request.json())
    except ValidationError as exc:
        return json_with_request_id({"error": _first_error(exc)}, request_id, 400)
    except ValueError:
        return json_with_request_id({"error": "Request body must be JSON."}, request_id, 400)

    updated = await run_in_threadpool(app.pilots.patch_pilot, pilot_id, patch, context)
    if updated is None:
        return json_with_request_id({"error": "Pilot not found."}, request_id, 404)
    return json_with_request_id({"pilot": updated.model_dump()}, request_id)


@router.post("/run")
async def run_pilot(request: Request) -> JSONResponse:
    request_id = get_request_id(request)
    app = _workpilot(request)
    try:
        payload = RunRequest.model_validate(await request.json())
    except ValidationError as exc:
        return json_with_request_id({"error": _first_error(exc)}, request_id, 400)
    except ValueError:
        return json_with_request_id({"error": "Request body must be JSON."}, request_id, 400)

    def _run() -> RunOutcome:
        return app.runs.run(payload.pilot_id, payload.values, app.context(request_id))

    outcome = await run_in_threadpool(_run)
    if outcome.status == "success":
        return json_with_request_id(
            {
                "output": outcome.output,
                "credits_left": outcome.credits_left,
                "total_tokens": outcome.total_tokens,
                "run_log": outcome.run_log.model_dump() if outcome.run_log else None,
                "mode": outcome.mode,
            },
            request_id,
        )

    status_code = _RUN_STATUS_CODES[outcome.status]
    if outcome.status == "missing_required":
        body: Dict[str, Any] = {
            "error": "Required input values are missing: "
            + ", ".join(outcome.missing_required_labels),
            "missing_required_keys": outcome.missing_required_keys,
            "missing_required_labels": outcome.missing_required_labels,
        }
    elif outcome.status == "not_found":
        body = {"error": "Pilot not found."}
    elif outcome.status == "insufficient_credits":
        body = {"error": "Not enough credits to run this pilot."}
    else:
        body = {"error": outcome.error or "Run failed."}
    return json_with_request_id(body, request_id, status_code)


def create_app(
    settings: Optional[WorkPilotSettings] = None,
    *,
    workpilot: Optional[WorkPilot] = None,
) -> FastAPI:
    app = FastAPI(title="WorkPilot", version=APP_VERSION)
    app.state.workpilot = workpilot or WorkPilot(settings)
    app.include_router(router)
    return app
