"""
Runtime settings for WorkPilot.
"""

from __future__ import annotations

import os
from typing import Optional

from pydantic import BaseModel, Field

INITIAL_CREDITS = 50
RUN_LOG_LIMIT = 200
RUN_PREVIEW_CHARS = 200
MAX_STEPS = 6
MIN_COMPILED_STEPS = 4
RETENTION_DAYS = 90
RETENTION_INTERVAL_HOURS = 24
MAX_CAPTURE_BYTES = 5 * 1024 * 1024

_TRUTHY = {"1", "true", "yes", "y", "on"}


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in _TRUTHY


class WorkPilotSettings(BaseModel):
    db_path: Optional[str] = None
    llm_enabled: bool = False
    region_name: Optional[str] = None
    output_language: str = "English"
    initial_credits: int = Field(default=INITIAL_CREDITS, ge=0)
    run_log_limit: int = Field(default=RUN_LOG_LIMIT, ge=1)
    retention_days: int = Field(default=RETENTION_DAYS, ge=1)
    retention_interval_hours: int = Field(default=RETENTION_INTERVAL_HOURS, ge=1)
    max_capture_bytes: int = Field(default=MAX_CAPTURE_BYTES, gt=0)

    @classmethod
    def from_env(cls) -> "WorkPilotSettings":
        return cls(
            db_path=os.getenv("WORKPILOT_DB_PATH") or None,
            llm_enabled=_env_flag("WORKPILOT_LLM_ENABLED"),
            region_name=os.getenv("AWS_REGION") or os.getenv("AWS_DEFAULT_REGION"),
            output_language=os.getenv("WORKPILOT_OUTPUT_LANGUAGE") or "English",
        )
