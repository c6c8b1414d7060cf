"""
Throttled retention sweep for old run logs.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional

from pydantic import BaseModel, ValidationError

from workpilot.config import RETENTION_DAYS, RETENTION_INTERVAL_HOURS
from workpilot.memory.store import PilotRepository
from workpilot.memory.store_contract import StoreContext

LOGGER = logging.getLogger(__name__)

RETENTION_META_KEY = "last_retention_at"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class RetentionMeta(BaseModel):
    executed_at: str
    deleted_count: int


class RetentionResult(BaseModel):
    attempted: bool
    skipped: bool
    deleted_count: int = 0
    error: Optional[str] = None


def parse_retention_meta(value: Any) -> Optional[RetentionMeta]:
    if not isinstance(value, dict):
        return None
    try:
        return RetentionMeta.model_validate(value)
    except ValidationError:
        return None


def _parse_executed_at(value: str) -> Optional[datetime]:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class RetentionSweep:
    def __init__(
        self,
        repository: PilotRepository,
        *,
        clock: Clock = utc_now,
        retention_days: int = RETENTION_DAYS,
        interval_hours: int = RETENTION_INTERVAL_HOURS,
    ) -> None:
        self.repository = repository
        self.clock = clock
        self.retention = timedelta(days=retention_days)
        self.interval = timedelta(hours=interval_hours)
        self._lock = threading.Lock()

    def should_skip(self, meta: Optional[RetentionMeta], now: datetime) -> bool:
        if meta is None:
            return False
        executed_at = _parse_executed_at(meta.executed_at)
        if executed_at is None:
            return False
        return now - executed_at < self.interval

    def cleanup(self, context: Optional[StoreContext] = None) -> RetentionResult:
        """Delete run logs past the retention horizon; never raises."""

        with self._lock:
            try:
                now = self.clock()
                meta = parse_retention_meta(self.repository.get_meta(RETENTION_META_KEY, context))
                if self.should_skip(meta, now):
                    return RetentionResult(attempted=False, skipped=True)

                cutoff = (now - self.retention).isoformat()
                deleted_count = self.repository.delete_run_logs_older_than(cutoff, context)
                self.repository.set_meta(
                    RETENTION_META_KEY,
                    RetentionMeta(
                        executed_at=now.isoformat(), deleted_count=deleted_count
                    ).model_dump(),
                    context,
                )
                return RetentionResult(attempted=True, skipped=False, deleted_count=deleted_count)
            except Exception as exc:
                LOGGER.warning(
                    "Retention cleanup failed requestId=%s reason=%s",
                    context.request_id if context else None,
                    exc,
                )
                return RetentionResult(
                    attempted=True, skipped=False, deleted_count=0, error=str(exc) or "unknown"
                )
