"""
In-memory pilot store used when no database is available.
"""

from __future__ import annotations

import copy
import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from workpilot.config import RUN_LOG_LIMIT
from workpilot.ir.spec_schema import Pilot, RunLog
from workpilot.memory.store_contract import CommitRunResult, PilotUpdater


def parse_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


class InMemoryPilotStore:
    """
    Process-local store. Construct one per process and pass it to whatever
    handles requests; every instance owns its own state.
    """

    adapter_name = "memory"

    def __init__(self, run_log_limit: int = RUN_LOG_LIMIT) -> None:
        self.run_log_limit = run_log_limit
        self._pilots: Dict[str, Pilot] = {}
        self._run_logs: Dict[str, List[RunLog]] = {}
        self._meta: Dict[str, Any] = {}
        self._lock = threading.Lock()
        self._pilot_locks: Dict[str, threading.Lock] = {}

    def _pilot_lock(self, pilot_id: str) -> Optional[threading.Lock]:
        """Lock for an existing pilot; None for ids that were never saved."""
        with self._lock:
            if pilot_id not in self._pilots:
                return None
            return self._pilot_locks.setdefault(pilot_id, threading.Lock())

    def is_configured(self) -> bool:
        return True

    def ping(self) -> bool:
        return True

    def save_pilot(self, pilot: Pilot) -> Pilot:
        stored = pilot.model_copy(deep=True)
        with self._lock:
            self._pilots[stored.id] = stored
        return stored.model_copy(deep=True)

    def get_pilot(self, pilot_id: str) -> Optional[Pilot]:
        with self._lock:
            pilot = self._pilots.get(pilot_id)
        return pilot.model_copy(deep=True) if pilot else None

    def update_pilot(self, pilot_id: str, updater: PilotUpdater) -> Optional[Pilot]:
        pilot_lock = self._pilot_lock(pilot_id)
        if pilot_lock is None:
            return None
        with pilot_lock:
            existing = self.get_pilot(pilot_id)
            if existing is None:
                return None
            return self.save_pilot(updater(existing))

    def get_run_logs(self, pilot_id: str, limit: int) -> List[RunLog]:
        with self._lock:
            logs = list(self._run_logs.get(pilot_id, []))[:limit]
        return [log.model_copy(deep=True) for log in logs]

    def commit_run(self, pilot_id: str, log: RunLog) -> CommitRunResult:
        pilot_lock = self._pilot_lock(pilot_id)
        if pilot_lock is None:
            return CommitRunResult(status="not_found")
        with pilot_lock:
            with self._lock:
                pilot = self._pilots.get(pilot_id)
                if pilot is None:
                    return CommitRunResult(status="not_found")
                if pilot.credits <= 0:
                    return CommitRunResult(status="insufficient_credits")

                updated = pilot.model_copy(update={"credits": max(0, pilot.credits - 1)})
                self._pilots[pilot_id] = updated
                existing = self._run_logs.get(pilot_id, [])
                self._run_logs[pilot_id] = [log.model_copy(deep=True), *existing][
                    : self.run_log_limit
                ]
                return CommitRunResult.success(updated.credits)

    def delete_run_logs_older_than(self, cutoff_iso: str) -> int:
        cutoff = parse_timestamp(cutoff_iso)
        deleted = 0
        with self._lock:
            for pilot_id, logs in self._run_logs.items():
                kept = [log for log in logs if parse_timestamp(log.created_at) >= cutoff]
                deleted += len(logs) - len(kept)
                self._run_logs[pilot_id] = kept
        return deleted

    def get_meta(self, key: str) -> Optional[Any]:
        with self._lock:
            return copy.deepcopy(self._meta.get(key))

    def set_meta(self, key: str, value: Any) -> None:
        with self._lock:
            self._meta[key] = copy.deepcopy(value)
