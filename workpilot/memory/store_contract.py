"""
Persistence port shared by every pilot store adapter.
"""

from __future__ import annotations

from typing import Any, Callable, List, Literal, Optional, Protocol

from pydantic import BaseModel

from workpilot.ir.spec_schema import Pilot, RunLog

StorageMode = Literal["sqlite", "memory-fallback"]
CommitStatus = Literal["success", "insufficient_credits", "not_found"]

PilotUpdater = Callable[[Pilot], Pilot]


class StoreContext(BaseModel):
    request_id: Optional[str] = None
    storage_mode_hint: Optional[StorageMode] = None


class CommitRunResult(BaseModel):
    status: CommitStatus
    credits_left: Optional[int] = None

    @classmethod
    def success(cls, credits_left: int) -> "CommitRunResult":
        return cls(status="success", credits_left=credits_left)


class PilotStore(Protocol):
    adapter_name: str

    def is_configured(self) -> bool:  # pragma: no cover - protocol only
        ...

    def ping(self) -> bool:  # pragma: no cover - protocol only
        ...

    def save_pilot(self, pilot: Pilot) -> Pilot:  # pragma: no cover - protocol only
        ...

    def get_pilot(self, pilot_id: str) -> Optional[Pilot]:  # pragma: no cover - protocol only
        ...

    def update_pilot(
        self, pilot_id: str, updater: PilotUpdater
    ) -> Optional[Pilot]:  # pragma: no cover - protocol only
        ...

    def get_run_logs(self, pilot_id: str, limit: int) -> List[RunLog]:  # pragma: no cover - protocol only
        ...

    def commit_run(self, pilot_id: str, log: RunLog) -> CommitRunResult:  # pragma: no cover - protocol only
        ...

    def delete_run_logs_older_than(self, cutoff_iso: str) -> int:  # pragma: no cover - protocol only
        ...

    def get_meta(self, key: str) -> Optional[Any]:  # pragma: no cover - protocol only
        ...

    def set_meta(self, key: str, value: Any) -> None:  # pragma: no cover - protocol only
        ...
