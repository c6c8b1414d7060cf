"""
Storage facade that routes calls to the SQLite store or the in-memory fallback.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, List, Optional, TypeVar

from pydantic import BaseModel

from workpilot.ir.spec_schema import Pilot, RunLog
from workpilot.memory.store_contract import (
    CommitRunResult,
    PilotStore,
    PilotUpdater,
    StorageMode,
    StoreContext,
)

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class StorageHealth(BaseModel):
    storage_mode: StorageMode
    db_reachable: bool
    fallback_reason: Optional[str] = None


class PilotRepository:
    """
    Routes every persistence call according to ``StoreContext.storage_mode_hint``.

    - ``memory-fallback``: the fallback adapter only.
    - ``sqlite``: the primary adapter only; its errors propagate.
    - no hint: the primary adapter, retried on the fallback if it raises.
    """

    def __init__(self, primary: PilotStore, fallback: PilotStore) -> None:
        self.primary = primary
        self.fallback = fallback

    def resolve_storage_mode_hint(self, context: Optional[StoreContext] = None) -> StorageMode:
        if not self.primary.is_configured():
            return "memory-fallback"
        return "sqlite" if self.primary.ping() else "memory-fallback"

    def storage_health(self, context: Optional[StoreContext] = None) -> StorageHealth:
        if not self.primary.is_configured():
            return StorageHealth(
                storage_mode="memory-fallback",
                db_reachable=False,
                fallback_reason="database path is not configured",
            )
        if not self.primary.ping():
            return StorageHealth(
                storage_mode="memory-fallback",
                db_reachable=False,
                fallback_reason="database is unreachable",
            )
        return StorageHealth(storage_mode="sqlite", db_reachable=True)

    def _call(
        self,
        operation: str,
        context: Optional[StoreContext],
        action: Callable[[PilotStore], T],
    ) -> T:
        hint = context.storage_mode_hint if context else None
        if hint == "sqlite":
            return action(self.primary)
        if hint == "memory-fallback" or not self.primary.is_configured():
            return action(self.fallback)

        try:
            return action(self.primary)
        except Exception as exc:
            LOGGER.warning(
                "Storage %s failed on %s, using %s requestId=%s: %s",
                operation,
                self.primary.adapter_name,
                self.fallback.adapter_name,
                context.request_id if context else None,
                exc,
            )
            return action(self.fallback)

    def save_pilot(self, pilot: Pilot, context: Optional[StoreContext] = None) -> Pilot:
        return self._call("save_pilot", context, lambda store: store.save_pilot(pilot))

    def get_pilot(self, pilot_id: str, context: Optional[StoreContext] = None) -> Optional[Pilot]:
        return self._call("get_pilot", context, lambda store: store.get_pilot(pilot_id))

    def update_pilot(
        self,
        pilot_id: str,
        updater: PilotUpdater,
        context: Optional[StoreContext] = None,
    ) -> Optional[Pilot]:
        return self._call(
            "update_pilot", context, lambda store: store.update_pilot(pilot_id, updater)
        )

    def get_run_logs(
        self, pilot_id: str, limit: int, context: Optional[StoreContext] = None
    ) -> List[RunLog]:
        return self._call(
            "get_run_logs", context, lambda store: store.get_run_logs(pilot_id, limit)
        )

    def commit_run(
        self, pilot_id: str, log: RunLog, context: Optional[StoreContext] = None
    ) -> CommitRunResult:
        return self._call("commit_run", context, lambda store: store.commit_run(pilot_id, log))

    def delete_run_logs_older_than(
        self, cutoff_iso: str, context: Optional[StoreContext] = None
    ) -> int:
        return self._call(
            "delete_run_logs_older_than",
            context,
            lambda store: store.delete_run_logs_older_than(cutoff_iso),
        )

    def get_meta(self, key: str, context: Optional[StoreContext] = None) -> Optional[Any]:
        return self._call("get_meta", context, lambda store: store.get_meta(key))

    def set_meta(self, key: str, value: Any, context: Optional[StoreContext] = None) -> None:
        self._call("set_meta", context, lambda store: store.set_meta(key, value))
