from workpilot.memory.memory_store import InMemoryPilotStore
from workpilot.memory.sqlite_store import SQLitePilotStore
from workpilot.memory.store import PilotRepository, StorageHealth
from workpilot.memory.store_contract import CommitRunResult, PilotStore, StoreContext

__all__ = [
    "CommitRunResult",
    "InMemoryPilotStore",
    "PilotRepository",
    "PilotStore",
    "SQLitePilotStore",
    "StorageHealth",
    "StoreContext",
]
