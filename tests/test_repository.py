import pytest

from conftest import make_pilot

from workpilot.memory.memory_store import InMemoryPilotStore
from workpilot.memory.sqlite_store import SQLitePilotStore
from workpilot.memory.store import PilotRepository
from workpilot.memory.store_contract import StoreContext
from workpilot.services.run_service import build_run_log


class BrokenStore(InMemoryPilotStore):
    """Configured primary whose every call fails."""

    adapter_name = "broken"

    def __init__(self, reachable: bool = True) -> None:
        super().__init__()
        self.reachable = reachable
        self.calls = 0

    def ping(self) -> bool:
        return self.reachable

    def save_pilot(self, pilot):
        self.calls += 1
        raise RuntimeError("disk I/O error")

    def get_pilot(self, pilot_id):
        self.calls += 1
        raise RuntimeError("disk I/O error")


def test_unconfigured_database_reports_memory_fallback(repository):
    health = repository.storage_health()
    assert health.storage_mode == "memory-fallback"
    assert health.db_reachable is False
    assert health.fallback_reason == "database path is not configured"
    assert repository.resolve_storage_mode_hint() == "memory-fallback"


def test_unreachable_database_reports_reason():
    repository = PilotRepository(primary=BrokenStore(reachable=False), fallback=InMemoryPilotStore())
    health = repository.storage_health()
    assert health.storage_mode == "memory-fallback"
    assert health.fallback_reason == "database is unreachable"


def test_reachable_database_reports_sqlite(tmp_path):
    repository = PilotRepository(
        primary=SQLitePilotStore(str(tmp_path / "db.sqlite")), fallback=InMemoryPilotStore()
    )
    health = repository.storage_health()
    assert health.storage_mode == "sqlite"
    assert health.db_reachable is True
    assert health.fallback_reason is None
    assert repository.resolve_storage_mode_hint() == "sqlite"


def test_memory_hint_uses_fallback_only(tmp_path):
    primary = SQLitePilotStore(str(tmp_path / "db.sqlite"))
    fallback = InMemoryPilotStore()
    repository = PilotRepository(primary=primary, fallback=fallback)

    repository.save_pilot(make_pilot(), StoreContext(storage_mode_hint="memory-fallback"))

    assert fallback.get_pilot("pilot-1") is not None
    assert primary.get_pilot("pilot-1") is None


def test_sqlite_hint_propagates_primary_errors():
    primary = BrokenStore()
    fallback = InMemoryPilotStore()
    repository = PilotRepository(primary=primary, fallback=fallback)

    with pytest.raises(RuntimeError):
        repository.save_pilot(make_pilot(), StoreContext(storage_mode_hint="sqlite"))
    assert fallback.get_pilot("pilot-1") is None


def test_no_hint_retries_on_fallback():
    primary = BrokenStore()
    fallback = InMemoryPilotStore()
    repository = PilotRepository(primary=primary, fallback=fallback)

    saved = repository.save_pilot(make_pilot(), StoreContext(request_id="req-1"))
    loaded = repository.get_pilot("pilot-1")

    assert saved.id == "pilot-1"
    assert loaded is not None
    assert primary.calls == 2


def test_unconfigured_primary_goes_straight_to_fallback(repository, memory_store):
    repository.save_pilot(make_pilot())
    assert memory_store.get_pilot("pilot-1") is not None
    log = build_run_log(pilot_id="pilot-1", values={}, preview="ok", status="success")
    result = repository.commit_run("pilot-1", log)
    assert result.status == "success"
    assert result.credits_left == 49
