import threading
from datetime import datetime, timedelta, timezone

import pytest

from conftest import make_pilot

from workpilot.ir.spec_schema import RunLog
from workpilot.memory.memory_store import InMemoryPilotStore
from workpilot.memory.sqlite_store import SQLitePilotStore


@pytest.fixture(params=["memory", "sqlite"])
def store(request, tmp_path):
    if request.param == "memory":
        return InMemoryPilotStore()
    return SQLitePilotStore(str(tmp_path / "store.db"))


def _log(index: int, pilot_id: str = "pilot-1", created_at: datetime = None) -> RunLog:
    created = created_at or datetime(2026, 3, 1, tzinfo=timezone.utc) + timedelta(seconds=index)
    return RunLog(
        id=f"log-{pilot_id}-{index}",
        pilot_id=pilot_id,
        created_at=created.isoformat(),
        input_values={"company_name": f"c{index}"},
        output_preview=f"output {index}",
        status="success",
    )


def test_save_and_get_round_trip(store):
    pilot = make_pilot()
    store.save_pilot(pilot)
    loaded = store.get_pilot("pilot-1")
    assert loaded == pilot
    assert store.get_pilot("missing") is None


def test_update_pilot_applies_updater(store):
    store.save_pilot(make_pilot())
    updated = store.update_pilot("pilot-1", lambda p: p.model_copy(update={"name": "Renamed"}))
    assert updated.name == "Renamed"
    assert store.get_pilot("pilot-1").name == "Renamed"
    assert store.update_pilot("missing", lambda p: p) is None


def test_commit_success_decrements_credits_and_appends_log(store):
    store.save_pilot(make_pilot(credits=3))
    result = store.commit_run("pilot-1", _log(1))

    assert result.status == "success"
    assert result.credits_left == 2
    assert store.get_pilot("pilot-1").credits == 2
    logs = store.get_run_logs("pilot-1", 10)
    assert [log.id for log in logs] == ["log-pilot-1-1"]


def test_commit_unknown_pilot_mutates_nothing(store):
    store.save_pilot(make_pilot(credits=3))
    result = store.commit_run("missing", _log(1, pilot_id="missing"))

    assert result.status == "not_found"
    assert result.credits_left is None
    assert store.get_run_logs("missing", 10) == []
    assert store.get_pilot("pilot-1").credits == 3


def test_commit_without_credits_never_goes_negative(store):
    store.save_pilot(make_pilot(credits=0))
    for index in range(3):
        assert store.commit_run("pilot-1", _log(index)).status == "insufficient_credits"

    assert store.get_pilot("pilot-1").credits == 0
    assert store.get_run_logs("pilot-1", 10) == []


def test_last_credit_can_only_be_spent_once_concurrently(store):
    store.save_pilot(make_pilot(credits=1))
    barrier = threading.Barrier(2)
    results = []

    def commit(index):
        barrier.wait()
        results.append(store.commit_run("pilot-1", _log(index)))

    threads = [threading.Thread(target=commit, args=(index,)) for index in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    statuses = sorted(result.status for result in results)
    assert statuses == ["insufficient_credits", "success"]
    winner = next(result for result in results if result.status == "success")
    assert winner.credits_left == 0
    assert store.get_pilot("pilot-1").credits == 0
    assert len(store.get_run_logs("pilot-1", 10)) == 1


def test_run_logs_are_capped_newest_first(store):
    store.save_pilot(make_pilot(credits=500))
    for index in range(201):
        assert store.commit_run("pilot-1", _log(index)).status == "success"

    logs = store.get_run_logs("pilot-1", 500)
    assert len(logs) == 200
    assert logs[0].id == "log-pilot-1-200"
    assert logs[-1].id == "log-pilot-1-1"
    assert "log-pilot-1-0" not in {log.id for log in logs}


def test_get_run_logs_honours_limit(store):
    store.save_pilot(make_pilot())
    for index in range(5):
        store.commit_run("pilot-1", _log(index))
    assert [log.id for log in store.get_run_logs("pilot-1", 3)] == [
        "log-pilot-1-4",
        "log-pilot-1-3",
        "log-pilot-1-2",
    ]


def test_delete_run_logs_older_than_cutoff(store):
    store.save_pilot(make_pilot())
    store.save_pilot(make_pilot(id="pilot-2"))
    old = datetime(2025, 1, 1, tzinfo=timezone.utc)
    recent = datetime(2026, 6, 1, tzinfo=timezone.utc)
    store.commit_run("pilot-1", _log(1, created_at=old))
    store.commit_run("pilot-1", _log(2, created_at=recent))
    store.commit_run("pilot-2", _log(3, pilot_id="pilot-2", created_at=old))

    deleted = store.delete_run_logs_older_than(datetime(2026, 1, 1, tzinfo=timezone.utc).isoformat())

    assert deleted == 2
    assert [log.id for log in store.get_run_logs("pilot-1", 10)] == ["log-pilot-1-2"]
    assert store.get_run_logs("pilot-2", 10) == []


def test_meta_round_trip(store):
    assert store.get_meta("last_retention_at") is None
    store.set_meta("last_retention_at", {"executed_at": "2026-01-01T00:00:00+00:00", "deleted_count": 2})
    store.set_meta("last_retention_at", {"executed_at": "2026-01-02T00:00:00+00:00", "deleted_count": 0})
    assert store.get_meta("last_retention_at") == {
        "executed_at": "2026-01-02T00:00:00+00:00",
        "deleted_count": 0,
    }


def test_memory_store_returns_copies():
    store = InMemoryPilotStore()
    store.save_pilot(make_pilot())
    loaded = store.get_pilot("pilot-1")
    loaded.steps[0].title = "changed"
    assert store.get_pilot("pilot-1").steps[0].title == "Collect"


def test_unconfigured_sqlite_store_reports_unavailable():
    store = SQLitePilotStore(None)
    assert store.is_configured() is False
    assert store.ping() is False
    with pytest.raises(RuntimeError):
        store.get_pilot("pilot-1")


def test_memory_store_does_not_track_locks_for_unknown_pilots():
    store = InMemoryPilotStore()
    store.save_pilot(make_pilot())

    for index in range(1000):
        assert store.commit_run(f"ghost-{index}", _log(index, pilot_id="ghost")).status == "not_found"
        assert store.update_pilot(f"ghost-{index}", lambda p: p) is None
    store.commit_run("pilot-1", _log(1))

    assert list(store._pilot_locks) == ["pilot-1"]
