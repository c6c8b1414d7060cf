"""
SQLite-backed pilot store.
"""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator, List, Optional

from workpilot.config import RUN_LOG_LIMIT
from workpilot.ir.spec_schema import Pilot, RunLog
from workpilot.memory.store_contract import CommitRunResult, PilotUpdater

_PILOT_COLUMNS = (
    "id, name, one_liner, record_mode, record_json, inputs_json, steps_json, "
    "credits, version, created_at"
)
_RUN_LOG_COLUMNS = (
    "id, pilot_id, created_at, input_values_json, output_preview, total_tokens, status"
)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _normalize_timestamp(value: str) -> str:
    """Render timestamps in one UTC format so they compare correctly as text."""

    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


class SQLitePilotStore:
    adapter_name = "sqlite"

    def __init__(
        self,
        db_path: Optional[str] = ".workpilot/workpilot.db",
        run_log_limit: int = RUN_LOG_LIMIT,
    ) -> None:
        self.db_path = Path(db_path) if db_path else None
        self.run_log_limit = run_log_limit
        self._write_lock = threading.Lock()
        if self.db_path is not None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._init_db()

    def is_configured(self) -> bool:
        return self.db_path is not None

    def _connect(self) -> sqlite3.Connection:
        if self.db_path is None:
            raise RuntimeError("SQLITE_NOT_CONFIGURED")
        conn = sqlite3.connect(str(self.db_path), timeout=30, isolation_level=None)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        BEGIN IMMEDIATE takes the database write lock up front, so a
        check-then-act inside the block is serialized against other writers.
        """
        with self._write_lock:
            conn = self._connect()
            try:
                conn.execute("BEGIN IMMEDIATE")
                try:
                    yield conn
                except BaseException:
                    conn.execute("ROLLBACK")
                    raise
                conn.execute("COMMIT")
            finally:
                conn.close()

    @contextmanager
    def _reader(self) -> Iterator[sqlite3.Connection]:
        conn = self._connect()
        try:
            yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS pilots (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    one_liner TEXT NOT NULL,
                    record_mode TEXT NOT NULL,
                    record_json TEXT NOT NULL,
                    inputs_json TEXT NOT NULL,
                    steps_json TEXT NOT NULL,
                    credits INTEGER NOT NULL,
                    version INTEGER NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS run_logs (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    id TEXT NOT NULL UNIQUE,
                    pilot_id TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    input_values_json TEXT NOT NULL,
                    output_preview TEXT NOT NULL,
                    total_tokens INTEGER,
                    status TEXT NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE INDEX IF NOT EXISTS idx_run_logs_pilot
                ON run_logs(pilot_id, created_at DESC, seq DESC)
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS app_meta (
                    key TEXT PRIMARY KEY,
                    value_json TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
                """
            )

    def ping(self) -> bool:
        if self.db_path is None:
            return False
        try:
            with self._reader() as conn:
                conn.execute("SELECT key FROM app_meta LIMIT 1").fetchall()
        except sqlite3.Error:
            return False
        return True

    def save_pilot(self, pilot: Pilot) -> Pilot:
        with self._transaction() as conn:
            self._upsert_pilot(conn, pilot)
        return pilot.model_copy(deep=True)

    def get_pilot(self, pilot_id: str) -> Optional[Pilot]:
        with self._reader() as conn:
            return self._fetch_pilot(conn, pilot_id)

    def update_pilot(self, pilot_id: str, updater: PilotUpdater) -> Optional[Pilot]:
        with self._transaction() as conn:
            existing = self._fetch_pilot(conn, pilot_id)
            if existing is None:
                return None
            updated = updater(existing)
            self._upsert_pilot(conn, updated)
        return updated

    def get_run_logs(self, pilot_id: str, limit: int) -> List[RunLog]:
        with self._reader() as conn:
            rows = conn.execute(
                f"""
                SELECT {_RUN_LOG_COLUMNS}
                FROM run_logs
                WHERE pilot_id = ?
                ORDER BY created_at DESC, seq DESC
                LIMIT ?
                """,
                (pilot_id, limit),
            ).fetchall()
        return [self._row_to_run_log(row) for row in rows]

    def commit_run(self, pilot_id: str, log: RunLog) -> CommitRunResult:
        with self._transaction() as conn:
            row = conn.execute(
                "SELECT credits FROM pilots WHERE id = ?", (pilot_id,)
            ).fetchone()
            if row is None:
                return CommitRunResult(status="not_found")
            credits = int(row["credits"])
            if credits <= 0:
                return CommitRunResult(status="insufficient_credits")

            credits_left = max(0, credits - 1)
            conn.execute(
                "UPDATE pilots SET credits = ?, updated_at = ? WHERE id = ?",
                (credits_left, _now_iso(), pilot_id),
            )
            conn.execute(
                f"""
                INSERT INTO run_logs ({_RUN_LOG_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    log.id,
                    pilot_id,
                    _normalize_timestamp(log.created_at),
                    json.dumps(log.input_values, sort_keys=True, ensure_ascii=False),
                    log.output_preview,
                    log.total_tokens,
                    log.status,
                ),
            )
            conn.execute(
                """
                DELETE FROM run_logs
                WHERE pilot_id = ? AND seq NOT IN (
                    SELECT seq FROM run_logs
                    WHERE pilot_id = ?
                    ORDER BY created_at DESC, seq DESC
                    LIMIT ?
                )
                """,
                (pilot_id, pilot_id, self.run_log_limit),
            )
        return CommitRunResult.success(credits_left)

    def delete_run_logs_older_than(self, cutoff_iso: str) -> int:
        with self._transaction() as conn:
            cursor = conn.execute(
                "DELETE FROM run_logs WHERE created_at < ?",
                (_normalize_timestamp(cutoff_iso),),
            )
            return cursor.rowcount

    def get_meta(self, key: str) -> Optional[Any]:
        with self._reader() as conn:
            row = conn.execute(
                "SELECT value_json FROM app_meta WHERE key = ?", (key,)
            ).fetchone()
        return json.loads(row["value_json"]) if row else None

    def set_meta(self, key: str, value: Any) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO app_meta (key, value_json, updated_at) VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value_json = excluded.value_json,
                    updated_at = excluded.updated_at
                """,
                (key, json.dumps(value, sort_keys=True), _now_iso()),
            )

    @staticmethod
    def _upsert_pilot(conn: sqlite3.Connection, pilot: Pilot) -> None:
        conn.execute(
            f"""
            INSERT INTO pilots ({_PILOT_COLUMNS}, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name = excluded.name,
                one_liner = excluded.one_liner,
                record_mode = excluded.record_mode,
                record_json = excluded.record_json,
                inputs_json = excluded.inputs_json,
                steps_json = excluded.steps_json,
                credits = excluded.credits,
                version = excluded.version,
                updated_at = excluded.updated_at
            """,
            (
                pilot.id,
                pilot.name,
                pilot.one_liner,
                pilot.record_mode,
                json.dumps(pilot.record.model_dump(), sort_keys=True, ensure_ascii=False),
                json.dumps([item.model_dump() for item in pilot.inputs], ensure_ascii=False),
                json.dumps([item.model_dump() for item in pilot.steps], ensure_ascii=False),
                pilot.credits,
                pilot.version,
                pilot.created_at,
                _now_iso(),
            ),
        )

    @staticmethod
    def _fetch_pilot(conn: sqlite3.Connection, pilot_id: str) -> Optional[Pilot]:
        row = conn.execute(
            f"SELECT {_PILOT_COLUMNS} FROM pilots WHERE id = ?", (pilot_id,)
        ).fetchone()
        if row is None:
            return None
        return Pilot(
            id=row["id"],
            name=row["name"],
            one_liner=row["one_liner"],
            record_mode=row["record_mode"],
            record=json.loads(row["record_json"]),
            inputs=json.loads(row["inputs_json"]),
            steps=json.loads(row["steps_json"]),
            credits=row["credits"],
            version=row["version"],
            created_at=row["created_at"],
        )

    @staticmethod
    def _row_to_run_log(row: sqlite3.Row) -> RunLog:
        return RunLog(
            id=row["id"],
            pilot_id=row["pilot_id"],
            created_at=row["created_at"],
            input_values=json.loads(row["input_values_json"]),
            output_preview=row["output_preview"],
            total_tokens=row["total_tokens"],
            status=row["status"],
        )
