"""Audit log of batch runs."""
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import uuid4

from .database import Database
from mailspend.utils.exceptions import StorageError

COUNTER_COLUMNS = (
    "users_processed",
    "emails_processed",
    "transactions_created",
    "duplicates_skipped",
    "not_transactions",
    "emails_failed",
    "errors",
)


@dataclass
class BatchRunRecord:
    run_id: str
    started_at: datetime
    completed_at: Optional[datetime]
    window_start: datetime
    window_end: datetime
    state: str
    aborted: bool
    counters: Dict[str, int]


class BatchRunLog:
    """Records each batch run's window, final state and counters."""

    def __init__(self, db: Database):
        self.db = db

    def start_run(self, window_start: datetime, window_end: datetime, state: str) -> str:
        run_id = str(uuid4())
        try:
            with self.db.connect() as conn:
                conn.execute(
                    "INSERT INTO batch_runs (run_id, started_at, window_start, window_end, state) "
                    "VALUES (?, ?, ?, ?, ?)",
                    (
                        run_id,
                        datetime.now(timezone.utc).isoformat(),
                        window_start.isoformat(),
                        window_end.isoformat(),
                        state
                    )
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to record run start: {e}") from e
        return run_id

    def complete_run(self, run_id: str, state: str, aborted: bool, counters: Dict[str, int]) -> None:
        assignments = ", ".join(f"{column} = ?" for column in COUNTER_COLUMNS)
        values = [counters.get(column, 0) for column in COUNTER_COLUMNS]
        try:
            with self.db.connect() as conn:
                conn.execute(
                    f"UPDATE batch_runs SET completed_at = ?, state = ?, aborted = ?, {assignments} "
                    "WHERE run_id = ?",
                    [datetime.now(timezone.utc).isoformat(), state, int(aborted), *values, run_id]
                )
        except sqlite3.Error as e:
            raise StorageError(f"Failed to record run completion: {e}") from e

    def list_runs(self, limit: int = 20) -> List[BatchRunRecord]:
        try:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT * FROM batch_runs ORDER BY started_at DESC LIMIT ?", (limit,)
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list runs: {e}") from e

        return [
            BatchRunRecord(
                run_id=row["run_id"],
                started_at=datetime.fromisoformat(row["started_at"]),
                completed_at=datetime.fromisoformat(row["completed_at"]) if row["completed_at"] else None,
                window_start=datetime.fromisoformat(row["window_start"]),
                window_end=datetime.fromisoformat(row["window_end"]),
                state=row["state"],
                aborted=bool(row["aborted"]),
                counters={column: row[column] for column in COUNTER_COLUMNS}
            )
            for row in rows
        ]
