"""SQLite database holding users, transactions and batch runs."""
import sqlite3
from contextlib import closing, contextmanager
from pathlib import Path
from typing import Iterator

from mailspend.utils.exceptions import StorageError

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    email TEXT NOT NULL UNIQUE,
    country TEXT NOT NULL DEFAULT '',
    monthly_budget TEXT,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE TABLE IF NOT EXISTS transactions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL REFERENCES users(id),
    amount TEXT NOT NULL,
    merchant TEXT NOT NULL,
    resolved_merchant TEXT,
    category TEXT NOT NULL,
    bank TEXT NOT NULL,
    payment_method TEXT,
    date TEXT NOT NULL,
    email_html TEXT,
    email_subject TEXT,
    created_at TEXT NOT NULL,
    UNIQUE(user_id, amount, merchant, date)
);

CREATE INDEX IF NOT EXISTS idx_transactions_user_date ON transactions(user_id, date);

CREATE TABLE IF NOT EXISTS batch_runs (
    run_id TEXT PRIMARY KEY,
    started_at TEXT NOT NULL,
    completed_at TEXT,
    window_start TEXT NOT NULL,
    window_end TEXT NOT NULL,
    state TEXT NOT NULL,
    aborted INTEGER NOT NULL DEFAULT 0,
    users_processed INTEGER NOT NULL DEFAULT 0,
    emails_processed INTEGER NOT NULL DEFAULT 0,
    transactions_created INTEGER NOT NULL DEFAULT 0,
    duplicates_skipped INTEGER NOT NULL DEFAULT 0,
    not_transactions INTEGER NOT NULL DEFAULT 0,
    emails_failed INTEGER NOT NULL DEFAULT 0,
    errors INTEGER NOT NULL DEFAULT 0
);
"""


class Database:
    """Opens a short-lived connection per operation, so it is safe across worker threads."""

    def __init__(self, db_path: Path, timeout_seconds: float = 30.0):
        self.db_path = Path(db_path)
        self.timeout_seconds = timeout_seconds
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self) -> None:
        with self.connect() as conn:
            conn.executescript(SCHEMA)

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Connection that commits on success, rolls back on error and always closes."""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout_seconds)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open database {self.db_path}: {e}") from e

        with closing(conn):
            conn.row_factory = sqlite3.Row
            with conn:
                yield conn
