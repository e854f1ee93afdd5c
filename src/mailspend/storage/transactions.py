"""Transaction store with a storage-level uniqueness constraint."""
import sqlite3
from datetime import date, datetime
from decimal import Decimal
from typing import List, Optional, Sequence

from .database import Database
from .models import Transaction
from mailspend.utils.exceptions import PersistenceConflict, StorageError

_CENT = Decimal("0.01")

_COLUMNS = (
    "id, user_id, amount, merchant, resolved_merchant, category, bank, "
    "payment_method, date, email_html, email_subject, created_at"
)


def amount_key(amount: Decimal) -> str:
    """Canonical text form used in the unique key ('156.4' and '156.40' collide)."""
    return str(Decimal(amount).quantize(_CENT))


def _row_to_transaction(row: sqlite3.Row) -> Transaction:
    return Transaction(
        id=row["id"],
        user_id=row["user_id"],
        amount=Decimal(row["amount"]),
        merchant=row["merchant"],
        resolved_merchant=row["resolved_merchant"] or row["merchant"],
        category=row["category"],
        bank=row["bank"],
        payment_method=row["payment_method"],
        date=date.fromisoformat(row["date"]),
        email_html=row["email_html"] or "",
        email_subject=row["email_subject"] or "",
        created_at=datetime.fromisoformat(row["created_at"])
    )


class TransactionStore:
    """Create and read transactions. No update or delete."""

    def __init__(self, db: Database):
        self.db = db

    def exists(self, user_id: str, amount: Decimal, merchant: str, txn_date: date) -> bool:
        """True if a transaction with this dedup key is already stored."""
        try:
            with self.db.connect() as conn:
                row = conn.execute(
                    "SELECT 1 FROM transactions "
                    "WHERE user_id = ? AND amount = ? AND merchant = ? AND date = ?",
                    (user_id, amount_key(amount), merchant, txn_date.isoformat())
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Dedup lookup failed: {e}") from e
        return row is not None

    def insert(self, txn: Transaction) -> None:
        """
        Insert a new transaction.

        Raises:
            PersistenceConflict: The dedup key is already taken
            StorageError: Any other database failure
        """
        try:
            with self.db.connect() as conn:
                conn.execute(
                    f"INSERT INTO transactions ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        txn.id,
                        txn.user_id,
                        amount_key(txn.amount),
                        txn.merchant,
                        txn.resolved_merchant,
                        txn.category,
                        txn.bank,
                        txn.payment_method,
                        txn.date.isoformat(),
                        txn.email_html,
                        txn.email_subject,
                        txn.created_at.isoformat()
                    )
                )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e).upper():
                raise PersistenceConflict(
                    f"Transaction already stored for user {txn.user_id}: "
                    f"{txn.merchant} {amount_key(txn.amount)} on {txn.date.isoformat()}"
                ) from e
            raise StorageError(f"Failed to insert transaction: {e}") from e
        except sqlite3.Error as e:
            raise StorageError(f"Failed to insert transaction: {e}") from e

    def list_for_user(
        self,
        user_id: str,
        start: Optional[date] = None,
        end: Optional[date] = None,
        categories: Optional[Sequence[str]] = None
    ) -> List[Transaction]:
        """Transactions of one user, newest first, optionally by date range and category."""
        query = f"SELECT {_COLUMNS} FROM transactions WHERE user_id = ?"
        params: list = [user_id]

        if start:
            query += " AND date >= ?"
            params.append(start.isoformat())
        if end:
            query += " AND date <= ?"
            params.append(end.isoformat())
        if categories:
            query += f" AND category IN ({', '.join('?' for _ in categories)})"
            params.extend(categories)

        query += " ORDER BY date DESC, created_at DESC"

        try:
            with self.db.connect() as conn:
                rows = conn.execute(query, params).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list transactions for {user_id}: {e}") from e
        return [_row_to_transaction(row) for row in rows]

    def count_for_user(self, user_id: str) -> int:
        try:
            with self.db.connect() as conn:
                return conn.execute(
                    "SELECT COUNT(*) FROM transactions WHERE user_id = ?", (user_id,)
                ).fetchone()[0]
        except sqlite3.Error as e:
            raise StorageError(f"Failed to count transactions for {user_id}: {e}") from e
