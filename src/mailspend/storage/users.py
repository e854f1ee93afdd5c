"""Read-only access to users managed by the user-management module."""
import sqlite3
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from .database import Database
from .models import User
from mailspend.utils.exceptions import StorageError


def _row_to_user(row: sqlite3.Row) -> User:
    budget = None
    if row["monthly_budget"] is not None:
        try:
            budget = Decimal(str(row["monthly_budget"]))
        except InvalidOperation:
            budget = None
    return User(
        id=row["id"],
        email=row["email"],
        country=row["country"] or "",
        is_active=bool(row["is_active"]),
        monthly_budget=budget
    )


class UserDirectory:
    """Lists users; never mutates them."""

    def __init__(self, db: Database):
        self.db = db

    def list_active_users(self) -> List[User]:
        try:
            with self.db.connect() as conn:
                rows = conn.execute(
                    "SELECT id, email, country, monthly_budget, is_active FROM users "
                    "WHERE is_active = 1 ORDER BY email"
                ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list active users: {e}") from e
        return [_row_to_user(row) for row in rows]

    def get_user(self, user_id: str) -> Optional[User]:
        try:
            with self.db.connect() as conn:
                row = conn.execute(
                    "SELECT id, email, country, monthly_budget, is_active FROM users WHERE id = ?",
                    (user_id,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to load user {user_id}: {e}") from e
        return _row_to_user(row) if row else None
