"""Data models for persisted records."""
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional
from uuid import uuid4


@dataclass
class User:
    """Read-only view of a user owned by the user-management module."""
    id: str
    email: str  # attribution key
    country: str
    is_active: bool = True
    monthly_budget: Optional[Decimal] = None


@dataclass
class Transaction:
    """Durable expense record; unique on (user_id, amount, merchant, date)."""
    user_id: str
    amount: Decimal
    merchant: str  # raw label from the email
    resolved_merchant: str
    category: str
    bank: str
    date: date
    payment_method: Optional[str] = None
    email_html: str = ""  # truncated snapshot
    email_subject: str = ""
    id: str = field(default_factory=lambda: str(uuid4()))
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class EmailMeta:
    """What the materializer keeps from the source email."""
    message_id: str
    subject: str
    html_body: str
    sent_at: Optional[datetime] = None


@dataclass
class MaterializeOutcome:
    created: Optional[Transaction] = None
    skipped: bool = False  # duplicate, including a conflict caught by the unique constraint
