"""Data models for mailbox operations."""
from dataclasses import dataclass, field
from datetime import datetime
from email.utils import parseaddr, parsedate_to_datetime
from typing import List, Optional


@dataclass
class EmailAttachment:
    """Attachment reference inside a fetched message."""
    filename: str
    mime_type: str
    attachment_id: str  # Gmail attachment id

    @property
    def is_image(self) -> bool:
        return self.mime_type.lower().startswith("image/")


@dataclass
class RawEmail:
    """Message as fetched from the shared mailbox."""
    id: str  # Gmail message id
    subject: str
    from_address: str  # raw From header, e.g. 'Ana <ana@example.com>'
    to_address: str
    date: str  # raw Date header
    html_body: str
    attachments: List[EmailAttachment] = field(default_factory=list)
    internal_date: Optional[datetime] = None  # provider receive time

    @property
    def sender(self) -> str:
        """Bare, lower-cased address of the From header."""
        return normalize_address(self.from_address)

    def sent_at(self) -> Optional[datetime]:
        """Parsed Date header, falling back to the provider receive time."""
        if self.date:
            try:
                return parsedate_to_datetime(self.date)
            except (TypeError, ValueError, IndexError):
                pass
        return self.internal_date


@dataclass
class EmailImage:
    """Image attachment bytes handed to the extractor."""
    data: bytes
    mime_type: str


def normalize_address(value: str) -> str:
    return parseaddr(value or "")[1].strip().lower()
