"""Shared mailbox access."""
from .auth import MailboxCredentials
from .gateway import GmailGateway
from .models import EmailAttachment, EmailImage, RawEmail

__all__ = ["MailboxCredentials", "GmailGateway", "EmailAttachment", "EmailImage", "RawEmail"]
