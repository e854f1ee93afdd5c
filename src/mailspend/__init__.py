"""MailSpend: turns forwarded bank notification emails into per-user transactions."""

__version__ = "0.1.0"
