"""Logging infrastructure with user context."""
import logging
import os
import sys
import threading
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Optional


def get_app_dir() -> Path:
    """Return the directory holding logs, caches, the database and lock files."""
    app_dir = Path(os.getenv("MAILSPEND_HOME") or Path.home() / ".mailspend")
    app_dir.mkdir(parents=True, exist_ok=True)
    return app_dir


class UserContextFilter(logging.Filter):
    """Add the current worker's user id to log records."""

    def __init__(self):
        super().__init__()
        self._local = threading.local()

    @property
    def user_id(self) -> Optional[str]:
        return getattr(self._local, "user_id", None)

    @user_id.setter
    def user_id(self, value: Optional[str]) -> None:
        self._local.user_id = value

    def filter(self, record):
        """Add user_id to record."""
        record.user_id = self.user_id or "system"
        return True


class MailSpendLogger:
    """Centralized logging manager."""

    def __init__(self, log_level: str = "INFO"):
        self.log_dir = get_app_dir() / "logs"
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.log_file = self.log_dir / "service.log"
        self.user_filter = UserContextFilter()

        self.logger = logging.getLogger("mailspend")
        self.logger.setLevel(getattr(logging, log_level.upper()))
        self.logger.propagate = False

        # Remove existing handlers
        self.logger.handlers.clear()

        # File handler with rotation (30 files, 10MB per file)
        file_handler = RotatingFileHandler(
            self.log_file,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=30,
            encoding="utf-8"
        )
        file_handler.setLevel(logging.DEBUG)

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.INFO)

        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] [user:%(user_id)s] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )

        file_handler.setFormatter(formatter)
        console_handler.setFormatter(formatter)

        file_handler.addFilter(self.user_filter)
        console_handler.addFilter(self.user_filter)

        self.logger.addHandler(file_handler)
        self.logger.addHandler(console_handler)

    def set_level(self, log_level: str) -> None:
        self.logger.setLevel(getattr(logging, log_level.upper()))

    def set_user_context(self, user_id: Optional[str]):
        """Set current user context for logging (per thread)."""
        self.user_filter.user_id = user_id

    def get_logger(self) -> logging.Logger:
        """Get the configured logger."""
        return self.logger


# Global logger instance
_logger_instance: Optional[MailSpendLogger] = None


def get_logger(log_level: str = "INFO") -> logging.Logger:
    """Get or create global logger instance."""
    global _logger_instance
    if _logger_instance is None:
        _logger_instance = MailSpendLogger(log_level)
    return _logger_instance.get_logger()


def set_log_level(log_level: str) -> None:
    """Change the level of the global logger once configuration is loaded."""
    get_logger()
    _logger_instance.set_level(log_level)


def set_user_context(user_id: Optional[str]):
    """Set user context for logging in the calling thread."""
    global _logger_instance
    if _logger_instance:
        _logger_instance.set_user_context(user_id)
