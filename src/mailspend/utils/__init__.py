"""Utility modules."""
from .logger import get_logger, set_user_context, get_app_dir
from .exceptions import (
    MailSpendError,
    ConfigError,
    GatewayError,
    GatewayUnauthenticated,
    GatewayUnavailable,
    LLMError,
    StorageError,
    PersistenceConflict
)
from .retry import retry_with_backoff

__all__ = [
    "get_logger",
    "set_user_context",
    "get_app_dir",
    "MailSpendError",
    "ConfigError",
    "GatewayError",
    "GatewayUnauthenticated",
    "GatewayUnavailable",
    "LLMError",
    "StorageError",
    "PersistenceConflict",
    "retry_with_backoff"
]
