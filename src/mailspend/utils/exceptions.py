"""Custom exception classes for MailSpend."""


class MailSpendError(Exception):
    """Base exception for MailSpend."""
    pass


class ConfigError(MailSpendError):
    """Configuration-related errors."""
    pass


class GatewayError(MailSpendError):
    """Mailbox gateway errors."""
    pass


class GatewayUnauthenticated(GatewayError):
    """No usable mailbox credential is configured, or the provider rejected it."""
    pass


class GatewayUnavailable(GatewayError):
    """Transport, timeout or provider failure while talking to the mailbox."""
    pass


class LLMError(MailSpendError):
    """LLM processing errors."""
    pass


class StorageError(MailSpendError):
    """Transaction store errors."""
    pass


class PersistenceConflict(StorageError):
    """The store's uniqueness constraint rejected a duplicate insert."""
    pass
