"""
Exception taxonomy for the Mail Indexer.

Workers never let these escape to the process; the control plane maps them to
JSON error responses.
"""


class MailIndexerError(Exception):
    """Base class for all Mail Indexer errors."""


class ConfigurationError(MailIndexerError):
    """Raised when a required setting (such as the master key) is missing."""


class AuthenticationFailure(MailIndexerError):
    """Raised when a credential token cannot be verified or decrypted."""


class ConnectionFailure(MailIndexerError):
    """Raised when the mail server connection is lost or cannot be established."""


class IndexFailure(MailIndexerError):
    """Raised when the index store rejects a write."""


class MailboxCommandError(MailIndexerError):
    """Raised when the mail server rejects a command but the connection is still usable."""


class CapabilityUnsupported(MailboxCommandError):
    """Raised when the mail server lacks a capability a command needs, such as IDLE."""
