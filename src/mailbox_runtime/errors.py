"""Exception hierarchy for the mailbox runtime.

Every error raised on purpose by this package derives from
MailboxRuntimeError, so callers can separate runtime failures from
programming errors. Each exception renders a one-line diagnostic that
names the path, command, identity or wrapped cause involved.
"""

from typing import Optional


# ============================================================================
# Base
# ============================================================================
class MailboxRuntimeError(Exception):
    """Base class for all errors raised by the mailbox runtime."""
    pass


class ConfigurationError(MailboxRuntimeError, ValueError):
    """Raised when configuration values or documents are invalid.
    This includes:
    - Malformed vendor classification documents
    - Duplicate host entries
    - Out-of-range retry or timeout values
    """
    pass


# ============================================================================
# Adapter Registry Errors
# ============================================================================
class AdapterNotSpecified(MailboxRuntimeError):
    """Raised when a connection specification has no adapter class."""

    def __init__(self, message: str = "No adapter specified for connection") -> None:
        super().__init__(message)


class AdapterNotFound(MailboxRuntimeError):
    """Raised when an adapter name is not registered."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Adapter not found: {name}")


# ============================================================================
# Lock Errors
# ============================================================================
class ResourceLocked(MailboxRuntimeError):
    """Raised when a lock is hard-blocked and refuses new readers or writers."""

    def __init__(self, message: str = "Resource is locked") -> None:
        super().__init__(message)


class LockStateError(RuntimeError):
    """Raised when a lock is released that was never acquired."""
    pass


# ============================================================================
# Protocol Errors
# ============================================================================
class ImapCommandNotSupported(MailboxRuntimeError):
    """Raised when the server lacks a capability the request needs."""

    def __init__(self, command: str) -> None:
        self.command = command
        super().__init__(f"IMAP command not supported: {command}")


# ============================================================================
# Connection Errors
# ============================================================================
class ImapConnectionError(MailboxRuntimeError):
    """Raised when a command on the wire connection fails.
    This includes:
    - Socket and TLS failures
    - Unexpected server responses
    - Any other unexpected error raised while a command was running
    """

    default_message = "Connection error"

    def __init__(self, cause: Optional[BaseException] = None, message: Optional[str] = None) -> None:
        self.cause = cause
        text = message or self.default_message
        if cause is not None:
            text = f"{text}: {type(cause).__name__}: {cause}"
        super().__init__(text)


class ConnectionFailed(ImapConnectionError):
    """Raised when the connect retry policy is exhausted."""

    default_message = "Could not connect to IMAP server"


class AuthenticationFailed(ImapConnectionError):
    """Raised when the login retry policy is exhausted."""

    default_message = "Could not authenticate at IMAP server"


class ConnectionNotEstablished(ImapConnectionError):
    """Raised when an operation targets an identity that has no handler."""

    def __init__(self, identity: object) -> None:
        self.identity = identity
        super().__init__(message=f"Connection not established: {identity!r}")


class ConnectionTerminated(ImapConnectionError):
    """Raised when the connection died mid-call or its task vanished."""

    default_message = "Connection terminated"


class ConnectionTimeout(ImapConnectionError):
    """Raised when a single command exceeds its deadline."""

    def __init__(self, timeout: Optional[float] = None) -> None:
        self.timeout = timeout
        message = "Connection timed out"
        if timeout is not None:
            message = f"{message} after {timeout}s"
        super().__init__(message=message)


# ============================================================================
# Folder Errors
# ============================================================================
class FolderError(MailboxRuntimeError):
    """Raised when a structural folder operation is rejected."""

    action = "Operation on"

    def __init__(self, path: Optional[str], reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{self.action} folder '{path}' not permitted ({reason}).")


class FolderCreationNotPermitted(FolderError):
    action = "Creation of"


class FolderModificationNotPermitted(FolderError):
    action = "Modification of"


class FolderRemovalNotPermitted(FolderError):
    action = "Removal of"
