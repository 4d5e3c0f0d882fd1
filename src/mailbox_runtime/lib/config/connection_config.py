"""Connection lifecycle configuration."""

import os
from dataclasses import dataclass, field

from mailbox_runtime.errors import ConfigurationError

ENV_PREFIX = "MAILBOX_RUNTIME_"


def _env(name: str, default: str) -> str:
    return os.getenv(f"{ENV_PREFIX}{name}", default)


@dataclass(frozen=True)
class RetryPolicy:
    """Bounded retry for one phase of connection establishment.

    Attributes:
        timeout: Seconds a single attempt may take
        attempts: Maximum number of attempts
        delay: Seconds to sleep after a failed attempt
    """

    timeout: float
    attempts: int
    delay: float

    @classmethod
    def from_env(cls, phase: str, default: "RetryPolicy") -> "RetryPolicy":
        """Create policy from MAILBOX_RUNTIME_<PHASE>_* variables."""
        phase = phase.upper()
        return cls(
            timeout=float(_env(f"{phase}_TIMEOUT", str(default.timeout))),
            attempts=int(_env(f"{phase}_ATTEMPTS", str(default.attempts))),
            delay=float(_env(f"{phase}_DELAY", str(default.delay))),
        )

    def validate(self, phase: str) -> None:
        """Validate policy values."""
        if self.timeout <= 0:
            raise ConfigurationError(f"{phase} timeout must be positive")
        if self.attempts < 1:
            raise ConfigurationError(f"{phase} attempts must be at least 1")
        if self.delay < 0:
            raise ConfigurationError(f"{phase} delay must be non-negative")


DEFAULT_CONNECT_POLICY = RetryPolicy(timeout=5.0, attempts=3, delay=2.0)
DEFAULT_LOGIN_POLICY = RetryPolicy(timeout=8.0, attempts=2, delay=1.0)


@dataclass(frozen=True)
class ConnectionConfig:
    """Configuration for connection handlers and the cleanup sweep."""

    # Establishment phases, each with its own budget
    connect: RetryPolicy = field(default=DEFAULT_CONNECT_POLICY)
    login: RetryPolicy = field(default=DEFAULT_LOGIN_POLICY)

    # Probe timeouts (seconds)
    disconnect_timeout: float = 2.0
    noop_timeout: float = 2.0

    # Cleanup sweep
    observer_interval: float = 10.0
    task_timeout: float = 0  # 0 disables task reaping
    connection_timeout: float = 600.0
    session_timeout: float = 1800.0

    # Socket timeout handed to the IMAP client (None blocks until torn down)
    socket_timeout: float | None = None

    @classmethod
    def from_env(cls) -> "ConnectionConfig":
        """Create config from environment variables."""
        socket_timeout = _env("SOCKET_TIMEOUT", "")
        return cls(
            connect=RetryPolicy.from_env("CONNECT", DEFAULT_CONNECT_POLICY),
            login=RetryPolicy.from_env("LOGIN", DEFAULT_LOGIN_POLICY),
            disconnect_timeout=float(_env("DISCONNECT_TIMEOUT", "2")),
            noop_timeout=float(_env("NOOP_TIMEOUT", "2")),
            observer_interval=float(_env("OBSERVER_INTERVAL", "10")),
            task_timeout=float(_env("TASK_TIMEOUT", "0")),
            connection_timeout=float(_env("CONNECTION_TIMEOUT", "600")),
            session_timeout=float(_env("SESSION_TIMEOUT", "1800")),
            socket_timeout=float(socket_timeout) if socket_timeout else None,
        )

    def validate(self) -> None:
        """Validate configuration."""
        self.connect.validate("Connect")
        self.login.validate("Login")

        if self.disconnect_timeout <= 0:
            raise ConfigurationError("Disconnect timeout must be positive")

        if self.noop_timeout <= 0:
            raise ConfigurationError("NOOP timeout must be positive")

        if self.observer_interval <= 0:
            raise ConfigurationError("Observer interval must be positive")

        if min(self.task_timeout, self.connection_timeout, self.session_timeout) < 0:
            raise ConfigurationError("Timeouts must be non-negative")

        if self.socket_timeout is not None and self.socket_timeout <= 0:
            raise ConfigurationError("Socket timeout must be positive")
