"""Application-level configuration."""

import os
from dataclasses import dataclass
from pathlib import Path

from mailbox_runtime.errors import ConfigurationError


@dataclass(frozen=True)
class AppConfig:
    """Configuration for application settings."""

    # Logging settings
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_date_format: str = "%Y-%m-%d %H:%M:%S"
    log_dir: Path | None = None

    # Keyring service used for account passwords
    keyring_service: str = "mailbox_runtime_imap"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """Create config from environment variables."""
        log_dir = os.getenv("MAILBOX_RUNTIME_LOG_DIR")
        return cls(
            log_level=os.getenv("MAILBOX_RUNTIME_LOG_LEVEL", "INFO"),
            log_dir=Path(log_dir) if log_dir else None,
            keyring_service=os.getenv("MAILBOX_RUNTIME_KEYRING_SERVICE", "mailbox_runtime_imap"),
        )

    def validate(self) -> None:
        """Validate configuration."""
        valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_log_levels:
            raise ConfigurationError(
                f"Log level must be one of {valid_log_levels}, got {self.log_level}"
            )

        if not self.keyring_service:
            raise ConfigurationError("Keyring service name must not be empty")
