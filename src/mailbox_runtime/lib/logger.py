"""Logging with credential sanitization for the mailbox runtime."""

import logging
import re
from pathlib import Path
from typing import Optional

from mailbox_runtime.lib.config import app_config


class CredentialSanitizer:
    """Sanitize account identifiers and secrets from log messages."""

    # Regex patterns for sensitive data detection
    EMAIL_PATTERN = re.compile(r"\b[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Z|a-z]{2,}\b")
    PASSWORD_PATTERN = re.compile(r"(password\s*[=:]\s*)(\S+)", re.IGNORECASE)
    LOGIN_PATTERN = re.compile(r"(\bLOGIN\s+\S+\s+)(\S+)", re.IGNORECASE)

    @classmethod
    def sanitize_email(cls, text: str) -> str:
        """Replace email addresses with sanitized version."""
        return cls.EMAIL_PATTERN.sub(lambda m: f"***@{m.group(0).split('@')[1]}", text)

    @classmethod
    def sanitize_password(cls, text: str) -> str:
        """Mask password assignments and LOGIN command arguments."""
        text = cls.PASSWORD_PATTERN.sub(r"\1***", text)
        return cls.LOGIN_PATTERN.sub(r"\1***", text)

    @classmethod
    def sanitize(cls, text: str) -> str:
        """Apply all sanitization rules to text."""
        if not isinstance(text, str):
            text = str(text)

        text = cls.sanitize_password(text)
        text = cls.sanitize_email(text)

        return text


class SanitizingFormatter(logging.Formatter):
    """Custom formatter that sanitizes credentials from log records."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record with credential sanitization."""
        if isinstance(record.msg, str):
            record.msg = CredentialSanitizer.sanitize(record.msg)

        if record.args:
            sanitized_args = tuple(
                CredentialSanitizer.sanitize(arg) if isinstance(arg, str) else arg
                for arg in record.args
            )
            record.args = sanitized_args

        return super().format(record)


def setup_logger(
    name: str,
    level: Optional[str] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """
    Set up a logger with credential sanitization.

    Args:
        name: Logger name (usually __name__)
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional file path for file logging

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    log_level = level or app_config.log_level
    logger.setLevel(getattr(logging, log_level.upper()))

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    formatter = SanitizingFormatter(
        fmt=app_config.log_format,
        datefmt=app_config.log_date_format,
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str, log_file: Optional[str] = None) -> logging.Logger:
    """
    Get or create a logger for the given module.

    Args:
        name: Logger name (usually __name__)
        log_file: Optional log file name (placed in the configured log dir)

    Returns:
        Configured logger instance
    """
    log_path = None
    if log_file and app_config.log_dir:
        log_path = app_config.log_dir / log_file

    return setup_logger(name, log_file=log_path)
