"""Configuration management for the mailbox runtime."""

from dotenv import load_dotenv

from mailbox_runtime.lib.config.app_config import AppConfig
from mailbox_runtime.lib.config.classification_config import ClassificationConfig
from mailbox_runtime.lib.config.connection_config import ConnectionConfig, RetryPolicy

# Load environment variables from .env file
load_dotenv()

# Load and validate all configs
app_config = AppConfig.from_env()
connection_config = ConnectionConfig.from_env()
classification_config = ClassificationConfig.from_env()

# Validate
app_config.validate()
connection_config.validate()
classification_config.validate()

__all__ = [
    "app_config",
    "connection_config",
    "classification_config",
    "AppConfig",
    "ConnectionConfig",
    "ClassificationConfig",
    "RetryPolicy",
]
