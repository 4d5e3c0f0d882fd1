"""Server classification configuration."""

import os
from dataclasses import dataclass
from pathlib import Path

from mailbox_runtime.errors import ConfigurationError

DEFAULT_VENDOR_FILE = Path(__file__).resolve().parents[2] / "classification" / "data" / "classification.yml"


def _flag(name: str, default: str = "true") -> bool:
    return os.getenv(f"MAILBOX_RUNTIME_{name}", default).lower() == "true"


@dataclass(frozen=True)
class ClassificationConfig:
    """Configuration for picking an adapter for an unknown server."""

    # Methods, tried in this order
    known_hosts: bool = True
    server_responses: bool = True
    server_capabilities: bool = True

    # Probe connection timeout (seconds)
    default_timeout: float = 10.0

    # kNN parameters
    min_quantity: int = 5
    max_distance: int = 3
    number_of_neighbours: int = 3

    # Vendor/host/fingerprint document
    vendor_file: Path = DEFAULT_VENDOR_FILE

    @classmethod
    def from_env(cls) -> "ClassificationConfig":
        """Create config from environment variables."""
        vendor_file = os.getenv("MAILBOX_RUNTIME_VENDOR_FILE")
        return cls(
            known_hosts=_flag("CLASSIFY_BY_HOSTS"),
            server_responses=_flag("CLASSIFY_BY_RESPONSES"),
            server_capabilities=_flag("CLASSIFY_BY_CAPABILITIES"),
            default_timeout=float(os.getenv("MAILBOX_RUNTIME_PROBE_TIMEOUT", "10")),
            min_quantity=int(os.getenv("MAILBOX_RUNTIME_KNN_MIN_QUANTITY", "5")),
            max_distance=int(os.getenv("MAILBOX_RUNTIME_KNN_MAX_DISTANCE", "3")),
            number_of_neighbours=int(os.getenv("MAILBOX_RUNTIME_KNN_NEIGHBOURS", "3")),
            vendor_file=Path(vendor_file) if vendor_file else DEFAULT_VENDOR_FILE,
        )

    def validate(self) -> None:
        """Validate configuration."""
        if self.default_timeout <= 0:
            raise ConfigurationError("Probe timeout must be positive")

        if self.min_quantity < 0:
            raise ConfigurationError("kNN minimum quantity must be non-negative")

        if self.number_of_neighbours < 1:
            raise ConfigurationError("kNN neighbour count must be at least 1")
