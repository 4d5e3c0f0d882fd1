"""Known vendors: their hosts, capability fingerprints and unique features.

The shipped table lives in data/classification.yml:

    vendors:
      - id: Dovecot
        hosts: [imap.example.org]
        capabilities:
          - [IMAP4REV1, LITERAL+, SASL-IR, ...]
        features: ["^XDOVECOT"]

Vendor ids are adapter names, so a classification result can be looked up in
an AdapterRegistry directly.
"""

import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional

import yaml

from mailbox_runtime.errors import ConfigurationError
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.models.capability import CapabilitySet

logger = get_logger(__name__)


@dataclass
class VendorFingerprint:
    """Everything known about one vendor.

    Attributes:
        vendor: Vendor id (also the adapter name)
        fingerprints: Reference capability sets observed on the vendor's servers
        hosts: Host names known to run the vendor's server
        features: Regular expression prefixes of capabilities only this vendor advertises
    """

    vendor: str
    fingerprints: list[CapabilitySet] = field(default_factory=list)
    hosts: list[str] = field(default_factory=list)
    features: list[str] = field(default_factory=list)


class VendorRegistry:
    """Lookup tables for the classifier."""

    def __init__(self) -> None:
        self._vendors: dict[str, VendorFingerprint] = {}
        self._hosts: dict[str, str] = {}
        self._lock = threading.RLock()

    @classmethod
    def from_yaml(cls, path: "Path | str") -> "VendorRegistry":
        """Load a vendor document.

        Raises:
            ConfigurationError: The file is unreadable, malformed, or lists a
                host under two vendors
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                document = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read vendor file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Malformed vendor file {path}: {e}") from e

        entries = document.get("vendors") if isinstance(document, dict) else None
        if not isinstance(entries, list):
            raise ConfigurationError(f"Vendor file {path} has no 'vendors' list")

        registry = cls()
        for entry in entries:
            if not isinstance(entry, dict) or not entry.get("id"):
                raise ConfigurationError(f"Vendor entry without id in {path}: {entry!r}")
            vendor = str(entry["id"])
            registry.register_vendor(vendor)
            for host in entry.get("hosts") or ():
                if not registry.register_host(vendor, str(host)):
                    raise ConfigurationError(
                        f"Host {host!r} listed for both {registry.vendor_for_host(str(host))!r} and {vendor!r}"
                    )
            for capabilities in entry.get("capabilities") or ():
                registry.register_fingerprint(vendor, capabilities)
            for feature in entry.get("features") or ():
                registry.register_feature(vendor, str(feature))

        logger.debug(f"Loaded {len(registry.vendors())} vendors from {path}")
        return registry

    # ========================================================================
    # Registration
    # ========================================================================
    def register_vendor(self, vendor: str) -> bool:
        with self._lock:
            self._vendors.setdefault(vendor, VendorFingerprint(vendor))
        return True

    def register_host(self, vendor: str, host: str) -> bool:
        """Map host to vendor; False if the host already belongs to a vendor."""
        host = host.lower()
        with self._lock:
            if host in self._hosts:
                return False
            self.register_vendor(vendor)
            self._hosts[host] = vendor
            self._vendors[vendor].hosts.append(host)
        return True

    def register_fingerprint(self, vendor: str, capabilities: Iterable[str]) -> bool:
        with self._lock:
            self.register_vendor(vendor)
            self._vendors[vendor].fingerprints.append(CapabilitySet(capabilities))
        return True

    def register_feature(self, vendor: str, prefix: str) -> bool:
        with self._lock:
            self.register_vendor(vendor)
            self._vendors[vendor].features.append(prefix)
        return True

    # ========================================================================
    # Lookup
    # ========================================================================
    def vendors(self) -> list[str]:
        with self._lock:
            return list(self._vendors)

    def vendor(self, vendor: str) -> Optional[VendorFingerprint]:
        with self._lock:
            return self._vendors.get(vendor)

    def hosts(self, vendor: Optional[str] = None) -> "dict[str, str] | list[str]":
        """Host table, or the hosts of one vendor."""
        with self._lock:
            if vendor is None:
                return dict(self._hosts)
            entry = self._vendors.get(vendor)
            return list(entry.hosts) if entry else []

    def vendor_for_host(self, host: str) -> Optional[str]:
        """Vendor registered for host; hostnames are matched case-insensitively."""
        with self._lock:
            return self._hosts.get(host.lower())

    def fingerprints(self, vendor: str) -> list[CapabilitySet]:
        with self._lock:
            entry = self._vendors.get(vendor)
            return list(entry.fingerprints) if entry else []

    def features(self) -> list[tuple[str, str]]:
        """(vendor, prefix) pairs in registration order."""
        with self._lock:
            return [(v.vendor, prefix) for v in self._vendors.values() for prefix in v.features]

    def __len__(self) -> int:
        with self._lock:
            return len(self._vendors)
