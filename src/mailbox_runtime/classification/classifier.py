"""Pick the adapter for a server nobody told us about.

AIDEV-NOTE: Classification order
- Known hosts: exact host lookup in the vendor table
- Server responses: vendor name inside the greeting, then inside the BYE text
- Capabilities: unique feature prefixes first, then kNN over the vendor
  fingerprints when the server advertises at least min_quantity capabilities
- Each method can be switched off in ClassificationConfig. A method that finds
  nothing returns None and the next one runs; when all return None the caller
  falls back to the default adapter
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from imapclient import IMAPClient

from mailbox_runtime.adapters.base import WIRE_ERRORS
from mailbox_runtime.classification.vendors import VendorRegistry
from mailbox_runtime.lib.config import ClassificationConfig, classification_config
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.models.capability import CapabilitySet
from mailbox_runtime.models.specification import ServerConfig

logger = get_logger(__name__)

# Hosts that break the session when LOGOUT is sent before authentication
LOGOUT_NOT_ALLOWED = ("imap.laposte.net",)


def _text(response: Any) -> str:
    if response is None:
        return ""
    if isinstance(response, bytes):
        return response.decode("utf-8", errors="replace")
    return str(response)


class ClassificationMethod(Enum):
    """How a vendor was recognised."""
    KNOWN_HOSTS = "Known Hosts"
    GREETING_RESPONSE = "Greeting Response"
    BYE_RESPONSE = "Bye Response"
    CAPABILITY_VALUES = "Capability Values"


@dataclass(frozen=True)
class Classification:
    """Result of a successful classification.

    Attributes:
        vendor: Vendor id, equal to the name of the adapter to use
        method: Method that recognised the vendor
        distance: Best fingerprint distance for kNN results, None otherwise
    """

    vendor: str
    method: ClassificationMethod
    distance: Optional[int] = None


@dataclass(frozen=True)
class ServerProbe:
    """What an unauthenticated connection reveals about a server."""

    host: str
    greeting: str
    capabilities: CapabilitySet
    bye: Optional[str] = None

    @classmethod
    def open(
        cls,
        config: ServerConfig,
        timeout: Optional[float] = None,
        client_class: Callable[..., Any] = IMAPClient,
    ) -> "ServerProbe":
        """Connect, read greeting and capabilities, log out and record the BYE text.

        Raises:
            IMAPClientError, OSError: The server could not be probed
        """
        client = client_class(
            config.host,
            port=config.port,
            ssl=config.use_ssl,
            ssl_context=config.ssl_context,
            timeout=timeout or classification_config.default_timeout,
        )
        logged_out = False
        try:
            greeting = _text(getattr(client, "welcome", None))
            capabilities = CapabilitySet(client.capabilities())
            bye = None
            if config.host.lower() not in LOGOUT_NOT_ALLOWED:
                bye = _text(client.logout())
                logged_out = True
        finally:
            if not logged_out:
                try:
                    client.shutdown()
                except WIRE_ERRORS as e:
                    logger.debug(f"Error closing probe connection to {config.host}: {e}")

        return cls(host=config.host, greeting=greeting, capabilities=capabilities, bye=bye)


class ImapClassifier:
    """Classifies servers against a VendorRegistry."""

    def __init__(
        self,
        vendors: VendorRegistry,
        config: ClassificationConfig = classification_config,
        client_class: Callable[..., Any] = IMAPClient,
    ) -> None:
        self.vendors = vendors
        self.config = config
        self.client_class = client_class

    @classmethod
    def from_config(cls, config: ClassificationConfig = classification_config) -> "ImapClassifier":
        return cls(VendorRegistry.from_yaml(config.vendor_file), config)

    def classify_server(self, server: ServerConfig, timeout: Optional[float] = None) -> Optional[Classification]:
        """Probe server and classify it. Probe failures are logged and yield None."""
        try:
            probe = ServerProbe.open(server, timeout or self.config.default_timeout, self.client_class)
        except WIRE_ERRORS as e:
            logger.warning(f"Could not probe {server.host} for classification: {e}")
            return None
        return self.classify(probe)

    def classify(self, probe: ServerProbe) -> Optional[Classification]:
        result = None
        if self.config.known_hosts:
            result = self.host_lookup(probe.host)

        if result is None and self.config.server_responses:
            result = self.response_lookup(probe.greeting, ClassificationMethod.GREETING_RESPONSE)
            if result is None and probe.bye:
                result = self.response_lookup(probe.bye, ClassificationMethod.BYE_RESPONSE)

        if result is None and self.config.server_capabilities:
            result = self.capability_lookup(probe.capabilities)

        if result is not None:
            logger.debug(f"{probe.host} classified as {result.vendor} by {result.method.value}")
        else:
            logger.debug(f"{probe.host} could not be classified")
        return result

    # ========================================================================
    # Methods
    # ========================================================================
    def host_lookup(self, host: str) -> Optional[Classification]:
        vendor = self.vendors.vendor_for_host(host)
        if vendor is None:
            return None
        return Classification(vendor, ClassificationMethod.KNOWN_HOSTS)

    def response_lookup(
        self,
        response: str,
        method: ClassificationMethod = ClassificationMethod.GREETING_RESPONSE,
    ) -> Optional[Classification]:
        """First vendor whose name occurs in response, ignoring case."""
        text = response.lower()
        for vendor in self.vendors.vendors():
            if vendor.lower() in text:
                return Classification(vendor, method)
        return None

    def capability_lookup(self, capabilities: CapabilitySet) -> Optional[Classification]:
        # unique features decide on their own
        for vendor, prefix in self.vendors.features():
            if capabilities.matches_prefix(prefix):
                return Classification(vendor, ClassificationMethod.CAPABILITY_VALUES)

        if len(capabilities) < self.config.min_quantity:
            return None

        distances = [
            (fingerprint.distance(capabilities), vendor)
            for vendor in self.vendors.vendors()
            for fingerprint in self.vendors.fingerprints(vendor)
        ]
        distances = [d for d in distances if d[0] < self.config.max_distance]
        if not distances:
            return None

        # stable: equal distances keep registration order
        distances.sort(key=lambda d: d[0])
        nearest = distances[: self.config.number_of_neighbours]
        vendor = self._vote([v for _d, v in nearest])
        best = min(d for d, v in nearest if v == vendor)
        return Classification(vendor, ClassificationMethod.CAPABILITY_VALUES, best)

    @staticmethod
    def _vote(names: list[str]) -> str:
        """Most frequent name; ties go to the one seen first."""
        winner = names[0]
        most = names.count(winner)
        for name in dict.fromkeys(names):
            count = names.count(name)
            if count > most:
                winner, most = name, count
        return winner
