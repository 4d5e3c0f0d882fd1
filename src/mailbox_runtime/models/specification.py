"""Account connection settings and the adapter chosen to serve them."""

import ssl
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional

from mailbox_runtime.errors import AdapterNotFound, AdapterNotSpecified
from mailbox_runtime.lib.logger import get_logger

if TYPE_CHECKING:
    from mailbox_runtime.adapters.base import AbstractImapAdapter
    from mailbox_runtime.adapters.registry import AdapterRegistry
    from mailbox_runtime.classification.classifier import ImapClassifier

logger = get_logger(__name__)


class Credentials:
    """Login credentials for one account.

    The password is only read when the adapter authenticates; subclasses may
    resolve it lazily (see storage.credentials.KeyringCredentials).
    """

    def __init__(self, user: str, password: Optional[str] = None) -> None:
        self.user = user
        self._password = password

    @property
    def password(self) -> Optional[str]:
        return self._password

    def __repr__(self) -> str:
        return f"{type(self).__name__}(user={self.user!r})"


@dataclass(frozen=True)
class ServerConfig:
    """Connection settings for one IMAP account.

    Attributes:
        host: Server host name
        port: Server port (993 with SSL, 143 without, unless given)
        use_ssl: Connect with implicit TLS
        ssl_context: Optional SSL context (certificate/verification settings)
        credentials: Account credentials
        authentication: SASL mechanism to use instead of LOGIN (e.g. "PLAIN")
        timeout: Socket timeout handed to the IMAP client
        name: Display name for logs
    """

    host: str
    port: Optional[int] = None
    use_ssl: bool = True
    ssl_context: Optional[ssl.SSLContext] = field(default=None, repr=False, compare=False)
    credentials: Optional[Credentials] = field(default=None, compare=False)
    authentication: Optional[str] = None
    timeout: Optional[float] = None
    name: str = ""

    def __post_init__(self) -> None:
        if not self.host:
            raise ValueError("Server host must not be empty")
        if self.port is None:
            object.__setattr__(self, "port", 993 if self.use_ssl else 143)

    @property
    def user(self) -> Optional[str]:
        return self.credentials.user if self.credentials else None

    @property
    def password(self) -> Optional[str]:
        return self.credentials.password if self.credentials else None


@dataclass(frozen=True)
class ConnectionSpecification:
    """Immutable pairing of a server config with the adapter class that serves it."""

    config: ServerConfig
    adapter_class: Optional[type["AbstractImapAdapter"]]

    @classmethod
    def resolve(
        cls,
        config: ServerConfig,
        adapters: "AdapterRegistry",
        classifier: Optional["ImapClassifier"] = None,
        adapter_name: Optional[str] = None,
    ) -> "ConnectionSpecification":
        """Pick the adapter for config.

        An explicit adapter_name is looked up in the registry. Without one, the
        server is probed and classified. Names that are not registered fall
        back to the registry's default adapter.
        """
        if adapter_name is None and classifier is not None:
            classification = classifier.classify_server(config)
            if classification is not None:
                adapter_name = classification.vendor

        adapter_class = None
        if adapter_name is not None:
            try:
                adapter_class = adapters.retrieve(adapter_name)
            except AdapterNotFound:
                logger.warning(f"No adapter registered for {adapter_name!r}, using default")

        return cls(config=config, adapter_class=adapter_class or adapters.default)

    def new_connection(self) -> "AbstractImapAdapter":
        """Instantiate the adapter for this specification."""
        if self.adapter_class is None:
            raise AdapterNotSpecified()
        return self.adapter_class(self.config)
