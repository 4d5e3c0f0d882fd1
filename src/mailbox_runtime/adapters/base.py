"""Abstract IMAP adapter: owns one wire connection and its session state.

AIDEV-NOTE: Wire serialization
- IMAPClient is not thread-safe and IMAP responses are not safely
  pipeline-able, so every round-trip goes through _wire(), which holds the
  adapter's wire lock and checks the calling task for cancellation first
- Multi-command sequences that depend on the selected folder hold the wire
  lock across all of their round-trips (the lock is reentrant)
- The liveness probe never waits for the wire lock: a busy connection is
  reported alive, the command in flight will surface any failure itself
- A timed-out command desynchronizes the connection only if it was inside
  a round-trip; one still queued on the wire lock leaves it untouched
"""

import hmac
import threading
from enum import Enum
from typing import Any, Callable, Optional, TypeVar

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from mailbox_runtime.adapters.protocols import WireClientProtocol
from mailbox_runtime.connection.tasks import check_cancelled, round_trip
from mailbox_runtime.errors import AuthenticationFailed, ConnectionTerminated, ImapCommandNotSupported
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.lib.rwlock import ReadWriteLock
from mailbox_runtime.models.capability import CapabilitySet
from mailbox_runtime.models.folder import ListCommand, StandardFolder
from mailbox_runtime.models.path import FolderPath, ListKind
from mailbox_runtime.models.specification import ServerConfig

logger = get_logger(__name__)

T = TypeVar("T")

# Errors a wire round-trip may raise besides our own
WIRE_ERRORS = (IMAPClientError, OSError, TimeoutError)


class QueryableCapability(Enum):
    """Capabilities callers may query through supports()."""
    SORT = "SORT"
    UNSELECT = "UNSELECT"


class AbstractImapAdapter:
    """Prototype for concrete IMAP adapters.

    Attributes:
        adapter_name: Registry name of the adapter (matches vendor ids)
        client_class: Factory for the wire connection
        standard_folders: Vendor paths of the well-known folders
        config: Server settings this adapter connects with
    """

    adapter_name = "Abstract IMAP"
    client_class: Callable[..., WireClientProtocol] = IMAPClient
    standard_folders: dict[StandardFolder, str] = {
        StandardFolder.ROOT: "",
        StandardFolder.INBOX: "Inbox",
    }

    def __init__(self, config: ServerConfig) -> None:
        if not isinstance(config, ServerConfig):
            raise TypeError("Bad config format (expected ServerConfig)")
        self.config = config
        self._rwlock = ReadWriteLock()
        self._client: Optional[WireClientProtocol] = None
        self.reset()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def reset(self) -> None:
        """Drop all session state, tearing down any live transport."""
        client = self._client
        self._client = None
        self._wire_lock = threading.RLock()
        self._delimiter: Optional[str] = None
        self._capabilities = CapabilitySet()
        self._authenticated = False
        self._desynchronized = False
        if client is not None:
            self._shutdown(client)

    def connect(self) -> None:
        """Open the wire connection and read the server capabilities."""
        logger.debug(f"Connecting to {self.config.host}:{self.config.port} (ssl={self.config.use_ssl})")
        check_cancelled()
        client = self.client_class(
            self.config.host,
            port=self.config.port,
            ssl=self.config.use_ssl,
            ssl_context=self.config.ssl_context,
            timeout=self.config.timeout,
        )
        # a connect that outlived its deadline must not replace a newer client
        try:
            check_cancelled()
        except ConnectionTerminated:
            self._shutdown(client)
            raise
        self._client = client
        self._capabilities = CapabilitySet(self._wire(client.capabilities))

    def authenticate(self) -> None:
        """Log in and read the folder delimiter. Subclasses pick the login command."""
        raise NotImplementedError

    def disconnect(self) -> None:
        """Log out (when authenticated) and close the connection."""
        client = self._client
        if client is not None and self._authenticated:
            try:
                self._wire(client.logout)
            except WIRE_ERRORS as e:
                logger.warning(f"Error during logout from {self.config.host}: {e}")
        self.reset()

    def abort(self) -> None:
        """Tear down the transport without waiting for the command in flight."""
        self._desynchronized = True
        client = self._client
        if client is not None:
            self._shutdown(client)

    def invalidate(self) -> None:
        """Mark the connection as possibly desynchronized; the next probe fails."""
        self._desynchronized = True

    def connected(self) -> bool:
        """Liveness probe: NOOP unless a command is already using the connection."""
        if not self.active:
            return False
        if not self._wire_lock.acquire(blocking=False):
            return True
        try:
            self._client.noop()
            return True
        except WIRE_ERRORS as e:
            logger.debug(f"NOOP failed on {self.config.host}: {e}")
            return False
        finally:
            self._wire_lock.release()

    @property
    def active(self) -> bool:
        """True once connect() succeeded and the connection was not invalidated."""
        return self._client is not None and not self._desynchronized

    @property
    def authenticated(self) -> bool:
        return self._authenticated

    @property
    def raw_connection(self) -> Optional[WireClientProtocol]:
        return self._client

    # ------------------------------------------------------------------
    # Capabilities & folders
    # ------------------------------------------------------------------
    @property
    def capabilities(self) -> CapabilitySet:
        return self._capabilities

    @property
    def delimiter(self) -> Optional[str]:
        return self._delimiter

    @property
    def auth_type(self) -> Optional[str]:
        return self.config.authentication

    def auth_types(self) -> list[str]:
        """Authentication mechanisms advertised by the server."""
        return self._capabilities.auth_mechanisms()

    def login_disabled(self) -> bool:
        return "LOGINDISABLED" in self._capabilities

    def imap4rev1(self) -> bool:
        return "IMAP4REV1" in self._capabilities

    def supports(self, name: "str | QueryableCapability") -> bool:
        """Check whether the server advertised a capability."""
        if isinstance(name, QueryableCapability):
            name = name.value
        return name in self._capabilities

    def standard_folder(self, symbol: "StandardFolder | str") -> Optional[str]:
        """Vendor path of a well-known folder, None if the vendor has none."""
        if isinstance(symbol, str):
            symbol = StandardFolder(symbol)
        return self.standard_folders.get(symbol)

    def list_command(self, location: FolderPath, kind: ListKind = None) -> ListCommand:
        return ListCommand(location.list_reference(kind), location.list_wildcards(kind))

    # ------------------------------------------------------------------
    # Wire access
    # ------------------------------------------------------------------
    @property
    def client(self) -> WireClientProtocol:
        if self._client is None:
            raise ConnectionTerminated(message="No open IMAP connection")
        return self._client

    def _wire(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one round-trip while holding the wire lock."""
        with self._wire_lock, round_trip():
            return fn(*args, **kwargs)

    def _login(self, mechanism: Optional[str]) -> None:
        """Send LOGIN or AUTHENTICATE <mechanism> with the configured credentials."""
        user = self.config.user
        password = self.config.password
        if user is None or password is None:
            raise AuthenticationFailed(message=f"No credentials configured for {self.config.host}")

        if mechanism is None or mechanism == "LOGIN":
            self._wire(self.client.login, user, password)
        elif mechanism == "PLAIN":
            self._wire(self.client.plain_login, user, password)
        elif mechanism == "CRAM-MD5":
            def respond(challenge: bytes) -> str:
                digest = hmac.new(password.encode(), challenge, "md5").hexdigest()
                return f"{user} {digest}"
            self._wire(self.client.sasl_login, "CRAM-MD5", respond)
        else:
            raise ImapCommandNotSupported(f"AUTHENTICATE {mechanism}")

    def _read_delimiter(self) -> Optional[str]:
        entries = self._wire(self.client.list_folders, "", "") or []
        for _flags, delimiter, _name in entries:
            if isinstance(delimiter, bytes):
                delimiter = delimiter.decode()
            return delimiter or None
        return None

    def _shutdown(self, client: WireClientProtocol) -> None:
        try:
            client.shutdown()
        except WIRE_ERRORS as e:
            logger.debug(f"Error shutting down connection to {self.config.host}: {e}")

    def __repr__(self) -> str:
        return f"{type(self).__name__}(host={self.config.host!r}, authenticated={self._authenticated})"
