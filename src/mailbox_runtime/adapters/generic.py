"""Reference adapter for standards-compliant IMAP4rev1 servers."""

from typing import Optional

from mailbox_runtime.adapters.statements import CommandProtocol
from mailbox_runtime.errors import ImapCommandNotSupported
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.models.folder import StandardFolder

logger = get_logger(__name__)


class GenericAdapter(CommandProtocol):
    """Adapter used when nothing more specific is known about the server.

    Vendor variants subclass it and override the folder constraints and
    standard folder paths.
    """

    adapter_name = "Generic"
    standard_folders = {
        StandardFolder.ROOT: "",
        StandardFolder.INBOX: "Inbox",
        StandardFolder.TRASH: "Trash",
    }

    @property
    def auth_type(self) -> Optional[str]:
        """Configured mechanism, else the last one the server advertised, else PLAIN."""
        if self.config.authentication:
            return self.config.authentication.upper()
        mechanisms = self.auth_types()
        return mechanisms[-1] if mechanisms else "PLAIN"

    def connect(self) -> None:
        super().connect()
        if not self.imap4rev1():
            self.disconnect()
            raise ImapCommandNotSupported("IMAP4rev1")

    def authenticate(self) -> None:
        # AUTHENTICATE when asked to or when LOGIN is refused, plain LOGIN otherwise
        if self.config.authentication or self.login_disabled():
            self._login(self.auth_type)
        else:
            self._login(None)

        if self._delimiter is None:
            self._delimiter = self._read_delimiter()
        self._authenticated = True
        logger.info(
            f"Authenticated at {self.config.host} as {self.config.user} "
            f"(adapter={self.adapter_name}, delimiter={self._delimiter!r})"
        )
