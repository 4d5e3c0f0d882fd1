"""Protocol definitions for the wire client used by adapters.

Adapters talk to the server through IMAPClient. This protocol describes the
subset of its API they rely on, so tests can hand in a scripted fake and
alternative clients can be plugged in through ``client_class``.

Protocols use structural subtyping (PEP 544), meaning any class implementing
the required methods satisfies the protocol without explicit inheritance.
"""

from typing import Any, Iterable, Optional, Protocol, Sequence, runtime_checkable


@runtime_checkable
class WireClientProtocol(Protocol):
    """Protocol for one IMAP wire connection (imapclient.IMAPClient API).

    Example:
        >>> client: WireClientProtocol = IMAPClient("imap.example.org", ssl=True)
        >>> client.capabilities()
        (b'IMAP4REV1', b'UIDPLUS', ...)
    """

    welcome: Optional[bytes]

    def capabilities(self) -> tuple[bytes, ...]: ...

    def noop(self) -> Any: ...

    def login(self, username: str, password: str) -> Any: ...

    def plain_login(self, identity: str, password: str, authorization_identity: Optional[str] = None) -> Any: ...

    def sasl_login(self, mech_name: str, mech_callable: Any) -> Any: ...

    def logout(self) -> Any: ...

    def shutdown(self) -> None: ...

    def list_folders(self, directory: str = "", pattern: str = "*") -> list[tuple]: ...

    def list_sub_folders(self, directory: str = "", pattern: str = "*") -> list[tuple]: ...

    def select_folder(self, folder: str, readonly: bool = False) -> dict: ...

    def unselect_folder(self) -> Any: ...

    def folder_status(self, folder: str, what: Optional[Sequence[str]] = None) -> dict: ...

    def create_folder(self, folder: str) -> Any: ...

    def rename_folder(self, old_name: str, new_name: str) -> Any: ...

    def delete_folder(self, folder: str) -> Any: ...

    def subscribe_folder(self, folder: str) -> Any: ...

    def unsubscribe_folder(self, folder: str) -> Any: ...

    def expunge(self, messages: Optional[Iterable[int]] = None) -> Any: ...

    def search(self, criteria: Any = "ALL", charset: Optional[str] = None) -> list[int]: ...

    def sort(self, sort_criteria: Any, criteria: Any = "ALL", charset: str = "UTF-8") -> list[int]: ...

    def fetch(self, messages: Iterable[int], data: Sequence[str]) -> dict: ...

    def append(self, folder: str, msg: bytes, flags: Iterable[Any] = (), msg_time: Any = None) -> bytes: ...

    def copy(self, messages: Iterable[int], folder: str) -> bytes: ...

    def add_flags(self, messages: Iterable[int], flags: Iterable[Any]) -> dict: ...

    def remove_flags(self, messages: Iterable[int], flags: Iterable[Any]) -> dict: ...

    def set_flags(self, messages: Iterable[int], flags: Iterable[Any]) -> dict: ...
