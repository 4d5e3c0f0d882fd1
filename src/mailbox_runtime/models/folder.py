"""Folder listing entries and the standard folder vocabulary."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Iterable, Optional


class FolderAttribute(Enum):
    """Mailbox attributes this runtime acts on.

    Attributes returned by the server outside this vocabulary (for example
    \\HasChildren) are ignored.
    """
    NOINFERIORS = "\\Noinferiors"
    NOSELECT = "\\Noselect"
    MARKED = "\\Marked"
    UNMARKED = "\\Unmarked"
    SUBSCRIBED = "\\Subscribed"

    @classmethod
    def parse(cls, flag: str | bytes) -> Optional["FolderAttribute"]:
        if isinstance(flag, bytes):
            flag = flag.decode("ascii", errors="replace")
        lowered = flag.lower()
        for attribute in cls:
            if attribute.value.lower() == lowered:
                return attribute
        return None


class StandardFolder(Enum):
    """Well-known folders whose paths differ between vendors."""
    ROOT = "Root"
    INBOX = "Inbox"
    TRASH = "Trash"
    DRAFTS = "Drafts"
    SENT = "Sent"


@dataclass(frozen=True)
class ListEntry:
    """One line of a LIST/LSUB response.

    Attributes:
        name: Full folder path as sent by the server
        attributes: Known mailbox attributes of the folder
        delimiter: Hierarchy delimiter, None for a flat hierarchy
    """

    name: str
    attributes: frozenset[FolderAttribute] = field(default_factory=frozenset)
    delimiter: Optional[str] = None

    @classmethod
    def from_imap_response(
        cls, flags: Iterable[bytes | str], delimiter: bytes | str | None, name: str | bytes
    ) -> "ListEntry":
        """Create ListEntry from one (flags, delimiter, name) tuple of IMAPClient.list_folders()."""
        attributes = frozenset(a for a in (FolderAttribute.parse(f) for f in flags) if a is not None)
        if isinstance(delimiter, bytes):
            delimiter = delimiter.decode()
        if isinstance(name, bytes):
            name = name.decode()
        return cls(name=str(name), attributes=attributes, delimiter=delimiter or None)

    def has(self, attribute: FolderAttribute) -> bool:
        return attribute in self.attributes

    @property
    def selectable(self) -> bool:
        return FolderAttribute.NOSELECT not in self.attributes

    def with_attribute(self, attribute: FolderAttribute) -> "ListEntry":
        return replace(self, attributes=self.attributes | {attribute})

    def depth(self) -> int:
        """Number of path segments."""
        if not self.delimiter:
            return 1
        return len([s for s in self.name.split(self.delimiter) if s])


@dataclass(frozen=True)
class ListCommand:
    """Reference and wildcard arguments of a LIST or LSUB command."""

    reference: str = ""
    wildcards: str = "*"
