"""Server capability tokens and ordered capability sets."""

import re
from dataclasses import dataclass
from typing import Iterable, Iterator, Optional

AUTH_PATTERN = re.compile(r"^AUTH=([\w]+[-_\w]+)", re.IGNORECASE)

# Pretty common standard capabilities
STANDARD_CAPABILITIES = frozenset({"IMAP4", "IMAP4REV1", "STARTTLS", "LOGINDISABLED", "AUTH=PLAIN"})

PROPRIETARY_MARKERS = ("AOL", "NETSCAPE", "NOVONYX", "SUN", "MMP")


def _normalise(token: str | bytes) -> str:
    if isinstance(token, bytes):
        token = token.decode("ascii", errors="replace")
    return token.strip().upper()


@dataclass(frozen=True)
class Capability:
    """A server-advertised capability token, stored upper-cased."""

    name: str

    @classmethod
    def of(cls, token: "str | bytes | Capability") -> "Capability":
        if isinstance(token, Capability):
            return token
        return cls(_normalise(token))

    @property
    def standard(self) -> bool:
        return self.name in STANDARD_CAPABILITIES

    @property
    def experimental(self) -> bool:
        return self.name.startswith("X")

    @property
    def proprietary(self) -> bool:
        return any(marker in self.name for marker in PROPRIETARY_MARKERS)

    @property
    def auth_mechanism(self) -> Optional[str]:
        """Mechanism name for AUTH=<mech> tokens, otherwise None."""
        match = AUTH_PATTERN.match(self.name)
        return match.group(1).upper() if match else None

    def __str__(self) -> str:
        return self.name


class CapabilitySet:
    """Ordered, duplicate-free collection of capabilities."""

    def __init__(self, tokens: Optional[Iterable["str | bytes | Capability"]] = None) -> None:
        self._items: list[Capability] = []
        self._names: set[str] = set()
        for token in tokens or ():
            self.add(token)

    def add(self, token: "str | bytes | Capability") -> None:
        capability = Capability.of(token)
        if capability.name not in self._names:
            self._names.add(capability.name)
            self._items.append(capability)

    def __contains__(self, token: object) -> bool:
        if isinstance(token, (str, bytes, Capability)):
            return Capability.of(token).name in self._names
        return False

    def __iter__(self) -> Iterator[Capability]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, CapabilitySet):
            return NotImplemented
        return self.names() == other.names()

    def __repr__(self) -> str:
        return f"CapabilitySet({self.names()!r})"

    def names(self) -> list[str]:
        return [c.name for c in self._items]

    def auth_mechanisms(self) -> list[str]:
        return [c.auth_mechanism for c in self._items if c.auth_mechanism]

    def matches_prefix(self, prefix: str) -> bool:
        """True if any capability matches the given regular expression prefix."""
        pattern = re.compile(prefix, re.IGNORECASE)
        return any(pattern.match(c.name) for c in self._items)

    def distance(self, other: "CapabilitySet") -> int:
        """Distance from this (reference) set to other.

        Computed as |self| - 2 * |self & other|, so a full match scores -|self|
        and capabilities only present in other are not counted.
        """
        shared = sum(1 for c in self._items if c in other)
        return len(self._items) - 2 * shared
