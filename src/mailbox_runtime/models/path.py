"""Delimiter-aware folder paths."""

from typing import Literal, Optional, Union

ListKind = Optional[Literal["direct", "all"]]


class FolderPath:
    """A folder path split into segments on the server's delimiter.

    The segments, name and level are recomputed whenever ``path`` is
    assigned, so ``path == delimiter.join(segments)`` and
    ``level == len(segments)`` always hold. Comparison is case-insensitive.

    A ``None`` delimiter means a flat hierarchy: the whole path is a single
    segment.
    """

    def __init__(self, path: str, delimiter: Optional[str]) -> None:
        self.delimiter = delimiter
        self.path = path

    @property
    def path(self) -> str:
        return (self.delimiter or "").join(self._segments)

    @path.setter
    def path(self, value: str) -> None:
        if self.delimiter:
            segments = value.split(self.delimiter)
        else:
            segments = [value]
        self._segments = [s for s in segments if s]

    @property
    def segments(self) -> list[str]:
        return list(self._segments)

    @property
    def name(self) -> str:
        return self._segments[-1] if self._segments else ""

    @name.setter
    def name(self, value: str) -> None:
        if self._segments:
            self._segments[-1] = value
        else:
            self._segments = [value]

    @property
    def level(self) -> int:
        return len(self._segments)

    @property
    def parent_path(self) -> Optional[str]:
        """Full path of the parent folder; "" for top-level folders, None for the root."""
        if not self._segments:
            return None
        return (self.delimiter or "").join(self._segments[:-1])

    def ancestors(self) -> list[str]:
        """Full paths of every ancestor, outermost first."""
        delimiter = self.delimiter or ""
        return [delimiter.join(self._segments[:i]) for i in range(1, len(self._segments))]

    def subfolder_path(self, name: str) -> Optional[str]:
        if not name or not self.delimiter or self.delimiter in name:
            return None
        return f"{self.path}{self.delimiter}{name}"

    def superior_to(self, other: Union["FolderPath", str]) -> bool:
        other = self._coerce(other)
        if not self.name:
            return self.level < other.level
        return other.path.lower().startswith(f"{self.path}{self.delimiter or ''}".lower())

    def parent_of(self, other: Union["FolderPath", str]) -> bool:
        other = self._coerce(other)
        return self.superior_to(other) and self.level + 1 == other.level

    def name_is(self, name: str) -> bool:
        return self.name.lower() == self._chomp(name).lower()

    def path_is(self, path: str) -> bool:
        return self.path.lower() == self._chomp(path).lower()

    def list_reference(self, kind: ListKind = None) -> str:
        """Reference argument of a LIST command for this path."""
        reference = self.parent_path or ""
        if reference and self.delimiter:
            reference = f"{reference}{self.delimiter}"
        return reference

    def list_wildcards(self, kind: ListKind = None) -> str:
        """Mailbox argument of a LIST command: the folder itself, its children or all descendants."""
        delimiter = self.delimiter or ""
        if kind == "direct":
            return f"{self.name}{delimiter}%" if self.name else "%"
        if kind == "all":
            return f"{self.name}{delimiter}*" if self.name else "*"
        return self.name

    def _coerce(self, other: Union["FolderPath", str]) -> "FolderPath":
        if isinstance(other, FolderPath):
            return other
        return FolderPath(other, self.delimiter)

    def _chomp(self, value: str) -> str:
        if self.delimiter and value.endswith(self.delimiter):
            return value[: -len(self.delimiter)]
        return value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FolderPath):
            return self.path.lower() == other.path.lower()
        if isinstance(other, str):
            return self.path.lower() == other.lower()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.path.lower())

    def __str__(self) -> str:
        return self.path

    def __repr__(self) -> str:
        return f"FolderPath({self.path!r}, {self.delimiter!r})"
