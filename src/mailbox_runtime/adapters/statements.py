"""Folder and message statements built on the wire primitives of an adapter.

Structural folder operations are validated against a fresh LIST "" "*"
snapshot before anything is sent to the server:

    operation      rejected when
    create         invalid name; too deep; root not writable; exists;
                   an existing ancestor has \\Noinferiors
    rename         old path is the root; new path fails the create rules
    (un)subscribe  invalid name; missing from snapshot; \\Noselect
    delete         invalid name; has subfolders (non-recursive);
                   \\Noselect; missing from snapshot

Mutations take the adapter's write lock, retrievals its read lock. The wire
lock is held across every sequence that depends on the selected folder.
"""

import hashlib
import re
import uuid
from email.message import Message
from email.parser import BytesHeaderParser
from typing import Any, Iterable, Literal, Optional, Sequence

from imapclient import DELETED, RECENT
from imapclient.exceptions import IMAPClientError

from mailbox_runtime.adapters.base import AbstractImapAdapter, QueryableCapability
from mailbox_runtime.errors import (
    FolderCreationNotPermitted,
    FolderModificationNotPermitted,
    FolderRemovalNotPermitted,
    ImapCommandNotSupported,
)
from mailbox_runtime.lib.logger import get_logger
from mailbox_runtime.models.folder import FolderAttribute, ListCommand, ListEntry, StandardFolder
from mailbox_runtime.models.path import FolderPath

logger = get_logger(__name__)

# ============================================================================
# Constants
# ============================================================================
MESSAGE_TAG_HEADER = "X-Mailbox-Runtime-Tag"

# Selecting this closes the current mailbox on servers without UNSELECT
INVALID_MAILBOX = "/////....."

STATUS_ITEMS = ("MESSAGES", "RECENT", "UNSEEN")

FETCH_TOKENS = frozenset({
    "ALL", "FAST", "FULL", "BODY", "BODY.PEEK", "BODYSTRUCTURE", "ENVELOPE", "FLAGS",
    "INTERNALDATE", "RFC822", "RFC822.HEADER", "RFC822.SIZE", "RFC822.TEXT", "UID",
})
FETCH_TOKEN_PATTERN = re.compile(r"^([a-zA-Z]+\w*(\.[a-zA-Z]+)*)")

SORT_TOKENS = frozenset({"ARRIVAL", "CC", "DATE", "FROM", "REVERSE", "SIZE", "SUBJECT", "TO"})

UID_RESPONSE_PATTERN = re.compile(rb"\[(APPENDUID|COPYUID)\s+([^\]]*)\]", re.IGNORECASE)

FlagMode = Literal["set", "add", "delete"]


# ============================================================================
# Helpers
# ============================================================================
def filter_flags(flags: Optional[Iterable[Any]]) -> Optional[list[Any]]:
    """Drop \\Recent (a server-managed flag); an empty result becomes None."""
    if flags is None:
        return None
    kept = [f for f in flags if _flag_name(f) != _flag_name(RECENT)]
    return kept or None


def filter_fetch_keys(fetch_keys: Iterable[str]) -> list[str]:
    """Keep the fetch items whose base token is a known FETCH data item."""
    kept = []
    for key in fetch_keys:
        match = FETCH_TOKEN_PATTERN.match(key)
        if match and match.group(1).upper() in FETCH_TOKENS:
            kept.append(key)
    return kept


def filter_sort_keys(sort_by: "str | Sequence[str] | None") -> list[str]:
    """Keep the known SORT criteria."""
    if not sort_by:
        return []
    if isinstance(sort_by, str):
        sort_by = sort_by.split()
    return [key for key in sort_by if key.upper() in SORT_TOKENS]


def uid_from_response(response: "bytes | str | None", code: str) -> Optional[int]:
    """Extract the new UID from an APPENDUID/COPYUID response code."""
    if not response:
        return None
    if isinstance(response, str):
        response = response.encode()
    for name, data in UID_RESPONSE_PATTERN.findall(response):
        if name.decode().upper() == code:
            uid_set = data.split()[-1]
            # last UID of a set like 4:6 or 4,5,6
            return int(re.split(rb"[:,]", uid_set)[-1])
    return None


def _flag_name(flag: Any) -> str:
    if isinstance(flag, bytes):
        flag = flag.decode()
    return str(flag).lower()


def _to_bytes(message: "bytes | str | Message") -> bytes:
    if isinstance(message, Message):
        return message.as_bytes()
    if isinstance(message, str):
        return message.encode()
    return message


def _contains(entries: Iterable[ListEntry], path: str) -> bool:
    wanted = path.upper()
    return any(e.name.upper() == wanted for e in entries)


def _find(entries: Iterable[ListEntry], path: str) -> Optional[ListEntry]:
    wanted = path.upper()
    return next((e for e in entries if e.name.upper() == wanted), None)


class CommandProtocol(AbstractImapAdapter):
    """Folder and message statements shared by all concrete adapters.

    Vendor constraints are class attributes that variants override:

        rootdir_writeable: top-level folders may be created
        max_folder_depth: deepest allowed folder level (None = unlimited)
        parentfolders_auto_created: CREATE a/b/c also creates a and a/b
        implements_working_uidplus: APPEND/COPY answer with the new UID
    """

    rootdir_writeable = True
    max_folder_depth: Optional[int] = None
    parentfolders_auto_created = True
    implements_working_uidplus = False

    def reset(self) -> None:
        self._selected: Optional[str] = None
        super().reset()

    @property
    def message_tagging_enabled(self) -> bool:
        return not self.implements_working_uidplus

    @property
    def recurse_folder_creation(self) -> bool:
        return not self.parentfolders_auto_created

    @property
    def folder_depth_limit(self) -> Optional[int]:
        """Effective maximum depth; 1 on servers without a hierarchy delimiter."""
        if self.authenticated and self.delimiter is None:
            return 1
        return self.max_folder_depth

    @property
    def selected(self) -> Optional[str]:
        return self._selected

    # ========================================================================
    # Wire primitives
    # ========================================================================
    def noop(self) -> None:
        self._wire(self.client.noop)

    def select(self, folder: Optional[str], force: bool = False) -> Optional[str]:
        """SELECT folder unless it is selected already."""
        if folder is not None and (force or folder != self._selected):
            self._selected = None
            self._wire(self.client.select_folder, folder)
            self._selected = folder
        return self._selected

    def unselect(self, force: bool = False) -> None:
        if self._selected is None and not force:
            return
        self._selected = None
        if self.supports(QueryableCapability.UNSELECT):
            self._wire(self.client.unselect_folder)
            return
        try:
            self._wire(self.client.select_folder, INVALID_MAILBOX)
        except IMAPClientError:
            # NO is the expected answer; the mailbox is closed either way
            logger.debug("Closed selected mailbox via invalid SELECT")

    def status(self, folder: str) -> dict[str, int]:
        raw = self._wire(self.client.folder_status, folder, list(STATUS_ITEMS))
        return {(k.decode() if isinstance(k, bytes) else k): v for k, v in raw.items()}

    def expunge(self) -> None:
        self._wire(self.client.expunge)

    def list_folders(self, reference: str, wildcards: str) -> list[ListEntry]:
        raw = self._wire(self.client.list_folders, reference, wildcards) or []
        return [ListEntry.from_imap_response(*entry) for entry in raw]

    def list_subscribed(self, reference: str, wildcards: str) -> list[ListEntry]:
        raw = self._wire(self.client.list_sub_folders, reference, wildcards) or []
        return [ListEntry.from_imap_response(*entry) for entry in raw]

    def create(self, path: str) -> None:
        self._wire(self.client.create_folder, path)

    def rename(self, path: str, new_path: str) -> None:
        self.unselect()
        self._wire(self.client.rename_folder, path, new_path)

    def delete(self, path: str) -> None:
        self.unselect()
        self._wire(self.client.delete_folder, path)

    def folder_is_subscribed(self, path: str) -> bool:
        return _contains(self.list_subscribed("", "*"), path)

    def folder_exists(self, path: str) -> bool:
        return _contains(self.list_folders("", "*"), path)

    def subscribe(self, path: str, subscription: bool) -> None:
        """Set the subscription of an existing folder if it differs."""
        with self._wire_lock:
            if not self.folder_exists(path):
                return
            if subscription == self.folder_is_subscribed(path):
                return
            if subscription:
                self._wire(self.client.subscribe_folder, path)
            else:
                self._wire(self.client.unsubscribe_folder, path)

    def uid_search(self, folder: str, search_keys: Any, sort_by: Sequence[str] = ()) -> list[int]:
        with self._wire_lock:
            self.select(folder)
            if not search_keys:
                return []
            if sort_by and self.supports(QueryableCapability.SORT):
                return list(self._wire(self.client.sort, list(sort_by), search_keys, "US-ASCII"))
            return list(self._wire(self.client.search, search_keys))

    def uid_fetch(self, folder: str, uids: "int | Sequence[int]", fetch_keys: "str | Sequence[str]") -> dict:
        if isinstance(uids, int):
            uids = [uids]
        if isinstance(fetch_keys, str):
            fetch_keys = [fetch_keys]
        with self._wire_lock:
            self.select(folder)
            if not uids or not fetch_keys:
                return {}
            return self._wire(self.client.fetch, list(uids), list(fetch_keys))

    def append(self, folder: str, message: "bytes | str | Message", flags: Optional[Iterable[Any]] = None) -> Optional[int]:
        """APPEND message to folder and return its new UID."""
        raw = _to_bytes(message)
        flags = filter_flags(flags) or ()
        with self._wire_lock:
            self.unselect()
            if self.message_tagging_enabled:
                tag = hashlib.sha256(uuid.uuid4().bytes).hexdigest()
                self._wire(self.client.append, folder, self._tag_message(raw, tag), flags)
                return self._uid_from_tag(folder, tag)
            response = self._wire(self.client.append, folder, raw, flags)
            return uid_from_response(response, "APPENDUID")

    def uid_copy(self, source: str, target: str, uid: int) -> Optional[int]:
        with self._wire_lock:
            self.select(source)
            if self.message_tagging_enabled:
                fetched = self.uid_fetch(source, uid, ["FLAGS", "RFC822"])
                data = fetched.get(uid)
                if data is None:
                    return None
                return self.append(target, data[b"RFC822"], data.get(b"FLAGS"))
            response = self._wire(self.client.copy, [uid], target)
            return uid_from_response(response, "COPYUID")

    def uid_move(self, source: str, target: str, uid: int) -> Optional[int]:
        """Copy to target, then flag the source message \\Deleted."""
        with self._wire_lock:
            new_uid = self.uid_copy(source, target, uid)
            self.mark_deleted(source, uid)
            return new_uid

    def change_flags(self, folder: str, uid: Optional[int], flags: Optional[Iterable[Any]], mode: FlagMode = "set") -> None:
        flags = filter_flags(flags)
        if not uid or uid <= 0 or flags is None:
            return
        with self._wire_lock:
            self.select(folder)
            if mode == "add":
                self._wire(self.client.add_flags, [uid], flags)
            elif mode == "delete":
                self._wire(self.client.remove_flags, [uid], flags)
            else:
                self._wire(self.client.set_flags, [uid], flags)

    def mark_deleted(self, folder: str, uid: Optional[int]) -> None:
        if not uid:
            return
        with self._wire_lock:
            self.select(folder)
            self._wire(self.client.add_flags, [uid], [DELETED])

    def _tag_message(self, raw: bytes, tag: str) -> bytes:
        """Prepend the tag header, replacing a stale one and any mbox From line."""
        lines = raw.split(b"\n")
        if lines and lines[0].startswith(b"From "):
            lines = lines[1:]
        header = MESSAGE_TAG_HEADER.encode().lower() + b":"
        lines = [line for line in lines if not line.lower().startswith(header)]
        return f"{MESSAGE_TAG_HEADER}: {tag}\r\n".encode() + b"\n".join(lines)

    def _uid_from_tag(self, folder: str, tag: str) -> Optional[int]:
        uids = self.uid_search(folder, ["HEADER", MESSAGE_TAG_HEADER, tag])
        if not uids:
            uids = self.uid_search(folder, "ALL")
        fetched = self.uid_fetch(folder, uids, ["UID", "RFC822.HEADER"])
        parser = BytesHeaderParser()
        for uid, data in fetched.items():
            headers = parser.parsebytes(data.get(b"RFC822.HEADER", b""))
            if (headers.get(MESSAGE_TAG_HEADER) or "").strip() == tag:
                return int(uid)
        logger.warning(f"Appended message not found by tag in {folder!r}")
        return None

    # ========================================================================
    # Messages
    # ========================================================================
    def message_retrieve(
        self,
        folder: str,
        search_keys: Any,
        fetch_keys: Sequence[str],
        sort_by: "str | Sequence[str] | None" = None,
        paginate: Optional[slice] = None,
    ) -> dict:
        """Search folder, optionally sort and paginate, and fetch the matches."""
        if sort_by and not self.supports(QueryableCapability.SORT):
            raise ImapCommandNotSupported("SORT")

        fetch_keys = filter_fetch_keys(fetch_keys)
        sort_keys = filter_sort_keys(sort_by)

        with self._rwlock.read(), self._wire_lock:
            uids = self.uid_search(folder, search_keys, sort_keys)
            if paginate is not None:
                uids = uids[paginate]
            return self.uid_fetch(folder, uids, fetch_keys)

    def message_exists(self, folder: str, search_keys: Any) -> bool:
        with self._rwlock.read():
            return bool(self.uid_search(folder, search_keys))

    def message_create(self, folder: Optional[str], message: "bytes | str | Message", flags: Optional[Iterable[Any]] = None) -> int:
        folder = folder if folder is not None else self._selected
        with self._rwlock.write():
            uid = self.append(folder, message, flags)
        return int(uid or 0)

    def message_update(
        self,
        folder: str,
        target: Optional[str],
        uid: int,
        flags: Optional[Iterable[Any]] = None,
        mode: FlagMode = "set",
    ) -> Optional[int]:
        """Move a message to target and/or change its flags; returns its (new) UID."""
        do_move = target is not None and target != folder
        flags = list(flags) if flags is not None else None
        do_change_flags = bool(flags)
        if not do_move and not do_change_flags:
            return None

        with self._rwlock.write(), self._wire_lock:
            if do_move:
                uid = self.uid_move(folder, target, uid)
            if do_change_flags:
                self.change_flags(target if do_move else folder, uid, flags, mode)
        return int(uid or 0)

    def message_delete(self, folder: str, uid: int, dump: bool = True) -> int:
        """Move a message to the trash and flag it \\Deleted (in place when already there)."""
        trash = self.standard_folder(StandardFolder.TRASH)
        if trash is None or folder.upper() == trash.upper():
            dump = False

        with self._rwlock.write(), self._wire_lock:
            if dump:
                new_uid = self.uid_copy(folder, trash, uid)
                self.mark_deleted(folder, uid)
                self.mark_deleted(trash, new_uid)
                uid = new_uid
            else:
                self.mark_deleted(folder, uid)
        return int(uid or 0)

    def message_duplicate(self, source: str, target: str, uid: int) -> int:
        with self._rwlock.write():
            return int(self.uid_copy(source, target, uid) or 0)

    # ========================================================================
    # Folders
    # ========================================================================
    def folder_retrieve(
        self,
        command: ListCommand,
        include_attr: Optional[Iterable[FolderAttribute]] = None,
        exclude_attr: Optional[Iterable[FolderAttribute]] = None,
    ) -> list[ListEntry]:
        """LIST folders, mark subscribed ones and filter by attributes."""
        with self._rwlock.read(), self._wire_lock:
            folders = self.list_folders(command.reference, command.wildcards)
            subscribed = self.list_subscribed(command.reference, command.wildcards)

        folders = [
            f.with_attribute(FolderAttribute.SUBSCRIBED)
            if self._is_inbox(f.name) or _contains(subscribed, f.name) else f
            for f in folders
        ]
        for attribute in include_attr or ():
            folders = [f for f in folders if f.has(attribute)]
        for attribute in exclude_attr or ():
            folders = [f for f in folders if not f.has(attribute)]
        return folders

    def folder_create(self, path: str, subscription: Optional[bool] = None, recurse: bool = True) -> None:
        with self._rwlock.write(), self._wire_lock:
            all_folders = self.list_folders("", "*")
            self._validate_allowed_to_create(path, all_folders)

            if recurse or self.recurse_folder_creation:
                self._create_parents(path, all_folders)
            self.create(path)

            if subscription is not None:
                self.subscribe(path, subscription)
        logger.info(f"Created folder {path!r}")

    def folder_update(
        self,
        path: str,
        new_path: Optional[str] = None,
        subscription: Optional[bool] = None,
        recurse: bool = True,
    ) -> None:
        """Rename a folder and/or change its subscription."""
        do_subscription = subscription is not None
        do_rename = bool(new_path) and new_path != path and not self._is_inbox(new_path)
        if not do_subscription and not do_rename:
            return

        with self._rwlock.write(), self._wire_lock:
            all_folders = self.list_folders("", "*")

            if do_rename:
                self._validate_allowed_to_rename(path, new_path, all_folders)
            elif do_subscription:
                self._validate_allowed_to_subscribe(path, all_folders)

            # carry over the subscription unless it is set explicitly
            if not do_subscription:
                subscription = self.folder_is_subscribed(path)

            if do_rename:
                # RENAME of the INBOX leaves it in place
                if not self._is_inbox(path):
                    self.subscribe(path, False)
                if recurse or self.recurse_folder_creation:
                    self._create_parents(new_path, all_folders)
                self.rename(path, new_path)
                path = new_path
                self.noop()

            self.subscribe(path, subscription)
        logger.info(f"Updated folder {path!r}")

    def folder_delete(self, path: str, recurse: bool = True) -> None:
        with self._rwlock.write(), self._wire_lock:
            all_folders = self.list_folders("", "*")
            self._validate_allowed_to_delete(path, recurse, all_folders)

            if recurse:
                for entry in self._subtree(path, all_folders):
                    if entry.selectable:
                        self.subscribe(entry.name, False)
                    self.delete(entry.name)
            else:
                self.subscribe(path, False)
                self.delete(path)
        logger.info(f"Deleted folder {path!r} (recurse={recurse})")

    def folder_expunge(self, path: str) -> None:
        with self._rwlock.write(), self._wire_lock:
            self.select(path)
            self.expunge()

    def folder_status(self, path: str) -> dict[str, int]:
        with self._rwlock.read(), self._wire_lock:
            self.unselect()
            return self.status(path)

    # ========================================================================
    # Validation
    # ========================================================================
    def allowed_to_create(self, path: Optional[str], folders: Optional[list[ListEntry]]) -> Optional[str]:
        """Return the reason a folder cannot be created at path, or None."""
        if path is None or self._is_rootdir(path) or self._is_inbox(path):
            return "invalid folder name"

        location = FolderPath(path, self.delimiter)
        depth = location.level
        limit = self.folder_depth_limit

        if limit is not None and depth > limit:
            return "folder path too deep"

        if depth == 1 and not self.rootdir_writeable:
            return "root dir does not allow inferiors"

        if folders is None:
            return None

        if _contains(folders, path):
            return "folder exists"

        for ancestor in reversed(location.ancestors()):
            entry = _find(folders, ancestor)
            if entry is None:
                if FolderPath(ancestor, self.delimiter).level == 1 and not self.rootdir_writeable:
                    return "root dir does not allow inferiors"
            elif entry.has(FolderAttribute.NOINFERIORS):
                return "parent folder does not allow inferiors"

        return None

    def allowed_to_rename(self, path: Optional[str]) -> Optional[str]:
        if path is None or self._is_rootdir(path):
            return "invalid folder name"
        return None

    def allowed_to_subscribe(self, path: Optional[str], folders: Optional[list[ListEntry]]) -> Optional[str]:
        if path is None or self._is_rootdir(path) or self._is_inbox(path):
            return "invalid folder name"
        if folders is None:
            return None
        entry = _find(folders, path)
        if entry is None:
            return "folder does not exist"
        if entry.has(FolderAttribute.NOSELECT):
            return "folder is not selectable"
        return None

    def allowed_to_delete(self, path: Optional[str], recurse: bool, folders: Optional[list[ListEntry]]) -> Optional[str]:
        if path is None or self._is_rootdir(path) or self._is_inbox(path):
            return "invalid folder name"
        if folders is None:
            return None

        entry = _find(folders, path)
        if entry is None:
            return "folder does not exist"
        if entry.has(FolderAttribute.NOSELECT):
            return "folder is not selectable"
        if not recurse and self._subtree(path, folders, include_self=False):
            return "folder contains subfolders"
        return None

    def _validate_allowed_to_create(self, path: str, folders: list[ListEntry]) -> None:
        reason = self.allowed_to_create(path, folders)
        if reason is not None:
            raise FolderCreationNotPermitted(path, reason)

    def _validate_allowed_to_rename(self, path: str, new_path: str, folders: list[ListEntry]) -> None:
        reason = self.allowed_to_rename(path)
        if reason is not None:
            raise FolderModificationNotPermitted(path, reason)
        reason = self.allowed_to_create(new_path, folders)
        if reason is not None:
            raise FolderModificationNotPermitted(new_path, reason)

    def _validate_allowed_to_subscribe(self, path: str, folders: list[ListEntry]) -> None:
        reason = self.allowed_to_subscribe(path, folders)
        if reason is not None:
            raise FolderModificationNotPermitted(path, reason)

    def _validate_allowed_to_delete(self, path: str, recurse: bool, folders: list[ListEntry]) -> None:
        reason = self.allowed_to_delete(path, recurse, folders)
        if reason is not None:
            raise FolderRemovalNotPermitted(path, reason)

    def _is_inbox(self, path: str) -> bool:
        inbox = self.standard_folder(StandardFolder.INBOX) or "INBOX"
        return path.upper() == inbox.upper()

    def _is_rootdir(self, path: str) -> bool:
        if not path:
            return True
        return bool(self.delimiter) and not path.rstrip(self.delimiter)

    def _subtree(self, path: str, folders: list[ListEntry], include_self: bool = True) -> list[ListEntry]:
        """Entries at or below path, deepest first."""
        prefix = f"{path}{self.delimiter or ''}".upper()
        matches = [
            f for f in folders
            if (include_self and f.name.upper() == path.upper())
            or (self.delimiter and f.name.upper().startswith(prefix))
        ]
        return sorted(matches, key=lambda f: f.depth(), reverse=True)

    def _create_parents(self, path: str, folders: list[ListEntry]) -> None:
        """Create missing ancestors of path, rolling all of them back on failure."""
        location = FolderPath(path, self.delimiter)
        created: list[ListEntry] = []

        for ancestor in location.ancestors():
            exists = _contains(folders, ancestor)
            if not exists:
                self.create(ancestor)

            listed = self.list_folders("", ancestor)
            entry = listed[0] if listed else ListEntry(ancestor, delimiter=self.delimiter)

            if not exists:
                if self.folder_is_subscribed(ancestor):
                    entry = entry.with_attribute(FolderAttribute.SUBSCRIBED)
                created.append(entry)

            if entry.has(FolderAttribute.NOINFERIORS):
                for folder in reversed(created):
                    if folder.has(FolderAttribute.SUBSCRIBED):
                        self.subscribe(folder.name, False)
                    self.delete(folder.name)
                logger.warning(f"Rolled back {len(created)} folder(s) created for {path!r}")
                raise FolderCreationNotPermitted(ancestor, "folder path too deep")
