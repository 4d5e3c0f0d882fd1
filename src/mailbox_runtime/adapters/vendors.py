"""Vendor-specific adapters.

Each variant only states how its server deviates from the generic adapter:
standard folder paths, folder depth, root writability, whether CREATE
creates missing parents, whether APPEND/COPY report the new UID, plus the odd
protocol quirk. ``adapter_name`` doubles as the vendor id used by the
classifier.
"""

from typing import Any, Iterable, Optional, Sequence

from mailbox_runtime.adapters.generic import GenericAdapter
from mailbox_runtime.adapters.base import QueryableCapability
from mailbox_runtime.models.folder import FolderAttribute, ListCommand, ListEntry, StandardFolder
from mailbox_runtime.models.path import FolderPath, ListKind


class AolAdapter(GenericAdapter):
    adapter_name = "aol.com"
    standard_folders = {
        **GenericAdapter.standard_folders,
        StandardFolder.DRAFTS: "Drafts",
        StandardFolder.SENT: "Sent Items",
    }
    max_folder_depth = 2
    implements_working_uidplus = True

    def uid_search(self, folder: str, search_keys: Any, sort_by: Sequence[str] = ()) -> list[int]:
        # AOL sends no untagged SEARCH response when nothing matches
        return super().uid_search(folder, search_keys, sort_by) or []


class CourierAdapter(GenericAdapter):
    adapter_name = "Courier"
    standard_folders = {**GenericAdapter.standard_folders, StandardFolder.TRASH: "INBOX.Trash"}
    rootdir_writeable = False
    implements_working_uidplus = True


class CyrusAdapter(GenericAdapter):
    """Cyrus: root is not writable and subscriptions are not reported."""

    adapter_name = "Cyrus"
    standard_folders = {
        **GenericAdapter.standard_folders,
        StandardFolder.TRASH: "INBOX.Trash",
        StandardFolder.DRAFTS: "INBOX.Drafts",
        StandardFolder.SENT: "INBOX.Sent Items",
    }
    rootdir_writeable = False
    implements_working_uidplus = True

    def folder_retrieve(
        self,
        command: ListCommand,
        include_attr: Optional[Iterable[FolderAttribute]] = None,
        exclude_attr: Optional[Iterable[FolderAttribute]] = None,
    ) -> list[ListEntry]:
        include_attr = [a for a in include_attr or () if a is not FolderAttribute.SUBSCRIBED]
        exclude_attr = [a for a in exclude_attr or () if a is not FolderAttribute.SUBSCRIBED]
        return super().folder_retrieve(command, include_attr, exclude_attr)


class DovecotAdapter(GenericAdapter):
    adapter_name = "Dovecot"
    max_folder_depth = 20
    implements_working_uidplus = True


class GimapAdapter(GenericAdapter):
    adapter_name = "Gimap"
    standard_folders = {
        **GenericAdapter.standard_folders,
        StandardFolder.TRASH: "[Google Mail]/Trash",
        StandardFolder.DRAFTS: "[Google Mail]/Drafts",
        StandardFolder.SENT: "[Google Mail]/Sent Mail",
    }
    max_folder_depth = 8


class LavabitAdapter(GenericAdapter):
    """Lavabit: no UNSELECT and no tolerance for invalid SELECTs."""

    adapter_name = "lavabit.com"
    standard_folders = {
        **GenericAdapter.standard_folders,
        StandardFolder.DRAFTS: "Drafts",
        StandardFolder.SENT: "Sent Items",
    }
    max_folder_depth = 7
    implements_working_uidplus = False

    def unselect(self, force: bool = False) -> None:
        if self._selected is None and not force:
            return
        self._selected = None
        if self.supports(QueryableCapability.UNSELECT):
            self._wire(self.client.unselect_folder)

    def list_command(self, location: FolderPath, kind: ListKind = None) -> ListCommand:
        # reference without the trailing delimiter
        return ListCommand(location.parent_path or "", location.list_wildcards(kind))


class MailsiteAdapter(GenericAdapter):
    """MailSite: parents are not created implicitly and LIST may report nameless entries."""

    adapter_name = "MailSite"
    standard_folders = {**GenericAdapter.standard_folders, StandardFolder.SENT: "Sent Items"}
    parentfolders_auto_created = False
    implements_working_uidplus = True

    def list_folders(self, reference: str, wildcards: str) -> list[ListEntry]:
        return [e for e in super().list_folders(reference, wildcards) if e.name and e.name != "NIL"]

    def list_subscribed(self, reference: str, wildcards: str) -> list[ListEntry]:
        return [e for e in super().list_subscribed(reference, wildcards) if e.name and e.name != "NIL"]


class MmpAdapter(GenericAdapter):
    adapter_name = "Messaging Multiplexor"


class SafemailAdapter(GenericAdapter):
    """SAFe-mail: LIST is updated lazily, so the hierarchy is kept flat."""

    adapter_name = "SAFe-mail"
    standard_folders = {
        **GenericAdapter.standard_folders,
        StandardFolder.DRAFTS: "Drafts",
        StandardFolder.SENT: "Sent",
    }
    max_folder_depth = 1

    def uid_search(self, folder: str, search_keys: Any, sort_by: Sequence[str] = ()) -> list[int]:
        # UID SEARCH with a single key misbehaves; an extra ALL is harmless
        if search_keys:
            if isinstance(search_keys, (str, bytes)):
                search_keys = [search_keys]
            search_keys = ["ALL", *search_keys]
        return super().uid_search(folder, search_keys, sort_by)


class VfemailAdapter(GenericAdapter):
    adapter_name = "VFEmail"
    standard_folders = {**GenericAdapter.standard_folders, StandardFolder.TRASH: "INBOX.Trash"}
    max_folder_depth = 21
    rootdir_writeable = False
    implements_working_uidplus = True


class WebdeAdapter(GenericAdapter):
    adapter_name = "Web.de"
    standard_folders = {
        **GenericAdapter.standard_folders,
        StandardFolder.TRASH: "Papierkorb",
        StandardFolder.DRAFTS: "Entwurf",
        StandardFolder.SENT: "Gesendet",
    }
    max_folder_depth = 1
    parentfolders_auto_created = False


VENDOR_ADAPTERS = (
    AolAdapter,
    CourierAdapter,
    CyrusAdapter,
    DovecotAdapter,
    GimapAdapter,
    LavabitAdapter,
    MailsiteAdapter,
    MmpAdapter,
    SafemailAdapter,
    VfemailAdapter,
    WebdeAdapter,
)
