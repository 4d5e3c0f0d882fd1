"""Unit tests for folder statements and their structural validation.

Test Organization:
- Decision table: create, rename, subscribe, delete
- Recursive creation and rollback
- Recursive deletion order
- Listing with subscription marks
"""

import pytest

from fakes import FakeServer

from mailbox_runtime.adapters.generic import GenericAdapter
from mailbox_runtime.adapters.vendors import CourierAdapter, CyrusAdapter
from mailbox_runtime.errors import (
    FolderCreationNotPermitted,
    FolderModificationNotPermitted,
    FolderRemovalNotPermitted,
)
from mailbox_runtime.models.folder import FolderAttribute, ListCommand, ListEntry


class ShallowAdapter(GenericAdapter):
    max_folder_depth = 3


# ============================================================================
# Creation
# ============================================================================


class TestFolderCreate:
    """Unit tests for folder_create()."""

    def test_create_subscribed(self, adapter, fake_server):
        adapter.folder_create("Projects", subscription=True)

        assert "Projects" in fake_server.folders
        assert "Projects" in fake_server.subscribed

    @pytest.mark.parametrize("path", ["", "/", "INBOX", "inbox"])
    def test_invalid_names_rejected(self, adapter, path):
        with pytest.raises(FolderCreationNotPermitted) as exc_info:
            adapter.folder_create(path)
        assert exc_info.value.reason == "invalid folder name"

    def test_existing_folder_rejected(self, adapter):
        with pytest.raises(FolderCreationNotPermitted) as exc_info:
            adapter.folder_create("Trash")
        assert "folder exists" in str(exc_info.value)

    def test_depth_limit_accepted_at_maximum(self, make_adapter):
        """Test a folder exactly at the maximum depth is created.

        Validates:
        - Depth == max accepted
        - Missing ancestors created first
        """
        server = FakeServer()
        adapter = make_adapter(server, ShallowAdapter)

        adapter.folder_create("a/b/c")

        assert {"a", "a/b", "a/b/c"} <= set(server.folders)
        assert [args[0] for args in server.called("create_folder")] == ["a", "a/b", "a/b/c"]

    def test_depth_limit_rejected_beyond_maximum(self, make_adapter):
        server = FakeServer()
        adapter = make_adapter(server, ShallowAdapter)

        with pytest.raises(FolderCreationNotPermitted) as exc_info:
            adapter.folder_create("a/b/c/d")

        assert exc_info.value.reason == "folder path too deep"
        assert exc_info.value.path == "a/b/c/d"
        assert server.called("create_folder") == []

    def test_flat_hierarchy_allows_one_level(self, make_adapter):
        """Test servers without a delimiter only take top-level folders."""
        server = FakeServer(delimiter=None)
        adapter = make_adapter(server)

        assert adapter.folder_depth_limit == 1
        adapter.folder_create("Projects")
        assert "Projects" in server.folders

    def test_root_not_writable(self, make_adapter):
        server = FakeServer(folders=["INBOX", "INBOX/Trash"])
        adapter = make_adapter(server, CourierAdapter)

        with pytest.raises(FolderCreationNotPermitted) as exc_info:
            adapter.folder_create("Projects")
        assert exc_info.value.reason == "root dir does not allow inferiors"

        adapter.folder_create("INBOX/Projects")
        assert "INBOX/Projects" in server.folders

    def test_parent_without_inferiors_rejected(self, make_adapter):
        server = FakeServer()
        server.noinferiors.add("Leaf")
        server.add_folder("Leaf")
        adapter = make_adapter(server)

        with pytest.raises(FolderCreationNotPermitted) as exc_info:
            adapter.folder_create("Leaf/Child")
        assert exc_info.value.reason == "parent folder does not allow inferiors"

    def test_rollback_removes_only_created_ancestors(self, make_adapter):
        """Test recursive creation failing partway.

        Validates:
        - Ancestor created in this call is deleted again
        - Pre-existing ancestor is left untouched
        - Error names the ancestor that refused inferiors
        """
        server = FakeServer()
        server.add_folder("a", subscribed=True)
        server.noinferiors.add("a/b")
        adapter = make_adapter(server)

        with pytest.raises(FolderCreationNotPermitted) as exc_info:
            adapter.folder_create("a/b/c")

        assert exc_info.value.path == "a/b"
        assert exc_info.value.reason == "folder path too deep"
        assert "a" in server.folders
        assert "a" in server.subscribed
        assert "a/b" not in server.folders
        assert "a/b/c" not in server.folders
        assert [args[0] for args in server.called("delete_folder")] == ["a/b"]

    def test_non_recursive_create_skips_parents(self, make_adapter):
        server = FakeServer()
        adapter = make_adapter(server)

        adapter.folder_create("x/y", recurse=False)

        assert [args[0] for args in server.called("create_folder")] == ["x/y"]


# ============================================================================
# Rename / subscribe
# ============================================================================


class TestFolderUpdate:
    """Unit tests for folder_update()."""

    def test_rename_keeps_subscription(self, make_adapter):
        server = FakeServer()
        server.add_folder("Old", subscribed=True)
        adapter = make_adapter(server)

        adapter.folder_update("Old", new_path="New")

        assert "New" in server.folders
        assert "Old" not in server.folders
        assert server.subscribed == {"New"}

    def test_rename_root_rejected(self, adapter):
        with pytest.raises(FolderModificationNotPermitted) as exc_info:
            adapter.folder_update("", new_path="Anything")
        assert exc_info.value.reason == "invalid folder name"

    def test_rename_target_checked_like_create(self, make_adapter):
        server = FakeServer()
        server.add_folder("Old")
        adapter = make_adapter(server, ShallowAdapter)

        with pytest.raises(FolderModificationNotPermitted) as exc_info:
            adapter.folder_update("Old", new_path="a/b/c/d")

        assert exc_info.value.path == "a/b/c/d"
        assert exc_info.value.reason == "folder path too deep"

    def test_rename_to_inbox_is_ignored(self, adapter, fake_server):
        adapter.folder_update("Trash", new_path="INBOX")
        assert fake_server.called("rename_folder") == []

    def test_subscribe_existing(self, adapter, fake_server):
        adapter.folder_update("Trash", subscription=True)
        assert "Trash" in fake_server.subscribed

        adapter.folder_update("Trash", subscription=False)
        assert "Trash" not in fake_server.subscribed

    def test_subscribe_missing_rejected(self, adapter):
        with pytest.raises(FolderModificationNotPermitted) as exc_info:
            adapter.folder_update("Missing", subscription=True)
        assert exc_info.value.reason == "folder does not exist"

    def test_subscribe_noselect_rejected(self, make_adapter):
        server = FakeServer()
        server.add_folder("Archive", noselect=True)
        adapter = make_adapter(server)

        with pytest.raises(FolderModificationNotPermitted) as exc_info:
            adapter.folder_update("Archive", subscription=True)
        assert exc_info.value.reason == "folder is not selectable"


# ============================================================================
# Deletion
# ============================================================================


class TestFolderDelete:
    """Unit tests for folder_delete()."""

    @pytest.mark.parametrize("recurse", [True, False])
    def test_inbox_never_deleted(self, adapter, recurse):
        with pytest.raises(FolderRemovalNotPermitted) as exc_info:
            adapter.folder_delete("INBOX", recurse=recurse)
        assert exc_info.value.reason == "invalid folder name"

    def test_missing_folder_rejected(self, adapter):
        with pytest.raises(FolderRemovalNotPermitted) as exc_info:
            adapter.folder_delete("Missing")
        assert exc_info.value.reason == "folder does not exist"

    def test_noselect_target_rejected(self, make_adapter):
        server = FakeServer()
        server.add_folder("Archive", noselect=True)
        adapter = make_adapter(server)

        with pytest.raises(FolderRemovalNotPermitted) as exc_info:
            adapter.folder_delete("Archive")
        assert exc_info.value.reason == "folder is not selectable"

    def test_non_recursive_with_children_rejected(self, make_adapter):
        server = FakeServer(folders=["INBOX", "a", "a/b"])
        adapter = make_adapter(server)

        with pytest.raises(FolderRemovalNotPermitted) as exc_info:
            adapter.folder_delete("a", recurse=False)
        assert exc_info.value.reason == "folder contains subfolders"

    def test_sibling_with_common_prefix_is_not_a_child(self, make_adapter):
        server = FakeServer(folders=["INBOX", "a", "ab"])
        adapter = make_adapter(server)

        adapter.folder_delete("a", recurse=False)

        assert "ab" in server.folders
        assert "a" not in server.folders

    def test_recursive_delete_deepest_first(self, make_adapter):
        """Test recursive deletion order and subscription cleanup.

        Validates:
        - Children deleted before parents
        - Noselect placeholders deleted without unsubscribe
        - Unrelated folders untouched
        """
        server = FakeServer(folders=["INBOX", "a", "a/b/c", "other"])
        server.add_folder("a/b", subscribed=True, noselect=True)
        server.subscribed.update({"a", "a/b/c"})
        adapter = make_adapter(server)

        adapter.folder_delete("a")

        assert [args[0] for args in server.called("delete_folder")] == ["a/b/c", "a/b", "a"]
        assert sorted(args[0] for args in server.called("unsubscribe_folder")) == ["a", "a/b/c"]
        assert sorted(server.folders) == ["INBOX", "other"]


# ============================================================================
# Listing / status
# ============================================================================


class TestFolderRetrieve:
    """Unit tests for folder_retrieve(), folder_status() and folder_expunge()."""

    def test_subscription_marks(self, make_adapter):
        server = FakeServer(folders=["INBOX", "News", "Work"])
        server.subscribed.add("Work")
        adapter = make_adapter(server)

        folders = {e.name: e for e in adapter.folder_retrieve(ListCommand())}

        assert folders["INBOX"].has(FolderAttribute.SUBSCRIBED)
        assert folders["Work"].has(FolderAttribute.SUBSCRIBED)
        assert not folders["News"].has(FolderAttribute.SUBSCRIBED)

    def test_attribute_filters(self, make_adapter):
        server = FakeServer(folders=["INBOX", "News", "Work"])
        server.subscribed.add("Work")
        adapter = make_adapter(server)

        subscribed = adapter.folder_retrieve(ListCommand(), include_attr=[FolderAttribute.SUBSCRIBED])
        unsubscribed = adapter.folder_retrieve(ListCommand(), exclude_attr=[FolderAttribute.SUBSCRIBED])

        assert [e.name for e in subscribed] == ["INBOX", "Work"]
        assert [e.name for e in unsubscribed] == ["News"]

    def test_cyrus_ignores_subscription_filters(self, make_adapter):
        server = FakeServer(folders=["INBOX", "News"])
        adapter = make_adapter(server, CyrusAdapter)

        folders = adapter.folder_retrieve(ListCommand(), include_attr=[FolderAttribute.SUBSCRIBED])
        assert [e.name for e in folders] == ["INBOX", "News"]

    def test_status_and_expunge(self, adapter, fake_server):
        fake_server.add_message("INBOX", b"Subject: a\r\n\r\n", flags=["\\Seen"])
        fake_server.add_message("INBOX", b"Subject: b\r\n\r\n", flags=["\\Deleted"])

        assert adapter.folder_status("INBOX") == {"MESSAGES": 2, "RECENT": 0, "UNSEEN": 1}

        adapter.folder_expunge("INBOX")
        assert adapter.folder_status("INBOX")["MESSAGES"] == 1

    def test_list_entry_from_response(self):
        entry = ListEntry.from_imap_response((b"\\HasNoChildren", b"\\Noselect"), b".", "INBOX.Drafts")

        assert entry.delimiter == "."
        assert entry.attributes == frozenset({FolderAttribute.NOSELECT})
        assert entry.depth() == 2
        assert not entry.selectable
