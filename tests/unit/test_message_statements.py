"""Unit tests for message statements.

Test Organization:
- Append with UID discovery (APPENDUID and tag header)
- Move, duplicate and delete
- Retrieval: search, sort, pagination, fetch key filtering
- Response and flag helpers
"""

import pytest

from fakes import FakeServer

from mailbox_runtime.adapters.generic import GenericAdapter
from mailbox_runtime.adapters.statements import (
    MESSAGE_TAG_HEADER,
    filter_fetch_keys,
    filter_flags,
    filter_sort_keys,
    uid_from_response,
)
from mailbox_runtime.adapters.vendors import DovecotAdapter, SafemailAdapter
from mailbox_runtime.errors import ImapCommandNotSupported

MESSAGE = b"From: a@example.org\r\nSubject: Hello\r\n\r\nBody text\r\n"


@pytest.fixture
def uidplus_adapter(make_adapter):
    """Adapter on a server that answers with APPENDUID/COPYUID."""
    server = FakeServer(folders=["INBOX", "Trash", "Archive"], uidplus=True)
    return make_adapter(server, DovecotAdapter), server


@pytest.fixture
def tagging_adapter(make_adapter):
    """Adapter that finds appended messages through the tag header."""
    server = FakeServer(folders=["INBOX", "Trash", "Archive"], uidplus=False)
    return make_adapter(server, GenericAdapter), server


# ============================================================================
# Append
# ============================================================================


class TestMessageCreate:
    """Unit tests for message_create()."""

    def test_uid_from_appenduid(self, uidplus_adapter):
        adapter, server = uidplus_adapter
        server.add_message("INBOX", b"Subject: earlier\r\n\r\n")

        uid = adapter.message_create("INBOX", MESSAGE, flags=["\\Seen"])

        assert uid == 2
        assert server.folders["INBOX"]["messages"][2]["body"] == MESSAGE
        assert server.flags("INBOX", 2) == {"\\Seen"}

    def test_uid_from_tag_header(self, tagging_adapter):
        """Test UID discovery without UIDPLUS.

        Validates:
        - Stored message carries the tag header
        - UID found by searching for the tag
        - Original headers and body kept
        """
        adapter, server = tagging_adapter
        server.add_message("INBOX", b"Subject: earlier\r\n\r\n")

        uid = adapter.message_create("INBOX", MESSAGE)

        assert uid == 2
        stored = server.folders["INBOX"]["messages"][2]["body"]
        assert stored.startswith(f"{MESSAGE_TAG_HEADER}: ".encode())
        assert stored.endswith(MESSAGE)
        assert server.called("search")[0][0][:2] == ["HEADER", MESSAGE_TAG_HEADER]

    def test_stale_tag_and_mbox_line_replaced(self, tagging_adapter):
        adapter, server = tagging_adapter
        raw = b"From a@example.org Mon Jan 1 00:00:00 2024\n" + f"{MESSAGE_TAG_HEADER}: old\n".encode() + MESSAGE

        uid = adapter.message_create("INBOX", raw)

        stored = server.folders["INBOX"]["messages"][uid]["body"]
        assert stored.count(MESSAGE_TAG_HEADER.encode()) == 1
        assert b"From a@example.org Mon" not in stored

    def test_recent_flag_dropped(self, uidplus_adapter):
        adapter, server = uidplus_adapter

        uid = adapter.message_create("INBOX", MESSAGE, flags=[b"\\Recent", b"\\Flagged"])

        assert server.flags("INBOX", uid) == {"\\Flagged"}


# ============================================================================
# Move / duplicate / delete
# ============================================================================


class TestMessageUpdate:
    """Unit tests for message_update() and message_duplicate()."""

    def test_move_copies_and_flags_source(self, uidplus_adapter):
        """Test move is copy plus \\Deleted on the source."""
        adapter, server = uidplus_adapter
        uid = server.add_message("INBOX", MESSAGE)

        new_uid = adapter.message_update("INBOX", "Archive", uid)

        assert new_uid == 1
        assert server.folders["Archive"]["messages"][1]["body"] == MESSAGE
        assert "\\Deleted" in server.flags("INBOX", uid)
        assert "\\Deleted" not in server.flags("Archive", new_uid)

    def test_move_without_uidplus(self, tagging_adapter):
        adapter, server = tagging_adapter
        uid = server.add_message("INBOX", MESSAGE, flags=["\\Seen"])

        new_uid = adapter.message_update("INBOX", "Archive", uid)

        assert new_uid == 1
        assert server.flags("Archive", new_uid) == {"\\Seen"}
        assert "\\Deleted" in server.flags("INBOX", uid)

    def test_move_and_change_flags(self, uidplus_adapter):
        adapter, server = uidplus_adapter
        uid = server.add_message("INBOX", MESSAGE, flags=["\\Seen"])

        new_uid = adapter.message_update("INBOX", "Archive", uid, flags=["\\Flagged"], mode="add")

        assert server.flags("Archive", new_uid) == {"\\Seen", "\\Flagged"}

    @pytest.mark.parametrize(
        "mode, expected",
        [("set", {"\\Answered"}), ("add", {"\\Seen", "\\Answered"}), ("delete", {"\\Seen"})],
    )
    def test_flag_modes(self, uidplus_adapter, mode, expected):
        adapter, server = uidplus_adapter
        initial = ["\\Seen", "\\Answered"] if mode == "delete" else ["\\Seen"]
        uid = server.add_message("INBOX", MESSAGE, flags=initial)

        adapter.message_update("INBOX", None, uid, flags=["\\Answered"], mode=mode)

        assert server.flags("INBOX", uid) == expected

    def test_nothing_to_do(self, uidplus_adapter):
        adapter, server = uidplus_adapter
        calls_before = len(server.calls)

        assert adapter.message_update("INBOX", "INBOX", 1) is None
        assert len(server.calls) == calls_before

    def test_duplicate(self, uidplus_adapter):
        adapter, server = uidplus_adapter
        uid = server.add_message("INBOX", MESSAGE)

        assert adapter.message_duplicate("INBOX", "Archive", uid) == 1
        assert "\\Deleted" not in server.flags("INBOX", uid)


class TestMessageDelete:
    """Unit tests for message_delete()."""

    def test_dump_to_trash(self, uidplus_adapter):
        """Test deletion with dump.

        Validates:
        - Copy placed in trash
        - Source and trash copy both flagged \\Deleted
        - UID of the trash copy returned
        """
        adapter, server = uidplus_adapter
        uid = server.add_message("INBOX", MESSAGE)

        trash_uid = adapter.message_delete("INBOX", uid)

        assert trash_uid == 1
        assert "\\Deleted" in server.flags("INBOX", uid)
        assert "\\Deleted" in server.flags("Trash", trash_uid)

    def test_already_in_trash(self, uidplus_adapter):
        adapter, server = uidplus_adapter
        uid = server.add_message("Trash", MESSAGE)

        assert adapter.message_delete("Trash", uid) == uid

        assert server.called("copy") == []
        assert "\\Deleted" in server.flags("Trash", uid)

    def test_without_dump(self, uidplus_adapter):
        adapter, server = uidplus_adapter
        uid = server.add_message("INBOX", MESSAGE)

        adapter.message_delete("INBOX", uid, dump=False)

        assert server.called("copy") == []
        assert server.folders["Trash"]["messages"] == {}
        assert "\\Deleted" in server.flags("INBOX", uid)


# ============================================================================
# Retrieval
# ============================================================================


class TestMessageRetrieve:
    """Unit tests for message_retrieve() and message_exists()."""

    def test_search_and_fetch(self, adapter, fake_server):
        for i in range(3):
            fake_server.add_message("INBOX", f"Subject: {i}\r\n\r\n".encode())

        result = adapter.message_retrieve("INBOX", "ALL", ["FLAGS", "RFC822", "NOT-A-KEY"])

        assert sorted(result) == [1, 2, 3]
        assert fake_server.called("fetch")[-1] == ((1, 2, 3), ("FLAGS", "RFC822"))

    def test_pagination(self, adapter, fake_server):
        for i in range(5):
            fake_server.add_message("INBOX", f"Subject: {i}\r\n\r\n".encode())

        result = adapter.message_retrieve("INBOX", "ALL", ["UID"], paginate=slice(1, 3))

        assert sorted(result) == [2, 3]

    def test_sort_requires_capability(self, adapter):
        with pytest.raises(ImapCommandNotSupported) as exc_info:
            adapter.message_retrieve("INBOX", "ALL", ["UID"], sort_by=["DATE"])
        assert "SORT" in str(exc_info.value)

    def test_sort_when_supported(self, make_adapter):
        server = FakeServer(capabilities=["IMAP4REV1", "SORT"])
        for i in range(3):
            server.add_message("INBOX", f"Subject: {i}\r\n\r\n".encode())
        adapter = make_adapter(server)

        adapter.message_retrieve("INBOX", "ALL", ["UID"], sort_by="REVERSE DATE BOGUS")

        assert server.called("sort") == [(("REVERSE", "DATE"),)]

    def test_message_exists(self, adapter, fake_server):
        fake_server.add_message("INBOX", MESSAGE, flags=["\\Seen"])

        assert adapter.message_exists("INBOX", "ALL") is True
        assert adapter.message_exists("INBOX", ["UNSEEN"]) is False

    def test_select_is_cached(self, adapter, fake_server):
        adapter.message_exists("INBOX", "ALL")
        adapter.message_exists("INBOX", "ALL")

        assert fake_server.called("select_folder") == [("INBOX",)]

    def test_safemail_adds_all_to_search(self, make_adapter):
        server = FakeServer()
        adapter = make_adapter(server, SafemailAdapter)

        adapter.message_exists("INBOX", "UNSEEN")

        assert server.called("search") == [(["ALL", "UNSEEN"],)]


# ============================================================================
# Helpers
# ============================================================================


class TestHelpers:
    """Unit tests for response and key helpers."""

    def test_uid_from_response(self):
        assert uid_from_response(b"[APPENDUID 38505 3955] APPEND completed", "APPENDUID") == 3955
        assert uid_from_response(b"[COPYUID 38505 304,319:320 3956:3958] Done", "COPYUID") == 3958
        assert uid_from_response(b"APPEND completed", "APPENDUID") is None
        assert uid_from_response(None, "APPENDUID") is None

    def test_filter_flags(self):
        assert filter_flags(None) is None
        assert filter_flags([b"\\Recent"]) is None
        assert filter_flags(["\\Seen", "\\RECENT"]) == ["\\Seen"]

    def test_filter_fetch_keys(self):
        keys = ["FLAGS", "BODY.PEEK[HEADER]", "RFC822.SIZE", "X-GM-LABELS", "nonsense"]
        assert filter_fetch_keys(keys) == ["FLAGS", "BODY.PEEK[HEADER]", "RFC822.SIZE"]

    def test_filter_sort_keys(self):
        assert filter_sort_keys(None) == []
        assert filter_sort_keys(["reverse", "arrival", "bogus"]) == ["reverse", "arrival"]
