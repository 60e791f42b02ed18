"""Tests for listing, reading, searching and batch mutations."""

from datetime import datetime, timezone

import pytest
from imapclient.response_types import Address

from bridgemail.core.search import SearchOptions
from bridgemail.errors import InvalidIdentifier, MessageNotFound, ProtocolError, ValidationError
from bridgemail.imap.messages import (
    FlagChange,
    delete_messages,
    flag_messages,
    format_address,
    get_message,
    list_messages,
    move_messages,
    search_messages,
)

from fakes import make_message


def _seed(backend, count=5, mailbox="INBOX"):
    for number in range(1, count + 1):
        backend.add(
            mailbox,
            make_message(
                subject=f"Message {number}",
                sender="Alice Example <alice@example.com>" if number % 2 else "bob@example.com",
                body=f"body text {number}\n",
                when=datetime(2024, 3, number, 8, 0, tzinfo=timezone.utc),
            ),
            flags=("\\Seen",) if number <= 2 else (),
        )


def test_list_returns_newest_first_with_paging(imap_session):
    session, backend = imap_session
    _seed(backend)

    first = list_messages(session, "INBOX", limit=2)
    second = list_messages(session, "INBOX", limit=2, offset=2)
    beyond = list_messages(session, "INBOX", limit=2, offset=5)

    assert [row.seq_num for row in first] == [5, 4]
    assert [row.subject for row in first] == ["Message 5", "Message 4"]
    assert [row.seq_num for row in second] == [3, 2]
    assert beyond == []


def test_list_summary_fields(imap_session):
    session, backend = imap_session
    _seed(backend, count=1)

    (row,) = list_messages(session, "INBOX")

    assert row.from_ == "Alice Example"
    assert row.to == "me@example.com"
    assert row.date == "2024-03-01 08:00"
    assert row.seen is True
    assert row.flagged is False
    assert row.to_dict()["from"] == "Alice Example"


def test_list_unread_only(imap_session):
    session, backend = imap_session
    _seed(backend)

    rows = list_messages(session, "INBOX", unread_only=True, limit=2)

    assert [row.seq_num for row in rows] == [5, 4]
    assert all(not row.seen for row in rows)


def test_list_rejects_non_positive_limit(imap_session):
    session, _ = imap_session

    with pytest.raises(ValidationError):
        list_messages(session, "INBOX", limit=0)


def test_read_marks_seen_but_peek_does_not(imap_session):
    session, backend = imap_session
    _seed(backend)

    peeked = get_message(session, "INBOX", "4", peek=True)
    assert "\\Seen" not in backend.records("INBOX")[3].flags

    message = get_message(session, "INBOX", "4")

    assert "\\Seen" in backend.records("INBOX")[3].flags
    assert message.subject == "Message 4"
    assert message.from_ == "bob@example.com"
    assert message.to == ["me@example.com"]
    assert message.message_id.endswith("@example.com>")
    assert peeked.raw == message.raw
    assert b"body text 4" in message.raw


def test_read_missing_message(imap_session):
    session, backend = imap_session
    _seed(backend, count=1)

    with pytest.raises(MessageNotFound):
        get_message(session, "INBOX", "9")


def test_read_invalid_identifier(imap_session):
    session, backend = imap_session
    calls_before = len(backend.calls)

    with pytest.raises(InvalidIdentifier):
        get_message(session, "INBOX", "abc")

    assert len(backend.calls) == calls_before


def test_search_filters_and_limits(imap_session):
    session, backend = imap_session
    _seed(backend)

    from_alice = search_messages(session, "INBOX", SearchOptions(from_="alice"))
    newest = search_messages(session, "INBOX", SearchOptions(from_="alice"), limit=1)
    either = search_messages(
        session, "INBOX", SearchOptions(subject="Message 2", body="text 3", combinator="or")
    )
    negated = search_messages(session, "INBOX", SearchOptions(from_="alice", negate=True))

    assert [row.seq_num for row in from_alice] == [5, 3, 1]
    assert [row.seq_num for row in newest] == [5]
    assert [row.seq_num for row in either] == [3, 2]
    assert [row.seq_num for row in negated] == [4, 2]


def test_search_by_date_range(imap_session):
    session, backend = imap_session
    _seed(backend)

    rows = search_messages(session, "INBOX", SearchOptions(since="2024-03-02", before="2024-03-04"))

    assert [row.seq_num for row in rows] == [3, 2]


def test_delete_without_permanent_only_flags(imap_session):
    session, backend = imap_session
    _seed(backend)

    result = delete_messages(session, "INBOX", ids=["2", "1", "3"])

    assert result.action == "trashed"
    assert result.messages == [1, 2, 3]
    assert ("add_flags", ("1:3", ("\\Deleted",))) in backend.calls
    assert len(backend.records("INBOX")) == 5
    assert not any(name == "expunge" for name, _ in backend.calls)


def test_permanent_delete_expunges(imap_session):
    session, backend = imap_session
    _seed(backend)

    result = delete_messages(session, "INBOX", ids=["5"], permanent=True)

    assert result.action == "deleted"
    assert [record.parsed["Subject"] for record in backend.records("INBOX")] == [
        "Message 1",
        "Message 2",
        "Message 3",
        "Message 4",
    ]


def test_delete_by_query(imap_session):
    session, backend = imap_session
    _seed(backend)

    result = delete_messages(session, "INBOX", query="from:bob", permanent=True)

    assert result.messages == [2, 4]
    assert len(backend.records("INBOX")) == 3


def test_query_without_match_is_a_successful_no_op(imap_session):
    session, backend = imap_session
    _seed(backend)

    result = delete_messages(session, "INBOX", query="from:nobody")

    assert not result.matched
    assert not any(name == "add_flags" for name, _ in backend.calls)


@pytest.mark.parametrize("query", ["from:", " ", "subject: body:"])
def test_query_without_filters_is_rejected_before_selecting(imap_session, query):
    session, backend = imap_session
    _seed(backend, count=3)

    with pytest.raises(ValidationError, match="query has no filters"):
        delete_messages(session, "INBOX", query=query, permanent=True)
    with pytest.raises(ValidationError):
        move_messages(session, "INBOX", "Archive", query=query)
    with pytest.raises(ValidationError):
        flag_messages(session, "INBOX", FlagChange(star=True), query=query)

    assert len(backend.records("INBOX")) == 3
    assert not any(name in ("select_folder", "search") for name, _ in backend.calls)


def test_ids_and_query_are_mutually_exclusive(imap_session):
    session, _ = imap_session

    with pytest.raises(ValidationError):
        delete_messages(session, "INBOX", ids=["1"], query="from:bob")
    with pytest.raises(ValidationError):
        delete_messages(session, "INBOX")


def test_move_copies_then_deletes_then_expunges(imap_session):
    session, backend = imap_session
    _seed(backend)

    result = move_messages(session, "INBOX", "Archive", ids=["1", "2"])

    mutations = [name for name, _ in backend.calls if name in ("copy", "add_flags", "expunge")]
    assert mutations == ["copy", "add_flags", "expunge"]
    assert result.destination == "Archive"
    assert len(backend.records("INBOX")) == 3
    assert [record.parsed["Subject"] for record in backend.records("Archive")] == ["Message 1", "Message 2"]


def test_failed_copy_leaves_source_untouched(imap_session):
    session, backend = imap_session
    _seed(backend)

    with pytest.raises(ProtocolError) as excinfo:
        move_messages(session, "INBOX", "Missing", ids=["1"])

    assert excinfo.value.step == "copy"
    assert all("\\Deleted" not in record.flags for record in backend.records("INBOX"))


def test_flag_changes(imap_session):
    session, backend = imap_session
    _seed(backend)

    result = flag_messages(session, "INBOX", FlagChange(unread=True, star=True), ids=["1", "2"])

    records = backend.records("INBOX")
    assert result.action == "flagged:unread,star"
    assert "\\Seen" not in records[0].flags and "\\Flagged" in records[0].flags
    assert "\\Seen" not in records[1].flags and "\\Flagged" in records[1].flags
    assert "\\Flagged" not in records[2].flags


def test_flag_change_requires_an_edit():
    with pytest.raises(ValidationError):
        FlagChange().validate()
    with pytest.raises(ValidationError):
        FlagChange(star=True, unstar=True).validate()


def test_format_address_decodes_names():
    assert format_address(Address(b"Alice", None, b"alice", b"example.com")) == "Alice <alice@example.com>"
    assert format_address(Address(None, None, b"bob", b"example.com")) == "bob@example.com"
    encoded = Address(b"=?utf-8?q?Zo=C3=AB?=", None, b"zoe", b"example.com")
    assert format_address(encoded) == "Zoë <zoe@example.com>"
