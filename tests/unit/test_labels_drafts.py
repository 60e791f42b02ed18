"""Tests for label folders and drafts."""

import pytest

from bridgemail.core.body import resolve_bodies
from bridgemail.errors import ValidationError
from bridgemail.imap.drafts import DraftFields, create_draft, delete_drafts, edit_draft, list_drafts
from bridgemail.imap.labels import add_label, label_mailbox, list_labels, remove_label
from bridgemail.imap.mailboxes import create_mailbox, delete_mailbox, list_mailboxes

from fakes import make_message


@pytest.fixture
def labelled(imap_session):
    session, backend = imap_session
    backend.mailboxes["Labels/Work"] = []
    backend.mailboxes["Labels/Travel"] = []
    for number in range(1, 4):
        backend.add("INBOX", make_message(subject=f"Message {number}"))
    return session, backend


def test_label_folder_naming():
    assert label_mailbox("Work") == "Labels/Work"
    assert label_mailbox("Labels/Work") == "Labels/Work"
    with pytest.raises(ValidationError):
        label_mailbox("  ")


def test_list_labels(labelled):
    session, _ = labelled

    assert list_labels(session) == ["Travel", "Work"]


def test_add_label_copies_messages(labelled):
    session, backend = labelled

    result = add_label(session, "INBOX", "Work", ["1", "3"])

    assert result.messages == [1, 3]
    assert [r.parsed["Subject"] for r in backend.records("Labels/Work")] == ["Message 1", "Message 3"]
    assert len(backend.records("INBOX")) == 3


def test_add_unknown_label_copies_nothing(labelled):
    session, backend = labelled

    with pytest.raises(ValidationError):
        add_label(session, "INBOX", "Nope", ["1"])

    assert not any(name == "copy" for name, _ in backend.calls)


def test_remove_label_expunges_from_label_folder(labelled):
    session, backend = labelled
    add_label(session, "INBOX", "Work", ["1", "2"])

    remove_label(session, "Work", ["1"])

    assert [r.parsed["Subject"] for r in backend.records("Labels/Work")] == ["Message 2"]
    assert len(backend.records("INBOX")) == 3


def test_create_draft_appends_with_draft_flags(imap_session):
    session, backend = imap_session

    uid = create_draft(
        session,
        "me@example.com",
        DraftFields(to=("bob@example.com",), subject="Plan", body="Draft body\n"),
    )

    (record,) = backend.records("Drafts")
    assert record.uid == uid
    assert record.flags == {"\\Draft", "\\Seen"}
    assert record.parsed["Subject"] == "Plan"
    assert resolve_bodies(record.raw)[0] == "Draft body\n"


def test_edit_draft_merges_and_replaces(imap_session):
    session, backend = imap_session
    create_draft(session, "me@example.com", DraftFields(to=("bob@example.com",), subject="Plan", body="Draft body\n"))

    new_uid = edit_draft(session, "1", "me@example.com", DraftFields(subject="Plan v2"))

    (record,) = backend.records("Drafts")
    assert record.uid == new_uid
    assert record.parsed["Subject"] == "Plan v2"
    assert record.parsed["To"] == "bob@example.com"
    assert resolve_bodies(record.raw)[0] == "Draft body\n"


def test_list_and_delete_drafts(imap_session):
    session, backend = imap_session
    for subject in ("one", "two"):
        create_draft(session, "me@example.com", DraftFields(subject=subject, body="x"))

    assert [row.subject for row in list_drafts(session)] == ["two", "one"]

    result = delete_drafts(session, ["1"])

    assert result.messages == [1]
    assert [r.parsed["Subject"] for r in backend.records("Drafts")] == ["two"]


def test_mailbox_management(imap_session):
    session, backend = imap_session

    create_mailbox(session, "Projects")
    assert "Projects" in [info.name for info in list_mailboxes(session)]

    delete_mailbox(session, "Projects")
    assert "Projects" not in backend.mailboxes

    with pytest.raises(ValidationError):
        delete_mailbox(session, "inbox")
    with pytest.raises(ValidationError):
        create_mailbox(session, " ")


def test_mailboxes_are_sorted_case_insensitively(imap_session):
    session, backend = imap_session
    backend.mailboxes["archive-old"] = []

    names = [info.name for info in list_mailboxes(session)]

    assert names == sorted(names, key=str.lower)
