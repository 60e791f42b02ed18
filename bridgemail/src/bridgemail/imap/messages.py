"""Message listing, reading, searching, and batch mutations.

What:
  Implement ``list``, ``read``, ``search``, ``delete``, ``move`` and ``flag``
  on top of a :class:`MailSession`.

Why:
  These commands share identifier validation, envelope decoding, and the
  "one STORE/COPY per batch" rule. Keeping them together makes the ordering
  constraints visible: identifiers are validated before the first protocol
  call, and a query that matches nothing is a success, not an error.

How:
  Identifiers go through :func:`build_sequence_set`; ``--query`` strings go
  through :func:`parse_query` and :func:`build_predicate` and one SEARCH.
  Envelopes returned by ``imapclient`` are decoded into
  :class:`MessageSummary` and :class:`Message` values.

Interfaces:
  :func:`list_messages`, :func:`get_message`, :func:`search_messages`,
  :func:`resolve_targets`, :func:`delete_messages`, :func:`move_messages`,
  :func:`flag_messages`, :func:`format_address`.

Invariants & Safety:
  - An invalid identifier raises before any session call.
  - Move is COPY, then ``\\Deleted``, then EXPUNGE; a failed COPY leaves the
    source untouched.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from typing import Any, Dict, List, Optional, Sequence

from ..core.models import BatchResult, Message, MessageSummary
from ..core.search import And, SearchOptions, Unseen, build_predicate, parse_query
from ..core.sequence import SequenceSet, build_sequence_set
from ..errors import MessageNotFound, ValidationError
from ..utils.logging import JsonLogger, get_logger
from .client import MailSession

SEEN = "\\Seen"
FLAGGED = "\\Flagged"
DELETED = "\\Deleted"

SUMMARY_ITEMS = ["UID", "FLAGS", "ENVELOPE", "INTERNALDATE"]
MESSAGE_ITEMS = ["UID", "FLAGS", "ENVELOPE", "INTERNALDATE", "BODY[]"]
NO_MATCH = "No messages matched the query"

_LOGGER = get_logger("bridgemail.messages")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    return str(value)


def decode_words(value: Any) -> str:
    """Decode RFC 2047 encoded-words found in envelope strings."""

    text = _text(value)
    if "=?" not in text:
        return text
    try:
        return str(make_header(decode_header(text)))
    except (HeaderParseError, LookupError, UnicodeDecodeError):
        return text


def _address(address: Any) -> str:
    mailbox = _text(getattr(address, "mailbox", None))
    host = _text(getattr(address, "host", None))
    return f"{mailbox}@{host}" if host else mailbox


def format_address(address: Any) -> str:
    """Render an envelope address as ``Name <mailbox@host>`` or bare address."""

    name = decode_words(getattr(address, "name", None))
    email = _address(address)
    return f"{name} <{email}>" if name else email


def _short_address(address: Any) -> str:
    name = decode_words(getattr(address, "name", None))
    return name or _address(address)


def _flags(data: Dict[bytes, Any]) -> tuple:
    return tuple(_text(flag) for flag in data.get(b"FLAGS", ()))


def _message_date(data: Dict[bytes, Any]) -> Optional[datetime]:
    envelope = data.get(b"ENVELOPE")
    if envelope is not None and getattr(envelope, "date", None):
        return envelope.date
    internal = data.get(b"INTERNALDATE")
    return internal if isinstance(internal, datetime) else None


def _summary(seq: int, data: Dict[bytes, Any]) -> MessageSummary:
    envelope = data.get(b"ENVELOPE")
    senders = getattr(envelope, "from_", None) or ()
    recipients = getattr(envelope, "to", None) or ()
    moment = _message_date(data)
    flags = _flags(data)
    return MessageSummary(
        uid=int(data.get(b"UID", 0)),
        seq_num=int(data.get(b"SEQ", seq)),
        from_=_short_address(senders[0]) if senders else "",
        subject=decode_words(getattr(envelope, "subject", None)),
        date=moment.strftime("%Y-%m-%d %H:%M") if moment else "",
        seen=SEEN in flags,
        flagged=FLAGGED in flags,
        to=", ".join(_short_address(a) for a in recipients),
    )


def fetch_summaries(session: MailSession, numbers: Sequence[int]) -> List[MessageSummary]:
    if not numbers:
        return []
    response = session.fetch(SequenceSet.of(numbers), SUMMARY_ITEMS)
    rows = [_summary(seq, data) for seq, data in response.items()]
    rows.sort(key=lambda row: row.seq_num, reverse=True)
    return rows


def list_messages(
    session: MailSession,
    mailbox: str,
    *,
    limit: int = 20,
    offset: int = 0,
    unread_only: bool = False,
) -> List[MessageSummary]:
    """List the newest messages of ``mailbox``, newest first.

    What:
      Returns up to ``limit`` summaries skipping the ``offset`` newest ones.

    Why:
      Sequence numbers grow with arrival, so the newest messages are the
      highest numbers; paging counts back from ``EXISTS``.

    How:
      Selects read-only, computes the sequence window, and fetches envelopes
      and flags for it. ``unread_only`` searches ``UNSEEN`` instead and pages
      over the result.
    """

    if limit <= 0:
        raise ValidationError("limit must be positive")
    if offset < 0:
        raise ValidationError("offset must not be negative")
    status = session.select_mailbox(mailbox, readonly=True)
    if unread_only:
        numbers = _unseen(session)
        end = len(numbers) - offset
        window = numbers[max(0, end - limit) : max(0, end)]
        return fetch_summaries(session, window)
    end = status.messages - offset
    if end < 1:
        return []
    start = max(1, end - limit + 1)
    return fetch_summaries(session, range(start, end + 1))


def _unseen(session: MailSession) -> List[int]:
    return sorted(session.search(Unseen()))


def get_message(session: MailSession, mailbox: str, identifier: str, *, peek: bool = False) -> Message:
    """Fetch one message with envelope, flags, and raw bytes.

    Reading marks the message ``\\Seen`` unless ``peek`` is set.

    Raises:
      InvalidIdentifier: For a malformed identifier, before any I/O.
      MessageNotFound: When the mailbox has no such message.
    """

    target = build_sequence_set([identifier])
    seq = target.members[0]
    session.select_mailbox(mailbox, readonly=peek)
    items = list(MESSAGE_ITEMS)
    if peek:
        items[-1] = "BODY.PEEK[]"
    response = session.fetch(target, items)
    data = response.get(seq)
    if data is None:
        raise MessageNotFound(f"message {seq} not found in {mailbox}")
    envelope = data.get(b"ENVELOPE")
    senders = getattr(envelope, "from_", None) or ()
    return Message(
        uid=int(data.get(b"UID", 0)),
        seq_num=seq,
        message_id=_text(getattr(envelope, "message_id", None)),
        from_=format_address(senders[0]) if senders else "",
        to=[format_address(a) for a in (getattr(envelope, "to", None) or ())],
        cc=[format_address(a) for a in (getattr(envelope, "cc", None) or ())],
        subject=decode_words(getattr(envelope, "subject", None)),
        date=_message_date(data),
        flags=_flags(data),
        raw=bytes(data.get(b"BODY[]", b"")),
    )


def search_messages(
    session: MailSession,
    mailbox: str,
    options: SearchOptions,
    *,
    limit: int = 20,
) -> List[MessageSummary]:
    """Search ``mailbox`` and return the newest ``limit`` matches."""

    if limit <= 0:
        raise ValidationError("limit must be positive")
    predicate = build_predicate(options)
    session.select_mailbox(mailbox, readonly=True)
    numbers = session.search(predicate)
    return fetch_summaries(session, numbers[-limit:])


def resolve_targets(
    session: MailSession,
    mailbox: str,
    *,
    ids: Sequence[str] = (),
    query: Optional[str] = None,
) -> Optional[SequenceSet]:
    """Select ``mailbox`` and return the sequence set a batch applies to.

    Explicit ``ids`` are validated before the mailbox is selected. A ``query``
    runs one SEARCH; ``None`` is returned when it matches nothing.

    Raises:
      ValidationError: When both or neither of ``ids`` and ``query`` are
        given, or when ``query`` holds no filter.
      InvalidIdentifier: For a malformed identifier.
    """

    if ids and query:
        raise ValidationError("give either message IDs or --query, not both")
    if not ids and not query:
        raise ValidationError("message IDs or --query required")
    if ids:
        targets = build_sequence_set(ids)
        session.select_mailbox(mailbox)
        return targets
    predicate = build_predicate(parse_query(query or ""))
    if predicate == And(()):
        raise ValidationError(f"query has no filters: {query!r}")
    session.select_mailbox(mailbox)
    found = session.search(predicate)
    if not found:
        return None
    return SequenceSet.of(found)


def delete_messages(
    session: MailSession,
    mailbox: str,
    *,
    ids: Sequence[str] = (),
    query: Optional[str] = None,
    permanent: bool = False,
    logger: Optional[JsonLogger] = None,
) -> BatchResult:
    """Flag the targets ``\\Deleted``; expunge them too when ``permanent``.

    Without ``permanent`` the bridge moves ``\\Deleted`` messages to Trash.
    """

    log = logger or _LOGGER
    targets = resolve_targets(session, mailbox, ids=ids, query=query)
    action = "deleted" if permanent else "trashed"
    if targets is None:
        return BatchResult(action=action, mailbox=mailbox)
    session.add_flags(targets, [DELETED])
    if permanent:
        session.expunge()
    log.info("messages_deleted", mailbox=mailbox, messages=str(targets), permanent=permanent)
    return BatchResult(action=action, mailbox=mailbox, messages=list(targets))


def move_messages(
    session: MailSession,
    mailbox: str,
    destination: str,
    *,
    ids: Sequence[str] = (),
    query: Optional[str] = None,
    logger: Optional[JsonLogger] = None,
) -> BatchResult:
    """Copy the targets to ``destination`` and expunge them from ``mailbox``."""

    if not destination:
        raise ValidationError("destination mailbox required")
    log = logger or _LOGGER
    targets = resolve_targets(session, mailbox, ids=ids, query=query)
    if targets is None:
        return BatchResult(action="moved", mailbox=mailbox, destination=destination)
    session.copy(targets, destination)
    session.add_flags(targets, [DELETED])
    session.expunge()
    log.info("messages_moved", mailbox=mailbox, destination=destination, messages=str(targets))
    return BatchResult(action="moved", mailbox=mailbox, messages=list(targets), destination=destination)


@dataclass(frozen=True)
class FlagChange:
    """Requested flag edits; ``read``/``unread`` and ``star``/``unstar`` exclude each other."""

    read: bool = False
    unread: bool = False
    star: bool = False
    unstar: bool = False

    def validate(self) -> None:
        if not (self.read or self.unread or self.star or self.unstar):
            raise ValidationError("specify at least one of --read, --unread, --star, --unstar")
        if self.read and self.unread:
            raise ValidationError("--read and --unread are mutually exclusive")
        if self.star and self.unstar:
            raise ValidationError("--star and --unstar are mutually exclusive")

    def describe(self) -> List[str]:
        names = ("read", "unread", "star", "unstar")
        return [name for name in names if getattr(self, name)]


def flag_messages(
    session: MailSession,
    mailbox: str,
    change: FlagChange,
    *,
    ids: Sequence[str] = (),
    query: Optional[str] = None,
    logger: Optional[JsonLogger] = None,
) -> BatchResult:
    """Apply ``change`` to the targets with one STORE per flag edit."""

    change.validate()
    log = logger or _LOGGER
    targets = resolve_targets(session, mailbox, ids=ids, query=query)
    action = "flagged:" + ",".join(change.describe())
    if targets is None:
        return BatchResult(action=action, mailbox=mailbox)
    if change.read:
        session.add_flags(targets, [SEEN])
    if change.unread:
        session.remove_flags(targets, [SEEN])
    if change.star:
        session.add_flags(targets, [FLAGGED])
    if change.unstar:
        session.remove_flags(targets, [FLAGGED])
    log.info("messages_flagged", mailbox=mailbox, messages=str(targets), change=change.describe())
    return BatchResult(action=action, mailbox=mailbox, messages=list(targets))


__all__ = [
    "FlagChange",
    "NO_MATCH",
    "decode_words",
    "delete_messages",
    "fetch_summaries",
    "flag_messages",
    "format_address",
    "get_message",
    "list_messages",
    "move_messages",
    "resolve_targets",
    "search_messages",
]
