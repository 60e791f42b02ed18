"""Derive replies and forwards from fetched messages.

What:
  Build :class:`OutgoingMessage` values for ``reply``, ``reply --all`` and
  ``forward`` from a :class:`Message` and the user's own address.

Why:
  Subject prefixes, recipient selection, quoting, and threading headers
  follow mail-client conventions users expect; keeping them pure makes them
  easy to test without a server.

How:
  Addresses are normalised with :func:`email.utils.parseaddr`. The original
  body is obtained through :func:`bridgemail.core.body.display_text` so HTML
  only messages are quoted as readable text.

Interfaces:
  :func:`extract_address`, :func:`build_reply`, :func:`build_forward`,
  :func:`format_size`.
"""
from __future__ import annotations

from email.utils import parseaddr
from typing import Iterable, List, Sequence

from .body import display_text
from .compose import OutgoingMessage
from .models import Message

FORWARD_MARKER = "---------- Forwarded message ----------"


def extract_address(value: str) -> str:
    """Return the bare address of ``"Name <addr>"`` (or ``value`` itself)."""

    _, address = parseaddr(value)
    return address or value.strip()


def format_size(size: int) -> str:
    """Render a byte count as ``512 B``, ``1.5 KB``, ``3.2 MB`` ..."""

    unit = 1024
    if size < unit:
        return f"{size} B"
    value = float(size)
    for suffix in ("KB", "MB", "GB", "TB", "PB"):
        value /= unit
        if value < unit:
            break
    return f"{value:.1f} {suffix}"


def _prefixed(subject: str, prefix: str) -> str:
    if subject.lower().startswith(prefix.lower()):
        return subject
    return f"{prefix}{subject}"


def _quote(text: str) -> str:
    return "\n".join(f"> {line}" for line in text.split("\n"))


def _unique_except(addresses: Iterable[str], excluded: Sequence[str]) -> List[str]:
    skip = {extract_address(address).lower() for address in excluded if address}
    result: List[str] = []
    for entry in addresses:
        address = extract_address(entry)
        if not address or address.lower() in skip:
            continue
        skip.add(address.lower())
        result.append(address)
    return result


def build_reply(
    original: Message,
    *,
    sender: str,
    body: str,
    reply_all: bool = False,
    attachments: Sequence[str] = (),
) -> OutgoingMessage:
    """Build a reply to ``original``.

    The reply goes to the original sender; with ``reply_all`` the original To
    and Cc recipients are added to Cc, minus ``sender`` and the original
    sender. The original text is quoted below ``body``.
    """

    reply_to = extract_address(original.from_)
    cc: List[str] = []
    if reply_all:
        cc = _unique_except([*original.to, *original.cc], [sender, reply_to])
    quoted = _quote(display_text(original.raw))
    text = f"{body}\n\nOn {original.date_text}, {original.from_} wrote:\n{quoted}"
    return OutgoingMessage(
        from_=sender,
        to=(reply_to,),
        cc=tuple(cc),
        subject=_prefixed(original.subject, "Re: "),
        body=text,
        attachments=tuple(attachments),
        in_reply_to=original.message_id or None,
        references=original.message_id or None,
    )


def build_forward(
    original: Message,
    *,
    sender: str,
    to: Sequence[str],
    cc: Sequence[str] = (),
    note: str = "",
    attachments: Sequence[str] = (),
) -> OutgoingMessage:
    """Build a forward of ``original`` with a forwarded-header block."""

    block = "\n".join(
        [
            FORWARD_MARKER,
            f"From: {original.from_}",
            f"Date: {original.date_text}",
            f"Subject: {original.subject}",
            f"To: {', '.join(original.to)}",
            "",
            display_text(original.raw),
        ]
    )
    text = f"{note}\n\n{block}" if note else block
    return OutgoingMessage(
        from_=sender,
        to=tuple(to),
        cc=tuple(cc),
        subject=_prefixed(original.subject, "Fwd: "),
        body=text,
        attachments=tuple(attachments),
    )


__all__ = ["FORWARD_MARKER", "build_forward", "build_reply", "extract_address", "format_size"]
