"""Drafts stored in the bridge ``Drafts`` mailbox.

What:
  List, create, edit, and delete drafts.

Why:
  IMAP has no in-place update: editing a draft means appending the new
  version and expunging the old one. Edits merge over the existing draft so
  ``draft edit 3 --subject x`` keeps recipients and body.

How:
  Drafts are composed with :func:`compose` and appended with the ``\\Draft``
  and ``\\Seen`` flags. Existing drafts are read back through
  :func:`get_message` and :func:`resolve_bodies`.

Interfaces:
  :class:`DraftFields`, :func:`list_drafts`, :func:`create_draft`,
  :func:`edit_draft`, :func:`delete_drafts`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from ..core.body import resolve_bodies
from ..core.compose import OutgoingMessage, compose
from ..core.models import BatchResult, MessageSummary
from ..core.outbound import extract_address
from ..utils.logging import JsonLogger, get_logger
from .client import MailSession
from .messages import delete_messages, get_message, list_messages

DRAFTS_MAILBOX = "Drafts"
DRAFT_FLAGS = ("\\Draft", "\\Seen")

_LOGGER = get_logger("bridgemail.drafts")


@dataclass(frozen=True)
class DraftFields:
    """Fields given on the command line; ``None`` keeps the existing value."""

    to: Optional[Tuple[str, ...]] = None
    cc: Optional[Tuple[str, ...]] = None
    subject: Optional[str] = None
    body: Optional[str] = None
    attachments: Tuple[str, ...] = ()


def list_drafts(session: MailSession, *, limit: int = 20) -> List[MessageSummary]:
    return list_messages(session, DRAFTS_MAILBOX, limit=limit)


def create_draft(
    session: MailSession,
    sender: str,
    fields: DraftFields,
    *,
    logger: Optional[JsonLogger] = None,
) -> Optional[int]:
    """Compose and append a new draft; returns its UID when the server reports one."""

    draft = OutgoingMessage(
        from_=sender,
        to=fields.to or (),
        cc=fields.cc or (),
        subject=fields.subject or "",
        body=fields.body or "",
        attachments=fields.attachments,
    )
    uid = session.append(DRAFTS_MAILBOX, compose(draft), DRAFT_FLAGS)
    (logger or _LOGGER).info("draft_created", uid=uid)
    return uid


def edit_draft(
    session: MailSession,
    identifier: str,
    sender: str,
    fields: DraftFields,
    *,
    logger: Optional[JsonLogger] = None,
) -> Optional[int]:
    """Replace draft ``identifier`` with a version merged from ``fields``."""

    existing = get_message(session, DRAFTS_MAILBOX, identifier, peek=True)
    text, _ = resolve_bodies(existing.raw)
    merged = DraftFields(
        to=fields.to if fields.to is not None else tuple(extract_address(a) for a in existing.to),
        cc=fields.cc if fields.cc is not None else tuple(extract_address(a) for a in existing.cc),
        subject=fields.subject if fields.subject is not None else existing.subject,
        body=fields.body if fields.body is not None else text,
        attachments=fields.attachments,
    )
    uid = create_draft(session, sender, merged, logger=logger)
    delete_messages(session, DRAFTS_MAILBOX, ids=[str(existing.seq_num)], permanent=True, logger=logger)
    return uid


def delete_drafts(
    session: MailSession,
    ids: Sequence[str],
    *,
    logger: Optional[JsonLogger] = None,
) -> BatchResult:
    return delete_messages(session, DRAFTS_MAILBOX, ids=ids, permanent=True, logger=logger)


__all__ = ["DRAFTS_MAILBOX", "DraftFields", "create_draft", "delete_drafts", "edit_draft", "list_drafts"]
