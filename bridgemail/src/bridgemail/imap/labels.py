"""Labels exposed by the bridge as folders under ``Labels/``.

What:
  List labels, apply a label to messages, and remove it again.

Why:
  The bridge maps labels onto IMAP folders: a message carries a label when a
  copy of it exists in ``Labels/<name>``. Applying a label is therefore a COPY
  and removing one is a delete inside the label folder.

How:
  ``add_label`` checks the label folder exists before copying so a typo does
  not silently create nothing; ``remove_label`` addresses the messages by
  their sequence numbers inside the label folder and expunges.

Interfaces:
  :func:`label_mailbox`, :func:`list_labels`, :func:`add_label`,
  :func:`remove_label`.
"""
from __future__ import annotations

from typing import List, Optional, Sequence

from ..core.models import BatchResult
from ..core.sequence import build_sequence_set
from ..errors import ValidationError
from ..utils.logging import JsonLogger, get_logger
from .client import MailSession
from .messages import DELETED

LABEL_PREFIX = "Labels/"

_LOGGER = get_logger("bridgemail.labels")


def label_mailbox(label: str) -> str:
    """Return the folder backing ``label``; ``Labels/x`` and ``x`` are equivalent."""

    name = label.strip()
    if not name:
        raise ValidationError("label name required")
    if name.startswith(LABEL_PREFIX):
        return name
    return LABEL_PREFIX + name


def list_labels(session: MailSession) -> List[str]:
    names = [info.name for info in session.list_mailboxes()]
    return sorted(name[len(LABEL_PREFIX):] for name in names if name.startswith(LABEL_PREFIX))


def add_label(
    session: MailSession,
    mailbox: str,
    label: str,
    ids: Sequence[str],
    *,
    logger: Optional[JsonLogger] = None,
) -> BatchResult:
    """Copy messages ``ids`` of ``mailbox`` into the label folder."""

    targets = build_sequence_set(ids)
    folder = label_mailbox(label)
    existing = {info.name for info in session.list_mailboxes()}
    if folder not in existing:
        raise ValidationError(f"label not found: {folder[len(LABEL_PREFIX):]}")
    session.select_mailbox(mailbox)
    session.copy(targets, folder)
    (logger or _LOGGER).info("label_added", label=folder, messages=str(targets))
    return BatchResult(action="labelled", mailbox=mailbox, messages=list(targets), destination=folder)


def remove_label(
    session: MailSession,
    label: str,
    ids: Sequence[str],
    *,
    logger: Optional[JsonLogger] = None,
) -> BatchResult:
    """Delete messages ``ids`` (numbered within the label folder) from it."""

    targets = build_sequence_set(ids)
    folder = label_mailbox(label)
    session.select_mailbox(folder)
    session.add_flags(targets, [DELETED])
    session.expunge()
    (logger or _LOGGER).info("label_removed", label=folder, messages=str(targets))
    return BatchResult(action="unlabelled", mailbox=folder, messages=list(targets))


__all__ = ["LABEL_PREFIX", "add_label", "label_mailbox", "list_labels", "remove_label"]
