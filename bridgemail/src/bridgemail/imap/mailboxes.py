"""Mailbox (folder) listing and management."""
from __future__ import annotations

from typing import List

from ..core.models import MailboxInfo
from ..errors import ValidationError
from .client import MailSession


def list_mailboxes(session: MailSession) -> List[MailboxInfo]:
    return sorted(session.list_mailboxes(), key=lambda info: info.name.lower())


def create_mailbox(session: MailSession, name: str) -> None:
    if not name.strip():
        raise ValidationError("mailbox name required")
    session.create_mailbox(name)


def delete_mailbox(session: MailSession, name: str) -> None:
    if not name.strip():
        raise ValidationError("mailbox name required")
    if name.upper() == "INBOX":
        raise ValidationError("INBOX cannot be deleted")
    session.delete_mailbox(name)


__all__ = ["create_mailbox", "delete_mailbox", "list_mailboxes"]
