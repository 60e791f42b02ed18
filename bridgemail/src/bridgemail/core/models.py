"""Request-scoped value objects exchanged between mailbox operations and the CLI."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple


@dataclass
class MessageSummary:
    """One row of a mailbox listing."""

    uid: int
    seq_num: int
    from_: str
    subject: str
    date: str
    seen: bool
    flagged: bool
    to: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["from"] = data.pop("from_")
        return data


@dataclass
class Message:
    """A fetched message with its envelope, flags and raw bytes."""

    uid: int
    seq_num: int
    message_id: str = ""
    from_: str = ""
    to: List[str] = field(default_factory=list)
    cc: List[str] = field(default_factory=list)
    subject: str = ""
    date: Optional[datetime] = None
    flags: Tuple[str, ...] = ()
    raw: bytes = b""

    @property
    def seen(self) -> bool:
        return "\\Seen" in self.flags

    @property
    def flagged(self) -> bool:
        return "\\Flagged" in self.flags

    @property
    def date_text(self) -> str:
        return self.date.strftime("%Y-%m-%d %H:%M") if self.date else ""


@dataclass
class MailboxInfo:
    name: str
    delimiter: str
    attributes: List[str] = field(default_factory=list)


@dataclass
class MailboxStatus:
    name: str
    messages: int


@dataclass
class Attachment:
    """Attachment metadata; ``data`` is only filled by an explicit download."""

    index: int
    filename: str
    content_type: str
    size: int
    part_path: str = ""
    data: Optional[bytes] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data.pop("data")
        return data


@dataclass
class BatchResult:
    """Outcome of a STORE/COPY/EXPUNGE batch over one sequence set."""

    action: str
    mailbox: str
    messages: List[int] = field(default_factory=list)
    destination: str = ""

    @property
    def matched(self) -> bool:
        return bool(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class SendResult:
    status: str
    recipients: List[str]
    subject: str

    @property
    def duplicate(self) -> bool:
        return self.status == "duplicate_suppressed"


__all__ = [
    "Attachment",
    "BatchResult",
    "MailboxInfo",
    "MailboxStatus",
    "Message",
    "MessageSummary",
    "SendResult",
]
