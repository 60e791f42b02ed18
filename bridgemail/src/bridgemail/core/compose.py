"""Build outgoing RFC 5322 / MIME byte streams.

What:
  Turn an :class:`OutgoingMessage` into the exact bytes handed to SMTP
  ``DATA`` or IMAP ``APPEND``.

Why:
  Sending, saving drafts, and the test suite all need the same deterministic
  framing: fixed header order, CRLF line endings, quoted-printable text, and
  base64 attachments wrapped at 76 columns.

How:
  Headers are rendered by hand in a fixed order using the encoders from
  :mod:`email.header` and :mod:`email.utils`. Attachment files are read before
  any output is produced, so a missing file aborts the whole compose and never
  yields a partial message.

Interfaces:
  :class:`OutgoingMessage`, :func:`compose`.

Invariants & Safety:
  - ``Bcc`` recipients never appear in the output.
  - The subject is RFC 2047 encoded if and only if it contains non-ASCII
    characters.
  - Every line ends with CRLF.
"""
from __future__ import annotations

import base64
import mimetypes
import quopri
from dataclasses import dataclass
from datetime import datetime
from email.header import Header
from email.utils import encode_rfc2231, format_datetime, formataddr, parseaddr
from pathlib import Path
from typing import List, Optional, Tuple
from uuid import uuid4

from ..errors import AttachmentNotFound, AttachmentUnreadable, ValidationError

CRLF = b"\r\n"
HEADER_LINESEP = "\r\n"
BASE64_LINE = 76
DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class OutgoingMessage:
    """Immutable description of a message to compose."""

    from_: str
    to: Tuple[str, ...] = ()
    cc: Tuple[str, ...] = ()
    bcc: Tuple[str, ...] = ()
    subject: str = ""
    body: str = ""
    attachments: Tuple[str, ...] = ()
    in_reply_to: Optional[str] = None
    references: Optional[str] = None

    def recipients(self) -> List[str]:
        """Return every envelope recipient, including Bcc."""

        return [address for address in (*self.to, *self.cc, *self.bcc) if address]


@dataclass(frozen=True)
class _LoadedAttachment:
    filename: str
    content_type: str
    data: bytes


def compose(
    message: OutgoingMessage,
    *,
    now: Optional[datetime] = None,
    boundary: Optional[str] = None,
) -> bytes:
    """Render ``message`` as a complete MIME byte stream.

    What:
      Produces headers followed by either a single quoted-printable text body
      or a ``multipart/mixed`` body with one part per attachment.

    Why:
      The bytes must be accepted by the bridge and rendered identically by
      standard mail readers.

    How:
      Loads every attachment first, then writes headers in order (From, To,
      Cc, Subject, Date, In-Reply-To, References, MIME-Version) and the body.

    Args:
      message: What to send.
      now: Timestamp for the ``Date`` header; local time when omitted.
      boundary: Multipart boundary; random when omitted.

    Returns:
      The composed message.

    Raises:
      AttachmentNotFound: An attachment path does not exist.
      AttachmentUnreadable: An attachment path exists but cannot be read.
      ValidationError: A header value contains a line break.
    """

    _reject_line_breaks(message)
    attachments = [_load_attachment(path) for path in message.attachments]
    moment = now or datetime.now().astimezone()
    lines: List[bytes] = []
    lines.append(_header("From", _address(message.from_)))
    lines.append(_header("To", ", ".join(_address(a) for a in message.to)))
    if message.cc:
        lines.append(_header("Cc", ", ".join(_address(a) for a in message.cc)))
    lines.append(_header("Subject", _encode_subject(message.subject)))
    lines.append(_header("Date", format_datetime(moment)))
    if message.in_reply_to:
        lines.append(_header("In-Reply-To", message.in_reply_to))
    if message.references:
        lines.append(_header("References", message.references))
    lines.append(_header("MIME-Version", "1.0"))

    if not attachments:
        lines.extend(_text_part_headers())
        return CRLF.join(lines) + CRLF + CRLF + _encode_text(message.body)

    marker = boundary or f"bridgemail-{uuid4().hex}"
    delimiter = b"--" + marker.encode("ascii")
    lines.append(_header("Content-Type", f'multipart/mixed; boundary="{marker}"'))
    lines.append(b"")
    lines.append(delimiter)
    lines.extend(_text_part_headers())
    lines.append(b"")
    lines.append(_encode_text(message.body))
    for attachment in attachments:
        lines.append(delimiter)
        lines.append(_header("Content-Type", attachment.content_type))
        lines.append(_header("Content-Transfer-Encoding", "base64"))
        lines.append(_header("Content-Disposition", f"attachment; {_filename_param(attachment.filename)}"))
        lines.append(b"")
        lines.extend(_base64_lines(attachment.data))
    lines.append(delimiter + b"--")
    return CRLF.join(lines) + CRLF


def _load_attachment(path: str) -> _LoadedAttachment:
    location = Path(path).expanduser()
    try:
        data = location.read_bytes()
    except FileNotFoundError as exc:
        raise AttachmentNotFound(f"attachment not found: {path}") from exc
    except OSError as exc:
        raise AttachmentUnreadable(f"cannot read attachment {path}: {exc.strerror or exc}") from exc
    content_type, _ = mimetypes.guess_type(location.name)
    return _LoadedAttachment(location.name, content_type or DEFAULT_CONTENT_TYPE, data)


def _reject_line_breaks(message: OutgoingMessage) -> None:
    fields = [
        ("From", message.from_),
        ("Subject", message.subject),
        ("In-Reply-To", message.in_reply_to or ""),
        ("References", message.references or ""),
    ]
    fields.extend(("To", a) for a in message.to)
    fields.extend(("Cc", a) for a in message.cc)
    fields.extend(("Bcc", a) for a in message.bcc)
    for name, value in fields:
        if "\r" in value or "\n" in value:
            raise ValidationError(f"{name} must not contain line breaks")


def _header(name: str, value: str) -> bytes:
    return f"{name}: {value}".encode("utf-8")


def _text_part_headers() -> List[bytes]:
    return [
        _header("Content-Type", "text/plain; charset=utf-8"),
        _header("Content-Transfer-Encoding", "quoted-printable"),
    ]


def _encode_subject(subject: str) -> str:
    if subject.isascii():
        return subject
    return Header(subject, "utf-8").encode(linesep=HEADER_LINESEP)


def _address(value: str) -> str:
    if value.isascii():
        return value
    name, address = parseaddr(value)
    if not address:
        return Header(value, "utf-8").encode(linesep=HEADER_LINESEP)
    return formataddr((name, address), charset="utf-8")


def _encode_text(body: str) -> bytes:
    normalised = body.replace("\r\n", "\n").encode("utf-8")
    return quopri.encodestring(normalised).replace(b"\n", CRLF)


def _filename_param(filename: str) -> str:
    if filename.isascii():
        escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
        return f'filename="{escaped}"'
    return f"filename*={encode_rfc2231(filename, 'utf-8')}"


def _base64_lines(data: bytes) -> List[bytes]:
    encoded = base64.b64encode(data)
    return [encoded[i : i + BASE64_LINE] for i in range(0, len(encoded), BASE64_LINE)]


__all__ = ["OutgoingMessage", "compose"]
