"""Resolve displayable text and HTML bodies from raw RFC 5322 bytes.

What:
  Extract the first ``text/plain`` and first ``text/html`` bodies of a fetched
  message, decoding transfer encodings and charsets, and choose what to show
  in a terminal.

Why:
  Display must always produce something. Real mailboxes contain malformed
  multiparts, unknown charsets, and bare single-part messages; the resolver
  degrades step by step instead of failing the ``read`` command.

How:
  1. Parse with :class:`email.parser.BytesParser` (``policy.default``) and walk
     the leaf parts depth-first, skipping declared attachments.
  2. For single-part messages split the raw bytes at the first blank line,
     undo the declared transfer encoding, and classify by the top-level
     Content-Type.
  3. When structured parsing raises, return the whole payload as text.

Interfaces:
  :func:`resolve_bodies`, :func:`display_text`.

Invariants & Safety:
  - :func:`resolve_bodies` never raises; :class:`PartialDataError` is handled
    here and logged at ``WARN``.
  - Returned strings use ``\\n`` line endings.
"""
from __future__ import annotations

import base64
import binascii
import quopri
from email import policy
from email.message import Message
from email.parser import BytesParser
from typing import Optional, Tuple

from ..errors import PartialDataError
from ..utils.logging import JsonLogger, get_logger
from .htmltext import html_to_text

NO_CONTENT = "(no text content)"


def resolve_bodies(raw: bytes, *, logger: Optional[JsonLogger] = None) -> Tuple[str, str]:
    """Return ``(text, html)`` extracted from a raw message.

    What:
      Locates the plain-text and HTML renditions of a message body.

    Why:
      ``read`` shows text by default, HTML on request, and converts HTML when
      no text rendition exists; all three need both candidates.

    How:
      Tries the structured walk first, then the single-part split, and falls
      back to the raw bytes decoded as UTF-8 when parsing fails.

    Args:
      raw: Complete message bytes as returned by ``BODY[]``.
      logger: Optional logger used to report parse degradation.

    Returns:
      Tuple of text and HTML bodies; either may be empty.
    """

    log = logger or get_logger("bridgemail.body")
    try:
        message = BytesParser(policy=policy.default).parsebytes(raw)
        if message.is_multipart():
            return _structured_bodies(message)
        return _single_part_bodies(raw, message)
    except PartialDataError as exc:
        log.warning("body_parse_degraded", error=str(exc), size=len(raw))
        return _normalise(raw.decode("utf-8", errors="replace")), ""


def display_text(raw: bytes, *, prefer_html: bool = False, logger: Optional[JsonLogger] = None) -> str:
    """Choose the body to print for ``raw``.

    With ``prefer_html`` the HTML source is returned when present. Otherwise
    text wins, then converted HTML, then a fixed placeholder.
    """

    text, html_body = resolve_bodies(raw, logger=logger)
    if prefer_html and html_body:
        return html_body
    if text:
        return text
    if html_body:
        return html_to_text(html_body)
    return NO_CONTENT


def _structured_bodies(message: Message) -> Tuple[str, str]:
    text = ""
    html_body = ""
    for part in message.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue
        content_type = part.get_content_type()
        if content_type == "text/plain" and not text:
            text = _part_content(part)
        elif content_type == "text/html" and not html_body:
            html_body = _part_content(part)
        if text and html_body:
            break
    return text, html_body


def _part_content(part: Message) -> str:
    try:
        content = part.get_content()
    except (LookupError, ValueError, AssertionError) as exc:
        raise PartialDataError(f"cannot decode {part.get_content_type()} part: {exc}") from exc
    if isinstance(content, bytes):
        content = content.decode("utf-8", errors="replace")
    return _normalise(content)


def _single_part_bodies(raw: bytes, message: Message) -> Tuple[str, str]:
    for separator in (b"\r\n\r\n", b"\n\n"):
        _, found, payload = raw.partition(separator)
        if found:
            break
    else:
        return "", ""
    encoding = str(message.get("Content-Transfer-Encoding", "")).strip().lower()
    charset = message.get_content_charset() or "utf-8"
    content = _decode_transfer(payload, encoding)
    try:
        body = content.decode(charset, errors="replace")
    except LookupError:
        body = content.decode("utf-8", errors="replace")
    body = _normalise(body)
    if message.get_content_type() == "text/html":
        return "", body
    return body, ""


def _decode_transfer(payload: bytes, encoding: str) -> bytes:
    if encoding == "quoted-printable":
        return quopri.decodestring(payload)
    if encoding == "base64":
        try:
            return base64.b64decode(payload)
        except (binascii.Error, ValueError) as exc:
            raise PartialDataError(f"invalid base64 body: {exc}") from exc
    return payload


def _normalise(text: str) -> str:
    return text.replace("\r\n", "\n")


__all__ = ["NO_CONTENT", "display_text", "resolve_bodies"]
