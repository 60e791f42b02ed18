"""Walk MIME body structures to enumerate and locate attachments.

What:
  Represent the server-side ``BODYSTRUCTURE`` of a message as a
  :class:`MimePart` tree, list its attachments with stable indices, and map an
  index back to the IMAP part path needed to fetch just that part.

Why:
  Downloading one attachment should not transfer the whole message. Listing
  and downloading must agree on which part is "attachment 1", so both go
  through the same classification and the same pre-order walk.

How:
  :func:`part_from_bodystructure` converts the nested tuples returned by
  ``imapclient`` (bytes values, multipart children as a list in slot 0).
  :func:`walk_attachments` traverses depth-first, assigning part paths
  (``1``, ``1.2`` ...) and numbering attachment leaves only.
  :func:`locate_attachment` reuses :func:`count_attachments` to skip whole
  subtrees that cannot contain the requested index.

Interfaces:
  :class:`MimePart`, :class:`AttachmentDescriptor`,
  :func:`part_from_bodystructure`, :func:`is_attachment`,
  :func:`walk_attachments`, :func:`count_attachments`,
  :func:`locate_attachment`.

Invariants & Safety:
  - Indices are dense, start at zero, and are only meaningful for the
    structure snapshot they were computed from.
  - A single-part message is addressed as part ``1``.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from email.errors import HeaderParseError
from email.header import decode_header, make_header
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import AttachmentNotFound, PartialDataError


@dataclass
class MimePart:
    """One node of a MIME tree; ``children`` is non-empty for multiparts."""

    maintype: str
    subtype: str
    params: Dict[str, str] = field(default_factory=dict)
    disposition: str = ""
    disposition_params: Dict[str, str] = field(default_factory=dict)
    encoding: str = ""
    size: int = 0
    children: List["MimePart"] = field(default_factory=list)

    @property
    def content_type(self) -> str:
        return f"{self.maintype}/{self.subtype}"

    @property
    def is_multipart(self) -> bool:
        return self.maintype == "multipart"

    @property
    def filename(self) -> str:
        name = self.disposition_params.get("filename") or self.params.get("name") or ""
        if "=?" in name:
            try:
                return str(make_header(decode_header(name)))
            except (HeaderParseError, LookupError, UnicodeDecodeError):
                return name
        return name


@dataclass(frozen=True)
class AttachmentDescriptor:
    index: int
    part_path: str
    filename: str
    content_type: str
    size: int
    encoding: str


def is_attachment(part: MimePart) -> bool:
    """Classify a leaf part as an attachment.

    A leaf is an attachment when it declares a filename, when its disposition
    is ``attachment``, or when it is not ``text/*`` and not explicitly
    ``inline``.
    """

    if part.is_multipart:
        return False
    if part.filename:
        return True
    if part.disposition == "attachment":
        return True
    return part.maintype != "text" and part.disposition != "inline"


def walk_attachments(root: MimePart) -> List[AttachmentDescriptor]:
    """Return every attachment of ``root`` in pre-order with its index."""

    found: List[AttachmentDescriptor] = []
    if root.is_multipart:
        _collect(root, "", found)
    elif is_attachment(root):
        found.append(_describe(root, "1", 0))
    return found


def _collect(node: MimePart, prefix: str, found: List[AttachmentDescriptor]) -> None:
    for position, child in enumerate(node.children, start=1):
        path = f"{prefix}.{position}" if prefix else str(position)
        if child.is_multipart:
            _collect(child, path, found)
        elif is_attachment(child):
            found.append(_describe(child, path, len(found)))


def count_attachments(node: MimePart) -> int:
    """Count attachment leaves below (and including) ``node``."""

    if node.is_multipart:
        return sum(count_attachments(child) for child in node.children)
    return 1 if is_attachment(node) else 0


def locate_attachment(root: MimePart, index: int) -> AttachmentDescriptor:
    """Find the attachment numbered ``index`` without enumerating the others.

    Raises:
      AttachmentNotFound: When ``index`` is negative or past the last
        attachment.
    """

    if index < 0:
        raise AttachmentNotFound(f"attachment index {index} not found")
    if not root.is_multipart:
        if index == 0 and is_attachment(root):
            return _describe(root, "1", 0)
        raise AttachmentNotFound(f"attachment index {index} not found")
    node = root
    prefix = ""
    remaining = index
    while True:
        for position, child in enumerate(node.children, start=1):
            path = f"{prefix}.{position}" if prefix else str(position)
            inside = count_attachments(child)
            if remaining >= inside:
                remaining -= inside
                continue
            if child.is_multipart:
                node, prefix = child, path
                break
            return _describe(child, path, index)
        else:
            raise AttachmentNotFound(f"attachment index {index} not found")


def _describe(part: MimePart, path: str, index: int) -> AttachmentDescriptor:
    return AttachmentDescriptor(
        index=index,
        part_path=path,
        filename=part.filename or f"attachment_{index}",
        content_type=part.content_type,
        size=part.size,
        encoding=part.encoding,
    )


def part_from_bodystructure(body: Sequence[Any]) -> MimePart:
    """Convert an ``imapclient`` BODYSTRUCTURE response into a :class:`MimePart`.

    What:
      Maps the positional RFC 3501 body fields onto named attributes.

    Why:
      The walker must not know about wire tuple layouts; keeping the mapping in
      one function also gives malformed server responses a single failure
      point.

    How:
      Multiparts carry their children as a list in slot 0 and the subtype in
      slot 1. Leaves carry type, subtype, parameter list, id, description,
      encoding, and size; the disposition sits after the type-specific fields
      (slot 9 for ``text``, 11 for ``message/rfc822``, 8 otherwise).

    Raises:
      PartialDataError: When the structure does not follow that layout.
    """

    try:
        if isinstance(body[0], list):
            children = [part_from_bodystructure(child) for child in body[0]]
            subtype = _text(body[1]) if len(body) > 1 else "mixed"
            return MimePart("multipart", subtype.lower() or "mixed", children=children)
        maintype = _text(body[0]).lower()
        subtype = _text(body[1]).lower()
        params = _pairs(body[2])
        encoding = _text(body[5]).lower() if len(body) > 5 else ""
        size = int(body[6] or 0) if len(body) > 6 else 0
    except (IndexError, TypeError, ValueError) as exc:
        raise PartialDataError(f"malformed BODYSTRUCTURE: {exc}") from exc
    disposition, disposition_params = _disposition(body, _disposition_slot(maintype, subtype))
    return MimePart(
        maintype,
        subtype,
        params=params,
        disposition=disposition,
        disposition_params=disposition_params,
        encoding=encoding,
        size=size,
    )


def _disposition_slot(maintype: str, subtype: str) -> int:
    if maintype == "text":
        return 9
    if maintype == "message" and subtype == "rfc822":
        return 11
    return 8


def _disposition(body: Sequence[Any], slot: int) -> Tuple[str, Dict[str, str]]:
    if len(body) <= slot:
        return "", {}
    value = body[slot]
    if not isinstance(value, (tuple, list)) or not value:
        return "", {}
    name = _text(value[0]).lower()
    params = _pairs(value[1]) if len(value) > 1 else {}
    return name, params


def _pairs(value: Any) -> Dict[str, str]:
    if not isinstance(value, (tuple, list)):
        return {}
    items = list(value)
    return {
        _text(items[i]).lower(): _text(items[i + 1])
        for i in range(0, len(items) - 1, 2)
    }


def _text(value: Optional[Any]) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


__all__ = [
    "AttachmentDescriptor",
    "MimePart",
    "count_attachments",
    "is_attachment",
    "locate_attachment",
    "part_from_bodystructure",
    "walk_attachments",
]
