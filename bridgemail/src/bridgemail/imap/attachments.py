"""List and download attachments without transferring whole messages.

What:
  ``get_attachments`` returns attachment metadata from one BODYSTRUCTURE
  fetch; ``download_attachment`` fetches a single body part by its path and
  decodes its transfer encoding.

Why:
  Attachments can be large. Fetching only the structure, then only the
  requested part, keeps downloads proportional to what the user asked for.

How:
  The structure is converted with :func:`part_from_bodystructure`, indices
  come from :func:`walk_attachments` / :func:`locate_attachment`, and the part
  is fetched with ``BODY.PEEK[<path>]`` so downloading does not mark the
  message read.

Interfaces:
  :func:`fetch_structure`, :func:`get_attachments`,
  :func:`download_attachment`, :func:`save_attachment`.

Invariants & Safety:
  - Indices are computed from the structure fetched in the same call, so a
    download always agrees with the listing made from that snapshot.
  - Saved files never overwrite an existing path.
"""
from __future__ import annotations

import base64
import binascii
import quopri
from pathlib import Path
from typing import List, Optional

from ..core.models import Attachment
from ..core.sequence import build_sequence_set
from ..core.structure import MimePart, locate_attachment, part_from_bodystructure, walk_attachments
from ..errors import BridgeMailError, MessageNotFound, PartialDataError, ProtocolError
from ..utils.logging import JsonLogger, get_logger
from .client import MailSession

_LOGGER = get_logger("bridgemail.attachments")


def fetch_structure(session: MailSession, mailbox: str, identifier: str) -> MimePart:
    """Fetch and convert the BODYSTRUCTURE of one message."""

    target = build_sequence_set([identifier])
    seq = target.members[0]
    session.select_mailbox(mailbox, readonly=True)
    response = session.fetch(target, ["BODYSTRUCTURE"])
    data = response.get(seq)
    if data is None or b"BODYSTRUCTURE" not in data:
        raise MessageNotFound(f"message {seq} not found in {mailbox}")
    try:
        return part_from_bodystructure(data[b"BODYSTRUCTURE"])
    except PartialDataError as exc:
        raise ProtocolError("fetch", f"unusable BODYSTRUCTURE for message {seq}: {exc}") from exc


def get_attachments(session: MailSession, mailbox: str, identifier: str) -> List[Attachment]:
    """Return metadata for every attachment of message ``identifier``."""

    root = fetch_structure(session, mailbox, identifier)
    return [
        Attachment(
            index=found.index,
            filename=found.filename,
            content_type=found.content_type,
            size=found.size,
            part_path=found.part_path,
        )
        for found in walk_attachments(root)
    ]


def download_attachment(
    session: MailSession,
    mailbox: str,
    identifier: str,
    index: int,
    *,
    logger: Optional[JsonLogger] = None,
) -> Attachment:
    """Fetch attachment ``index`` of message ``identifier`` with its content.

    What:
      Locates the attachment in a fresh structure snapshot, fetches exactly
      that body part, and decodes base64 or quoted-printable content.

    Why:
      Listing and download must agree on numbering, and the caller expects the
      file's bytes rather than the transfer-encoded text.

    How:
      ``BODY.PEEK[<path>]`` is requested; ``imapclient`` keys the response as
      ``BODY[<path>]``.

    Raises:
      AttachmentNotFound: When ``index`` is out of range.
      ProtocolError: When the server does not return the part.
    """

    log = logger or _LOGGER
    root = fetch_structure(session, mailbox, identifier)
    found = locate_attachment(root, index)
    target = build_sequence_set([identifier])
    response = session.fetch(target, [f"BODY.PEEK[{found.part_path}]"])
    data = response.get(target.members[0], {})
    key = f"BODY[{found.part_path}]".encode("ascii")
    if key not in data:
        raise ProtocolError("fetch", f"server returned no data for part {found.part_path}")
    content = _decode(bytes(data[key] or b""), found.encoding)
    log.info("attachment_downloaded", part=found.part_path, size=len(content))
    return Attachment(
        index=found.index,
        filename=found.filename,
        content_type=found.content_type,
        size=found.size,
        part_path=found.part_path,
        data=content,
    )


def _decode(payload: bytes, encoding: str) -> bytes:
    if encoding == "base64":
        try:
            return base64.b64decode(payload)
        except (binascii.Error, ValueError) as exc:
            raise ProtocolError("fetch", f"invalid base64 attachment: {exc}") from exc
    if encoding == "quoted-printable":
        return quopri.decodestring(payload)
    return payload


def save_attachment(attachment: Attachment, directory: Path, filename: Optional[str] = None) -> Path:
    """Write ``attachment.data`` under ``directory`` without clobbering files.

    Only the final path component of the attachment name is used, and an
    existing file gets a ``-1``, ``-2`` ... suffix.

    Raises:
      BridgeMailError: When the file cannot be written.
    """

    name = Path(filename or attachment.filename).name or f"attachment_{attachment.index}"
    target = Path(directory).expanduser() / name
    stem, suffix = target.stem, target.suffix
    counter = 1
    while target.exists():
        target = target.with_name(f"{stem}-{counter}{suffix}")
        counter += 1
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        with open(target, "xb") as handle:
            handle.write(attachment.data or b"")
    except OSError as exc:
        raise BridgeMailError(f"cannot write {target}: {exc.strerror or exc}") from exc
    return target


__all__ = ["download_attachment", "fetch_structure", "get_attachments", "save_attachment"]
