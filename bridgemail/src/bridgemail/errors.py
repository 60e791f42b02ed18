"""Exception hierarchy shared by every bridgemail layer.

What:
  Declare the typed failures raised by the core components, the protocol
  session adapters, and the configuration helpers.

Why:
  The CLI maps failures to exit codes and user-facing messages. A single
  hierarchy rooted at :class:`BridgeMailError` lets it distinguish user input
  mistakes (raised before any network activity) from protocol failures without
  string matching.

How:
  Plain :class:`Exception` subclasses. :class:`ValidationError` also derives
  from :class:`ValueError` so generic callers catching ``ValueError`` keep
  working.

Interfaces:
  :class:`BridgeMailError`, :class:`ProtocolError`, :class:`ValidationError`,
  :class:`InvalidIdentifier`, :class:`AttachmentNotFound`,
  :class:`AttachmentUnreadable`, :class:`PartialDataError`,
  :class:`ConfigError`.

Invariants & Safety:
  - :class:`ProtocolError` messages always name the failing protocol step.
  - :class:`PartialDataError` never escapes :mod:`bridgemail.core.body`.
"""
from __future__ import annotations


class BridgeMailError(Exception):
    """Root of all bridgemail failures."""


class ProtocolError(BridgeMailError):
    """Raised when an IMAP or SMTP step fails.

    What:
      Wraps library and socket exceptions raised during connect, login, select,
      fetch, store, search, append, or send.

    Why:
      Callers decide the retry policy; the adapters never retry and never hide
      the underlying server response.

    How:
      Constructed with the step name and the original exception text. The
      original exception is chained with ``raise ... from exc``.
    """

    def __init__(self, step: str, detail: str):
        super().__init__(f"{step} failed: {detail}")
        self.step = step
        self.detail = detail


class ValidationError(BridgeMailError, ValueError):
    """Raised for malformed user input before any protocol I/O."""


class InvalidIdentifier(ValidationError):
    """Raised when a message identifier is not a non-negative integer."""

    def __init__(self, identifier: str):
        super().__init__(f"invalid message ID: {identifier!r}")
        self.identifier = identifier


class MessageNotFound(BridgeMailError):
    """Raised when a sequence number does not address a message."""


class AttachmentNotFound(BridgeMailError):
    """Raised when an attachment index or attachment file does not exist."""


class AttachmentUnreadable(BridgeMailError):
    """Raised when an attachment file exists but cannot be read."""


class PartialDataError(BridgeMailError):
    """Raised internally when a MIME payload cannot be parsed structurally."""


class ConfigError(BridgeMailError):
    """Raised when configuration cannot be loaded, validated, or saved."""


__all__ = [
    "AttachmentNotFound",
    "AttachmentUnreadable",
    "BridgeMailError",
    "ConfigError",
    "InvalidIdentifier",
    "MessageNotFound",
    "PartialDataError",
    "ProtocolError",
    "ValidationError",
]
