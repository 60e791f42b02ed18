"""bridgemail logging helpers with deterministic JSON emission and redaction.

What:
  Offer a tiny facade over Python streams so every bridgemail component can
  emit JSON log lines with consistent fields and automatic removal of message
  content and credentials.

Why:
  The CLI prints command results on stdout, so diagnostics go to stderr where
  they can be captured and grepped separately. A structured layout keeps
  parsing trivial while preventing subjects, bodies, or passwords from leaking
  into shared logs when debugging protocol exchanges.

How:
  Provide a :class:`JsonLogger` dataclass that accepts a target stream, a
  minimum severity, and a component label. ``extra`` dictionaries are scrubbed
  via a recursive redaction helper before being serialised with ``json.dump``.

Interfaces:
  :class:`JsonLogger`, :func:`get_logger`, :func:`level_for_flags`.

Invariants & Safety:
  - Every emitted entry carries ``ts``, ``lvl``, ``msg`` and ``component``.
  - Known sensitive keys (``subject``, ``body``, ``preview``, ``snippet``,
    ``password``) are replaced with ``[redacted]`` even inside nested
    dictionaries.
  - Entries below the configured level are dropped before serialisation.
"""
from __future__ import annotations

import json
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Dict, Optional


REDACTED = "[redacted]"

LEVELS: Dict[str, int] = {"DEBUG": 10, "INFO": 20, "WARN": 30, "ERROR": 40}

_SENSITIVE_KEYS = frozenset({"subject", "body", "preview", "snippet", "password"})


@dataclass
class JsonLogger:
    """Structured JSON logger with a severity threshold and redaction.

    What:
      Emits single-line JSON log entries that include timestamps, severity, a
      component tag, and optional supplemental fields.

    Why:
      Protocol adapters and mailbox operations log the same kinds of events;
      sharing one logger type keeps the schema uniform and lets tests parse the
      output with :func:`json.loads`.

    How:
      Stores the destination stream, component label, and minimum level, then
      exposes :meth:`debug`, :meth:`info`, :meth:`warning`, and :meth:`error`
      which funnel into :meth:`log`.
    """

    stream: Any = field(default_factory=lambda: sys.stderr)
    component: str = "bridgemail"
    level: str = "WARN"

    def enabled(self, level: str) -> bool:
        """Return whether entries at ``level`` pass the threshold."""

        return LEVELS.get(level.upper(), 0) >= LEVELS.get(self.level.upper(), 0)

    def log(self, level: str, message: str, *, extra: Optional[Dict[str, Any]] = None) -> None:
        """Emit a structured JSON log entry.

        What:
          Serialises ``message`` and ``extra`` metadata to the configured stream
          using the bridgemail log schema (``ts``, ``lvl``, ``msg``,
          ``component``).

        Why:
          A predictable contract lets operators and tests parse entries without
          ad-hoc heuristics.

        How:
          Drops the entry when below the threshold, otherwise builds the core
          dictionary, merges a redacted copy of ``extra``, writes one JSON line,
          and flushes the stream.

        Args:
          level: Severity name (``"debug"``, ``"info"``, ``"warn"``, ``"error"``).
          message: Event name in ``snake_case``.
          extra: Optional context dictionary that will be redacted recursively.
        """

        if not self.enabled(level):
            return
        payload = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "lvl": level.upper(),
            "msg": message,
            "component": self.component,
        }
        if extra:
            payload.update(self._redact(extra))
        json.dump(payload, self.stream, separators=(",", ":"), default=str)
        self.stream.write("\n")
        self.stream.flush()

    def debug(self, message: str, **kwargs: Any) -> None:
        self.log("DEBUG", message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.log("INFO", message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.log("WARN", message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.log("ERROR", message, extra=kwargs)

    def child(self, component: str) -> "JsonLogger":
        """Return a logger sharing stream and threshold under a new component."""

        return replace(self, component=component)

    @staticmethod
    def _redact(data: Dict[str, Any]) -> Dict[str, Any]:
        """Remove sensitive keys from a payload recursively.

        What:
          Produces a copy of ``data`` where sensitive fields are replaced with
          the ``[redacted]`` sentinel.

        Why:
          Mail subjects and bodies are personal content and passwords are
          secrets; neither belongs in diagnostics.

        How:
          Walks the dictionary, masking known keys and recursing into nested
          dictionaries while preserving structure.

        Args:
          data: Arbitrary metadata to sanitise.

        Returns:
          A copy of ``data`` with sensitive values masked.
        """

        result: Dict[str, Any] = {}
        for key, value in data.items():
            if key in _SENSITIVE_KEYS:
                result[key] = REDACTED
            elif isinstance(value, dict):
                result[key] = JsonLogger._redact(value)
            else:
                result[key] = value
        return result


def get_logger(component: str, *, level: str = "WARN", stream: Any = None) -> JsonLogger:
    """Construct a :class:`JsonLogger` for the requested component.

    Args:
      component: Logical subsystem name to include in log payloads.
      level: Minimum severity to emit.
      stream: Destination stream, ``sys.stderr`` when omitted.

    Returns:
      Configured :class:`JsonLogger` instance.
    """

    if stream is None:
        return JsonLogger(component=component, level=level)
    return JsonLogger(stream=stream, component=component, level=level)


def level_for_flags(*, verbose: bool = False, quiet: bool = False) -> str:
    """Map the CLI ``--verbose``/``--quiet`` flags to a logger threshold."""

    if verbose:
        return "DEBUG"
    if quiet:
        return "ERROR"
    return "WARN"


__all__ = ["JsonLogger", "LEVELS", "REDACTED", "get_logger", "level_for_flags"]
