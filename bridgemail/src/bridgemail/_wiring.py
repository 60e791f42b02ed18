"""Helpers bridging the CLI with configuration, sessions, and the ledger.

What:
  Hold the per-invocation :class:`AppContext` and build protocol sessions,
  the sender address, and the idempotency ledger from it.

Why:
  Command functions in :mod:`bridgemail.cli` should only parse options and
  print results. Keeping construction here gives tests one seam to replace
  sessions and keeps configuration an explicit value instead of a global.

How:
  :class:`AppContext` is created once by the typer callback and stored on
  ``ctx.obj``. Factories read credentials lazily so commands that never touch
  the network (``config``, ``version``) work without a password.

Interfaces:
  :class:`AppContext`, :func:`open_imap`, :func:`open_smtp`,
  :func:`sender_address`, :func:`open_ledger`, :func:`send_once`,
  :func:`read_body`.

Invariants & Safety:
  - A duplicate idempotency key never reaches SMTP.
  - Credentials are never logged.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import IO, Optional

from .config.credentials import resolve_password, resolve_username
from .config.ledger import IdempotencyLedger
from .config.loader import LoadedConfig, default_state_dir
from .core.compose import OutgoingMessage
from .core.models import SendResult
from .core.outbound import extract_address
from .errors import ValidationError
from .imap.client import BridgeImapSession
from .smtp.client import SmtpSession
from .utils.logging import JsonLogger


@dataclass
class AppContext:
    """Everything a command needs, built once per invocation."""

    loaded: LoadedConfig
    logger: JsonLogger
    json_output: bool = False
    config_error: Optional[str] = None

    @property
    def config(self):
        return self.loaded.config


def open_imap(app: AppContext) -> BridgeImapSession:
    """Return an unconnected IMAP session; use it as a context manager."""

    settings = app.config.bridge
    return BridgeImapSession(
        settings,
        resolve_username(settings),
        resolve_password(settings),
        logger=app.logger.child("bridgemail.imap"),
    )


def open_smtp(app: AppContext) -> SmtpSession:
    settings = app.config.bridge
    return SmtpSession(
        settings,
        resolve_username(settings),
        resolve_password(settings),
        logger=app.logger.child("bridgemail.smtp"),
    )


def sender_address(app: AppContext) -> str:
    return resolve_username(app.config.bridge)


def open_ledger(app: AppContext) -> IdempotencyLedger:
    return IdempotencyLedger.in_directory(
        default_state_dir(app.loaded), logger=app.logger.child("bridgemail.ledger")
    )


def send_once(
    app: AppContext,
    message: OutgoingMessage,
    *,
    idempotency_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> SendResult:
    """Send ``message``, suppressing it when ``idempotency_key`` was used recently.

    What:
      Wraps :meth:`SmtpSession.send` in :meth:`IdempotencyLedger.reserve`.

    Why:
      A retried script invocation must not deliver the same message twice, and
      a failed send must stay retryable with the same key.

    How:
      Without a key the message is sent directly. With a key the ledger lock
      is held across check, send, and record; a live key short-circuits to a
      ``duplicate_suppressed`` result.
    """

    smtp = open_smtp(app)
    if not idempotency_key:
        return smtp.send(message, now=now)
    with open_ledger(app).reserve(idempotency_key) as duplicate:
        if duplicate:
            app.logger.info("send_duplicate_suppressed", key=idempotency_key)
            return SendResult(
                status="duplicate_suppressed",
                recipients=[extract_address(a) for a in message.recipients()],
                subject=message.subject,
            )
        return smtp.send(message, now=now)


def read_body(body: Optional[str], stdin: IO[str], *, required: bool = True) -> str:
    """Return ``body`` or, when it is omitted and stdin is piped, stdin's content."""

    if body is not None:
        return body
    if not stdin.isatty():
        return stdin.read()
    if required:
        raise ValidationError("message body required: pass --body or pipe it on stdin")
    return ""


__all__ = [
    "AppContext",
    "open_imap",
    "open_ledger",
    "open_smtp",
    "read_body",
    "send_once",
    "sender_address",
]
