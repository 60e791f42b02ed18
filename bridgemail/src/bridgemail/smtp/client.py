"""SMTP submission session for the local bridge.

What:
  Compose an :class:`OutgoingMessage` and submit it with ``smtplib``:
  connect, STARTTLS or implicit TLS, ``AUTH PLAIN``, envelope, ``DATA``,
  ``QUIT``.

Why:
  Sending is the only irreversible operation. Composing before dialing means
  a missing attachment aborts without ever opening a connection, and mapping
  every ``smtplib`` failure to :class:`ProtocolError` names the failing step.

How:
  Mirrors the IMAP adapter: a small ``_step`` context manager logs each step
  and converts ``smtplib.SMTPException`` and ``OSError``. Envelope recipients
  are To, Cc, and Bcc; Bcc never appears in the headers.

Interfaces:
  :class:`SmtpSession`.
"""
from __future__ import annotations

import contextlib
import smtplib
import ssl
from datetime import datetime
from typing import Any, Iterator, Optional

from ..config.schema import BridgeSettings
from ..core.compose import OutgoingMessage, compose
from ..core.models import SendResult
from ..core.outbound import extract_address
from ..errors import ProtocolError, ValidationError
from ..utils.logging import JsonLogger, get_logger


def _ssl_context(verify: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


class SmtpSession:
    """One-shot SMTP submission bound to the bridge settings."""

    def __init__(
        self,
        settings: BridgeSettings,
        username: str,
        password: str,
        *,
        logger: Optional[JsonLogger] = None,
    ):
        self._settings = settings
        self._username = username
        self._password = password
        self._logger = logger or get_logger("bridgemail.smtp")

    @contextlib.contextmanager
    def _step(self, step: str, **context: Any) -> Iterator[None]:
        self._logger.debug("smtp_step", step=step, **context)
        try:
            yield
        except (smtplib.SMTPException, OSError) as exc:
            self._logger.error("smtp_step_failed", step=step, error=str(exc), **context)
            raise ProtocolError(step, str(exc) or exc.__class__.__name__) from exc

    def _dial(self) -> smtplib.SMTP:
        settings = self._settings
        context = _ssl_context(settings.verify_tls)
        with self._step("connect", host=settings.smtp_host, port=settings.smtp_port):
            if settings.smtp_security == "ssl":
                return smtplib.SMTP_SSL(
                    settings.smtp_host, settings.smtp_port, timeout=settings.timeout, context=context
                )
            smtp = smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.timeout)
        if settings.smtp_security == "starttls":
            try:
                with self._step("starttls"):
                    smtp.starttls(context=context)
            except ProtocolError:
                with contextlib.suppress(OSError):
                    smtp.close()
                raise
        return smtp

    def _authenticate(self, smtp: smtplib.SMTP) -> None:
        with self._step("auth", user=self._username):
            smtp.ehlo_or_helo_if_needed()
            smtp.user, smtp.password = self._username, self._password
            smtp.auth("PLAIN", smtp.auth_plain)

    def verify(self) -> None:
        """Dial and authenticate without submitting anything.

        Raises:
          ProtocolError: When connecting, STARTTLS, or ``AUTH`` fails.
        """

        smtp = self._dial()
        try:
            self._authenticate(smtp)
        finally:
            with contextlib.suppress(smtplib.SMTPException, OSError):
                smtp.quit()
        self._logger.info("smtp_verified", user=self._username)

    def send(self, message: OutgoingMessage, *, now: Optional[datetime] = None) -> SendResult:
        """Compose and submit ``message``.

        What:
          Delivers the composed bytes to every To, Cc, and Bcc recipient.

        Why:
          The bridge requires authentication on every submission and accepts
          the account address as envelope sender.

        How:
          Composes first, dials, authenticates with ``AUTH PLAIN``, runs
          ``sendmail`` and always attempts ``QUIT``.

        Returns:
          A ``sent`` :class:`SendResult`.

        Raises:
          ValidationError: When there are no recipients.
          AttachmentNotFound / AttachmentUnreadable: When an attachment
            cannot be loaded; nothing is sent.
          ProtocolError: When any SMTP step fails.
        """

        recipients = [extract_address(address) for address in message.recipients()]
        if not recipients:
            raise ValidationError("at least one recipient is required")
        payload = compose(message, now=now)
        sender = extract_address(message.from_)
        smtp = self._dial()
        try:
            self._authenticate(smtp)
            with self._step("send", recipients=len(recipients), size=len(payload)):
                refused = smtp.sendmail(sender, recipients, payload)
        finally:
            with contextlib.suppress(smtplib.SMTPException, OSError):
                smtp.quit()
        if refused:
            self._logger.warning("smtp_recipients_refused", refused=sorted(refused))
        self._logger.info("smtp_sent", recipients=len(recipients), subject=message.subject)
        return SendResult(status="sent", recipients=recipients, subject=message.subject)


__all__ = ["SmtpSession"]
