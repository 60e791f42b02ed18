"""IMAP session adapter for the local bridge.

What:
  Wrap :class:`imapclient.IMAPClient` in a context manager that connects,
  upgrades to TLS, logs in, and exposes the handful of protocol calls the
  mailbox operations need.

Why:
  Every command opens exactly one session and must close it on every path.
  Library and socket exceptions carry little context; wrapping each call lets
  the CLI report which protocol step failed without a traceback.

How:
  The client runs with ``use_uid=False`` because identifiers shown to users
  are sequence numbers. Each call goes through :meth:`BridgeImapSession._step`,
  which logs the step at ``DEBUG`` and converts ``IMAPClientError`` and
  ``OSError`` into :class:`ProtocolError`.

Interfaces:
  :class:`MailSession` (protocol), :class:`BridgeImapSession`.

Invariants & Safety:
  - Nothing is retried; the first failure propagates.
  - ``close`` is idempotent and never raises.
"""
from __future__ import annotations

import contextlib
import re
import ssl
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Union

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from ..config.schema import BridgeSettings
from ..core.models import MailboxInfo, MailboxStatus
from ..core.search import SearchPredicate, needs_utf8, to_criteria
from ..core.sequence import SequenceSet
from ..errors import ProtocolError
from ..utils.logging import JsonLogger, get_logger

SequenceLike = Union[SequenceSet, str, Sequence[int]]

_APPENDUID_RE = re.compile(rb"APPENDUID\s+\d+\s+(\d+)", re.IGNORECASE)


class MailSession(Protocol):
    """Subset of :class:`BridgeImapSession` used by mailbox operations."""

    def select_mailbox(self, name: str, *, readonly: bool = False) -> MailboxStatus: ...

    def fetch(self, messages: SequenceLike, items: Sequence[str]) -> Dict[int, Dict[bytes, Any]]: ...

    def search(self, predicate: SearchPredicate) -> List[int]: ...

    def add_flags(self, messages: SequenceLike, flags: Sequence[str]) -> None: ...

    def remove_flags(self, messages: SequenceLike, flags: Sequence[str]) -> None: ...

    def copy(self, messages: SequenceLike, destination: str) -> None: ...

    def expunge(self) -> None: ...

    def list_mailboxes(self, pattern: str = "*") -> List[MailboxInfo]: ...

    def create_mailbox(self, name: str) -> None: ...

    def delete_mailbox(self, name: str) -> None: ...

    def append(self, mailbox: str, message: bytes, flags: Sequence[str] = ()) -> Optional[int]: ...


def _ssl_context(verify: bool) -> ssl.SSLContext:
    context = ssl.create_default_context()
    if not verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


def _message_set(messages: SequenceLike) -> Union[str, List[int]]:
    if isinstance(messages, (SequenceSet, str)):
        return str(messages)
    return list(messages)


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return "" if value is None else str(value)


class BridgeImapSession:
    """Context manager owning one authenticated IMAP connection.

    What:
      Connects on :meth:`__enter__` and logs out on :meth:`__exit__`, exposing
      sequence-number based mailbox, fetch, search, flag, copy, expunge, and
      append calls.

    Why:
      Mailbox operations should depend on a narrow, error-normalised surface
      rather than on ``imapclient`` directly, which also lets tests substitute
      an in-memory backend.

    How:
      Instantiates ``IMAPClient`` lazily, optionally upgrades with STARTTLS,
      logs in, and remembers the selected mailbox to avoid redundant SELECTs.
    """

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
        self._logger = logger or get_logger("bridgemail.imap")
        self._client: Optional[IMAPClient] = None
        self._selected: Optional[str] = None
        self._readonly = False

    def __enter__(self) -> "BridgeImapSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def connected(self) -> bool:
        return self._client is not None

    @property
    def client(self) -> IMAPClient:
        """Return the underlying connection.

        Raises:
          RuntimeError: If the session is not connected.
        """

        if self._client is None:
            raise RuntimeError("IMAP session not connected")
        return self._client

    @contextlib.contextmanager
    def _step(self, step: str, **context: Any) -> Iterator[None]:
        self._logger.debug("imap_step", step=step, **context)
        try:
            yield
        except (IMAPClientError, OSError) as exc:
            self._logger.error("imap_step_failed", step=step, error=str(exc), **context)
            raise ProtocolError(step, str(exc) or exc.__class__.__name__) from exc

    def connect(self) -> None:
        """Open the connection, negotiate TLS, and authenticate.

        What:
          Establishes the transport configured by ``imap_security`` and performs
          ``LOGIN``.

        Why:
          The bridge listens on loopback with a self-signed certificate, so
          STARTTLS with verification disabled is the default; ``ssl`` and
          ``plain`` cover other setups.

        How:
          Builds an :class:`ssl.SSLContext`, constructs ``IMAPClient`` with
          ``use_uid=False``, calls ``starttls`` when requested, then ``login``.
          A failed login closes the socket before the error propagates.

        Raises:
          ProtocolError: When connecting, negotiating TLS, or logging in fails.
        """

        if self._client is not None:
            return
        settings = self._settings
        context = _ssl_context(settings.verify_tls)
        with self._step("connect", host=settings.imap_host, port=settings.imap_port):
            client = IMAPClient(
                settings.imap_host,
                port=settings.imap_port,
                use_uid=False,
                ssl=settings.imap_security == "ssl",
                ssl_context=context,
                timeout=settings.timeout,
            )
        try:
            if settings.imap_security == "starttls":
                with self._step("starttls"):
                    client.starttls(context)
            with self._step("login", user=self._username):
                client.login(self._username, self._password)
        except ProtocolError:
            with contextlib.suppress(IMAPClientError, OSError):
                client.shutdown()
            raise
        self._client = client
        self._selected = None
        self._logger.info("imap_connected", host=settings.imap_host, port=settings.imap_port)

    def close(self) -> None:
        """Log out and drop the connection; safe to call repeatedly."""

        if self._client is None:
            return
        client = self._client
        self._client = None
        self._selected = None
        try:
            client.logout()
        except (IMAPClientError, OSError) as exc:
            self._logger.warning("imap_logout_failed", error=str(exc))

    def select_mailbox(self, name: str, *, readonly: bool = False) -> MailboxStatus:
        """Select ``name`` and return its message count."""

        with self._step("select", mailbox=name):
            response = self.client.select_folder(name, readonly=readonly)
        self._selected = name
        self._readonly = readonly
        return MailboxStatus(name=name, messages=int(response.get(b"EXISTS", 0)))

    def fetch(self, messages: SequenceLike, items: Sequence[str]) -> Dict[int, Dict[bytes, Any]]:
        with self._step("fetch", messages=str(messages), items=list(items)):
            return self.client.fetch(_message_set(messages), list(items))

    def search(self, predicate: SearchPredicate) -> List[int]:
        """Run ``predicate`` on the selected mailbox and return sequence numbers."""

        criteria = to_criteria(predicate)
        charset = "UTF-8" if needs_utf8(predicate) else None
        with self._step("search", mailbox=self._selected):
            found = self.client.search(criteria, charset=charset)
        return sorted(int(number) for number in found)

    def add_flags(self, messages: SequenceLike, flags: Sequence[str]) -> None:
        with self._step("store", messages=str(messages), flags=list(flags), mode="+"):
            self.client.add_flags(_message_set(messages), list(flags))

    def remove_flags(self, messages: SequenceLike, flags: Sequence[str]) -> None:
        with self._step("store", messages=str(messages), flags=list(flags), mode="-"):
            self.client.remove_flags(_message_set(messages), list(flags))

    def copy(self, messages: SequenceLike, destination: str) -> None:
        with self._step("copy", messages=str(messages), destination=destination):
            self.client.copy(_message_set(messages), destination)

    def expunge(self) -> None:
        with self._step("expunge", mailbox=self._selected):
            self.client.expunge()

    def list_mailboxes(self, pattern: str = "*") -> List[MailboxInfo]:
        with self._step("list", pattern=pattern):
            listing = self.client.list_folders(pattern=pattern)
        return [
            MailboxInfo(name=_text(name), delimiter=_text(delimiter), attributes=[_text(flag) for flag in flags])
            for flags, delimiter, name in listing
        ]

    def create_mailbox(self, name: str) -> None:
        with self._step("create", mailbox=name):
            self.client.create_folder(name)

    def delete_mailbox(self, name: str) -> None:
        with self._step("delete", mailbox=name):
            self.client.delete_folder(name)

    def append(self, mailbox: str, message: bytes, flags: Iterable[str] = ()) -> Optional[int]:
        """Store ``message`` in ``mailbox`` and return its UID when reported."""

        with self._step("append", mailbox=mailbox, size=len(message)):
            response = self.client.append(mailbox, message, flags=tuple(flags))
        match = _APPENDUID_RE.search(response if isinstance(response, bytes) else _text(response).encode())
        return int(match.group(1)) if match else None


__all__ = ["BridgeImapSession", "MailSession", "SequenceLike"]
