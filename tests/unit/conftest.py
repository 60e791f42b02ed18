"""Pytest fixtures for unit tests requiring IMAP fakes.

What:
  Make ``tests/unit`` importable for :mod:`fakes` and expose an
  ``imap_session`` fixture backed by :class:`FakeImapBackend`.

Why:
  Mailbox operations talk to :class:`BridgeImapSession`. Swapping the
  ``IMAPClient`` constructor keeps the real session code (step wrapping,
  sequence-set rendering, APPENDUID parsing) under test while the mailbox
  state lives in memory.

How:
  Monkeypatch ``bridgemail.imap.client.IMAPClient`` to return the shared
  backend, enter the session so login and logout run as in production, and
  yield both objects.

Interfaces:
  :func:`backend`, :func:`bridge_settings`, :func:`imap_session` (pytest
  fixtures).

Invariants & Safety:
  - Each test receives a fresh backend; nothing touches the network.
"""

import sys
from pathlib import Path

import pytest

from bridgemail.config.schema import BridgeSettings
from bridgemail.imap.client import BridgeImapSession

UNIT_DIR = Path(__file__).resolve().parent
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeImapBackend


@pytest.fixture
def backend() -> FakeImapBackend:
    return FakeImapBackend()


@pytest.fixture
def bridge_settings() -> BridgeSettings:
    return BridgeSettings(email="me@example.com")


@pytest.fixture
def patched_imap(monkeypatch: pytest.MonkeyPatch, backend: FakeImapBackend) -> FakeImapBackend:
    """Route every ``IMAPClient`` construction to ``backend``."""

    monkeypatch.setattr("bridgemail.imap.client.IMAPClient", lambda *args, **kwargs: backend)
    return backend


@pytest.fixture
def imap_session(patched_imap: FakeImapBackend, bridge_settings: BridgeSettings):
    """Yield a connected :class:`BridgeImapSession` and its fake backend.

    What:
      Returns ``(session, backend)`` with the session already logged in.

    Why:
      Tests drive high-level operations through the session and assert on the
      backend's mailboxes and recorded calls.

    How:
      Enters the session context manager so ``starttls``/``login`` and the
      final ``logout`` happen exactly as in production.
    """

    with BridgeImapSession(bridge_settings, "me@example.com", "secret") as session:
        yield session, patched_imap
