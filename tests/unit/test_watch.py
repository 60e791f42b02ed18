"""Tests for the mailbox watcher loop."""

import signal
import threading

import pytest

from bridgemail.errors import ProtocolError
from bridgemail.imap.client import BridgeImapSession
from bridgemail.imap.watch import WatchOptions, install_stop_handlers, watch_mailbox

from fakes import make_message


class ScriptedStop:
    """Stop event whose ``wait`` runs one scripted step per poll cycle.

    A step returning ``True`` ends the loop, like a signal arriving.
    """

    def __init__(self, *steps):
        self._steps = list(steps)
        self._set = False
        self.waits = []

    def is_set(self):
        return self._set

    def set(self):
        self._set = True

    def wait(self, timeout=None):
        self.waits.append(timeout)
        if not self._steps:
            self._set = True
            return True
        result = self._steps.pop(0)()
        if result:
            self._set = True
        return bool(result)


@pytest.fixture
def watch_session(patched_imap, bridge_settings):
    return BridgeImapSession(bridge_settings, "me@example.com", "secret"), patched_imap


def test_first_cycle_only_seeds_then_new_arrivals_are_reported(watch_session):
    session, backend = watch_session
    backend.add("INBOX", make_message(subject="old"))
    reported = []
    stop = ScriptedStop(lambda: backend.add("INBOX", make_message(subject="fresh")) and False)

    count = watch_mailbox(session, WatchOptions(interval=5, once=True), reported.append, stop=stop)

    assert count == 1
    assert [row.subject for row in reported] == ["fresh"]
    assert reported[0].seq_num == 2
    assert stop.waits == [5]
    assert backend.logged_out


def test_seen_arrivals_are_ignored_when_watching_unread(watch_session):
    session, backend = watch_session
    reported = []
    stop = ScriptedStop(
        lambda: backend.add("INBOX", make_message(subject="already read"), flags=("\\Seen",)) and False,
        lambda: True,
    )

    count = watch_mailbox(session, WatchOptions(interval=1), reported.append, stop=stop)

    assert count == 0
    assert reported == []


def test_all_mode_reports_read_messages_in_arrival_order(watch_session):
    session, backend = watch_session
    reported = []

    def arrive():
        backend.add("INBOX", make_message(subject="first"), flags=("\\Seen",))
        backend.add("INBOX", make_message(subject="second"))
        return False

    stop = ScriptedStop(arrive, lambda: True)

    watch_mailbox(session, WatchOptions(interval=1, unread_only=False), reported.append, stop=stop)

    assert [row.subject for row in reported] == ["first", "second"]


def test_dropped_connection_is_reopened_on_the_next_cycle(watch_session):
    session, backend = watch_session
    reported = []

    def drop():
        backend.fail_on.add("select_folder")
        return False

    def recover():
        backend.fail_on.clear()
        backend.add("INBOX", make_message(subject="after reconnect"))
        return False

    stop = ScriptedStop(drop, recover)

    count = watch_mailbox(session, WatchOptions(interval=1, once=True), reported.append, stop=stop)

    assert count == 1
    assert [row.subject for row in reported] == ["after reconnect"]
    assert [name for name, _ in backend.calls].count("login") == 2
    assert stop.waits == [1, 1]


def test_failure_before_first_snapshot_propagates(watch_session):
    session, backend = watch_session
    backend.fail_on.add("select_folder")

    with pytest.raises(ProtocolError) as excinfo:
        watch_mailbox(session, WatchOptions(interval=1), lambda row: None, stop=ScriptedStop())

    assert excinfo.value.step == "select"


def test_exec_command_receives_sequence_number(watch_session, monkeypatch):
    session, backend = watch_session
    commands = []

    class Completed:
        returncode = 0

    def fake_run(args, check):
        commands.append(args)
        return Completed()

    monkeypatch.setattr("bridgemail.imap.watch.subprocess.run", fake_run)
    stop = ScriptedStop(lambda: backend.add("INBOX", make_message()) and False)

    watch_mailbox(
        session,
        WatchOptions(interval=1, once=True, exec_command="notify-send 'New mail' {}"),
        lambda row: None,
        stop=stop,
    )

    assert commands == [["notify-send", "New mail", "1"]]


def test_preset_stop_event_skips_polling(watch_session):
    session, backend = watch_session
    stop = threading.Event()
    stop.set()

    assert watch_mailbox(session, WatchOptions(), lambda row: None, stop=stop) == 0
    assert not any(name == "select_folder" for name, _ in backend.calls)


def test_stop_handlers_set_event_and_restore():
    stop = threading.Event()
    before = signal.getsignal(signal.SIGTERM)
    restore = install_stop_handlers(stop)
    try:
        handler = signal.getsignal(signal.SIGTERM)
        handler(signal.SIGTERM, None)
        assert stop.is_set()
    finally:
        restore()

    assert signal.getsignal(signal.SIGTERM) == before
