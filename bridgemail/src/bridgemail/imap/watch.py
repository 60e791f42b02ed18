"""Poll a mailbox and report newly arrived messages.

What:
  Run a cooperative loop that checks a mailbox every ``interval`` seconds,
  reports messages that were not present on the previous check, and
  optionally runs a command for each of them.

Why:
  The bridge does not push notifications to scripts. A plain poll with a
  stop event is predictable, survives dropped connections, and shuts down
  promptly on SIGINT/SIGTERM.

How:
  Each cycle reconnects if needed, searches ``ALL`` or ``UNSEEN``, fetches
  UIDs, and diffs them against the previous snapshot. The first snapshot only
  seeds the state; with ``once`` the loop ends after the first cycle that
  reports something. Waiting uses
  :meth:`threading.Event.wait` so a signal handler that sets the event ends
  the loop without waiting out the interval.

Interfaces:
  :class:`WatchOptions`, :func:`watch_mailbox`, :func:`install_stop_handlers`.

Invariants & Safety:
  - The session is closed on every exit path.
  - A failure before the first snapshot propagates to the caller. Later
    protocol failures close the session and the next cycle reconnects.
"""
from __future__ import annotations

import shlex
import signal
import subprocess
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Set

from ..core.models import MessageSummary
from ..core.search import And, Unseen
from ..core.sequence import SequenceSet
from ..errors import ProtocolError
from ..utils.logging import JsonLogger, get_logger
from .messages import fetch_summaries

_LOGGER = get_logger("bridgemail.watch")


@dataclass(frozen=True)
class WatchOptions:
    mailbox: str = "INBOX"
    interval: float = 30.0
    unread_only: bool = True
    exec_command: Optional[str] = None
    once: bool = False


def install_stop_handlers(stop: threading.Event) -> Callable[[], None]:
    """Make SIGINT and SIGTERM set ``stop``; returns a function restoring the old handlers."""

    previous: Dict[int, object] = {}

    def _handler(signum, frame) -> None:
        stop.set()

    for signum in (signal.SIGINT, signal.SIGTERM):
        previous[signum] = signal.signal(signum, _handler)

    def restore() -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    return restore


def _snapshot(session, options: WatchOptions) -> Dict[int, int]:
    session.select_mailbox(options.mailbox, readonly=True)
    numbers = session.search(Unseen() if options.unread_only else And(()))
    if not numbers:
        return {}
    response = session.fetch(SequenceSet.of(numbers), ["UID"])
    return {int(data[b"UID"]): seq for seq, data in response.items()}


def _run_command(template: str, summary: MessageSummary, log: JsonLogger) -> None:
    args = shlex.split(template.replace("{}", str(summary.seq_num)))
    if not args:
        return
    try:
        completed = subprocess.run(args, check=False)
    except OSError as exc:
        log.error("watch_exec_failed", command=args[0], error=str(exc))
        return
    if completed.returncode != 0:
        log.warning("watch_exec_nonzero", command=args[0], returncode=completed.returncode)


def watch_mailbox(
    session,
    options: WatchOptions,
    on_new: Callable[[MessageSummary], None],
    *,
    stop: Optional[threading.Event] = None,
    logger: Optional[JsonLogger] = None,
) -> int:
    """Poll ``options.mailbox`` until ``stop`` is set; returns the number of reported messages.

    What:
      Calls ``on_new`` (and the optional command) once per newly seen
      message.

    Why:
      Scripts want one notification per arrival, not a full listing each
      time, and must be able to stop the watcher cleanly.

    How:
      Keeps the UIDs of the previous snapshot; new UIDs are reported with
      their summaries, oldest first. A dropped connection is closed and
      reopened on the next cycle; messages that arrived meanwhile are still
      reported because the snapshot survives.

    Args:
      session: A :class:`BridgeImapSession` (or compatible object exposing
        ``connect``, ``connected`` and ``close``).
      options: Mailbox, interval, filters, and command.
      on_new: Callback receiving each new message summary.
      stop: Event ending the loop when set.
      logger: Structured logger.
    """

    log = logger or _LOGGER
    stop = stop or threading.Event()
    known: Optional[Set[int]] = None
    reported = 0
    try:
        while not stop.is_set():
            fresh: List[int] = []
            try:
                if not session.connected:
                    session.connect()
                current = _snapshot(session, options)
                if known is not None:
                    fresh = sorted(current[uid] for uid in current if uid not in known)
                summaries = fetch_summaries(session, fresh)
            except ProtocolError as exc:
                if known is None:
                    raise
                log.warning("watch_connection_lost", mailbox=options.mailbox, step=exc.step, error=str(exc))
                session.close()
            else:
                known = set(current)
                log.debug("watch_cycle", mailbox=options.mailbox, total=len(current), new=len(fresh))
                for summary in sorted(summaries, key=lambda row: row.seq_num):
                    on_new(summary)
                    reported += 1
                    if options.exec_command:
                        _run_command(options.exec_command, summary, log)
                if options.once and fresh:
                    break
            if stop.wait(options.interval):
                break
    finally:
        session.close()
    log.info("watch_stopped", mailbox=options.mailbox, reported=reported)
    return reported


__all__ = ["WatchOptions", "install_stop_handlers", "watch_mailbox"]
