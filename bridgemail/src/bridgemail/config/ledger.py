"""File-backed idempotency ledger for outgoing mail.

What:
  Remember the idempotency keys of recently sent messages so a retried
  ``send`` with the same key is suppressed instead of delivered twice.

Why:
  Scripts retry on timeouts. Without a ledger, a send that actually
  succeeded before the timeout would be duplicated. Two concurrent
  invocations with the same key must not both send, so the check and the
  record happen under one exclusive lock.

How:
  The ledger is a JSON document ``{"keys": {key: unix_timestamp}}`` next to a
  ``.lock`` file. :meth:`IdempotencyLedger.reserve` takes ``fcntl.flock`` on
  the lock file, loads the document, yields whether the key is live, and
  records the key only when the guarded block finishes without raising.
  Keys older than the TTL are pruned on every save.

Interfaces:
  :class:`IdempotencyLedger`.

Invariants & Safety:
  - A corrupt or unreadable ledger is treated as empty rather than blocking
    sends.
  - The lock is released even when the guarded block raises.
"""
from __future__ import annotations

import contextlib
import fcntl
import json
import os
import time
from pathlib import Path
from typing import Callable, Dict, Iterator, Optional

from ..errors import ConfigError
from ..utils.logging import JsonLogger, get_logger

DEFAULT_TTL = 24 * 60 * 60
LEDGER_NAME = "idempotency.json"


class IdempotencyLedger:
    """Persisted set of recently used idempotency keys."""

    def __init__(
        self,
        path: Path,
        *,
        ttl: int = DEFAULT_TTL,
        clock: Callable[[], float] = time.time,
        logger: Optional[JsonLogger] = None,
    ):
        self.path = Path(path)
        self.ttl = ttl
        self._clock = clock
        self._logger = logger or get_logger("bridgemail.ledger")

    @classmethod
    def in_directory(cls, directory: Path, **kwargs) -> "IdempotencyLedger":
        return cls(Path(directory) / LEDGER_NAME, **kwargs)

    @property
    def lock_path(self) -> Path:
        return self.path.with_name(self.path.name + ".lock")

    def _load(self) -> Dict[str, float]:
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except OSError as exc:
            self._logger.warning("ledger_unreadable", path=str(self.path), error=str(exc))
            return {}
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            self._logger.warning("ledger_corrupt", path=str(self.path), error=str(exc))
            return {}
        keys = payload.get("keys") if isinstance(payload, dict) else None
        if not isinstance(keys, dict):
            return {}
        return {str(key): float(value) for key, value in keys.items() if isinstance(value, (int, float))}

    def _save(self, keys: Dict[str, float]) -> None:
        now = self._clock()
        live = {key: stamp for key, stamp in keys.items() if now - stamp < self.ttl}
        tmp = self.path.with_name(self.path.name + ".tmp")
        tmp.write_text(json.dumps({"keys": live}, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp, self.path)

    def seen(self, key: str) -> bool:
        """Return whether ``key`` was recorded within the TTL."""

        stamp = self._load().get(key)
        return stamp is not None and self._clock() - stamp < self.ttl

    @contextlib.contextmanager
    def reserve(self, key: str) -> Iterator[bool]:
        """Hold the ledger lock around a send guarded by ``key``.

        What:
          Yields ``True`` when ``key`` is already live (the caller must skip the
          send) and ``False`` otherwise.

        Why:
          Checking and recording under one lock closes the window in which two
          processes could both observe the key as unused.

        How:
          Opens and ``flock``s the lock file, yields, and on normal exit records
          the key with the current timestamp. An exception inside the block
          leaves the ledger untouched so the send can be retried.

        Raises:
          ConfigError: When the ledger directory cannot be created or written.
        """

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            handle = open(self.lock_path, "a+")
        except OSError as exc:
            raise ConfigError(f"Unable to open idempotency ledger {self.path}: {exc}") from exc
        with handle:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                keys = self._load()
                stamp = keys.get(key)
                duplicate = stamp is not None and self._clock() - stamp < self.ttl
                yield duplicate
                if not duplicate:
                    keys[key] = self._clock()
                    try:
                        self._save(keys)
                    except OSError as exc:
                        raise ConfigError(f"Unable to write idempotency ledger {self.path}: {exc}") from exc
                    self._logger.info("ledger_recorded", key=key)
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


__all__ = ["DEFAULT_TTL", "IdempotencyLedger"]
