"""Diagnostics behind ``config doctor``.

What:
  Run an ordered list of checks against the local setup: configuration file,
  account address, password, bridge ports, IMAP login and SMTP login.

Why:
  Most support questions for a bridge client come down to "is the bridge
  running" and "is the password exported". Reporting every check, instead of
  stopping at the first failure, tells the user everything that needs fixing
  in one run.

How:
  Each check appends a :class:`CheckResult`. Checks that depend on an earlier
  one (logins need an address and a password) fail with a "cannot test"
  message instead of running. Port checks open and close a plain TCP socket;
  logins go through :class:`BridgeImapSession` and :meth:`SmtpSession.verify`.

Interfaces:
  :class:`CheckResult`, :class:`DoctorReport`, :func:`run_doctor`.

Invariants & Safety:
  - The password never appears in a check message.
  - No check raises; failures are recorded as ``fail`` results.
"""
from __future__ import annotations

import socket
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .config.credentials import resolve_password
from .config.loader import load_config, resolve_config_path
from .config.schema import AppConfig
from .errors import BridgeMailError
from .imap.client import BridgeImapSession
from .smtp.client import SmtpSession
from .utils.logging import JsonLogger, get_logger

OK = "ok"
FAIL = "fail"
PORT_TIMEOUT = 5.0


@dataclass
class CheckResult:
    name: str
    status: str
    message: str = ""


@dataclass
class DoctorReport:
    """Ordered check results; healthy when none failed."""

    checks: List[CheckResult] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(check.status == OK for check in self.checks)

    def add(self, name: str, ok: bool, message: str = "") -> None:
        self.checks.append(CheckResult(name, OK if ok else FAIL, message))

    def to_dict(self) -> Dict[str, Any]:
        return {"checks": [asdict(check) for check in self.checks], "healthy": self.healthy}


def _reachable(host: str, port: int, timeout: float) -> Optional[str]:
    try:
        connection = socket.create_connection((host, port), timeout=timeout)
    except OSError as exc:
        return str(exc) or exc.__class__.__name__
    connection.close()
    return None


def run_doctor(
    config_path: Optional[Path] = None,
    *,
    environ: Optional[Mapping[str, str]] = None,
    timeout: float = PORT_TIMEOUT,
    logger: Optional[JsonLogger] = None,
) -> DoctorReport:
    """Check the configuration at ``config_path`` and the bridge it points to."""

    log = logger or get_logger("bridgemail.health")
    report = DoctorReport()

    location, exists = resolve_config_path(config_path)
    report.add("Config file exists", exists, str(location) if exists else f"not found at {location}")

    config = AppConfig()
    if exists:
        try:
            config = load_config(location).config
        except BridgeMailError as exc:
            report.add("Config valid", False, str(exc))
        else:
            report.add("Config valid", True)

    settings = config.bridge
    report.add("Email configured", bool(settings.email), settings.email or "no email address set")

    password = ""
    try:
        password = resolve_password(settings, environ)
    except BridgeMailError:
        report.add("Password available", False, f"{settings.password_env} is not set")
    else:
        report.add("Password available", True, f"from {settings.password_env}")

    imap_address = f"{settings.imap_host}:{settings.imap_port}"
    error = _reachable(settings.imap_host, settings.imap_port, timeout)
    report.add("IMAP port reachable", error is None, imap_address if error is None else f"{imap_address}: {error}; is the bridge running?")
    smtp_address = f"{settings.smtp_host}:{settings.smtp_port}"
    error = _reachable(settings.smtp_host, settings.smtp_port, timeout)
    report.add("SMTP port reachable", error is None, smtp_address if error is None else f"{smtp_address}: {error}; is the bridge running?")

    if not settings.email or not password:
        missing = "email not configured" if not settings.email else "password not available"
        report.add("IMAP login succeeds", False, f"cannot test: {missing}")
        report.add("SMTP login succeeds", False, f"cannot test: {missing}")
    else:
        try:
            with BridgeImapSession(settings, settings.email, password, logger=log.child("bridgemail.imap")):
                pass
        except BridgeMailError as exc:
            report.add("IMAP login succeeds", False, str(exc))
        else:
            report.add("IMAP login succeeds", True)
        try:
            SmtpSession(settings, settings.email, password, logger=log.child("bridgemail.smtp")).verify()
        except BridgeMailError as exc:
            report.add("SMTP login succeeds", False, str(exc))
        else:
            report.add("SMTP login succeeds", True)

    log.info("doctor_finished", healthy=report.healthy, failed=[c.name for c in report.checks if c.status == FAIL])
    return report


__all__ = ["CheckResult", "DoctorReport", "run_doctor"]
