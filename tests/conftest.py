"""Pytest configuration shared by the unit and end-to-end suites.

What:
  Make the in-repo ``bridgemail/src`` tree importable and isolate every test
  from the developer's real configuration and credentials.

Why:
  Configuration discovery reads ``BRIDGEMAIL_CONFIG`` and ``XDG_CONFIG_HOME``
  and the sessions read the password from the environment. Without isolation
  a test could pick up a local ``config.yaml`` or write into it.

How:
  Prepend the source directory to ``sys.path`` at import time and install an
  autouse fixture that points the XDG directory at a temporary path, clears
  ``BRIDGEMAIL_CONFIG``, and provides a dummy bridge password.

Interfaces:
  :func:`isolated_environment` (pytest fixture).
"""

import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_DIR = PROJECT_ROOT / "bridgemail" / "src"
if SRC_DIR.exists():
    sys.path.insert(0, str(SRC_DIR))

import pytest

TEST_PASSWORD = "bridge-secret"


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """Point configuration discovery at an empty temporary directory."""

    xdg = tmp_path / "xdg"
    monkeypatch.delenv("BRIDGEMAIL_CONFIG", raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.setenv("BRIDGEMAIL_PASSWORD", TEST_PASSWORD)
    return xdg
