"""bridgemail test suite.

What:
  ``tests/unit`` exercises the core components and mailbox operations against
  the in-memory backends in ``tests/unit/fakes.py``; ``tests/e2e`` drives the
  typer application.

Invariants & Safety:
  - Importing ``tests`` has no side effects; environment isolation lives in
    ``tests/conftest.py``.
"""
