"""Tests for the structured logger."""

import io
import json

from bridgemail.utils.logging import REDACTED, get_logger, level_for_flags


def _entries(stream):
    return [json.loads(line) for line in stream.getvalue().splitlines()]


def test_entries_carry_core_fields_and_redact_content():
    stream = io.StringIO()
    logger = get_logger("bridgemail.test", level="DEBUG", stream=stream)

    logger.info("smtp_sent", subject="Secret plans", recipients=2, nested={"body": "hi", "size": 3})

    (entry,) = _entries(stream)
    assert entry["lvl"] == "INFO"
    assert entry["msg"] == "smtp_sent"
    assert entry["component"] == "bridgemail.test"
    assert "ts" in entry
    assert entry["subject"] == REDACTED
    assert entry["recipients"] == 2
    assert entry["nested"] == {"body": REDACTED, "size": 3}


def test_entries_below_threshold_are_dropped():
    stream = io.StringIO()
    logger = get_logger("bridgemail.test", level="WARN", stream=stream)

    logger.debug("noise")
    logger.info("noise")
    logger.warning("kept")
    logger.error("kept too")

    assert [entry["msg"] for entry in _entries(stream)] == ["kept", "kept too"]


def test_child_shares_stream_and_level():
    stream = io.StringIO()
    parent = get_logger("bridgemail.cli", level="INFO", stream=stream)

    parent.child("bridgemail.imap").info("imap_connected", host="127.0.0.1")

    (entry,) = _entries(stream)
    assert entry["component"] == "bridgemail.imap"


def test_level_for_flags():
    assert level_for_flags() == "WARN"
    assert level_for_flags(verbose=True) == "DEBUG"
    assert level_for_flags(quiet=True) == "ERROR"
