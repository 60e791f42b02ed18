"""End-to-end tests driving the ``bridgemail`` CLI.

What:
  Invoke the Typer application with :class:`typer.testing.CliRunner` against
  the in-memory IMAP backend and SMTP fake, and run the console module once as
  a subprocess.

Why:
  These tests cover what unit tests cannot: option parsing, configuration
  loading in the root callback, exit codes, text and JSON rendering, and the
  rule that malformed identifiers never open a connection.

How:
  A fixture writes a minimal ``config.yaml``, points ``BRIDGEMAIL_CONFIG`` at
  it, and monkeypatches ``IMAPClient`` and ``smtplib.SMTP``. Mailbox state is
  asserted on the fake backend after each command.

Interfaces:
  ``cli`` fixture and the ``test_*`` functions below.
"""

import json
import os
import pathlib
import smtplib
import subprocess
import sys

import pytest
import typer.main
from typer.testing import CliRunner

from bridgemail.cli import app
from bridgemail.help_schema import HELP_SCHEMA, command_names

UNIT_DIR = pathlib.Path(__file__).resolve().parents[1] / "unit"
if str(UNIT_DIR) not in sys.path:
    sys.path.insert(0, str(UNIT_DIR))

from fakes import FakeImapBackend, FakeSMTP, make_message

PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[2]

runner = CliRunner()


@pytest.fixture
def cli(tmp_path, monkeypatch):
    """Return ``(invoke, backend, config_path)`` wired to the fakes."""

    config = tmp_path / "config.yaml"
    config.write_text("bridge:\n  email: me@example.com\n")
    monkeypatch.setenv("BRIDGEMAIL_CONFIG", str(config))
    backend = FakeImapBackend()
    monkeypatch.setattr("bridgemail.imap.client.IMAPClient", lambda *args, **kwargs: backend)
    monkeypatch.setattr(FakeSMTP, "instances", [])
    monkeypatch.setattr(FakeSMTP, "fail_step", None)
    monkeypatch.setattr(smtplib, "SMTP", FakeSMTP)

    def invoke(*args, **kwargs):
        return runner.invoke(app, list(args), **kwargs)

    return invoke, backend, config


def _seed(backend):
    backend.add("INBOX", make_message(subject="Message 1", body="body text 1\n"))
    backend.add(
        "INBOX",
        make_message(
            subject="Message 2",
            sender="bob@example.com",
            body="body text 2\n",
            attachments=[("a.pdf", "application/pdf", b"%PDF data")],
        ),
    )
    backend.add("INBOX", make_message(subject="Message 3", body="body text 3\n"))


def _last_json(result):
    return json.loads(result.output.strip().splitlines()[-1])


def _registered(command, prefix=""):
    for name, sub in command.commands.items():
        path = f"{prefix} {name}".strip()
        if hasattr(sub, "commands"):
            yield from _registered(sub, path)
        else:
            yield path, sub


def test_version_text_and_json(cli):
    invoke, _, _ = cli

    text = invoke("version")
    as_json = invoke("--json", "version")

    assert text.exit_code == 0
    assert text.output.strip() == "bridgemail 0.1.0"
    assert json.loads(as_json.stdout) == {"success": True, "data": {"version": "0.1.0"}}


def test_help_json_describes_every_registered_command(cli):
    invoke, _, _ = cli

    result = invoke("--help-json")

    assert result.exit_code == 0
    schema = json.loads(result.stdout)
    assert schema == json.loads(json.dumps(HELP_SCHEMA))
    registered = dict(_registered(typer.main.get_command(app)))
    assert sorted(registered) == sorted(command_names())
    for entry in schema["commands"]:
        command = registered[entry["name"]]
        options = set()
        for param in command.params:
            options.update(getattr(param, "opts", []))
            options.update(getattr(param, "secondary_opts", []))
        for flag in entry["flags"]:
            for name in flag["name"].split("/"):
                assert name in options, (entry["name"], name)


def test_config_set_show_and_path(cli):
    invoke, _, config = cli

    assert invoke("config", "path").output.strip() == str(config)
    set_result = invoke("config", "set", "defaults.limit", "5")
    shown = invoke("--json", "config", "show")

    assert set_result.exit_code == 0
    assert f"Set defaults.limit in {config}" in set_result.output
    data = json.loads(shown.stdout)["data"]
    assert data["config"]["defaults"]["limit"] == 5
    assert data["config"]["bridge"]["email"] == "me@example.com"


def test_config_set_unknown_key_fails(cli):
    invoke, _, _ = cli

    result = invoke("config", "set", "bridge.nope", "1")

    assert result.exit_code == 1
    assert "Unknown configuration key: bridge.nope" in result.output


def test_broken_config_file_fails_cleanly(cli):
    invoke, _, config = cli
    config.write_text("bridge: [unclosed\n")

    result = invoke("mail", "list")

    assert result.exit_code == 1
    assert "Error: Invalid YAML" in result.output


def test_mail_list_newest_first(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("mail", "list")

    assert result.exit_code == 0
    lines = result.output.strip().splitlines()
    assert [line.split()[0] for line in lines] == ["3", "2", "1"]
    assert "Message 3" in lines[0]


def test_mail_read_shows_headers_body_and_attachments(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("mail", "read", "2", "--attachments")

    assert result.exit_code == 0
    assert "From: bob@example.com" in result.output
    assert "Subject: Message 2" in result.output
    assert "body text 2" in result.output
    assert "[0] a.pdf (application/pdf" in result.output
    assert "\\Seen" in backend.records("INBOX")[1].flags


def test_invalid_identifier_never_connects(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("mail", "delete", "1", "2", "x")

    assert result.exit_code == 1
    assert "invalid message ID: 'x'" in result.output
    assert backend.calls == []


def test_json_errors_are_reported_on_stdout(cli):
    invoke, backend, _ = cli

    result = invoke("--json", "mail", "read", "abc")

    assert result.exit_code == 1
    assert _last_json(result) == {"success": False, "error": "invalid message ID: 'abc'"}


def test_query_without_match_succeeds(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("mail", "delete", "--query", "from:nobody")

    assert result.exit_code == 0
    assert "No messages matched the query" in result.output


def test_move_and_flag(cli):
    invoke, backend, _ = cli
    _seed(backend)

    flagged = invoke("mail", "flag", "1", "--star")
    moved = invoke("mail", "move", "1", "2", "-d", "Archive")

    assert flagged.exit_code == 0
    assert "1 message(s) updated" in flagged.output
    assert moved.exit_code == 0
    assert "2 message(s) moved to Archive" in moved.output
    assert [r.parsed["Subject"] for r in backend.records("Archive")] == ["Message 1", "Message 2"]
    assert "\\Flagged" in backend.records("Archive")[0].flags
    assert len(backend.records("INBOX")) == 1


def test_delete_flags_for_trash_unless_permanent(cli):
    invoke, backend, _ = cli
    _seed(backend)

    trashed = invoke("mail", "delete", "3")
    flagged = "\\Deleted" in backend.records("INBOX")[2].flags
    removed = invoke("mail", "delete", "1", "--permanent")

    assert "1 message(s) moved to trash" in trashed.output
    assert flagged
    assert "1 message(s) permanently deleted" in removed.output
    assert [r.parsed["Subject"] for r in backend.records("INBOX")] == ["Message 2"]


def test_search_json(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("--json", "mail", "search", "--from", "bob", "--or", "--subject", "Message 3")

    assert result.exit_code == 0
    payload = json.loads(result.stdout)
    assert payload["success"] is True
    assert [row["seq_num"] for row in payload["data"]] == [3, 2]
    assert payload["data"][1]["from"] == "bob@example.com"


def test_send_with_idempotency_key_delivers_once(cli):
    invoke, _, config = cli

    first = invoke("mail", "send", "--to", "bob@example.com", "-s", "Hi", "-b", "Body", "--idempotency-key", "k1")
    second = invoke("mail", "send", "--to", "bob@example.com", "-s", "Hi", "-b", "Body", "--idempotency-key", "k1")

    assert first.exit_code == 0
    assert "Message sent to bob@example.com" in first.output
    assert second.exit_code == 0
    assert "Duplicate suppressed" in second.output
    assert len(FakeSMTP.instances) == 1
    assert (config.parent / "idempotency.json").exists()


def test_send_reads_body_from_stdin(cli):
    invoke, _, _ = cli

    result = invoke("mail", "send", "--to", "bob@example.com", "-s", "Piped", input="from stdin\n")

    assert result.exit_code == 0
    (_, _, payload) = FakeSMTP.instances[0].sent[0]
    assert b"from stdin" in payload


def test_reply_quotes_and_addresses_sender(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("mail", "reply", "2", "-b", "Thanks")

    assert result.exit_code == 0
    (sender, recipients, payload) = FakeSMTP.instances[0].sent[0]
    assert sender == "me@example.com"
    assert recipients == ["bob@example.com"]
    assert b"Subject: Re: Message 2" in payload
    assert b"> body text 2" in payload


def test_download_writes_attachment(cli, tmp_path):
    invoke, backend, _ = cli
    _seed(backend)
    out = tmp_path / "downloads"
    out.mkdir()

    result = invoke("mail", "download", "2", "0", "-o", str(out))

    assert result.exit_code == 0
    assert (out / "a.pdf").read_bytes() == b"%PDF data"


def test_missing_password_is_reported(cli, monkeypatch):
    invoke, backend, _ = cli
    monkeypatch.delenv("BRIDGEMAIL_PASSWORD")

    result = invoke("mail", "list")

    assert result.exit_code == 1
    assert "BRIDGEMAIL_PASSWORD" in result.output
    assert backend.calls == []


def test_drafts_labels_and_mailboxes(cli):
    invoke, backend, _ = cli
    _seed(backend)
    backend.mailboxes["Labels/Work"] = []

    created = invoke("mail", "draft", "create", "--to", "bob@example.com", "-s", "Plan", "-b", "Draft")
    drafts = invoke("mail", "draft", "list")
    labelled = invoke("mail", "label", "add", "1", "-l", "Work")
    labels = invoke("mail", "label", "list")
    boxes = invoke("mailbox", "list")

    assert created.exit_code == 0
    assert created.output.startswith("Draft created (UID ")
    assert "Plan" in drafts.output
    assert "1 message(s) labelled to Labels/Work" in labelled.output
    assert labels.output.strip() == "Work"
    assert "Labels/Work" in boxes.output.split()


def test_console_module_runs_as_script():
    env = dict(os.environ)
    env["PYTHONPATH"] = f"{PROJECT_ROOT / 'bridgemail' / 'src'}{os.pathsep}{env.get('PYTHONPATH', '')}"

    result = subprocess.run(
        [sys.executable, "-m", "bridgemail.cli", "version"],
        capture_output=True,
        text=True,
        env=env,
        check=False,
    )

    assert result.returncode == 0
    assert result.stdout.strip() == "bridgemail 0.1.0"


class _Socket:
    def close(self):
        pass


@pytest.fixture
def reachable(monkeypatch):
    monkeypatch.setattr("bridgemail.health.socket.create_connection", lambda address, timeout: _Socket())


def test_query_without_filters_is_refused(cli):
    invoke, backend, _ = cli
    _seed(backend)

    result = invoke("mail", "delete", "--query", "from:", "--permanent")

    assert result.exit_code == 1
    assert "query has no filters" in result.output
    assert len(backend.records("INBOX")) == 3


def test_config_validate_logs_in(cli):
    invoke, backend, _ = cli

    result = invoke("config", "validate")

    assert result.exit_code == 0
    assert "Connection successful: logged in to the bridge as me@example.com" in result.output
    assert backend.logged_in and backend.logged_out


def test_config_validate_reports_login_failure(cli):
    invoke, backend, _ = cli
    backend.fail_on.add("login")

    result = invoke("config", "validate")

    assert result.exit_code == 1
    assert "login failed" in result.output


def test_config_doctor_json_when_healthy(cli, reachable):
    invoke, _, _ = cli

    result = invoke("--json", "config", "doctor")

    assert result.exit_code == 0
    data = json.loads(result.stdout)["data"]
    assert data["healthy"] is True
    assert {check["status"] for check in data["checks"]} == {"ok"}


def test_config_doctor_runs_on_a_broken_file(cli, reachable):
    invoke, _, config = cli
    config.write_text("bridge: [unclosed\n")

    doctor = invoke("config", "doctor")
    show = invoke("config", "show")

    assert doctor.exit_code == 1
    assert "[OK] Config file exists" in doctor.output
    assert "[FAIL] Config valid - Invalid YAML" in doctor.output
    assert show.exit_code == 1
    assert "Invalid YAML" in show.output
