"""Static command schema printed by ``bridgemail --help-json``.

What:
  Describe every command, its positional arguments, and its flags as plain
  data for tools that drive the CLI programmatically.

Why:
  A fixed table is explicit and reviewable; a test compares it with the
  commands registered on the Typer application so the two cannot drift.

Interfaces:
  :data:`HELP_SCHEMA`, :func:`command_names`.
"""
from __future__ import annotations

from typing import Any, Dict, List

_MAILBOX = {"name": "--mailbox", "short": "-m", "type": "string", "description": "Mailbox name (default from config)"}
_IDEMPOTENCY = {
    "name": "--idempotency-key",
    "type": "string",
    "description": "Unique key to prevent duplicate sends within 24 hours",
}
_ATTACH = {"name": "--attach", "short": "-a", "type": "[]string", "description": "Attachment path (repeatable)"}
_QUERY = {
    "name": "--query",
    "type": "string",
    "description": "Select messages by query: from:, subject:, body: prefixes and free words",
}


def _arg(name: str, kind: str, description: str, required: bool = True) -> Dict[str, Any]:
    return {"name": name, "type": kind, "required": required, "description": description}


def _flag(name: str, kind: str, description: str, short: str = "") -> Dict[str, Any]:
    entry = {"name": name, "type": kind, "description": description}
    if short:
        entry["short"] = short
    return entry


COMMANDS: List[Dict[str, Any]] = [
    {
        "name": "version",
        "description": "Show version information",
        "args": [],
        "flags": [],
        "examples": ["bridgemail version"],
    },
    {
        "name": "mail list",
        "description": "List messages in a mailbox, newest first",
        "args": [],
        "flags": [
            _MAILBOX,
            _flag("--limit", "int", "Number of messages", "-n"),
            _flag("--offset", "int", "Skip the N newest messages"),
            _flag("--page", "int", "Page number (1-based, combines with limit)", "-p"),
            _flag("--unread", "bool", "Only show unread messages"),
        ],
        "examples": ["bridgemail mail list -n 10", "bridgemail mail list --unread --json"],
    },
    {
        "name": "mail read",
        "description": "Read a message",
        "args": [_arg("id", "string", "Message sequence number")],
        "flags": [
            _MAILBOX,
            _flag("--raw", "bool", "Show the raw message"),
            _flag("--headers", "bool", "Include all headers"),
            _flag("--attachments", "bool", "List attachments"),
            _flag("--html", "bool", "Output the HTML body instead of plain text"),
        ],
        "examples": ["bridgemail mail read 42", "bridgemail mail read 42 --attachments"],
    },
    {
        "name": "mail send",
        "description": "Compose and send a message",
        "args": [],
        "flags": [
            _flag("--to", "[]string", "Recipient (repeatable, required)", "-t"),
            _flag("--cc", "[]string", "CC recipient (repeatable)"),
            _flag("--bcc", "[]string", "BCC recipient (repeatable)"),
            _flag("--subject", "string", "Subject line", "-s"),
            _flag("--body", "string", "Body text (or use stdin)", "-b"),
            _ATTACH,
            _IDEMPOTENCY,
        ],
        "examples": [
            "bridgemail mail send -t bob@example.com -s Hello -b 'Hi Bob'",
            "echo body | bridgemail mail send -t bob@example.com -s Report -a report.pdf",
        ],
    },
    {
        "name": "mail reply",
        "description": "Reply to a message",
        "args": [_arg("id", "string", "Message to reply to")],
        "flags": [
            _MAILBOX,
            _flag("--all", "bool", "Reply to all recipients"),
            _flag("--body", "string", "Reply body (or use stdin)", "-b"),
            _ATTACH,
            _IDEMPOTENCY,
        ],
        "examples": ["bridgemail mail reply 42 -b 'Thanks!'", "bridgemail mail reply 42 --all -b 'Noted'"],
    },
    {
        "name": "mail forward",
        "description": "Forward a message",
        "args": [_arg("id", "string", "Message to forward")],
        "flags": [
            _flag("--to", "[]string", "Recipient (repeatable, required)", "-t"),
            _flag("--cc", "[]string", "CC recipient (repeatable)"),
            _MAILBOX,
            _flag("--body", "string", "Additional note", "-b"),
            _ATTACH,
            _IDEMPOTENCY,
        ],
        "examples": ["bridgemail mail forward 42 -t carol@example.com -b FYI"],
    },
    {
        "name": "mail delete",
        "description": "Delete messages",
        "args": [_arg("ids", "[]string", "Message ID(s) to delete", required=False)],
        "flags": [_QUERY, _MAILBOX, _flag("--permanent", "bool", "Skip trash, delete permanently")],
        "examples": ["bridgemail mail delete 3 4 5", "bridgemail mail delete --query 'from:spam@example.com'"],
    },
    {
        "name": "mail move",
        "description": "Move messages to another mailbox",
        "args": [_arg("ids", "[]string", "Message ID(s) to move", required=False)],
        "flags": [
            _flag("--destination", "string", "Destination mailbox (required)", "-d"),
            _QUERY,
            _MAILBOX,
        ],
        "examples": ["bridgemail mail move 7 -d Archive", "bridgemail mail move --query 'subject:newsletter' -d News"],
    },
    {
        "name": "mail flag",
        "description": "Change read and star flags",
        "args": [_arg("ids", "[]string", "Message ID(s)", required=False)],
        "flags": [
            _QUERY,
            _MAILBOX,
            _flag("--read", "bool", "Mark as read"),
            _flag("--unread", "bool", "Mark as unread"),
            _flag("--star", "bool", "Add star"),
            _flag("--unstar", "bool", "Remove star"),
        ],
        "examples": ["bridgemail mail flag 5 --read --star"],
    },
    {
        "name": "mail search",
        "description": "Search messages",
        "args": [_arg("query", "string", "Text searched in message bodies", required=False)],
        "flags": [
            _MAILBOX,
            _flag("--from", "string", "Filter by sender"),
            _flag("--to", "string", "Filter by recipient"),
            _flag("--subject", "string", "Filter by subject"),
            _flag("--body", "string", "Search in message body"),
            _flag("--since", "string", "Messages since date (YYYY-MM-DD)"),
            _flag("--before", "string", "Messages before date (YYYY-MM-DD)"),
            _flag("--has-attachments", "bool", "Only messages with attachments"),
            _flag("--larger-than", "string", "Messages larger than size, e.g. 1M"),
            _flag("--smaller-than", "string", "Messages smaller than size, e.g. 10K"),
            _flag("--or", "bool", "Combine filters with OR instead of AND"),
            _flag("--not", "bool", "Negate the whole search"),
            _flag("--limit", "int", "Maximum results", "-n"),
        ],
        "examples": [
            "bridgemail mail search invoice --since 2024-01-01",
            "bridgemail mail search --from alice --subject report --or",
        ],
    },
    {
        "name": "mail download",
        "description": "Download one attachment",
        "args": [
            _arg("id", "string", "Message sequence number"),
            _arg("index", "int", "Attachment index (0-based)"),
        ],
        "flags": [_flag("--out", "string", "Output file or directory", "-o"), _MAILBOX],
        "examples": ["bridgemail mail download 42 0", "bridgemail mail download 42 1 -o ~/Downloads"],
    },
    {
        "name": "mail watch",
        "description": "Watch a mailbox for new messages",
        "args": [],
        "flags": [
            _MAILBOX,
            _flag("--interval", "int", "Poll interval in seconds", "-i"),
            _flag("--unread/--all", "bool", "Only notify for unread messages (default)"),
            _flag("--exec", "string", "Command to run per new message ({} is the message ID)", "-e"),
            _flag("--once", "bool", "Exit after the first new message"),
        ],
        "examples": ["bridgemail mail watch -i 60", "bridgemail mail watch --once --exec 'notify-send {}'"],
    },
    {
        "name": "mail draft list",
        "description": "List drafts",
        "args": [],
        "flags": [_flag("--limit", "int", "Number of drafts", "-n")],
        "examples": ["bridgemail mail draft list"],
    },
    {
        "name": "mail draft create",
        "description": "Create a draft",
        "args": [],
        "flags": [
            _flag("--to", "[]string", "Recipient (repeatable)", "-t"),
            _flag("--cc", "[]string", "CC recipient (repeatable)"),
            _flag("--subject", "string", "Subject line", "-s"),
            _flag("--body", "string", "Body text", "-b"),
            _ATTACH,
        ],
        "examples": ["bridgemail mail draft create -t bob@example.com -s Plan -b 'First notes'"],
    },
    {
        "name": "mail draft edit",
        "description": "Edit a draft, keeping fields that are not given",
        "args": [_arg("id", "string", "Draft ID to edit")],
        "flags": [
            _flag("--to", "[]string", "Recipient (repeatable)", "-t"),
            _flag("--cc", "[]string", "CC recipient (repeatable)"),
            _flag("--subject", "string", "Subject line", "-s"),
            _flag("--body", "string", "Body text", "-b"),
            _ATTACH,
        ],
        "examples": ["bridgemail mail draft edit 2 -s 'New subject'"],
    },
    {
        "name": "mail draft delete",
        "description": "Delete drafts",
        "args": [_arg("ids", "[]string", "Draft ID(s) to delete")],
        "flags": [],
        "examples": ["bridgemail mail draft delete 2"],
    },
    {
        "name": "mail label list",
        "description": "List labels",
        "args": [],
        "flags": [],
        "examples": ["bridgemail mail label list"],
    },
    {
        "name": "mail label add",
        "description": "Add a label to messages",
        "args": [_arg("ids", "[]string", "Message ID(s) to label")],
        "flags": [_flag("--label", "string", "Label name (required)", "-l"), _MAILBOX],
        "examples": ["bridgemail mail label add 4 5 -l Important"],
    },
    {
        "name": "mail label remove",
        "description": "Remove a label from messages",
        "args": [_arg("ids", "[]string", "Message ID(s) within the label")],
        "flags": [_flag("--label", "string", "Label name (required)", "-l")],
        "examples": ["bridgemail mail label remove 1 -l Important"],
    },
    {
        "name": "mailbox list",
        "description": "List mailboxes",
        "args": [],
        "flags": [],
        "examples": ["bridgemail mailbox list"],
    },
    {
        "name": "mailbox create",
        "description": "Create a mailbox",
        "args": [_arg("name", "string", "Mailbox name")],
        "flags": [],
        "examples": ["bridgemail mailbox create Folders/Receipts"],
    },
    {
        "name": "mailbox delete",
        "description": "Delete a mailbox",
        "args": [_arg("name", "string", "Mailbox name")],
        "flags": [],
        "examples": ["bridgemail mailbox delete Folders/Receipts"],
    },
    {
        "name": "config show",
        "description": "Display the active configuration",
        "args": [],
        "flags": [],
        "examples": ["bridgemail config show"],
    },
    {
        "name": "config set",
        "description": "Set a configuration value and save the file",
        "args": [
            _arg("key", "string", "Dotted key, e.g. bridge.email or defaults.limit"),
            _arg("value", "string", "New value"),
        ],
        "flags": [],
        "examples": ["bridgemail config set bridge.email me@example.com"],
    },
    {
        "name": "config path",
        "description": "Print the configuration file location",
        "args": [],
        "flags": [],
        "examples": ["bridgemail config path"],
    },
    {
        "name": "config validate",
        "description": "Connect and log in to the bridge to check the settings",
        "args": [],
        "flags": [],
        "examples": ["bridgemail config validate"],
    },
    {
        "name": "config doctor",
        "description": "Check the config file, password, ports and logins",
        "args": [],
        "flags": [],
        "examples": ["bridgemail config doctor", "bridgemail --json config doctor"],
    },
]

GLOBAL_FLAGS: List[Dict[str, Any]] = [
    _flag("--json", "bool", "Emit JSON instead of text"),
    _flag("--config", "string", "Configuration file path", "-c"),
    _flag("--verbose", "bool", "Log protocol steps to stderr", "-v"),
    _flag("--quiet", "bool", "Only log errors", "-q"),
    _flag("--help-json", "bool", "Print the command schema as JSON and exit"),
]

HELP_SCHEMA: Dict[str, Any] = {
    "name": "bridgemail",
    "description": "Command-line mail client for a local IMAP/SMTP bridge",
    "global_flags": GLOBAL_FLAGS,
    "commands": COMMANDS,
}


def command_names() -> List[str]:
    return [command["name"] for command in COMMANDS]


__all__ = ["COMMANDS", "GLOBAL_FLAGS", "HELP_SCHEMA", "command_names"]
