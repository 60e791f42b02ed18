"""bridgemail command-line interface.

What:
  Provide the Typer application behind the ``bridgemail`` console script:
  ``mail`` (list, read, send, reply, forward, delete, move, flag, search,
  download, watch, draft, label), ``mailbox``, ``config`` and ``version``.

Why:
  Commands only translate options into calls on the mailbox operations and
  render the results, so the behaviour users depend on lives in testable
  modules and the CLI stays a thin, predictable shell for scripts.

How:
  The root callback loads configuration once, builds the logger from
  ``--verbose``/``--quiet``, and stores an :class:`AppContext` on
  ``ctx.obj``. Each command opens at most one IMAP session through
  :mod:`bridgemail._wiring`, and :func:`_guard` converts
  :class:`BridgeMailError` into ``Error: ...`` on stderr (or a JSON error
  object with ``--json``) and exit code ``1``.

Interfaces:
  ``app`` (Typer application), :func:`main`.

Invariants & Safety:
  - Exit codes follow shell expectations (``0`` success, ``1`` failure).
  - Results go to stdout; diagnostics go to stderr.
  - Invalid identifiers are rejected before any connection is opened.
"""
from __future__ import annotations

import contextlib
import json
import sys
import threading
from pathlib import Path
from typing import Any, Iterator, List, Optional

import typer
import yaml

from . import __version__
from ._wiring import AppContext, open_imap, read_body, send_once, sender_address
from .config.loader import LoadedConfig, load_config, resolve_config_path, save_config, set_config_value
from .config.schema import AppConfig
from .core.body import display_text
from .core.compose import OutgoingMessage
from .core.models import BatchResult, MessageSummary, SendResult
from .core.outbound import build_forward, build_reply, format_size
from .core.search import COMBINE_AND, COMBINE_OR, SearchOptions
from .core.sequence import build_sequence_set
from .errors import BridgeMailError, ValidationError
from .health import run_doctor
from .help_schema import HELP_SCHEMA
from .imap import attachments as attachment_ops
from .imap import drafts as draft_ops
from .imap import labels as label_ops
from .imap import mailboxes as mailbox_ops
from .imap import messages as message_ops
from .imap.watch import WatchOptions, install_stop_handlers, watch_mailbox
from .utils.logging import get_logger, level_for_flags

app = typer.Typer(help="Command-line mail client for a local IMAP/SMTP bridge", no_args_is_help=True)
mail_app = typer.Typer(help="Read, send and organise mail", no_args_is_help=True)
draft_app = typer.Typer(help="Manage drafts", no_args_is_help=True)
label_app = typer.Typer(help="Manage message labels", no_args_is_help=True)
mailbox_app = typer.Typer(help="Manage mailboxes", no_args_is_help=True)
config_app = typer.Typer(help="Inspect and change configuration", no_args_is_help=True)

app.add_typer(mail_app, name="mail")
app.add_typer(mailbox_app, name="mailbox")
app.add_typer(config_app, name="config")
mail_app.add_typer(draft_app, name="draft")
mail_app.add_typer(label_app, name="label")


def _print_help_schema(value: bool) -> None:
    if value:
        typer.echo(json.dumps(HELP_SCHEMA, indent=2))
        raise typer.Exit(code=0)


@app.callback()
def root(
    ctx: typer.Context,
    json_output: bool = typer.Option(False, "--json", help="Emit JSON instead of text"),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Configuration file path"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log protocol steps to stderr"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only log errors"),
    help_json: bool = typer.Option(
        False,
        "--help-json",
        is_eager=True,
        expose_value=False,
        callback=_print_help_schema,
        help="Print the command schema as JSON and exit",
    ),
) -> None:
    """Load configuration and prepare the per-invocation context."""

    logger = get_logger("bridgemail.cli", level=level_for_flags(verbose=verbose, quiet=quiet))
    config_error = None
    try:
        loaded = load_config(config_path)
    except BridgeMailError as exc:
        if ctx.invoked_subcommand != "config":
            _fail(json_output, str(exc))
        location, _ = resolve_config_path(config_path)
        loaded = LoadedConfig(location, AppConfig(), True)
        config_error = str(exc)
    ctx.obj = AppContext(
        loaded=loaded,
        logger=logger,
        json_output=json_output or loaded.config.defaults.format == "json",
        config_error=config_error,
    )


def _fail(json_output: bool, message: str) -> None:
    if json_output:
        typer.echo(json.dumps({"success": False, "error": message}))
    else:
        typer.echo(f"Error: {message}", err=True)
    raise typer.Exit(code=1)


@contextlib.contextmanager
def _guard(app_ctx: AppContext, command: str) -> Iterator[None]:
    try:
        yield
    except BridgeMailError as exc:
        app_ctx.logger.error("command_failed", command=command, error=str(exc))
        _fail(app_ctx.json_output, str(exc))


def _emit(app_ctx: AppContext, data: Any, lines: List[str]) -> None:
    if app_ctx.json_output:
        typer.echo(json.dumps({"success": True, "data": data}, indent=2, default=str))
        return
    for line in lines:
        typer.echo(line)


def _summary_line(row: MessageSummary) -> str:
    marker = (" " if row.seen else "*") + ("!" if row.flagged else " ")
    return f"{row.seq_num:>6} {marker} {row.date:<16}  {row.from_[:28]:<28}  {row.subject}"


def _emit_summaries(app_ctx: AppContext, rows: List[MessageSummary], empty: str) -> None:
    _emit(app_ctx, [row.to_dict() for row in rows], [_summary_line(row) for row in rows] or [empty])


def _emit_batch(app_ctx: AppContext, result: BatchResult, verb: str) -> None:
    if not result.matched:
        _emit(app_ctx, result.to_dict(), [message_ops.NO_MATCH])
        return
    target = f" to {result.destination}" if result.destination else ""
    _emit(app_ctx, result.to_dict(), [f"{len(result.messages)} message(s) {verb}{target}"])


def _emit_send(app_ctx: AppContext, result: SendResult) -> None:
    if result.duplicate:
        line = "Duplicate suppressed: a message with this idempotency key was already sent"
    else:
        line = f"Message sent to {', '.join(result.recipients)}"
    _emit(app_ctx, {"status": result.status, "recipients": result.recipients, "subject": result.subject}, [line])


def _mailbox(app_ctx: AppContext, mailbox: Optional[str]) -> str:
    return mailbox or app_ctx.config.defaults.mailbox


def _limit(app_ctx: AppContext, limit: Optional[int]) -> int:
    return limit if limit is not None else app_ctx.config.defaults.limit


@app.command("version")
def version(ctx: typer.Context) -> None:
    """Show version information."""

    _emit(ctx.obj, {"version": __version__}, [f"bridgemail {__version__}"])


@mail_app.command("list")
def mail_list(
    ctx: typer.Context,
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox name"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of messages"),
    offset: int = typer.Option(0, "--offset", help="Skip the N newest messages"),
    page: int = typer.Option(0, "--page", "-p", help="Page number (1-based, combines with limit)"),
    unread: bool = typer.Option(False, "--unread", help="Only show unread messages"),
) -> None:
    """List messages in a mailbox, newest first."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail list"):
        count = _limit(app_ctx, limit)
        skip = offset + (page - 1) * count if page > 0 else offset
        with open_imap(app_ctx) as session:
            rows = message_ops.list_messages(
                session, _mailbox(app_ctx, mailbox), limit=count, offset=skip, unread_only=unread
            )
        _emit_summaries(app_ctx, rows, "No messages")


@mail_app.command("read")
def mail_read(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message sequence number"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox name"),
    raw: bool = typer.Option(False, "--raw", help="Show the raw message"),
    headers: bool = typer.Option(False, "--headers", help="Include all headers"),
    attachments: bool = typer.Option(False, "--attachments", help="List attachments"),
    html: bool = typer.Option(False, "--html", help="Output the HTML body instead of plain text"),
) -> None:
    """Read a message."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail read"):
        build_sequence_set([message_id])
        folder = _mailbox(app_ctx, mailbox)
        with open_imap(app_ctx) as session:
            message = message_ops.get_message(session, folder, message_id)
            found = attachment_ops.get_attachments(session, folder, message_id) if attachments else []
        raw_text = message.raw.decode("utf-8", errors="replace")
        body = display_text(message.raw, prefer_html=html, logger=app_ctx.logger)
        data = {
            "uid": message.uid,
            "seq_num": message.seq_num,
            "message_id": message.message_id,
            "from": message.from_,
            "to": message.to,
            "cc": message.cc,
            "subject": message.subject,
            "date": message.date,
            "flags": list(message.flags),
            "body": raw_text if raw else body,
            "attachments": [item.to_dict() for item in found],
        }
        if raw:
            _emit(app_ctx, data, [raw_text])
            return
        lines = [f"From: {message.from_}", f"To: {', '.join(message.to)}"]
        if message.cc:
            lines.append(f"Cc: {', '.join(message.cc)}")
        lines.extend([f"Date: {message.date_text}", f"Subject: {message.subject}"])
        if headers:
            head = raw_text.replace("\r\n", "\n").split("\n\n", 1)[0]
            lines.extend(["", head])
        lines.extend(["", body])
        if found:
            lines.append("")
            lines.append("Attachments:")
            lines.extend(f"  [{item.index}] {item.filename} ({item.content_type}, {format_size(item.size)})" for item in found)
        _emit(app_ctx, data, lines)


@mail_app.command("send")
def mail_send(
    ctx: typer.Context,
    to: List[str] = typer.Option(..., "--to", "-t", help="Recipient (repeatable)"),
    cc: Optional[List[str]] = typer.Option(None, "--cc", help="CC recipient (repeatable)"),
    bcc: Optional[List[str]] = typer.Option(None, "--bcc", help="BCC recipient (repeatable)"),
    subject: str = typer.Option("", "--subject", "-s", help="Subject line"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Body text (or use stdin)"),
    attach: Optional[List[str]] = typer.Option(None, "--attach", "-a", help="Attachment path (repeatable)"),
    idempotency_key: Optional[str] = typer.Option(None, "--idempotency-key", help="Unique key to prevent duplicate sends"),
) -> None:
    """Compose and send a message."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail send"):
        message = OutgoingMessage(
            from_=sender_address(app_ctx),
            to=tuple(to),
            cc=tuple(cc or ()),
            bcc=tuple(bcc or ()),
            subject=subject,
            body=read_body(body, sys.stdin),
            attachments=tuple(attach or ()),
        )
        _emit_send(app_ctx, send_once(app_ctx, message, idempotency_key=idempotency_key))


@mail_app.command("reply")
def mail_reply(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message to reply to"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox name"),
    reply_all: bool = typer.Option(False, "--all", help="Reply to all recipients"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Reply body (or use stdin)"),
    attach: Optional[List[str]] = typer.Option(None, "--attach", "-a", help="Attachment path (repeatable)"),
    idempotency_key: Optional[str] = typer.Option(None, "--idempotency-key", help="Unique key to prevent duplicate sends"),
) -> None:
    """Reply to a message."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail reply"):
        build_sequence_set([message_id])
        text = read_body(body, sys.stdin)
        with open_imap(app_ctx) as session:
            original = message_ops.get_message(session, _mailbox(app_ctx, mailbox), message_id, peek=True)
        reply = build_reply(
            original, sender=sender_address(app_ctx), body=text, reply_all=reply_all, attachments=attach or ()
        )
        _emit_send(app_ctx, send_once(app_ctx, reply, idempotency_key=idempotency_key))


@mail_app.command("forward")
def mail_forward(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message to forward"),
    to: List[str] = typer.Option(..., "--to", "-t", help="Recipient (repeatable)"),
    cc: Optional[List[str]] = typer.Option(None, "--cc", help="CC recipient (repeatable)"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox name"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Additional note"),
    attach: Optional[List[str]] = typer.Option(None, "--attach", "-a", help="Additional attachment (repeatable)"),
    idempotency_key: Optional[str] = typer.Option(None, "--idempotency-key", help="Unique key to prevent duplicate sends"),
) -> None:
    """Forward a message."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail forward"):
        build_sequence_set([message_id])
        with open_imap(app_ctx) as session:
            original = message_ops.get_message(session, _mailbox(app_ctx, mailbox), message_id, peek=True)
        forward = build_forward(
            original, sender=sender_address(app_ctx), to=to, cc=cc or (), note=body or "", attachments=attach or ()
        )
        _emit_send(app_ctx, send_once(app_ctx, forward, idempotency_key=idempotency_key))


@mail_app.command("delete")
def mail_delete(
    ctx: typer.Context,
    ids: Optional[List[str]] = typer.Argument(None, help="Message ID(s) to delete"),
    query: Optional[str] = typer.Option(None, "--query", help="Delete messages matching a query, e.g. 'from:spam@example.com'"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox to operate on"),
    permanent: bool = typer.Option(False, "--permanent", help="Skip trash, delete permanently"),
) -> None:
    """Delete messages."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail delete"):
        identifiers = list(ids or [])
        if identifiers:
            build_sequence_set(identifiers)
        with open_imap(app_ctx) as session:
            result = message_ops.delete_messages(
                session, _mailbox(app_ctx, mailbox), ids=identifiers, query=query, permanent=permanent,
                logger=app_ctx.logger,
            )
        _emit_batch(app_ctx, result, "permanently deleted" if permanent else "moved to trash")


@mail_app.command("move")
def mail_move(
    ctx: typer.Context,
    ids: Optional[List[str]] = typer.Argument(None, help="Message ID(s) to move"),
    destination: str = typer.Option(..., "--destination", "-d", help="Destination mailbox"),
    query: Optional[str] = typer.Option(None, "--query", help="Move messages matching a query, e.g. 'subject:newsletter'"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Source mailbox"),
) -> None:
    """Move messages to another mailbox."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail move"):
        identifiers = list(ids or [])
        if identifiers:
            build_sequence_set(identifiers)
        with open_imap(app_ctx) as session:
            result = message_ops.move_messages(
                session, _mailbox(app_ctx, mailbox), destination, ids=identifiers, query=query,
                logger=app_ctx.logger,
            )
        _emit_batch(app_ctx, result, "moved")


@mail_app.command("flag")
def mail_flag(
    ctx: typer.Context,
    ids: Optional[List[str]] = typer.Argument(None, help="Message ID(s)"),
    query: Optional[str] = typer.Option(None, "--query", help="Flag messages matching a query"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox to operate on"),
    read: bool = typer.Option(False, "--read", help="Mark as read"),
    unread: bool = typer.Option(False, "--unread", help="Mark as unread"),
    star: bool = typer.Option(False, "--star", help="Add star"),
    unstar: bool = typer.Option(False, "--unstar", help="Remove star"),
) -> None:
    """Change read and star flags."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail flag"):
        change = message_ops.FlagChange(read=read, unread=unread, star=star, unstar=unstar)
        change.validate()
        identifiers = list(ids or [])
        if identifiers:
            build_sequence_set(identifiers)
        with open_imap(app_ctx) as session:
            result = message_ops.flag_messages(
                session, _mailbox(app_ctx, mailbox), change, ids=identifiers, query=query,
                logger=app_ctx.logger,
            )
        _emit_batch(app_ctx, result, "updated")


@mail_app.command("search")
def mail_search(
    ctx: typer.Context,
    query: Optional[str] = typer.Argument(None, help="Text searched in message bodies"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox to search"),
    from_: Optional[str] = typer.Option(None, "--from", help="Filter by sender"),
    to: Optional[str] = typer.Option(None, "--to", help="Filter by recipient"),
    subject: Optional[str] = typer.Option(None, "--subject", help="Filter by subject"),
    body: Optional[str] = typer.Option(None, "--body", help="Search in message body"),
    since: Optional[str] = typer.Option(None, "--since", help="Messages since date (YYYY-MM-DD)"),
    before: Optional[str] = typer.Option(None, "--before", help="Messages before date (YYYY-MM-DD)"),
    has_attachments: bool = typer.Option(False, "--has-attachments", help="Only messages with attachments"),
    larger_than: Optional[str] = typer.Option(None, "--larger-than", help="Messages larger than size, e.g. 1M"),
    smaller_than: Optional[str] = typer.Option(None, "--smaller-than", help="Messages smaller than size, e.g. 10K"),
    use_or: bool = typer.Option(False, "--or", help="Combine filters with OR instead of AND"),
    negate: bool = typer.Option(False, "--not", help="Negate the whole search"),
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Maximum results"),
) -> None:
    """Search messages."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail search"):
        options = SearchOptions(
            query=query or "",
            from_=from_ or "",
            to=to or "",
            subject=subject or "",
            body=body or "",
            since=since or "",
            before=before or "",
            has_attachments=has_attachments,
            larger_than=larger_than or "",
            smaller_than=smaller_than or "",
            combinator=COMBINE_OR if use_or else COMBINE_AND,
            negate=negate,
        )
        with open_imap(app_ctx) as session:
            rows = message_ops.search_messages(
                session, _mailbox(app_ctx, mailbox), options, limit=_limit(app_ctx, limit)
            )
        _emit_summaries(app_ctx, rows, "No messages found")


@mail_app.command("download")
def mail_download(
    ctx: typer.Context,
    message_id: str = typer.Argument(..., help="Message sequence number"),
    index: int = typer.Argument(..., help="Attachment index (0-based)"),
    out: Optional[Path] = typer.Option(None, "--out", "-o", help="Output file or directory"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox name"),
) -> None:
    """Download one attachment."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail download"):
        build_sequence_set([message_id])
        if index < 0:
            raise ValidationError("attachment index must not be negative")
        with open_imap(app_ctx) as session:
            attachment = attachment_ops.download_attachment(
                session, _mailbox(app_ctx, mailbox), message_id, index, logger=app_ctx.logger
            )
        if out is None:
            saved = attachment_ops.save_attachment(attachment, Path.cwd())
        elif out.is_dir():
            saved = attachment_ops.save_attachment(attachment, out)
        else:
            saved = attachment_ops.save_attachment(attachment, out.parent, out.name)
        data = {**attachment.to_dict(), "path": str(saved)}
        _emit(app_ctx, data, [f"Saved {saved} ({format_size(len(attachment.data or b''))})"])


@mail_app.command("watch")
def mail_watch(
    ctx: typer.Context,
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Mailbox to watch"),
    interval: Optional[int] = typer.Option(None, "--interval", "-i", min=1, help="Poll interval in seconds"),
    unread: bool = typer.Option(True, "--unread/--all", help="Only notify for unread messages"),
    exec_command: Optional[str] = typer.Option(None, "--exec", "-e", help="Command to run per new message ({} is the message ID)"),
    once: bool = typer.Option(False, "--once", help="Exit after the first new message"),
) -> None:
    """Watch a mailbox for new messages."""

    app_ctx: AppContext = ctx.obj
    options = WatchOptions(
        mailbox=_mailbox(app_ctx, mailbox),
        interval=float(interval or app_ctx.config.watch.interval),
        unread_only=unread,
        exec_command=exec_command,
        once=once,
    )

    def _report(row: MessageSummary) -> None:
        if app_ctx.json_output:
            typer.echo(json.dumps(row.to_dict(), default=str))
        else:
            typer.echo(_summary_line(row))

    stop = threading.Event()
    restore = install_stop_handlers(stop)
    try:
        with _guard(app_ctx, "mail watch"):
            watch_mailbox(open_imap(app_ctx), options, _report, stop=stop, logger=app_ctx.logger)
    except KeyboardInterrupt:
        app_ctx.logger.info("watch_interrupted", mailbox=options.mailbox)
        raise typer.Exit(code=0) from None
    finally:
        restore()


@draft_app.command("list")
def draft_list(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(None, "--limit", "-n", help="Number of drafts"),
) -> None:
    """List drafts."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail draft list"):
        with open_imap(app_ctx) as session:
            rows = draft_ops.list_drafts(session, limit=_limit(app_ctx, limit))
        _emit(
            app_ctx,
            [row.to_dict() for row in rows],
            [f"{row.seq_num:>6}  {row.date:<16}  {row.to[:28]:<28}  {row.subject}" for row in rows] or ["No drafts"],
        )


def _draft_fields(to, cc, subject, body, attach) -> draft_ops.DraftFields:
    return draft_ops.DraftFields(
        to=tuple(to) if to else None,
        cc=tuple(cc) if cc else None,
        subject=subject,
        body=body,
        attachments=tuple(attach or ()),
    )


def _emit_draft(app_ctx: AppContext, uid: Optional[int], verb: str) -> None:
    suffix = f" (UID {uid})" if uid is not None else ""
    _emit(app_ctx, {"uid": uid}, [f"Draft {verb}{suffix}"])


@draft_app.command("create")
def draft_create(
    ctx: typer.Context,
    to: Optional[List[str]] = typer.Option(None, "--to", "-t", help="Recipient (repeatable)"),
    cc: Optional[List[str]] = typer.Option(None, "--cc", help="CC recipient (repeatable)"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s", help="Subject line"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Body text"),
    attach: Optional[List[str]] = typer.Option(None, "--attach", "-a", help="Attachment path (repeatable)"),
) -> None:
    """Create a draft."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail draft create"):
        fields = _draft_fields(to, cc, subject, body, attach)
        with open_imap(app_ctx) as session:
            uid = draft_ops.create_draft(session, sender_address(app_ctx), fields, logger=app_ctx.logger)
        _emit_draft(app_ctx, uid, "created")


@draft_app.command("edit")
def draft_edit(
    ctx: typer.Context,
    draft_id: str = typer.Argument(..., help="Draft ID to edit"),
    to: Optional[List[str]] = typer.Option(None, "--to", "-t", help="Recipient (repeatable)"),
    cc: Optional[List[str]] = typer.Option(None, "--cc", help="CC recipient (repeatable)"),
    subject: Optional[str] = typer.Option(None, "--subject", "-s", help="Subject line"),
    body: Optional[str] = typer.Option(None, "--body", "-b", help="Body text"),
    attach: Optional[List[str]] = typer.Option(None, "--attach", "-a", help="Attachment path (repeatable)"),
) -> None:
    """Edit a draft, keeping fields that are not given."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail draft edit"):
        build_sequence_set([draft_id])
        fields = _draft_fields(to, cc, subject, body, attach)
        with open_imap(app_ctx) as session:
            uid = draft_ops.edit_draft(session, draft_id, sender_address(app_ctx), fields, logger=app_ctx.logger)
        _emit_draft(app_ctx, uid, "updated")


@draft_app.command("delete")
def draft_delete(
    ctx: typer.Context,
    ids: List[str] = typer.Argument(..., help="Draft ID(s) to delete"),
) -> None:
    """Delete drafts."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail draft delete"):
        build_sequence_set(ids)
        with open_imap(app_ctx) as session:
            result = draft_ops.delete_drafts(session, ids, logger=app_ctx.logger)
        _emit_batch(app_ctx, result, "deleted")


@label_app.command("list")
def label_list(ctx: typer.Context) -> None:
    """List labels."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail label list"):
        with open_imap(app_ctx) as session:
            names = label_ops.list_labels(session)
        _emit(app_ctx, names, names or ["No labels"])


@label_app.command("add")
def label_add(
    ctx: typer.Context,
    ids: List[str] = typer.Argument(..., help="Message ID(s) to label"),
    label: str = typer.Option(..., "--label", "-l", help="Label name"),
    mailbox: Optional[str] = typer.Option(None, "--mailbox", "-m", help="Source mailbox"),
) -> None:
    """Add a label to messages."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail label add"):
        build_sequence_set(ids)
        with open_imap(app_ctx) as session:
            result = label_ops.add_label(session, _mailbox(app_ctx, mailbox), label, ids, logger=app_ctx.logger)
        _emit_batch(app_ctx, result, "labelled")


@label_app.command("remove")
def label_remove(
    ctx: typer.Context,
    ids: List[str] = typer.Argument(..., help="Message ID(s) within the label"),
    label: str = typer.Option(..., "--label", "-l", help="Label name"),
) -> None:
    """Remove a label from messages."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mail label remove"):
        build_sequence_set(ids)
        with open_imap(app_ctx) as session:
            result = label_ops.remove_label(session, label, ids, logger=app_ctx.logger)
        _emit_batch(app_ctx, result, "unlabelled")


@mailbox_app.command("list")
def mailbox_list(ctx: typer.Context) -> None:
    """List mailboxes."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mailbox list"):
        with open_imap(app_ctx) as session:
            boxes = mailbox_ops.list_mailboxes(session)
        _emit(
            app_ctx,
            [{"name": box.name, "delimiter": box.delimiter, "attributes": box.attributes} for box in boxes],
            [box.name for box in boxes],
        )


@mailbox_app.command("create")
def mailbox_create(ctx: typer.Context, name: str = typer.Argument(..., help="Mailbox name")) -> None:
    """Create a mailbox."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mailbox create"):
        with open_imap(app_ctx) as session:
            mailbox_ops.create_mailbox(session, name)
        _emit(app_ctx, {"name": name}, [f"Created mailbox {name}"])


@mailbox_app.command("delete")
def mailbox_delete(ctx: typer.Context, name: str = typer.Argument(..., help="Mailbox name")) -> None:
    """Delete a mailbox."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "mailbox delete"):
        with open_imap(app_ctx) as session:
            mailbox_ops.delete_mailbox(session, name)
        _emit(app_ctx, {"name": name}, [f"Deleted mailbox {name}"])


@config_app.callback()
def config_group(ctx: typer.Context) -> None:
    """Inspect and change configuration."""

    app_ctx: AppContext = ctx.obj
    if app_ctx.config_error and ctx.invoked_subcommand != "doctor":
        _fail(app_ctx.json_output, app_ctx.config_error)


@config_app.command("show")
def config_show(ctx: typer.Context) -> None:
    """Display the active configuration."""

    app_ctx: AppContext = ctx.obj
    payload = app_ctx.config.model_dump(mode="json")
    text = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False).rstrip("\n")
    _emit(app_ctx, {"path": str(app_ctx.loaded.path), "config": payload}, [f"# {app_ctx.loaded.path}", text])


@config_app.command("set")
def config_set(
    ctx: typer.Context,
    key: str = typer.Argument(..., help="Dotted key, e.g. bridge.email or defaults.limit"),
    value: str = typer.Argument(..., help="New value"),
) -> None:
    """Set a configuration value and save the file."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "config set"):
        app_ctx.loaded.config = set_config_value(app_ctx.config, key, value)
        path = save_config(app_ctx.loaded)
        _emit(app_ctx, {"key": key, "value": value, "path": str(path)}, [f"Set {key} in {path}"])


@config_app.command("path")
def config_path_cmd(ctx: typer.Context) -> None:
    """Print the configuration file location."""

    app_ctx: AppContext = ctx.obj
    _emit(app_ctx, {"path": str(app_ctx.loaded.path), "exists": app_ctx.loaded.exists}, [str(app_ctx.loaded.path)])


@config_app.command("validate")
def config_validate(ctx: typer.Context) -> None:
    """Connect and log in to the bridge to check the settings."""

    app_ctx: AppContext = ctx.obj
    with _guard(app_ctx, "config validate"):
        with open_imap(app_ctx):
            pass
        account = sender_address(app_ctx)
        _emit(
            app_ctx,
            {"account": account, "message": "Connected and authenticated to the bridge"},
            [f"Connection successful: logged in to the bridge as {account}"],
        )


@config_app.command("doctor")
def config_doctor(ctx: typer.Context) -> None:
    """Check the config file, password, ports and logins."""

    app_ctx: AppContext = ctx.obj
    report = run_doctor(app_ctx.loaded.path, logger=app_ctx.logger.child("bridgemail.health"))
    lines = []
    for check in report.checks:
        prefix = "[OK]" if check.status == "ok" else "[FAIL]"
        lines.append(f"{prefix} {check.name}" + (f" - {check.message}" if check.message else ""))
    _emit(app_ctx, report.to_dict(), lines)
    if not report.healthy:
        raise typer.Exit(code=1)


def main() -> None:
    """Console script entry point."""

    app(prog_name="bridgemail")


__all__ = ["app", "main"]


if __name__ == "__main__":  # pragma: no cover
    main()
