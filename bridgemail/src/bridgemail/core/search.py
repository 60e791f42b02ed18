"""Compile user filter options into boolean search predicates.

What:
  Model IMAP search as a small predicate tree, build it from the options a
  user passes on the command line, render it as ``imapclient`` criteria, and
  evaluate it in memory.

Why:
  Users combine sender, subject, body, date, and size filters with AND/OR and
  negation. Building an explicit tree before touching the wire keeps the
  combination rules testable, and the in-memory evaluator gives the test
  suite an oracle that applies the same semantics as the server.

How:
  Leaves and composites are frozen dataclasses. :func:`build_predicate`
  collects leaves in a fixed order and wraps them in :class:`And` or a flat
  :class:`Or`, optionally negated. :func:`to_criteria` right-folds ``OR``
  because the IMAP ``OR`` key is binary and groups multi-key conjunctions in
  nested lists, which ``imapclient`` renders as parentheses.

Interfaces:
  :class:`SearchOptions`, the predicate classes, :func:`build_predicate`,
  :func:`parse_size`, :func:`parse_date`, :func:`parse_query`,
  :func:`to_criteria`, :func:`needs_utf8`, :class:`SearchCandidate`,
  :func:`evaluate`.

Invariants & Safety:
  - ``build_predicate`` always returns exactly one root node.
  - An empty :class:`And` matches every message and renders as ``ALL``.
  - Unparsable size or date strings are dropped by the lenient parsers; the
    strict variants raise :class:`ValidationError` instead.
"""
from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, List, Mapping, Optional, Tuple, Union

from ..errors import ValidationError

COMBINE_AND = "and"
COMBINE_OR = "or"

ATTACHMENT_HEADER = ("Content-Type", "multipart/mixed")

_SIZE_RE = re.compile(r"^(\d+(?:\.\d+)?)\s*([KMG]?)B?$")
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


@dataclass(frozen=True)
class Body:
    text: str


@dataclass(frozen=True)
class Header:
    key: str
    value: str


@dataclass(frozen=True)
class SizeAbove:
    size: int


@dataclass(frozen=True)
class SizeBelow:
    size: int


@dataclass(frozen=True)
class DateSince:
    day: date


@dataclass(frozen=True)
class DateBefore:
    day: date


@dataclass(frozen=True)
class Unseen:
    """Matches messages without the ``\\Seen`` flag."""


@dataclass(frozen=True)
class And:
    children: Tuple["SearchPredicate", ...] = ()


@dataclass(frozen=True)
class Or:
    children: Tuple["SearchPredicate", ...] = ()


@dataclass(frozen=True)
class Not:
    child: "SearchPredicate"


SearchPredicate = Union[Body, Header, SizeAbove, SizeBelow, DateSince, DateBefore, Unseen, And, Or, Not]
LEAF_TYPES = (Body, Header, SizeAbove, SizeBelow, DateSince, DateBefore, Unseen)


@dataclass
class SearchOptions:
    """Filter set collected from one invocation.

    Size and date filters hold the raw strings typed by the user; they are
    parsed while building the predicate.
    """

    query: str = ""
    from_: str = ""
    to: str = ""
    subject: str = ""
    body: str = ""
    since: str = ""
    before: str = ""
    has_attachments: bool = False
    larger_than: str = ""
    smaller_than: str = ""
    combinator: str = COMBINE_AND
    negate: bool = False


def parse_size(value: str, *, strict: bool = False) -> int:
    """Parse a human size such as ``500``, ``500K``, ``1.5M`` or ``2GB``.

    Returns ``0`` for empty or unparsable input unless ``strict`` is set, in
    which case unparsable input raises :class:`ValidationError`.
    """

    text = (value or "").strip().upper()
    if not text:
        return 0
    match = _SIZE_RE.match(text)
    if match is None:
        if strict:
            raise ValidationError(f"invalid size: {value!r}")
        return 0
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit])


def parse_date(value: str, *, strict: bool = False) -> Optional[date]:
    """Parse a ``YYYY-MM-DD`` date, returning ``None`` when it is not one."""

    text = (value or "").strip()
    if not text:
        return None
    try:
        return datetime.strptime(text, "%Y-%m-%d").date()
    except ValueError as exc:
        if strict:
            raise ValidationError(f"invalid date {value!r}, expected YYYY-MM-DD") from exc
        return None


def build_predicate(options: SearchOptions) -> SearchPredicate:
    """Compile ``options`` into a single predicate tree.

    What:
      Emits one leaf per populated filter and combines them.

    Why:
      The combination rules (AND by default, flat OR on request, negation of
      the whole expression) are the contract users rely on when mixing flags.

    How:
      Leaves are built in a fixed order by :func:`_leaves`. AND wraps them all
      in :class:`And`, including the empty case which matches everything. OR
      returns a lone leaf bare and otherwise one flat :class:`Or`. ``negate``
      wraps the result in :class:`Not`.

    Args:
      options: Parsed command-line filters.

    Returns:
      The root predicate.
    """

    leaves = _leaves(options)
    if options.combinator == COMBINE_OR:
        if not leaves:
            predicate: SearchPredicate = And(())
        elif len(leaves) == 1:
            predicate = leaves[0]
        else:
            predicate = Or(tuple(leaves))
    else:
        predicate = And(tuple(leaves))
    if options.negate:
        return Not(predicate)
    return predicate


def _leaves(options: SearchOptions) -> List[SearchPredicate]:
    leaves: List[SearchPredicate] = []
    if options.query:
        leaves.append(Body(options.query))
    if options.body:
        leaves.append(Body(options.body))
    if options.from_:
        leaves.append(Header("From", options.from_))
    if options.to:
        leaves.append(Header("To", options.to))
    if options.subject:
        leaves.append(Header("Subject", options.subject))
    since = parse_date(options.since)
    if since is not None:
        leaves.append(DateSince(since))
    before = parse_date(options.before)
    if before is not None:
        leaves.append(DateBefore(before))
    larger = parse_size(options.larger_than)
    if larger > 0:
        leaves.append(SizeAbove(larger))
    smaller = parse_size(options.smaller_than)
    if smaller > 0:
        leaves.append(SizeBelow(smaller))
    if options.has_attachments:
        leaves.append(Header(*ATTACHMENT_HEADER))
    return leaves


def parse_query(query: str) -> SearchOptions:
    """Parse the ``--query`` mini-language used by batch commands.

    ``from:alice subject:"weekly report" invoice`` fills the sender and
    subject filters and puts the remaining words into the general query.
    Quotes group words; an unbalanced quote is treated literally.
    """

    try:
        tokens = shlex.split(query)
    except ValueError:
        tokens = query.split()
    options = SearchOptions()
    words: List[str] = []
    for token in tokens:
        prefix, sep, rest = token.partition(":")
        key = prefix.lower()
        if sep and key == "from":
            options.from_ = rest
        elif sep and key == "subject":
            options.subject = rest
        elif sep and key == "body":
            options.body = rest
        else:
            words.append(token)
    options.query = " ".join(words)
    return options


def to_criteria(predicate: SearchPredicate) -> List[Any]:
    """Render ``predicate`` as an ``imapclient`` search criteria list."""

    if isinstance(predicate, And):
        if not predicate.children:
            return ["ALL"]
        criteria: List[Any] = []
        for child in predicate.children:
            criteria.extend(_search_key(child))
        return criteria
    return _search_key(predicate)


def _search_key(predicate: SearchPredicate) -> List[Any]:
    if isinstance(predicate, Body):
        return ["BODY", predicate.text]
    if isinstance(predicate, Header):
        return ["HEADER", predicate.key, predicate.value]
    if isinstance(predicate, SizeAbove):
        return ["LARGER", predicate.size]
    if isinstance(predicate, SizeBelow):
        return ["SMALLER", predicate.size]
    if isinstance(predicate, DateSince):
        return ["SINCE", predicate.day]
    if isinstance(predicate, DateBefore):
        return ["BEFORE", predicate.day]
    if isinstance(predicate, Unseen):
        return ["UNSEEN"]
    if isinstance(predicate, Not):
        return ["NOT", *_search_key(predicate.child)]
    if isinstance(predicate, And):
        if not predicate.children:
            return ["ALL"]
        if len(predicate.children) == 1:
            return _search_key(predicate.children[0])
        return [to_criteria(predicate)]
    if isinstance(predicate, Or):
        children = predicate.children
        if not children:
            return ["NOT", "ALL"]
        if len(children) == 1:
            return _search_key(children[0])
        return ["OR", *_search_key(children[0]), *_search_key(Or(children[1:]))]
    raise TypeError(f"unsupported predicate: {predicate!r}")


def needs_utf8(predicate: SearchPredicate) -> bool:
    """Return whether any string operand contains non-ASCII characters."""

    if isinstance(predicate, Body):
        return not predicate.text.isascii()
    if isinstance(predicate, Header):
        return not (predicate.key.isascii() and predicate.value.isascii())
    if isinstance(predicate, (And, Or)):
        return any(needs_utf8(child) for child in predicate.children)
    if isinstance(predicate, Not):
        return needs_utf8(predicate.child)
    return False


@dataclass
class SearchCandidate:
    """In-memory view of one message for :func:`evaluate`."""

    headers: Mapping[str, str] = field(default_factory=dict)
    body: str = ""
    size: int = 0
    day: Optional[date] = None
    flags: Tuple[str, ...] = ()

    def header(self, key: str) -> str:
        wanted = key.lower()
        for name, value in self.headers.items():
            if name.lower() == wanted:
                return value
        return ""


def evaluate(predicate: SearchPredicate, candidate: SearchCandidate) -> bool:
    """Evaluate ``predicate`` against ``candidate`` with IMAP SEARCH semantics.

    BODY and HEADER are case-insensitive substring matches, LARGER and SMALLER
    are strict, SINCE is inclusive and BEFORE exclusive.
    """

    if isinstance(predicate, Body):
        return predicate.text.lower() in candidate.body.lower()
    if isinstance(predicate, Header):
        return predicate.value.lower() in candidate.header(predicate.key).lower()
    if isinstance(predicate, SizeAbove):
        return candidate.size > predicate.size
    if isinstance(predicate, SizeBelow):
        return candidate.size < predicate.size
    if isinstance(predicate, DateSince):
        return candidate.day is not None and candidate.day >= predicate.day
    if isinstance(predicate, DateBefore):
        return candidate.day is not None and candidate.day < predicate.day
    if isinstance(predicate, Unseen):
        return "\\Seen" not in candidate.flags
    if isinstance(predicate, And):
        return all(evaluate(child, candidate) for child in predicate.children)
    if isinstance(predicate, Or):
        return any(evaluate(child, candidate) for child in predicate.children)
    if isinstance(predicate, Not):
        return not evaluate(predicate.child, candidate)
    raise TypeError(f"unsupported predicate: {predicate!r}")


__all__ = [
    "And",
    "Body",
    "COMBINE_AND",
    "COMBINE_OR",
    "DateBefore",
    "DateSince",
    "Header",
    "Not",
    "Or",
    "SearchCandidate",
    "SearchOptions",
    "SearchPredicate",
    "SizeAbove",
    "SizeBelow",
    "Unseen",
    "build_predicate",
    "evaluate",
    "needs_utf8",
    "parse_date",
    "parse_query",
    "parse_size",
    "to_criteria",
]
