"""Regex-based HTML to plain-text conversion for terminal display.

What:
  Turn an HTML mail body into readable text: block elements become line
  breaks, links keep their target, entities are decoded, whitespace is
  collapsed.

Why:
  Many senders only ship ``text/html``. The CLI still needs something a
  terminal can show and a pipe can grep, without pulling in a full HTML
  renderer.

How:
  A fixed pipeline of compiled regular expressions followed by
  :func:`html.unescape`. Each pass runs over the output of the previous one.

Interfaces:
  :func:`html_to_text`.

Invariants & Safety:
  - Pure and total: any string input yields a string, never an exception.
  - Running the converter on its own output is a no-op for inputs whose
    decoded entities do not themselves spell out markup.
"""
from __future__ import annotations

import html
import re

_STYLE_RE = re.compile(r"<style[^>]*>.*?</style>", re.IGNORECASE | re.DOTALL)
_SCRIPT_RE = re.compile(r"<script[^>]*>.*?</script>", re.IGNORECASE | re.DOTALL)
_PARAGRAPH_END_RE = re.compile(r"</(?:p|h[1-6])\s*>", re.IGNORECASE)
_BLOCK_END_RE = re.compile(r"</(?:div|tr|li)\s*>", re.IGNORECASE)
_BR_RE = re.compile(r"<br\s*/?>", re.IGNORECASE)
_LINK_RE = re.compile(
    r"""<a[^>]+href=["']([^"']+)["'][^>]*>([^<]*)</a>""", re.IGNORECASE
)
_TAG_RE = re.compile(r"<[^>]+>")
_SPACES_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def html_to_text(source: str) -> str:
    """Convert an HTML fragment or document to plain text.

    Args:
      source: HTML markup, possibly malformed.

    Returns:
      Text with paragraph breaks as blank lines, links rendered as
      ``text [url]``, entities decoded and surrounding whitespace trimmed.
    """

    text = _STYLE_RE.sub("", source)
    text = _SCRIPT_RE.sub("", text)
    text = _PARAGRAPH_END_RE.sub("\n\n", text)
    text = _BLOCK_END_RE.sub("\n", text)
    text = _BR_RE.sub("\n", text)
    text = _LINK_RE.sub(r"\2 [\1]", text)
    text = _TAG_RE.sub("", text)
    text = html.unescape(text)
    text = _SPACES_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


__all__ = ["html_to_text"]
