"""Lightweight Markdown to HTML conversion for chat messages.

Supported:
- Paragraphs (one per line) and ``<br>`` for blank lines outside lists
- ATX headings ``#`` .. ``######``
- Unordered lists (``-``, ``*``, ``+``) and ordered lists (``1.`` / ``1)``),
  including ordered items written inline on a single prose line
- ``**bold**``, ``*italic*`` and ```code``` inline spans

Anything else is passed through as paragraph text. Output is not escaped or
sanitized; the display surface is expected to do that.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum

# Unordered item: ^[ \t]*[-*+]\s+(.+)
#   [ \t]*  - optional indentation
#   [-*+]   - list marker
#   \s+     - required gap
#   (.+)    - item content
UL_ITEM = re.compile(r"^[ \t]*[-*+]\s+(.+)")

# Ordered item: ^[ \t]*[0-9]+[.)]\s+(.+)
#   [0-9]+[.)] - ASCII number with "." or ")" delimiter
ORDERED_ITEM = re.compile(r"^[ \t]*[0-9]+[.)]\s+(.+)")

# Further ordered markers inside one item's content ("First 2. Second").
# The capture group keeps the numbers in re.split() output at odd indices.
INLINE_ORDERED_MARKER = re.compile(r"\s+([0-9]+)[.)]\s+")

# Heading: ^(#{1,6})\s+(.+)
#   (#{1,6}) - level
#   (.+)     - heading content
HEADING = re.compile(r"^(#{1,6})\s+(.+)")

# Sentence end followed by an inline list marker: "... as follows. 2. Up-sell"
INLINE_ORDERED_BREAK = re.compile(r"\.[ \t]+([0-9]+)[.)][ \t]+")

LINE_BREAK = re.compile(r"\r\n|\r|\n")

BOLD = re.compile(r"\*\*([^*]+)\*\*")
ITALIC = re.compile(r"\*([^*]+)\*")
INLINE_CODE = re.compile(r"`([^`]+)`")


class ListKind(str, Enum):
    UNORDERED = "ul"
    ORDERED = "ol"


@dataclass(slots=True)
class ListAccumulator:
    """Consecutive list items of one kind that have not been emitted yet."""

    kind: ListKind | None = None
    items: list[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return bool(self.items)

    def add(self, kind: ListKind, items: list[str], out: list[str]) -> None:
        if self.kind is not None and self.kind is not kind:
            self.flush(out)
        self.kind = kind
        self.items.extend(items)

    def flush(self, out: list[str]) -> None:
        if self.items and self.kind is not None:
            tag = self.kind.value
            out.append(f"<{tag}>{''.join(self.items)}</{tag}>")
        self.items.clear()
        self.kind = None


def inline_format(text: str) -> str:
    """Apply bold, italic and inline-code substitutions to `text`."""

    # Bold must run before italic, otherwise "**x**" reads as nested <em>.
    text = BOLD.sub(r"<strong>\1</strong>", text)
    text = ITALIC.sub(r"<em>\1</em>", text)
    text = INLINE_CODE.sub(r"<code>\1</code>", text)
    return text


def break_inline_ordered_items(text: str) -> str:
    """Move inline "N." markers that follow a sentence onto their own line.

    Agents sometimes emit a whole numbered list as one line of prose. Without
    this rewrite only the first marker sits at a line start and the list is
    split into fragments.
    """

    return INLINE_ORDERED_BREAK.sub(lambda m: f".\n{m.group(1)}. ", text)


def _li(text: str) -> str:
    return f"<li>{inline_format(text)}</li>"


def _ordered_items(content: str) -> list[str]:
    parts = INLINE_ORDERED_MARKER.split(content)
    if len(parts) == 1:
        return [_li(content)]
    # ["First", "2", "Second", "3", "Third"]: item text at even indices.
    return [_li(part.strip()) for part in parts[::2] if part.strip()]


def markdown_to_html(text: str | None) -> str:
    """Convert chat Markdown (or plain text) to an HTML fragment."""

    if not text:
        return ""

    text = break_inline_ordered_items(text)
    out: list[str] = []
    pending = ListAccumulator()

    for line in LINE_BREAK.split(text):
        ul_match = UL_ITEM.match(line)
        if ul_match:
            pending.add(ListKind.UNORDERED, [_li(ul_match.group(1))], out)
            continue

        ol_match = ORDERED_ITEM.match(line)
        if ol_match:
            pending.add(ListKind.ORDERED, _ordered_items(ol_match.group(1)), out)
            continue

        if not line.strip():
            # Blank lines between items keep the list (and its numbering) intact.
            if pending.is_open:
                continue
            out.append("<br>")
            continue

        pending.flush(out)

        heading_match = HEADING.match(line)
        if heading_match:
            level = len(heading_match.group(1))
            out.append(f"<h{level}>{inline_format(heading_match.group(2))}</h{level}>")
            continue

        out.append(f"<p>{inline_format(line)}</p>")

    pending.flush(out)
    return "".join(out)
