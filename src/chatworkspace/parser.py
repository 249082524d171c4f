"""Parse pasted ChatGPT conversation HTML into flat turn lists."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from html.parser import HTMLParser

from .models import Turn

logger = logging.getLogger(__name__)

ROLE_ATTR = "data-message-author-role"
MESSAGE_ID_ATTR = "data-message-id"
COMMENT_NODE = "#comment"

# Elements that get a trailing newline when followed by a sibling
BLOCK_TAGS = frozenset({"p", "div", "h1", "h2", "h3", "h4", "h5", "h6", "li"})

VOID_TAGS = frozenset(
    {
        "area", "base", "br", "col", "embed", "hr", "img", "input",
        "link", "meta", "source", "track", "wbr",
    }
)

# Start tags that implicitly close an open <p>
_CLOSES_P = BLOCK_TAGS | {
    "address", "article", "aside", "blockquote", "dl", "fieldset", "figure",
    "footer", "form", "header", "hr", "main", "nav", "ol", "pre", "section",
    "table", "ul",
}

_INLINE_WS = re.compile(r"[^\S\n]+")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_WRAPPING_QUOTES = re.compile(r"^['\"]|['\"]$")


@dataclass
class _Element:
    tag: str
    attrs: dict[str, str]
    children: list[_Element | str] = field(default_factory=list)
    inner_start: int = 0
    inner_end: int | None = None


class _TreeBuilder(HTMLParser):
    """Build a minimal element tree, remembering inner-markup offsets."""

    def __init__(self, markup: str) -> None:
        super().__init__()
        self.markup = markup
        self.root = _Element("#document", {})
        self._stack: list[_Element] = [self.root]
        self._line_starts = [0]
        for match in re.finditer("\n", markup):
            self._line_starts.append(match.end())

    def _offset(self) -> int:
        line, column = self.getpos()
        return self._line_starts[line - 1] + column

    def _close_top(self, end: int) -> None:
        element = self._stack.pop()
        element.inner_end = end

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        start = self._offset()
        current = self._stack[-1]
        if tag in _CLOSES_P and current.tag == "p":
            self._close_top(start)
        elif tag == "li" and current.tag == "li":
            self._close_top(start)

        element = _Element(tag, {name: value or "" for name, value in attrs})
        self._stack[-1].children.append(element)
        if tag in VOID_TAGS:
            return
        element.inner_start = start + len(self.get_starttag_text() or "")
        self._stack.append(element)

    def handle_startendtag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        # "<div/>" opens a div like "<div>"; the slash only matters for void tags
        self.handle_starttag(tag, attrs)

    def handle_comment(self, data: str) -> None:
        # Comments emit no text but still count as siblings when placing line breaks
        self._stack[-1].children.append(_Element(COMMENT_NODE, {}))

    def handle_endtag(self, tag: str) -> None:
        # Unmatched end tags are ignored, as browsers do
        if not any(element.tag == tag for element in self._stack[1:]):
            return
        end = self._offset()
        while self._stack[-1].tag != tag:
            self._close_top(end)
        self._close_top(end)

    def handle_data(self, data: str) -> None:
        self._stack[-1].children.append(data)

    def finish(self) -> _Element:
        self.close()
        while len(self._stack) > 1:
            self._close_top(len(self.markup))
        return self.root


def _iter_role_elements(element: _Element):
    """Yield every element carrying the author-role attribute, in document order."""
    for child in element.children:
        if isinstance(child, _Element):
            if ROLE_ATTR in child.attrs:
                yield child
            yield from _iter_role_elements(child)


def _flatten(element: _Element, parts: list[str]) -> None:
    """Append the text of element's children, with line breaks for br and blocks."""
    last = len(element.children) - 1
    for position, child in enumerate(element.children):
        if isinstance(child, str):
            parts.append(child)
            continue
        if child.tag == "br":
            parts.append("\n")
            continue
        _flatten(child, parts)
        if child.tag in BLOCK_TAGS and position < last:
            parts.append("\n")


def normalize_text(text: str) -> str:
    """Collapse whitespace while keeping line structure."""
    text = text.replace("\\n", "\n")
    text = _INLINE_WS.sub(" ", text).strip()
    return _EXCESS_NEWLINES.sub("\n\n", text)


def clean_markup(raw: str) -> str:
    """Trim pasted markup and drop quotes left over from copying console output."""
    return _WRAPPING_QUOTES.sub("", raw.strip())


def extract_turns(markup: str) -> list[Turn]:
    """Extract conversation turns from pasted ChatGPT HTML.

    Every element with a ``data-message-author-role`` attribute becomes a Turn,
    in document order. Elements with an empty role or no text are skipped.
    Markup that cannot be parsed yields an empty list.
    """
    try:
        builder = _TreeBuilder(markup)
        builder.feed(markup)
        root = builder.finish()
    except Exception:
        logger.warning("Failed to parse conversation markup", exc_info=True)
        return []

    turns: list[Turn] = []
    for idx, element in enumerate(_iter_role_elements(root)):
        role = element.attrs.get(ROLE_ATTR, "").strip()
        msg_id = (element.attrs.get(MESSAGE_ID_ATTR) or f"idx-{idx}").strip()

        parts: list[str] = []
        _flatten(element, parts)
        text = normalize_text("".join(parts))

        if not role or not text:
            continue

        end = element.inner_end if element.inner_end is not None else element.inner_start
        turns.append(
            Turn(
                id=msg_id,
                role=role,
                text=text,
                source_fragment=markup[element.inner_start:end],
            )
        )

    logger.debug("Extracted %d turns from %d characters of markup", len(turns), len(markup))
    return turns
