"""Plain-text rendering of a chat and its outline."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING, Protocol

from .config import INDENT_WIDTH, SUMMARY_LENGTH
from .models import AnnotationBundle, Turn

if TYPE_CHECKING:
    from .importer import ChatSession

_URL = re.compile(r"https?://[^\s]+", re.IGNORECASE)
_TRAILING_PUNCTUATION = re.compile(r"[.,;:!?)]$")


class Renderer(Protocol):
    """Anything that can display a loaded chat with its annotations."""

    def __call__(self, session: ChatSession, bundle: AnnotationBundle) -> None: ...


def role_label(role: str) -> str:
    return "User" if role == "user" else "Assistant"


def default_summary(text: str, length: int = SUMMARY_LENGTH) -> str:
    summary = text[:length].replace("\n", " ")
    return summary + "..." if len(text) > length else summary


def render_outline(turns: list[Turn], bundle: AnnotationBundle) -> str:
    """Outline of the chat: one line per turn, user turns starting a new group."""
    lines: list[str] = []
    for index, turn in enumerate(turns):
        key = str(index)
        if turn.role == "user" and lines:
            lines.append("")

        indent = " " * (bundle.indents.get(key, 0) * INDENT_WIDTH)
        summary = bundle.outline.get(key) or default_summary(turn.text)
        comment = bundle.comments.get(key)

        if comment and comment.heading:
            lines.append(f"{indent}# {comment.heading}")
        lines.append(f"{indent}{index + 1}. {role_label(turn.role)}: {summary}")
    return "\n".join(lines)


def render_transcript(turns: list[Turn], bundle: AnnotationBundle) -> str:
    """Full transcript with turn comments."""
    lines: list[str] = []
    for index, turn in enumerate(turns):
        lines.append(f"**{role_label(turn.role)}** (#{index + 1}):")
        lines.append(turn.text)
        comment = bundle.comments.get(str(index))
        if comment and comment.turn:
            lines.append(f"> {comment.turn}")
        lines.append("")
    return "\n".join(lines)


def detect_links(text: str) -> list[str]:
    """Unique http(s) links in text, in order of appearance."""
    links: list[str] = []
    for match in _URL.findall(text or ""):
        url = _TRAILING_PUNCTUATION.sub("", match)
        if url not in links:
            links.append(url)
    return links
