"""SQLite key-value storage for per-conversation annotations."""

from __future__ import annotations

import json
import logging
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from .config import KEY_PREFIX
from .errors import StorageCorruptError
from .hashing import validate_identity
from .models import AnnotationBundle, ChatNotes, ChatSettings, Comment

logger = logging.getLogger(__name__)


class Facet(str, Enum):
    SETTINGS = "settings"
    OUTLINE = "outline"
    COMMENTS = "comments"
    INDENTS = "indents"
    NOTES = "notes"
    RAW_SOURCE = "rawSource"


# Key suffix per facet; settings live under the bare ChatWorkspace_<id> key
_KEY_SUFFIX = {
    Facet.SETTINGS: "",
    Facet.OUTLINE: "_outline",
    Facet.COMMENTS: "_comments",
    Facet.INDENTS: "_indents",
    Facet.NOTES: "_notes",
    Facet.RAW_SOURCE: "_html",
}

TURN_FACETS = (Facet.OUTLINE, Facet.COMMENTS, Facet.INDENTS)
RESET_FACETS = TURN_FACETS


def facet_default(facet: Facet) -> Any:
    """Value a reader sees when a facet is missing or corrupt."""
    if facet is Facet.NOTES:
        return {"text": "", "lastUpdated": ""}
    if facet is Facet.RAW_SOURCE:
        return ""
    return {}


def is_empty_entry(facet: Facet, value: Any) -> bool:
    """True when value is the facet's "nothing here" sentinel for one turn."""
    if facet is Facet.OUTLINE:
        return value is None or value == ""
    if facet is Facet.COMMENTS:
        return value is None or _as_comment(value).is_empty
    if facet is Facet.INDENTS:
        return not value or int(value) <= 0
    raise ValueError(f"{facet.value} has no per-turn entries")


def _as_comment(value: Any) -> Comment:
    # Comments saved before headings existed are bare strings
    if isinstance(value, Comment):
        return value
    if isinstance(value, str):
        return Comment(turn=value)
    return Comment.model_validate(value)


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class LoadResult:
    """Outcome of reading one facet, before any default substitution."""

    value: Any = None
    error: StorageCorruptError | None = None

    @property
    def found(self) -> bool:
        return self.value is not None

    @property
    def corrupt(self) -> bool:
        return self.error is not None


class AnnotationStore:
    """SQLite-backed storage for chat-scoped annotation facets.

    Each facet is one key, ``ChatWorkspace_<id>[_suffix]``, holding JSON (or the
    raw pasted HTML for the raw-source facet).
    """

    def __init__(self, db_path: Path):
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.conn = sqlite3.connect(str(db_path))
        self.conn.row_factory = sqlite3.Row
        self.conn.execute("PRAGMA journal_mode=WAL")
        self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );
        """)
        self.conn.commit()

    # -- raw key access ---------------------------------------------------

    @staticmethod
    def key_for(conversation_id: str, facet: Facet) -> str:
        return f"{KEY_PREFIX}_{conversation_id}{_KEY_SUFFIX[Facet(facet)]}"

    def get_item(self, key: str) -> str | None:
        row = self.conn.execute("SELECT value FROM items WHERE key = ?", (key,)).fetchone()
        return None if row is None else row["value"]

    def set_item(self, key: str, value: str):
        self.conn.execute(
            "INSERT INTO items (key, value) VALUES (?, ?) "
            "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
            (key, value),
        )
        self.conn.commit()

    def remove_item(self, key: str):
        self.conn.execute("DELETE FROM items WHERE key = ?", (key,))
        self.conn.commit()

    # -- facets -----------------------------------------------------------

    def read(self, conversation_id: str, facet: Facet) -> LoadResult:
        """Read a facet without substituting defaults."""
        validate_identity(conversation_id)
        facet = Facet(facet)
        key = self.key_for(conversation_id, facet)
        raw = self.get_item(key)

        if raw is None or facet is Facet.RAW_SOURCE:
            return LoadResult(value=raw)

        try:
            value = json.loads(raw)
        except ValueError as e:
            return LoadResult(error=StorageCorruptError(key, str(e)))

        if not isinstance(value, dict):
            return LoadResult(
                error=StorageCorruptError(key, f"expected an object, got {type(value).__name__}")
            )
        return LoadResult(value=value)

    def load(self, conversation_id: str, facet: Facet) -> Any:
        """Load a facet, falling back to its empty default when missing or corrupt."""
        facet = Facet(facet)
        result = self.read(conversation_id, facet)

        if result.corrupt:
            logger.warning("Failed to parse saved %s data: %s", facet.value, result.error)
            return facet_default(facet)

        if not result.found:
            if facet is Facet.SETTINGS:
                # First time this chat is seen, remember it
                self.save(conversation_id, Facet.SETTINGS, {})
                logger.info("New chat saved: %s", conversation_id)
            return facet_default(facet)

        return result.value

    def save(self, conversation_id: str, facet: Facet, value: Any):
        """Overwrite a facet wholesale. Callers merge before saving."""
        validate_identity(conversation_id)
        facet = Facet(facet)
        key = self.key_for(conversation_id, facet)

        if facet is Facet.RAW_SOURCE:
            self.set_item(key, value)
            return

        if isinstance(value, BaseModel):
            value = value.model_dump(by_alias=True, exclude_none=True)
        self.set_item(key, json.dumps(value, ensure_ascii=False))
        logger.debug("Saved %s for chat %s", facet.value, conversation_id)

    def save_turn_entry(self, conversation_id: str, facet: Facet, index: int, value: Any):
        """Set or delete one turn's entry in the outline, comments or indents map."""
        facet = Facet(facet)
        if facet not in TURN_FACETS:
            raise ValueError(f"{facet.value} has no per-turn entries")

        data = self.load(conversation_id, facet)
        entry = str(index)

        if is_empty_entry(facet, value):
            data.pop(entry, None)
        elif facet is Facet.COMMENTS:
            comment = _as_comment(value)
            data[entry] = {
                "heading": comment.heading if comment.heading.strip() else "",
                "turn": comment.turn if comment.turn.strip() else "",
            }
        elif facet is Facet.INDENTS:
            data[entry] = int(value)
        else:
            data[entry] = value

        self.save(conversation_id, facet, data)

    def reset_all(self, conversation_id: str):
        """Remove all outline text, comments and indents. Settings, notes and source stay."""
        validate_identity(conversation_id)
        with self.conn:
            self.conn.executemany(
                "DELETE FROM items WHERE key = ?",
                [(self.key_for(conversation_id, facet),) for facet in RESET_FACETS],
            )
        logger.info("Reset outline, comments and indents for chat %s", conversation_id)

    # -- typed readers ----------------------------------------------------

    def load_settings(self, conversation_id: str) -> ChatSettings:
        try:
            return ChatSettings.model_validate(self.load(conversation_id, Facet.SETTINGS))
        except ValidationError:
            logger.warning("Ignoring invalid settings for chat %s", conversation_id, exc_info=True)
            return ChatSettings()

    def save_settings(self, conversation_id: str, settings: ChatSettings):
        self.save(conversation_id, Facet.SETTINGS, settings)

    def load_outline(self, conversation_id: str) -> dict[str, str]:
        data = self.load(conversation_id, Facet.OUTLINE)
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def load_indents(self, conversation_id: str) -> dict[str, int]:
        data = self.load(conversation_id, Facet.INDENTS)
        indents = {}
        for k, v in data.items():
            if isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0:
                indents[k] = int(v)
        return indents

    def load_comments(self, conversation_id: str) -> dict[str, Comment]:
        """Load comments, reading legacy bare-string entries as turn comments."""
        comments: dict[str, Comment] = {}
        for k, v in self.load(conversation_id, Facet.COMMENTS).items():
            try:
                comment = _as_comment(v)
            except ValidationError:
                logger.warning("Skipping invalid comment %s for chat %s", k, conversation_id)
                continue
            if not comment.is_empty:
                comments[k] = comment
        return comments

    def load_notes(self, conversation_id: str) -> ChatNotes:
        try:
            return ChatNotes.model_validate(self.load(conversation_id, Facet.NOTES))
        except ValidationError:
            logger.warning("Ignoring invalid notes for chat %s", conversation_id, exc_info=True)
            return ChatNotes()

    def save_notes(self, conversation_id: str, text: str) -> ChatNotes:
        notes = ChatNotes(text=text, last_updated=_utc_now())
        self.save(conversation_id, Facet.NOTES, notes)
        return notes

    def load_raw_source(self, conversation_id: str) -> str:
        return self.load(conversation_id, Facet.RAW_SOURCE)

    def save_raw_source(self, conversation_id: str, markup: str):
        self.save(conversation_id, Facet.RAW_SOURCE, markup)

    def load_bundle(self, conversation_id: str) -> AnnotationBundle:
        return AnnotationBundle(
            settings=self.load_settings(conversation_id),
            outline=self.load_outline(conversation_id),
            comments=self.load_comments(conversation_id),
            indents=self.load_indents(conversation_id),
            notes=self.load_notes(conversation_id),
            raw_source=self.load_raw_source(conversation_id),
        )

    # -- bookkeeping ------------------------------------------------------

    def known_conversations(self) -> list[str]:
        """Identities that have been opened at least once, sorted."""
        prefix = f"{KEY_PREFIX}_"
        rows = self.conn.execute(
            "SELECT key FROM items WHERE substr(key, 1, ?) = ? ORDER BY key",
            (len(prefix), prefix),
        ).fetchall()
        ids = []
        for row in rows:
            rest = row["key"][len(prefix):]
            if "_" not in rest:
                ids.append(rest)
        return ids

    def close(self):
        self.conn.close()
