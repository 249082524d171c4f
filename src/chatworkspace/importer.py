"""Load pipeline: pasted HTML → turns → identity → local store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .errors import NoMessagesFoundError
from .hashing import hash_chat, validate_identity
from .models import ChatSettings, Turn
from .parser import clean_markup, extract_turns
from .storage import AnnotationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChatSession:
    """A loaded conversation: its identity, turns and the markup they came from."""

    conversation_id: str
    turns: list[Turn]
    raw_source: str
    settings: ChatSettings

    @property
    def open_query(self) -> str:
        return f"?open={self.conversation_id}"


def load_chat(store: AnnotationStore, markup: str, salt: str = "") -> ChatSession:
    """Parse pasted conversation HTML and register it in the store.

    Saves the markup so the chat can be reopened by identity later, and marks
    the chat as seen. Raises NoMessagesFoundError when nothing was extracted;
    the store is left untouched in that case.
    """
    markup = clean_markup(markup)
    if not markup:
        raise NoMessagesFoundError("Please paste some HTML first!")

    turns = extract_turns(markup)
    if not turns:
        raise NoMessagesFoundError()

    conversation_id = hash_chat(turns, salt)
    logger.info("Loaded chat %s (%d turns)", conversation_id, len(turns))

    store.save_raw_source(conversation_id, markup)
    settings = store.load_settings(conversation_id)

    return ChatSession(
        conversation_id=conversation_id,
        turns=turns,
        raw_source=markup,
        settings=settings,
    )


def open_chat(
    store: AnnotationStore, conversation_id: str, markup: str, salt: str = ""
) -> ChatSession:
    """Open stored markup under a conversation ID that is already known.

    Used when the ID comes from a link. The chat stays under that ID even if
    the markup hashes to a different one (e.g. it was loaded with another
    salt); the mismatch is only logged.
    """
    validate_identity(conversation_id)
    markup = clean_markup(markup)
    turns = extract_turns(markup)
    if not turns:
        raise NoMessagesFoundError()

    rehashed = hash_chat(turns, salt)
    if rehashed != conversation_id:
        logger.warning(
            "Chat %s hashes to %s with the current salt, keeping %s",
            conversation_id,
            rehashed,
            conversation_id,
        )

    return ChatSession(
        conversation_id=conversation_id,
        turns=turns,
        raw_source=markup,
        settings=store.load_settings(conversation_id),
    )


def import_file(store: AnnotationStore, path: Path, salt: str = "") -> ChatSession:
    """Load a chat from an HTML file saved from the browser."""
    markup = path.read_text(encoding="utf-8")
    return load_chat(store, markup, salt=salt)
