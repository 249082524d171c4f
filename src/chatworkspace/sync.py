"""Share and reopen chats across devices.

Two query parameters drive loading: ``?shared=<id>`` pulls the published
document from the blob store into the local store, then rewrites itself to
``?open=<id>``; ``?open=<id>`` loads from the local store and falls back to
the shared path when the chat was never cached here. When both are present,
``shared`` wins.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

import httpx

from .errors import MalformedIdentityError, NoMessagesFoundError, RemoteError, RemoteNotFoundError
from .hashing import is_valid_identity, validate_identity
from .importer import ChatSession, open_chat
from .models import SharePayload, ShareResult, Turn
from .parser import extract_turns
from .remote import BlobStore
from .render import Renderer
from .storage import AnnotationStore, Facet

logger = logging.getLogger(__name__)

SHARED = "shared"
OPEN = "open"


class ResolveState(str, Enum):
    IDLE = "idle"
    RESOLVING_SHARED = "resolving_shared"
    RESOLVING_OPEN = "resolving_open"
    LOADED = "loaded"
    FAILED = "failed"


class AddressBar:
    """The page URL. Mode changes rewrite the query in place, without navigating."""

    def __init__(self, url: str | httpx.URL = "/"):
        self.url = httpx.URL(url)

    @property
    def shared(self) -> str | None:
        return self.url.params.get(SHARED)

    @property
    def open(self) -> str | None:
        return self.url.params.get(OPEN)

    def replace_mode(self, mode: str, conversation_id: str):
        other = OPEN if mode == SHARED else SHARED
        self.url = self.url.copy_remove_param(other).copy_set_param(mode, conversation_id)

    def __str__(self) -> str:
        return str(self.url)


@dataclass
class Resolution:
    """Result of resolving the address bar into a loaded chat (or not)."""

    state: ResolveState = ResolveState.IDLE
    conversation_id: str | None = None
    session: ChatSession | None = None
    message: str = ""
    retryable: bool = False
    states: list[ResolveState] = field(default_factory=list)

    def enter(self, state: ResolveState):
        self.state = state
        self.states.append(state)
        logger.debug("Resolve %s → %s", self.conversation_id, state.value)


# Shared document fields and the local facet each one is written to
_HYDRATE_FIELDS = (
    ("chatHtml", Facet.RAW_SOURCE),
    ("outline", Facet.OUTLINE),
    ("comments", Facet.COMMENTS),
    ("indents", Facet.INDENTS),
    ("notes", Facet.NOTES),
)


class SyncController:
    def __init__(
        self,
        store: AnnotationStore,
        remote: BlobStore,
        renderer: Renderer | None = None,
        salt: str = "",
    ):
        self.store = store
        self.remote = remote
        self.renderer = renderer
        self.salt = salt

    def resolve(self, address: AddressBar) -> Resolution:
        """Handle the address bar's query parameters once, on load."""
        if address.shared is not None:
            return self.resolve_shared(address.shared, address)
        if address.open is not None:
            return self.resolve_open(address.open, address)
        return Resolution()

    def resolve_shared(self, conversation_id: str, address: AddressBar) -> Resolution:
        resolution = Resolution(conversation_id=conversation_id)
        resolution.enter(ResolveState.RESOLVING_SHARED)

        if not is_valid_identity(conversation_id):
            return self._fail(resolution, str(MalformedIdentityError(conversation_id)))

        try:
            document = self.remote.get(conversation_id)
        except RemoteNotFoundError:
            return self._fail(
                resolution, "Failed to load shared chat: Shared chat not found", retryable=True
            )
        except RemoteError as e:
            return self._fail(resolution, f"Failed to load shared chat: {e}", retryable=True)

        data = document.data
        fields = data.model_dump(by_alias=True, exclude_none=True)
        for name, facet in _HYDRATE_FIELDS:
            if fields.get(name):
                self.store.save(conversation_id, facet, fields[name])
        logger.info("Shared data for %s saved locally", conversation_id)

        address.replace_mode(OPEN, conversation_id)

        if not data.chat_html:
            resolution.enter(ResolveState.LOADED)
            resolution.message = (
                "Shared chat loaded! The customizations have been saved locally."
            )
            return resolution

        return self._load(resolution, data.chat_html)

    def resolve_open(self, conversation_id: str, address: AddressBar) -> Resolution:
        resolution = Resolution(conversation_id=conversation_id)
        resolution.enter(ResolveState.RESOLVING_OPEN)

        if not is_valid_identity(conversation_id):
            return self._fail(resolution, str(MalformedIdentityError(conversation_id)))

        raw_source = self.store.load_raw_source(conversation_id)
        if raw_source:
            logger.info("Opening chat %s from local store", conversation_id)
            return self._load(resolution, raw_source)

        logger.info("No local copy of %s, trying shared link", conversation_id)
        address.replace_mode(SHARED, conversation_id)
        shared = self.resolve_shared(conversation_id, address)
        shared.states[:0] = resolution.states
        return shared

    def publish(self, conversation_id: str, turns: list[Turn] | None = None) -> ShareResult:
        """Push the current local annotations for a chat to the blob store.

        The remote document is replaced by what is stored locally now; facets
        that are empty here are left out, so whatever another device published
        for them is lost. The local store is only read.
        """
        validate_identity(conversation_id)
        payload = self.build_payload(conversation_id, turns)
        result = self.remote.put(conversation_id, payload)
        logger.info(
            "%s share for %s", "Created" if result.is_new else "Updated", conversation_id
        )
        return result

    def build_payload(self, conversation_id: str, turns: list[Turn] | None = None) -> SharePayload:
        raw_source = self.store.load_raw_source(conversation_id)
        if turns is None and raw_source:
            turns = extract_turns(raw_source)

        notes = self.store.load_notes(conversation_id)
        return SharePayload(
            chat_html=raw_source or None,
            turns=[t.model_dump(by_alias=True) for t in turns] if turns else None,
            outline=self.store.load_outline(conversation_id) or None,
            comments=self.store.load_comments(conversation_id) or None,
            indents=self.store.load_indents(conversation_id) or None,
            notes=notes if notes.text else None,
        )

    def _load(self, resolution: Resolution, markup: str) -> Resolution:
        conversation_id = resolution.conversation_id
        try:
            session = open_chat(self.store, conversation_id, markup, salt=self.salt)
        except NoMessagesFoundError as e:
            return self._fail(resolution, str(e))

        resolution.session = session
        resolution.enter(ResolveState.LOADED)

        if self.renderer is not None:
            self.renderer(session, self.store.load_bundle(conversation_id))
        return resolution

    def _fail(self, resolution: Resolution, message: str, retryable: bool = False) -> Resolution:
        logger.warning("Could not resolve chat %s: %s", resolution.conversation_id, message)
        resolution.message = message
        resolution.retryable = retryable
        resolution.enter(ResolveState.FAILED)
        return resolution
