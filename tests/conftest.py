"""Shared fixtures for chatworkspace tests."""

from pathlib import Path

import pytest

from chatworkspace.remote import FileBlobStore
from chatworkspace.storage import AnnotationStore

# SHA-256 of '|{"v":1,"count":2,"messages":[{"role":"user","text":"Hi"},{"role":"assistant","text":"Hello"}]}'
HI_HELLO_ID = "6ea813cf7925e5f370fb90fe13015d825a81750b5ad48560b02977b4868994d1"

HI_HELLO_HTML = (
    '<div data-message-author-role="user" data-message-id="msg-1">'
    '<div class="whitespace-pre-wrap">Hi</div></div>'
    '<div data-message-author-role="assistant" data-message-id="msg-2">'
    '<div class="markdown prose"><p>Hello</p></div></div>'
)

OTHER_ID = "a" * 64


@pytest.fixture
def chat_html() -> str:
    return HI_HELLO_HTML


@pytest.fixture
def chat_id() -> str:
    return HI_HELLO_ID


@pytest.fixture
def store(tmp_path: Path):
    """A fresh annotation store, closed after the test."""
    store = AnnotationStore(tmp_path / "workspace.db")
    yield store
    store.close()


@pytest.fixture
def other_store(tmp_path: Path):
    """A second device's store."""
    store = AnnotationStore(tmp_path / "other" / "workspace.db")
    yield store
    store.close()


@pytest.fixture
def blobs(tmp_path: Path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "shared")
