"""Data models for conversations, annotations and shared documents."""

from __future__ import annotations

from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Turn(BaseModel):
    """One message extracted from pasted conversation markup."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    role: str
    text: str
    source_fragment: str = Field("", alias="sourceFragment")


class Comment(BaseModel):
    heading: str = ""
    turn: str = ""

    @property
    def is_empty(self) -> bool:
        return not self.heading.strip() and not self.turn.strip()


class ChatNotes(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # Older saves used "notes" for the text field
    text: str = Field(
        "", validation_alias=AliasChoices("text", "notes"), serialization_alias="text"
    )
    last_updated: str = Field("", alias="lastUpdated")


class ChatSettings(BaseModel):
    """Per-conversation view settings. Unknown keys are preserved."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    font_size: float | None = Field(
        None,
        validation_alias=AliasChoices("fontSize", "font_size"),
        serialization_alias="fontSize",
    )
    panel_height: float | None = Field(
        None,
        validation_alias=AliasChoices("panelHeight", "chatPanelHeight", "panel_height"),
        serialization_alias="panelHeight",
    )


class AnnotationBundle(BaseModel):
    """Every facet stored for one conversation identity."""

    settings: ChatSettings = ChatSettings()
    outline: dict[str, str] = {}
    comments: dict[str, Comment] = {}
    indents: dict[str, int] = {}
    notes: ChatNotes = ChatNotes()
    raw_source: str = ""


class SharePayload(BaseModel):
    """Body of a publish request; also the ``data`` of a stored document."""

    model_config = ConfigDict(populate_by_name=True)

    chat_html: str | None = Field(None, alias="chatHtml")
    turns: list[dict[str, Any]] | None = None
    outline: dict[str, str] | None = None
    comments: dict[str, Comment | str] | None = None
    indents: dict[str, int] | None = None
    notes: ChatNotes | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize, keeping only non-empty fields."""
        data = self.model_dump(by_alias=True, exclude_none=True)
        if self.notes is not None and not self.notes.text:
            data.pop("notes", None)
        return {key: value for key, value in data.items() if value}


class SharedDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    conversation_id: str = Field(alias="conversationId")
    timestamp: str = ""
    data: SharePayload = SharePayload()


class ShareResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    conversation_id: str = Field(alias="conversationId")
    share_url: str = Field(alias="shareUrl")
    timestamp: str
    is_new: bool = Field(alias="isNew")
