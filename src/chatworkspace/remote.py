"""Remote blob store holding one shared document per conversation."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol

import httpx
from pydantic import ValidationError

from .config import REMOTE_TIMEOUT
from .errors import RemoteError, RemoteNotFoundError, RemoteWriteError
from .hashing import validate_identity
from .models import SharedDocument, SharePayload, ShareResult

logger = logging.getLogger(__name__)


def share_path(conversation_id: str) -> str:
    return f"/shared/{conversation_id}.json"


class BlobStore(Protocol):
    def put(self, conversation_id: str, payload: SharePayload) -> ShareResult: ...

    def get(self, conversation_id: str) -> SharedDocument: ...


class FileBlobStore:
    """Shared documents as ``<id>.json`` files in one directory."""

    def __init__(self, shared_dir: Path):
        self.shared_dir = shared_dir

    def path_for(self, conversation_id: str) -> Path:
        return self.shared_dir / f"{validate_identity(conversation_id)}.json"

    def put(self, conversation_id: str, payload: SharePayload | dict[str, Any]) -> ShareResult:
        """Store a document, replacing any previous one for this identity."""
        path = self.path_for(conversation_id)
        if not isinstance(payload, SharePayload):
            payload = SharePayload.model_validate(payload)

        timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
        document = {
            "conversationId": conversation_id,
            "timestamp": timestamp,
            "data": payload.to_wire(),
        }

        try:
            self.shared_dir.mkdir(parents=True, exist_ok=True)
            is_new = not path.exists()
            path.write_text(json.dumps(document, indent=4, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            raise RemoteWriteError(f"Failed to save shared data: {e}") from e

        logger.info("%s shared chat %s", "Created" if is_new else "Updated", conversation_id)
        return ShareResult(
            conversation_id=conversation_id,
            share_url=share_path(conversation_id),
            timestamp=timestamp,
            is_new=is_new,
        )

    def get(self, conversation_id: str) -> SharedDocument:
        path = self.path_for(conversation_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise RemoteNotFoundError(conversation_id) from None
        except OSError as e:
            raise RemoteError(f"Failed to read shared data: {e}") from e

        try:
            return SharedDocument.model_validate_json(raw)
        except ValidationError as e:
            raise RemoteError(f"Shared document for {conversation_id} is invalid") from e


class HttpBlobStore:
    """HTTP client for a share server (``PUT /share``, ``GET /shared/<id>.json``)."""

    def __init__(
        self,
        base_url: str,
        timeout: float = REMOTE_TIMEOUT,
        client: httpx.Client | None = None,
    ):
        self._client = client or httpx.Client(base_url=base_url, timeout=timeout)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "HttpBlobStore":
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def put(self, conversation_id: str, payload: SharePayload | dict[str, Any]) -> ShareResult:
        validate_identity(conversation_id)
        if not isinstance(payload, SharePayload):
            payload = SharePayload.model_validate(payload)

        try:
            response = self._client.put(
                "/share", params={"id": conversation_id}, json=payload.to_wire()
            )
        except httpx.HTTPError as e:
            raise RemoteWriteError(f"Failed to reach share server: {e}") from e

        if response.status_code != 200:
            raise RemoteWriteError(
                f"Share server rejected the request: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            result = ShareResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteWriteError("Share server returned an invalid response") from e
        if not result.success:
            raise RemoteWriteError("Share server reported failure")
        return result

    def get(self, conversation_id: str) -> SharedDocument:
        validate_identity(conversation_id)
        try:
            response = self._client.get(share_path(conversation_id))
        except httpx.HTTPError as e:
            raise RemoteError(f"Failed to reach share server: {e}") from e

        if response.status_code == 404:
            raise RemoteNotFoundError(conversation_id)
        if response.status_code != 200:
            raise RemoteError(
                f"Failed to load shared chat: {_error_message(response)}",
                status_code=response.status_code,
            )

        try:
            return SharedDocument.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise RemoteError(f"Shared document for {conversation_id} is invalid") from e


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or f"HTTP {response.status_code}")
    return f"HTTP {response.status_code}"
