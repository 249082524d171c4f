"""File-backed share server: publish and fetch shared chat documents."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .config import SHARED_DIR
from .errors import RemoteError, RemoteNotFoundError, RemoteWriteError
from .hashing import is_valid_identity
from .models import SharePayload
from .remote import FileBlobStore

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(shared_dir: Path = SHARED_DIR) -> FastAPI:
    """Build the share API around a directory of ``<id>.json`` documents."""
    app = FastAPI(title="chatworkspace share server")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "PUT", "POST"],
        allow_headers=["Content-Type"],
    )
    blobs = FileBlobStore(shared_dir)
    app.state.blobs = blobs

    @app.api_route("/share", methods=["PUT", "POST"])
    async def share(request: Request):
        """Store the posted annotations under the conversation ID in ``?id=``."""
        conversation_id = request.query_params.get("id")
        if conversation_id is None:
            return _error(400, "Missing conversation ID in query parameter")
        if not is_valid_identity(conversation_id):
            return _error(400, "Invalid conversation ID format")

        try:
            body = json.loads(await request.body())
        except ValueError:
            return _error(400, "Invalid JSON in request body")
        if not isinstance(body, dict):
            return _error(400, "Invalid JSON in request body")

        try:
            payload = SharePayload.model_validate(body)
        except ValidationError:
            return _error(400, "Invalid share data")

        try:
            result = blobs.put(conversation_id, payload)
        except RemoteWriteError:
            logger.exception("Failed to save shared data for %s", conversation_id)
            return _error(500, "Failed to save shared data")

        return result.model_dump(by_alias=True)

    @app.get("/shared/{conversation_id}.json")
    async def shared(conversation_id: str):
        if not is_valid_identity(conversation_id):
            return _error(400, "Invalid conversation ID format")
        try:
            document = blobs.get(conversation_id)
        except RemoteNotFoundError:
            return _error(404, "Shared chat not found")
        except RemoteError:
            logger.exception("Failed to read shared data for %s", conversation_id)
            return _error(500, "Failed to read shared data")
        return {
            "conversationId": document.conversation_id,
            "timestamp": document.timestamp,
            "data": document.data.to_wire(),
        }

    return app


def run(host: str, port: int, shared_dir: Path = SHARED_DIR):
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run(create_app(shared_dir), host=host, port=port)
