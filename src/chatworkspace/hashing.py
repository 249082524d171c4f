"""Content-derived conversation identities.

A conversation is identified by the SHA-256 digest of a canonical JSON form of
its messages, so pasting the same chat twice (or on another machine) lands on
the same stored annotations. The canonical form accepts several input shapes:

- a list of messages: ``[{"role": ..., "text": ...}, ...]``
- a wrapper object: ``{"messages": [...]}``
- a single message: ``{"role": ..., "text": ...}``
- a keyed mapping: ``{"0": {...}, "1": {...}}``, ordered by key

Messages may also use the ``type``/``content`` field names of older exports,
and may be objects such as ``Turn`` rather than dicts.
"""

from __future__ import annotations

import hashlib
import json
import re
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable

from .config import IDENTITY_PATTERN
from .errors import MalformedIdentityError

CANONICAL_VERSION = 1
WRAPPER_FIELD = "messages"

_ROLE_FIELDS = ("role", "type")
_TEXT_FIELDS = ("text", "content")
_WHITESPACE = re.compile(r"\s+")
# Keys that round-trip through int() unchanged: "0", "12", "-3" but not "07"
_INTEGER_KEY = re.compile(r"^(?:0|-?[1-9][0-9]*)$")
_IDENTITY = re.compile(IDENTITY_PATTERN)


class InputShape(Enum):
    LIST = "list"
    WRAPPER = "wrapper"
    SINGLE = "single"
    KEYED = "keyed"
    UNSUPPORTED = "unsupported"


def _field(record: Any, names: tuple[str, ...]) -> Any:
    for name in names:
        if isinstance(record, Mapping):
            value = record.get(name)
        else:
            value = getattr(record, name, None)
        if value not in (None, ""):
            return value
    return None


def _has_message_fields(record: Any) -> bool:
    names = _ROLE_FIELDS + _TEXT_FIELDS
    if isinstance(record, Mapping):
        return any(name in record for name in names)
    return any(hasattr(record, name) for name in names)


def classify_input(data: Any) -> InputShape:
    """Decide which supported shape a turn-bearing input has."""
    if isinstance(data, (list, tuple)):
        return InputShape.LIST
    if isinstance(data, Mapping):
        if isinstance(data.get(WRAPPER_FIELD), (list, tuple)):
            return InputShape.WRAPPER
        if _has_message_fields(data):
            return InputShape.SINGLE
        return InputShape.KEYED
    if _has_message_fields(data):
        return InputShape.SINGLE
    return InputShape.UNSUPPORTED


def normalize_message(record: Any) -> dict[str, str]:
    """Reduce one message to ``{role, text}`` with collapsed, trimmed whitespace."""
    role = _field(record, _ROLE_FIELDS)
    text = _field(record, _TEXT_FIELDS)
    return {
        "role": "" if role is None else _WHITESPACE.sub(" ", str(role)).strip(),
        "text": "" if text is None else _WHITESPACE.sub(" ", str(text)).strip(),
    }


def key_sort_order(key: Any) -> tuple:
    """Sort key: integer-like keys numerically first, then the rest lexicographically."""
    key = str(key)
    if _INTEGER_KEY.fullmatch(key):
        return (0, int(key), "")
    return (1, 0, key)


def _from_list(data: Any) -> list[dict[str, str]]:
    return [normalize_message(m) for m in data]


def _from_wrapper(data: Any) -> list[dict[str, str]]:
    return [normalize_message(m) for m in data[WRAPPER_FIELD]]


def _from_single(data: Any) -> list[dict[str, str]]:
    return [normalize_message(data)]


def _from_keyed(data: Any) -> list[dict[str, str]]:
    return [normalize_message(data[k]) for k in sorted(data, key=key_sort_order)]


def _unsupported(data: Any) -> list[dict[str, str]]:
    return []


_NORMALIZERS: dict[InputShape, Callable[[Any], list[dict[str, str]]]] = {
    InputShape.LIST: _from_list,
    InputShape.WRAPPER: _from_wrapper,
    InputShape.SINGLE: _from_single,
    InputShape.KEYED: _from_keyed,
    InputShape.UNSUPPORTED: _unsupported,
}


def coerce_messages(data: Any) -> list[dict[str, str]]:
    """Coerce any supported input shape into an ordered list of ``{role, text}``."""
    return _NORMALIZERS[classify_input(data)](data)


def canonicalize_chat(data: Any) -> str:
    """Canonical JSON string used for hashing."""
    messages = coerce_messages(data)
    return json.dumps(
        {"v": CANONICAL_VERSION, "count": len(messages), "messages": messages},
        ensure_ascii=False,
        separators=(",", ":"),
    )


def hash_chat(data: Any, salt: str = "") -> str:
    """Hash any supported input shape to a hex SHA-256 conversation identity.

    Args:
        data: Messages in any shape accepted by coerce_messages()
        salt: Optional salt scoping the digest

    Returns:
        Lowercase hexadecimal digest (64 characters)
    """
    payload = f"{salt}|{canonicalize_chat(data)}"
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def is_valid_identity(token: Any) -> bool:
    return isinstance(token, str) and _IDENTITY.fullmatch(token) is not None


def validate_identity(token: Any) -> str:
    """Return token unchanged, or raise MalformedIdentityError."""
    if not is_valid_identity(token):
        raise MalformedIdentityError(token)
    return token
