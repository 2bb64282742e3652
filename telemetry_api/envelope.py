"""Builders for the ``{status, message, ...}`` response envelope."""
from __future__ import annotations

from typing import Any

from .errors import ClientError, StorageError

OK = 200
EMPTY = 300
BAD_REQUEST = 400
INTERNAL = 500


def ok(message: str, **fields: Any) -> dict[str, Any]:
    return {"status": OK, "message": message, **fields}


def empty(message: str, **fields: Any) -> dict[str, Any]:
    """A valid request that matched nothing. Not an error, so no ``type``."""
    return {"status": EMPTY, "message": message, **fields}


def client_error(exc: ClientError, **fields: Any) -> dict[str, Any]:
    return {
        "status": exc.status,
        "message": "User-related error encountered",
        "type": "client",
        "error": exc.message,
        **exc.fields,
        **fields,
    }


def internal_error(message: str, exc: StorageError | None = None, **fields: Any) -> dict[str, Any]:
    body: dict[str, Any] = {"status": INTERNAL, "message": message, "type": "internal", **fields}
    if exc is not None:
        body["error"] = exc.message
    return body
