"""Error kinds raised by the storage and validation layers.

Service code catches these and turns them into response envelopes
(see ``envelope.py``); nothing here is retried.
"""
from __future__ import annotations

from typing import Any


class TelemetryError(Exception):
    """Base class for every telemetry platform error."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ClientError(TelemetryError):
    """Malformed or out-of-range input the caller has to fix.

    ``status`` is 400 for bad input and 300 for a well-formed request that
    cannot have any effect. Extra keyword fields are echoed in the envelope.
    """

    def __init__(self, message: str, status: int = 400, **fields: Any) -> None:
        super().__init__(message)
        self.status = status
        self.fields = fields


class StorageError(TelemetryError):
    """Any failure reaching or querying the backing store."""
