"""Error taxonomy for the assistant.

Completion errors come from talking to the provider, storage errors from the
memory file. Callers decide which of them are fatal for a run.
"""
from __future__ import annotations

from typing import Optional


class AssistantError(Exception):
    """Base class for every error raised by this package."""


# -----------------------------
# Completion provider
# -----------------------------
class CompletionError(AssistantError):
    """The completion provider could not produce a reply."""


class TransportError(CompletionError):
    """Network or HTTP failure while reaching the provider."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class MalformedResponseError(CompletionError):
    """Response body is missing expected fields or has no candidates."""


# -----------------------------
# Memory store
# -----------------------------
class StorageError(AssistantError):
    """The memory store failed."""


class StorageUnavailableError(StorageError):
    """The store cannot be read or written at all."""


class StorageCorruptError(StorageError):
    """The store is readable but its content is unusable."""
