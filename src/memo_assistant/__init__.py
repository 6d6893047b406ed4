"""Conversational assistant that carries a distilled memory between runs.

Each run answers one message, then asks the provider to compress
``{memory, lastUserMessage, lastAssistantResponse}`` into a new memory blob
which is saved for the next run.

Typical usage
-------------
memo-assistant "What's my name?"

or, from Python:

from memo_assistant import AssistantOrchestrator, CompletionClient, MemoryStore
with CompletionClient(api_key=key) as client:
    result = AssistantOrchestrator(client, MemoryStore("memory.json")).run("Hello")
"""

from __future__ import annotations

__version__ = "0.1.0"

from .client import CompletionClient
from .errors import (
    AssistantError,
    CompletionError,
    MalformedResponseError,
    StorageCorruptError,
    StorageError,
    StorageUnavailableError,
    TransportError,
)
from .history import HistoryLog, Role, Turn
from .memory import DEFAULT_MEMORY, MemoryStore
from .orchestrator import AssistantOrchestrator, RunResult, RunState
from .prompts import PromptBook

__all__ = [
    "__version__",
    "get_version",
    "AssistantOrchestrator",
    "CompletionClient",
    "HistoryLog",
    "MemoryStore",
    "PromptBook",
    "Role",
    "RunResult",
    "RunState",
    "Turn",
    "DEFAULT_MEMORY",
    "AssistantError",
    "CompletionError",
    "MalformedResponseError",
    "StorageCorruptError",
    "StorageError",
    "StorageUnavailableError",
    "TransportError",
]


def get_version() -> str:
    """Return the package version."""
    return __version__
