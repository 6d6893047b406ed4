"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Callable, List

import httpx
import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from memo_assistant.client import CompletionClient  # noqa: E402


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="session")
def config_path(project_root: Path) -> Path:
    """Shipped default config."""
    return project_root / "config" / "default.yaml"


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for memory files during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in list(os.environ):
        if var.startswith("MEMO_ASSISTANT"):
            monkeypatch.delenv(var, raising=False)
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    yield


class ScriptedClient:
    """Completion stand-in that replays canned replies and records prompts.

    A reply that is an exception instance is raised instead of returned.
    """

    def __init__(self, *replies) -> None:
        self.replies = list(replies)
        self.prompts: List = []

    def complete(self, prompt) -> str:
        self.prompts.append(prompt)
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, BaseException):
            raise reply
        return reply


@pytest.fixture
def scripted() -> Callable[..., ScriptedClient]:
    return ScriptedClient


@pytest.fixture
def mock_client():
    """Build a CompletionClient whose HTTP layer is an ``httpx.MockTransport``.

    Returns ``(client, requests)``; ``requests`` collects the decoded JSON
    payloads that were sent.
    """
    made: List[CompletionClient] = []

    def factory(handler: Callable[[httpx.Request], httpx.Response], **kwargs):
        requests: List[dict] = []

        def recording(request: httpx.Request) -> httpx.Response:
            requests.append(json.loads(request.content))
            return handler(request)

        http = httpx.Client(transport=httpx.MockTransport(recording), base_url="https://llm.test/v1")
        client = CompletionClient("https://llm.test/v1", "test-model", http_client=http, **kwargs)
        made.append(client)
        return client, requests

    yield factory
    for c in made:
        c._client.close()

