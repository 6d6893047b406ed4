"""Blocking client for OpenAI-compatible chat-completion endpoints."""
from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Sequence, Union

import httpx

from .errors import CompletionError, MalformedResponseError, TransportError
from .history import Turn

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TIMEOUT = 60.0

ALLOWED_ROLES = {"user", "assistant", "system"}

PromptInput = Union[str, Sequence[Union[Turn, Mapping[str, Any]]]]


def to_messages(prompt: PromptInput) -> List[Dict[str, str]]:
    """Normalize a prompt into the request ``messages`` list.

    A bare string becomes one user message. Sequences may mix :class:`Turn`
    objects and ``{"role", "content"}`` mappings.
    """
    if isinstance(prompt, str):
        return [{"role": "user", "content": prompt}]

    messages: List[Dict[str, str]] = []
    for item in prompt:
        if isinstance(item, Turn):
            messages.append(item.to_message())
            continue
        if not isinstance(item, Mapping):
            raise TypeError(f"unsupported prompt item: {type(item).__name__}")
        role = str(item.get("role", ""))
        content = item.get("content")
        if role not in ALLOWED_ROLES:
            raise ValueError(f"unsupported role: {role!r}")
        if not isinstance(content, str):
            raise TypeError("message content must be a str")
        messages.append({"role": role, "content": content})

    if not messages:
        raise ValueError("prompt must contain at least one message")
    return messages


class CompletionClient:
    """Send role-tagged messages to a provider and return the best reply.

    Usage:
        with CompletionClient(api_key=key) as client:
            text = client.complete("Hello")

    Every call is independent: no retries, no caching. The timeout is the hard
    upper bound of one call.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        model: str = DEFAULT_MODEL,
        *,
        api_key: Optional[str] = None,
        timeout: Optional[float] = DEFAULT_TIMEOUT,
        temperature: Optional[float] = None,
        http_client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url
        self.model = model
        self.api_key = api_key
        self.temperature = temperature
        self._owns_client = http_client is None
        self._client = http_client or httpx.Client(
            base_url=base_url,
            headers=self._headers(),
            timeout=timeout,
        )

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    # -------------------------
    # Lifecycle
    # -------------------------
    def close(self) -> None:
        """Close the underlying HTTPX client if this object created it."""
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> "CompletionClient":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    # -------------------------
    # Completion
    # -------------------------
    def complete(self, prompt: PromptInput) -> str:
        """Return the first candidate's text, trimmed.

        Raises
        ------
        TransportError
            Connection failure, timeout or non-2xx response.
        MalformedResponseError
            Body is not the expected shape or holds no candidates.
        CompletionError
            The prompt itself cannot be encoded for the request.
        """
        messages = to_messages(prompt)
        for message in messages:
            try:
                message["content"].encode("utf-8")
            except UnicodeEncodeError as e:
                raise CompletionError(f"prompt cannot be encoded as UTF-8: {e}") from e
        payload: Dict[str, Any] = {"model": self.model, "messages": messages}
        if self.temperature is not None:
            payload["temperature"] = self.temperature

        logger.debug("Requesting completion (%d message(s)) from %s", len(payload["messages"]), self.model)
        try:
            response = self._client.post(
                "/chat/completions",
                json=payload,
                headers=self._headers(),
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise TransportError(f"provider returned HTTP {status}", status_code=status) from e
        except httpx.HTTPError as e:
            raise TransportError(f"request to provider failed: {e}") from e

        return self._extract_reply(response)

    @staticmethod
    def _extract_reply(response: httpx.Response) -> str:
        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("response body is not valid JSON") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("response body is not a JSON object")

        choices = data.get("choices")
        if not isinstance(choices, list):
            raise MalformedResponseError("response has no 'choices' list")
        if not choices:
            raise MalformedResponseError("response contains no candidates")

        first = choices[0]
        message = first.get("message") if isinstance(first, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise MalformedResponseError("first candidate has no text content")
        try:
            # JSON escapes can smuggle in lone surrogates (a cut-off emoji).
            content.encode("utf-8")
        except UnicodeEncodeError as e:
            raise MalformedResponseError("candidate text is not valid Unicode") from e
        return content.strip()


# -----------------------------
# Convenience factory
# -----------------------------
def create_from_config(cfg: Dict[str, Any]) -> CompletionClient:
    """Create a CompletionClient from the ``llm`` section of a config dict."""
    llm_cfg = ((cfg or {}).get("llm") if isinstance(cfg, dict) else None) or {}

    api_key = None
    key_env = llm_cfg.get("api_key_env", "OPENAI_API_KEY")
    if key_env:
        api_key = os.environ.get(key_env)
        if not api_key:
            logger.warning("Environment variable %s is not set; sending requests without auth.", key_env)

    temperature = llm_cfg.get("temperature")
    timeout = llm_cfg.get("timeout_seconds")
    return CompletionClient(
        base_url=str(llm_cfg.get("base_url") or DEFAULT_BASE_URL),
        model=str(llm_cfg.get("model") or DEFAULT_MODEL),
        api_key=api_key,
        timeout=float(timeout if timeout is not None else DEFAULT_TIMEOUT),
        temperature=None if temperature is None else float(temperature),
    )
