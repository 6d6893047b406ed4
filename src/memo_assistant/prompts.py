"""Prompt texts for replying and for distilling memory.

The wording here is a versioned contract with the provider: bump
``PROMPT_FORMAT_VERSION`` whenever a default text changes, since memory
written under one wording is read back under the next.
"""
from __future__ import annotations

import json
import re
from typing import Any, Dict, Optional

PROMPT_FORMAT_VERSION = 1

ASSIST_TEMPLATE = """You are my personal assistant. You have a json-based memory to enrich your replies.

This is your current memory:
{memory}

Here is my message to you:
{message}
"""

DISTILL_INSTRUCTION = (
    "Extract and distill the current state of conversation from the following content. "
    "Only answer with json and meaningful fields. Simplify the structure of the json. "
    "Don't give explanations."
)

_FENCE_RE = re.compile(r"\A```[\w-]*[ \t]*\r?\n(?P<body>.*?)\r?\n?```\Z", re.DOTALL)


def candidate_blob(memory: str, message: str, reply: str) -> str:
    """Merge the previous memory and the last exchange into one JSON object."""
    return json.dumps(
        {
            "memory": memory,
            "lastUserMessage": message,
            "lastAssistantResponse": reply,
        },
        ensure_ascii=False,
        separators=(",", ":"),
    )


class PromptBook:
    """Holds the two prompt texts and renders them."""

    def __init__(
        self,
        assist_template: str = ASSIST_TEMPLATE,
        distill_instruction: str = DISTILL_INSTRUCTION,
        *,
        strip_code_fences: bool = True,
    ) -> None:
        self._check_template(assist_template)
        if not distill_instruction.strip():
            raise ValueError("distill instruction cannot be empty")
        self.assist_template = assist_template
        self.distill_instruction = distill_instruction
        self.strip_code_fences = strip_code_fences

    @staticmethod
    def _check_template(template: str) -> None:
        # Literal braces must be doubled; {memory} and {message} are required.
        for field in ("{memory}", "{message}"):
            if field not in template:
                raise ValueError(f"assist template must contain {field}")
        try:
            template.format(memory="", message="")
        except (KeyError, IndexError, ValueError) as e:
            raise ValueError(f"invalid assist template: {e}") from e

    def assist(self, memory: str, message: str) -> str:
        # format() never re-parses substituted values, so braces in memory are safe.
        return self.assist_template.format(memory=memory, message=message)

    def candidate(self, memory: str, message: str, reply: str) -> str:
        return candidate_blob(memory, message, reply)

    def distill(self, candidate: str) -> str:
        return f"{self.distill_instruction}\n\n{candidate}\n"

    def clean_distilled(self, text: str) -> str:
        """Trim the distilled reply and unwrap a surrounding Markdown fence."""
        text = text.strip()
        if self.strip_code_fences:
            m = _FENCE_RE.match(text)
            if m:
                text = m.group("body").strip()
        return text


def create_from_config(cfg: Dict[str, Any]) -> PromptBook:
    """Create a PromptBook from the ``prompts`` section of a config dict."""
    p_cfg: Optional[Dict[str, Any]] = (cfg or {}).get("prompts", {}) if isinstance(cfg, dict) else {}
    p_cfg = p_cfg or {}
    return PromptBook(
        assist_template=p_cfg.get("assist_template") or ASSIST_TEMPLATE,
        distill_instruction=p_cfg.get("distill_instruction") or DISTILL_INSTRUCTION,
        strip_code_fences=bool(p_cfg.get("strip_code_fences", True)),
    )
