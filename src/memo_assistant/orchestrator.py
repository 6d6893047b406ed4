"""One exchange cycle: load memory, reply, distill, persist."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Protocol

from . import client as client_mod
from . import memory as memory_mod
from . import prompts as prompts_mod
from .client import PromptInput
from .errors import CompletionError, MalformedResponseError, StorageError
from .history import HistoryLog
from .memory import MemoryStore
from .prompts import PromptBook

logger = logging.getLogger(__name__)

RENDER_MODES = ("joined", "turns")


class Completer(Protocol):
    def complete(self, prompt: PromptInput) -> str:
        ...


class RunState(str, Enum):
    IDLE = "idle"
    MEMORY_LOADED = "memory_loaded"
    REPLIED = "replied"
    DISTILLING = "distilling"
    PERSISTED = "persisted"
    DISTILL_FAILED = "distill_failed"
    ABORTED = "aborted"


_TRANSITIONS = {
    RunState.IDLE: {RunState.MEMORY_LOADED, RunState.ABORTED},
    RunState.MEMORY_LOADED: {RunState.REPLIED, RunState.ABORTED},
    RunState.REPLIED: {RunState.DISTILLING},
    RunState.DISTILLING: {RunState.PERSISTED, RunState.DISTILL_FAILED},
}


@dataclass
class RunResult:
    reply: str
    memory: str                       # what is on disk after the run
    state: RunState
    distill_error: Optional[BaseException] = None

    @property
    def persisted(self) -> bool:
        return self.state is RunState.PERSISTED


class AssistantOrchestrator:
    """Sequences one full exchange against a completion provider.

    The reply is final as soon as it is produced: ``on_reply`` fires before
    distillation starts, and a failed distillation leaves the stored memory
    exactly as it was. A failed primary completion aborts the run without
    touching memory.

    ``render_mode`` decides how the log reaches the provider:
      - ``"joined"``: the whole log as one user message (newline separated)
      - ``"turns"``: one role-tagged message per turn
    """

    def __init__(
        self,
        client: Completer,
        store: MemoryStore,
        prompts: Optional[PromptBook] = None,
        *,
        history: Optional[HistoryLog] = None,
        render_mode: str = "joined",
    ) -> None:
        if render_mode not in RENDER_MODES:
            raise ValueError(f"render_mode must be one of {RENDER_MODES}, got {render_mode!r}")
        self.client = client
        self.store = store
        self.prompts = prompts or PromptBook()
        self.history = history if history is not None else HistoryLog()
        self.render_mode = render_mode
        self.state = RunState.IDLE

    # -------------------------
    # State machine
    # -------------------------
    def _advance(self, new: RunState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal run transition {self.state.value} -> {new.value}")
        logger.debug("run state %s -> %s", self.state.value, new.value)
        self.state = new

    def _reset(self) -> None:
        # Every run starts over; the log is kept.
        self.state = RunState.IDLE

    # -------------------------
    # Public API
    # -------------------------
    def run(self, message: str, on_reply: Optional[Callable[[str], None]] = None) -> RunResult:
        """Answer ``message`` and fold the exchange into memory."""
        if not message or not message.strip():
            raise ValueError("message cannot be empty")
        self._reset()

        with self.store.locked():
            try:
                memory = self.store.load()
                self._advance(RunState.MEMORY_LOADED)
                reply = self._ask(self.prompts.assist(memory, message))
            except (CompletionError, StorageError):
                self._advance(RunState.ABORTED)
                raise
            self._advance(RunState.REPLIED)
            if on_reply is not None:
                on_reply(reply)

            self._advance(RunState.DISTILLING)
            try:
                distilled = self._distill(memory, message, reply)
                self.store.save(distilled)
            except (CompletionError, StorageError) as e:
                logger.warning("Memory distillation failed; keeping previous memory: %s", e)
                self._advance(RunState.DISTILL_FAILED)
                return RunResult(reply=reply, memory=memory, state=self.state, distill_error=e)

            self._advance(RunState.PERSISTED)
            logger.info("Memory updated (%d -> %d chars).", len(memory), len(distilled))
            return RunResult(reply=reply, memory=distilled, state=self.state)

    # -------------------------
    # Internals
    # -------------------------
    def _request(self) -> PromptInput:
        if self.render_mode == "turns":
            return self.history.as_messages()
        return self.history.render_prompt()

    def _ask(self, prompt: str) -> str:
        self.history.append_user(prompt)
        answer = self.client.complete(self._request())
        self.history.append_assistant(answer)
        return answer

    def _distill(self, memory: str, message: str, reply: str) -> str:
        candidate = self.prompts.candidate(memory, message, reply)
        distilled = self.prompts.clean_distilled(self._ask(self.prompts.distill(candidate)))
        if not distilled:
            raise MalformedResponseError("distillation returned an empty memory")
        return distilled


def create_from_config(
    cfg: Dict[str, Any],
    *,
    client: Optional[Completer] = None,
    store: Optional[MemoryStore] = None,
) -> AssistantOrchestrator:
    """Wire an orchestrator from a config dict; explicit collaborators win."""
    orch_cfg = (cfg or {}).get("orchestrator", {}) if isinstance(cfg, dict) else {}
    return AssistantOrchestrator(
        client or client_mod.create_from_config(cfg),
        store or memory_mod.create_from_config(cfg),
        prompts_mod.create_from_config(cfg),
        render_mode=str((orch_cfg or {}).get("render_mode", "joined")),
    )
