"""In-process, append-only log of conversation turns."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterator, List, Tuple


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class Turn:
    """A single role-tagged message."""

    role: Role
    content: str

    def __post_init__(self) -> None:
        # Accept plain strings ("user") as well as Role members.
        object.__setattr__(self, "role", Role(self.role))
        if not isinstance(self.content, str):
            raise TypeError("turn content must be a str")

    def to_message(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class HistoryLog:
    """Ordered turns used to build the next prompt.

    The log only grows: there is no API to drop or reorder entries. It lives as
    long as the object that owns it (one orchestrator), so nothing leaks between
    independent runs.
    """

    SEPARATOR = "\n"

    def __init__(self) -> None:
        self._turns: List[Turn] = []

    def append(self, turn: Turn) -> None:
        if not isinstance(turn, Turn):
            raise TypeError("HistoryLog only accepts Turn instances")
        self._turns.append(turn)

    def append_user(self, content: str) -> Turn:
        turn = Turn(Role.USER, content)
        self.append(turn)
        return turn

    def append_assistant(self, content: str) -> Turn:
        turn = Turn(Role.ASSISTANT, content)
        self.append(turn)
        return turn

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Snapshot of the log in insertion order."""
        return tuple(self._turns)

    def render_prompt(self) -> str:
        """Join every turn's content in chronological order."""
        return self.SEPARATOR.join(t.content for t in self._turns)

    def as_messages(self) -> List[Dict[str, str]]:
        """Role-tagged request form of the log."""
        return [t.to_message() for t in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[Turn]:
        return iter(self.turns)

    def __repr__(self) -> str:
        return f"HistoryLog(turns={len(self._turns)})"
