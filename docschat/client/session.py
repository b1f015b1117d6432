from __future__ import annotations
import itertools
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, List, Tuple

from docschat.schemas.chat import ChatMessage

ROLES = ("system", "user", "assistant")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationTurn:
    id: int
    role: str
    content: str
    created_at: datetime = field(default_factory=utcnow)
    # Client-generated text (error notices, the no-response sentinel); never sent upstream
    synthetic: bool = False

    def to_message(self) -> ChatMessage:
        return ChatMessage(role=self.role, content=self.content)


class ChatSession:
    """Append-only transcript for one conversation."""

    def __init__(self) -> None:
        self._ids = itertools.count(1)
        self._turns: List[ConversationTurn] = []

    def add_turn(self, role: str, content: str, synthetic: bool = False) -> ConversationTurn:
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role}")
        turn = ConversationTurn(id=next(self._ids), role=role, content=content, synthetic=synthetic)
        self._turns.append(turn)
        return turn

    @property
    def turns(self) -> Tuple[ConversationTurn, ...]:
        return tuple(self._turns)

    def history(self) -> List[ChatMessage]:
        """Messages to send with the next request, without synthetic turns."""
        return [t.to_message() for t in self._turns if not t.synthetic]

    def clear(self) -> None:
        # Ids keep increasing so turns from before the clear never collide
        self._turns = []

    def __len__(self) -> int:
        return len(self._turns)

    def __iter__(self) -> Iterator[ConversationTurn]:
        return iter(self.turns)
