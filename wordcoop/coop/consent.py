"""
Ask/response bookkeeping for changes both players must agree on.
"""
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class AskKind(str, Enum):
    WORD = "word"
    GIVE_UP = "give_up"


@dataclass
class PendingAsk:
    kind: AskKind
    payload: Any = None
    asked_at: float = field(default_factory=time.monotonic)


class ConsentTracker:
    """At most one outstanding ask per kind."""

    def __init__(self):
        self._pending: Dict[AskKind, PendingAsk] = {}

    def begin(self, kind: AskKind, payload: Any = None) -> bool:
        if kind in self._pending:
            return False
        self._pending[kind] = PendingAsk(kind, payload)
        return True

    def resolve(self, kind: AskKind) -> Optional[PendingAsk]:
        return self._pending.pop(kind, None)

    def outstanding(self, kind: AskKind) -> bool:
        return kind in self._pending

    def clear(self):
        self._pending.clear()


class ConsentPolicy:
    """Decides whether to accept a peer's request. Accepts everything by default.

    Front ends override these to ask the player.
    """

    def confirm_word(self, word: str) -> bool:
        return True

    def confirm_give_up(self) -> bool:
        return True
