"""
Conversation session state.

One Session per page load or console run. It owns the ordered turn history,
the affection scalar and the selected persona; nothing here is persisted.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Literal, Tuple

from .errors import ValidationError
from ..ai.expression import Expression
from ..models.character import Persona

logger = logging.getLogger(__name__)

Role = Literal["user", "assistant"]

AFFECTION_MIN = 0
AFFECTION_MAX = 100

# How each reply expression nudges the affection scalar
AFFECTION_DELTAS: Dict[Expression, int] = {
    Expression.SMILE: 3,
    Expression.SURPRISED: 1,
    Expression.NORMAL: 1,
    Expression.SAD: -1,
    Expression.ANGRY: -4,
}

def clamp_affection(value: float) -> int:
    """Clamp to the 0-100 affection range."""
    return int(max(AFFECTION_MIN, min(AFFECTION_MAX, round(value))))

@dataclass(frozen=True)
class Turn:
    """One message in the conversation, tagged by speaker role."""
    role: Role
    text: str

    def __post_init__(self):
        if self.role not in ("user", "assistant"):
            raise ValidationError(f"Invalid turn role: {self.role!r}")

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.text}

@dataclass
class Session:
    """Ordered turns, affection and persona for one conversation."""
    persona: Persona
    affection: int = 50
    _turns: List[Turn] = field(default_factory=list, repr=False)
    in_flight: bool = False

    def __post_init__(self):
        self.affection = clamp_affection(self.affection)
        logger.info(f"Session started with persona '{self.persona.id}' (affection {self.affection})")

    @property
    def turns(self) -> Tuple[Turn, ...]:
        """Read-only view of the history, in insertion order."""
        return tuple(self._turns)

    def record_round(self, user_text: str, reply_text: str):
        """Append a completed user/assistant pair.

        Both turns go in together so a failed round trip never leaves a
        dangling user turn.
        """
        self._turns.append(Turn("user", user_text))
        self._turns.append(Turn("assistant", reply_text))

    def adjust_affection(self, expression: Expression) -> int:
        """Apply the reply's mood to the affection scalar."""
        self.affection = clamp_affection(self.affection + AFFECTION_DELTAS.get(expression, 0))
        return self.affection

    @classmethod
    def from_history(cls, persona: Persona, history: Iterable[Turn], affection: float = 50) -> "Session":
        """Rebuild a session from client-supplied history (HTTP surface)."""
        session = cls(persona=persona, affection=affection)
        session._turns.extend(history)
        return session
