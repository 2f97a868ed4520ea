"""
Conversation controller - one chat round trip from user text to reply,
expression and optional speech.

The controller is the only code that mutates the session: history and
affection change in its completion handler, and only after a successful
reply, so a failed round trip never leaves a dangling user turn.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from .expression import Expression, classify
from ..core.errors import ConfigurationError, UpstreamError, ValidationError
from ..core.event_bus import (
    EXPRESSION_CHANGED, INPUT_ENABLED, REPLY_READY, SPEECH_READY, EventBus,
)
from ..core.session import Session, Turn

logger = logging.getLogger(__name__)

FALLBACK_REPLY = "I'm having trouble thinking right now. Could you try again?"
MISSING_KEY_REPLY = "⚠️ Gemini is unavailable. Check your API key and try again."

class DialogueBackend(Protocol):
    async def converse(self, message: str, history: Sequence[Turn],
                       persona: str, affection: float) -> str: ...

class SpeechBackend(Protocol):
    enabled: bool
    default_voice_id: str

    async def synthesize(self, text: str, voice_id: Optional[str] = None) -> Optional[bytes]: ...

@dataclass
class ChatResult:
    """Outcome of one round trip."""
    reply: str
    expression: Expression
    affection: int
    audio: Optional[bytes] = None
    degraded: bool = False
    error: Optional[Exception] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reply": self.reply,
            "expression": self.expression.value,
            "affection": self.affection,
        }

class ChatController:
    """Drives the dialogue -> expression -> speech pipeline for one session."""

    def __init__(self, session: Session, dialogue: DialogueBackend,
                 speech: Optional[SpeechBackend] = None,
                 classifier=classify, event_bus: Optional[EventBus] = None):
        self.session = session
        self.dialogue = dialogue
        self.speech = speech
        self.classifier = classifier
        self.event_bus = event_bus

        self.response_times: List[float] = []
        self.error_count = 0

    @property
    def input_enabled(self) -> bool:
        return not self.session.in_flight

    async def _emit(self, event_name: str, *args):
        if self.event_bus:
            await self.event_bus.emit(event_name, *args)

    async def send(self, message: str) -> Optional[ChatResult]:
        """Run one round trip.

        Returns None without calling the backend when a round trip is
        already outstanding for this session.
        """
        if not isinstance(message, str) or not message.strip():
            raise ValidationError("Invalid message")

        if self.session.in_flight:
            logger.debug("Ignoring send while a reply is outstanding")
            return None

        message = message.strip()
        self.session.in_flight = True
        await self._emit(INPUT_ENABLED, False)

        try:
            return await self._round_trip(message)
        finally:
            self.session.in_flight = False
            await self._emit(INPUT_ENABLED, True)

    async def _round_trip(self, message: str) -> ChatResult:
        persona = self.session.persona
        start_time = time.time()

        try:
            reply = await self.dialogue.converse(
                message, self.session.turns, persona.id, self.session.affection
            )
        except ConfigurationError as e:
            logger.error(f"Dialogue unavailable: {e}")
            return await self._degraded(MISSING_KEY_REPLY, e)
        except UpstreamError as e:
            logger.error(f"Dialogue failed: {e}")
            return await self._degraded(FALLBACK_REPLY, e)

        self.response_times.append(time.time() - start_time)

        expression = self.classifier(reply, persona.id)
        self.session.record_round(message, reply)
        affection = self.session.adjust_affection(expression)
        logger.info(f"{persona.name} replied ({expression.value}, affection {affection})")

        await self._emit(REPLY_READY, reply)
        await self._emit(EXPRESSION_CHANGED, expression)

        audio = None
        if self.speech is not None and self.speech.enabled:
            voice_id = persona.voice_id or self.speech.default_voice_id
            audio = await self.speech.synthesize(reply, voice_id)
            if audio:
                await self._emit(SPEECH_READY, audio)

        return ChatResult(reply=reply, expression=expression, affection=affection, audio=audio)

    async def _degraded(self, reply: str, error: Exception) -> ChatResult:
        self.error_count += 1
        await self._emit(EXPRESSION_CHANGED, Expression.NORMAL)
        return ChatResult(
            reply=reply,
            expression=Expression.NORMAL,
            affection=self.session.affection,
            degraded=True,
            error=error,
        )

    def get_stats(self) -> Dict[str, Any]:
        """Conversation statistics."""
        avg_response_time = (
            sum(self.response_times) / len(self.response_times) if self.response_times else 0
        )
        return {
            "total_turns": len(self.session.turns),
            "affection": self.session.affection,
            "average_response_time": avg_response_time,
            "error_count": self.error_count,
        }
