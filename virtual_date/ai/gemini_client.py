"""
Google Gemini dialogue client for Virtual Date.
Sends the user's message, the replayed history and the persona prompt to
Gemini and returns the generated reply.
"""

import asyncio
import re
from typing import Any, Callable, Dict, List, Optional, Sequence

import google.generativeai as genai
from google.generativeai.types import HarmBlockThreshold, HarmCategory

from ..core.config import DialogueConfig
from ..core.errors import ConfigurationError, UpstreamError
from ..core.session import Turn, clamp_affection
from ..models.character import Persona, get_persona
from ..utils.logger import get_logger

logger = get_logger(__name__)

ModelFactory = Callable[[str], Any]

def remove_asterisk_actions(text: str) -> str:
    """Remove asterisk-enclosed actions like *smiles* or *blushes*."""
    return re.sub(r'\*[^*]+\*', '', text).strip()

def clean_formatting(text: str) -> str:
    """Collapse runs of whitespace."""
    return re.sub(r'\s+', ' ', text).strip()

RESPONSE_FILTERS: List[Callable[[str], str]] = [remove_asterisk_actions, clean_formatting]

def affection_hint(affection: int) -> str:
    """Describe the affection band so the model can colour its tone."""
    if affection < 30:
        return "You feel distant and a little guarded towards the user right now."
    if affection < 70:
        return "You feel warm towards the user and are enjoying the date."
    return "You are completely smitten with the user."

def build_system_instruction(persona: Persona, affection: float) -> str:
    """Persona personality text followed by the affection-state note."""
    level = clamp_affection(affection)
    return (
        f"{persona.get_personality_prompt()}\n\n"
        f"User affection: {level}/100\n"
        f"{affection_hint(level)}"
    )

def to_gemini_history(history: Sequence[Turn]) -> List[Dict[str, Any]]:
    """Convert session turns to Gemini chat history, preserving order."""
    return [
        {"role": "user" if turn.role == "user" else "model", "parts": [turn.text]}
        for turn in history
    ]

class GeminiDialogueClient:
    """Stateless Gemini client; every call replays the full history."""

    def __init__(self, config: DialogueConfig, personas: Dict[str, Persona],
                 model_factory: Optional[ModelFactory] = None):
        self.config = config
        self.personas = personas
        self._model_factory = model_factory or self._create_model

        self.safety_settings = {
            HarmCategory.HARM_CATEGORY_HARASSMENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_HATE_SPEECH: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_SEXUALLY_EXPLICIT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
            HarmCategory.HARM_CATEGORY_DANGEROUS_CONTENT: HarmBlockThreshold.BLOCK_MEDIUM_AND_ABOVE,
        }

    @property
    def available(self) -> bool:
        return bool(self.config.gemini_api_key)

    def _create_model(self, system_instruction: str):
        """Create a Gemini model bound to this round's system instruction."""
        genai.configure(api_key=self.config.gemini_api_key)

        generation_config = {
            "temperature": self.config.temperature,
            "top_p": self.config.top_p,
            "top_k": self.config.top_k,
            "max_output_tokens": self.config.max_output_tokens,
        }

        return genai.GenerativeModel(
            model_name=self.config.gemini_model,
            generation_config=generation_config,
            safety_settings=self.safety_settings,
            system_instruction=system_instruction,
        )

    def _send(self, message: str, history: Sequence[Turn], system_instruction: str) -> str:
        model = self._model_factory(system_instruction)
        chat = model.start_chat(history=to_gemini_history(history))
        response = chat.send_message(message)
        # .text raises ValueError when the candidate was blocked
        return response.text

    async def converse(self, message: str, history: Sequence[Turn],
                       persona: str, affection: float) -> str:
        """Generate the persona's reply to message.

        Raises ConfigurationError without touching the network when no API
        key is configured, and UpstreamError when Gemini fails or returns no
        usable text. One attempt per call.
        """
        if not self.config.gemini_api_key:
            raise ConfigurationError("Missing GEMINI_API_KEY")

        profile = get_persona(self.personas, persona)
        system_instruction = build_system_instruction(profile, affection)

        try:
            raw_text = await asyncio.to_thread(self._send, message, list(history), system_instruction)
        except Exception as e:
            logger.error(f"Gemini request failed: {e}")
            raise UpstreamError("Gemini request failed", backend="gemini") from e

        reply = raw_text or ""
        for response_filter in RESPONSE_FILTERS:
            reply = response_filter(reply)

        if not reply:
            logger.warning("Gemini returned an empty reply")
            raise UpstreamError("Gemini returned no text", backend="gemini")

        logger.info(f"Generated Gemini reply: {len(reply)} characters")
        return reply

def create_dialogue_client(config: DialogueConfig, personas: Dict[str, Persona]) -> GeminiDialogueClient:
    """Create the dialogue client; a missing key is reported on first use."""
    if not config.gemini_api_key:
        logger.warning("Gemini API key not provided - replies will fall back to an apology")
    return GeminiDialogueClient(config, personas)
